"""Hostname overrides scoped by organization and network.

Rules are matched most-specific first::

    exact org + exact network
    exact org + any network
    any org   + exact network
    any org   + any network

Within a tier the first rule in file order wins. The table is built once per
configuration load and never mutated afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class HostOverrideRule:
    org: str
    network: str
    ip: str
    hostname: str

    def tier(self, org: str, network: str) -> int | None:
        """Rank of this rule for the given scope (0 = most specific), or None."""
        org_exact = self.org != WILDCARD and self.org.casefold() == org.casefold()
        net_exact = (
            self.network != WILDCARD and self.network.casefold() == network.casefold()
        )
        org_ok = org_exact or self.org == WILDCARD
        net_ok = net_exact or self.network == WILDCARD
        if not (org_ok and net_ok):
            return None
        if org_exact:
            return 0 if net_exact else 1
        return 2 if net_exact else 3


class HostOverrideTable:
    def __init__(self, rules: Iterable[HostOverrideRule] = ()) -> None:
        self._by_ip: dict[str, tuple[HostOverrideRule, ...]] = {}
        grouped: dict[str, list[HostOverrideRule]] = {}
        for rule in rules:
            grouped.setdefault(rule.ip, []).append(rule)
        for ip, ip_rules in grouped.items():
            self._by_ip[ip] = tuple(ip_rules)

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._by_ip.values())

    def lookup(self, ip: str, org: str, network: str) -> str:
        """Return the override hostname for ``ip`` in this scope, or ``""``."""
        best: HostOverrideRule | None = None
        best_tier = 4
        for rule in self._by_ip.get(ip.strip(), ()):
            tier = rule.tier(org, network)
            # strict < keeps the first rule within a tier
            if tier is not None and tier < best_tier:
                best, best_tier = rule, tier
                if tier == 0:
                    break
        return best.hostname if best else ""


class _RuleEntry(BaseModel):
    model_config = {"extra": "ignore", "coerce_numbers_to_str": True}

    org: str | None = None
    network: str | None = None
    ip: str | None = None
    hostname: str | None = None


def parse_host_overrides(data: object) -> HostOverrideTable:
    """Build a table from parsed YAML; entries without ip or hostname are skipped."""
    if isinstance(data, dict):
        data = data.get("hosts") or []
    if not isinstance(data, list):
        raise ValueError("host overrides must be a list of rules")

    rules: list[HostOverrideRule] = []
    for raw in data:
        try:
            entry = _RuleEntry.model_validate(raw)
        except ValidationError:
            logger.debug("Skipping malformed host override: %r", raw)
            continue
        ip = (entry.ip or "").strip()
        hostname = (entry.hostname or "").strip()
        if not ip or not hostname:
            continue
        rules.append(
            HostOverrideRule(
                org=(entry.org or "").strip() or WILDCARD,
                network=(entry.network or "").strip() or WILDCARD,
                ip=ip,
                hostname=hostname,
            )
        )
    return HostOverrideTable(rules)


def load_host_overrides(path: Path | None, required: bool = False) -> HostOverrideTable:
    """Load override rules; a missing file is an empty table unless ``required``."""
    if path is None:
        return HostOverrideTable()
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Hosts file not found: {path}")
        logger.debug("No hosts file at %s", path)
        return HostOverrideTable()

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid hosts file: {path}\n{e}") from e

    try:
        table = parse_host_overrides(data or [])
    except ValueError as e:
        raise ValueError(f"Invalid hosts file: {path}\n{e}") from e
    logger.debug("Loaded %d host overrides from %s", len(table), path)
    return table
