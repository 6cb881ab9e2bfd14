"""Device and scope selection."""

from __future__ import annotations

import logging

from macfinder.errors import ScopeError
from macfinder.models import Device, Network, Organization

logger = logging.getLogger(__name__)

SWITCH_PRODUCT_TYPE = "switch"
# MS = native switches, C9 = Catalyst 9000 managed through the dashboard
SWITCH_MODEL_PREFIXES = ("MS", "C9")
ALL_NETWORKS = "ALL"


def is_switch(device: Device) -> bool:
    if device.product_type == SWITCH_PRODUCT_TYPE:
        return True
    return (device.model or "").upper().startswith(SWITCH_MODEL_PREFIXES)


def filter_switches(devices: list[Device]) -> list[Device]:
    return [device for device in devices if is_switch(device)]


def matches_switch_filter(name: str, pattern: str | None) -> bool:
    if not pattern:
        return True
    return pattern.lower() in name.lower()


def filter_by_name(devices: list[Device], pattern: str | None) -> list[Device]:
    if not pattern:
        return devices
    return [device for device in devices if matches_switch_filter(device.label, pattern)]


def matches_port_filter(port: str, pattern: str | None) -> bool:
    if not pattern:
        return True
    return pattern in port


def select_organization(name: str | None, orgs: list[Organization]) -> Organization:
    """Pick an organization by case-insensitive name.

    With exactly one accessible organization it is always used.
    """
    if len(orgs) == 1:
        if name and orgs[0].name.casefold() != name.casefold():
            logger.debug(
                "Organization %r not matched; using the only one available: %s",
                name,
                orgs[0].name,
            )
        return orgs[0]
    if not name:
        if not orgs:
            raise ScopeError("no organizations accessible with this API key")
        raise ScopeError("multiple organizations found, please specify --org")
    for org in orgs:
        if org.name.casefold() == name.casefold():
            return org
    raise ScopeError(f"organization {name!r} not found")


def select_networks(name: str | None, networks: list[Network]) -> list[Network]:
    """``ALL`` (or nothing) selects every network; otherwise exactly one by name."""
    if not name or name.upper() == ALL_NETWORKS:
        return list(networks)
    for network in networks:
        if network.name.casefold() == name.casefold() or network.id == name:
            return [network]
    raise ScopeError(f"network {name!r} not found")
