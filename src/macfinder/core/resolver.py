"""Find the switch port(s) an address is attached to.

Each network runs through one pipeline:

1. fetch the devices and pick the switches (name filter applied);
2. fetch the network's client history and match it against the pattern;
3. for every switch, fold an ordered list of strategies until one is
   conclusive: the live forwarding table first, then the device's own
   client history;
4. fill in missing IPs from the client history, then from a per-device
   ARP-table job that runs at most once per device;
5. deduplicate on (serial, port, address).

In sweep mode a network or device that cannot be fetched contributes nothing
and is reported as a :class:`PartialDataWarning`; when a single network was
targeted the same failure propagates.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import NamedTuple

from macfinder.config import LookupConfig
from macfinder.core.client import DashboardClient, Sleep
from macfinder.core.dns import client_hostname, reverse_lookup
from macfinder.core.filters import (
    ALL_NETWORKS,
    filter_by_name,
    filter_switches,
    matches_port_filter,
    matches_switch_filter,
    select_networks,
    select_organization,
)
from macfinder.core.hosts import HostOverrideTable
from macfinder.core.jobs import UNKNOWN_PORT, JobPoller
from macfinder.core.macaddr import MacPattern, compile_pattern, format_mac, try_normalize
from macfinder.errors import InputError, PartialDataWarning, UpstreamError
from macfinder.models import (
    ClientRecord,
    Device,
    Network,
    Organization,
    ResolutionOutcome,
    ResultRow,
)

logger = logging.getLogger(__name__)

SOURCE_NETWORK_CLIENTS = "network-clients"
SOURCE_FORWARDING_TABLE = "forwarding-table"
SOURCE_DEVICE_CLIENTS = "device-clients"


@dataclass(frozen=True)
class LookupQuery:
    """What to look for and how to narrow it."""

    mac: str | None = None
    ip: str | None = None
    full_table: bool = False
    switch_filter: str | None = None
    port_filter: str | None = None

    def validate(self) -> None:
        if self.mac and self.ip:
            raise InputError("--ip and --mac are mutually exclusive")
        if not self.mac and not self.ip and not self.full_table:
            raise InputError("--ip or --mac is required")
        if self.ip:
            try:
                ipaddress.ip_address(self.ip)
            except ValueError as exc:
                raise InputError(f"invalid IP address: {self.ip}") from exc

    def pattern(self) -> MacPattern:
        if self.mac:
            return compile_pattern(self.mac)
        return MacPattern.match_all()


@dataclass(frozen=True)
class ResolutionScope:
    org: Organization
    networks: list[Network]
    sweep: bool


class StrategyResult(NamedTuple):
    rows: list[ResultRow]
    conclusive: bool


class ResultCollector:
    """Accumulates rows, keeping the first row seen for each attachment."""

    def __init__(self) -> None:
        self._index: set[tuple[str, str, str]] = set()
        self.rows: list[ResultRow] = []

    def __len__(self) -> int:
        return len(self.rows)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def add(self, row: ResultRow) -> bool:
        if row.key in self._index:
            return False
        self._index.add(row.key)
        self.rows.append(row)
        return True

    def extend(self, rows: list[ResultRow]) -> int:
        return sum(1 for row in rows if self.add(row))


def sort_rows(rows: list[ResultRow]) -> list[ResultRow]:
    return sorted(rows, key=lambda row: (row.network_name, row.switch_name, row.port))


def _first_non_empty(*values: str | None) -> str:
    for value in values:
        if value and value.strip():
            return value
    return ""


def record_port(record: ClientRecord) -> str:
    return _first_non_empty(
        record.switchport_name, record.switchport, record.port, UNKNOWN_PORT
    )


class NetworkPipeline:
    """Resolution state for one network; never shared between networks."""

    def __init__(
        self,
        resolver: Resolver,
        scope: ResolutionScope,
        network: Network,
        pattern: MacPattern,
        query: LookupQuery,
        hostname: str = "",
    ) -> None:
        self._resolver = resolver
        self._client = resolver.client
        self.org = scope.org
        self.sweep = scope.sweep
        self.network = network
        self.pattern = pattern
        self.query = query
        self.hostname = hostname
        self.collector = ResultCollector()
        self.warnings: list[PartialDataWarning] = []
        self._mac_to_ip: dict[str, str] = {}
        self._arp_cache: dict[str, dict[str, str]] = {}
        self._port_cache: dict[tuple[str, str], tuple[int | None, str]] = {}
        self._dns_cache: dict[str, str] = {}
        self.strategies: list[Callable[[Device], Awaitable[StrategyResult]]] = [
            self.forwarding_table,
            self.device_history,
        ]

    async def run(self) -> list[ResultRow]:
        logger.debug("Network: %s", self.network.name)
        devices = await self._client.get_devices(self.network.id)
        by_serial = {device.serial: device for device in devices}
        switches = filter_by_name(filter_switches(devices), self.query.switch_filter)

        records = await self._client.get_network_clients(self.network.id)
        logger.debug("Network clients API returned %d clients", len(records))
        for record in records:
            mac = try_normalize(record.mac)
            if mac and record.ip:
                self._mac_to_ip[mac] = record.ip

        await self.network_history(records, by_serial)

        for device in switches:
            logger.debug("Querying switch: %s (%s)", device.label, device.serial)
            for strategy in self.strategies:
                result = await strategy(device)
                self.collector.extend(result.rows)
                if result.conclusive:
                    break

        return self.collector.rows

    # -- row production ----------------------------------------------------

    async def network_history(
        self, records: list[ClientRecord], by_serial: dict[str, Device]
    ) -> None:
        for record in records:
            mac = try_normalize(record.mac)
            if mac is None or not self.pattern(mac):
                continue
            serial = (record.recent_device_serial or "").strip()
            if not serial:
                continue
            device = by_serial.get(serial)
            switch_name = _first_non_empty(
                device.name if device else None, record.recent_device_name, serial
            )
            if not matches_switch_filter(switch_name, self.query.switch_filter):
                logger.debug(
                    "Client %s filtered out by switch filter (switch=%s)",
                    format_mac(mac),
                    switch_name,
                )
                continue
            port = record_port(record)
            if not matches_port_filter(port, self.query.port_filter):
                continue
            if (serial, port, format_mac(mac)) in self.collector:
                continue
            row = await self.build_row(
                serial=serial,
                switch_name=switch_name,
                port=port,
                mac=mac,
                ip=record.ip or "",
                last_seen=record.last_seen or "",
                source=SOURCE_NETWORK_CLIENTS,
                record=record,
            )
            self.collector.add(row)

    async def forwarding_table(self, device: Device) -> StrategyResult:
        job, entries = await self._resolver.poller.forwarding_table(device.serial)
        if not job.complete or not entries:
            return StrategyResult([], conclusive=False)

        logger.debug("Live forwarding table returned %d entries for %s", len(entries), device.label)
        rows: list[ResultRow] = []
        for entry in entries:
            if not self.pattern(entry.mac):
                continue
            if not matches_port_filter(entry.port, self.query.port_filter):
                continue
            rows.append(
                await self.build_row(
                    serial=device.serial,
                    switch_name=device.label,
                    port=entry.port,
                    mac=entry.mac,
                    vlan=entry.vlan,
                    mode=entry.mode or "",
                    source=SOURCE_FORWARDING_TABLE,
                )
            )
        # Heuristic: a table without the address is not conclusive, the
        # device may simply be quiet, so device history still runs. This can
        # surface stale rows for addresses that have since moved.
        return StrategyResult(rows, conclusive=bool(rows))

    async def device_history(self, device: Device) -> StrategyResult:
        try:
            records = await self._client.get_device_clients(device.serial)
        except UpstreamError as exc:
            if not self.sweep:
                raise
            warning = PartialDataWarning(
                f"{self.network.name}/{device.label}", f"device clients unavailable: {exc}"
            )
            logger.warning("%s", warning)
            self.warnings.append(warning)
            return StrategyResult([], conclusive=False)

        logger.debug("Device clients API returned %d clients for %s", len(records), device.label)
        rows: list[ResultRow] = []
        for record in records:
            mac = try_normalize(record.mac)
            if mac is None or not self.pattern(mac):
                continue
            port = record_port(record)
            if not matches_port_filter(port, self.query.port_filter):
                continue
            rows.append(
                await self.build_row(
                    serial=device.serial,
                    switch_name=device.label,
                    port=port,
                    mac=mac,
                    last_seen=record.last_seen or "",
                    source=SOURCE_DEVICE_CLIENTS,
                    record=record,
                )
            )
        return StrategyResult(rows, conclusive=True)

    # -- enrichment --------------------------------------------------------

    async def build_row(
        self,
        *,
        serial: str,
        switch_name: str,
        port: str,
        mac: str,
        ip: str = "",
        last_seen: str = "",
        vlan: int | None = None,
        mode: str = "",
        source: str,
        record: ClientRecord | None = None,
    ) -> ResultRow:
        vlan, mode = await self.port_info(serial, port, vlan, mode)
        ip = await self.ip_for(mac, ip, serial)
        hostname = await self.hostname_for(ip, record)
        return ResultRow(
            org_name=self.org.name,
            network_name=self.network.name,
            switch_name=switch_name,
            switch_serial=serial,
            port=port,
            mac=format_mac(mac),
            ip=ip,
            hostname=hostname,
            last_seen=last_seen,
            vlan=vlan,
            port_mode=mode,
            source=source,
        )

    async def port_info(
        self, serial: str, port: str, vlan: int | None, mode: str
    ) -> tuple[int | None, str]:
        """Authoritative VLAN and mode from the port config, else the given values."""
        if not serial or not port or port == UNKNOWN_PORT:
            return vlan, mode
        key = (serial, port)
        if key not in self._port_cache:
            try:
                switch_port = await self._client.get_switch_port(serial, port)
            except UpstreamError as exc:
                logger.debug("Port lookup failed for %s/%s: %s", serial, port, exc)
                self._port_cache[key] = (None, "")
            else:
                self._port_cache[key] = (
                    switch_port.vlan if switch_port.vlan and switch_port.vlan > 0 else None,
                    switch_port.type or "",
                )
        cached_vlan, cached_mode = self._port_cache[key]
        return cached_vlan or vlan, cached_mode or mode

    async def ip_for(self, mac: str, known: str, serial: str) -> str:
        if known:
            return known
        if mac in self._mac_to_ip:
            return self._mac_to_ip[mac]
        if serial not in self._arp_cache:
            self._arp_cache[serial] = await self._resolver.poller.arp_map(serial)
        return self._arp_cache[serial].get(mac, "")

    async def hostname_for(self, ip: str, record: ClientRecord | None) -> str:
        if self.hostname:
            return self.hostname
        if not ip:
            return ""
        override = self._resolver.overrides.lookup(ip, self.org.name, self.network.name)
        if override:
            return override
        if self._resolver.config.reverse_dns:
            if ip not in self._dns_cache:
                self._dns_cache[ip] = await reverse_lookup(ip, self._resolver.config.dns_timeout)
            if self._dns_cache[ip]:
                return self._dns_cache[ip]
        return client_hostname(record) if record else ""


@dataclass
class IPMatch:
    mac: str = ""
    network: Network | None = None
    hostname: str = ""
    warnings: list[PartialDataWarning] = field(default_factory=list)
    # networks whose client history could not be fetched
    failed: set[str] = field(default_factory=set)


class Resolver:
    """Top-level resolution across the networks of one scope."""

    def __init__(
        self,
        client: DashboardClient,
        config: LookupConfig,
        overrides: HostOverrideTable | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self.overrides = overrides or HostOverrideTable()
        self.poller = JobPoller(client, config.poll_attempts, config.poll_interval, sleep)

    async def resolve(self, query: LookupQuery, scope: ResolutionScope) -> ResolutionOutcome:
        query.validate()
        pattern = query.pattern()
        if pattern.is_wildcard:
            logger.debug("MAC pattern: %s", pattern.display)
        else:
            logger.debug("MAC: %s", pattern.display)

        hostname = ""
        warnings: list[PartialDataWarning] = []
        networks = list(scope.networks)
        if query.ip:
            match = await self.resolve_ip(query.ip, scope)
            warnings.extend(match.warnings)
            if not match.mac:
                logger.info("IP %s not found in any network", query.ip)
                return ResolutionOutcome(rows=[], warnings=warnings)
            logger.debug(
                "Resolved IP %s to MAC %s (hostname: %s)",
                query.ip,
                format_mac(match.mac),
                match.hostname,
            )
            pattern = compile_pattern(match.mac)
            hostname = match.hostname
            networks = [network for network in networks if network.id not in match.failed]

        semaphore = asyncio.Semaphore(self.config.network_concurrency)

        async def _run(network: Network) -> list[ResultRow]:
            pipeline = NetworkPipeline(self, scope, network, pattern, query, hostname)
            async with semaphore:
                try:
                    rows = await pipeline.run()
                except UpstreamError as exc:
                    if not scope.sweep:
                        raise
                    warning = PartialDataWarning(network.name, str(exc))
                    logger.warning("Skipping network %s", warning)
                    warnings.append(warning)
                    return []
            warnings.extend(pipeline.warnings)
            return rows

        per_network = await asyncio.gather(*(_run(network) for network in networks))

        collector = ResultCollector()
        for rows in per_network:
            collector.extend(rows)
        return ResolutionOutcome(rows=sort_rows(collector.rows), warnings=warnings)

    async def resolve_ip(self, ip: str, scope: ResolutionScope) -> IPMatch:
        """Find the first client record carrying ``ip``, resolving its name meanwhile."""
        dns_task: asyncio.Task[str] | None = None
        if self.config.reverse_dns:
            dns_task = asyncio.create_task(reverse_lookup(ip, self.config.dns_timeout))
        match = IPMatch()
        try:
            for network in scope.networks:
                try:
                    records = await self.client.get_network_clients(network.id)
                except UpstreamError as exc:
                    if not scope.sweep:
                        raise
                    warning = PartialDataWarning(network.name, str(exc))
                    logger.warning("Skipping network %s", warning)
                    match.warnings.append(warning)
                    match.failed.add(network.id)
                    continue
                for record in records:
                    if record.ip != ip:
                        continue
                    mac = try_normalize(record.mac)
                    if mac is None:
                        continue
                    match.mac, match.network = mac, network
                    match.hostname = self.overrides.lookup(ip, scope.org.name, network.name)
                    if not match.hostname and dns_task is not None:
                        match.hostname = await dns_task
                    if not match.hostname:
                        match.hostname = client_hostname(record)
                    return match
        finally:
            if dns_task is not None and not dns_task.done():
                dns_task.cancel()
        return match


async def build_scope(
    client: DashboardClient, org_name: str | None, network_name: str | None
) -> ResolutionScope:
    """Resolve operator-supplied names into a scope; ``ALL`` networks means sweep mode."""
    org = select_organization(org_name, await client.get_organizations())
    logger.debug("Organization: %s", org.name)
    networks = select_networks(network_name, await client.get_networks(org.id))
    sweep = not network_name or network_name.upper() == ALL_NETWORKS
    return ResolutionScope(org=org, networks=networks, sweep=sweep)
