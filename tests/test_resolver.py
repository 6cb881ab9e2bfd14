from __future__ import annotations

import asyncio

import httpx
import pytest

from macfinder.core.hosts import HostOverrideRule, HostOverrideTable
from macfinder.core.resolver import (
    SOURCE_DEVICE_CLIENTS,
    SOURCE_FORWARDING_TABLE,
    SOURCE_NETWORK_CLIENTS,
    LookupQuery,
    ResolutionScope,
    Resolver,
    ResultCollector,
    build_scope,
)
from macfinder.config import LookupConfig
from macfinder.core import resolver as resolver_module
from macfinder.errors import InputError, RetryExhaustedError, UpstreamError
from macfinder.models import Network, Organization, ResultRow

MAC = "00:11:22:33:44:55"
OTHER_MAC = "00:11:22:33:44:66"

ORG = Organization(id="O1", name="Acme")
HQ = Network(id="N1", name="HQ")
BRANCH = Network(id="N2", name="Branch")

SWITCH = {"serial": "Q2AA", "name": "core-sw", "model": "MS225-48", "productType": "switch"}
ACCESS_POINT = {"serial": "Q2AP", "name": "lobby-ap", "model": "MR36", "productType": "wireless"}

MAC_TABLE = "/devices/Q2AA/liveTools/macTable"
ARP_TABLE = "/devices/Q2AA/liveTools/arpTable"
DEVICE_CLIENTS = "/devices/Q2AA/clients"


def _network(dashboard, network_id="N1", devices=None, clients=None):
    dashboard.add("GET", f"/networks/{network_id}/devices", devices or [SWITCH, ACCESS_POINT])
    dashboard.add("GET", f"/networks/{network_id}/clients", clients or [])
    dashboard.add("GET", DEVICE_CLIENTS, [])


def _mac_table(dashboard, *entries, status="complete"):
    dashboard.add("POST", MAC_TABLE, {"macTableId": "m-1"})
    dashboard.add("GET", f"{MAC_TABLE}/m-1", {"status": status, "entries": list(entries)})


def _resolve(
    dashboard, lookup_config, query, networks=(HQ,), sweep=False, overrides=None, **api
):
    async def _go():
        async with dashboard.client(**api) as client:
            resolver = Resolver(client, lookup_config, overrides, sleep=dashboard.sleep)
            scope = ResolutionScope(org=ORG, networks=list(networks), sweep=sweep)
            return await resolver.resolve(query, scope)

    return asyncio.run(_go())


def _row(**overrides) -> ResultRow:
    values = dict(
        org_name="Acme",
        network_name="HQ",
        switch_name="core-sw",
        switch_serial="Q2AA",
        port="5",
        mac=MAC,
    )
    values.update(overrides)
    return ResultRow(**values)


def test_collector_keeps_first_row_per_attachment():
    collector = ResultCollector()

    assert collector.add(_row(ip="10.0.0.5", source="first"))
    assert not collector.add(_row(ip="10.0.0.9", last_seen="later", source="second"))
    assert collector.add(_row(port="6"))

    assert len(collector) == 2
    assert collector.rows[0].source == "first"
    assert ("Q2AA", "5", MAC) in collector


def test_forwarding_table_match_skips_device_history(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, {"mac": MAC, "portId": "5", "vlan": 20, "type": "access"})

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC))

    assert [(row.port, row.mac, row.source) for row in outcome.rows] == [
        ("5", MAC, SOURCE_FORWARDING_TABLE)
    ]
    assert outcome.rows[0].vlan == 20
    assert dashboard.count("GET", DEVICE_CLIENTS) == 0
    # only the switch is asked for its table
    assert dashboard.count("POST", "/devices/Q2AP/liveTools/macTable") == 0


def test_table_without_the_address_falls_through_to_device_history(dashboard, lookup_config):
    _network(
        dashboard,
        clients=[{"mac": MAC, "ip": "10.0.0.5"}],
    )
    _mac_table(dashboard, {"mac": OTHER_MAC, "portId": "9"})
    dashboard.add(
        "GET",
        DEVICE_CLIENTS,
        [{"mac": "00-11-22-33-44-55", "switchport": "7", "lastSeen": "1700000000"}],
    )

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC))

    assert len(outcome.rows) == 1
    row = outcome.rows[0]
    assert (row.port, row.source, row.last_seen) == ("7", SOURCE_DEVICE_CLIENTS, "1700000000")
    # IP comes from the network client history
    assert row.ip == "10.0.0.5"
    assert dashboard.count("POST", ARP_TABLE) == 0


def test_pending_table_falls_back_to_device_history(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, status="pending")
    dashboard.add("GET", DEVICE_CLIENTS, [{"mac": MAC, "switchportName": "Port 3"}])

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC))

    assert [(row.port, row.source) for row in outcome.rows] == [("Port 3", SOURCE_DEVICE_CLIENTS)]
    assert dashboard.count("GET", f"{MAC_TABLE}/m-1") == lookup_config.poll_attempts


def test_arp_table_runs_once_per_device(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, {"mac": MAC, "portId": "5"}, {"mac": OTHER_MAC, "portId": "6"})
    dashboard.add("POST", ARP_TABLE, {"arpTableId": "a-1"})
    dashboard.add(
        "GET",
        f"{ARP_TABLE}/a-1",
        {"status": "complete", "entries": [{"ip": "10.0.0.5", "mac": MAC}]},
    )

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac="00:11:22:33:44:*"))

    assert [(row.port, row.ip) for row in outcome.rows] == [("5", "10.0.0.5"), ("6", "")]
    assert dashboard.count("POST", ARP_TABLE) == 1


def test_network_history_row_wins_over_forwarding_table(dashboard, lookup_config):
    _network(
        dashboard,
        clients=[
            {
                "mac": MAC,
                "ip": "10.0.0.5",
                "switchport": "5",
                "recentDeviceSerial": "Q2AA",
                "notes": "front desk",
            }
        ],
    )
    _mac_table(dashboard, {"mac": MAC, "portId": "5"})

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC))

    assert len(outcome.rows) == 1
    row = outcome.rows[0]
    assert row.source == SOURCE_NETWORK_CLIENTS
    assert row.switch_name == "core-sw"
    assert row.hostname == "front desk"


def test_port_config_enriches_rows(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, {"mac": MAC, "portId": "5", "vlan": 20, "type": "access"})
    dashboard.add("GET", "/devices/Q2AA/switch/ports/5", {"portId": "5", "type": "trunk", "vlan": 30})

    row = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC)).rows[0]

    assert (row.vlan, row.port_mode) == (30, "trunk")


def test_failed_enrichment_keeps_the_row(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, {"mac": MAC, "portId": "5", "vlan": 20, "type": "access"})
    dashboard.add("GET", "/devices/Q2AA/switch/ports/5", httpx.Response(500, text="boom"))

    row = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC)).rows[0]

    assert (row.port, row.vlan, row.port_mode, row.ip) == ("5", 20, "access", "")


def test_switch_and_port_filters(dashboard, lookup_config):
    _network(
        dashboard,
        clients=[
            {"mac": MAC, "switchport": "5", "recentDeviceSerial": "Q2AA"},
            {"mac": OTHER_MAC, "switchport": "12", "recentDeviceSerial": "Q2AA"},
        ],
    )
    _mac_table(dashboard)

    by_port = _resolve(
        dashboard, lookup_config, LookupQuery(mac="00:11:22:33:44:*", port_filter="1")
    )
    assert [row.port for row in by_port.rows] == ["12"]

    by_switch = _resolve(
        dashboard, lookup_config, LookupQuery(mac="00:11:22:33:44:*", switch_filter="edge")
    )
    assert by_switch.rows == []
    assert dashboard.count("POST", MAC_TABLE) == 1


def test_sweep_skips_failing_network(dashboard, lookup_config):
    dashboard.add("GET", "/networks/N1/devices", httpx.Response(500, text="boom"))
    _network(dashboard, network_id="N2")
    _mac_table(dashboard, {"mac": MAC, "portId": "5"})

    outcome = _resolve(
        dashboard, lookup_config, LookupQuery(mac=MAC), networks=(HQ, BRANCH), sweep=True
    )

    assert [row.network_name for row in outcome.rows] == ["Branch"]
    assert [warning.scope for warning in outcome.warnings] == ["HQ"]


def test_single_network_failure_propagates(dashboard, lookup_config):
    dashboard.add("GET", "/networks/N1/devices", httpx.Response(500, text="boom"))

    with pytest.raises(UpstreamError) as excinfo:
        _resolve(dashboard, lookup_config, LookupQuery(mac=MAC))

    assert excinfo.value.status == 500


def test_unavailable_device_history_is_a_warning_in_sweep(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, status="failed")
    dashboard.add("GET", DEVICE_CLIENTS, httpx.Response(403, text="forbidden"))

    outcome = _resolve(dashboard, lookup_config, LookupQuery(mac=MAC), sweep=True)

    assert outcome.rows == []
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].scope == "HQ/core-sw"


def test_ip_lookup_seeds_the_pattern_and_hostname(dashboard, lookup_config):
    _network(
        dashboard,
        clients=[
            {"mac": OTHER_MAC, "ip": "10.0.0.9", "switchport": "9", "recentDeviceSerial": "Q2AA"},
            {"mac": MAC, "ip": "10.0.0.5", "switchport": "5", "recentDeviceSerial": "Q2AA"},
        ],
    )
    _mac_table(dashboard, {"mac": MAC, "portId": "5"}, {"mac": OTHER_MAC, "portId": "9"})
    overrides = HostOverrideTable([HostOverrideRule("Acme", "*", "10.0.0.5", "printer")])

    outcome = _resolve(
        dashboard, lookup_config, LookupQuery(ip="10.0.0.5"), overrides=overrides
    )

    assert [(row.mac, row.ip, row.hostname) for row in outcome.rows] == [
        (MAC, "10.0.0.5", "printer")
    ]


def test_unknown_ip_is_an_empty_success(dashboard, lookup_config):
    _network(dashboard, clients=[{"mac": MAC, "ip": "10.0.0.5"}])

    outcome = _resolve(dashboard, lookup_config, LookupQuery(ip="10.0.0.99"))

    assert not outcome.found
    assert dashboard.count("GET", "/networks/N1/devices") == 0


@pytest.mark.parametrize(
    "query",
    [
        LookupQuery(),
        LookupQuery(mac=MAC, ip="10.0.0.5"),
        LookupQuery(ip="10.0.0.300"),
        LookupQuery(mac="00:11:22:33:44"),
    ],
)
def test_bad_queries_are_rejected_before_any_call(dashboard, lookup_config, query):
    with pytest.raises(InputError):
        _resolve(dashboard, lookup_config, query)
    assert dashboard.calls == []


def test_full_table_lists_every_address(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, {"mac": OTHER_MAC, "portId": "9"}, {"mac": MAC, "portId": "5"})

    outcome = _resolve(dashboard, lookup_config, LookupQuery(full_table=True))

    assert [row.port for row in outcome.rows] == ["5", "9"]


def test_build_scope(dashboard):
    dashboard.add("GET", "/organizations", [{"id": "O1", "name": "Acme"}])
    dashboard.add(
        "GET",
        "/organizations/O1/networks",
        [{"id": "N1", "name": "HQ"}, {"id": "N2", "name": "Branch"}],
    )

    async def _go(network):
        async with dashboard.client() as client:
            return await build_scope(client, "acme", network)

    sweep = asyncio.run(_go(None))
    assert sweep.sweep
    assert [network.id for network in sweep.networks] == ["N1", "N2"]

    single = asyncio.run(_go("branch"))
    assert not single.sweep
    assert [network.id for network in single.networks] == ["N2"]


def test_unavailable_device_history_fails_a_targeted_lookup(dashboard, lookup_config):
    _network(dashboard)
    _mac_table(dashboard, status="failed")
    dashboard.add("GET", DEVICE_CLIENTS, httpx.Response(429, text="slow down"))

    with pytest.raises(RetryExhaustedError) as excinfo:
        _resolve(dashboard, lookup_config, LookupQuery(mac=MAC), max_retries=2)

    assert excinfo.value.status == 429
    assert dashboard.count("GET", DEVICE_CLIENTS) == 2


def test_ip_sweep_reports_a_failing_network_once(dashboard, lookup_config):
    dashboard.add("GET", "/networks/N1/clients", httpx.Response(500, text="boom"))
    _network(
        dashboard,
        network_id="N2",
        clients=[{"mac": MAC, "ip": "10.0.0.5", "switchport": "5", "recentDeviceSerial": "Q2AA"}],
    )
    _mac_table(dashboard)

    outcome = _resolve(
        dashboard, lookup_config, LookupQuery(ip="10.0.0.5"), networks=(HQ, BRANCH), sweep=True
    )

    assert [row.network_name for row in outcome.rows] == ["Branch"]
    assert [warning.scope for warning in outcome.warnings] == ["HQ"]
    assert dashboard.count("GET", "/networks/N1/devices") == 0


def test_concurrent_networks_merge_and_deduplicate(dashboard):
    config = LookupConfig(
        poll_attempts=3, poll_interval=0, reverse_dns=False, network_concurrency=2
    )
    edge = {"serial": "Q2BB", "name": "edge-sw", "model": "MS120-8"}
    _network(dashboard)
    # the same switch listed in both networks yields the same attachment twice
    _network(dashboard, network_id="N2", devices=[SWITCH, edge])
    _mac_table(dashboard, {"mac": MAC, "portId": "5"})
    dashboard.add("POST", "/devices/Q2BB/liveTools/macTable", {"macTableId": "m-2"})
    dashboard.add(
        "GET",
        "/devices/Q2BB/liveTools/macTable/m-2",
        {"status": "complete", "entries": [{"mac": MAC, "portId": "7"}]},
    )

    outcome = _resolve(
        dashboard, config, LookupQuery(mac=MAC), networks=(HQ, BRANCH), sweep=True
    )

    assert [(row.network_name, row.switch_serial, row.port) for row in outcome.rows] == [
        ("Branch", "Q2BB", "7"),
        ("HQ", "Q2AA", "5"),
    ]
    # each network keeps its own per-device ARP cache
    assert dashboard.count("POST", ARP_TABLE) == 2


def _ip_mode_network(dashboard):
    _network(
        dashboard,
        clients=[
            {"mac": MAC, "ip": "10.0.0.5", "switchport": "5", "recentDeviceSerial": "Q2AA"},
        ],
    )
    _mac_table(dashboard, {"mac": MAC, "portId": "24"})


def test_ip_lookup_attaches_reverse_dns_name_to_every_row(dashboard, monkeypatch):
    config = LookupConfig(poll_attempts=3, poll_interval=0, reverse_dns=True)
    lookups = []

    async def _reverse_lookup(ip, timeout):
        lookups.append(ip)
        return "printer.example.net"

    monkeypatch.setattr(resolver_module, "reverse_lookup", _reverse_lookup)
    _ip_mode_network(dashboard)

    outcome = _resolve(dashboard, config, LookupQuery(ip="10.0.0.5"))

    assert [(row.port, row.hostname) for row in outcome.rows] == [
        ("24", "printer.example.net"),
        ("5", "printer.example.net"),
    ]
    assert lookups == ["10.0.0.5"]


def test_ip_lookup_override_beats_reverse_dns(dashboard, monkeypatch):
    config = LookupConfig(poll_attempts=3, poll_interval=0, reverse_dns=True)

    async def _reverse_lookup(ip, timeout):
        return "printer.example.net"

    monkeypatch.setattr(resolver_module, "reverse_lookup", _reverse_lookup)
    _ip_mode_network(dashboard)
    overrides = HostOverrideTable([HostOverrideRule("Acme", "HQ", "10.0.0.5", "front-printer")])

    outcome = _resolve(dashboard, config, LookupQuery(ip="10.0.0.5"), overrides=overrides)

    assert {row.hostname for row in outcome.rows} == {"front-printer"}
    assert len(outcome.rows) == 2
