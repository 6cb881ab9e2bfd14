from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from macfinder.cli.common import (
    build_client,
    load_overrides_or_exit,
    load_settings_or_exit,
    run_or_exit,
)
from macfinder.config import Settings
from macfinder.core import HostOverrideTable, LookupQuery, Resolver, build_scope
from macfinder.models import ResolutionOutcome

logger = logging.getLogger(__name__)


async def _lookup(
    settings: Settings,
    query: LookupQuery,
    org: str | None,
    network: str | None,
    overrides: HostOverrideTable,
) -> ResolutionOutcome:
    # fail on bad input before touching the API
    query.validate()
    query.pattern()
    async with build_client(settings) as client:
        scope = await build_scope(client, org, network)
        resolver = Resolver(client, settings.lookup, overrides)
        return await resolver.resolve(query, scope)


def find(
    mac: str | None = typer.Option(
        None, "--mac", help="MAC address or pattern, e.g. 00:11:22:33:44:* or ...:[1-4][0-f]"
    ),
    ip: str | None = typer.Option(None, "--ip", help="IP address to resolve to a MAC"),
    org: str | None = typer.Option(None, "--org", envvar="MERAKI_ORG", help="Organization name"),
    network: str = typer.Option(
        "ALL", "--network", envvar="MERAKI_NETWORK", help="Network name, or ALL to sweep"
    ),
    switch: str | None = typer.Option(
        None, "--switch", help="Filter by switch name (case-insensitive substring)"
    ),
    port: str | None = typer.Option(None, "--port", help="Filter by port name/number"),
    full_table: bool = typer.Option(
        False, "--full-table", help="List every address in the forwarding tables"
    ),
    hosts: Path | None = typer.Option(None, "--hosts", help="Host override rules (YAML)"),
) -> None:
    """Find the switch and port a device is attached to."""
    console = Console()
    settings = load_settings_or_exit()
    overrides = load_overrides_or_exit(settings, hosts)

    query = LookupQuery(
        mac=mac,
        ip=ip,
        full_table=full_table,
        switch_filter=switch,
        port_filter=port,
    )
    outcome = run_or_exit(_lookup(settings, query, org, network, overrides))

    for warning in outcome.warnings:
        console.print(f"[yellow]![/yellow] {warning}")

    if not outcome.rows:
        console.print("No results")
        return

    table = Table()
    table.add_column("Network", style="cyan")
    table.add_column("Switch", style="green")
    table.add_column("Port", style="yellow")
    table.add_column("MAC")
    table.add_column("IP")
    table.add_column("Hostname")
    table.add_column("VLAN")
    table.add_column("Mode")
    table.add_column("Last Seen")

    for row in outcome.rows:
        table.add_row(
            row.network_name,
            f"{row.switch_name} ({row.switch_serial})",
            row.port,
            row.mac,
            row.ip,
            row.hostname,
            str(row.vlan) if row.vlan else "",
            row.port_mode,
            row.last_seen,
        )

    console.print(table)
    console.print(f"\n[green]Found {len(outcome.rows)} result(s)[/green]")


def register(app: typer.Typer) -> None:
    app.command()(find)
