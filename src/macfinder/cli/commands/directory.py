from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from macfinder.cli.common import build_client, load_settings_or_exit, run_or_exit
from macfinder.config import Settings
from macfinder.core.filters import select_organization
from macfinder.models import Network, Organization


async def _organizations(settings: Settings) -> list[Organization]:
    async with build_client(settings) as client:
        return await client.get_organizations()


async def _networks(
    settings: Settings, org_name: str | None
) -> list[tuple[Organization, list[Network]]]:
    async with build_client(settings) as client:
        orgs = await client.get_organizations()
        if org_name:
            orgs = [select_organization(org_name, orgs)]
        return [(org, await client.get_networks(org.id)) for org in orgs]


def check() -> None:
    """Validate the API key."""
    settings = load_settings_or_exit()
    orgs = run_or_exit(_organizations(settings))
    typer.echo(f"API OK: {len(orgs)} organizations found")


def list_orgs() -> None:
    """List organizations the API key can access."""
    settings = load_settings_or_exit()
    orgs = run_or_exit(_organizations(settings))

    table = Table()
    table.add_column("ID", style="cyan")
    table.add_column("Organization", style="green")
    for org in orgs:
        table.add_row(org.id, org.name)
    Console().print(table)


def list_networks(
    org: str | None = typer.Option(None, "--org", envvar="MERAKI_ORG", help="Organization name"),
) -> None:
    """List networks per organization."""
    settings = load_settings_or_exit()
    grouped = run_or_exit(_networks(settings, org))

    console = Console()
    for organization, networks in grouped:
        table = Table(title=organization.name)
        table.add_column("ID", style="cyan")
        table.add_column("Network", style="green")
        for network in networks:
            table.add_row(network.id, network.name)
        console.print(table)


def register(app: typer.Typer) -> None:
    app.command("check")(check)
    app.command("orgs")(list_orgs)
    app.command("networks")(list_networks)
