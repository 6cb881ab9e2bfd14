from __future__ import annotations

import os
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from macfinder.config import HostsConfig, Settings, render_settings_toml, write_settings
from macfinder.config.paths import HOSTS_FILENAME
from macfinder.config.settings import ENV_OVERRIDES

from .common import hosts_path, load_settings_or_exit, resolve_config_path_or_exit

app = typer.Typer(no_args_is_help=True, help="Inspect or create the macfinder config")

HOSTS_TEMPLATE = """\
# Hostname overrides, most specific scope wins:
#   org + network > org + any > any + network > any + any
# Omit org or network (or use "*") to match any.
hosts: []
#  - org: Acme
#    network: HQ
#    ip: 10.0.0.5
#    hostname: front-desk-printer
"""


def _mask(key: str) -> str:
    if not key:
        return ""
    return f"...{key[-4:]}" if len(key) > 8 else "****"


def _masked(settings: Settings) -> Settings:
    api = settings.api.model_copy(update={"key": _mask(settings.api.key)})
    return settings.model_copy(update={"api": api})


@app.command("show")
def show_config() -> None:
    """Show the effective settings, where they came from and the hosts file in use."""
    settings = load_settings_or_exit()
    path, exists = resolve_config_path_or_exit(allow_missing=True)
    hosts, explicit = hosts_path(settings)

    typer.echo(f"Config source: {path if exists else 'defaults'}")
    state = "found" if hosts.exists() else "missing"
    origin = "configured" if explicit else "default"
    typer.echo(f"Hosts file: {hosts} ({origin}, {state})")

    active = [(name, target) for name, target in ENV_OVERRIDES.items() if os.environ.get(name)]
    if active:
        table = Table(title="Environment overrides")
        table.add_column("Variable", style="cyan")
        table.add_column("Setting", style="green")
        for name, (section, key) in active:
            table.add_row(name, f"{section}.{key}")
        Console().print(table)

    typer.echo(render_settings_toml(_masked(settings)))


@app.command("init")
def init_config(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite existing files"),
    ] = False,
) -> None:
    """Write a default config and, beside it, an empty hosts override file."""
    path, exists = resolve_config_path_or_exit(allow_missing=True)
    hosts = path.with_name(HOSTS_FILENAME)

    if exists and not force:
        typer.echo(f"Config already exists at {path}")
    else:
        write_settings(Settings(hosts=HostsConfig(path=str(hosts))), path)
        typer.echo(f"Wrote default config to {path}")

    if hosts.exists() and not force:
        return
    hosts.parent.mkdir(parents=True, exist_ok=True)
    hosts.write_text(HOSTS_TEMPLATE)
    typer.echo(f"Wrote hosts override template to {hosts}")
