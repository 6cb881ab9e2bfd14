from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer

from macfinder.config import (
    Settings,
    default_hosts_path,
    expand_path,
    get_settings,
    resolve_config_path,
)
from macfinder.core import DashboardClient, HostOverrideTable, load_host_overrides
from macfinder.errors import MacFinderError

T = TypeVar("T")


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_client(settings: Settings) -> DashboardClient:
    if not settings.api.key:
        typer.echo("MERAKI_API_KEY is required in the config file or environment", err=True)
        raise typer.Exit(1)
    return DashboardClient(settings.api)


def hosts_path(settings: Settings, path: Path | None = None) -> tuple[Path, bool]:
    """The override file to read and whether it was named explicitly."""
    if path is not None:
        return path, True
    if settings.hosts.path:
        return expand_path(settings.hosts.path), True
    return default_hosts_path(), False


def load_overrides_or_exit(settings: Settings, path: Path | None = None) -> HostOverrideTable:
    resolved, explicit = hosts_path(settings, path)
    try:
        return load_host_overrides(resolved, required=explicit)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def run_or_exit(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except MacFinderError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
