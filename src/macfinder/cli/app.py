from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from macfinder.utils.logging import setup_logging

from . import config as config_cmd
from .commands.directory import register as register_directory
from .commands.find import register as register_find

app = typer.Typer(
    help="macfinder - find the switch port behind a MAC or IP address",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")

register_find(app)
register_directory(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also append log records to this file"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose", help="DEBUG logs to the console only, ignoring --log-level and --log-file"
        ),
    ] = False,
) -> None:
    """macfinder CLI."""
    setup_logging(log_level, log_file=log_file, verbose=verbose)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"macfinder version {get_version('macfinder')}")
        raise typer.Exit()
