from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import coloredlogs  # type: ignore[import]

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LEVEL_ENV_VARS = ("LOG_LEVEL", "LOGLEVEL")
LOG_FILE_ENV_VAR = "LOG_FILE"
NOISY_LOGGERS = ("httpx", "httpcore")

_FILE_HANDLER_NAME = "macfinder-file"


def _resolve_level(level: str | None) -> str:
    if level:
        return level.upper()
    for name in LEVEL_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value.upper()
    return "INFO"


def _replace_file_handler(root: logging.Logger, log_file: Path | None, level: str) -> None:
    for handler in list(root.handlers):
        if handler.get_name() == _FILE_HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()
    if log_file is None:
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.set_name(_FILE_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(handler)


def setup_logging(
    level: LogLevel | str | None = None,
    log_file: Path | str | None = None,
    verbose: bool = False,
) -> None:
    """Console logging via coloredlogs, optionally mirrored to an append-only file.

    ``verbose`` forces DEBUG to the console and disables the file.
    """
    if verbose:
        resolved, target = "DEBUG", None
    else:
        resolved = _resolve_level(level)
        raw = log_file or os.environ.get(LOG_FILE_ENV_VAR, "").strip()
        target = Path(raw).expanduser() if raw else None

    coloredlogs.install(
        level=resolved,
        fmt=DEFAULT_FORMAT,
        datefmt=DEFAULT_DATE_FORMAT,
    )
    root = logging.getLogger()
    root.setLevel(resolved)
    _replace_file_handler(root, target, resolved)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
