from __future__ import annotations

import os
from pathlib import Path

import platformdirs

APP_NAME = "macfinder"
CONFIG_FILENAME = "config.toml"
HOSTS_FILENAME = "hosts.yaml"


def config_dir() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME))


def default_config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def default_hosts_path() -> Path:
    return config_dir() / HOSTS_FILENAME


def expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))
