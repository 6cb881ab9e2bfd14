from __future__ import annotations

import json
import logging
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from .paths import default_config_path, expand_path

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MACFINDER_CONFIG"
DEFAULT_BASE_URL = "https://api.meraki.com/api/v1"
DEFAULT_MAX_RETRIES = 6
DEFAULT_POLL_ATTEMPTS = 15

# environment variable -> (section, key)
ENV_OVERRIDES = {
    "MERAKI_API_KEY": ("api", "key"),
    "MERAKI_BASE_URL": ("api", "base_url"),
    "MERAKI_RETRIES": ("api", "max_retries"),
    "MERAKI_MAC_POLL": ("lookup", "poll_attempts"),
}


class ApiConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    key: str = ""
    base_url: str = DEFAULT_BASE_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout: float = Field(default=60.0, gt=0)
    per_page: int = Field(default=1000, ge=1, le=1000)
    client_timespan: int = Field(default=30 * 24 * 3600, gt=0)

    @field_validator("max_retries")
    @classmethod
    def _default_max_retries(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_MAX_RETRIES


class LookupConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_interval: float = Field(default=2.0, ge=0)
    dns_timeout: float = Field(default=5.0, gt=0)
    reverse_dns: bool = True
    network_concurrency: int = Field(default=1, ge=1, le=32)

    @field_validator("poll_attempts")
    @classmethod
    def _default_poll_attempts(cls, value: int) -> int:
        if value <= 0:
            logger.warning(
                "poll_attempts=%d would skip live lookups; using %d",
                value,
                DEFAULT_POLL_ATTEMPTS,
            )
            return DEFAULT_POLL_ATTEMPTS
        return value


class HostsConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str | None = None


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    api: ApiConfig = Field(default_factory=ApiConfig)
    lookup: LookupConfig = Field(default_factory=LookupConfig)
    hosts: HostsConfig = Field(default_factory=HostsConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def _apply_env_overrides(data: dict) -> dict:
    merged = {section: dict(values) for section, values in data.items()}
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var, "").strip()
        if value:
            merged.setdefault(section, {})[key] = value
    return merged


def load_settings(path: Path | None = None) -> Settings:
    data: dict = {}
    if path is not None:
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(_apply_env_overrides(data or {}))
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path or 'environment'}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    return load_settings(path if exists else None)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_settings_toml(settings: Settings) -> str:
    lines = [
        "# macfinder configuration",
        "",
        "[api]",
        f"key = {_toml_string(settings.api.key)}",
        f"base_url = {_toml_string(settings.api.base_url)}",
        f"max_retries = {settings.api.max_retries}",
        f"timeout = {settings.api.timeout}",
        f"per_page = {settings.api.per_page}",
        f"client_timespan = {settings.api.client_timespan}",
        "",
        "[lookup]",
        f"poll_attempts = {settings.lookup.poll_attempts}",
        f"poll_interval = {settings.lookup.poll_interval}",
        f"dns_timeout = {settings.lookup.dns_timeout}",
        f"reverse_dns = {str(settings.lookup.reverse_dns).lower()}",
        f"network_concurrency = {settings.lookup.network_concurrency}",
        "",
    ]
    if settings.hosts.path:
        lines += ["[hosts]", f"path = {_toml_string(settings.hosts.path)}", ""]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
