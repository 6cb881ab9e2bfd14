"""macfinder - locate the switch port behind a MAC or IP address."""

from __future__ import annotations

from importlib.metadata import version

from .config import LookupConfig, Settings, get_settings
from .core import (
    DashboardClient,
    HostOverrideTable,
    LookupQuery,
    Resolver,
    compile_pattern,
    format_mac,
    normalize,
)
from .models import ResolutionOutcome, ResultRow

__all__ = [
    "DashboardClient",
    "HostOverrideTable",
    "LookupConfig",
    "LookupQuery",
    "ResolutionOutcome",
    "Resolver",
    "ResultRow",
    "Settings",
    "__version__",
    "compile_pattern",
    "format_mac",
    "get_settings",
    "normalize",
]

__version__ = version("macfinder")
