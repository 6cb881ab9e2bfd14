from __future__ import annotations

from .client import DashboardClient
from .hosts import HostOverrideRule, HostOverrideTable, load_host_overrides
from .jobs import JobPoller
from .macaddr import MacPattern, compile_pattern, format_mac, normalize
from .resolver import LookupQuery, ResolutionScope, Resolver, build_scope

__all__ = [
    "DashboardClient",
    "HostOverrideRule",
    "HostOverrideTable",
    "JobPoller",
    "LookupQuery",
    "MacPattern",
    "ResolutionScope",
    "Resolver",
    "build_scope",
    "compile_pattern",
    "format_mac",
    "load_host_overrides",
    "normalize",
]
