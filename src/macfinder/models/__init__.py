"""Data models for macfinder."""

from macfinder.models.inventory import (
    ClientRecord,
    Device,
    Network,
    Organization,
    SwitchPort,
)
from macfinder.models.jobs import ArpEntry, AsyncJob, ForwardingEntry, JobKind, JobStatus
from macfinder.models.results import ResolutionOutcome, ResultRow

__all__ = [
    "ArpEntry",
    "AsyncJob",
    "ClientRecord",
    "Device",
    "ForwardingEntry",
    "JobKind",
    "JobStatus",
    "Network",
    "Organization",
    "ResolutionOutcome",
    "ResultRow",
    "SwitchPort",
]
