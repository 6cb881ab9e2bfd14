"""Device-side lookup jobs and the entries they return."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from macfinder.errors import JobError


class JobKind(str, Enum):
    FORWARDING_TABLE = "macTable"
    ARP_TABLE = "arpTable"

    @property
    def id_field(self) -> str:
        return f"{self.value}Id"


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: object) -> JobStatus:
        if value == cls.COMPLETE.value:
            return cls.COMPLETE
        if value == cls.FAILED.value:
            return cls.FAILED
        return cls.PENDING


@dataclass
class AsyncJob:
    """A job created on one device during one pass; never persisted."""

    id: str
    serial: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    entries: list[dict[str, object]] = field(default_factory=list)
    attempts: int = 0
    error: JobError | None = None

    @property
    def complete(self) -> bool:
        return self.status is JobStatus.COMPLETE


class ForwardingEntry(BaseModel):
    model_config = {"frozen": True}

    mac: str
    port: str
    vlan: int | None = None
    mode: str | None = None


class ArpEntry(BaseModel):
    model_config = {"frozen": True}

    ip: str
    mac: str
