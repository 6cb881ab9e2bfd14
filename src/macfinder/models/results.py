"""Resolution output."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

from macfinder.errors import PartialDataWarning


class ResultRow(BaseModel):
    """One device attachment: which switch and port an address sits behind."""

    org_name: str
    network_name: str
    switch_name: str
    switch_serial: str
    port: str
    mac: str
    ip: str = ""
    hostname: str = ""
    last_seen: str = ""
    vlan: int | None = None
    port_mode: str = ""
    source: str = ""

    @property
    def key(self) -> tuple[str, str, str]:
        # last_seen and ip are excluded so one attachment seen by two
        # sources collapses into one row.
        return (self.switch_serial, self.port, self.mac)


@dataclass
class ResolutionOutcome:
    """Rows found plus the networks/devices that contributed nothing."""

    rows: list[ResultRow] = field(default_factory=list)
    warnings: list[PartialDataWarning] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.rows)
