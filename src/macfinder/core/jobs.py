"""Create-then-poll lifecycle for device-side lookup jobs.

Both the forwarding-table and the ARP-table live tools follow the same
protocol: a POST returns a job id, and GETs on that id report ``pending``
until the device answers with ``complete`` (plus entries) or ``failed``.

An empty result from a job means "try the next strategy", never "the
address is absent".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from macfinder.config.settings import DEFAULT_POLL_ATTEMPTS
from macfinder.core.client import DashboardClient, Sleep
from macfinder.core.macaddr import try_normalize
from macfinder.errors import JobError, UpstreamError
from macfinder.models import ArpEntry, AsyncJob, ForwardingEntry, JobKind, JobStatus

logger = logging.getLogger(__name__)

# Upstream responses name the port differently depending on the switch family.
PORT_KEYS = ("portId", "port", "interface")
UNKNOWN_PORT = "unknown"


def extract_port(entry: dict[str, Any]) -> str:
    """First non-empty port field, or ``UNKNOWN_PORT`` (lossy) when none is set."""
    for key in PORT_KEYS:
        value = entry.get(key)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return UNKNOWN_PORT


def _coerce_vlan(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        vlan = int(float(value))
    except (TypeError, ValueError):
        return None
    return vlan if vlan > 0 else None


def parse_forwarding_entries(entries: list[dict[str, Any]]) -> list[ForwardingEntry]:
    parsed: list[ForwardingEntry] = []
    for entry in entries:
        raw_mac = entry.get("mac")
        mac = try_normalize(raw_mac) if isinstance(raw_mac, str) else None
        if mac is None:
            continue
        mode = entry.get("type")
        parsed.append(
            ForwardingEntry(
                mac=mac,
                port=extract_port(entry),
                vlan=_coerce_vlan(entry.get("vlan")),
                mode=mode if isinstance(mode, str) and mode else None,
            )
        )
    return parsed


def parse_arp_entries(entries: list[dict[str, Any]]) -> list[ArpEntry]:
    parsed: list[ArpEntry] = []
    for entry in entries:
        ip, mac = entry.get("ip"), entry.get("mac")
        if not isinstance(ip, str) or not ip or not isinstance(mac, str):
            continue
        canonical = try_normalize(mac)
        if canonical is None:
            continue
        parsed.append(ArpEntry(ip=ip, mac=canonical))
    return parsed


class JobPoller:
    """Runs one job to a terminal state or until the attempt budget runs out."""

    def __init__(
        self,
        client: DashboardClient,
        attempts: int,
        interval: float,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if attempts <= 0:
            # zero attempts would report every device as "not found"
            logger.warning(
                "Job poll attempts must be positive (got %d); using %d",
                attempts,
                DEFAULT_POLL_ATTEMPTS,
            )
            attempts = DEFAULT_POLL_ATTEMPTS
        self.attempts = attempts
        self.interval = interval
        self._client = client
        self._sleep = sleep

    async def run(self, serial: str, kind: JobKind) -> AsyncJob:
        try:
            job_id = await self._client.create_job(serial, kind)
        except UpstreamError as exc:
            logger.debug("%s lookup not available for %s: %s", kind.value, serial, exc)
            return AsyncJob(
                id="",
                serial=serial,
                kind=kind,
                status=JobStatus.FAILED,
                error=JobError(serial, kind.value, f"create failed: {exc}"),
            )

        job = AsyncJob(id=job_id, serial=serial, kind=kind)
        logger.debug("Created %s job %s for %s", kind.value, job_id, serial)

        while job.attempts < self.attempts:
            await self._sleep(self.interval)
            job.attempts += 1
            try:
                status, entries = await self._client.get_job(serial, kind, job_id)
            except UpstreamError as exc:
                job.error = JobError(serial, kind.value, f"poll failed: {exc}")
                logger.debug("%s", job.error)
                return job

            job.status = status
            if status is JobStatus.COMPLETE:
                job.entries = entries
                logger.debug(
                    "%s job on %s complete with %d entries", kind.value, serial, len(entries)
                )
                return job
            if status is JobStatus.FAILED:
                job.error = JobError(serial, kind.value, "device reported failure")
                logger.debug("%s", job.error)
                return job
            logger.debug(
                "%s job on %s: %s (attempt %d/%d)",
                kind.value,
                serial,
                status.value,
                job.attempts,
                self.attempts,
            )

        job.error = JobError(
            serial, kind.value, f"still pending after {self.attempts} attempts"
        )
        logger.debug("%s", job.error)
        return job

    async def forwarding_table(self, serial: str) -> tuple[AsyncJob, list[ForwardingEntry]]:
        job = await self.run(serial, JobKind.FORWARDING_TABLE)
        return job, parse_forwarding_entries(job.entries)

    async def arp_map(self, serial: str) -> dict[str, str]:
        """Canonical address -> IP from the device's ARP table; empty on any failure."""
        job = await self.run(serial, JobKind.ARP_TABLE)
        return {entry.mac: entry.ip for entry in parse_arp_entries(job.entries)}
