"""Reverse name resolution and client-record hostnames."""

from __future__ import annotations

import asyncio
import logging
import re
import socket

from macfinder.models import ClientRecord

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_uuid_like(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def client_hostname(record: ClientRecord) -> str:
    """Notes, then a human description, then the DHCP hostname."""
    if record.notes:
        return record.notes
    # the dashboard fills description with generated UUIDs for some clients
    if record.description and not is_uuid_like(record.description):
        return record.description
    return record.dhcp_hostname or ""


async def reverse_lookup(ip: str, timeout: float) -> str:
    if not ip:
        return ""
    try:
        name, _aliases, _addrs = await asyncio.wait_for(
            asyncio.to_thread(socket.gethostbyaddr, ip), timeout=timeout
        )
    except (asyncio.TimeoutError, TimeoutError):
        logger.debug("Reverse lookup for %s timed out", ip)
        return ""
    except OSError as exc:
        logger.debug("Reverse lookup for %s failed: %s", ip, exc)
        return ""
    return name.rstrip(".")
