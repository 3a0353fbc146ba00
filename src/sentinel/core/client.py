"""Reader for the telemetry socket feed."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from sentinel.models.runtime import MetricsSnapshot

logger = logging.getLogger("sentinel.client")

# Snapshots with many processes can exceed asyncio's 64 KiB default line limit
_LINE_LIMIT = 4 * 1024 * 1024


async def iter_snapshots(socket_path: str | Path) -> AsyncIterator[MetricsSnapshot]:
    """Yield snapshots from a running service until it disconnects.

    Malformed lines are logged and skipped.
    """
    reader, writer = await asyncio.open_unix_connection(
        str(socket_path), limit=_LINE_LIMIT
    )
    try:
        while True:
            line = await reader.readline()
            if not line:
                return
            try:
                yield MetricsSnapshot.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping malformed telemetry line: %s", exc)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


async def read_snapshot(
    socket_path: str | Path, timeout: float = 60.0
) -> MetricsSnapshot | None:
    """First snapshot pushed by the service, or None if the feed ends first."""

    async def _first() -> MetricsSnapshot | None:
        async with contextlib.aclosing(iter_snapshots(socket_path)) as feed:
            async for snapshot in feed:
                return snapshot
        return None

    return await asyncio.wait_for(_first(), timeout)
