"""Unix-domain socket server that streams every snapshot to live subscribers.

Protocol: server push only, one UTF-8 JSON object per line, each line a
full MetricsSnapshot.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sentinel.core.broadcast import BroadcastChannel, ChannelClosed
from sentinel.models.runtime import MetricsSnapshot

logger = logging.getLogger("sentinel.server")

# How long subscribers get to flush on shutdown before their connection is dropped
CLOSE_GRACE_SECONDS = 2.0


class TelemetryBindError(OSError):
    """The telemetry socket could not be bound."""


class TelemetryServer:
    """Fans snapshots out from a broadcast channel to socket subscribers."""

    def __init__(
        self,
        socket_path: str | Path,
        channel: BroadcastChannel[MetricsSnapshot],
        close_grace: float = CLOSE_GRACE_SECONDS,
    ) -> None:
        self.socket_path = Path(socket_path)
        self._channel = channel
        self._close_grace = close_grace
        self._server: asyncio.AbstractServer | None = None
        self._clients: set[asyncio.Task] = set()
        self._writers: set[asyncio.StreamWriter] = set()

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        """Remove any stale socket file and bind. Failure is fatal."""
        try:
            self.socket_path.unlink(missing_ok=True)
        except OSError as exc:
            raise TelemetryBindError(
                f"Cannot remove stale socket {self.socket_path}: {exc}"
            ) from exc

        try:
            self._server = await asyncio.start_unix_server(
                self._handle_client, path=str(self.socket_path)
            )
        except OSError as exc:
            raise TelemetryBindError(
                f"Cannot bind telemetry socket {self.socket_path}: {exc}"
            ) from exc
        logger.info("Telemetry server listening on %s", self.socket_path)

    async def close(self) -> None:
        """Stop accepting, end subscriber tasks, remove the socket file.

        Subscribers get ``close_grace`` seconds to flush what is buffered.
        Connections still open after that are aborted, so a client that
        stopped reading cannot hold up shutdown.
        """
        self._channel.close()
        if self._server is not None:
            self._server.close()

        if self._clients:
            _, pending = await asyncio.wait(set(self._clients), timeout=self._close_grace)
            if pending:
                logger.debug("Aborting %d stalled subscribers", len(pending))
                for writer in list(self._writers):
                    writer.transport.abort()
                await asyncio.gather(*pending, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        try:
            self.socket_path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Could not remove socket file %s", self.socket_path)

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._clients.add(task)
        self._writers.add(writer)
        logger.debug("Telemetry subscriber connected (%d total)", len(self._clients))

        with self._channel.subscribe() as subscription:
            try:
                while not writer.is_closing():
                    snapshot = await subscription.recv()
                    writer.write(snapshot.to_json().encode("utf-8") + b"\n")
                    await writer.drain()
            except ChannelClosed:
                logger.debug("Channel closed, ending subscriber")
                writer.close()
            except (ConnectionError, OSError) as exc:
                logger.debug("Telemetry subscriber dropped: %s", exc)
                # Unsent data has nowhere to go
                writer.transport.abort()
            finally:
                if subscription.lagged:
                    logger.debug(
                        "Subscriber missed %d snapshots while lagging",
                        subscription.lagged,
                    )
                if not writer.is_closing():
                    writer.transport.abort()
                try:
                    # Returns once the transport is gone; close() aborts stalled peers
                    await writer.wait_closed()
                except (ConnectionError, OSError):
                    pass
                self._writers.discard(writer)
                if task is not None:
                    self._clients.discard(task)
