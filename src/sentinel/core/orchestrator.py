"""Tick loop: sample, detect, notify, publish."""

from __future__ import annotations

import asyncio
import logging

from sentinel.config import SentinelConfig
from sentinel.core.broadcast import BroadcastChannel
from sentinel.core.collector import MetricsCollector
from sentinel.core.detector import AnomalyDetector
from sentinel.core.notifier import NotificationError, Notifier, build_notifier
from sentinel.core.server import TelemetryServer
from sentinel.models.runtime import Anomaly, MetricsSnapshot

logger = logging.getLogger("sentinel.orchestrator")


class Sentinel:
    """Composition root for the monitoring service.

    Collector and detector state are only touched from the tick loop, one
    tick at a time.
    """

    def __init__(
        self,
        config: SentinelConfig | None = None,
        collector: MetricsCollector | None = None,
        detector: AnomalyDetector | None = None,
        notifier: Notifier | None = None,
        channel: BroadcastChannel[MetricsSnapshot] | None = None,
    ) -> None:
        self.config = config or SentinelConfig()
        self.collector = collector or MetricsCollector()
        self.detector = detector or AnomalyDetector(
            self.config.thresholds, self.config.detection
        )
        self.notifier = notifier or build_notifier(self.config.notification)
        self.channel: BroadcastChannel[MetricsSnapshot] = channel or BroadcastChannel()
        self.server = TelemetryServer(self.config.socket_path, self.channel)

    async def tick(self) -> tuple[MetricsSnapshot, Anomaly | None]:
        """Run one cycle and return what it produced."""
        snapshot = await asyncio.to_thread(self.collector.collect_aggregated)

        anomaly = self.detector.check(snapshot)
        if anomaly is not None:
            logger.warning("Anomaly detected: %s - %s", anomaly.level, anomaly.message)
            try:
                await asyncio.to_thread(self.notifier.send, anomaly)
            except NotificationError as exc:
                logger.error("Failed to send notification: %s", exc)

        delivered = self.channel.publish(snapshot)
        logger.debug("Published snapshot to %d subscribers", delivered)
        return snapshot, anomaly

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Serve telemetry and tick until ``stop_event`` is set.

        Raises TelemetryBindError if the socket cannot be bound.
        """
        stop_event = stop_event or asyncio.Event()
        interval = max(1, self.config.general.check_interval_seconds)

        await self.server.start()
        logger.info("Entering monitoring loop (interval %ds)", interval)
        try:
            while not stop_event.is_set():
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Tick failed, continuing")

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.server.close()
            logger.info("Sentinel stopped")
