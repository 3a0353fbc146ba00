"""Tests for the tick loop."""

import asyncio
import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from sentinel.config import GeneralConfig, SentinelConfig
from sentinel.core.broadcast import BroadcastChannel
from sentinel.core.notifier import NotificationError
from sentinel.core.orchestrator import Sentinel
from sentinel.core.server import TelemetryBindError
from sentinel.models.enums import AlertLevel, AnomalyType
from sentinel.models.runtime import Anomaly, MetricsSnapshot

GB = 1024 ** 3


def _snapshot():
    return MetricsSnapshot(
        timestamp=datetime.now(timezone.utc),
        memory_total=16 * GB,
        memory_used=8 * GB,
        memory_free=8 * GB,
        memory_percent=50.0,
        swap_total=0,
        swap_used=0,
        swap_percent=0.0,
        load_1m=1.0,
        load_5m=1.0,
        load_15m=1.0,
    )


class FakeCollector:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    def collect_aggregated(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("sampling broke")
        return _snapshot()


class FakeDetector:
    def __init__(self, anomaly=None):
        self.anomaly = anomaly
        self.seen = []

    def check(self, snapshot):
        self.seen.append(snapshot)
        return self.anomaly


class RecordingNotifier:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    def send(self, anomaly):
        self.sent.append(anomaly)
        if self.error:
            raise self.error


ANOMALY = Anomaly(
    anomaly_type=AnomalyType.MEMORY,
    level=AlertLevel.CRITICAL,
    message="Mem 95%: Safari (4GB)",
)


@pytest.fixture
def config():
    directory = tempfile.mkdtemp(prefix="snt")
    yield SentinelConfig(
        general=GeneralConfig(
            check_interval_seconds=1,
            socket_path=str(Path(directory) / "o.sock"),
        )
    )
    shutil.rmtree(directory, ignore_errors=True)


def _sentinel(config, collector=None, detector=None, notifier=None, channel=None):
    return Sentinel(
        config,
        collector=collector or FakeCollector(),
        detector=detector or FakeDetector(),
        notifier=notifier or RecordingNotifier(),
        channel=channel or BroadcastChannel(),
    )


class TestTick:
    @pytest.mark.asyncio
    async def test_publishes_every_snapshot(self, config):
        channel = BroadcastChannel()
        sub = channel.subscribe()
        sentinel = _sentinel(config, channel=channel)

        snapshot, anomaly = await sentinel.tick()

        assert anomaly is None
        assert await sub.recv() is snapshot

    @pytest.mark.asyncio
    async def test_anomaly_is_notified(self, config):
        notifier = RecordingNotifier()
        sentinel = _sentinel(config, detector=FakeDetector(ANOMALY), notifier=notifier)

        _, anomaly = await sentinel.tick()

        assert anomaly is ANOMALY
        assert notifier.sent == [ANOMALY]

    @pytest.mark.asyncio
    async def test_notification_failure_is_logged(self, config, caplog):
        channel = BroadcastChannel()
        sub = channel.subscribe()
        notifier = RecordingNotifier(error=NotificationError("hs missing"))
        sentinel = _sentinel(
            config, detector=FakeDetector(ANOMALY), notifier=notifier, channel=channel
        )

        with caplog.at_level(logging.ERROR, logger="sentinel.orchestrator"):
            await sentinel.tick()

        assert "hs missing" in caplog.text
        # Snapshot still goes out
        assert isinstance(await sub.recv(), MetricsSnapshot)

    @pytest.mark.asyncio
    async def test_collector_error_propagates(self, config):
        sentinel = _sentinel(config, collector=FakeCollector(fail=True))
        with pytest.raises(RuntimeError):
            await sentinel.tick()


class TestRun:
    @pytest.mark.asyncio
    async def test_runs_until_stopped(self, config):
        collector = FakeCollector()
        sentinel = _sentinel(config, collector=collector)
        stop = asyncio.Event()

        task = asyncio.create_task(sentinel.run(stop))
        for _ in range(200):
            if collector.calls:
                break
            await asyncio.sleep(0.01)
        assert config.socket_path.is_socket()

        stop.set()
        await asyncio.wait_for(task, timeout=5.0)

        assert collector.calls >= 1
        assert not config.socket_path.exists()
        assert sentinel.channel.closed

    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_loop(self, config):
        collector = FakeCollector(fail=True)
        sentinel = _sentinel(config, collector=collector)
        stop = asyncio.Event()

        task = asyncio.create_task(sentinel.run(stop))
        for _ in range(300):
            if collector.calls >= 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=5.0)

        assert collector.calls >= 2

    @pytest.mark.asyncio
    async def test_bind_failure_is_fatal(self, tmp_path):
        config = SentinelConfig(
            general=GeneralConfig(socket_path=str(tmp_path / "missing" / "o.sock"))
        )
        collector = FakeCollector()
        sentinel = _sentinel(config, collector=collector)

        with pytest.raises(TelemetryBindError):
            await sentinel.run(asyncio.Event())
        assert collector.calls == 0
