"""Stateful anomaly detection with damping, hysteresis, inhibition and cooldown."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sentinel.config import DetectionConfig, ThresholdConfig
from sentinel.core.bundles import human_name
from sentinel.models.enums import AlertLevel, AnomalyType
from sentinel.models.runtime import BYTES_PER_GB, Anomaly, MetricsSnapshot, ProcessRecord

logger = logging.getLogger("sentinel.detector")

# Load must stay above the warning threshold this long before alerting
LOAD_SUSTAIN_SECONDS = 120.0

# Load uses a fixed absolute recovery margin instead of the configured one
LOAD_RECOVERY_MARGIN = 1.0

# Swap and growth alerts only matter once memory itself is under pressure
PRESSURE_PERCENT = 80.0

# Growth this fast alerts regardless of current pressure
EMERGENCY_GROWTH_RATE = 10.0

# Growth at low absolute usage is noise
MIN_GROWTH_MEMORY_PERCENT = 60.0


@dataclass
class DetectorState:
    """Per-signal memory of the detector, keyed by anomaly type."""

    last_notification: dict[AnomalyType, tuple[float, AlertLevel]] = field(
        default_factory=dict
    )
    breach_counters: dict[AnomalyType, int] = field(default_factory=dict)
    active_alerts: dict[AnomalyType, AlertLevel] = field(default_factory=dict)
    load_sustained_since: float | None = None


def _thresholds_for(
    active: AlertLevel | None, warning: float, critical: float, margin: float
) -> tuple[float, float]:
    """Lower the exit bar for a signal that is already alerting."""
    if active is AlertLevel.CRITICAL:
        return warning - margin, critical - margin
    if active is AlertLevel.WARNING:
        return warning - margin, critical
    return warning, critical


def _level_for(value: float, warning: float, critical: float) -> AlertLevel | None:
    if value >= critical:
        return AlertLevel.CRITICAL
    if value >= warning:
        return AlertLevel.WARNING
    return None


def memory_culprit(processes: tuple[ProcessRecord, ...]) -> str:
    """'Name (3GB)' for the largest process or group."""
    if not processes:
        return "Unknown"
    top = max(processes, key=lambda p: p.memory_bytes)
    return f"{human_name(top)} ({top.memory_bytes / BYTES_PER_GB:.0f}GB)"


def cpu_culprit(processes: tuple[ProcessRecord, ...]) -> str:
    """'Name (120%)' for the busiest process or group."""
    if not processes:
        return "Unknown"
    top = max(processes, key=lambda p: p.cpu_usage)
    return f"{human_name(top)} ({top.cpu_usage:.0f}%)"


class AnomalyDetector:
    """Turns one snapshot per tick into at most one anomaly.

    Filters run in order: inhibition, damping, severity ranking, cooldown.
    All state lives in ``self.state`` and is only touched by ``check``.
    """

    def __init__(
        self,
        thresholds: ThresholdConfig | None = None,
        detection: DetectionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.thresholds = thresholds or ThresholdConfig()
        self.detection = detection or DetectionConfig()
        self.state = DetectorState()
        self._clock = clock

    def check(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        """Evaluate one snapshot. Returns the tick's single anomaly, if any."""
        checks = (
            self._check_memory,
            self._check_swap,
            self._check_load,
            self._check_growth_rate,
            self._check_watchlist,
        )
        raw = [a for a in (check(snapshot) for check in checks) if a is not None]
        raw_types = {a.anomaly_type for a in raw}

        # Inhibition: growth is redundant once absolute memory is flagged
        candidates = raw
        if AnomalyType.MEMORY in raw_types:
            candidates = [a for a in raw if a.anomaly_type is not AnomalyType.GROWTH_RATE]
            if len(candidates) != len(raw):
                logger.debug("Inhibiting growth alert because memory alert is present")

        # Damping
        threshold = self.detection.persistent_breach_threshold
        damped: list[Anomaly] = []
        for anomaly in candidates:
            count = self.state.breach_counters.get(anomaly.anomaly_type, 0) + 1
            self.state.breach_counters[anomaly.anomaly_type] = count
            if count < threshold:
                logger.debug(
                    "Damping %s: breach_count=%d < threshold=%d",
                    anomaly.anomaly_type.value, count, threshold,
                )
                continue
            damped.append(anomaly)

        # A single clean tick resets a signal completely
        for state_map in (self.state.breach_counters, self.state.active_alerts):
            for anomaly_type in list(state_map):
                if anomaly_type not in raw_types:
                    del state_map[anomaly_type]

        # Severity ranking; sort is stable so check order breaks ties
        damped.sort(key=lambda a: a.level, reverse=True)

        for anomaly in damped:
            if self._cooldown_passed(anomaly.anomaly_type, anomaly.level):
                now = self._clock()
                self.state.last_notification[anomaly.anomaly_type] = (now, anomaly.level)
                self.state.active_alerts[anomaly.anomaly_type] = anomaly.level
                logger.debug("Anomaly detected: %s %s", anomaly.level, anomaly.message)
                return anomaly
        return None

    def _cooldown_passed(self, anomaly_type: AnomalyType, level: AlertLevel) -> bool:
        last = self.state.last_notification.get(anomaly_type)
        if last is None:
            return True

        last_time, last_level = last
        if level > last_level:
            logger.debug(
                "Escalating %s: %s -> %s", anomaly_type.value, last_level, level
            )
            return True

        cooldown = self.detection.notification_cooldown_minutes * 60
        elapsed = self._clock() - last_time
        if elapsed < cooldown:
            logger.debug(
                "Suppressed %s (%s): elapsed=%.0fs < cooldown=%ds",
                anomaly_type.value, level, elapsed, cooldown,
            )
            return False
        return True

    def _check_memory(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        t = self.thresholds
        warning, critical = _thresholds_for(
            self.state.active_alerts.get(AnomalyType.MEMORY),
            t.memory_warning, t.memory_critical, t.recovery_margin,
        )
        level = _level_for(snapshot.memory_percent, warning, critical)
        if level is None:
            return None

        return Anomaly(
            anomaly_type=AnomalyType.MEMORY,
            level=level,
            message=(
                f"Mem {snapshot.memory_percent:.0f}%: "
                f"{memory_culprit(snapshot.all_processes)}"
            ),
            details=(
                f"Used {snapshot.memory_used / BYTES_PER_GB:.1f}GB of "
                f"{snapshot.memory_total / BYTES_PER_GB:.1f}GB",
            ),
        )

    def _check_swap(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        if snapshot.swap_total == 0:
            return None
        # Opportunistic swapping at low memory pressure is not a problem
        if snapshot.memory_percent <= PRESSURE_PERCENT:
            return None

        t = self.thresholds
        warning, critical = _thresholds_for(
            self.state.active_alerts.get(AnomalyType.SWAP),
            t.swap_warning, t.swap_critical, t.recovery_margin,
        )
        level = _level_for(snapshot.swap_percent, warning, critical)
        if level is None:
            return None

        return Anomaly(
            anomaly_type=AnomalyType.SWAP,
            level=level,
            message=(
                f"Swap {snapshot.swap_percent:.0f}%: "
                f"{memory_culprit(snapshot.all_processes)}"
            ),
            details=(
                f"Swap {snapshot.swap_used / BYTES_PER_GB:.1f}GB of "
                f"{snapshot.swap_total / BYTES_PER_GB:.1f}GB, "
                f"memory at {snapshot.memory_percent:.0f}%",
            ),
        )

    def _check_load(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        load = snapshot.load_1m
        t = self.thresholds

        if load < t.load_warning:
            if self.state.load_sustained_since is not None:
                logger.debug("Load returned to normal, resetting timer")
                self.state.load_sustained_since = None
            return None

        now = self._clock()
        if self.state.load_sustained_since is None:
            self.state.load_sustained_since = now
            logger.debug("High load detected (%.1f), starting timer", load)

        sustained = now - self.state.load_sustained_since
        if sustained < LOAD_SUSTAIN_SECONDS:
            return None

        warning, critical = _thresholds_for(
            self.state.active_alerts.get(AnomalyType.LOAD),
            t.load_warning, t.load_critical, LOAD_RECOVERY_MARGIN,
        )
        level = _level_for(load, warning, critical)
        if level is None:
            return None

        return Anomaly(
            anomaly_type=AnomalyType.LOAD,
            level=level,
            message=f"Load {load:.1f}: {cpu_culprit(snapshot.all_processes)}",
            details=(
                f"Load {snapshot.load_1m:.1f} / {snapshot.load_5m:.1f} / "
                f"{snapshot.load_15m:.1f}, elevated for {sustained:.0f}s",
            ),
        )

    def _check_growth_rate(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        rate = snapshot.memory_growth_rate
        if rate is None or rate <= 0:
            return None

        high_pressure = (
            snapshot.memory_percent > PRESSURE_PERCENT
            or snapshot.swap_percent > PRESSURE_PERCENT
        )
        if not high_pressure and rate < EMERGENCY_GROWTH_RATE:
            return None
        if snapshot.memory_percent < MIN_GROWTH_MEMORY_PERCENT:
            return None

        t = self.thresholds
        level = _level_for(
            rate, t.memory_growth_rate_warning, t.memory_growth_rate_critical
        )
        if level is None:
            return None

        return Anomaly(
            anomaly_type=AnomalyType.GROWTH_RATE,
            level=level,
            message=f"Growth {rate:.0f}GB/h: {memory_culprit(snapshot.all_processes)}",
            details=(f"Memory at {snapshot.memory_percent:.0f}%",),
        )

    def _check_watchlist(self, snapshot: MetricsSnapshot) -> Anomaly | None:
        watched = [w.lower() for w in self.detection.process_watchlist if w]
        if not watched:
            return None
        threshold_mb = self.detection.process_memory_threshold_mb

        for proc in snapshot.all_processes:
            if proc.memory_mb < threshold_mb:
                continue
            name = human_name(proc)
            haystacks = (proc.name.lower(), name.lower())
            if any(w in h for w in watched for h in haystacks):
                return Anomaly(
                    anomaly_type=AnomalyType.WATCHLIST,
                    level=AlertLevel.WARNING,
                    message=f"Heavy App: {name} ({proc.memory_bytes / BYTES_PER_GB:.0f}GB)",
                    details=(f"Threshold {threshold_mb}MB",),
                )
        return None
