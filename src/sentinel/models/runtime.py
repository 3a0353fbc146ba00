"""Frozen dataclass models for host telemetry."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sentinel.models.enums import AlertLevel, AnomalyType

BYTES_PER_MB = 1024 * 1024
BYTES_PER_GB = 1024 * 1024 * 1024

GROUP_PID = 0
GROUP_SUFFIX = " (Group)"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """One process, or a synthetic application group (pid 0, subtree sums)."""

    pid: int
    name: str
    memory_bytes: int
    cpu_usage: float = 0.0
    parent_pid: int | None = None
    exe: str | None = None

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / BYTES_PER_MB

    @property
    def memory_gb(self) -> float:
        return self.memory_bytes / BYTES_PER_GB

    @property
    def is_group(self) -> bool:
        return self.pid == GROUP_PID and self.name.endswith(GROUP_SUFFIX)

    @classmethod
    def group(cls, app_name: str, memory_bytes: int, cpu_usage: float) -> ProcessRecord:
        return cls(
            pid=GROUP_PID,
            name=f"{app_name}{GROUP_SUFFIX}",
            memory_bytes=memory_bytes,
            cpu_usage=cpu_usage,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "parent_pid": self.parent_pid,
            "name": self.name,
            "memory_bytes": self.memory_bytes,
            "memory_mb": self.memory_mb,
            "cpu_usage": self.cpu_usage,
            "exe": self.exe,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessRecord:
        return cls(
            pid=int(data["pid"]),
            name=data["name"],
            memory_bytes=int(data["memory_bytes"]),
            cpu_usage=float(data.get("cpu_usage", 0.0)),
            parent_pid=data.get("parent_pid"),
            exe=data.get("exe"),
        )


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Host state sampled once per tick.

    Percentages are derived from the total/used pair recorded in the same
    snapshot.
    """

    memory_total: int
    memory_used: int
    memory_free: int
    memory_percent: float
    swap_total: int
    swap_used: int
    swap_percent: float
    load_1m: float
    load_5m: float
    load_15m: float
    top_processes: tuple[ProcessRecord, ...] = ()
    aggregated_processes: tuple[ProcessRecord, ...] = ()
    memory_growth_rate: float | None = None  # GB/hour
    timestamp: datetime = field(default_factory=_now)

    @property
    def all_processes(self) -> tuple[ProcessRecord, ...]:
        """Raw top processes followed by application groups."""
        return self.top_processes + self.aggregated_processes

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "memory_total": self.memory_total,
            "memory_used": self.memory_used,
            "memory_free": self.memory_free,
            "memory_percent": self.memory_percent,
            "swap_total": self.swap_total,
            "swap_used": self.swap_used,
            "swap_percent": self.swap_percent,
            "load_1m": self.load_1m,
            "load_5m": self.load_5m,
            "load_15m": self.load_15m,
            "top_processes": [p.to_dict() for p in self.top_processes],
            "aggregated_processes": [p.to_dict() for p in self.aggregated_processes],
            "memory_growth_rate": self.memory_growth_rate,
        }

    def to_json(self) -> str:
        """Serialize as a single line of JSON."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetricsSnapshot:
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            memory_total=int(data["memory_total"]),
            memory_used=int(data["memory_used"]),
            memory_free=int(data["memory_free"]),
            memory_percent=float(data["memory_percent"]),
            swap_total=int(data["swap_total"]),
            swap_used=int(data["swap_used"]),
            swap_percent=float(data["swap_percent"]),
            load_1m=float(data["load_1m"]),
            load_5m=float(data["load_5m"]),
            load_15m=float(data["load_15m"]),
            top_processes=tuple(
                ProcessRecord.from_dict(p) for p in data.get("top_processes", [])
            ),
            aggregated_processes=tuple(
                ProcessRecord.from_dict(p) for p in data.get("aggregated_processes", [])
            ),
            memory_growth_rate=data.get("memory_growth_rate"),
        )


@dataclass(frozen=True, slots=True)
class Anomaly:
    """The single alert selected by the detector for one tick."""

    anomaly_type: AnomalyType
    level: AlertLevel
    message: str
    details: tuple[str, ...] = ()
    detected_at: datetime = field(default_factory=_now)
