"""Sentinel data models."""

from sentinel.models.enums import AlertLevel, AnomalyType
from sentinel.models.runtime import (
    Anomaly,
    MetricsSnapshot,
    ProcessRecord,
)

__all__ = [
    "AlertLevel",
    "AnomalyType",
    "ProcessRecord",
    "MetricsSnapshot",
    "Anomaly",
]
