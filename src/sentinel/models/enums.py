"""Enumerations for Sentinel models."""

from enum import Enum, IntEnum


class AnomalyType(str, Enum):
    """Monitored host signal. Stable key for per-signal detector state."""

    MEMORY = "memory"
    SWAP = "swap"
    LOAD = "load"
    GROWTH_RATE = "growth_rate"
    WATCHLIST = "watchlist"


class AlertLevel(IntEnum):
    """Alert severity, ordered WARNING < CRITICAL."""

    WARNING = 1
    CRITICAL = 2

    def __str__(self) -> str:
        return self.name
