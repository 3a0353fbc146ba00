"""Layered configuration: config.toml -> SENTINEL_* env vars -> defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

try:
    import tomllib  # 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "system-sentinel" / "config.toml"


@dataclass(frozen=True, slots=True)
class GeneralConfig:
    """Service loop and telemetry socket settings."""

    check_interval_seconds: int = 30
    socket_path: str = "/tmp/system-sentinel.soc"
    log_level: str = "INFO"


@dataclass(frozen=True, slots=True)
class ThresholdConfig:
    """Alert thresholds for each host signal."""

    memory_warning: float = 80.0
    memory_critical: float = 90.0
    swap_warning: float = 80.0
    swap_critical: float = 95.0
    load_warning: float = 10.0
    load_critical: float = 50.0
    memory_growth_rate_warning: float = 3.0
    memory_growth_rate_critical: float = 8.0
    recovery_margin: float = 5.0


@dataclass(frozen=True, slots=True)
class DetectionConfig:
    """Watchlist, cooldown and damping settings."""

    process_watchlist: tuple[str, ...] = ("ghostty", "Arc", "node", "Electron")
    process_memory_threshold_mb: int = 2000
    notification_cooldown_minutes: int = 20
    persistent_breach_threshold: int = 3


@dataclass(frozen=True, slots=True)
class NotificationConfig:
    """Desktop notification delivery settings."""

    enabled: bool = True
    use_hammerspoon: bool = True
    fallback_to_terminal_notifier: bool = True
    warning_color: str = "#FFA500"
    critical_color: str = "#FF4444"


@dataclass(frozen=True, slots=True)
class SentinelConfig:
    """Top-level configuration container."""

    general: GeneralConfig = field(default_factory=GeneralConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    source: Path | None = None

    @property
    def socket_path(self) -> Path:
        return Path(self.general.socket_path)

    @classmethod
    def load(cls, config_path: Path | None = None) -> SentinelConfig:
        """Load config with layering: TOML file -> env vars -> defaults."""
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

        toml_data: dict = {}
        source = None
        if path.is_file():
            with open(path, "rb") as f:
                toml_data = tomllib.load(f)
            source = path

        general_data = toml_data.get("general", {})
        threshold_data = toml_data.get("thresholds", {})
        detection_data = toml_data.get("detection", {})
        notification_data = toml_data.get("notification", {})

        # Use literal defaults (slots=True prevents class-level attribute access)
        _general_defaults = GeneralConfig()
        _threshold_defaults = ThresholdConfig()
        _detection_defaults = DetectionConfig()
        _notify_defaults = NotificationConfig()

        general = GeneralConfig(
            check_interval_seconds=int(
                os.environ.get(
                    "SENTINEL_CHECK_INTERVAL",
                    general_data.get(
                        "check_interval_seconds",
                        _general_defaults.check_interval_seconds,
                    ),
                )
            ),
            socket_path=os.environ.get(
                "SENTINEL_SOCKET_PATH",
                general_data.get("socket_path", _general_defaults.socket_path),
            ),
            log_level=os.environ.get(
                "SENTINEL_LOG_LEVEL",
                general_data.get("log_level", _general_defaults.log_level),
            ).upper(),
        )

        thresholds = ThresholdConfig(
            **{
                f.name: float(
                    threshold_data.get(f.name, getattr(_threshold_defaults, f.name))
                )
                for f in fields(ThresholdConfig)
            }
        )

        watchlist_env = os.environ.get("SENTINEL_PROCESS_WATCHLIST")
        if watchlist_env is not None:
            watchlist = tuple(w.strip() for w in watchlist_env.split(",") if w.strip())
        else:
            watchlist = tuple(
                detection_data.get(
                    "process_watchlist", _detection_defaults.process_watchlist
                )
            )

        detection = DetectionConfig(
            process_watchlist=watchlist,
            process_memory_threshold_mb=int(
                detection_data.get(
                    "process_memory_threshold_mb",
                    _detection_defaults.process_memory_threshold_mb,
                )
            ),
            notification_cooldown_minutes=int(
                os.environ.get(
                    "SENTINEL_COOLDOWN_MINUTES",
                    detection_data.get(
                        "notification_cooldown_minutes",
                        _detection_defaults.notification_cooldown_minutes,
                    ),
                )
            ),
            persistent_breach_threshold=int(
                os.environ.get(
                    "SENTINEL_BREACH_THRESHOLD",
                    detection_data.get(
                        "persistent_breach_threshold",
                        _detection_defaults.persistent_breach_threshold,
                    ),
                )
            ),
        )

        enabled_env = os.environ.get("SENTINEL_NOTIFICATIONS")
        notification = NotificationConfig(
            enabled=(
                enabled_env.strip().lower() in ("1", "true", "yes", "on")
                if enabled_env is not None
                else bool(notification_data.get("enabled", _notify_defaults.enabled))
            ),
            use_hammerspoon=bool(
                notification_data.get("use_hammerspoon", _notify_defaults.use_hammerspoon)
            ),
            fallback_to_terminal_notifier=bool(
                notification_data.get(
                    "fallback_to_terminal_notifier",
                    _notify_defaults.fallback_to_terminal_notifier,
                )
            ),
            warning_color=notification_data.get(
                "warning_color", _notify_defaults.warning_color
            ),
            critical_color=notification_data.get(
                "critical_color", _notify_defaults.critical_color
            ),
        )

        return cls(
            general=general,
            thresholds=thresholds,
            detection=detection,
            notification=notification,
            source=source,
        )
