"""Anomaly delivery: desktop alerts via Hammerspoon or terminal-notifier."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Protocol

from sentinel.config import NotificationConfig
from sentinel.models.enums import AlertLevel
from sentinel.models.runtime import Anomaly

logger = logging.getLogger("sentinel.notifier")

_ICONS = {AlertLevel.WARNING: "⚠️", AlertLevel.CRITICAL: "🚨"}
_DURATIONS = {AlertLevel.WARNING: 10, AlertLevel.CRITICAL: 15}
_TITLES = {
    AlertLevel.WARNING: "System Sentinel Warning",
    AlertLevel.CRITICAL: "System Sentinel CRITICAL",
}


class NotificationError(RuntimeError):
    """Every enabled delivery channel failed."""


class Notifier(Protocol):
    def send(self, anomaly: Anomaly) -> None: ...


class LogNotifier:
    """Writes anomalies to the log and nowhere else."""

    def send(self, anomaly: Anomaly) -> None:
        logger.warning("%s: %s", anomaly.level, anomaly.message)
        for line in anomaly.details:
            logger.info("  %s", line)


def format_message(anomaly: Anomaly) -> str:
    """Icon, message and detail lines."""
    lines = [f"{_ICONS[anomaly.level]} {anomaly.message}", *anomaly.details]
    return "\n".join(lines)


def hammerspoon_command(anomaly: Anomaly, color: str) -> str:
    """Lua snippet for ``hs -c`` that shows a coloured on-screen alert."""
    # json.dumps yields a valid Lua double-quoted string literal
    text = json.dumps(format_message(anomaly), ensure_ascii=False)
    return (
        f"hs.alert.show({text}, {{"
        "strokeColor = { white = 0, alpha = 0.75 }, "
        f"fillColor = {{ hex = {json.dumps(color)}, alpha = 0.95 }}, "
        "textColor = { white = 1, alpha = 1 }, "
        "strokeWidth = 2, radius = 10, textSize = 18, "
        "fadeInDuration = 0.15, fadeOutDuration = 0.15, atScreenEdge = 0"
        f"}}, {_DURATIONS[anomaly.level]})"
    )


class DesktopNotifier:
    """Hammerspoon first, terminal-notifier as the fallback."""

    def __init__(self, config: NotificationConfig | None = None, timeout: float = 10.0) -> None:
        self._config = config or NotificationConfig()
        self._timeout = timeout

    def send(self, anomaly: Anomaly) -> None:
        logger.info("Sending %s notification: %s", anomaly.level, anomaly.message)
        errors: list[str] = []

        if self._config.use_hammerspoon:
            try:
                self._send_hammerspoon(anomaly)
                return
            except NotificationError as exc:
                logger.warning("Hammerspoon notification failed: %s", exc)
                errors.append(str(exc))

        if self._config.fallback_to_terminal_notifier:
            try:
                self._send_terminal_notifier(anomaly)
                return
            except NotificationError as exc:
                errors.append(str(exc))

        if errors:
            raise NotificationError("; ".join(errors))
        logger.debug("No notification channel enabled")

    def _send_hammerspoon(self, anomaly: Anomaly) -> None:
        color = (
            self._config.critical_color
            if anomaly.level is AlertLevel.CRITICAL
            else self._config.warning_color
        )
        self._run(["hs", "-c", hammerspoon_command(anomaly, color)])

    def _send_terminal_notifier(self, anomaly: Anomaly) -> None:
        self._run([
            "terminal-notifier",
            "-title", _TITLES[anomaly.level],
            "-message", "\n".join([anomaly.message, *anomaly.details]),
            "-group", f"system-sentinel-{anomaly.anomaly_type.value}",
        ])

    def _run(self, command: list[str]) -> None:
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise NotificationError(f"{command[0]}: {exc}") from exc
        if result.returncode != 0:
            raise NotificationError(
                f"{command[0]} exited with {result.returncode}: {result.stderr.strip()}"
            )


def build_notifier(config: NotificationConfig) -> Notifier:
    if not config.enabled:
        return LogNotifier()
    return DesktopNotifier(config)
