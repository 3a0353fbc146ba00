"""Tests for desktop notification delivery."""

import logging
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from sentinel.config import NotificationConfig
from sentinel.core.notifier import (
    DesktopNotifier,
    LogNotifier,
    NotificationError,
    build_notifier,
    format_message,
    hammerspoon_command,
)
from sentinel.models.enums import AlertLevel, AnomalyType
from sentinel.models.runtime import Anomaly


def _anomaly(level=AlertLevel.WARNING, message="Mem 85%: Safari (4GB)", details=()):
    return Anomaly(
        anomaly_type=AnomalyType.MEMORY,
        level=level,
        message=message,
        details=details,
    )


def _ok():
    return MagicMock(returncode=0, stdout="", stderr="")


def _failed(stderr="boom"):
    return MagicMock(returncode=1, stdout="", stderr=stderr)


class TestFormatting:
    def test_message_has_icon_and_details(self):
        text = format_message(_anomaly(details=("Used: 13.6 GB", "Free: 2.4 GB")))
        assert text.splitlines() == [
            "⚠️ Mem 85%: Safari (4GB)",
            "Used: 13.6 GB",
            "Free: 2.4 GB",
        ]

    def test_critical_icon(self):
        assert format_message(_anomaly(level=AlertLevel.CRITICAL)).startswith("🚨")

    def test_hammerspoon_command(self):
        cmd = hammerspoon_command(_anomaly(level=AlertLevel.CRITICAL), "#FF4444")
        assert cmd.startswith("hs.alert.show(")
        assert 'hex = "#FF4444"' in cmd
        assert cmd.endswith(", 15)")

    def test_hammerspoon_escapes_quotes(self):
        cmd = hammerspoon_command(_anomaly(message='say "hi"'), "#FFA500")
        assert '\\"hi\\"' in cmd
        assert cmd.endswith(", 10)")


class TestDesktopNotifier:
    @patch("sentinel.core.notifier.subprocess.run")
    def test_hammerspoon_first(self, mock_run):
        mock_run.return_value = _ok()
        DesktopNotifier(NotificationConfig()).send(_anomaly())

        assert mock_run.call_count == 1
        command = mock_run.call_args.args[0]
        assert command[:2] == ["hs", "-c"]
        assert "#FFA500" in command[2]

    @patch("sentinel.core.notifier.subprocess.run")
    def test_critical_uses_critical_color(self, mock_run):
        mock_run.return_value = _ok()
        DesktopNotifier(NotificationConfig()).send(_anomaly(level=AlertLevel.CRITICAL))
        assert "#FF4444" in mock_run.call_args.args[0][2]

    @patch("sentinel.core.notifier.subprocess.run")
    def test_falls_back_to_terminal_notifier(self, mock_run):
        mock_run.side_effect = [_failed("no hs"), _ok()]
        DesktopNotifier(NotificationConfig()).send(_anomaly(level=AlertLevel.CRITICAL))

        command = mock_run.call_args.args[0]
        assert command[0] == "terminal-notifier"
        assert command[command.index("-title") + 1] == "System Sentinel CRITICAL"
        assert command[command.index("-group") + 1] == "system-sentinel-memory"

    @patch("sentinel.core.notifier.subprocess.run")
    def test_missing_binary_falls_back(self, mock_run):
        mock_run.side_effect = [FileNotFoundError("hs"), _ok()]
        DesktopNotifier(NotificationConfig()).send(_anomaly())
        assert mock_run.call_count == 2

    @patch("sentinel.core.notifier.subprocess.run")
    def test_all_channels_fail(self, mock_run):
        mock_run.side_effect = [
            _failed("no hs"),
            subprocess.TimeoutExpired("terminal-notifier", 10),
        ]
        with pytest.raises(NotificationError) as exc_info:
            DesktopNotifier(NotificationConfig()).send(_anomaly())
        assert "no hs" in str(exc_info.value)
        assert "terminal-notifier" in str(exc_info.value)

    @patch("sentinel.core.notifier.subprocess.run")
    def test_hammerspoon_disabled(self, mock_run):
        mock_run.return_value = _ok()
        config = NotificationConfig(use_hammerspoon=False)
        DesktopNotifier(config).send(_anomaly())
        assert mock_run.call_args.args[0][0] == "terminal-notifier"

    @patch("sentinel.core.notifier.subprocess.run")
    def test_no_channels_enabled(self, mock_run):
        config = NotificationConfig(use_hammerspoon=False, fallback_to_terminal_notifier=False)
        DesktopNotifier(config).send(_anomaly())
        mock_run.assert_not_called()


class TestBuildNotifier:
    def test_disabled_logs_only(self, caplog):
        notifier = build_notifier(NotificationConfig(enabled=False))
        assert isinstance(notifier, LogNotifier)

        with caplog.at_level(logging.WARNING, logger="sentinel.notifier"):
            notifier.send(_anomaly())
        assert "Mem 85%" in caplog.text

    def test_enabled(self):
        assert isinstance(build_notifier(NotificationConfig()), DesktopNotifier)
