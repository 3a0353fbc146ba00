"""Tests for MCP server tool functions."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from sentinel.models.runtime import MetricsSnapshot

GB = 1024 ** 3


def _snapshot():
    return MetricsSnapshot(
        timestamp=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
        memory_total=16 * GB,
        memory_used=12 * GB,
        memory_free=4 * GB,
        memory_percent=75.0,
        swap_total=0,
        swap_used=0,
        swap_percent=0.0,
        load_1m=1.0,
        load_5m=1.0,
        load_15m=1.0,
    )


class TestMcpToolsDirect:
    """Test the core logic that MCP tools use, without requiring mcp package."""

    @patch("sentinel.core.collector.psutil")
    def test_snapshot_flow(self, mock_psutil):
        from sentinel.core.collector import MetricsCollector, NullParentResolver
        from sentinel.mcp.formatters import format_snapshot

        mock_psutil.virtual_memory.return_value = MagicMock(total=16 * GB, used=12 * GB, free=4 * GB)
        mock_psutil.swap_memory.return_value = MagicMock(total=0, used=0)
        mock_psutil.getloadavg.return_value = (1.0, 1.0, 1.0)
        mock_psutil.process_iter.return_value = []

        snap = MetricsCollector(NullParentResolver()).collect_aggregated()
        out = format_snapshot(snap)
        assert "75.0%" in out
        assert "unknown" in out

    @pytest.mark.asyncio
    async def test_live_flow(self):
        from sentinel.core.client import read_snapshot
        from sentinel.mcp.formatters import format_snapshot

        async def fake_feed(socket_path):
            yield _snapshot()

        with patch("sentinel.core.client.iter_snapshots", fake_feed):
            snap = await read_snapshot("/tmp/unused.soc", timeout=1.0)

        assert "## Host Snapshot" in format_snapshot(snap)


class TestCreateServer:
    """Exercise the registered tools through FastMCP itself."""

    def _tools(self, config):
        pytest.importorskip("mcp")
        from sentinel.mcp.server import create_server

        server = create_server(config)
        return {tool.name: tool.fn for tool in server._tool_manager.list_tools()}

    def test_tools_registered(self, tmp_path):
        from sentinel.config import GeneralConfig, SentinelConfig

        config = SentinelConfig(general=GeneralConfig(socket_path=str(tmp_path / "none.soc")))
        assert set(self._tools(config)) == {"sentinel_snapshot", "sentinel_live"}

    def test_live_without_service(self, tmp_path):
        from sentinel.config import GeneralConfig, SentinelConfig

        config = SentinelConfig(general=GeneralConfig(socket_path=str(tmp_path / "none.soc")))
        live = self._tools(config)["sentinel_live"]
        out = asyncio.run(live(timeout=1.0))
        assert "No monitor listening" in out

    def test_live_timeout(self, tmp_path):
        from sentinel.config import GeneralConfig, SentinelConfig

        config = SentinelConfig(general=GeneralConfig(socket_path=str(tmp_path / "none.soc")))
        live = self._tools(config)["sentinel_live"]
        with patch("sentinel.core.client.read_snapshot", side_effect=asyncio.TimeoutError):
            out = asyncio.run(live(timeout=2.0))
        assert "No snapshot received within 2s" in out

    def test_snapshot_tool(self, tmp_path):
        from sentinel.config import SentinelConfig

        snapshot_tool = self._tools(SentinelConfig())["sentinel_snapshot"]
        with patch("sentinel.core.collector.MetricsCollector") as mock_cls:
            mock_cls.return_value.collect_aggregated.return_value = _snapshot()
            out = snapshot_tool()
        assert "75.0%" in out
