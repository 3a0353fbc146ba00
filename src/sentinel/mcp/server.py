"""FastMCP server factory exposing host health to AI agents."""

from __future__ import annotations

import asyncio

from sentinel.config import SentinelConfig
from sentinel.mcp.formatters import format_snapshot


def create_server(config: SentinelConfig | None = None):
    """Create and return a configured FastMCP server instance.

    Args:
        config: Optional pre-loaded config. If None, loads from the default path.
    """
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP("sentinel", instructions="Host health monitoring for AI agents")
    _config = config or SentinelConfig.load()

    @mcp.tool()
    def sentinel_snapshot() -> str:
        """Take a one-shot host snapshot: memory, swap, load, top processes
        and per-application totals.

        CPU figures are near zero on a one-shot sample; use sentinel_live
        when the monitor service is running.
        """
        from sentinel.core.collector import MetricsCollector

        try:
            snap = MetricsCollector().collect_aggregated()
        except OSError as exc:
            return f"Error sampling host: {exc}"
        return format_snapshot(snap)

    @mcp.tool()
    async def sentinel_live(timeout: float = 60.0) -> str:
        """Latest snapshot pushed by the running monitor service.

        Args:
            timeout: Seconds to wait for the next snapshot (default 60)
        """
        from sentinel.core.client import read_snapshot

        try:
            snap = await read_snapshot(_config.socket_path, timeout=timeout)
        except (FileNotFoundError, ConnectionRefusedError):
            return f"No monitor listening on {_config.socket_path}. Start it with `sentinel run`."
        except asyncio.TimeoutError:
            return f"No snapshot received within {timeout:.0f}s."
        except OSError as exc:
            return f"Error reading telemetry: {exc}"
        if snap is None:
            return "Monitor closed the connection before sending a snapshot."
        return format_snapshot(snap)

    return mcp


def main() -> None:
    """Entry point for sentinel-mcp (stdio transport)."""
    server = create_server()
    server.run()


if __name__ == "__main__":
    main()
