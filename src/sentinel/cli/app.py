"""Typer CLI for System Sentinel."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from sentinel.config import SentinelConfig
from sentinel.core.bundles import human_name
from sentinel.logging_setup import setup_logging
from sentinel.models.runtime import BYTES_PER_GB, MetricsSnapshot

app = typer.Typer(
    name="sentinel",
    help="Low-overhead host health monitor with a live telemetry feed.",
    no_args_is_help=True,
)
console = Console(stderr=True)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config.toml"),
]


def _config(config_path: Path | None = None) -> SentinelConfig:
    return SentinelConfig.load(config_path)


def _gb(value: int) -> str:
    return f"{value / BYTES_PER_GB:.1f} GB"


def _print_snapshot(snap: MetricsSnapshot) -> None:
    from rich.table import Table

    growth = (
        f"{snap.memory_growth_rate:+.2f} GB/h"
        if snap.memory_growth_rate is not None
        else "unknown"
    )
    console.print(f"\n[bold]Host snapshot[/bold] at {snap.timestamp.isoformat()}")
    console.print(
        f"  Memory: {snap.memory_percent:.1f}% "
        f"({_gb(snap.memory_used)} / {_gb(snap.memory_total)})"
    )
    console.print(
        f"  Swap: {snap.swap_percent:.1f}% "
        f"({_gb(snap.swap_used)} / {_gb(snap.swap_total)})"
    )
    console.print(f"  Load: {snap.load_1m:.2f} {snap.load_5m:.2f} {snap.load_15m:.2f}")
    console.print(f"  Growth: {growth}")

    table = Table(title="Top Processes")
    table.add_column("PID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Memory", justify="right")
    table.add_column("CPU", justify="right")
    for p in snap.top_processes:
        table.add_row(str(p.pid), human_name(p), f"{p.memory_mb:.0f} MB", f"{p.cpu_usage:.1f}%")
    console.print(table)

    if snap.aggregated_processes:
        groups = Table(title="Applications")
        groups.add_column("Application", style="bold")
        groups.add_column("Memory", justify="right")
        groups.add_column("CPU", justify="right")
        for g in snap.aggregated_processes:
            groups.add_row(human_name(g), f"{g.memory_mb:.0f} MB", f"{g.cpu_usage:.1f}%")
        console.print(groups)


async def _serve(config: SentinelConfig) -> None:
    from sentinel.core.orchestrator import Sentinel

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass
    await Sentinel(config).run(stop)


@app.command()
def run(
    config_path: ConfigOption = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Run the monitor until interrupted."""
    from sentinel.core.server import TelemetryBindError

    config = _config(config_path)
    setup_logging(logging.DEBUG if verbose else config.general.log_level)
    logging.getLogger("sentinel").info(
        "System Sentinel starting (check interval %ds)",
        config.general.check_interval_seconds,
    )

    try:
        asyncio.run(_serve(config))
    except TelemetryBindError as exc:
        console.print(f"[red]Telemetry socket unavailable:[/red] {exc}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command()
def snapshot(
    config_path: ConfigOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print one JSON line")] = False,
) -> None:
    """Take one aggregated host snapshot."""
    from sentinel.core.collector import MetricsCollector

    setup_logging(_config(config_path).general.log_level)
    snap = MetricsCollector().collect_aggregated()
    if as_json:
        typer.echo(snap.to_json())
        return
    _print_snapshot(snap)


@app.command()
def watch(
    config_path: ConfigOption = None,
    count: Annotated[
        Optional[int], typer.Option("--count", "-n", help="Stop after N snapshots")
    ] = None,
) -> None:
    """Follow the live telemetry feed of a running monitor."""
    from sentinel.core.client import iter_snapshots

    config = _config(config_path)

    async def _follow() -> int:
        seen = 0
        async for snap in iter_snapshots(config.socket_path):
            seen += 1
            growth = (
                f"{snap.memory_growth_rate:+.2f}GB/h"
                if snap.memory_growth_rate is not None
                else "?"
            )
            console.print(
                f"[dim]{snap.timestamp.strftime('%H:%M:%S')}[/dim] "
                f"mem {snap.memory_percent:5.1f}%  swap {snap.swap_percent:5.1f}%  "
                f"load {snap.load_1m:5.2f}  growth {growth}"
            )
            if count is not None and seen >= count:
                break
        return seen

    try:
        asyncio.run(_follow())
    except (FileNotFoundError, ConnectionRefusedError):
        console.print(f"[red]No monitor listening on[/red] {config.socket_path}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command(name="config")
def show_config(config_path: ConfigOption = None) -> None:
    """Show the effective configuration."""
    from rich.table import Table

    config = _config(config_path)
    source = str(config.source) if config.source else "defaults"
    console.print(f"[bold]Configuration[/bold] ({source})")

    for section in ("general", "thresholds", "detection", "notification"):
        table = Table(title=section)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in asdict(getattr(config, section)).items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            table.add_row(key, str(value))
        console.print(table)


def main() -> None:
    """Entry point for the sentinel CLI."""
    app()


if __name__ == "__main__":
    main()
