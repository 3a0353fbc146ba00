"""Markdown formatters for LLM-friendly output."""

from __future__ import annotations

from sentinel.core.bundles import human_name
from sentinel.models.runtime import BYTES_PER_GB, MetricsSnapshot, ProcessRecord


def _gb(value: int) -> str:
    return f"{value / BYTES_PER_GB:.1f} GB"


def format_processes(processes: tuple[ProcessRecord, ...], title: str) -> str:
    """Format process or group records as a markdown table."""
    if not processes:
        return f"### {title}\n\n*None*"

    lines = [
        f"### {title}",
        "",
        "| Name | PID | Memory | CPU |",
        "|------|-----|--------|-----|",
    ]
    for p in processes:
        pid = "group" if p.is_group else str(p.pid)
        lines.append(f"| {human_name(p)} | {pid} | {p.memory_mb:.0f} MB | {p.cpu_usage:.1f}% |")
    return "\n".join(lines)


def format_snapshot(snap: MetricsSnapshot) -> str:
    """Format a host snapshot as markdown."""
    growth = (
        f"{snap.memory_growth_rate:+.2f} GB/h"
        if snap.memory_growth_rate is not None
        else "unknown"
    )
    lines = [
        "## Host Snapshot",
        f"**Time:** {snap.timestamp.isoformat()}  ",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Memory | {snap.memory_percent:.1f}% ({_gb(snap.memory_used)} / {_gb(snap.memory_total)}) |",
        f"| Free | {_gb(snap.memory_free)} |",
        f"| Swap | {snap.swap_percent:.1f}% ({_gb(snap.swap_used)} / {_gb(snap.swap_total)}) |",
        f"| Load | {snap.load_1m:.2f} / {snap.load_5m:.2f} / {snap.load_15m:.2f} |",
        f"| Growth | {growth} |",
        "",
        format_processes(snap.top_processes, "Top Processes"),
        "",
        format_processes(snap.aggregated_processes, "Applications"),
    ]
    return "\n".join(lines)

