"""Host metrics sampling, process-group aggregation and growth-trend estimation."""

from __future__ import annotations

import dataclasses
import logging
import subprocess
from collections import defaultdict, deque
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Protocol

import psutil

from sentinel.core.bundles import extract_app_name
from sentinel.models.runtime import (
    BYTES_PER_GB,
    MetricsSnapshot,
    ProcessRecord,
)

logger = logging.getLogger("sentinel.collector")

# 60 samples ~ 30 minutes at a 30s tick
HISTORY_SIZE = 60

TOP_PROCESSES = 10

# Below this the regression denominator is treated as degenerate
GROWTH_EPSILON = 1e-9

_PROCESS_ATTRS = ["pid", "ppid", "name", "memory_info", "cpu_percent", "exe"]


class ParentResolver(Protocol):
    """Best-effort source of parent links the OS process API does not expose."""

    def resolve(self, pids: Iterable[int]) -> dict[int, int]: ...


class NullParentResolver:
    """Resolver that knows nothing; aggregation falls back to psutil links."""

    def resolve(self, pids: Iterable[int]) -> dict[int, int]:
        return {}


class PsParentResolver:
    """Parent links from the system ``ps`` tool.

    ``ps`` runs with privileges that let it see parents of processes owned
    by other users, which psutil frequently cannot.
    """

    def __init__(
        self,
        command: Sequence[str] = ("ps", "-ax", "-o", "pid=,ppid="),
        timeout: float = 5.0,
    ) -> None:
        self._command = list(command)
        self._timeout = timeout

    def resolve(self, pids: Iterable[int]) -> dict[int, int]:
        try:
            result = subprocess.run(
                self._command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Parent map unavailable: %s", exc)
            return {}

        if result.returncode != 0:
            logger.debug("ps exited with %d, ignoring output", result.returncode)
            return {}
        return parse_ps_output(result.stdout, pids)


def parse_ps_output(text: str, pids: Iterable[int] | None = None) -> dict[int, int]:
    """Parse ``pid ppid`` lines. Headers, junk and ppid 0 are skipped."""
    wanted = set(pids) if pids is not None else None
    parents: dict[int, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        try:
            pid, ppid = int(parts[0]), int(parts[1])
        except ValueError:
            continue
        if ppid == 0:
            continue
        if wanted is not None and pid not in wanted:
            continue
        parents[pid] = ppid
    return parents


def _percent(used: int, total: int) -> float:
    return used / total * 100.0 if total > 0 else 0.0


def _sample_processes() -> list[ProcessRecord]:
    """Read the process table. Vanished or denied processes are skipped."""
    records: list[ProcessRecord] = []
    for proc in psutil.process_iter(attrs=_PROCESS_ATTRS, ad_value=None):
        try:
            info = proc.info
            mem_info = info.get("memory_info")
            records.append(
                ProcessRecord(
                    pid=info["pid"],
                    parent_pid=info.get("ppid") or None,
                    name=info.get("name") or "",
                    memory_bytes=mem_info.rss if mem_info else 0,
                    cpu_usage=info.get("cpu_percent") or 0.0,
                    exe=info.get("exe") or None,
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return records


def _load_average() -> tuple[float, float, float]:
    try:
        return psutil.getloadavg()
    except (AttributeError, OSError):
        logger.debug("Load average unavailable on this platform")
        return (0.0, 0.0, 0.0)


def estimate_growth_rate(
    history: Sequence[tuple[datetime, int]],
) -> float | None:
    """Least-squares slope of memory use in GB/hour, or None if unknown.

    x is hours since the oldest sample in the window, y is GB used.
    """
    n = len(history)
    if n < 2:
        return None

    oldest = history[0][0]
    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for timestamp, used in history:
        x = (timestamp - oldest).total_seconds() / 3600.0
        y = used / BYTES_PER_GB
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denominator = n * sum_xx - sum_x * sum_x
    if abs(denominator) < GROWTH_EPSILON:
        return None
    return (n * sum_xy - sum_x * sum_y) / denominator


def aggregate_groups(
    processes: Iterable[ProcessRecord],
    parent_map: dict[int, int] | None = None,
) -> list[ProcessRecord]:
    """Sum memory and CPU of every application's process subtree.

    Returns one synthetic group record per application, largest first.
    Each pid is counted at most once across the whole pass.
    """
    parent_map = parent_map or {}

    by_pid: dict[int, ProcessRecord] = {}
    for proc in processes:
        parent = parent_map.get(proc.pid, proc.parent_pid)
        if parent != proc.parent_pid:
            proc = dataclasses.replace(proc, parent_pid=parent)
        by_pid[proc.pid] = proc

    children: dict[int, list[int]] = defaultdict(list)
    for proc in by_pid.values():
        if proc.parent_pid is not None and proc.parent_pid != proc.pid:
            children[proc.parent_pid].append(proc.pid)

    # A bundle process is a root unless its parent runs from the same bundle
    roots: dict[str, list[int]] = {}
    root_owner: dict[int, str] = {}
    for proc in by_pid.values():
        app_name = extract_app_name(proc.exe)
        if app_name is None:
            continue
        parent = by_pid.get(proc.parent_pid) if proc.parent_pid is not None else None
        if parent is None or extract_app_name(parent.exe) != app_name:
            roots.setdefault(app_name, []).append(proc.pid)
            root_owner[proc.pid] = app_name

    visited: set[int] = set()
    groups: list[ProcessRecord] = []
    for app_name, root_pids in roots.items():
        total_bytes = 0
        total_cpu = 0.0
        stack = list(root_pids)
        while stack:
            pid = stack.pop()
            if pid in visited:
                continue
            visited.add(pid)
            proc = by_pid.get(pid)
            if proc is None:
                continue
            total_bytes += proc.memory_bytes
            total_cpu += proc.cpu_usage
            # Another application's root owns its own subtree
            stack.extend(
                child
                for child in children.get(pid, ())
                if root_owner.get(child, app_name) == app_name
            )

        if total_bytes > 0:
            groups.append(ProcessRecord.group(app_name, total_bytes, round(total_cpu, 1)))

    groups.sort(key=lambda g: g.memory_bytes, reverse=True)
    return groups


class MetricsCollector:
    """Samples host counters and keeps the rolling memory history.

    Owned by a single caller; not safe for concurrent use.
    """

    def __init__(
        self,
        parent_resolver: ParentResolver | None = None,
        history_size: int = HISTORY_SIZE,
        top_n: int = TOP_PROCESSES,
    ) -> None:
        self._resolver = parent_resolver if parent_resolver is not None else PsParentResolver()
        self._history: deque[tuple[datetime, int]] = deque(maxlen=history_size)
        self._top_n = top_n

    @property
    def history(self) -> tuple[tuple[datetime, int], ...]:
        return tuple(self._history)

    def growth_rate(self) -> float | None:
        return estimate_growth_rate(self._history)

    def collect(self) -> MetricsSnapshot:
        """Sample memory, swap, load and the top processes by memory."""
        snapshot, _ = self._sample()
        return snapshot

    def collect_aggregated(self) -> MetricsSnapshot:
        """Like collect(), plus per-application group totals."""
        snapshot, processes = self._sample()
        parent_map = self._resolver.resolve([p.pid for p in processes])
        if not parent_map:
            logger.debug("No parent map; using psutil parent links only")
        groups = aggregate_groups(processes, parent_map)
        return dataclasses.replace(snapshot, aggregated_processes=tuple(groups))

    def _sample(self) -> tuple[MetricsSnapshot, list[ProcessRecord]]:
        now = datetime.now(timezone.utc)

        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        load_1m, load_5m, load_15m = _load_average()

        processes = _sample_processes()
        top = sorted(processes, key=lambda p: p.memory_bytes, reverse=True)[: self._top_n]

        self._history.append((now, mem.used))
        growth = self.growth_rate()

        memory_percent = _percent(mem.used, mem.total)
        swap_percent = _percent(swap.used, swap.total)
        logger.debug(
            "Metrics collected: mem=%.1f%%, swap=%.1f%%, load=%.1f",
            memory_percent, swap_percent, load_1m,
        )

        snapshot = MetricsSnapshot(
            timestamp=now,
            memory_total=mem.total,
            memory_used=mem.used,
            memory_free=mem.free,
            memory_percent=memory_percent,
            swap_total=swap.total,
            swap_used=swap.used,
            swap_percent=swap_percent,
            load_1m=load_1m,
            load_5m=load_5m,
            load_15m=load_15m,
            top_processes=tuple(top),
            memory_growth_rate=growth,
        )
        return snapshot, processes
