"""Per-process CPU sampling for pyvital."""

import time
from collections.abc import Callable, Iterable
from typing import Any

import psutil
import structlog

from pyvital.models import ProcessBaseline, ProcessMetric

log = structlog.get_logger(__name__)

MB = 1024 * 1024

ENUMERATION_ERROR_NAME = "Error retrieving processes"


class ProcessSampler:
    """
    Turns cumulative per-process CPU time into a CPU percentage.

    Each call to ``sample()`` compares a process's user + system time against
    the reading taken on the previous call. The baseline table is pruned on
    every call so it only holds pids seen in the latest enumeration.

    Not thread-safe; the orchestrator runs at most one tick at a time.
    """

    def __init__(
        self,
        process_iter: Callable[[], Iterable[Any]] = psutil.process_iter,
        pids: Callable[[], list[int]] = psutil.pids,
        clock: Callable[[], float] = time.monotonic,
        core_count: int | None = None,
    ) -> None:
        """
        Initialize the ProcessSampler.

        Args:
            process_iter: Returns the live processes. Each item must behave
                like ``psutil.Process``.
            pids: Returns the live pids, used by ``process_count()``.
            clock: Monotonic time source in seconds.
            core_count: Logical CPU count. Defaults to ``psutil.cpu_count()``.
        """
        self._process_iter = process_iter
        self._pids = pids
        self._clock = clock
        self._core_count = max(1, core_count or psutil.cpu_count() or 1)
        self._baselines: dict[int, ProcessBaseline] = {}

    @property
    def core_count(self) -> int:
        """Number of logical CPUs used to normalize percentages."""
        return self._core_count

    @property
    def baseline_count(self) -> int:
        """Number of processes currently tracked."""
        return len(self._baselines)

    def has_baseline(self, pid: int) -> bool:
        """Check whether a baseline is held for ``pid``."""
        return pid in self._baselines

    def sample(self, top_n: int = 3) -> list[ProcessMetric]:
        """
        Sample all processes and return the top ``top_n`` entries.

        Entries are ranked by CPU percentage when any process used CPU since
        the last sample, otherwise by resident memory. If the process list
        cannot be read at all, a single error entry is returned.
        """
        try:
            processes = list(self._process_iter())
        except (psutil.Error, OSError) as exc:
            log.warning("process_enumeration_failed", error=str(exc))
            return [
                ProcessMetric(
                    pid=0,
                    name=ENUMERATION_ERROR_NAME,
                    cpu_percent=0.0,
                    memory_mb=0,
                    error=True,
                )
            ]

        live_pids: set[int] = set()
        metrics: list[ProcessMetric] = []

        for proc in processes:
            live_pids.add(proc.pid)
            try:
                with proc.oneshot():
                    name = proc.name() or ""
                    times = proc.cpu_times()
                    rss = proc.memory_info().rss
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Exited mid-poll or not ours to read
                continue

            cumulative = times.user + times.system
            now = self._clock()
            metrics.append(
                ProcessMetric(
                    pid=proc.pid,
                    name=name,
                    cpu_percent=self._cpu_percent(proc.pid, cumulative, now),
                    memory_mb=max(0, int(rss // MB)),
                )
            )

        self._evict(live_pids)
        return rank_processes(metrics, top_n)

    def process_count(self) -> int:
        """Return the number of running processes, or 0 if they cannot be listed."""
        try:
            return len(self._pids())
        except (psutil.Error, OSError) as exc:
            log.warning("process_count_failed", error=str(exc))
            return 0

    def _cpu_percent(self, pid: int, cumulative: float, now: float) -> float:
        """Compute CPU usage against the stored baseline and replace it."""
        previous = self._baselines.get(pid)
        if previous is None:
            self._baselines[pid] = ProcessBaseline(pid, now, cumulative)
            return 0.0

        wall_delta = now - previous.observed_at
        if wall_delta <= 0:
            # Keep the older baseline so observed_at stays strictly increasing
            return 0.0

        self._baselines[pid] = ProcessBaseline(pid, now, cumulative)
        cpu_delta = cumulative - previous.cumulative_cpu
        return max(0.0, 100.0 * cpu_delta / (wall_delta * self._core_count))

    def _evict(self, live_pids: set[int]) -> None:
        """Drop baselines for processes that no longer exist."""
        for pid in self._baselines.keys() - live_pids:
            del self._baselines[pid]


def rank_processes(metrics: list[ProcessMetric], top_n: int) -> list[ProcessMetric]:
    """
    Order metrics for display and keep the first ``top_n``.

    The sort key is chosen for the whole list: CPU percentage if any entry
    is above zero, resident memory otherwise. Ties keep input order.
    """
    if any(m.cpu_percent > 0 for m in metrics):
        ranked = sorted(metrics, key=lambda m: m.cpu_percent, reverse=True)
    else:
        ranked = sorted(metrics, key=lambda m: m.memory_mb, reverse=True)
    return ranked[: max(0, top_n)]
