"""System-wide counters: total CPU, available RAM and disk throughput."""

import time
from collections.abc import Callable

import psutil
import structlog

from pyvital.models import SystemCounters

log = structlog.get_logger(__name__)

MB = 1024 * 1024


class CounterSource:
    """
    Reads system-wide counters with psutil.

    Disk throughput is the change in cumulative read/write bytes since the
    previous ``read()`` divided by the elapsed time, so the first read
    reports zero.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_disk: tuple[float, int, int] | None = None
        # Prime cpu_percent (first call returns 0.0)
        psutil.cpu_percent(interval=None)

    def total_memory_bytes(self) -> int:
        """Return total physical memory, or 0 if it cannot be queried."""
        try:
            return int(psutil.virtual_memory().total)
        except (psutil.Error, OSError) as exc:
            log.warning("total_memory_unavailable", error=str(exc))
            return 0

    def read(self) -> SystemCounters:
        """Take one reading of all counters."""
        cpu = psutil.cpu_percent(interval=None)
        available_mb = psutil.virtual_memory().available / MB
        read_rate, write_rate = self._disk_rates()
        return SystemCounters(
            cpu_usage_percent=cpu,
            ram_available_mb=available_mb,
            disk_read_bytes_per_sec=read_rate,
            disk_write_bytes_per_sec=write_rate,
        )

    def _disk_rates(self) -> tuple[float, float]:
        io = psutil.disk_io_counters()
        if io is None:
            # No disks, or the platform hides the counters
            return 0.0, 0.0

        now = self._clock()
        previous = self._last_disk
        self._last_disk = (now, io.read_bytes, io.write_bytes)
        if previous is None:
            return 0.0, 0.0

        elapsed = now - previous[0]
        if elapsed <= 0:
            return 0.0, 0.0
        read_rate = max(0, io.read_bytes - previous[1]) / elapsed
        write_rate = max(0, io.write_bytes - previous[2]) / elapsed
        return read_rate, write_rate
