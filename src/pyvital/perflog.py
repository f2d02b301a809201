"""Throttled CSV performance log."""

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

import structlog

from pyvital.errors import LogDestinationError
from pyvital.models import MetricSnapshot

log = structlog.get_logger(__name__)

HEADER = "Timestamp,CPU Usage (%),CPU Temp (C),GPU Usage (%),GPU Temp (C),RAM Available (MB)"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_row(snapshot: MetricSnapshot) -> str:
    """Format a snapshot as one CSV row. Missing temperatures are left empty."""

    def temp(value: float | None) -> str:
        return "" if value is None else f"{value:.1f}"

    return ",".join(
        [
            snapshot.taken_at.strftime(TIMESTAMP_FORMAT),
            f"{snapshot.cpu_usage_percent:.1f}",
            temp(snapshot.cpu_temperature_c),
            f"{snapshot.gpu_usage_percent:.1f}",
            temp(snapshot.gpu_temperature_c),
            f"{snapshot.ram_available_mb:.0f}",
        ]
    )


class ThrottledLogger:
    """
    Appends snapshots to a CSV file, at most one row per throttle window.

    Snapshots recorded inside the window are dropped, not queued. ``start()``,
    ``record()`` and ``stop()`` share one lock so a stop from another thread
    never races a write.
    """

    def __init__(
        self,
        throttle_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the ThrottledLogger.

        Args:
            throttle_seconds: Minimum time between two written rows.
            clock: Monotonic time source in seconds.
        """
        self._throttle = throttle_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._file: TextIO | None = None
        self._path: Path | None = None
        self._last_write: float | None = None
        self._rows_written = 0

    @property
    def is_logging(self) -> bool:
        """Check if a log file is open."""
        return self._file is not None

    @property
    def path(self) -> Path | None:
        """Path of the current (or last) log file."""
        return self._path

    @property
    def rows_written(self) -> int:
        """Rows written since the last ``start()``."""
        return self._rows_written

    def start(self, path: str | Path) -> None:
        """
        Open ``path`` for appending and write the header row.

        Does nothing if logging is already active.

        Raises:
            LogDestinationError: If the file cannot be opened or written.
        """
        path = Path(path)
        with self._lock:
            if self._file is not None:
                return
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                handle = path.open("a", encoding="utf-8", newline="")
            except OSError as exc:
                raise LogDestinationError(str(path), str(exc)) from exc
            try:
                handle.write(HEADER + "\n")
                handle.flush()
            except OSError as exc:
                handle.close()
                raise LogDestinationError(str(path), str(exc)) from exc

            self._file = handle
            self._path = path
            self._last_write = None
            self._rows_written = 0
        log.info("performance_log_started", path=str(path))

    def record(self, snapshot: MetricSnapshot) -> bool:
        """
        Write ``snapshot`` if the throttle window has elapsed.

        Returns:
            True if a row was written.

        Raises:
            LogDestinationError: If the write fails. The session is closed.
        """
        with self._lock:
            if self._file is None:
                return False
            now = self._clock()
            if self._last_write is not None and now - self._last_write < self._throttle:
                return False
            try:
                self._file.write(format_row(snapshot) + "\n")
                self._file.flush()
            except OSError as exc:
                self._close()
                raise LogDestinationError(str(self._path), str(exc)) from exc
            self._last_write = now
            self._rows_written += 1
            return True

    def stop(self) -> None:
        """Flush and close the log file. Safe to call when not logging."""
        with self._lock:
            if self._file is None:
                return
            self._close()
        log.info("performance_log_stopped", path=str(self._path), rows=self._rows_written)

    def _close(self) -> None:
        handle, self._file = self._file, None
        if handle is None:
            return
        try:
            handle.flush()
            handle.close()
        except OSError as exc:
            log.warning("performance_log_close_failed", path=str(self._path), error=str(exc))
