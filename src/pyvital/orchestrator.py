"""Sampling orchestrator for pyvital."""

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import structlog

from pyvital.aggregator import MetricsAggregator
from pyvital.config import MIN_SAMPLE_INTERVAL
from pyvital.counters import CounterSource
from pyvital.errors import LogDestinationError
from pyvital.models import MetricSnapshot, SensorNode, SystemCounters
from pyvital.perflog import ThrottledLogger
from pyvital.sampler import ProcessSampler
from pyvital.sensors import refresh_tree

log = structlog.get_logger(__name__)

SENSOR_ERROR_TAG = "sensor_tree_unavailable"


class SensorTreeProvider(Protocol):
    """Anything exposing the root of a hardware sensor tree."""

    @property
    def root(self) -> SensorNode: ...


class Counters(Protocol):
    """Source of system-wide counter readings."""

    def read(self) -> SystemCounters: ...

    def total_memory_bytes(self) -> int: ...


class SamplingOrchestrator:
    """
    Drives sampling on a fixed interval and publishes snapshots to a sink.

    A daemon scheduler thread fires every ``interval`` seconds. Each fire
    runs one tick on a worker thread so a slow tick never delays the
    schedule. A fire that arrives while a tick is still running is dropped,
    not queued.

    ``stop()`` joins the scheduler, then waits for any in-flight tick before
    closing the performance log.
    """

    def __init__(
        self,
        sink: Callable[[MetricSnapshot], None],
        sensor_tree: SensorTreeProvider | None = None,
        counters: Counters | None = None,
        sampler_factory: Callable[[], ProcessSampler] = ProcessSampler,
        perf_logger: ThrottledLogger | None = None,
        interval: float = 2.0,
        top_n: int = 3,
        tick_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the SamplingOrchestrator.

        Args:
            sink: Receives every snapshot. Must not block.
            sensor_tree: Provider of the hardware sensor tree, if any.
            counters: System counter source. Defaults to ``CounterSource``.
            sampler_factory: Builds a fresh ProcessSampler on each ``start()``.
            perf_logger: Performance log. Defaults to a 5 second throttle.
            interval: Seconds between ticks (minimum 1.0).
            top_n: Number of processes kept in each snapshot.
            tick_timeout: Seconds after which an in-flight tick is reported
                as stalled, and how long ``stop()`` waits for it.
            clock: Monotonic time source in seconds.
        """
        self._sink = sink
        self._sensor_tree = sensor_tree
        self._counters = counters if counters is not None else CounterSource()
        self._sampler_factory = sampler_factory
        self._perf_logger = perf_logger if perf_logger is not None else ThrottledLogger()
        self._aggregator = MetricsAggregator(self._counters.total_memory_bytes())
        self._interval = max(MIN_SAMPLE_INTERVAL, interval)
        self._top_n = top_n
        self._tick_timeout = tick_timeout
        self._clock = clock

        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._sampler: ProcessSampler | None = None

        self._tick_lock = threading.Lock()
        self._in_flight = False
        self._tick_started = 0.0
        self._stall_reported = False
        self._worker: threading.Thread | None = None

        self._ticks_completed = 0
        self._ticks_dropped = 0
        self._last_snapshot: MetricSnapshot | None = None

    @property
    def interval(self) -> float:
        """Get the current sampling interval in seconds."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the sampling interval, effective from the next fire."""
        self._interval = max(MIN_SAMPLE_INTERVAL, value)

    def set_interval(self, seconds: float) -> float:
        """Change the sampling interval and return the effective value."""
        self.interval = seconds
        log.info("sample_interval_changed", interval=self._interval)
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if the scheduler thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> bool:
        """Check if a tick is currently running."""
        return self._in_flight

    @property
    def ticks_completed(self) -> int:
        """Ticks that published a snapshot."""
        return self._ticks_completed

    @property
    def ticks_dropped(self) -> int:
        """Fires skipped because a tick was still running."""
        return self._ticks_dropped

    @property
    def last_snapshot(self) -> MetricSnapshot | None:
        """The most recently published snapshot."""
        return self._last_snapshot

    @property
    def perf_logger(self) -> ThrottledLogger:
        return self._perf_logger

    @property
    def is_logging(self) -> bool:
        """Check if snapshots are being written to the performance log."""
        return self._perf_logger.is_logging

    def start(self, interval: float | None = None) -> None:
        """Start sampling. Does nothing if already running."""
        with self._lifecycle_lock:
            if self.is_running:
                return
            if interval is not None:
                self.interval = interval

            self._sampler = self._sampler_factory()
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._schedule_loop,
                daemon=True,
                name="SamplingOrchestrator",
            )
            self._thread.start()
        log.info("sampling_started", interval=self._interval, top_n=self._top_n)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop sampling and release per-session state.

        Args:
            timeout: How long to wait for the scheduler thread (seconds).
        """
        with self._lifecycle_lock:
            self._stop_event.set()
            if self._thread is not None:
                self._thread.join(timeout=timeout)
                self._thread = None

            worker = self._worker
            if worker is not None and worker is not threading.current_thread():
                worker.join(timeout=self._tick_timeout)
                if worker.is_alive():
                    log.warning("tick_still_running_at_stop", timeout=self._tick_timeout)

            self._perf_logger.stop()
            self._sampler = None
        log.info(
            "sampling_stopped",
            ticks_completed=self._ticks_completed,
            ticks_dropped=self._ticks_dropped,
        )

    def start_logging(self, path: str | Path) -> None:
        """
        Start writing snapshots to the performance log at ``path``.

        Raises:
            LogDestinationError: If the file cannot be opened.
        """
        self._perf_logger.start(path)

    def stop_logging(self) -> None:
        """Stop writing to the performance log."""
        self._perf_logger.stop()

    def fire(self) -> bool:
        """
        Launch a tick now unless one is already running.

        Returns:
            True if a tick was started, False if the fire was dropped or the
            orchestrator is not running.
        """
        sampler = self._sampler
        if sampler is None:
            return False

        with self._tick_lock:
            if self._in_flight:
                self._ticks_dropped += 1
                log.debug("tick_dropped", dropped=self._ticks_dropped)
                return False
            self._in_flight = True
            self._tick_started = self._clock()
            self._stall_reported = False
            self._worker = threading.Thread(
                target=self._run_tick,
                args=(sampler,),
                daemon=True,
                name="SamplingTick",
            )
            worker = self._worker

        try:
            worker.start()
        except RuntimeError:
            with self._tick_lock:
                self._in_flight = False
            raise
        return True

    def _schedule_loop(self) -> None:
        """Scheduler loop running in the background thread."""
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.fire()
            except Exception:
                log.exception("tick_launch_failed")
            self._check_stalled()

    def _check_stalled(self) -> None:
        with self._tick_lock:
            if not self._in_flight or self._stall_reported:
                return
            elapsed = self._clock() - self._tick_started
            if elapsed < self._tick_timeout:
                return
            self._stall_reported = True
        log.warning("tick_stalled", elapsed=round(elapsed, 3), timeout=self._tick_timeout)

    def _run_tick(self, sampler: ProcessSampler) -> None:
        try:
            self._tick(sampler)
        except LogDestinationError as exc:
            log.warning("performance_log_aborted", path=exc.path, error=exc.reason)
        except Exception:
            # Keep the schedule alive across any failure inside a tick
            log.exception("tick_failed")
        finally:
            with self._tick_lock:
                self._in_flight = False

    def _tick(self, sampler: ProcessSampler) -> None:
        """Refresh, sample, aggregate, publish and log one snapshot."""
        error = None
        root = None
        if self._sensor_tree is not None:
            try:
                root = self._sensor_tree.root
                refresh_tree(root)
            except Exception as exc:
                log.warning("sensor_tree_refresh_failed", error=str(exc))
                root = None
                error = SENSOR_ERROR_TAG

        counters = self._counters.read()
        processes = sampler.sample(self._top_n)
        count = 0 if any(p.error for p in processes) else sampler.process_count()

        snapshot = self._aggregator.aggregate(root, counters, processes, count, error)
        self._last_snapshot = snapshot
        self._sink(snapshot)
        self._ticks_completed += 1

        if self._perf_logger.is_logging:
            self._perf_logger.record(snapshot)
