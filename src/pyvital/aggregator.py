"""Aggregation of sensors, counters and process metrics into snapshots."""

from collections.abc import Callable, Sequence
from datetime import datetime

from pyvital.models import (
    HardwareKind,
    MetricSnapshot,
    ProcessMetric,
    Sensor,
    SensorKind,
    SensorNode,
    SensorRole,
    SystemCounters,
)
from pyvital.sensors import find_node

MB = 1024 * 1024

# First vendor found wins
GPU_PRIORITY = (HardwareKind.GPU_NVIDIA, HardwareKind.GPU_AMD, HardwareKind.GPU_INTEL)

GPU_CORE_LABEL = "gpu core"

PROCESS_ERROR_TAG = "process_enumeration_failed"


def cpu_temperature(root: SensorNode) -> float | None:
    """Return the first available CPU temperature reading."""
    cpu = find_node(root, HardwareKind.CPU)
    if cpu is None:
        return None
    for sensor in cpu.sensors:
        if sensor.kind is SensorKind.TEMPERATURE and sensor.value is not None:
            return sensor.value
    return None


def find_gpu(root: SensorNode) -> SensorNode | None:
    """Return the GPU node of the highest-priority vendor present."""
    for kind in GPU_PRIORITY:
        node = find_node(root, kind)
        if node is not None:
            return node
    return None


def gpu_core_sensor(gpu: SensorNode, kind: SensorKind) -> Sensor | None:
    """
    Pick the sensor of ``kind`` that reports the GPU core.

    A sensor tagged with the core role is preferred. Untagged providers fall
    back to matching the label, which skips hotspot and memory sensors.
    """
    candidates = [s for s in gpu.sensors if s.kind is kind]
    for sensor in candidates:
        if sensor.role is SensorRole.CORE:
            return sensor
    for sensor in candidates:
        if sensor.role is None and GPU_CORE_LABEL in sensor.label.lower():
            return sensor
    return None


class MetricsAggregator:
    """Packs one tick's readings into a ``MetricSnapshot``."""

    def __init__(
        self,
        total_memory_bytes: int,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        # Never divide by zero if total memory could not be queried
        self._total_memory = total_memory_bytes if total_memory_bytes > 0 else 1
        self._now = now

    @property
    def total_memory_bytes(self) -> int:
        return self._total_memory

    def aggregate(
        self,
        root: SensorNode | None,
        counters: SystemCounters,
        processes: Sequence[ProcessMetric],
        process_count: int = 0,
        error: str | None = None,
    ) -> MetricSnapshot:
        """
        Build a snapshot from refreshed sensors, counters and process metrics.

        Args:
            root: Refreshed sensor tree, or None when it was unavailable.
            counters: System counters read this tick.
            processes: Ranked process metrics from the sampler.
            process_count: Number of running processes.
            error: Tag describing a tick-level failure, if any.
        """
        cpu_temp = None
        gpu_usage = 0.0
        gpu_temp = None
        gpu = None
        if root is not None:
            cpu_temp = cpu_temperature(root)
            gpu = find_gpu(root)
        if gpu is not None:
            load = gpu_core_sensor(gpu, SensorKind.LOAD)
            temp = gpu_core_sensor(gpu, SensorKind.TEMPERATURE)
            if load is not None and load.value is not None:
                gpu_usage = load.value
            if temp is not None:
                gpu_temp = temp.value

        if error is None and any(p.error for p in processes):
            error = PROCESS_ERROR_TAG

        return MetricSnapshot(
            taken_at=self._now(),
            cpu_usage_percent=counters.cpu_usage_percent,
            cpu_temperature_c=cpu_temp,
            gpu_usage_percent=gpu_usage,
            gpu_temperature_c=gpu_temp,
            gpu_available=gpu is not None,
            ram_available_mb=counters.ram_available_mb,
            ram_used_percent=self.ram_used_percent(counters.ram_available_mb),
            disk_read_mbps=counters.disk_read_bytes_per_sec / MB,
            disk_write_mbps=counters.disk_write_bytes_per_sec / MB,
            top_processes=tuple(processes),
            process_count=process_count,
            error=error,
        )

    def ram_used_percent(self, available_mb: float) -> float:
        """Percentage of physical memory in use, clamped to 0-100."""
        used = (self._total_memory - available_mb * MB) / self._total_memory * 100
        return min(100.0, max(0.0, used))
