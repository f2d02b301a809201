"""Data models for pyvital."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class HardwareKind(Enum):
    """Kinds of hardware nodes in a sensor tree."""

    COMPUTER = "computer"
    CPU = "cpu"
    GPU_NVIDIA = "gpu_nvidia"
    GPU_AMD = "gpu_amd"
    GPU_INTEL = "gpu_intel"
    MEMORY = "memory"
    MOTHERBOARD = "motherboard"
    CONTROLLER = "controller"
    STORAGE = "storage"
    NETWORK = "network"


class SensorKind(Enum):
    """Kinds of readings a sensor can expose."""

    TEMPERATURE = "temperature"
    LOAD = "load"
    CLOCK = "clock"
    POWER = "power"
    FAN = "fan"


class SensorRole(Enum):
    """Structured role of a sensor within its hardware node."""

    CORE = "core"
    HOTSPOT = "hotspot"
    MEMORY_JUNCTION = "memory_junction"
    PACKAGE = "package"


@dataclass(slots=True)
class Sensor:
    """A single readable sensor. ``value`` is None when unsupported."""

    kind: SensorKind
    label: str
    value: float | None = None
    role: SensorRole | None = None


@dataclass(slots=True, eq=False)
class SensorNode:
    """
    A hardware node in a sensor tree.

    Nodes are owned by a sensor-tree provider. Consumers call ``update()``
    and read ``sensors``; they never change ``children``.
    """

    kind: HardwareKind
    name: str
    children: list["SensorNode"] = field(default_factory=list)
    sensors: list[Sensor] = field(default_factory=list)
    on_update: Callable[["SensorNode"], None] | None = None

    def update(self) -> None:
        """Refresh this node's own sensor values."""
        if self.on_update is not None:
            self.on_update(self)


@dataclass(slots=True, frozen=True)
class ProcessBaseline:
    """Previous cumulative CPU reading for one process."""

    pid: int
    observed_at: float  # Monotonic seconds
    cumulative_cpu: float  # Seconds of user + system time


@dataclass(slots=True, frozen=True)
class ProcessMetric:
    """Rate-normalized metrics for one process over the last tick."""

    pid: int
    name: str
    cpu_percent: float  # 0.0 - 100.0, normalized by core count
    memory_mb: int  # Resident set size
    error: bool = False


@dataclass(slots=True, frozen=True)
class SystemCounters:
    """System-wide counter readings for one tick."""

    cpu_usage_percent: float
    ram_available_mb: float
    disk_read_bytes_per_sec: float
    disk_write_bytes_per_sec: float


@dataclass(slots=True, frozen=True)
class MetricSnapshot:
    """Immutable aggregate of everything sampled in one tick."""

    taken_at: datetime
    cpu_usage_percent: float
    cpu_temperature_c: float | None
    gpu_usage_percent: float
    gpu_temperature_c: float | None
    gpu_available: bool
    ram_available_mb: float
    ram_used_percent: float
    disk_read_mbps: float
    disk_write_mbps: float
    top_processes: tuple[ProcessMetric, ...]
    process_count: int = 0
    error: str | None = None
