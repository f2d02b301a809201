"""Hardware sensor tree refresh and the psutil-backed sensor provider."""

from collections.abc import Callable, Iterator
from typing import Any

import psutil
import structlog

from pyvital.models import HardwareKind, Sensor, SensorKind, SensorNode, SensorRole

log = structlog.get_logger(__name__)


def refresh_tree(node: SensorNode) -> None:
    """
    Refresh a sensor tree depth-first, pre-order.

    A node is updated before any of its children, and each child subtree is
    fully refreshed before the next sibling.
    """
    node.update()
    for child in node.children:
        refresh_tree(child)


def iter_tree(node: SensorNode) -> Iterator[SensorNode]:
    """Yield ``node`` and its descendants in pre-order."""
    yield node
    for child in node.children:
        yield from iter_tree(child)


def find_node(root: SensorNode, kind: HardwareKind) -> SensorNode | None:
    """Return the first node of ``kind`` in pre-order, or None."""
    return next((n for n in iter_tree(root) if n.kind is kind), None)


# Chip name prefixes reported by Linux hwmon drivers
_CHIP_KINDS: list[tuple[str, HardwareKind]] = [
    ("coretemp", HardwareKind.CPU),
    ("k10temp", HardwareKind.CPU),
    ("k8temp", HardwareKind.CPU),
    ("zenpower", HardwareKind.CPU),
    ("cpu_thermal", HardwareKind.CPU),
    ("cpu-thermal", HardwareKind.CPU),
    ("nvidia", HardwareKind.GPU_NVIDIA),
    ("nouveau", HardwareKind.GPU_NVIDIA),
    ("amdgpu", HardwareKind.GPU_AMD),
    ("radeon", HardwareKind.GPU_AMD),
    ("i915", HardwareKind.GPU_INTEL),
    ("xe", HardwareKind.GPU_INTEL),
    ("nvme", HardwareKind.STORAGE),
    ("drivetemp", HardwareKind.STORAGE),
    ("iwlwifi", HardwareKind.NETWORK),
    ("acpitz", HardwareKind.MOTHERBOARD),
    ("nct", HardwareKind.MOTHERBOARD),
    ("it87", HardwareKind.MOTHERBOARD),
    ("thinkpad", HardwareKind.MOTHERBOARD),
    ("dell_smm", HardwareKind.MOTHERBOARD),
    ("asus", HardwareKind.MOTHERBOARD),
    ("spd5118", HardwareKind.MEMORY),
    ("jc42", HardwareKind.MEMORY),
]


def classify_chip(chip: str) -> HardwareKind:
    """Map an hwmon chip name to a hardware kind."""
    name = chip.lower()
    for prefix, kind in _CHIP_KINDS:
        if name.startswith(prefix):
            return kind
    return HardwareKind.CONTROLLER


def classify_role(kind: HardwareKind, label: str) -> SensorRole | None:
    """Infer the role of a temperature sensor from its driver label."""
    text = label.lower()
    if kind in (HardwareKind.GPU_AMD, HardwareKind.GPU_NVIDIA, HardwareKind.GPU_INTEL):
        if text in ("edge", "gpu", "gpu core") or not text:
            return SensorRole.CORE
        if text in ("junction", "hotspot"):
            return SensorRole.HOTSPOT
        if text == "mem":
            return SensorRole.MEMORY_JUNCTION
        return None
    if text.startswith(("package", "tctl", "tdie")):
        return SensorRole.PACKAGE
    if text.startswith("core"):
        return SensorRole.CORE
    return None


def _read(name: str) -> dict[str, list[Any]]:
    """Call a psutil sensor function if this platform has it."""
    func: Callable[[], dict[str, list[Any]]] | None = getattr(psutil, name, None)
    if func is None:
        return {}
    return func() or {}


class PsutilSensorTree:
    """
    Sensor-tree provider backed by psutil's hwmon readings.

    Topology is fixed when the provider is built: one child of the root per
    chip found then. Refreshing the root takes one psutil reading that the
    chip nodes copy from when they are refreshed in turn.
    """

    def __init__(
        self,
        read_temperatures: Callable[[], dict[str, list[Any]]] | None = None,
        read_fans: Callable[[], dict[str, list[Any]]] | None = None,
    ) -> None:
        self._read_temperatures = read_temperatures or (lambda: _read("sensors_temperatures"))
        self._read_fans = read_fans or (lambda: _read("sensors_fans"))
        self._temperatures: dict[str, list[Any]] = {}
        self._fans: dict[str, list[Any]] = {}

        self.root = SensorNode(HardwareKind.COMPUTER, "computer", on_update=self._take_reading)
        self._take_reading(self.root)
        chips = list(dict.fromkeys([*self._temperatures, *self._fans]))
        for chip in chips:
            node = self._build_chip(chip)
            self._copy_values(node)
            self.root.children.append(node)

        log.debug("sensor_tree_built", chips=chips)

    def _take_reading(self, _node: SensorNode) -> None:
        self._temperatures = self._read_temperatures()
        self._fans = self._read_fans()

    def _build_chip(self, chip: str) -> SensorNode:
        kind = classify_chip(chip)
        sensors = [
            Sensor(
                SensorKind.TEMPERATURE,
                entry.label or chip,
                role=classify_role(kind, entry.label or ""),
            )
            for entry in self._temperatures.get(chip, [])
        ]
        sensors += [
            Sensor(SensorKind.FAN, entry.label or chip) for entry in self._fans.get(chip, [])
        ]
        return SensorNode(kind, chip, sensors=sensors, on_update=self._copy_values)

    def _copy_values(self, node: SensorNode) -> None:
        temps = self._temperatures.get(node.name, [])
        fans = self._fans.get(node.name, [])
        readings = {
            SensorKind.TEMPERATURE: [entry.current for entry in temps],
            SensorKind.FAN: [entry.current for entry in fans],
        }
        positions = {SensorKind.TEMPERATURE: 0, SensorKind.FAN: 0}
        for sensor in node.sensors:
            index = positions[sensor.kind]
            positions[sensor.kind] += 1
            values = readings[sensor.kind]
            # A chip that vanished since startup leaves its sensors unsupported
            if index < len(values) and values[index] is not None:
                sensor.value = float(values[index])
            else:
                sensor.value = None
