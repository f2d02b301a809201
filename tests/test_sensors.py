"""Tests for sensor tree refresh and the psutil sensor provider."""

from collections import namedtuple

from pyvital.models import HardwareKind, Sensor, SensorKind, SensorNode, SensorRole
from pyvital.sensors import (
    PsutilSensorTree,
    classify_chip,
    classify_role,
    find_node,
    iter_tree,
    refresh_tree,
)

Temp = namedtuple("Temp", ["label", "current", "high", "critical"])
Fan = namedtuple("Fan", ["label", "current"])


def recording_node(name, calls, children=None, kind=HardwareKind.CONTROLLER):
    return SensorNode(
        kind,
        name,
        children=children or [],
        on_update=lambda node: calls.append(node.name),
    )


class TestRefreshTree:
    """Tests for refresh_tree."""

    def test_pre_order(self):
        """Test parents refresh before children and subtrees finish before siblings."""
        calls: list[str] = []
        root = recording_node(
            "root",
            calls,
            children=[
                recording_node("a", calls, children=[recording_node("a1", calls)]),
                recording_node("b", calls),
            ],
        )

        refresh_tree(root)

        assert calls == ["root", "a", "a1", "b"]

    def test_leaf_only_refreshes_itself(self):
        """Test a node without children performs only its own refresh."""
        calls: list[str] = []
        leaf = recording_node("leaf", calls)

        refresh_tree(leaf)

        assert calls == ["leaf"]

    def test_repeat_refresh(self):
        """Test refreshing twice visits every node once per call."""
        calls: list[str] = []
        root = recording_node("root", calls, children=[recording_node("a", calls)])

        refresh_tree(root)
        refresh_tree(root)

        assert calls == ["root", "a", "root", "a"]

    def test_node_without_hook(self):
        """Test nodes with no update hook are traversed without error."""
        root = SensorNode(HardwareKind.COMPUTER, "root", children=[SensorNode(HardwareKind.CPU, "cpu")])
        refresh_tree(root)

    def test_topology_untouched(self):
        """Test refresh never changes the children list."""
        calls: list[str] = []
        child = recording_node("a", calls)
        root = recording_node("root", calls, children=[child])

        refresh_tree(root)

        assert root.children == [child]


class TestTreeSearch:
    """Tests for tree iteration helpers."""

    def test_find_node_pre_order(self):
        """Test find_node returns the first match in pre-order."""
        first = SensorNode(HardwareKind.CPU, "first")
        second = SensorNode(HardwareKind.CPU, "second")
        root = SensorNode(
            HardwareKind.COMPUTER,
            "root",
            children=[SensorNode(HardwareKind.MOTHERBOARD, "mb", children=[first]), second],
        )

        assert find_node(root, HardwareKind.CPU) is first
        assert find_node(root, HardwareKind.GPU_AMD) is None
        assert [n.name for n in iter_tree(root)] == ["root", "mb", "first", "second"]


class TestClassification:
    """Tests for chip and role classification."""

    def test_classify_chip(self):
        """Test known hwmon drivers map to hardware kinds."""
        assert classify_chip("coretemp") is HardwareKind.CPU
        assert classify_chip("k10temp") is HardwareKind.CPU
        assert classify_chip("amdgpu") is HardwareKind.GPU_AMD
        assert classify_chip("nouveau") is HardwareKind.GPU_NVIDIA
        assert classify_chip("i915") is HardwareKind.GPU_INTEL
        assert classify_chip("nvme") is HardwareKind.STORAGE
        assert classify_chip("acpitz") is HardwareKind.MOTHERBOARD
        assert classify_chip("mystery") is HardwareKind.CONTROLLER

    def test_classify_gpu_roles(self):
        """Test GPU labels map to structured roles."""
        assert classify_role(HardwareKind.GPU_AMD, "edge") is SensorRole.CORE
        assert classify_role(HardwareKind.GPU_AMD, "junction") is SensorRole.HOTSPOT
        assert classify_role(HardwareKind.GPU_AMD, "mem") is SensorRole.MEMORY_JUNCTION
        assert classify_role(HardwareKind.GPU_NVIDIA, "") is SensorRole.CORE

    def test_classify_cpu_roles(self):
        """Test CPU labels map to structured roles."""
        assert classify_role(HardwareKind.CPU, "Package id 0") is SensorRole.PACKAGE
        assert classify_role(HardwareKind.CPU, "Tctl") is SensorRole.PACKAGE
        assert classify_role(HardwareKind.CPU, "Core 0") is SensorRole.CORE
        assert classify_role(HardwareKind.MOTHERBOARD, "temp1") is None


class TestPsutilSensorTree:
    """Tests for PsutilSensorTree."""

    def make_tree(self, temps, fans=None):
        readings = {"temps": temps, "fans": fans or {}}
        tree = PsutilSensorTree(
            read_temperatures=lambda: readings["temps"],
            read_fans=lambda: readings["fans"],
        )
        return tree, readings

    def test_builds_one_node_per_chip(self):
        """Test each chip becomes a classified child of the root."""
        tree, _ = self.make_tree(
            {
                "coretemp": [Temp("Package id 0", 45.0, 80.0, 100.0), Temp("Core 0", 44.0, 80.0, 100.0)],
                "amdgpu": [Temp("edge", 50.0, None, None)],
            },
            fans={"thinkpad": [Fan("", 2100)]},
        )

        kinds = [node.kind for node in tree.root.children]
        assert kinds == [HardwareKind.CPU, HardwareKind.GPU_AMD, HardwareKind.MOTHERBOARD]
        cpu = tree.root.children[0]
        assert [s.label for s in cpu.sensors] == ["Package id 0", "Core 0"]
        assert cpu.sensors[0].value == 45.0
        fan = tree.root.children[2].sensors[0]
        assert fan.kind is SensorKind.FAN
        assert fan.label == "thinkpad"
        assert fan.value == 2100.0

    def test_refresh_updates_values(self):
        """Test refreshing the tree copies a fresh reading into every sensor."""
        tree, readings = self.make_tree({"coretemp": [Temp("Core 0", 40.0, None, None)]})

        readings["temps"] = {"coretemp": [Temp("Core 0", 61.5, None, None)]}
        refresh_tree(tree.root)

        assert tree.root.children[0].sensors[0].value == 61.5

    def test_vanished_chip_reads_none(self):
        """Test sensors of a chip missing from a later reading become unsupported."""
        tree, readings = self.make_tree({"coretemp": [Temp("Core 0", 40.0, None, None)]})

        readings["temps"] = {}
        refresh_tree(tree.root)

        assert len(tree.root.children) == 1
        assert tree.root.children[0].sensors[0].value is None

    def test_empty_platform(self):
        """Test a platform with no sensors gives a bare root."""
        tree, _ = self.make_tree({})

        assert tree.root.kind is HardwareKind.COMPUTER
        assert tree.root.children == []

    def test_default_reader(self):
        """Test the real psutil provider builds without error."""
        tree = PsutilSensorTree()
        refresh_tree(tree.root)
        for node in iter_tree(tree.root):
            for sensor in node.sensors:
                assert isinstance(sensor, Sensor)
