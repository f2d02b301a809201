"""Shared fakes for pyvital tests."""

from collections import namedtuple
from contextlib import nullcontext

import psutil
import pytest

from pyvital.models import SystemCounters

CpuTimes = namedtuple("CpuTimes", ["user", "system"])
MemInfo = namedtuple("MemInfo", ["rss"])

MB = 1024 * 1024


class FakeProcess:
    """Stand-in for psutil.Process with scripted readings."""

    def __init__(self, pid, name="proc", cpu=0.0, rss_mb=0, error=None):
        self.pid = pid
        self._name = name
        self.cpu = cpu
        self.rss_mb = rss_mb
        self.error = error

    def oneshot(self):
        return nullcontext()

    def _check(self):
        if self.error is not None:
            raise self.error

    def name(self):
        self._check()
        return self._name

    def cpu_times(self):
        self._check()
        return CpuTimes(user=self.cpu, system=0.0)

    def memory_info(self):
        self._check()
        return MemInfo(rss=self.rss_mb * MB)


class FakeProcessTable:
    """Scriptable process list used as ``process_iter`` and ``pids``."""

    def __init__(self, processes=None):
        self.processes = list(processes or [])
        self.fail_with = None

    def __call__(self):
        if self.fail_with is not None:
            raise self.fail_with
        return iter(self.processes)

    def pids(self):
        if self.fail_with is not None:
            raise self.fail_with
        return [p.pid for p in self.processes]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeCounters:
    """Counter source returning fixed readings."""

    def __init__(self, total_memory=16 * 1024 * MB, reading=None):
        self.total = total_memory
        self.reading = reading or SystemCounters(
            cpu_usage_percent=12.5,
            ram_available_mb=8192.0,
            disk_read_bytes_per_sec=2 * MB,
            disk_write_bytes_per_sec=MB / 2,
        )
        self.reads = 0

    def total_memory_bytes(self):
        return self.total

    def read(self):
        self.reads += 1
        return self.reading


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def process_table():
    return FakeProcessTable()


@pytest.fixture
def gone():
    """Factory for the errors psutil raises for vanished processes."""

    def make(pid):
        return psutil.NoSuchProcess(pid)

    return make
