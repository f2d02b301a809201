"""Tests for the pyvital application."""

from datetime import datetime

import pytest

from pyvital.app import HeaderStats, ProcessTable, PyvitalApp, format_temperature, usage_bar
from pyvital.config import Settings
from pyvital.models import MetricSnapshot, ProcessMetric


def make_snapshot(**overrides) -> MetricSnapshot:
    fields = dict(
        taken_at=datetime(2024, 3, 1, 12, 0, 0),
        cpu_usage_percent=25.0,
        cpu_temperature_c=48.5,
        gpu_usage_percent=0.0,
        gpu_temperature_c=None,
        gpu_available=False,
        ram_available_mb=4096.0,
        ram_used_percent=75.0,
        disk_read_mbps=1.5,
        disk_write_mbps=0.25,
        top_processes=(
            ProcessMetric(pid=100, name="python", cpu_percent=12.0, memory_mb=300),
            ProcessMetric(pid=200, name="firefox", cpu_percent=3.5, memory_mb=900),
        ),
        process_count=180,
    )
    fields.update(overrides)
    return MetricSnapshot(**fields)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        sample_interval_seconds=1.0,
        performance_log_path=tmp_path / "perf.csv",
    )


def test_format_temperature():
    """Test temperatures format with one decimal and a placeholder when missing."""
    assert format_temperature(48.25) == "48.2°C"
    assert format_temperature(None) == "Not available"


def test_usage_bar_bounds():
    """Test the usage bar is always 20 cells."""
    for percent in (-5.0, 0.0, 50.0, 100.0, 250.0):
        bar = usage_bar(percent, "green")
        assert bar.count("█") + bar.count("░") == 20


@pytest.mark.asyncio
async def test_app_creation(settings):
    """Test PyvitalApp can be instantiated."""
    app = PyvitalApp(settings)
    assert app.title == "pyvital"
    assert app.sub_title == "System Vitals"
    assert app.update_queue is not None


@pytest.mark.asyncio
async def test_app_compose(settings):
    """Test PyvitalApp composes correctly."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#header-stats") is not None
        assert pilot.app.query_one("#process-table") is not None


@pytest.mark.asyncio
async def test_app_quit_binding(settings):
    """Test that 'q' stops sampling and quits."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert not app._orchestrator.is_running


@pytest.mark.asyncio
async def test_render_snapshot(settings):
    """Test a snapshot updates the header and process table."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        snapshot = make_snapshot()
        pilot.app.render_snapshot(snapshot)

        header = pilot.app.query_one("#header-stats", HeaderStats)
        table = pilot.app.query_one(ProcessTable)
        assert header.snapshot is snapshot
        assert [p.pid for p in table.rows] == [100, 200]


@pytest.mark.asyncio
async def test_render_error_entry(settings):
    """Test an enumeration error entry is shown without raising."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        sentinel = ProcessMetric(
            pid=0, name="Error retrieving processes", cpu_percent=0.0, memory_mb=0, error=True
        )
        pilot.app.render_snapshot(
            make_snapshot(top_processes=(sentinel,), process_count=0, error="process_enumeration_failed")
        )

        table = pilot.app.query_one(ProcessTable)
        assert table.rows[0].error is True


@pytest.mark.asyncio
async def test_toggle_log_binding(settings):
    """Test 'l' starts and stops the performance log."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        await pilot.press("l")
        assert app._orchestrator.is_logging

        await pilot.press("l")
        assert not app._orchestrator.is_logging

    assert settings.performance_log_path.exists()


@pytest.mark.asyncio
async def test_interval_bindings(settings):
    """Test '+' and '-' change the interval without going below one second."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        await pilot.press("minus")
        assert app._orchestrator.interval == 2.0

        await pilot.press("plus")
        await pilot.press("plus")
        assert app._orchestrator.interval == 1.0


@pytest.mark.asyncio
async def test_app_receives_updates(settings):
    """Test that the app renders snapshots from the orchestrator."""
    app = PyvitalApp(settings)
    async with app.run_test() as pilot:
        await pilot.pause(3)

        assert app._orchestrator.is_running
        header = pilot.app.query_one("#header-stats", HeaderStats)
        assert header.snapshot is not None
        assert len(pilot.app.query_one(ProcessTable).rows) > 0
