"""pyvital - Textual dashboard."""

from pathlib import Path
from queue import Empty, Queue

import structlog
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Static

from pyvital.config import Settings, get_settings
from pyvital.errors import LogDestinationError
from pyvital.logger import configure_logging
from pyvital.models import MetricSnapshot, ProcessMetric
from pyvital.orchestrator import SamplingOrchestrator
from pyvital.perflog import ThrottledLogger
from pyvital.sensors import PsutilSensorTree

log = structlog.get_logger(__name__)


def format_temperature(value: float | None) -> str:
    """Format a temperature, or a placeholder when the sensor is missing."""
    if value is None:
        return "Not available"
    return f"{value:.1f}°C"


def usage_bar(percent: float, color: str) -> str:
    """Render a 20-cell usage bar with Rich markup."""
    bar_len = min(max(int(percent / 5), 0), 20)
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)


class HeaderStats(Static):
    """Header widget showing CPU, GPU, memory and disk statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: MetricSnapshot | None = None

    @property
    def snapshot(self) -> MetricSnapshot | None:
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_processor_info(), id="processor-info"),
            Static(self._get_memory_info(), id="memory-info"),
        )

    def update_stats(self, snapshot: MetricSnapshot) -> None:
        """Update the statistics from a metric snapshot."""
        self._snapshot = snapshot
        try:
            self.query_one("#processor-info", Static).update(self._get_processor_info())
            self.query_one("#memory-info", Static).update(self._get_memory_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_processor_info(self) -> str:
        snap = self._snapshot
        if snap is None:
            return "Loading CPU info..."
        lines = [
            f"CPU \\[{usage_bar(snap.cpu_usage_percent, 'green')}] {snap.cpu_usage_percent:5.1f}%",
            f"CPU Temperature: {format_temperature(snap.cpu_temperature_c)}",
        ]
        if snap.gpu_available:
            lines.append(
                f"GPU \\[{usage_bar(snap.gpu_usage_percent, 'magenta')}] "
                f"{snap.gpu_usage_percent:5.1f}%"
            )
            lines.append(f"GPU Temperature: {format_temperature(snap.gpu_temperature_c)}")
        else:
            lines.append("GPU: Not available")
        return "\n".join(lines)

    def _get_memory_info(self) -> str:
        snap = self._snapshot
        if snap is None:
            return "Loading memory info..."
        lines = [
            f"Mem \\[{usage_bar(snap.ram_used_percent, 'cyan')}] {snap.ram_used_percent:5.1f}%",
            f"Available Memory: {snap.ram_available_mb:.0f} MB",
            f"Disk Read: {snap.disk_read_mbps:.2f} MB/s  Write: {snap.disk_write_mbps:.2f} MB/s",
            f"Processes: {snap.process_count}",
        ]
        if snap.error:
            lines.append(f"[red]Error: {snap.error}[/red]")
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the top-process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._rows: list[ProcessMetric] = []

    @property
    def rows(self) -> list[ProcessMetric]:
        return list(self._rows)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name")
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("Memory", key="mem", width=10)

    def update_processes(self, processes: tuple[ProcessMetric, ...] | list[ProcessMetric]) -> None:
        """
        Replace the table contents with the given ranked processes.

        The list is already ranked and short, so rows are rebuilt each time.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in processes:
            if proc.error:
                table.add_row("", f"[red]{proc.name}[/red]", "", "")
                continue
            table.add_row(
                str(proc.pid),
                proc.name[:40],
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_mb} MB",
            )
        self._rows = list(processes)


class PyvitalApp(App):
    """Main pyvital application."""

    TITLE = "pyvital"
    SUB_TITLE = "System Vitals"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #processor-info {
        width: 1fr;
        padding-right: 2;
    }

    #memory-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("l", "toggle_log", "Log"),
        ("plus", "faster", "Faster"),
        ("minus", "slower", "Slower"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        orchestrator: SamplingOrchestrator | None = None,
    ) -> None:
        """Initialize the PyvitalApp."""
        super().__init__()
        self._settings = settings or get_settings()
        self._update_queue: Queue[MetricSnapshot] = Queue()
        self._orchestrator = orchestrator or SamplingOrchestrator(
            sink=self._update_queue.put_nowait,
            sensor_tree=PsutilSensorTree(),
            perf_logger=ThrottledLogger(self._settings.log_throttle_seconds),
            interval=self._settings.sample_interval_seconds,
            top_n=self._settings.top_n,
            tick_timeout=self._settings.tick_timeout_seconds,
        )

    @property
    def update_queue(self) -> Queue[MetricSnapshot]:
        return self._update_queue

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start sampling when the app is mounted."""
        self._orchestrator.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop sampling and close the performance log."""
        self._orchestrator.stop()

    def _check_for_updates(self) -> None:
        """Drain the queue and render the newest snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self.render_snapshot(snapshot)

    def render_snapshot(self, snapshot: MetricSnapshot) -> None:
        """Show a snapshot in the header and process table."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one(ProcessTable).update_processes(snapshot.top_processes)
        except Exception:
            log.exception("render_failed")

    def action_toggle_log(self) -> None:
        """Start or stop the performance log."""
        if self._orchestrator.is_logging:
            self._orchestrator.stop_logging()
            self.notify("Performance log stopped")
            return
        path = Path(self._settings.performance_log_path)
        try:
            self._orchestrator.start_logging(path)
        except LogDestinationError as exc:
            self.notify(str(exc), severity="error")
            return
        self.notify(f"Logging to {path}")

    def action_faster(self) -> None:
        """Shorten the sampling interval by one second."""
        interval = self._orchestrator.set_interval(self._orchestrator.interval - 1.0)
        self.notify(f"Interval: {interval:.0f}s")

    def action_slower(self) -> None:
        """Lengthen the sampling interval by one second."""
        interval = self._orchestrator.set_interval(self._orchestrator.interval + 1.0)
        self.notify(f"Interval: {interval:.0f}s")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._orchestrator.stop()
        self.exit()


def main() -> None:
    """Entry point for the pyvital application."""
    settings = get_settings()
    # Textual owns the terminal while the app runs
    configure_logging(settings.log_level, settings.log_format, handler=TextualHandler())
    app = PyvitalApp(settings)
    app.run()


if __name__ == "__main__":
    main()
