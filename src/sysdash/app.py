"""sysdash - Main Textual application."""

import logging
from collections.abc import Hashable, Iterable, Sequence
from queue import Empty, Queue

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Input, Static

from sysdash.config import DashboardConfig
from sysdash.errors import SnapshotFetchError
from sysdash.formatting import (
    cpu_usage_level,
    format_bytes,
    format_capacity,
    format_number,
    format_percent,
    format_rate,
    format_speed,
    format_time_ago,
    format_time_for_chart,
    memory_usage_level,
    temperature_level,
    truncate_text,
)
from sysdash.history import MEMORY_KEY, SYSTEM_DISK_KEY, HistoryStore, TelemetryBuffer
from sysdash.models import HostError, ProcessEntry, Series
from sysdash.monitor import HostEvent, SystemMonitor
from sysdash.normalizer import CAPACITY_INDETERMINATE, Unresolvable, resolve_disk_usage
from sysdash.processes import SortDirection, SortKey, SortState, project
from sysdash.scaling import AxisRange, Unit, estimate_range, finite_samples

logger = logging.getLogger(__name__)

SPARK_BLOCKS = "▁▂▃▄▅▆▇█"
SPARK_WIDTH = 30
TREND_WIDTH = 12

LEVEL_COLORS = {
    "low": "green",
    "normal": "green",
    "medium": "yellow",
    "high": "dark_orange",
    "critical": "red",
}


def render_sparkline(values: Sequence[float], axis: AxisRange | None, width: int = SPARK_WIDTH) -> str:
    """Render the trailing ``width`` samples as block characters scaled to ``axis``."""
    recent = finite_samples(values[-width:])
    if not recent:
        return ""
    if axis is None:
        low, high = min(recent), max(recent)
    else:
        low, high = axis
    if high <= low:
        high = low + 1.0
    top = len(SPARK_BLOCKS) - 1
    chars = []
    for value in recent:
        ratio = min(1.0, max(0.0, (value - low) / (high - low)))
        chars.append(SPARK_BLOCKS[round(ratio * top)])
    return "".join(chars)


def render_bar(percent: float, color: str, length: int = 20) -> str:
    """Render a percentage as a bracketed block bar."""
    filled = min(length, max(0, int(percent / (100 / length))))
    # Use escaped brackets for the bar container
    return f"\\[[{color}]{'█' * filled}[/{color}][dim]{'░' * (length - filled)}[/dim]]"


def time_span_label(series: Series) -> str:
    if not series.timestamps:
        return ""
    return f"{format_time_for_chart(series.timestamps[0])}-{format_time_for_chart(series.timestamps[-1])}"


def render_trend(
    store: HistoryStore, key: Hashable, unit: Unit = Unit.OTHER, window: int = 50, width: int = TREND_WIDTH
) -> str:
    """Sparkline of one stored series, scaled to its estimated range."""
    values = store.values(key)
    return render_sparkline(values, estimate_range(values, unit, window), width=width)


class HeaderStats(Static):
    """Header widget showing CPU, memory, network and disk I/O statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, range_window: int = 50, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._range_window = range_window
        self._cpu_lines: list[str] = []
        self._summary_lines: list[str] = []
        self._cpu_axis: AxisRange | None = None
        self._memory_axis: AxisRange | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_summary_info(), id="summary-info"),
        )

    def update_stats(self, buffer: TelemetryBuffer) -> None:
        """Rebuild the statistics from the telemetry buffer."""
        snapshot = buffer.latest
        if snapshot is None:
            return

        self._cpu_lines = []
        for index, usage in enumerate(snapshot.cpu_usage):
            color = LEVEL_COLORS[cpu_usage_level(usage)]
            history = buffer.cpu.values(index)
            axis = estimate_range(history, Unit.PERCENT, self._range_window)
            spark = render_sparkline(history, axis, width=TREND_WIDTH)
            self._cpu_lines.append(f"CPU{index:<2} {render_bar(usage, color)} {usage:5.1f}% {spark}")

        average = buffer.average_cpu()
        self._cpu_axis = estimate_range(average.values, Unit.PERCENT, self._range_window)
        memory = buffer.memory.series(MEMORY_KEY)
        self._memory_axis = estimate_range(memory.values, Unit.PERCENT, self._range_window)

        lines = []
        if average.values:
            lines.append(
                f"CPU avg {format_percent(average.values[-1])} "
                f"{render_sparkline(average.values, self._cpu_axis)}"
            )
        memory_percent = snapshot.memory_percent
        if memory_percent is not None:
            color = LEVEL_COLORS[memory_usage_level(memory_percent)]
            lines.append(
                f"Mem {render_bar(memory_percent, color)} "
                f"{format_bytes(snapshot.memory_used)}/{format_bytes(snapshot.memory_total)}"
            )
            lines.append(f"    {render_sparkline(memory.values, self._memory_axis)} {time_span_label(memory)}")

        rx_total = sum(i.current_rx_speed for i in snapshot.network.values())
        tx_total = sum(i.current_tx_speed for i in snapshot.network.values())
        lines.append(f"Net ↓ {format_speed(rx_total)}  ↑ {format_speed(tx_total)}")

        window = self._range_window
        lines.append(
            f"Disk R {format_rate(snapshot.system_disk_read_per_sec)} "
            f"{render_trend(buffer.system_disk_read, SYSTEM_DISK_KEY, window=window)}  "
            f"W {format_rate(snapshot.system_disk_write_per_sec)} "
            f"{render_trend(buffer.system_disk_write, SYSTEM_DISK_KEY, window=window)}"
        )

        for index, gpu in enumerate(snapshot.gpus):
            color = LEVEL_COLORS[temperature_level(gpu.temperature)]
            trend = render_trend(buffer.gpu_utilization, (index, gpu.name), Unit.PERCENT, window)
            lines.append(
                f"{escape(truncate_text(gpu.name))} {format_percent(gpu.utilization)} {trend} "
                f"[{color}]{gpu.temperature:.0f}°C[/{color}]"
            )

        lines.append(f"{escape(snapshot.platform_name)} · updated {format_time_ago(snapshot.timestamp)}")
        self._summary_lines = lines
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#summary-info", Static).update(self._get_summary_info())
        except NoMatches:
            logger.debug("Header not mounted yet")

    def _get_cpu_info(self) -> str:
        if not self._cpu_lines:
            return "Loading CPU info..."
        return "\n".join(self._cpu_lines)

    def _get_summary_info(self) -> str:
        if not self._summary_lines:
            return "Loading system info..."
        return "\n".join(self._summary_lines)


class DiskPanel(Static):
    """Per-disk capacity panel."""

    DEFAULT_CSS = """
    DiskPanel {
        height: auto;
        padding: 0 1;
        border-top: solid $primary;
    }
    """

    def update_disks(self, buffer: TelemetryBuffer) -> None:
        snapshot = buffer.latest
        if snapshot is None or not snapshot.disks:
            self.update("No disks reported")
            return
        self.update("\n".join(self.describe(name, buffer) for name in sorted(snapshot.disks)))

    @staticmethod
    def describe(name: str, buffer: TelemetryBuffer) -> str:
        """One display line for a disk, or a placeholder when usage is indeterminate."""
        disk = buffer.latest.disks[name]
        label = escape(f"{truncate_text(name)} ({disk.mount_point or '?'})")
        usage = resolve_disk_usage(disk)
        if isinstance(usage, Unresolvable):
            what = "capacity" if usage.reason == CAPACITY_INDETERMINATE else "usage"
            return f"{label} [dim]Unable to determine disk {what}[/dim]"

        color = LEVEL_COLORS[memory_usage_level(usage.usage_percent)]
        line = (
            f"{label} {render_bar(usage.usage_percent, color)} "
            f"{format_percent(usage.usage_percent)} "
            f"{format_capacity(usage.used_space)} used / {format_capacity(disk.total_space)} "
            f"({format_capacity(usage.available_space)} free)"
        )
        if name in buffer.disk_read or name in buffer.disk_write:
            line += (
                f"  R {format_rate(disk.read_bytes_per_sec)} {render_trend(buffer.disk_read, name)}"
                f" W {format_rate(disk.write_bytes_per_sec)} {render_trend(buffer.disk_write, name)}"
            )
        return line


class NetworkPanel(Static):
    """Per-interface throughput panel."""

    DEFAULT_CSS = """
    NetworkPanel {
        height: auto;
        padding: 0 1;
        border-top: solid $primary;
    }
    """

    def update_network(self, buffer: TelemetryBuffer) -> None:
        snapshot = buffer.latest
        if snapshot is None or not snapshot.network:
            self.update("No network interfaces reported")
            return
        self.update("\n".join(self.describe(name, buffer) for name in sorted(snapshot.network)))

    @staticmethod
    def describe(name: str, buffer: TelemetryBuffer) -> str:
        """Rates, rate trends and cumulative totals for one interface."""
        interface = buffer.latest.network[name]
        return (
            f"{escape(truncate_text(name))} "
            f"↓ {format_speed(interface.current_rx_speed)} {render_trend(buffer.net_rx, name)} "
            f"↑ {format_speed(interface.current_tx_speed)} {render_trend(buffer.net_tx, name)} "
            f"[dim]total {format_bytes(interface.total_received)} in / "
            f"{format_bytes(interface.total_transmitted)} out[/dim]"
        )


class ProcessTable(Container):
    """Container for the process filter and data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }

    ProcessTable Input {
        dock: bottom;
    }
    """

    COLUMNS = [
        ("PID", SortKey.PID, 8),
        ("Name", SortKey.NAME, 28),
        ("CPU%", SortKey.CPU, 8),
        ("Memory", SortKey.MEMORY, 12),
    ]

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._sort = SortState()
        self._filter_text = ""
        self._processes: tuple[ProcessEntry, ...] = ()
        self._cpu_history: HistoryStore | None = None
        self._memory_history: HistoryStore | None = None

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort.key

    @property
    def sort_direction(self) -> SortDirection:
        return self._sort.direction

    @property
    def filter_text(self) -> str:
        return self._filter_text

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")
        yield Input(placeholder="Filter by name or PID", id="process-filter")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        for label, key, width in self.COLUMNS:
            table.add_column(label, key=key.value, width=width)
        table.add_column("CPU trend", key="cpu_trend")
        table.add_column("Mem trend", key="memory_trend")

    def select_sort(self, key: SortKey | str) -> SortKey:
        """Select a sort column the way a header click does."""
        self._sort.select(key)
        self._render_rows()
        return self._sort.key

    def set_filter(self, text: str) -> None:
        self._filter_text = text
        self._render_rows()

    def update_processes(
        self,
        processes: Iterable[ProcessEntry],
        cpu_history: HistoryStore | None = None,
        memory_history: HistoryStore | None = None,
    ) -> None:
        """Update the process table with new data and the per-process histories."""
        self._processes = tuple(processes)
        self._cpu_history = cpu_history
        self._memory_history = memory_history
        self._render_rows()

    def visible_processes(self) -> list[ProcessEntry]:
        return project(self._processes, self._sort.key, self._sort.direction, self._filter_text)

    def on_input_changed(self, event: Input.Changed) -> None:
        self.set_filter(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.query_one("#process-table", DataTable).focus()

    def on_data_table_header_selected(self, event: DataTable.HeaderSelected) -> None:
        if event.column_key.value in {key.value for key in SortKey}:
            self.select_sort(event.column_key.value)

    def _render_rows(self) -> None:
        try:
            table = self.query_one("#process-table", DataTable)
        except NoMatches:
            return

        table.clear()
        for proc in self.visible_processes():
            table.add_row(
                str(proc.pid),
                Text(truncate_text(proc.name, 26)),
                f"{proc.cpu_percent:5.1f}",
                f"{format_number(int(proc.memory_mb))} MB",
                _trend(self._cpu_history, proc),
                _trend(self._memory_history, proc),
            )


def _trend(store: HistoryStore | None, proc: ProcessEntry) -> str:
    return "" if store is None else render_trend(store, proc.key)


class SysdashApp(App):
    """Main sysdash application."""

    TITLE = "sysdash"
    SUB_TITLE = "Live Hardware Telemetry"
    AUTO_FOCUS = "#process-table"

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

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #summary-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("f7", "reverse", "Reverse"),
        ("slash", "search", "Filter"),
        ("k", "kill", "Kill"),
    ]

    def __init__(self, config: DashboardConfig | None = None) -> None:
        """Initialize the SysdashApp."""
        super().__init__()
        self._config = config or DashboardConfig()
        self._update_queue: Queue[HostEvent] = Queue()
        self._monitor = SystemMonitor(
            self._update_queue,
            poll_rate=self._config.poll_rate,
            top_process_count=self._config.top_process_count,
        )
        self._buffer = TelemetryBuffer(
            capacity=self._config.history_capacity,
            process_stale_after=self._config.process_stale_after,
        )

    @property
    def buffer(self) -> TelemetryBuffer:
        return self._buffer

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats", range_window=self._config.range_window)
        yield DiskPanel(id="disk-panel")
        yield NetworkPanel(id="network-panel")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Fetch the first snapshot, then start the monitor."""
        self._buffer.begin_fetch()
        try:
            self._buffer.ingest(self._monitor.fetch_snapshot())
        except SnapshotFetchError as exc:
            self._report_error(str(exc))
        else:
            self._update_ui()

        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue, record every event, and refresh the UI once."""
        received = False
        while True:
            try:
                event = self._update_queue.get_nowait()
            except Empty:
                break
            if isinstance(event, HostError):
                self._report_error(event.message)
            else:
                self._buffer.ingest(event)
                received = True

        if received:
            self._update_ui()

    def _report_error(self, message: str) -> None:
        self._buffer.record_error(message)
        self.notify(message, title="Backend error", severity="error")

    def _update_ui(self) -> None:
        """Update the UI from the telemetry buffer."""
        snapshot = self._buffer.latest
        if snapshot is None:
            return
        self.query_one("#header-stats", HeaderStats).update_stats(self._buffer)
        self.query_one("#disk-panel", DiskPanel).update_disks(self._buffer)
        self.query_one("#network-panel", NetworkPanel).update_network(self._buffer)
        self.query_one(ProcessTable).update_processes(
            snapshot.processes, self._buffer.process_cpu, self._buffer.process_memory
        )

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        keys = list(SortKey)
        next_key = keys[(keys.index(process_table.sort_key) + 1) % len(keys)]
        process_table.select_sort(next_key)
        self.notify(f"Sort: {next_key.value.upper()} {process_table.sort_direction.value}")

    def action_reverse(self) -> None:
        """Toggle the direction of the current sort key."""
        process_table = self.query_one(ProcessTable)
        process_table.select_sort(process_table.sort_key)

    def action_search(self) -> None:
        self.query_one("#process-filter", Input).focus()

    def action_kill(self) -> None:
        """Placeholder: sysdash is read-only."""
        self.notify("Ending processes is not supported", severity="warning")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for sysdash application."""
    config = DashboardConfig.from_env()
    logging.basicConfig(level=config.log_level, handlers=[TextualHandler()])
    app = SysdashApp(config)
    app.run()


if __name__ == "__main__":
    main()
