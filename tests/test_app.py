"""Tests for sysdash application."""

from unittest import mock

import pytest
from textual.logging import TextualHandler
from textual.widgets import DataTable

from sysdash.app import (
    DiskPanel,
    HeaderStats,
    NetworkPanel,
    ProcessTable,
    SysdashApp,
    main,
    render_bar,
    render_sparkline,
    render_trend,
)
from sysdash.history import TelemetryBuffer
from sysdash.models import DiskRecord, GpuRecord, NetworkInterface, ProcessEntry, Snapshot
from sysdash.processes import SortDirection, SortKey
from sysdash.scaling import AxisRange


def make_processes() -> list[ProcessEntry]:
    return [
        ProcessEntry(pid=100, name="test1", cpu_percent=10.0, memory_mb=100),
        ProcessEntry(pid=200, name="test2", cpu_percent=20.0, memory_mb=50),
    ]


def table_pids(app) -> list[str]:
    table = app.query_one("#process-table", DataTable)
    return [table.get_row_at(row)[0] for row in range(table.row_count)]


def test_render_sparkline():
    """Test sparklines are scaled to the axis range."""
    assert render_sparkline([], AxisRange(0, 100)) == ""
    assert render_sparkline([0.0, 50.0, 100.0], AxisRange(0, 100)) == "▁▅█"
    assert len(render_sparkline([1.0] * 50, None, width=10)) == 10


def test_render_sparkline_skips_non_finite():
    """Test non-finite samples are left out of the sparkline."""
    assert render_sparkline([0.0, float("nan"), 100.0], AxisRange(0, 100)) == "▁█"


def test_render_bar():
    """Test bars fill proportionally and clamp."""
    assert render_bar(50, "green", length=10).count("█") == 5
    assert render_bar(250, "red", length=10).count("█") == 10
    assert render_bar(-5, "red", length=10).count("█") == 0


def test_disk_describe_placeholder():
    """Test an indeterminate disk shows a placeholder line."""
    buffer = TelemetryBuffer()
    buffer.ingest(
        Snapshot(
            disks={
                "sda1": DiskRecord("sda1", total_space=None, mount_point="/"),
                "sdb1": DiskRecord("sdb1", total_space=1000.0, mount_point="/data"),
            }
        )
    )

    assert "Unable to determine disk capacity" in DiskPanel.describe("sda1", buffer)
    assert "Unable to determine disk usage" in DiskPanel.describe("sdb1", buffer)


def test_disk_describe_resolved():
    """Test a resolvable disk reports its usage percentage."""
    buffer = TelemetryBuffer()
    buffer.ingest(
        Snapshot(disks={"sda1": DiskRecord("sda1", total_space=1000.0, used_space=250.0, mount_point="/")})
    )

    line = DiskPanel.describe("sda1", buffer)

    assert "25.0%" in line
    assert "Unable" not in line


def test_disk_describe_includes_write_trend():
    """Test per-disk read and write histories are both shown."""
    buffer = TelemetryBuffer()
    for rate in (1.0, 5.0, 3.0):
        disk = DiskRecord(
            "sda1", total_space=1000.0, used_space=250.0, read_bytes_per_sec=rate, write_bytes_per_sec=rate
        )
        buffer.ingest(Snapshot(disks={"sda1": disk}))

    line = DiskPanel.describe("sda1", buffer)

    trend = render_trend(buffer.disk_write, "sda1")
    assert len(trend) == 3
    assert line.count(trend) == 2
    assert " W 3 KB/s " in line


def test_network_describe():
    """Test an interface line shows rates, trends and cumulative totals."""
    buffer = TelemetryBuffer()
    for rate in (0.0, 2048.0):
        interface = NetworkInterface(
            "eth0", current_rx_speed=rate, current_tx_speed=1.0, total_received=2048, total_transmitted=1024**3
        )
        buffer.ingest(Snapshot(network={"eth0": interface}))

    line = NetworkPanel.describe("eth0", buffer)

    assert line.startswith("eth0 ↓ 2.0 MB/s ")
    assert f" {render_trend(buffer.net_rx, 'eth0')} ↑ " in line
    assert len(render_trend(buffer.net_tx, "eth0")) == 2
    assert "total 2 KB in / 1 GB out" in line


def test_main_logs_through_textual():
    """Test logging is routed to Textual instead of the terminal."""
    with (
        mock.patch("sysdash.app.logging.basicConfig") as basic_config,
        mock.patch.object(SysdashApp, "run") as run,
    ):
        main()

    (handler,) = basic_config.call_args.kwargs["handlers"]
    assert isinstance(handler, TextualHandler)
    run.assert_called_once()


@pytest.mark.asyncio
async def test_app_creation():
    """Test SysdashApp can be instantiated."""
    app = SysdashApp()
    assert app.title == "sysdash"
    assert app.sub_title == "Live Hardware Telemetry"


@pytest.mark.asyncio
async def test_app_has_monitor():
    """Test SysdashApp has SystemMonitor initialized."""
    app = SysdashApp()
    assert app._monitor is not None
    assert app._update_queue is not None
    assert app.buffer.cpu.capacity == 100


@pytest.mark.asyncio
async def test_app_compose():
    """Test SysdashApp composes correctly."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        # Verify the app has the expected widgets
        assert pilot.app.query_one("#header-stats") is not None
        assert pilot.app.query_one("#disk-panel") is not None
        assert pilot.app.query_one("#network-panel") is not None
        assert pilot.app.query_one("#process-table") is not None
        assert pilot.app.query_one("#process-filter") is not None


@pytest.mark.asyncio
async def test_app_quit_binding():
    """Test that 'q' binding triggers quit."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        await pilot.press("q")
        # App should be exiting
        assert pilot.app._exit
        assert not pilot.app._monitor.is_running


@pytest.mark.asyncio
async def test_app_sort_binding():
    """Test that F6 binding cycles sort key."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)
        initial_sort = process_table.sort_key

        await pilot.press("f6")

        # Sort key should have changed
        assert process_table.sort_key != initial_sort


@pytest.mark.asyncio
async def test_app_reverse_binding():
    """Test that F7 flips the sort direction."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)
        assert process_table.sort_direction is SortDirection.DESC

        await pilot.press("f7")

        assert process_table.sort_key is SortKey.CPU
        assert process_table.sort_direction is SortDirection.ASC


@pytest.mark.asyncio
async def test_app_kill_binding_is_inert():
    """Test the kill binding leaves the app running."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        await pilot.press("k")

        assert not pilot.app._exit


@pytest.mark.asyncio
async def test_process_table_select_sort():
    """Test ProcessTable header-style sort selection."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)

        # Default should be CPU, descending
        assert process_table.sort_key == SortKey.CPU

        process_table.select_sort(SortKey.NAME)
        assert process_table.sort_key == SortKey.NAME
        assert process_table.sort_direction == SortDirection.ASC

        process_table.select_sort("name")
        assert process_table.sort_direction == SortDirection.DESC


@pytest.mark.asyncio
async def test_process_table_update_processes():
    """Test ProcessTable updates with new process data."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)

        process_table.update_processes(make_processes())

        assert table_pids(pilot.app) == ["200", "100"]
        assert [p.pid for p in process_table.visible_processes()] == [200, 100]


@pytest.mark.asyncio
async def test_process_table_removes_old_processes():
    """Test ProcessTable removes processes that no longer exist."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)
        process_table.update_processes(make_processes())

        # Update with only one process
        process_table.update_processes([ProcessEntry(200, "test2", 25.0, 50)])

        assert table_pids(pilot.app) == ["200"]


@pytest.mark.asyncio
async def test_process_table_filter():
    """Test the filter narrows the visible rows."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)
        process_table.update_processes(make_processes())

        process_table.set_filter("st2")

        assert process_table.filter_text == "st2"
        assert table_pids(pilot.app) == ["200"]

        process_table.set_filter("")
        assert len(table_pids(pilot.app)) == 2


@pytest.mark.asyncio
async def test_app_receives_updates_from_monitor():
    """Test that app receives updates from the system monitor."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        # Wait for at least one update cycle
        await pilot.pause(3)

        # Monitor should be running
        assert app._monitor.is_running
        assert app.buffer.snapshot_count >= 2

        # Process table should have data (from real system)
        assert len(table_pids(pilot.app)) > 0


@pytest.mark.asyncio
async def test_header_stats_update():
    """Test that header stats can be updated."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#header-stats", HeaderStats)

        buffer = TelemetryBuffer()
        buffer.ingest(
            Snapshot(
                cpu_usage=(10.0, 20.0),
                memory_used=8 * 1024**3,
                memory_total=16 * 1024**3,
                timestamp=1000.0,
                platform_name="Linux",
            )
        )

        header.update_stats(buffer)

        assert len(header._cpu_lines) == 2
        assert header._cpu_lines[0].startswith("CPU0")
        assert header._cpu_axis == AxisRange(0, 100)
        assert any(line.startswith("Mem") for line in header._summary_lines)
        assert any("Linux" in line for line in header._summary_lines)


@pytest.mark.asyncio
async def test_process_table_memory_trend():
    """Test each row shows both CPU and memory trends."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)
        buffer = TelemetryBuffer()
        for memory in (100, 300):
            buffer.ingest(Snapshot(processes=(ProcessEntry(100, "test1", 10.0, memory),)))

        process_table.update_processes(buffer.latest.processes, buffer.process_cpu, buffer.process_memory)

        table = pilot.app.query_one("#process-table", DataTable)
        row = table.get_row_at(0)
        key = (100, "test1")
        assert row[4] == render_trend(buffer.process_cpu, key)
        assert row[5] == render_trend(buffer.process_memory, key)
        assert len(row[5]) == 2


@pytest.mark.asyncio
async def test_header_shows_each_gpu():
    """Test identically named GPUs each get their own header line."""
    app = SysdashApp()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#header-stats", HeaderStats)
        buffer = TelemetryBuffer()
        for low, high in ((10.0, 90.0), (20.0, 80.0)):
            buffer.ingest(
                Snapshot(gpus=(GpuRecord("RTX", utilization=low), GpuRecord("RTX", utilization=high)))
            )

        header.update_stats(buffer)

        gpu_lines = [line for line in header._summary_lines if line.startswith("RTX")]
        assert len(gpu_lines) == 2
        assert gpu_lines[0].startswith("RTX 20.0%")
        assert gpu_lines[1].startswith("RTX 80.0%")
