"""Telemetry host for sysdash: collects snapshots with psutil."""

import logging
import os
import platform
import threading
import time
from collections import deque
from queue import Queue

import psutil

from sysdash.errors import SnapshotFetchError
from sysdash.models import DiskRecord, HostError, NetworkInterface, ProcessEntry, Snapshot

logger = logging.getLogger(__name__)

HISTORY_LENGTH = 100
TOP_PROCESS_COUNT = 15
_MIN_RATE_INTERVAL = 0.001  # seconds
_BYTES_PER_MB = 1024 * 1024

HostEvent = Snapshot | HostError


class CounterRate:
    """
    Turns a pair of cumulative byte counters into KB/s rates.

    Keeps a short rolling history of each rate. The first update has no
    baseline and records 0; updates closer together than a millisecond
    repeat the previous rate instead of dividing by a tiny interval.
    """

    def __init__(self, history_length: int = HISTORY_LENGTH) -> None:
        self.first_rate = 0.0
        self.second_rate = 0.0
        self.first_history: deque[float] = deque(maxlen=history_length)
        self.second_history: deque[float] = deque(maxlen=history_length)
        self._last_totals: tuple[int, int] = (0, 0)
        self._last_time: float | None = None

    def update(self, first_total: int, second_total: int, now: float) -> None:
        """Record new counter totals observed at monotonic time ``now``."""
        if self._last_time is None:
            self.first_history.append(0.0)
            self.second_history.append(0.0)
        else:
            elapsed = now - self._last_time
            if elapsed > _MIN_RATE_INTERVAL:
                first_delta = max(0, first_total - self._last_totals[0])
                second_delta = max(0, second_total - self._last_totals[1])
                self.first_rate = first_delta / elapsed / 1024
                self.second_rate = second_delta / elapsed / 1024
                self.first_history.append(self.first_rate)
                self.second_history.append(self.second_rate)
            else:
                self.first_history.append(self.first_history[-1] if self.first_history else 0.0)
                self.second_history.append(self.second_history[-1] if self.second_history else 0.0)
        self._last_totals = (first_total, second_total)
        self._last_time = now


class SystemMonitor:
    """
    Telemetry host that collects system snapshots using psutil.

    Runs in a separate daemon thread and pushes Snapshot or HostError events
    to a thread-safe Queue. Handles AccessDenied and ZombieProcess errors
    per process; any other collection failure is logged and reported as a
    HostError without stopping the loop.
    """

    def __init__(
        self,
        update_queue: Queue[HostEvent],
        poll_rate: float = 1.0,
        top_process_count: int = TOP_PROCESS_COUNT,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push events to.
            poll_rate: How often to poll the system (in seconds). Default 1.0s.
            top_process_count: How many of the busiest processes to report.
        """
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._top_process_count = top_process_count
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._cpu_history: deque[list[float]] = deque(maxlen=HISTORY_LENGTH)
        self._memory_history: deque[float] = deque(maxlen=HISTORY_LENGTH)
        self._disk_rates: dict[str, CounterRate] = {}
        self._network_rates: dict[str, CounterRate] = {}
        self._system_disk_rate = CounterRate()
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()
        logger.info("Monitor started (poll rate %.1fs)", self._poll_rate)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def fetch_snapshot(self) -> Snapshot:
        """
        Collect one snapshot on demand.

        Raises:
            SnapshotFetchError: The system could not be queried.
        """
        try:
            return self._collect_snapshot()
        except (psutil.Error, OSError) as exc:
            raise SnapshotFetchError(f"Failed to collect system data: {exc}") from exc

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self._collect_snapshot())
            except Exception as exc:
                logger.exception("Snapshot collection failed")
                self._queue.put(HostError(f"Failed to collect system data: {exc}"))

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)

    def _collect_snapshot(self) -> Snapshot:
        """Collect a snapshot of the current system state."""
        with self._lock:
            now = time.monotonic()

            # Non-blocking, uses previous call's data
            cpu_percents = psutil.cpu_percent(percpu=True)
            self._cpu_history.append(cpu_percents)

            mem = psutil.virtual_memory()
            self._memory_history.append(min(100.0, max(0.0, mem.percent)))

            read_rate, write_rate = self._collect_system_disk_io(now)

            return Snapshot(
                cpu_usage=tuple(cpu_percents),
                cpu_history=self._per_core_history(len(cpu_percents)),
                memory_used=float(mem.used),
                memory_total=float(mem.total),
                memory_history=tuple(self._memory_history),
                processes=tuple(self._collect_processes()),
                network=self._collect_network(now),
                gpus=(),  # psutil exposes no GPU metrics
                disks=self._collect_disks(now),
                timestamp=time.time(),
                platform_name=platform_name(),
                system_disk_read_per_sec=read_rate,
                system_disk_write_per_sec=write_rate,
                system_disk_read_history=tuple(self._system_disk_rate.first_history),
                system_disk_write_history=tuple(self._system_disk_rate.second_history),
            )

    def _per_core_history(self, core_count: int) -> tuple[tuple[float, ...], ...]:
        return tuple(
            tuple(sample[core] for sample in self._cpu_history if core < len(sample))
            for core in range(core_count)
        )

    def _collect_system_disk_io(self, now: float) -> tuple[float, float]:
        counters = psutil.disk_io_counters(perdisk=False)
        if counters is None:
            return 0.0, 0.0
        rate = self._system_disk_rate
        rate.update(counters.read_bytes, counters.write_bytes, now)
        return rate.first_rate, rate.second_rate

    def _collect_disks(self, now: float) -> dict[str, DiskRecord]:
        """
        Collect per-partition capacity and I/O rates.

        Partitions whose usage cannot be read are still reported, without
        capacity, so the dashboard can show them as indeterminate.
        """
        io_counters = psutil.disk_io_counters(perdisk=True) or {}
        disks: dict[str, DiskRecord] = {}

        for part in psutil.disk_partitions(all=False):
            name = part.device or part.mountpoint
            if name in disks:
                continue  # Same device mounted twice

            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                usage = None

            read_rate = write_rate = None
            read_history: tuple[float, ...] = ()
            write_history: tuple[float, ...] = ()
            counters = io_counters.get(os.path.basename(part.device))
            if counters is not None:
                rate = self._disk_rates.setdefault(name, CounterRate())
                rate.update(counters.read_bytes, counters.write_bytes, now)
                read_rate, write_rate = rate.first_rate, rate.second_rate
                read_history = tuple(rate.first_history)
                write_history = tuple(rate.second_history)

            disks[name] = DiskRecord(
                name=name,
                total_space=float(usage.total) if usage else None,
                used_percentage=usage.percent if usage else None,
                used_space=float(usage.used) if usage else None,
                available_space=float(usage.free) if usage else None,
                mount_point=part.mountpoint,
                disk_type=part.fstype,
                read_bytes_per_sec=read_rate,
                write_bytes_per_sec=write_rate,
                read_history=read_history,
                write_history=write_history,
            )

        return disks

    def _collect_network(self, now: float) -> dict[str, NetworkInterface]:
        interfaces: dict[str, NetworkInterface] = {}
        for name, counters in psutil.net_io_counters(pernic=True).items():
            rate = self._network_rates.setdefault(name, CounterRate())
            rate.update(counters.bytes_recv, counters.bytes_sent, now)
            interfaces[name] = NetworkInterface(
                name=name,
                current_rx_speed=rate.first_rate,
                current_tx_speed=rate.second_rate,
                total_received=counters.bytes_recv,
                total_transmitted=counters.bytes_sent,
                rx_history=tuple(rate.first_history),
                tx_history=tuple(rate.second_history),
            )
        return interfaces

    def _collect_processes(self) -> list[ProcessEntry]:
        """
        Collect the busiest processes by CPU usage.

        Handles processes that die mid-poll, deny access, or are zombies by
        skipping them.
        """
        processes: list[ProcessEntry] = []

        for proc in psutil.process_iter(attrs=["pid", "name", "cpu_percent", "memory_info"]):
            try:
                info = proc.info
                mem_info = info.get("memory_info")
                processes.append(
                    ProcessEntry(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_mb=mem_info.rss // _BYTES_PER_MB if mem_info else 0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        processes.sort(key=lambda p: p.cpu_percent, reverse=True)
        return processes[: self._top_process_count]


def platform_name() -> str:
    """Friendly operating system name."""
    return {
        "Windows": "Windows",
        "Darwin": "macOS",
        "Linux": "Linux",
    }.get(platform.system(), "Unknown OS")
