"""Rolling per-entity metric histories fed by host snapshots."""

import logging
import math
import time
from collections import deque
from collections.abc import Hashable, Iterable
from enum import Enum

from sysdash.models import Series, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
SAMPLE_SPACING_SECONDS = 1.0

MEMORY_KEY = "memory"
SYSTEM_DISK_KEY = "system"


def synthesize_timestamps(length: int, now: float | None = None) -> tuple[float, ...]:
    """
    Timestamps for a series without host-supplied times.

    The newest sample is pinned to ``now`` and the rest are spaced one second
    apart going back, so the oldest retained sample gets the earliest time.
    """
    if now is None:
        now = time.time()
    return tuple(now - (length - index - 1) * SAMPLE_SPACING_SECONDS for index in range(length))


class HistoryStore:
    """
    Capacity-bounded sample series keyed by entity.

    Series are created on first append and evicted oldest-first once full.
    Non-finite samples are rejected: ``append`` returns False and nothing is
    recorded. With ``stale_after`` set, :meth:`sweep` drops keys that have
    gone unobserved for that many consecutive sweeps.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, stale_after: int | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._stale_after = stale_after if stale_after else None
        self._values: dict[Hashable, deque[float]] = {}
        self._timestamps: dict[Hashable, deque[float | None]] = {}
        self._missed: dict[Hashable, int] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def keys(self) -> list[Hashable]:
        """Tracked keys in first-observed order."""
        return list(self._values)

    def append(self, key: Hashable, value: float, timestamp: float | None = None) -> bool:
        """Add one sample to the series for ``key``."""
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            logger.debug("Rejected non-finite sample %r for %r", value, key)
            return False

        values = self._values.get(key)
        if values is None:
            values = self._values[key] = deque(maxlen=self._capacity)
            self._timestamps[key] = deque(maxlen=self._capacity)
        values.append(float(value))
        self._timestamps[key].append(timestamp)
        self._missed[key] = 0
        return True

    def values(self, key: Hashable) -> tuple[float, ...]:
        """Samples for ``key``, oldest first."""
        return tuple(self._values.get(key, ()))

    def series(self, key: Hashable, now: float | None = None) -> Series:
        """
        Copy of the series for ``key`` with one timestamp per sample.

        Host timestamps are used when every retained sample carried one;
        otherwise timestamps are synthesized relative to ``now``.
        """
        values = self._values.get(key)
        if values is None:
            return Series()
        stamps = self._timestamps[key]
        if all(stamp is not None for stamp in stamps):
            timestamps = tuple(stamps)
        else:
            timestamps = synthesize_timestamps(len(values), now)
        return Series(values=tuple(values), timestamps=timestamps)

    def sweep(self, observed: Iterable[Hashable]) -> list[Hashable]:
        """
        Age every key missing from ``observed`` and evict the stale ones.

        Returns:
            The evicted keys. Always empty when eviction is disabled.
        """
        if self._stale_after is None:
            return []

        seen = set(observed)
        evicted = []
        for key in list(self._values):
            if key in seen:
                self._missed[key] = 0
                continue
            missed = self._missed.get(key, 0) + 1
            if missed >= self._stale_after:
                del self._values[key]
                del self._timestamps[key]
                del self._missed[key]
                evicted.append(key)
            else:
                self._missed[key] = missed
        if evicted:
            logger.debug("Evicted %d stale series", len(evicted))
        return evicted


class FetchStatus(Enum):
    """State of the snapshot feed."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TelemetryBuffer:
    """
    Owns one HistoryStore per metric dimension and feeds them from snapshots.

    Per-core CPU series are keyed by core index, disks and interfaces by name,
    GPUs by name and processes by their (pid, name) composite key. Memory and
    system-wide disk I/O use the fixed keys ``MEMORY_KEY`` and
    ``SYSTEM_DISK_KEY``.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        process_stale_after: int | None = None,
    ) -> None:
        """
        Initialize the TelemetryBuffer.

        Args:
            capacity: Samples retained per series.
            process_stale_after: Snapshots a process may be absent before its
                series are dropped. None or 0 keeps them for the session.
        """
        self._capacity = capacity
        self._process_stale_after = process_stale_after
        self.reset()

    def reset(self) -> None:
        """Drop every series and return to the idle state."""
        capacity = self._capacity
        self.cpu = HistoryStore(capacity)
        self.memory = HistoryStore(capacity)
        self.disk_read = HistoryStore(capacity)
        self.disk_write = HistoryStore(capacity)
        self.system_disk_read = HistoryStore(capacity)
        self.system_disk_write = HistoryStore(capacity)
        self.net_rx = HistoryStore(capacity)
        self.net_tx = HistoryStore(capacity)
        self.gpu_utilization = HistoryStore(capacity)
        self.process_cpu = HistoryStore(capacity, stale_after=self._process_stale_after)
        self.process_memory = HistoryStore(capacity, stale_after=self._process_stale_after)
        self._latest: Snapshot | None = None
        self._status = FetchStatus.IDLE
        self._error: str | None = None
        self._snapshot_count = 0

    @property
    def latest(self) -> Snapshot | None:
        return self._latest

    @property
    def status(self) -> FetchStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def snapshot_count(self) -> int:
        return self._snapshot_count

    def begin_fetch(self) -> None:
        """Mark an initial snapshot request as in flight."""
        self._status = FetchStatus.LOADING
        self._error = None

    def ingest(self, snapshot: Snapshot) -> None:
        """Append every per-entity sample carried by ``snapshot``."""
        for index, usage in enumerate(snapshot.cpu_usage):
            host_history = snapshot.cpu_history[index] if index < len(snapshot.cpu_history) else ()
            if index not in self.cpu and host_history:
                # Seed a new core from the host history, which ends with the current sample
                for sample in host_history:
                    self.cpu.append(index, sample)
            else:
                self.cpu.append(index, usage)

        memory_percent = snapshot.memory_percent
        if memory_percent is not None:
            self.memory.append(MEMORY_KEY, memory_percent)

        for name, disk in snapshot.disks.items():
            if disk.read_bytes_per_sec is not None:
                self.disk_read.append(name, disk.read_bytes_per_sec)
            if disk.write_bytes_per_sec is not None:
                self.disk_write.append(name, disk.write_bytes_per_sec)
        self.system_disk_read.append(SYSTEM_DISK_KEY, snapshot.system_disk_read_per_sec)
        self.system_disk_write.append(SYSTEM_DISK_KEY, snapshot.system_disk_write_per_sec)

        for name, interface in snapshot.network.items():
            self.net_rx.append(name, interface.current_rx_speed)
            self.net_tx.append(name, interface.current_tx_speed)

        for index, gpu in enumerate(snapshot.gpus):
            self.gpu_utilization.append((index, gpu.name), gpu.utilization)

        observed = []
        for process in snapshot.processes:
            key = process.key
            self.process_cpu.append(key, process.cpu_percent, snapshot.timestamp)
            self.process_memory.append(key, process.memory_mb, snapshot.timestamp)
            observed.append(key)
        self.process_cpu.sweep(observed)
        self.process_memory.sweep(observed)

        self._latest = snapshot
        self._snapshot_count += 1
        self._status = FetchStatus.SUCCEEDED
        self._error = None

    def record_error(self, message: str) -> None:
        """Record a transport failure without advancing any series."""
        logger.warning("Telemetry host error: %s", message)
        self._status = FetchStatus.FAILED
        self._error = message

    def clear_error(self) -> None:
        self._error = None

    def average_cpu(self, now: float | None = None) -> Series:
        """Mean utilization across all cores, aligned on the newest samples."""
        cores = [self.cpu.values(key) for key in self.cpu.keys()]
        if not cores:
            return Series()
        length = min(len(core) for core in cores)
        averages = tuple(
            sum(core[len(core) - length + offset] for core in cores) / len(cores)
            for offset in range(length)
        )
        return Series(values=averages, timestamps=synthesize_timestamps(length, now))
