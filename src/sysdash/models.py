"""Data models for sysdash."""

import math
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Native hosts emit nanosecond fractions; datetime only parses microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """One row of the host's top-process list."""

    pid: int
    name: str
    cpu_percent: float
    memory_mb: float

    @property
    def key(self) -> tuple[int, str]:
        """Composite identity used to correlate a process across snapshots."""
        return (self.pid, self.name)

    @classmethod
    def from_tuple(cls, row: Sequence[Any]) -> "ProcessEntry":
        """Build an entry from a (pid, name, cpu, memory_mb) tuple."""
        pid, name, cpu, memory = row[:4]
        return cls(
            pid=int(pid),
            name=str(name),
            cpu_percent=_finite_or_zero(cpu),
            memory_mb=_finite_or_zero(memory),
        )


@dataclass(slots=True, frozen=True)
class DiskRecord:
    """
    Per-disk record as delivered by the host.

    Usage arrives in at most one of several shapes: ``used_percentage``,
    ``used_space`` + ``available_space``, or either of those alone. Fields
    the host did not send stay ``None``.
    """

    name: str
    total_space: float | None = None
    used_percentage: float | None = None
    used_space: float | None = None
    available_space: float | None = None
    mount_point: str = ""
    disk_type: str = ""  # SSD/HDD from native hosts, filesystem type from psutil
    read_bytes_per_sec: float | None = None  # KB/s
    write_bytes_per_sec: float | None = None  # KB/s
    read_history: tuple[float, ...] = ()
    write_history: tuple[float, ...] = ()


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    """Per-interface traffic record. Rates are in KB/s, totals in bytes."""

    name: str
    current_rx_speed: float = 0.0
    current_tx_speed: float = 0.0
    total_received: int = 0
    total_transmitted: int = 0
    rx_history: tuple[float, ...] = ()
    tx_history: tuple[float, ...] = ()


@dataclass(slots=True, frozen=True)
class GpuRecord:
    """Per-GPU record."""

    name: str
    utilization: float = 0.0
    temperature: float = 0.0
    memory_used: float = 0.0
    memory_total: float = 0.0
    power_usage: float = 0.0
    utilization_history: tuple[float, ...] = ()


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One full delivery of all current metrics from the host."""

    cpu_usage: tuple[float, ...] = ()
    cpu_history: tuple[tuple[float, ...], ...] = ()
    memory_used: float = 0.0
    memory_total: float = 0.0
    memory_history: tuple[float, ...] = ()
    processes: tuple[ProcessEntry, ...] = ()
    network: Mapping[str, NetworkInterface] = field(default_factory=dict)
    gpus: tuple[GpuRecord, ...] = ()
    disks: Mapping[str, DiskRecord] = field(default_factory=dict)
    timestamp: float | None = None  # Unix epoch seconds
    platform_name: str = ""
    system_disk_read_per_sec: float = 0.0
    system_disk_write_per_sec: float = 0.0
    system_disk_read_history: tuple[float, ...] = ()
    system_disk_write_history: tuple[float, ...] = ()

    @property
    def memory_percent(self) -> float | None:
        """Memory usage in percent, from used/total or the host's latest history sample."""
        if _is_real(self.memory_total) and self.memory_total > 0 and _is_real(self.memory_used):
            return min(100.0, max(0.0, self.memory_used / self.memory_total * 100.0))
        if self.memory_history and _is_real(self.memory_history[-1]):
            return min(100.0, max(0.0, float(self.memory_history[-1])))
        return None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Snapshot":
        """
        Parse a host payload into a Snapshot.

        The payload follows the native producer's serialized shape. Keys the
        dashboard does not consume are ignored, and malformed entries are
        dropped rather than failing the whole snapshot.
        """
        disks = {
            str(name): _parse_disk(str(name), record)
            for name, record in (payload.get("disk_data") or {}).items()
            if isinstance(record, Mapping)
        }
        network = {
            str(name): _parse_interface(str(name), record)
            for name, record in (payload.get("network_data") or {}).items()
            if isinstance(record, Mapping)
        }
        processes = tuple(
            ProcessEntry.from_tuple(row)
            for row in payload.get("top_processes") or ()
            if _is_process_row(row)
        )
        gpus = tuple(
            _parse_gpu(record)
            for record in payload.get("gpu_data") or ()
            if isinstance(record, Mapping)
        )
        return cls(
            cpu_usage=_floats(payload.get("cpu_usage")),
            cpu_history=tuple(
                _floats(core) for core in payload.get("cpu_history") or () if isinstance(core, Sequence)
            ),
            memory_used=_finite_or_zero(payload.get("memory_used")),
            memory_total=_finite_or_zero(payload.get("memory_total")),
            memory_history=_floats(payload.get("memory_history")),
            processes=processes,
            network=network,
            gpus=gpus,
            disks=disks,
            timestamp=parse_timestamp(payload.get("timestamp")),
            platform_name=str(payload.get("platform_name") or ""),
            system_disk_read_per_sec=_finite_or_zero(payload.get("system_disk_read_per_sec")),
            system_disk_write_per_sec=_finite_or_zero(payload.get("system_disk_write_per_sec")),
            system_disk_read_history=_floats(payload.get("system_disk_read_history")),
            system_disk_write_history=_floats(payload.get("system_disk_write_history")),
        )


@dataclass(slots=True, frozen=True)
class HostError:
    """Out-of-band error message pushed by the host."""

    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass(slots=True, frozen=True)
class Series:
    """Read-only view of one history series."""

    values: tuple[float, ...] = ()
    timestamps: tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.values)


def parse_timestamp(value: Any) -> float | None:
    """Convert an epoch number or ISO-8601 string into epoch seconds."""
    if _is_real(value):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value:
        text = _FRACTION_RE.sub(r"\1", value.strip())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).timestamp()
        except ValueError:
            return None
    return None


def _is_real(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_process_row(row: Any) -> bool:
    return (
        isinstance(row, Sequence)
        and not isinstance(row, str)
        and len(row) >= 4
        and _is_real(row[0])
        and math.isfinite(row[0])
    )


def _optional_number(value: Any) -> float | None:
    return float(value) if _is_real(value) else None


def _finite_or_zero(value: Any) -> float:
    if _is_real(value) and math.isfinite(value):
        return float(value)
    return 0.0


def _floats(values: Any) -> tuple[float, ...]:
    if not isinstance(values, Sequence) or isinstance(values, str):
        return ()
    return tuple(float(v) if _is_real(v) else math.nan for v in values)


def _parse_disk(name: str, record: Mapping[str, Any]) -> DiskRecord:
    return DiskRecord(
        name=str(record.get("name") or name),
        total_space=_optional_number(record.get("total_space")),
        used_percentage=_optional_number(record.get("used_percentage")),
        used_space=_optional_number(record.get("used_space")),
        available_space=_optional_number(record.get("available_space")),
        mount_point=str(record.get("mount_point") or ""),
        disk_type=str(record.get("disk_type") or ""),
        read_bytes_per_sec=_optional_number(record.get("read_bytes_per_sec")),
        write_bytes_per_sec=_optional_number(record.get("write_bytes_per_sec")),
        read_history=_floats(record.get("read_history")),
        write_history=_floats(record.get("write_history")),
    )


def _parse_interface(name: str, record: Mapping[str, Any]) -> NetworkInterface:
    return NetworkInterface(
        name=name,
        current_rx_speed=_finite_or_zero(record.get("current_rx_speed")),
        current_tx_speed=_finite_or_zero(record.get("current_tx_speed")),
        total_received=int(_finite_or_zero(record.get("total_received"))),
        total_transmitted=int(_finite_or_zero(record.get("total_transmitted"))),
        rx_history=_floats(record.get("rx_history")),
        tx_history=_floats(record.get("tx_history")),
    )


def _parse_gpu(record: Mapping[str, Any]) -> GpuRecord:
    return GpuRecord(
        name=str(record.get("name") or "GPU"),
        utilization=_finite_or_zero(record.get("utilization")),
        temperature=_finite_or_zero(record.get("temperature")),
        memory_used=_finite_or_zero(record.get("memory_used")),
        memory_total=_finite_or_zero(record.get("memory_total")),
        power_usage=_finite_or_zero(record.get("power_usage")),
        utilization_history=_floats(record.get("utilization_history")),
    )
