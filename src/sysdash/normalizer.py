"""Disk usage normalization for heterogeneous host records."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sysdash.models import DiskRecord

GIB = 1073741824  # Bytes per host "GB-like" capacity unit

CAPACITY_INDETERMINATE = "capacity indeterminate"
USAGE_INDETERMINATE = "usage indeterminate"


class UsageShape(Enum):
    """Which usage fields a disk record carries, in resolution priority order."""

    PERCENTAGE = "used_percentage"
    USED_AND_AVAILABLE = "used_and_available"
    USED_ONLY = "used_only"
    AVAILABLE_ONLY = "available_only"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Canonical, complete disk usage."""

    used_space: float
    available_space: float
    usage_percent: float  # Always within [0, 100]
    shape: UsageShape


@dataclass(slots=True, frozen=True)
class Unresolvable:
    """A record lacked enough fields to compute usage."""

    reason: str


def is_valid_number(value: Any) -> bool:
    """Check for a finite, non-negative real number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def classify_usage(record: DiskRecord) -> UsageShape:
    """Pick the highest-priority usage shape the record satisfies."""
    if is_valid_number(record.used_percentage):
        return UsageShape.PERCENTAGE
    has_used = is_valid_number(record.used_space)
    has_available = is_valid_number(record.available_space)
    if has_used and has_available:
        return UsageShape.USED_AND_AVAILABLE
    if has_used:
        return UsageShape.USED_ONLY
    if has_available:
        return UsageShape.AVAILABLE_ONLY
    return UsageShape.NONE


def resolve_disk_usage(
    record: DiskRecord, total_space: float | None = None
) -> DiskUsage | Unresolvable:
    """
    Resolve a disk record into used/available space and a usage percentage.

    Args:
        record: Disk record in any of the supported usage shapes.
        total_space: Capacity to resolve against. Defaults to the record's own
            ``total_space``.

    Returns:
        A DiskUsage, or Unresolvable when capacity or usage cannot be determined.
    """
    total = record.total_space if total_space is None else total_space
    if not is_valid_number(total):
        return Unresolvable(CAPACITY_INDETERMINATE)

    shape = classify_usage(record)
    if shape is UsageShape.PERCENTAGE:
        percent = float(record.used_percentage)
        used = total * percent / 100.0
        available = total - used
    elif shape is UsageShape.USED_AND_AVAILABLE:
        used = float(record.used_space)
        available = float(record.available_space)
        percent = _percent_of(used, total)
    elif shape is UsageShape.USED_ONLY:
        used = float(record.used_space)
        available = total - used
        percent = _percent_of(used, total)
    elif shape is UsageShape.AVAILABLE_ONLY:
        available = float(record.available_space)
        used = total - available
        percent = _percent_of(used, total)
    else:
        return Unresolvable(USAGE_INDETERMINATE)

    return DiskUsage(
        used_space=used,
        available_space=available,
        usage_percent=min(100.0, max(0.0, percent)),
        shape=shape,
    )


def to_display_bytes(value: float) -> float:
    """Scale a fractional capacity unit (0 < value < 1) up to bytes."""
    if 0 < value < 1:
        return value * GIB
    return value


def _percent_of(used: float, total: float) -> float:
    # A zero-capacity disk reports no usage.
    if total == 0:
        return 0.0
    return used * 100.0 / total
