"""Sorting and filtering of the process table."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sysdash.models import ProcessEntry


class SortKey(Enum):
    """Sort keys for the process table."""

    PID = "pid"
    NAME = "name"
    CPU = "cpu"
    MEMORY = "memory"


class SortDirection(Enum):
    """Sort direction for the process table."""

    ASC = "asc"
    DESC = "desc"

    def reversed(self) -> "SortDirection":
        return SortDirection.ASC if self is SortDirection.DESC else SortDirection.DESC


_SORT_FIELDS: dict[SortKey, Callable[[ProcessEntry], Any]] = {
    SortKey.PID: lambda p: p.pid,
    SortKey.NAME: lambda p: p.name.casefold(),
    SortKey.CPU: lambda p: p.cpu_percent,
    SortKey.MEMORY: lambda p: p.memory_mb,
}


def default_direction(key: SortKey) -> SortDirection:
    """Names read A to Z; resource columns show the heaviest consumers first."""
    return SortDirection.ASC if key is SortKey.NAME else SortDirection.DESC


@dataclass(slots=True)
class SortState:
    """Current sort column and direction of the process table."""

    key: SortKey = SortKey.CPU
    direction: SortDirection = SortDirection.DESC

    def select(self, key: SortKey | str) -> None:
        """Toggle direction on the active key, otherwise switch to ``key``."""
        key = SortKey(key)
        if key is self.key:
            self.direction = self.direction.reversed()
        else:
            self.key = key
            self.direction = default_direction(key)


def matches(process: ProcessEntry, filter_text: str) -> bool:
    """Case-insensitive name substring, or substring of the stringified PID."""
    if not filter_text:
        return True
    return filter_text.casefold() in process.name.casefold() or filter_text in str(process.pid)


def project(
    processes: Iterable[ProcessEntry],
    sort_key: SortKey | str = SortKey.CPU,
    direction: SortDirection | str = SortDirection.DESC,
    filter_text: str = "",
) -> list[ProcessEntry]:
    """
    Produce the display order of the process table.

    The input is never mutated; the returned list holds the same entry
    objects. Sorting is stable, so ties keep their snapshot order.
    """
    sort_key = SortKey(sort_key)
    direction = SortDirection(direction)
    ordered = sorted(
        processes,
        key=_SORT_FIELDS[sort_key],
        reverse=direction is SortDirection.DESC,
    )
    return [process for process in ordered if matches(process, filter_text)]
