"""Axis range estimation for continuously-updating charts."""

import math
from collections.abc import Iterable
from enum import Enum
from typing import Any, NamedTuple

DEFAULT_WINDOW = 50
PADDING_RATIO = 0.1
PERCENT_MIN_PADDING = 2.0


class Unit(Enum):
    """Value domain of a series."""

    PERCENT = "%"
    OTHER = "other"


_MIN_SPAN = {Unit.PERCENT: 0.5, Unit.OTHER: 1.0}


class AxisRange(NamedTuple):
    """Vertical axis bounds for a chart."""

    minimum: float
    maximum: float

    @property
    def span(self) -> float:
        return self.maximum - self.minimum


def finite_samples(values: Iterable[Any]) -> list[float]:
    """Drop missing and non-finite entries."""
    return [
        float(v)
        for v in values
        if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    ]


def estimate_range(
    series: Iterable[Any],
    unit: Unit = Unit.OTHER,
    window: int = DEFAULT_WINDOW,
) -> AxisRange | None:
    """
    Compute a stable, clamped axis range for the most recent samples.

    Only the last ``window`` samples are considered so the chart follows the
    current operating regime rather than an old spike. The lower bound never
    drops below 0 and percentages never exceed 100.

    Args:
        series: Samples, oldest first.
        unit: PERCENT clamps to [0, 100]; OTHER only floors at 0.
        window: Number of trailing samples to consider.

    Returns:
        The axis range, or None for OTHER series too short to scale (the
        consumer auto-scales).
    """
    samples = list(series)
    if window > 0:
        samples = samples[-window:]
    valid = finite_samples(samples)

    if len(valid) < 2:
        return AxisRange(0.0, 100.0) if unit is Unit.PERCENT else None

    if unit is Unit.PERCENT:
        valid = [_clamp_percent(v) for v in valid]

    data_min = min(valid)
    data_max = max(valid)
    min_span = _MIN_SPAN[unit]
    data_range = max(data_max - data_min, min_span)

    padding = data_range * PADDING_RATIO
    if unit is Unit.PERCENT:
        padding = max(PERCENT_MIN_PADDING, padding)

    minimum = max(0.0, data_min - padding)
    maximum = _clamp_upper(data_max + padding, unit)

    if minimum >= maximum:
        maximum = _clamp_upper(minimum + min_span, unit)
        if minimum >= maximum:
            minimum = max(0.0, maximum - min_span)

    return AxisRange(minimum, maximum)


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))


def _clamp_upper(value: float, unit: Unit) -> float:
    return min(100.0, value) if unit is Unit.PERCENT else value
