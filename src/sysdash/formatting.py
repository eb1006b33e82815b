"""Human-readable formatting of telemetry values."""

import math
import time
from datetime import datetime
from typing import Any

from sysdash.normalizer import is_valid_number, to_display_bytes

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def format_bytes(size: float | None, decimals: int = 1) -> str:
    """Format bytes as human-readable string."""
    if size is None or not isinstance(size, (int, float)) or math.isnan(size):
        return "N/A"
    if size == 0:
        return "0 Bytes"
    size = abs(size)
    decimals = max(0, decimals)
    if size < 1:
        return f"{size * 1024:.{decimals}f} Bytes"
    for unit in _SIZE_UNITS[:-1]:
        if size < 1024:
            return f"{_trim(size, decimals)} {unit}"
        size = size / 1024
    return f"{_trim(size, decimals)} {_SIZE_UNITS[-1]}"


def format_capacity(value: Any, suffix: str = "") -> str:
    """Format a disk capacity, scaling fractional GB-unit values to bytes."""
    if not is_valid_number(value):
        return "N/A"
    text = format_bytes(to_display_bytes(value))
    return f"{text} {suffix}" if suffix else text


def format_rate(kb_per_sec: Any) -> str:
    """Format a KB/s rate with byte-size units."""
    if not is_valid_number(kb_per_sec):
        return "N/A"
    return format_bytes(kb_per_sec * 1024) + "/s"


def format_speed(kb_per_sec: float) -> str:
    """Format a KB/s network speed as KB/s, MB/s or GB/s."""
    if kb_per_sec < 0:
        return "0 B/s"
    if kb_per_sec < 1024:
        return f"{kb_per_sec:.1f} KB/s"
    mb_per_sec = kb_per_sec / 1024
    if mb_per_sec < 1024:
        return f"{mb_per_sec:.1f} MB/s"
    return f"{mb_per_sec / 1024:.1f} GB/s"


def format_percent(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_number(value: int | float) -> str:
    """Add thousands separators."""
    return f"{value:,}"


def truncate_text(text: str | None, max_length: int = 20) -> str:
    if not text:
        return ""
    return text[:max_length] + "..." if len(text) > max_length else text


def format_time_ago(timestamp: float | None, now: float | None = None) -> str:
    """Format an epoch timestamp as '5s ago', '3m ago', etc."""
    if timestamp is None or not math.isfinite(timestamp):
        return "Unknown"
    if now is None:
        now = time.time()
    seconds = int(now - timestamp)
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")


def format_time_for_chart(timestamp: float | None) -> str:
    """Format an epoch timestamp as HH:MM:SS local time."""
    if timestamp is None or not math.isfinite(timestamp):
        return ""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


def cpu_usage_level(percent: float) -> str:
    if percent > 85:
        return "critical"
    if percent > 60:
        return "high"
    if percent > 30:
        return "medium"
    return "low"


def memory_usage_level(percent: float) -> str:
    """Severity for memory and disk usage percentages."""
    if percent > 90:
        return "critical"
    if percent > 75:
        return "high"
    if percent > 50:
        return "medium"
    return "low"


def temperature_level(celsius: float) -> str:
    if celsius > 85:
        return "critical"
    if celsius > 75:
        return "high"
    if celsius > 60:
        return "medium"
    return "normal"


def _trim(value: float, decimals: int) -> str:
    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
