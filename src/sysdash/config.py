"""Runtime configuration for sysdash."""

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

logger = logging.getLogger(__name__)

ENV_PREFIX = "SYSDASH_"


@dataclass(frozen=True)
class DashboardConfig:
    """Dashboard defaults, overridable through ``SYSDASH_*`` environment variables."""

    poll_rate: float = 1.0  # seconds between host snapshots
    history_capacity: int = 100  # samples per series
    range_window: int = 50  # trailing samples used for axis scaling
    process_stale_after: int = 60  # snapshots before a vanished process is dropped; 0 keeps it
    top_process_count: int = 15
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "DashboardConfig":
        """Build a config from the environment, skipping malformed values."""
        if environ is None:
            environ = os.environ
        overrides = {}
        for f in fields(cls):
            name = ENV_PREFIX + f.name.upper()
            raw = environ.get(name)
            if raw is None:
                continue
            if f.type in (int, "int"):
                value = _parse(name, raw, int)
            elif f.type in (float, "float"):
                value = _parse(name, raw, float)
            else:
                value = raw.strip().upper()
                if not isinstance(logging.getLevelName(value), int):
                    logger.warning("Ignoring unknown %s=%r", name, raw)
                    value = None
            if value is not None:
                overrides[f.name] = value
        return replace(cls(), **overrides).validated()

    def validated(self) -> "DashboardConfig":
        """Clamp values into their usable ranges."""
        return replace(
            self,
            poll_rate=max(0.1, self.poll_rate),
            history_capacity=max(1, self.history_capacity),
            range_window=max(2, self.range_window),
            process_stale_after=max(0, self.process_stale_after),
            top_process_count=max(1, self.top_process_count),
        )


def _parse(name: str, raw: str, kind: type) -> int | float | None:
    try:
        value = kind(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r", name, raw)
        return None
    if not math.isfinite(value):
        logger.warning("Ignoring non-finite %s=%r", name, raw)
        return None
    return value
