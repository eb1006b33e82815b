"""Exceptions raised by sysdash."""


class SysdashError(Exception):
    """Generic marker for sysdash-specific exceptions."""


class SnapshotFetchError(SysdashError):
    """The telemetry host could not produce a snapshot on request."""
