"""Exception types for the event notifier."""

from __future__ import annotations


class EventBeaconError(Exception):
    """Base class for notifier errors."""


class SourceUnavailable(EventBeaconError):
    """The source returned no status, reported the service down, or returned no events."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class StorageError(EventBeaconError):
    """A persistence read or write failed."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation
