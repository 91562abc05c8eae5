"""
Error types raised by the exclusion index.

Every error leaves the index exactly as it was before the failing call.
"""

from typing import Any, Optional


class ExclusionError(Exception):
    """Base class for all exclusion index errors."""
    pass


class InvalidIntervalError(ExclusionError, ValueError):
    """An interval was built with bounds that do not satisfy low <= high."""

    def __init__(self, low: Any, high: Any):
        self.low = low
        self.high = high
        super().__init__(f"Invalid interval: lower bound {low!r} is not <= upper bound {high!r}")


class ConflictError(ExclusionError):
    """
    An entry with the same key already occupies part of the interval.

    Attributes:
        key: The partition key of the rejected operation
        interval: The interval that was rejected
        conflicts: Every live entry that overlaps the rejected interval
    """

    def __init__(self, key: Any, interval, conflicts: tuple):
        self.key = key
        self.interval = interval
        self.conflicts = tuple(conflicts)
        existing = ", ".join(f"(key, interval)=({key!r}, {c.interval})" for c in self.conflicts)
        super().__init__(
            f"Key (key, interval)=({key!r}, {interval}) conflicts with existing key {existing}"
        )

    @property
    def conflicting_ids(self) -> list[int]:
        return [c.id for c in self.conflicts]


class NotFoundError(ExclusionError, LookupError):
    """No live entry has the given id."""

    def __init__(self, entry_id: Any):
        self.entry_id = entry_id
        super().__init__(f"No entry with id {entry_id!r}")


class LockTimeoutError(ExclusionError, TimeoutError):
    """The per-key lock could not be acquired within the allowed time."""

    def __init__(self, key: Any, timeout: Optional[float]):
        self.key = key
        self.timeout = timeout
        if timeout == 0:
            message = f"Could not obtain lock on key {key!r} (nowait)"
        else:
            message = f"Could not obtain lock on key {key!r} within {timeout}s"
        super().__init__(message)
