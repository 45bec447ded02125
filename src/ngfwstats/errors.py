"""Error taxonomy shared by the store adapters and the analytics components."""

from __future__ import annotations


class NgfwStatsError(Exception):
    """Base class for all engine errors."""


class StoreUnavailable(NgfwStatsError):
    """The event store could not be reached or did not answer in time.

    Never retried inside the engine; retry policy belongs to the caller.
    """

    def __init__(self, operation: str, collection: str, reason: str = "") -> None:
        self.operation = operation
        self.collection = collection
        self.reason = reason
        message = f"Event store unavailable during {operation} on '{collection}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidFilter(NgfwStatsError, ValueError):
    """A predicate names an unknown field or an unrecognized enum value."""


class InvalidDimension(NgfwStatsError, ValueError):
    """A ranking dimension is not defined for the record family."""


class InvalidMeasure(NgfwStatsError, ValueError):
    """A ranking measure is not defined for the record family."""
