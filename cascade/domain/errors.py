"""
Error taxonomy for the cascade pipeline.

Only `ValidationError` ever reaches callers of the enqueue operations. The
other errors are recorded on the owning job (`last_error`) or logged.
"""

from __future__ import annotations


class CascadeError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(CascadeError, ValueError):
    """Malformed search parameters or identifiers; rejected before queueing."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ExtractionError(CascadeError):
    """
    The extraction agent failed to produce a record.

    `retryable` separates transient failures (timeouts, site hiccups) from
    permanent ones; only the former are rescheduled.
    """

    retryable: bool = True

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class RecordNotFoundError(ExtractionError):
    """The source answered, but holds no record for the identifier."""

    retryable = False


class DependencyMissingError(CascadeError):
    """A leg of a vehicle/plate/person chain is not available for joining."""


class PersistenceError(CascadeError):
    """The audit store rejected a write."""


__all__ = [
    "CascadeError",
    "ValidationError",
    "ExtractionError",
    "RecordNotFoundError",
    "DependencyMissingError",
    "PersistenceError",
]
