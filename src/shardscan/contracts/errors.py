"""Error taxonomy shared by the store, accessor, and scanners.

Transient errors are retried by the PersistenceRetryer. Definitive errors
(not found, validation) are raised straight through so callers can tell
"genuinely absent" apart from "store unavailable".
"""

from typing import Any, TypedDict


class CheckErrorDetails(TypedDict):
    """Schema for the info_details payload of a FAILED check result."""

    exception: str  # String representation of the exception
    type: str  # Exception class name (e.g., "TransientStoreError")


class StoreError(Exception):
    """Base class for execution/history store errors."""


class TransientStoreError(StoreError):
    """Connectivity loss, timeouts, lock contention. Safe to retry."""


class DeadlineExceededError(TransientStoreError):
    """The deadline bound to the current unit of work expired."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Deadline of {timeout_seconds}s exceeded")


class EntityNotExistsError(StoreError):
    """The requested entity definitively does not exist. Never retried."""

    def __init__(self, message: str, **identifiers: Any) -> None:
        self.identifiers = identifiers
        super().__init__(message)


class StoreValidationError(StoreError):
    """The request was malformed (bad page token, bad branch token)."""


class StoreDataError(StoreError):
    """A stored row could not be decoded into a domain object. Never retried."""

    def __init__(self, message: str, **identifiers: Any) -> None:
        self.identifiers = identifiers
        super().__init__(message)


class PagingExhaustedError(Exception):
    """next() was called on a paging iterator with no items left."""


class InvalidShardRangeError(ValueError):
    """The requested shard range is empty or negative."""

    def __init__(self, lower: int, upper: int) -> None:
        self.lower = lower
        self.upper = upper
        super().__init__(f"Invalid shard range [{lower}, {upper}]")


class ShardScanError(Exception):
    """Scanning one shard failed part-way through.

    Raised instead of skipping the rest of the shard, since a silent gap
    under-reports corruption. The caller decides whether to stop.
    """

    def __init__(self, shard_id: int, cause: BaseException) -> None:
        self.shard_id = shard_id
        self.cause = cause
        super().__init__(f"Failed to scan shard {shard_id}: {cause}")


def describe_error(error: BaseException) -> CheckErrorDetails:
    """Build the audit payload for an error."""
    return {"exception": str(error), "type": type(error).__name__}
