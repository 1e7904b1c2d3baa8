"""Exception hierarchy for hubmark-sync.

Every error the sync core raises derives from ``SyncError`` so callers can
catch the whole family at once.  The concrete classes mirror the failure
taxonomy of a sync run:

- ``SchemaValidationError`` -- a document failed schema validation.
- ``NotFoundError`` -- the remote document does not exist yet.
- ``VersionConflictError`` -- a compare-and-swap write lost the race.
- ``TransportError`` -- any other failure talking to the remote store.
- ``InvariantViolation`` -- the engine produced data it must never emit.
- ``ConcurrentWriteExhaustedError`` -- retries on version conflicts ran out.
- ``SyncInProgressError`` -- a run was triggered while another is active.
- ``SyncCancelledError`` -- the caller abandoned the run.

Manual conflicts are *not* errors; they are returned as data.
"""

from __future__ import annotations

from typing import Any, Iterable


class SyncError(Exception):
    """Base class for all hubmark-sync errors."""


class SchemaValidationError(SyncError):
    """A bookmark document does not conform to the canonical schema.

    Attributes:
        violations: Every violation found (validation never stops at the
            first problem).
    """

    def __init__(
        self, violations: Iterable[Any], message: str | None = None
    ) -> None:
        self.violations = list(violations)
        if message is None:
            details = "; ".join(str(v) for v in self.violations)
            message = (
                f"Schema validation failed ({len(self.violations)} "
                f"violation(s)): {details}"
            )
        super().__init__(message)


class NotFoundError(SyncError):
    """The requested remote path does not exist."""


class VersionConflictError(SyncError):
    """The remote version moved since it was read.

    Attributes:
        expected_version: The version token the write was conditioned on.
    """

    def __init__(
        self, message: str, expected_version: str | None = None
    ) -> None:
        super().__init__(message)
        self.expected_version = expected_version


class TransportError(SyncError):
    """Network, authentication, or server failure other than a version conflict.

    Attributes:
        status_code: HTTP status code when the failure came from a response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvariantViolation(SyncError):
    """Internal data broke an invariant (e.g. duplicate ids in merge output)."""


class ConcurrentWriteExhaustedError(SyncError):
    """Every compare-and-swap attempt was beaten by a concurrent commit."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class SyncInProgressError(SyncError):
    """A sync was triggered while the orchestrator was not idle."""


class SyncCancelledError(SyncError):
    """The caller cancelled the sync before it was persisted."""
