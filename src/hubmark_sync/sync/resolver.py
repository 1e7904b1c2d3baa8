"""Conflict resolution strategies for the merge engine.

Provides one resolver per ``ConflictStrategy``:

- ``LocalWinsResolver``: Always picks the local version (a local deletion
  deletes).
- ``RemoteWinsResolver``: Always picks the remote version.
- ``ManualResolver``: Never picks a side; every conflict stays pending and
  accumulates in ``pending_conflicts`` for the caller to decide.

The ``create_resolver()`` factory maps a strategy to a resolver instance.

Externally-facing labels ("browser-wins", "github-wins", "ask", ...) are
translated into ``ConflictStrategy`` exactly once, by ``parse_strategy()``
(``ConflictStrategy.from_label`` over ``STRATEGY_LABELS``).  Nothing past
that boundary compares strategy strings.
"""

from __future__ import annotations

import logging
from typing import Protocol

from hubmark_sync.sync.models import (
    Bookmark,
    ConflictInfo,
    ConflictStrategy,
    Resolution,
)

logger = logging.getLogger(__name__)


def parse_strategy(label: str | ConflictStrategy) -> ConflictStrategy:
    """Map an external strategy label onto ``ConflictStrategy``.

    Matching is case-insensitive and treats ``_`` and spaces like ``-``.

    Raises:
        ValueError: If the label is not recognised.
    """
    return ConflictStrategy.from_label(label)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    strategy: ConflictStrategy

    def resolve(self, conflict: ConflictInfo) -> Resolution:
        """Decide which side wins *conflict*.

        Returns:
            ``Resolution.LOCAL``, ``Resolution.REMOTE`` or
            ``Resolution.PENDING``.
        """
        ...  # pragma: no cover


def resolved_version(
    conflict: ConflictInfo, resolution: Resolution
) -> Bookmark | None:
    """Return the version that goes into the merged collection.

    ``None`` means the id is left out: either the winning side deleted it
    or the conflict is pending.
    """
    if resolution == Resolution.PENDING:
        return None
    return conflict.version_for(resolution)


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of the local replica."""

    strategy = ConflictStrategy.LOCAL_WINS

    def resolve(self, conflict: ConflictInfo) -> Resolution:
        """Always return ``Resolution.LOCAL``."""
        logger.info(
            "Conflict %s (%s) resolved to local",
            conflict.id,
            conflict.kind.value,
        )
        return Resolution.LOCAL


class RemoteWinsResolver:
    """Always resolve conflicts in favour of the remote document."""

    strategy = ConflictStrategy.REMOTE_WINS

    def resolve(self, conflict: ConflictInfo) -> Resolution:
        """Always return ``Resolution.REMOTE``."""
        logger.info(
            "Conflict %s (%s) resolved to remote",
            conflict.id,
            conflict.kind.value,
        )
        return Resolution.REMOTE


class ManualResolver:
    """Leave every conflict for the caller.

    The resolver does no I/O; it only accumulates conflicts so the caller
    can present them and re-run the sync with explicit resolutions.
    """

    strategy = ConflictStrategy.MANUAL

    def __init__(self) -> None:
        self.pending_conflicts: list[ConflictInfo] = []

    def resolve(self, conflict: ConflictInfo) -> Resolution:
        """Record *conflict* and return ``Resolution.PENDING``."""
        logger.info(
            "Conflict %s (%s) pending manual resolution",
            conflict.id,
            conflict.kind.value,
        )
        self.pending_conflicts.append(conflict)
        return Resolution.PENDING


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[ConflictStrategy, type] = {
    ConflictStrategy.LOCAL_WINS: LocalWinsResolver,
    ConflictStrategy.REMOTE_WINS: RemoteWinsResolver,
    ConflictStrategy.MANUAL: ManualResolver,
}


def create_resolver(strategy: ConflictStrategy) -> ConflictResolver:
    """Create a conflict resolver for *strategy*.

    Raises:
        ValueError: If *strategy* is not a ``ConflictStrategy`` member.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: {strategy!r}. Valid strategies: {[s.value for s in _STRATEGY_MAP]}"
        )
    return cls()  # type: ignore[return-value]
