"""Pydantic models for the bookmark sync engine.

Defines the core data contracts used across all sync modules:

- ``Bookmark``: A single bookmark entity, identified by its stable id.
- ``Collection``: Id-keyed set of bookmarks tagged with a schema version.
- ``Changeset``: Output of a two-way diff against a base collection.
- ``ConflictInfo`` / ``FieldDifference``: Details about a merge conflict.
- ``MergeStats`` / ``MergeResult``: Output of a three-way merge.
- ``SyncOutcome``: Result of one orchestrated sync run.

Plus the enums that drive them (``ConflictStrategy``, ``SyncDirection``,
``DeletePolicy``, ``Resolution``, ``ConflictKind``, ``ChangeKind``,
``SyncStatus``, ``FailureReason``).

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, Field, field_validator

from hubmark_sync.errors import (
    ConcurrentWriteExhaustedError,
    InvariantViolation,
    SchemaValidationError,
    SyncCancelledError,
    SyncError,
    TransportError,
)
from hubmark_sync.sync.stable_id import STABLE_ID_PATTERN, generate_stable_id

SCHEMA_VERSION = 1

# Fields compared when deciding whether a bookmark's content changed.
# Timestamps are deliberately absent.
CONTENT_FIELDS = (
    "url",
    "title",
    "tags",
    "notes",
    "folder",
    "archived",
    "favorite",
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ConflictStrategy(str, Enum):
    """How the merge engine resolves conflicting changes."""

    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    MANUAL = "manual"

    @classmethod
    def from_label(cls, label: str | ConflictStrategy) -> ConflictStrategy:
        """Map an external strategy label onto a member.

        Matching is case-insensitive and treats ``_`` and spaces like ``-``.
        Every accepted label lives in ``STRATEGY_LABELS``.

        Raises:
            ValueError: If the label is not recognised.
        """
        if isinstance(label, cls):
            return label
        key = label.strip().lower().replace("_", "-").replace(" ", "-")
        strategy = STRATEGY_LABELS.get(key)
        if strategy is None:
            raise ValueError(
                f"Unknown conflict strategy: '{label}'. "
                f"Valid labels: {sorted(STRATEGY_LABELS)}"
            )
        return strategy


# The one place external labels ("browser-wins", "ask", ...) are mapped.
STRATEGY_LABELS: dict[str, ConflictStrategy] = {
    "local-wins": ConflictStrategy.LOCAL_WINS,
    "local": ConflictStrategy.LOCAL_WINS,
    "browser-wins": ConflictStrategy.LOCAL_WINS,
    "prefer-device": ConflictStrategy.LOCAL_WINS,
    "remote-wins": ConflictStrategy.REMOTE_WINS,
    "remote": ConflictStrategy.REMOTE_WINS,
    "github-wins": ConflictStrategy.REMOTE_WINS,
    "prefer-remote": ConflictStrategy.REMOTE_WINS,
    "manual": ConflictStrategy.MANUAL,
    "ask": ConflictStrategy.MANUAL,
}


class SyncDirection(str, Enum):
    """Which side(s) a sync run is allowed to change.

    ``PUSH`` writes the merged document to the remote only; ``PULL``
    applies it to the local replica only.  One-way runs leave the base
    untouched, so the next two-way run still sees the skipped side's
    changes.
    """

    BIDIRECTIONAL = "bidirectional"
    PUSH = "push"
    PULL = "pull"

    @classmethod
    def from_label(cls, label: str | SyncDirection) -> SyncDirection:
        """Map an external direction label onto a member.

        Raises:
            ValueError: If the label is not recognised.
        """
        if isinstance(label, cls):
            return label
        key = label.strip().lower().replace("_", "-").replace(" ", "-")
        direction = DIRECTION_LABELS.get(key)
        if direction is None:
            raise ValueError(
                f"Unknown sync direction: '{label}'. "
                f"Valid labels: {sorted(DIRECTION_LABELS)}"
            )
        return direction

    @property
    def writes_remote(self) -> bool:
        return self is not SyncDirection.PULL

    @property
    def writes_local(self) -> bool:
        return self is not SyncDirection.PUSH


DIRECTION_LABELS: dict[str, SyncDirection] = {
    "bidirectional": SyncDirection.BIDIRECTIONAL,
    "both": SyncDirection.BIDIRECTIONAL,
    "push": SyncDirection.PUSH,
    "to-github": SyncDirection.PUSH,
    "to-remote": SyncDirection.PUSH,
    "pull": SyncDirection.PULL,
    "from-github": SyncDirection.PULL,
    "from-remote": SyncDirection.PULL,
}


class DeletePolicy(str, Enum):
    """How a deletion on one side meets an edit on the other."""

    CONFLICT = "conflict"
    DELETE_WINS = "delete-wins"


class Resolution(str, Enum):
    """Which version a conflict was resolved to."""

    LOCAL = "local"
    REMOTE = "remote"
    PENDING = "pending"


class ConflictKind(str, Enum):
    """Shape of a conflict, named local-side first."""

    EDIT_EDIT = "edit/edit"
    DELETE_EDIT = "delete/edit"
    EDIT_DELETE = "edit/delete"
    ADD_ADD = "add/add"


class ChangeKind(str, Enum):
    """Classification of one id in a ``Changeset``."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


class SyncStatus(str, Enum):
    """States of the sync orchestrator."""

    IDLE = "idle"
    FETCHING = "fetching"
    VALIDATING = "validating"
    MERGING = "merging"
    MANUAL_CONFLICT = "manual_conflict"
    WRITING = "writing"
    PERSISTING = "persisting"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a sync run ended in ``SyncStatus.FAILED``."""

    SCHEMA_INVALID = "schema_invalid"
    CONCURRENT_WRITE_EXHAUSTED = "concurrent_write_exhausted"
    TRANSPORT_ERROR = "transport_error"
    INVARIANT_VIOLATION = "invariant_violation"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


class Bookmark(BaseModel):
    """A single bookmark.

    Attributes:
        id: Stable, content-derived identifier (``hm_<hex>``).
        url: Target URL.
        title: Display title.
        tags: Tag set, stored sorted and de-duplicated.
        notes: Free-form notes.
        folder: Folder path (e.g. ``"Dev/Python"``).
        date_added: Creation time in epoch milliseconds (``dateAdded``).
        date_modified: Last edit time in epoch milliseconds
            (``dateModified``).
        archived: Archived flag.
        favorite: Favourite flag.
    """

    id: str = Field(pattern=STABLE_ID_PATTERN)
    url: str
    title: str
    tags: tuple[str, ...] = ()
    notes: str = ""
    folder: str = ""
    date_added: int = Field(default=0, ge=0, strict=True, alias="dateAdded")
    date_modified: int = Field(
        default=0, ge=0, strict=True, alias="dateModified"
    )
    archived: bool = Field(default=False, strict=True)
    favorite: bool = Field(default=False, strict=True)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "forbid",
    }

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_as_sorted_set(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)) and all(
            isinstance(tag, str) for tag in value
        ):
            return tuple(sorted(set(value)))
        return value

    @classmethod
    def create(
        cls,
        url: str,
        title: str,
        *,
        timestamp: int | None = None,
        **fields: Any,
    ) -> Bookmark:
        """Build a new bookmark with its stable id and timestamps filled in.

        Args:
            url: Bookmark URL.
            title: Bookmark title.
            timestamp: Epoch milliseconds for ``date_added`` and
                ``date_modified``; defaults to now.
            **fields: Any other field (``tags``, ``folder``, ...).
        """
        ts = _now_ms() if timestamp is None else timestamp
        fields.setdefault("date_added", ts)
        fields.setdefault("date_modified", ts)
        return cls(
            id=generate_stable_id(url, title),
            url=url,
            title=title,
            **fields,
        )

    def evolve(self, **changes: Any) -> Bookmark:
        """Return a validated copy with *changes* applied (the id is kept)."""
        data = self.model_dump()
        data.update(changes)
        return Bookmark.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready dict for the canonical document."""
        return self.model_dump(by_alias=True, mode="json")


class Collection(BaseModel):
    """An id-keyed set of bookmarks; the unit of validation, diff and storage.

    Bookmarks are kept sorted by id so iteration is deterministic.
    """

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    bookmarks: dict[str, Bookmark] = Field(default_factory=dict)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("bookmarks")
    @classmethod
    def _keys_match_ids(cls, value: dict[str, Bookmark]) -> dict[str, Bookmark]:
        for key, bookmark in value.items():
            if key != bookmark.id:
                raise ValueError(
                    f"key '{key}' does not match bookmark id '{bookmark.id}'"
                )
        return dict(sorted(value.items()))

    @classmethod
    def from_bookmarks(
        cls,
        bookmarks: Iterable[Bookmark],
        schema_version: int = SCHEMA_VERSION,
    ) -> Collection:
        """Build a collection from bookmarks, rejecting duplicate ids.

        Raises:
            InvariantViolation: If two bookmarks share an id.
        """
        by_id: dict[str, Bookmark] = {}
        for bookmark in bookmarks:
            if bookmark.id in by_id:
                raise InvariantViolation(
                    f"duplicate bookmark id '{bookmark.id}'"
                )
            by_id[bookmark.id] = bookmark
        return cls(schema_version=schema_version, bookmarks=by_id)

    @classmethod
    def empty(cls) -> Collection:
        """Return a collection with no bookmarks."""
        return cls()

    def get(self, bookmark_id: str) -> Bookmark | None:
        """Return the bookmark for *bookmark_id*, or ``None``."""
        return self.bookmarks.get(bookmark_id)

    def ids(self) -> set[str]:
        """Return the set of ids in this collection."""
        return set(self.bookmarks)

    def values(self) -> list[Bookmark]:
        """Return bookmarks in id order."""
        return list(self.bookmarks.values())

    def __contains__(self, bookmark_id: object) -> bool:
        return bookmark_id in self.bookmarks


# ---------------------------------------------------------------------------
# Diff / merge results
# ---------------------------------------------------------------------------


class Changeset(BaseModel):
    """Changes of a candidate collection relative to a base.

    Attributes:
        added: Ids only in the candidate (candidate version).
        modified: Ids in both whose content differs (candidate version,
            including its ``date_modified``).
        removed: Ids only in the base; tombstones (base version).
        unchanged: Ids in both with equal content (candidate version).
    """

    added: dict[str, Bookmark] = Field(default_factory=dict)
    modified: dict[str, Bookmark] = Field(default_factory=dict)
    removed: dict[str, Bookmark] = Field(default_factory=dict)
    unchanged: dict[str, Bookmark] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def kind_of(self, bookmark_id: str) -> ChangeKind | None:
        """Classify *bookmark_id*; ``None`` if it is in neither snapshot."""
        if bookmark_id in self.added:
            return ChangeKind.ADDED
        if bookmark_id in self.modified:
            return ChangeKind.MODIFIED
        if bookmark_id in self.removed:
            return ChangeKind.REMOVED
        if bookmark_id in self.unchanged:
            return ChangeKind.UNCHANGED
        return None

    @property
    def touched(self) -> set[str]:
        """Ids added, modified or removed."""
        return set(self.added) | set(self.modified) | set(self.removed)

    @property
    def is_empty(self) -> bool:
        """``True`` when nothing was added, modified or removed."""
        return not self.touched


class FieldDifference(BaseModel):
    """One field whose value disagrees between the versions of a conflict."""

    field: str
    base: Any = None
    local: Any = None
    remote: Any = None

    model_config = {"frozen": True}


class ConflictInfo(BaseModel):
    """Details about a conflicting bookmark.

    Attributes:
        id: The bookmark id.
        kind: Shape of the conflict.
        base: Version in the common ancestor (``None`` for add/add).
        local: Local version (``None`` if deleted locally).
        remote: Remote version (``None`` if deleted remotely).
        differences: Field-level differences.
        resolution: Side the conflict was resolved to, or ``PENDING``.
    """

    id: str
    kind: ConflictKind
    base: Bookmark | None = None
    local: Bookmark | None = None
    remote: Bookmark | None = None
    differences: list[FieldDifference] = []
    resolution: Resolution = Resolution.PENDING

    model_config = {"frozen": True}

    @property
    def pending(self) -> bool:
        """``True`` if the conflict still needs a caller decision."""
        return self.resolution == Resolution.PENDING

    def version_for(self, side: Resolution | str) -> Bookmark | None:
        """Return the version for *side* (``"local"`` or ``"remote"``).

        ``None`` means the chosen side deleted the bookmark.
        """
        side = Resolution(side)
        if side == Resolution.LOCAL:
            return self.local
        if side == Resolution.REMOTE:
            return self.remote
        raise ValueError("a pending conflict has no version to choose")


class MergeStats(BaseModel):
    """Counts of what a merge changed relative to the base."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    conflicted: int = 0

    model_config = {"frozen": True}


class MergeResult(BaseModel):
    """Output of a three-way merge."""

    merged: Collection
    conflicts: list[ConflictInfo] = []
    stats: MergeStats = Field(default_factory=MergeStats)

    model_config = {"frozen": True}

    @property
    def pending_conflicts(self) -> list[ConflictInfo]:
        """Conflicts left unresolved (``manual`` strategy)."""
        return [c for c in self.conflicts if c.pending]


# ---------------------------------------------------------------------------
# Sync outcome
# ---------------------------------------------------------------------------

_REASON_ERRORS: dict[FailureReason, type[SyncError]] = {
    FailureReason.CONCURRENT_WRITE_EXHAUSTED: ConcurrentWriteExhaustedError,
    FailureReason.TRANSPORT_ERROR: TransportError,
    FailureReason.INVARIANT_VIOLATION: InvariantViolation,
    FailureReason.CANCELLED: SyncCancelledError,
}


class SyncOutcome(BaseModel):
    """Result of one sync run.

    Attributes:
        status: Final state: ``IDLE`` (committed or dry run),
            ``MANUAL_CONFLICT`` or ``FAILED``.
        reason: Failure reason when ``status`` is ``FAILED``.
        error: Human-readable error message when failed.
        violations: Schema violations for ``SCHEMA_INVALID`` failures.
        stats: Merge statistics of the last merge performed.
        conflicts: Conflicts of the last merge performed.
        merged: The merged collection (committed, or previewed on dry run).
        attempts: Number of compare-and-swap writes attempted.
        remote_version: Remote version token after the commit.
        dry_run: Whether writes were skipped.
        direction: Which side(s) the run was allowed to change.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run ended.
        history: Every state the orchestrator passed through.
    """

    status: SyncStatus
    reason: FailureReason | None = None
    error: str | None = None
    violations: list[str] = []
    stats: MergeStats = Field(default_factory=MergeStats)
    conflicts: list[ConflictInfo] = []
    merged: Collection | None = None
    attempts: int = 0
    remote_version: str | None = None
    dry_run: bool = False
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    started_at: str
    completed_at: str | None = None
    history: list[SyncStatus] = []

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        """``True`` if the run finished without failure or pending conflicts."""
        return self.status == SyncStatus.IDLE

    @property
    def needs_resolution(self) -> bool:
        """``True`` if manual conflicts block the commit."""
        return self.status == SyncStatus.MANUAL_CONFLICT

    def raise_for_status(self) -> None:
        """Raise the matching ``SyncError`` if the run failed.

        Manual conflicts are not failures and never raise.
        """
        if self.status != SyncStatus.FAILED:
            return
        message = self.error or "sync failed"
        if self.reason == FailureReason.SCHEMA_INVALID:
            raise SchemaValidationError(self.violations, message)
        error_cls = _REASON_ERRORS.get(self.reason, SyncError)  # type: ignore[arg-type]
        raise error_cls(message)
