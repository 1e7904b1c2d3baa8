"""Bookmark synchronisation and merge engine.

Public API for reconciling a local bookmark replica with a canonical JSON
document kept in a version-controlled remote (a GitHub repository).

Architecture
------------
Sync is a **three-way merge against a stored base**: the collection as it
was after the last successful sync.  Each side is diffed against that
base, so the engine can tell an edit from an untouched entry and a
deletion from an addition on the other side, without any server-side
coordination.  Entities are matched by a content-derived stable id, so
every device agrees on identity.

Modules:

- ``stable_id`` -- ``generate_stable_id``: deterministic ids from URL+title.
- ``models``    -- ``Bookmark``, ``Collection``, ``Changeset``,
  ``ConflictInfo``, ``MergeResult``, ``SyncOutcome`` and the enums.
- ``schema``    -- ``SchemaValidator``, ``parse_document``,
  ``serialize_document``.
- ``differ``    -- ``diff``: two-way changeset against a base.
- ``merger``    -- ``merge``: three-way merge with conflict detection.
- ``resolver``  -- Conflict resolution strategies (local-wins,
  remote-wins, manual).
- ``engine``    -- ``SyncOrchestrator``: the fetch/merge/write/persist
  state machine with optimistic-concurrency retry.
- ``stores``    -- Store protocols, in-memory stores, ``GitHubRemoteStore``.
- ``state``     -- File-backed base and local stores.
- ``readme``    -- Markdown view of a collection.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from hubmark_sync.sync import (
        InMemoryBaseStore, InMemoryLocalStore, InMemoryRemoteStore,
        SyncOrchestrator, format_sync_report,
    )

    orchestrator = SyncOrchestrator(
        remote=InMemoryRemoteStore(),
        local=InMemoryLocalStore(),
        base=InMemoryBaseStore(),
    )

    # Preview first
    preview = orchestrator.run("remote-wins", dry_run=True)
    print(format_sync_report(preview))

    outcome = orchestrator.run("remote-wins")
    outcome.raise_for_status()
"""

from .differ import diff
from .engine import SyncOrchestrator
from .merger import merge
from .models import (
    Bookmark,
    Changeset,
    Collection,
    ConflictInfo,
    ConflictKind,
    ConflictStrategy,
    DeletePolicy,
    FailureReason,
    MergeResult,
    MergeStats,
    Resolution,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
)
from .reporter import (
    format_conflict_diff,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .schema import (
    SchemaValidator,
    ValidationResult,
    parse_document,
    serialize_document,
)
from .settings import SyncSettings
from .stable_id import generate_stable_id
from .state import FileBaseStore, JsonFileLocalStore
from .stores import (
    GitHubRemoteStore,
    InMemoryBaseStore,
    InMemoryLocalStore,
    InMemoryRemoteStore,
    RemoteDocument,
)

__all__ = [
    "Bookmark",
    "Changeset",
    "Collection",
    "ConflictInfo",
    "ConflictKind",
    "ConflictStrategy",
    "DeletePolicy",
    "FailureReason",
    "FileBaseStore",
    "GitHubRemoteStore",
    "InMemoryBaseStore",
    "InMemoryLocalStore",
    "InMemoryRemoteStore",
    "JsonFileLocalStore",
    "MergeResult",
    "MergeStats",
    "RemoteDocument",
    "Resolution",
    "SchemaValidator",
    "SyncOrchestrator",
    "SyncDirection",
    "SyncOutcome",
    "SyncSettings",
    "SyncStatus",
    "ValidationResult",
    "diff",
    "format_conflict_diff",
    "format_dry_run_preview",
    "format_sync_report",
    "generate_stable_id",
    "merge",
    "parse_document",
    "report_to_json",
    "serialize_document",
]
