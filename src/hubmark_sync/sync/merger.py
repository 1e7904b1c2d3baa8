"""Three-way merge of bookmark collections for the sync engine.

``merge()`` diffs *local* and *remote* against their common ancestor
*base* and walks the sorted union of ids, classifying each one:

* **Fast-forward** -- only one side touched the id: take that side (or its
  deletion).
* **Convergent** -- both sides reached the same content: take the version
  with the newer ``dateModified`` (ties go to local); no conflict.
* **Conflict** -- edit/edit, delete/edit, edit/delete or add/add with
  different content: the configured resolver decides; every such id is
  recorded in ``MergeResult.conflicts`` whatever the outcome.

Key design choices:

* Merging is attribute-level over whole bookmarks.  Field values are never
  merged textually; the winning side's version is taken as a unit.
* Timestamp-only edits are not content changes.  When one side edited the
  content and the other only bumped ``dateModified``, the content side
  wins and the newer timestamp is carried through.
* Callers complete a ``manual`` merge by passing ``resolutions``; an id
  found there is taken verbatim and never reported as a conflict.
"""

from __future__ import annotations

import logging
from typing import Mapping

from hubmark_sync.errors import InvariantViolation
from hubmark_sync.sync.differ import content_differs, diff, field_differences
from hubmark_sync.sync.models import (
    Bookmark,
    ChangeKind,
    Collection,
    ConflictInfo,
    ConflictKind,
    ConflictStrategy,
    DeletePolicy,
    MergeResult,
    MergeStats,
)
from hubmark_sync.sync.resolver import create_resolver, resolved_version
from hubmark_sync.sync.stable_id import is_valid_stable_id

logger = logging.getLogger(__name__)

# Sentinel: the id has no entry in the merged collection.
_DROP = None


def _newest(local: Bookmark, remote: Bookmark) -> Bookmark:
    """Pick between two content-equal versions; ties go to local."""
    if remote.date_modified > local.date_modified:
        return remote
    return local


def _fast_forward(
    changed: Bookmark, other: Bookmark, base: Bookmark
) -> Bookmark:
    """Take *changed*, carrying a newer timestamp bump from *other*."""
    if other == base or other.date_modified <= changed.date_modified:
        return changed
    return changed.model_copy(update={"date_modified": other.date_modified})


def _conflict_kind(
    local_kind: ChangeKind | None, remote_kind: ChangeKind | None
) -> ConflictKind:
    if local_kind == ChangeKind.ADDED and remote_kind == ChangeKind.ADDED:
        return ConflictKind.ADD_ADD
    if local_kind == ChangeKind.REMOVED:
        return ConflictKind.DELETE_EDIT
    if remote_kind == ChangeKind.REMOVED:
        return ConflictKind.EDIT_DELETE
    return ConflictKind.EDIT_EDIT


def merge(
    base: Collection,
    local: Collection,
    remote: Collection,
    strategy: ConflictStrategy | str = ConflictStrategy.MANUAL,
    *,
    delete_policy: DeletePolicy | str = DeletePolicy.CONFLICT,
    resolutions: Mapping[str, Bookmark | None] | None = None,
) -> MergeResult:
    """Merge *local* and *remote* relative to their common ancestor *base*.

    Args:
        base: Last successfully synchronised collection.
        local: Current local replica.
        remote: Current remote document.
        strategy: How conflicts are resolved.  Only ``ConflictStrategy``
            values are accepted here; external labels go through
            ``parse_strategy()`` first.
        delete_policy: ``conflict`` (default) treats delete-vs-edit as a
            conflict; ``delete-wins`` lets the deletion through silently.
        resolutions: Caller decisions for conflicted ids: a ``Bookmark`` to
            keep, or ``None`` to delete.

    Returns:
        A ``MergeResult`` with the merged collection (sorted by id), the
        conflicts (sorted by id) and statistics relative to *base*.

    Raises:
        InvariantViolation: If the merged output breaks the id invariants,
            e.g. a resolution whose id does not match its key.
        ValueError: If *strategy* or *delete_policy* is unknown.
    """
    strategy = ConflictStrategy(strategy)
    delete_policy = DeletePolicy(delete_policy)
    resolutions = resolutions or {}
    resolver = create_resolver(strategy)

    local_changes = diff(base, local)
    remote_changes = diff(base, remote)

    merged: list[Bookmark] = []
    conflicts: list[ConflictInfo] = []
    pending: set[str] = set()

    for bookmark_id in sorted(base.ids() | local.ids() | remote.ids()):
        base_version = base.get(bookmark_id)
        local_version = local.get(bookmark_id)
        remote_version = remote.get(bookmark_id)
        local_kind = local_changes.kind_of(bookmark_id)
        remote_kind = remote_changes.kind_of(bookmark_id)

        in_conflict = False
        chosen: Bookmark | None = _DROP

        if base_version is None:
            # Added on one or both sides.
            if local_version is None:
                chosen = remote_version
            elif remote_version is None:
                chosen = local_version
            elif not content_differs(local_version, remote_version):
                chosen = _newest(local_version, remote_version)
            else:
                in_conflict = True
        elif local_version is None or remote_version is None:
            # Deleted on at least one side.
            survivor = local_version if remote_version is None else remote_version
            survivor_kind = local_kind if remote_version is None else remote_kind
            if survivor is None or survivor_kind == ChangeKind.UNCHANGED:
                chosen = _DROP
            elif delete_policy == DeletePolicy.DELETE_WINS:
                logger.debug(
                    "Deletion of %s wins over edit (delete-wins policy)",
                    bookmark_id,
                )
                chosen = _DROP
            else:
                in_conflict = True
        elif local_kind == ChangeKind.MODIFIED and remote_kind == ChangeKind.MODIFIED:
            if content_differs(local_version, remote_version):
                in_conflict = True
            else:
                chosen = _newest(local_version, remote_version)
        elif local_kind == ChangeKind.MODIFIED:
            chosen = _fast_forward(local_version, remote_version, base_version)
        elif remote_kind == ChangeKind.MODIFIED:
            chosen = _fast_forward(remote_version, local_version, base_version)
        elif local_version == base_version:
            chosen = remote_version
        elif remote_version == base_version:
            chosen = local_version
        else:
            chosen = _newest(local_version, remote_version)

        if in_conflict:
            if bookmark_id in resolutions:
                chosen = resolutions[bookmark_id]
                if chosen is not None and chosen.id != bookmark_id:
                    raise InvariantViolation(
                        f"resolution for '{bookmark_id}' carries id '{chosen.id}'"
                    )
            else:
                draft = ConflictInfo(
                    id=bookmark_id,
                    kind=_conflict_kind(local_kind, remote_kind),
                    base=base_version,
                    local=local_version,
                    remote=remote_version,
                    differences=field_differences(
                        base_version, local_version, remote_version
                    ),
                )
                resolution = resolver.resolve(draft)
                conflict = draft.model_copy(update={"resolution": resolution})
                conflicts.append(conflict)
                if conflict.pending:
                    pending.add(bookmark_id)
                    continue
                chosen = resolved_version(conflict, resolution)

        if chosen is not None:
            merged.append(chosen)

    result_collection = _build_collection(merged, local.schema_version)
    stats = _compute_stats(base, result_collection, pending, len(conflicts))

    logger.info(
        "Merged %d bookmarks: +%d ~%d -%d, %d conflict(s)",
        len(result_collection.bookmarks),
        stats.added,
        stats.modified,
        stats.deleted,
        stats.conflicted,
    )
    return MergeResult(merged=result_collection, conflicts=conflicts, stats=stats)


def _build_collection(bookmarks: list[Bookmark], schema_version: int) -> Collection:
    for bookmark in bookmarks:
        if not is_valid_stable_id(bookmark.id):
            raise InvariantViolation(f"merged bookmark has invalid id '{bookmark.id}'")
    return Collection.from_bookmarks(bookmarks, schema_version=schema_version)


def _compute_stats(
    base: Collection,
    merged: Collection,
    pending: set[str],
    conflicted: int,
) -> MergeStats:
    added = modified = deleted = 0
    for bookmark_id, bookmark in merged.bookmarks.items():
        previous = base.get(bookmark_id)
        if previous is None:
            added += 1
        elif content_differs(previous, bookmark):
            modified += 1
    for bookmark_id in base.bookmarks:
        if bookmark_id not in merged and bookmark_id not in pending:
            deleted += 1
    return MergeStats(
        added=added, modified=modified, deleted=deleted, conflicted=conflicted
    )
