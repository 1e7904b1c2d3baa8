"""Two-way diff between a base collection and a candidate.

Content is compared by value over ``CONTENT_FIELDS``; ``dateAdded`` and
``dateModified`` never make a bookmark "modified" on their own.  Tags are
stored as sorted tuples, so tag comparison is order-insensitive.
"""

from __future__ import annotations

from typing import Any

from hubmark_sync.sync.models import (
    CONTENT_FIELDS,
    Bookmark,
    Changeset,
    Collection,
    FieldDifference,
)


def content_differs(a: Bookmark, b: Bookmark) -> bool:
    """Return ``True`` if *a* and *b* differ in any content field."""
    return any(getattr(a, name) != getattr(b, name) for name in CONTENT_FIELDS)


def changed_fields(a: Bookmark, b: Bookmark) -> list[str]:
    """Return the content fields whose values differ between *a* and *b*."""
    return [
        name for name in CONTENT_FIELDS if getattr(a, name) != getattr(b, name)
    ]


def _plain(value: Any) -> Any:
    return list(value) if isinstance(value, tuple) else value


def _value(bookmark: Bookmark | None, name: str) -> Any:
    return None if bookmark is None else _plain(getattr(bookmark, name))


def field_differences(
    base: Bookmark | None,
    local: Bookmark | None,
    remote: Bookmark | None,
) -> list[FieldDifference]:
    """Describe the fields in dispute for a conflicting id.

    When both sides exist, the fields where local and remote disagree are
    listed.  When one side deleted the bookmark, the fields the surviving
    side edited relative to *base* are listed (the edits a deletion would
    discard).
    """
    if local is not None and remote is not None:
        names = changed_fields(local, remote)
    else:
        survivor = local if local is not None else remote
        if survivor is None or base is None:
            names = []
        else:
            names = changed_fields(base, survivor)

    return [
        FieldDifference(
            field=name,
            base=_value(base, name),
            local=_value(local, name),
            remote=_value(remote, name),
        )
        for name in names
    ]


def diff(base: Collection, candidate: Collection) -> Changeset:
    """Compute what *candidate* changed relative to *base*.

    Runs in ``O(len(base) + len(candidate))`` using id-indexed lookups.

    Returns:
        A ``Changeset``.  ``added``/``modified``/``unchanged`` hold the
        candidate's version; ``removed`` holds the base version of each
        tombstone.
    """
    added: dict[str, Bookmark] = {}
    modified: dict[str, Bookmark] = {}
    unchanged: dict[str, Bookmark] = {}

    for bookmark_id, current in candidate.bookmarks.items():
        previous = base.get(bookmark_id)
        if previous is None:
            added[bookmark_id] = current
        elif content_differs(previous, current):
            modified[bookmark_id] = current
        else:
            unchanged[bookmark_id] = current

    removed = {
        bookmark_id: previous
        for bookmark_id, previous in base.bookmarks.items()
        if bookmark_id not in candidate
    }

    return Changeset(
        added=added,
        modified=modified,
        removed=removed,
        unchanged=unchanged,
    )
