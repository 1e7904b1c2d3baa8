"""Markdown view of a bookmark collection.

``generate_readme()`` renders the collection as the repository README:
live bookmarks grouped by folder (alphabetical, titles sorted within each
folder), favourites starred, tags as inline code, notes as quotes, and the
archived bookmarks folded into a ``<details>`` block.  The view is derived
data; it is never read back.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone

from hubmark_sync.errors import NotFoundError
from hubmark_sync.sync.models import Bookmark, Collection
from hubmark_sync.sync.stores import RemoteStore

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def _entry(bookmark: Bookmark) -> str:
    line = f"- [{bookmark.title}]({bookmark.url})"
    if bookmark.favorite:
        line += " ⭐"
    if bookmark.tags:
        line += " " + " ".join(f"`{tag}`" for tag in bookmark.tags)
    if bookmark.notes:
        line += f"\n  > {bookmark.notes}"
    return line


def generate_readme(
    collection: Collection, generated_at: datetime | None = None
) -> str:
    """Render *collection* as Markdown.

    Args:
        collection: Bookmarks to render.
        generated_at: Timestamp shown in the header; defaults to now (UTC).
    """
    when = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    bookmarks = collection.values()

    parts = [
        "# My Bookmarks\n",
        f"*Generated by hubmark-sync on {when}*\n",
        f"Total bookmarks: {len(bookmarks)}\n",
    ]
    if not bookmarks:
        parts.append("No bookmarks yet. Start adding some to see them here!\n")
        return "\n".join(parts)

    by_folder: dict[str, list[Bookmark]] = defaultdict(list)
    archived: list[Bookmark] = []
    for bookmark in bookmarks:
        if bookmark.archived:
            archived.append(bookmark)
        else:
            by_folder[bookmark.folder or UNCATEGORIZED].append(bookmark)

    for folder in sorted(by_folder, key=str.casefold):
        entries = sorted(by_folder[folder], key=lambda b: b.title.casefold())
        parts.append(f"## {folder}\n")
        parts.append("\n".join(_entry(b) for b in entries) + "\n")

    if archived:
        parts.append(f"## Archived ({len(archived)})\n")
        parts.append("<details>\n<summary>Show archived bookmarks</summary>\n")
        parts.append(
            "\n".join(f"- [{b.title}]({b.url})" for b in archived) + "\n"
        )
        parts.append("</details>\n")

    parts.append("---\n")
    parts.append(
        "*This file is automatically generated from [data.json](./data.json). "
        "Do not edit directly.*\n"
    )
    return "\n".join(parts)


def update_readme_if_changed(
    remote: RemoteStore, path: str, collection: Collection
) -> bool:
    """Commit the README at *path* unless it already has this content.

    The date line is ignored when comparing, so an unchanged collection
    does not produce a commit every day.

    Returns:
        ``True`` if a commit was made.
    """
    content = generate_readme(collection)
    try:
        existing = remote.read(path)
    except NotFoundError:
        remote.write_if_version(
            path, content, None, message="docs: create README from bookmark data"
        )
        logger.info("Created %s", path)
        return True

    if _without_date(existing.content) == _without_date(content):
        logger.debug("%s unchanged", path)
        return False

    remote.write_if_version(
        path,
        content,
        existing.version,
        message="docs: update README from bookmark data",
    )
    logger.info("Updated %s", path)
    return True


def _without_date(text: str) -> str:
    return "\n".join(
        line for line in text.splitlines() if not line.startswith("*Generated by ")
    )
