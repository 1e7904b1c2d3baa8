"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- what a dry run would commit.
- ``format_conflict_diff`` -- unified diff of one conflict's two versions.
- ``report_to_json`` -- structured dict for ``--json`` output.
- ``format_commit_message`` -- commit message for the remote write.
"""

from __future__ import annotations

import difflib
import json
from typing import TYPE_CHECKING

from .models import CONTENT_FIELDS, SyncStatus

if TYPE_CHECKING:
    from .models import Bookmark, ConflictInfo, MergeStats, SyncOutcome

# ------------------------------------------------------------------
# Commit message
# ------------------------------------------------------------------


def format_commit_message(stats: MergeStats) -> str:
    """Return ``chore: sync bookmarks (+added ~modified -deleted)``."""
    return (
        f"chore: sync bookmarks "
        f"(+{stats.added} ~{stats.modified} -{stats.deleted})"
    )


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _summary_line(outcome: SyncOutcome) -> str:
    stats = outcome.stats
    total = len(outcome.merged.bookmarks) if outcome.merged is not None else 0
    return (
        f"{total} bookmarks: "
        f"{stats.added} added, {stats.modified} modified, "
        f"{stats.deleted} deleted, {stats.conflicted} conflicts"
    )


def format_sync_report(outcome: SyncOutcome) -> str:
    """Format a completed sync run as human-readable text.

    Sections are only included when they have content.

    Args:
        outcome: The run's outcome.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync {outcome.status.value}"
    if outcome.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {outcome.started_at}")
    if outcome.completed_at:
        lines.append(f"Completed: {outcome.completed_at}")
    lines.append("")

    lines.append(_summary_line(outcome))
    if outcome.attempts:
        lines.append(f"Write attempts: {outcome.attempts}")
    if outcome.remote_version:
        lines.append(f"Remote version: {outcome.remote_version}")
    lines.append("")

    if outcome.conflicts:
        lines.append("Conflicts:")
        for conflict in outcome.conflicts:
            fields = ", ".join(d.field for d in conflict.differences) or "-"
            lines.append(
                f"  {conflict.id} [{conflict.kind.value}] "
                f"{conflict.resolution.value}: {fields}"
            )
        lines.append("")

    if outcome.status == SyncStatus.MANUAL_CONFLICT:
        lines.append(
            "Nothing was written. Resolve the pending conflicts and sync again."
        )
        lines.append("")

    if outcome.status == SyncStatus.FAILED:
        reason = outcome.reason.value if outcome.reason else "unknown"
        lines.append(f"Failed ({reason}): {outcome.error}")
        for violation in outcome.violations:
            lines.append(f"  {violation}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(outcome: SyncOutcome) -> str:
    """Format a dry-run outcome as a preview of the commit it would make."""
    lines: list[str] = ["DRY RUN -- No changes will be made", ""]
    lines.append(_summary_line(outcome))

    stats = outcome.stats
    if stats.added or stats.modified or stats.deleted:
        lines.append(f"Would commit: {format_commit_message(stats)}")
    else:
        lines.append("No changes needed.")

    for conflict in outcome.conflicts:
        lines.append(
            f"  [{conflict.kind.value}] {conflict.id} -> {conflict.resolution.value}"
        )

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def _field_lines(bookmark: Bookmark | None) -> list[str]:
    if bookmark is None:
        return []
    lines = []
    for name in CONTENT_FIELDS:
        value = getattr(bookmark, name)
        if isinstance(value, tuple):
            value = list(value)
        lines.append(f"{name}: {json.dumps(value, ensure_ascii=False)}\n")
    return lines


def format_conflict_diff(conflict: ConflictInfo) -> str:
    """Format a single conflict for review.

    Shows a unified diff between the local and remote versions, one content
    field per line.  A deleted side diffs as an empty file.
    """
    lines: list[str] = []
    shown = conflict.local or conflict.remote or conflict.base
    label = shown.title if shown is not None else ""
    lines.append(f"Conflict: {conflict.id} ({conflict.kind.value}) {label}".rstrip())
    lines.append("")

    diff = difflib.unified_diff(
        _field_lines(conflict.local),
        _field_lines(conflict.remote),
        fromfile="local" if conflict.local is not None else "local (deleted)",
        tofile="remote" if conflict.remote is not None else "remote (deleted)",
    )
    diff_text = "".join(diff)
    lines.append(diff_text.rstrip() if diff_text else "(no field differences)")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(outcome: SyncOutcome) -> dict:
    """Convert a sync outcome to a structured dict for JSON serialisation.

    Bookmark versions inside conflicts use the canonical (camelCase) keys.
    """
    conflicts = []
    for conflict in outcome.conflicts:
        conflicts.append(
            {
                "id": conflict.id,
                "kind": conflict.kind.value,
                "resolution": conflict.resolution.value,
                "fields": [d.field for d in conflict.differences],
                "local": conflict.local.to_document() if conflict.local is not None else None,
                "remote": conflict.remote.to_document() if conflict.remote is not None else None,
            }
        )

    result: dict = {
        "status": outcome.status.value,
        "dry_run": outcome.dry_run,
        "direction": outcome.direction.value,
        "started_at": outcome.started_at,
        "completed_at": outcome.completed_at,
        "attempts": outcome.attempts,
        "remote_version": outcome.remote_version,
        "counts": {
            "total": len(outcome.merged.bookmarks) if outcome.merged is not None else 0,
            **outcome.stats.model_dump(),
        },
        "conflicts": conflicts,
        "history": [s.value for s in outcome.history],
    }
    if outcome.status == SyncStatus.FAILED:
        result["reason"] = outcome.reason.value if outcome.reason else None
        result["error"] = outcome.error
        if outcome.violations:
            result["violations"] = list(outcome.violations)
    return result
