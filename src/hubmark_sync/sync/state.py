"""File-backed base and local stores.

The base snapshot of each profile lives in ``state_dir`` as
``base_{profile}.json``, in the same canonical document format as the
remote.  ``JsonFileLocalStore`` keeps a local replica in a JSON file of
that format too, which makes the CLI usable without a browser.

Key design choices:

* **Atomic writes** -- ``atomic_write_text()`` writes to a temp file in the
  target directory then calls ``os.replace()`` so readers never see
  partial data and a crash leaves the previous file intact.
* **Validated reads** -- both stores parse through ``parse_document()``, so
  a hand-edited or truncated file surfaces as ``SchemaValidationError``
  instead of feeding bad data into a merge.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from hubmark_sync.sync.models import Collection
from hubmark_sync.sync.schema import parse_document, serialize_document

logger = logging.getLogger(__name__)


def atomic_write_text(target: Path, text: str) -> None:
    """Replace *target* with *text* atomically, creating parent dirs."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileBaseStore:
    """Persist the base snapshot for one profile.

    Args:
        state_dir: Directory holding the state files (typically
            ``.hubmark/``).
        profile: Profile name (used in the file name).
    """

    def __init__(self, state_dir: Path, profile: str = "default") -> None:
        self._state_dir = Path(state_dir)
        self.profile = profile

    @property
    def path(self) -> Path:
        return self._state_dir / f"base_{self.profile}.json"

    def get(self) -> Collection | None:
        """Load the base, or ``None`` if this profile never synced.

        Raises:
            SchemaValidationError: If the file exists but is invalid.
        """
        if not self.path.exists():
            return None
        return parse_document(self.path.read_text(encoding="utf-8"))

    def set(self, collection: Collection) -> None:
        """Persist *collection* as the new base."""
        text = serialize_document(
            collection,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )
        atomic_write_text(self.path, text)
        logger.debug(
            "Saved base for profile '%s' (%d bookmarks)",
            self.profile,
            len(collection.bookmarks),
        )

    def clear(self) -> None:
        """Forget the base; the next sync starts from an empty ancestor."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class JsonFileLocalStore:
    """Local replica kept in a canonical JSON document on disk.

    A missing file is an empty replica.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def snapshot(self) -> Collection:
        if not self.path.exists():
            return Collection.empty()
        return parse_document(self.path.read_text(encoding="utf-8"))

    def apply_merged(self, merged: Collection) -> None:
        atomic_write_text(self.path, serialize_document(merged))
        logger.info(
            "Wrote %d bookmarks to %s", len(merged.bookmarks), self.path
        )
