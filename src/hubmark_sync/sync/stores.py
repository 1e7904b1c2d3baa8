"""Storage collaborators for the sync orchestrator.

Three roles, each a ``Protocol``:

- ``RemoteStore``: the version-controlled canonical document.  Reads return
  the text plus an opaque version token; writes are compare-and-swap on
  that token.
- ``LocalStore``: the local replica (browser bookmark tree, a JSON file,
  ...), seen as a ``Collection``.
- ``BaseStore``: the last successfully synchronised collection, i.e. the
  common ancestor of the next three-way merge.

In-memory implementations of all three are provided for embedding and
tests.  ``GitHubRemoteStore`` adapts ``GitHubClient``; it is the only place
that knows the remote is a GitHub repository.  File-backed local and base
stores live in ``hubmark_sync.sync.state``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

from hubmark_sync.core.client import GitHubClient
from hubmark_sync.errors import NotFoundError, VersionConflictError
from hubmark_sync.sync.models import Collection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteDocument:
    """Remote document text and the version token it was read at."""

    content: str
    version: str


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class RemoteStore(Protocol):
    """Version-controlled remote holding the canonical document."""

    def read(self, path: str) -> RemoteDocument:
        """Return the document at *path*.

        Raises:
            NotFoundError: If nothing exists at *path*.
            TransportError: On any other failure.
        """
        ...  # pragma: no cover

    def write_if_version(
        self,
        path: str,
        content: str,
        expected_version: str | None,
        message: str = "",
    ) -> str:
        """Replace the document only if it is still at *expected_version*.

        ``None`` means "create; the path must not exist yet".

        Returns:
            The new version token.

        Raises:
            VersionConflictError: If the remote moved since it was read.
            TransportError: On any other failure.
        """
        ...  # pragma: no cover


class LocalStore(Protocol):
    """The local bookmark replica."""

    def snapshot(self) -> Collection:
        """Return the current local bookmarks."""
        ...  # pragma: no cover

    def apply_merged(self, merged: Collection) -> None:
        """Make the local replica equal to *merged*."""
        ...  # pragma: no cover


class BaseStore(Protocol):
    """Persistence for the common-ancestor snapshot."""

    def get(self) -> Collection | None:
        """Return the stored base, or ``None`` before the first sync."""
        ...  # pragma: no cover

    def set(self, collection: Collection) -> None:
        """Replace the stored base."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


@dataclass
class _Revision:
    content: str
    version: str


class InMemoryRemoteStore:
    """Thread-safe in-memory ``RemoteStore``.

    Versions are ``"v1"``, ``"v2"``, ... in commit order.  Every call is
    recorded in ``read_calls`` / ``write_calls`` (paths only), and each
    successful write's message in ``commit_messages``.
    """

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._files: dict[str, _Revision] = {}
        self._counter = 0
        self.read_calls: list[str] = []
        self.write_calls: list[str] = []
        self.commit_messages: list[str] = []
        for path, content in (files or {}).items():
            self.put(path, content)

    def _next_version(self) -> str:
        self._counter += 1
        return f"v{self._counter}"

    def put(self, path: str, content: str) -> str:
        """Commit *content* unconditionally (simulates another device)."""
        with self._lock:
            version = self._next_version()
            self._files[path] = _Revision(content, version)
            return version

    def version_of(self, path: str) -> str | None:
        """Return the current version of *path* (``None`` if absent)."""
        with self._lock:
            revision = self._files.get(path)
            return revision.version if revision else None

    def content_of(self, path: str) -> str | None:
        """Return the current content of *path* (``None`` if absent)."""
        with self._lock:
            revision = self._files.get(path)
            return revision.content if revision else None

    def read(self, path: str) -> RemoteDocument:
        with self._lock:
            self.read_calls.append(path)
            revision = self._files.get(path)
            if revision is None:
                raise NotFoundError(f"Not found: {path}")
            return RemoteDocument(revision.content, revision.version)

    def write_if_version(
        self,
        path: str,
        content: str,
        expected_version: str | None,
        message: str = "",
    ) -> str:
        with self._lock:
            self.write_calls.append(path)
            current = self._files.get(path)
            current_version = current.version if current else None
            if current_version != expected_version:
                raise VersionConflictError(
                    f"{path} is at {current_version}, expected {expected_version}",
                    expected_version=expected_version,
                )
            version = self._next_version()
            self._files[path] = _Revision(content, version)
            self.commit_messages.append(message)
            return version


class InMemoryLocalStore:
    """``LocalStore`` over a collection held in memory."""

    def __init__(self, collection: Collection | None = None) -> None:
        self.collection = collection or Collection.empty()
        self.apply_count = 0

    def snapshot(self) -> Collection:
        return self.collection

    def apply_merged(self, merged: Collection) -> None:
        self.collection = merged
        self.apply_count += 1


@dataclass
class InMemoryBaseStore:
    """``BaseStore`` over a collection held in memory."""

    collection: Collection | None = None
    history: list[Collection] = field(default_factory=list)

    def get(self) -> Collection | None:
        return self.collection

    def set(self, collection: Collection) -> None:
        self.collection = collection
        self.history.append(collection)


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


class GitHubRemoteStore:
    """``RemoteStore`` backed by a GitHub repository (contents API).

    The version token is the file's blob SHA.

    Args:
        client: Configured ``GitHubClient``.
    """

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    def read(self, path: str) -> RemoteDocument:
        github_file = self.client.get_file(path)
        return RemoteDocument(github_file.content, github_file.sha)

    def write_if_version(
        self,
        path: str,
        content: str,
        expected_version: str | None,
        message: str = "",
    ) -> str:
        github_file = self.client.put_file(
            path,
            content,
            message or f"Update {path}",
            sha=expected_version,
        )
        return github_file.sha
