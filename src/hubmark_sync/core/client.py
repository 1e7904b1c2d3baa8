import base64
import binascii
import logging
import threading
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from ..config import Config
from ..errors import NotFoundError, TransportError, VersionConflictError

logger = logging.getLogger(__name__)

GITHUB_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"


@dataclass
class GitHubFile:
    """A text file read from (or written to) the repository.

    ``sha`` is the blob SHA GitHub reports; it doubles as the version token
    for conditional writes.
    """

    path: str
    content: str
    sha: str


def encode_content(text: str) -> str:
    """Base64-encode UTF-8 *text* for the contents API."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(payload: str) -> str:
    """Decode a contents-API base64 payload (GitHub wraps it at 60 columns)."""
    try:
        raw = base64.b64decode("".join(payload.split()), validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise TransportError(f"Undecodable file content from GitHub: {exc}") from exc


class GitHubClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.repo_url = self._get_repo_url()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_repo_url(self) -> str:
        return (
            f"{self.config.api_url.rstrip('/')}/repos/"
            f"{self.config.owner}/{self.config.repo}"
        )

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.token}",
                "Accept": GITHUB_MEDIA_TYPE,
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
                "User-Agent": "hubmark-sync",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _contents_url(self, path: str) -> str:
        return f"{self.repo_url}/contents/{quote(path.lstrip('/'))}"

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Send a request and return the decoded JSON body.

        Maps failures onto the sync error taxonomy: 404 is ``NotFoundError``,
        a stale ``sha`` (409, or 422 mentioning the sha) is
        ``VersionConflictError``, anything else is ``TransportError``.
        """
        session = self._get_session()
        try:
            response = session.request(
                method, url, timeout=self.config.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.ok:
            return response.json() if response.content else None

        message = _error_message(response)
        status = response.status_code
        logger.debug("%s %s -> %d %s", method, url, status, message)

        if status == 404:
            raise NotFoundError(f"Not found: {url}")
        if status == 409 or (status == 422 and "sha" in message.lower()):
            raise VersionConflictError(
                f"Remote changed since it was read: {message}",
                expected_version=(kwargs.get("json") or {}).get("sha"),
            )
        raise TransportError(
            f"GitHub API error {status}: {message}", status_code=status
        )

    def authenticate(self) -> dict[str, Any]:
        """
        Verify the token and repository access.

        Returns the authenticated user's ``login``, ``id`` and ``name``.
        Raises ``TransportError`` if the token is rejected and
        ``NotFoundError`` if the repository is not visible to it.
        """
        user = self._request("GET", f"{self.config.api_url.rstrip('/')}/user")
        self._request("GET", self.repo_url)
        return {
            "login": user.get("login"),
            "id": user.get("id"),
            "name": user.get("name"),
        }

    def get_file(self, path: str) -> GitHubFile:
        """
        Read a text file from the configured branch.

        Files above the contents API inline limit are fetched through the
        git blobs endpoint.
        """
        data = self._request(
            "GET", self._contents_url(path), params={"ref": self.config.branch}
        )
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise TransportError(f"'{path}' is not a file")

        sha = data["sha"]
        if data.get("encoding") == "base64":
            content = decode_content(data.get("content", ""))
        else:
            blob = self._request("GET", f"{self.repo_url}/git/blobs/{sha}")
            content = decode_content(blob.get("content", ""))

        logger.debug("Read %s at %s", path, sha)
        return GitHubFile(path=path, content=content, sha=sha)

    def put_file(
        self,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> GitHubFile:
        """
        Create or replace a file in one commit.

        Args:
            path: Repository path.
            content: New UTF-8 text.
            message: Commit message.
            sha: Blob SHA the write is conditioned on.  ``None`` creates the
                file and fails with ``VersionConflictError`` if it exists.

        Returns:
            The written file with its new blob SHA.
        """
        body: dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
            "branch": self.config.branch,
        }
        if sha is not None:
            body["sha"] = sha

        result = self._request("PUT", self._contents_url(path), json=body)
        new_sha = result["content"]["sha"]
        logger.info(
            "Committed %s (%s -> %s)", path, sha or "new", new_sha
        )
        return GitHubFile(path=path, content=content, sha=new_sha)


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason or ""
    if isinstance(payload, dict):
        return str(payload.get("message") or payload)
    return str(payload)
