from unittest.mock import patch

import pytest
import requests

from hubmark_sync.config import Config
from hubmark_sync.core.client import (
    GitHubClient,
    decode_content,
    encode_content,
)
from hubmark_sync.errors import (
    NotFoundError,
    TransportError,
    VersionConflictError,
)

REQUEST = "hubmark_sync.core.client.requests.Session.request"


# URL and session construction
def test_repo_url_construction(mock_config):
    """Test that the repository URL is built from owner and repo."""
    client = GitHubClient(mock_config)
    assert client.repo_url == "https://api.github.com/repos/alice/bookmarks"


def test_repo_url_with_enterprise_api():
    """Test repo URL construction for a GitHub Enterprise API base."""
    config = Config(
        token="t",
        owner="o",
        repo="r",
        api_url="https://ghe.example.com/api/v3/",
    )
    client = GitHubClient(config)
    assert client.repo_url == "https://ghe.example.com/api/v3/repos/o/r"


def test_session_headers(mock_config):
    """Test that the session carries the token and API headers."""
    client = GitHubClient(mock_config)
    headers = client.session.headers
    assert headers["Authorization"] == "Bearer ghp_testtoken"
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert client.session.verify


def test_session_insecure():
    """Test that TLS verification is disabled in insecure mode."""
    config = Config(token="t", owner="o", repo="r", insecure=True)
    assert not GitHubClient(config).session.verify


def test_session_reused_within_thread(mock_config):
    """Test that the thread-local session is created once."""
    client = GitHubClient(mock_config)
    assert client.session is client.session


# Content encoding
def test_encode_decode_unicode():
    """Test base64 encoding of non-ASCII text."""
    assert decode_content(encode_content("Café ⭐")) == "Café ⭐"


def test_decode_wrapped_payload():
    """Test that GitHub's line-wrapped base64 decodes."""
    encoded = encode_content("x" * 100)
    wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))
    assert decode_content(wrapped) == "x" * 100


def test_decode_garbage():
    """Test that invalid base64 is a TransportError."""
    with pytest.raises(TransportError):
        decode_content("!!!not base64!!!")


# get_file
@patch(REQUEST)
def test_get_file_success(mock_request, mock_config, mock_response):
    """Test reading a file through the contents API."""
    mock_request.return_value = mock_response(
        payload={
            "type": "file",
            "sha": "abc123",
            "encoding": "base64",
            "content": encode_content('{"schemaVersion": 1}'),
        }
    )

    result = GitHubClient(mock_config).get_file("bookmarks/data.json")

    assert result.sha == "abc123"
    assert result.content == '{"schemaVersion": 1}'
    method, url = mock_request.call_args.args
    assert method == "GET"
    assert url.endswith("/repos/alice/bookmarks/contents/bookmarks/data.json")
    assert mock_request.call_args.kwargs["params"] == {"ref": "main"}
    assert mock_request.call_args.kwargs["timeout"] == 30


@patch(REQUEST)
def test_get_file_large_uses_blob(mock_request, mock_config, mock_response):
    """Test the git blobs fallback for files without inline content."""
    mock_request.side_effect = [
        mock_response(
            payload={"type": "file", "sha": "big", "encoding": "none", "content": ""}
        ),
        mock_response(payload={"content": encode_content("large"), "encoding": "base64"}),
    ]

    result = GitHubClient(mock_config).get_file("data.json")

    assert result.content == "large"
    assert mock_request.call_args.args[1].endswith("/git/blobs/big")


@patch(REQUEST)
def test_get_file_directory(mock_request, mock_config, mock_response):
    """Test that a directory listing is rejected."""
    mock_request.return_value = mock_response(payload=[{"name": "a"}])
    with pytest.raises(TransportError, match="not a file"):
        GitHubClient(mock_config).get_file("bookmarks")


@patch(REQUEST)
def test_get_file_not_found(mock_request, mock_config, mock_response):
    """Test that 404 maps to NotFoundError."""
    mock_request.return_value = mock_response(404, payload={"message": "Not Found"})
    with pytest.raises(NotFoundError):
        GitHubClient(mock_config).get_file("data.json")


# put_file
@patch(REQUEST)
def test_put_file_with_sha(mock_request, mock_config, mock_response):
    """Test a conditional update sends the expected sha."""
    mock_request.return_value = mock_response(payload={"content": {"sha": "new"}})

    result = GitHubClient(mock_config).put_file(
        "data.json", "text", "chore: sync", sha="old"
    )

    assert result.sha == "new"
    body = mock_request.call_args.kwargs["json"]
    assert body["sha"] == "old"
    assert body["branch"] == "main"
    assert body["message"] == "chore: sync"
    assert decode_content(body["content"]) == "text"


@patch(REQUEST)
def test_put_file_create_omits_sha(mock_request, mock_config, mock_response):
    """Test that creating a file sends no sha."""
    mock_request.return_value = mock_response(201, payload={"content": {"sha": "s"}})
    GitHubClient(mock_config).put_file("data.json", "text", "create")
    assert "sha" not in mock_request.call_args.kwargs["json"]


@pytest.mark.parametrize(
    "status,message",
    [
        (409, "data.json does not match abc"),
        (422, 'Invalid request. "sha" wasn\'t supplied.'),
    ],
)
@patch(REQUEST)
def test_put_file_stale_sha(mock_request, status, message, mock_config, mock_response):
    """Test that a stale sha maps to VersionConflictError."""
    mock_request.return_value = mock_response(status, payload={"message": message})
    with pytest.raises(VersionConflictError) as exc_info:
        GitHubClient(mock_config).put_file("data.json", "t", "m", sha="abc")
    assert exc_info.value.expected_version == "abc"


@patch(REQUEST)
def test_other_422_is_transport_error(mock_request, mock_config, mock_response):
    """Test that unrelated validation failures are not version conflicts."""
    mock_request.return_value = mock_response(422, payload={"message": "Invalid path"})
    with pytest.raises(TransportError) as exc_info:
        GitHubClient(mock_config).put_file("data.json", "t", "m")
    assert exc_info.value.status_code == 422


@patch(REQUEST)
def test_server_error(mock_request, mock_config, mock_response):
    """Test that a 5xx with a non-JSON body keeps its text."""
    mock_request.return_value = mock_response(502, text="Bad gateway")
    with pytest.raises(TransportError, match="Bad gateway") as exc_info:
        GitHubClient(mock_config).get_file("data.json")
    assert exc_info.value.status_code == 502


@patch(REQUEST)
def test_connection_error(mock_request, mock_config):
    """Test that requests exceptions become TransportError."""
    mock_request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportError, match="refused"):
        GitHubClient(mock_config).get_file("data.json")


# authenticate
@patch(REQUEST)
def test_authenticate(mock_request, mock_config, mock_response):
    """Test that authenticate checks the user and the repository."""
    mock_request.side_effect = [
        mock_response(payload={"login": "alice", "id": 1, "name": "Alice"}),
        mock_response(payload={"full_name": "alice/bookmarks"}),
    ]

    info = GitHubClient(mock_config).authenticate()

    assert info == {"login": "alice", "id": 1, "name": "Alice"}
    urls = [call.args[1] for call in mock_request.call_args_list]
    assert urls == [
        "https://api.github.com/user",
        "https://api.github.com/repos/alice/bookmarks",
    ]


@patch(REQUEST)
def test_authenticate_bad_token(mock_request, mock_config, mock_response):
    """Test that a rejected token surfaces as TransportError(401)."""
    mock_request.return_value = mock_response(401, payload={"message": "Bad credentials"})
    with pytest.raises(TransportError) as exc_info:
        GitHubClient(mock_config).authenticate()
    assert exc_info.value.status_code == 401
