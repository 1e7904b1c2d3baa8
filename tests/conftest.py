"""Shared pytest fixtures for hubmark-sync tests."""

from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

from hubmark_sync.config import Config
from hubmark_sync.sync.models import Bookmark, Collection

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require the live GitHub API",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring the live GitHub API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep a developer's real config and credentials out of the tests."""
    for var in (
        "HUBMARK_CONFIG",
        "HUBMARK_GITHUB_TOKEN",
        "GITHUB_TOKEN",
        "HUBMARK_REPO_OWNER",
        "HUBMARK_REPO_NAME",
        "HUBMARK_BRANCH",
        "HUBMARK_API_URL",
        "HUBMARK_INSECURE",
        "HUBMARK_DEBUG",
        "HUBMARK_TIMEOUT",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        token="ghp_testtoken",
        owner="alice",
        repo="bookmarks",
        branch="main",
    )


@pytest.fixture
def mock_response():
    """Factory fixture for creating requests.Response mocks."""

    def _create_response(status_code=200, payload=None, text=""):
        import json

        response = Mock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        response.reason = "reason"
        if payload is not None:
            body = json.dumps(payload)
            response.content = body.encode()
            response.text = body
            response.json.return_value = payload
        else:
            response.content = text.encode()
            response.text = text
            response.json.side_effect = ValueError("no JSON")
        return response

    return _create_response


@pytest.fixture
def make_bookmark():
    """Factory fixture for bookmarks with deterministic timestamps."""

    def _make(url="https://example.com/", title="Example", ts=1000, **fields):
        return Bookmark.create(url, title, timestamp=ts, **fields)

    return _make


@pytest.fixture
def make_collection():
    """Factory fixture building a Collection from bookmarks."""

    def _make(*bookmarks):
        return Collection.from_bookmarks(bookmarks)

    return _make
