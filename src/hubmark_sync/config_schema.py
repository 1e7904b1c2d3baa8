"""Unified configuration schema for hubmark-sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the GitHub connection, sync behaviour and logging. Includes an
adapter function to the ``Config`` dataclass the GitHub client consumes.

Usage:
    from hubmark_sync.config_schema import (
        UnifiedConfig, build_config, to_client_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_client_config(unified, cli_overrides={"owner": "me"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from hubmark_sync.sync.settings import SyncSettings

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GitHubConfig(BaseModel):
    """GitHub repository connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    token: str | None = Field(default=None, description="Personal access token")
    owner: str | None = Field(default=None, description="Repository owner")
    repo: str | None = Field(default=None, description="Repository name")
    branch: str | None = Field(default=None, description="Branch name")
    api_url: str | None = Field(default=None, description="GitHub API base URL")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    timeout: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Request timeout in seconds (1-600)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_client_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    CLI overrides dict keys: token, owner, repo, branch, insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports (config.py is the lower layer)
    from .config import DEFAULT_API_URL, Config

    overrides = cli_overrides or {}
    gh = unified.github

    return Config(
        token=overrides.get("token") or gh.token or "",
        owner=overrides.get("owner") or gh.owner or "",
        repo=overrides.get("repo") or gh.repo or "",
        branch=overrides.get("branch") or gh.branch or "main",
        api_url=gh.api_url or DEFAULT_API_URL,
        insecure=overrides.get("insecure", False) or gh.insecure,
        debug=overrides.get("debug", False) or gh.debug,
        timeout=gh.timeout,
    )
