"""GitHub connection configuration.

Reads the connection settings for the remote bookmark repository from CLI
args, environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    HUBMARK_GITHUB_TOKEN: Personal access token (required; GITHUB_TOKEN is
        accepted as a fallback)
    HUBMARK_REPO_OWNER: Owner of the bookmark repository (required)
    HUBMARK_REPO_NAME: Name of the bookmark repository (required)
    HUBMARK_BRANCH: Branch holding the document (optional, default: main)
    HUBMARK_API_URL: GitHub API base URL (optional, default: https://api.github.com)
    HUBMARK_INSECURE: Skip SSL verification (optional, default: false)
    HUBMARK_DEBUG: Enable debug logging (optional, default: false)
    HUBMARK_TIMEOUT: Request timeout in seconds (optional, default: 30)
"""

import logging
import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass
class Config:
    token: str
    owner: str
    repo: str
    branch: str = "main"
    api_url: str = DEFAULT_API_URL
    insecure: bool = False
    debug: bool = False
    timeout: int = 30


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the API URL is malformed, the token is empty, or the
            repository coordinates are not valid GitHub names.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.token.strip():
        raise ValueError(
            "GitHub token cannot be empty. Set HUBMARK_GITHUB_TOKEN environment variable."
        )

    for label, value in (("owner", config.owner), ("repository", config.repo)):
        if not _NAME_RE.match(value):
            raise ValueError(
                f"Invalid repository {label} '{value}': only letters, digits, '-', '_' and '.' are allowed"
            )

    if not config.branch.strip():
        raise ValueError("Branch name cannot be empty")

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    token: str | None = None,
    owner: str | None = None,
    repo: str | None = None,
    branch: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        token: Override GitHub token.
        owner: Override repository owner.
        repo: Override repository name.
        branch: Override branch.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``github`` section.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (token, owner, repo) is missing
            after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error/default ---

    final_token = (
        token
        or os.getenv("HUBMARK_GITHUB_TOKEN")
        or os.getenv("GITHUB_TOKEN")
        or fb.get("token")
    )
    if not final_token:
        raise ValueError(
            "GitHub token not found. Set HUBMARK_GITHUB_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    final_owner = owner or os.getenv("HUBMARK_REPO_OWNER") or fb.get("owner")
    if not final_owner:
        raise ValueError(
            "Repository owner not found. Set HUBMARK_REPO_OWNER environment variable, "
            "pass --owner CLI argument, or add 'owner' to config.yml."
        )

    final_repo = repo or os.getenv("HUBMARK_REPO_NAME") or fb.get("repo")
    if not final_repo:
        raise ValueError(
            "Repository name not found. Set HUBMARK_REPO_NAME environment variable, "
            "pass --repo CLI argument, or add 'repo' to config.yml."
        )

    final_branch = (
        branch or os.getenv("HUBMARK_BRANCH") or fb.get("branch") or "main"
    )
    final_api_url = (
        os.getenv("HUBMARK_API_URL") or fb.get("api_url") or DEFAULT_API_URL
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("HUBMARK_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("HUBMARK_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("HUBMARK_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = int(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid HUBMARK_TIMEOUT '{timeout_raw}': must be a number between 1 and 600"
            ) from None
        if not (1 <= final_timeout <= 600):
            raise ValueError(
                f"Invalid HUBMARK_TIMEOUT '{timeout_raw}': must be a number between 1 and 600"
            )
    elif "timeout" in fb:
        final_timeout = int(fb["timeout"])
    else:
        final_timeout = 30

    config = Config(
        token=final_token.strip(),
        owner=final_owner.strip(),
        repo=final_repo.strip(),
        branch=final_branch.strip(),
        api_url=final_api_url,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
