"""
Hierarchical configuration loader for hubmark-sync.

Finds YAML config files by convention, resolves ``!include`` directives and
``${VAR:-default}`` references, and merges the files with "project wins"
semantics.

Usage:
    from hubmark_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HUBMARK_CONFIG"
PROJECT_CONFIG_DIR = ".hubmark"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    no default is given.  An unterminated ``${`` is kept literally.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _expand_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _expand_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_expand_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with an ``!include`` tag.

    A subclass keeps the tag off the global ``yaml.SafeLoader``.  Each load
    carries the chain of files being included to catch cycles.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include <path>``, relative to the includer."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "_include_chain", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return load_yaml_file(target, _chain=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(path: Path, *, _chain: list[Path] | None = None) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_chain = _chain or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def candidate_config_paths() -> list[Path]:
    """Every location searched for a config file, highest precedence first.

    1. ``$HUBMARK_CONFIG`` (explicit path)
    2. ``./.hubmark/config.yml``
    3. ``./.hubmark/config.yaml``
    4. ``~/.config/hubmark/config.yml``
    """
    paths: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        paths.append(Path(explicit).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    paths.append(project_dir / "config.yml")
    paths.append(project_dir / "config.yaml")
    paths.append(Path.home() / ".config" / "hubmark" / "config.yml")
    return paths


def discover_config_files() -> list[Path]:
    """Return the candidate config files that exist, highest precedence first."""
    return [p for p in candidate_config_paths() if p.exists()]


# ---------------------------------------------------------------------------
# 3a. Starter config
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# hubmark-sync configuration
#
# GitHub settings can also come from environment variables:
#   HUBMARK_GITHUB_TOKEN, HUBMARK_REPO_OWNER, HUBMARK_REPO_NAME,
#   HUBMARK_BRANCH, HUBMARK_API_URL, HUBMARK_INSECURE, HUBMARK_TIMEOUT
#
# github:
#   token: ${HUBMARK_GITHUB_TOKEN}
#   owner: your-name
#   repo: bookmarks
#   branch: main
#
# sync:
#   data_path: bookmarks/data.json
#   readme_path: bookmarks/README.md
#   write_readme: true
#   local_path: bookmarks.json
#   conflict_strategy: manual      # local-wins | remote-wins | manual
#   delete_policy: conflict        # conflict | delete-wins
#   direction: bidirectional       # bidirectional | push | pull
#   max_attempts: 3
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the active config file, or the project-level default path.

    Does not create anything; see ``ensure_config()``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> tuple[Path, bool]:
    """Make sure a config file exists, writing the starter template if not.

    Args:
        target: Where to create the file.  Defaults to
            ``resolve_config_path()``.

    Returns:
        ``(path, created)``: the config file and whether it was just written.
    """
    existing = discover_config_files()
    if existing and target is None:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0], False

    config_path = target or resolve_config_path()
    if config_path.exists():
        return config_path, False

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path, True


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    Files are applied from lowest to highest precedence; a top-level key in
    a higher-precedence file replaces the whole section from a lower one.
    Environment references are expanded after merging.

    Returns ``{}`` when no config file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s at its root, expected a mapping; skipping",
                path,
                type(data).__name__,
            )

    return _expand_tree(merged)
