"""Command-line interface for hubmark-sync.

Subcommands:

- ``sync``      -- run one sync between the local JSON replica and GitHub.
- ``validate``  -- check a document against the canonical schema.
- ``id``        -- print the stable id for a URL and title.
- ``init``      -- write a starter config file.

Exit codes: 0 success, 1 failure, 2 manual conflicts pending.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import load_config
from .config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from .config_schema import UnifiedConfig, build_config
from .core.client import GitHubClient
from .errors import SyncError
from .logger import setup_logging
from .sync.engine import SyncOrchestrator
from .sync.models import Bookmark, ConflictInfo, Resolution, SyncStatus
from .sync.readme import update_readme_if_changed
from .sync.reporter import (
    format_conflict_diff,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .sync.schema import SchemaValidator
from .sync.stable_id import canonical_url, generate_stable_id
from .sync.state import FileBaseStore, JsonFileLocalStore
from .sync.stores import GitHubRemoteStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFLICTS = 2


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _load_unified() -> tuple[UnifiedConfig, list[Path]]:
    """Load ``.env`` then the YAML config files (``.env`` feeds ``${VAR}``)."""
    load_dotenv()
    config_files = discover_config_files()
    return build_config(load_hierarchical_config()), config_files


def _github_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    return {
        k: v for k, v in unified.github.model_dump().items() if v is not None
    }


def parse_resolutions(
    choices: list[str], conflicts: list[ConflictInfo]
) -> dict[str, Bookmark | None]:
    """Turn ``ID=local|remote`` choices into merge resolutions.

    Raises:
        ValueError: On a malformed choice or an id that is not in conflict.
    """
    by_id = {c.id: c for c in conflicts}
    resolutions: dict[str, Bookmark | None] = {}
    for choice in choices:
        bookmark_id, sep, side = choice.partition("=")
        if not sep or side not in (Resolution.LOCAL.value, Resolution.REMOTE.value):
            raise ValueError(
                f"Invalid resolution '{choice}': expected ID=local or ID=remote"
            )
        conflict = by_id.get(bookmark_id)
        if conflict is None:
            raise ValueError(f"'{bookmark_id}' is not in conflict")
        resolutions[bookmark_id] = conflict.version_for(side)
    return resolutions


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_sync(args: argparse.Namespace) -> int:
    unified, config_files = _load_unified()
    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
    )
    if config_files:
        logger.info("Config file: %s", config_files[0])

    try:
        config = load_config(
            token=args.token,
            owner=args.owner,
            repo=args.repo,
            branch=args.branch,
            insecure=args.insecure,
            debug=args.debug,
            yaml_fallbacks=_github_fallbacks(unified),
        )
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_FAILURE

    settings = unified.sync
    if args.local:
        settings = settings.model_copy(update={"local_path": args.local})

    client = GitHubClient(config)
    try:
        user = client.authenticate()
    except SyncError as e:
        _stderr_print(
            f"ERROR: Cannot access {config.owner}/{config.repo}: {e}. "
            "Check HUBMARK_GITHUB_TOKEN, HUBMARK_REPO_OWNER and HUBMARK_REPO_NAME."
        )
        return EXIT_FAILURE
    logger.info("Authenticated as %s", user["login"])

    remote = GitHubRemoteStore(client)
    orchestrator = SyncOrchestrator(
        remote=remote,
        local=JsonFileLocalStore(Path(settings.local_path)),
        base=FileBaseStore(Path(settings.state_dir), settings.profile),
        settings=settings,
    )

    try:
        resolutions = None
        if args.resolve:
            preview = orchestrator.run(
                "manual", dry_run=True, direction=args.direction
            )
            if preview.status == SyncStatus.FAILED:
                return _emit_outcome(args, preview)
            resolutions = parse_resolutions(args.resolve, preview.conflicts)
        outcome = orchestrator.run(
            args.strategy,
            resolutions=resolutions,
            dry_run=args.dry_run,
            direction=args.direction,
        )
    except ValueError as e:
        _stderr_print(f"ERROR: {e}")
        return EXIT_FAILURE

    if (
        outcome.ok
        and not outcome.dry_run
        and outcome.direction.writes_remote
        and settings.write_readme
    ):
        try:
            update_readme_if_changed(remote, settings.readme_path, outcome.merged)
        except SyncError as e:
            # The bookmark data is committed; the view can be rebuilt later.
            logger.warning("README update failed: %s", e)

    return _emit_outcome(args, outcome)


def _emit_outcome(args: argparse.Namespace, outcome) -> int:
    if args.json:
        print(json.dumps(report_to_json(outcome), indent=2))
    elif outcome.dry_run and outcome.status == SyncStatus.IDLE:
        print(format_dry_run_preview(outcome))
    else:
        print(format_sync_report(outcome))
        if outcome.needs_resolution:
            for conflict in outcome.conflicts:
                print()
                print(format_conflict_diff(conflict))

    if outcome.ok:
        return EXIT_OK
    if outcome.needs_resolution:
        return EXIT_CONFLICTS
    return EXIT_FAILURE


def _cmd_validate(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        _stderr_print(f"ERROR: Cannot read {path}: {e}")
        return EXIT_FAILURE

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        messages = [f"root: invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})"]
    else:
        messages = SchemaValidator().validate(document).messages

    if args.json:
        print(json.dumps({"valid": not messages, "violations": messages}, indent=2))
    elif messages:
        print(f"{path}: {len(messages)} violation(s)")
        for message in messages:
            print(f"  {message}")
    else:
        print(f"{path}: valid")
    return EXIT_FAILURE if messages else EXIT_OK


def _cmd_id(args: argparse.Namespace) -> int:
    promote = not args.keep_scheme
    if args.canonical:
        print(canonical_url(args.url, promote_https=promote))
    print(generate_stable_id(args.url, args.title, promote_https=promote))
    return EXIT_OK


def _cmd_init(args: argparse.Namespace) -> int:
    target = Path(args.path) if args.path else None
    path, created = ensure_config(target)
    if created:
        print(f"Created starter config: {path}")
    else:
        print(f"Config already exists: {path}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hubmark-sync",
        description="Sync bookmarks with a JSON document in a GitHub repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what a sync would commit
  hubmark-sync sync --dry-run

  # Sync, letting this device win conflicts
  hubmark-sync sync --strategy local-wins

  # Only bring GitHub's changes down to this device
  hubmark-sync sync --direction pull

  # Finish a manual sync
  hubmark-sync sync --resolve hm_0123...=remote

  # Check a document by hand
  hubmark-sync validate bookmarks/data.json
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"hubmark-sync version {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run one sync")
    sync.add_argument(
        "--strategy",
        help="Conflict strategy: local-wins, remote-wins or manual "
        "(default: from config, else manual)",
    )
    sync.add_argument(
        "--direction",
        help="bidirectional, push (update GitHub only) or pull "
        "(update the local file only) (default: from config, else "
        "bidirectional)",
    )
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and merge, print the preview, write nothing",
    )
    sync.add_argument(
        "--resolve",
        action="append",
        metavar="ID=SIDE",
        help="Resolve a pending conflict to 'local' or 'remote' (repeatable)",
    )
    sync.add_argument("--local", help="Local replica JSON file")
    sync.add_argument(
        "--token",
        help="GitHub token (prefer the HUBMARK_GITHUB_TOKEN env var; "
        "arguments are visible in the process list)",
    )
    sync.add_argument("--owner", help="Repository owner")
    sync.add_argument("--repo", help="Repository name")
    sync.add_argument("--branch", help="Branch (default: main)")
    sync.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (development only)",
    )
    sync.add_argument("--json", action="store_true", help="Print JSON output")
    sync.add_argument("--debug", action="store_true", help="Debug logging")
    sync.add_argument("--log-file", help="Also log to this file")
    sync.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log record format (default: text)",
    )
    sync.set_defaults(handler=_cmd_sync)

    validate = sub.add_parser("validate", help="Validate a bookmark document")
    validate.add_argument("file", help="Path to the JSON document")
    validate.add_argument("--json", action="store_true", help="Print JSON output")
    validate.set_defaults(handler=_cmd_validate)

    ident = sub.add_parser("id", help="Print the stable id for a URL and title")
    ident.add_argument("url")
    ident.add_argument("title")
    ident.add_argument(
        "--canonical",
        action="store_true",
        help="Also print the canonical URL",
    )
    ident.add_argument(
        "--keep-scheme",
        action="store_true",
        help="Do not treat http and https as the same page",
    )
    ident.set_defaults(handler=_cmd_id)

    init = sub.add_parser("init", help="Write a starter config file")
    init.add_argument("--path", help="Where to write it (default: .hubmark/config.yml)")
    init.set_defaults(handler=_cmd_init)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    run()
