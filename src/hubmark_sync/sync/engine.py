"""Sync orchestrator: one fetch/merge/write/persist cycle per run.

``SyncOrchestrator.run()`` drives the state machine::

    IDLE -> FETCHING -> VALIDATING -> MERGING -> WRITING -> PERSISTING -> IDLE
                                          \\-> MANUAL_CONFLICT
    (any state) -> FAILED(reason)

1. Loads the base snapshot (empty before the first sync) and the local
   replica, and reads the remote document with its version token.
2. Validates the remote document; an invalid one fails the run before
   anything is mutated.
3. Merges base/local/remote.  With the ``manual`` strategy, pending
   conflicts end the run in ``MANUAL_CONFLICT`` without writing.
4. Writes the merged document with compare-and-swap on the fetched
   version.  A stale write backs off, re-fetches, re-validates and
   re-merges (the previous merge result standing in for local), up to
   ``max_attempts`` writes in total.
5. Applies the merged collection to the local store, then stores it as
   the new base.  Base is written last, so any earlier failure leaves the
   next run with the same ancestor.

A ``push`` run stops after step 4. A ``pull`` run skips step 4 and only
applies the merge locally. Neither moves the base.

Only version conflicts are retried; any other transport failure fails the
run.  Failures are returned as a ``SyncOutcome`` with ``status=FAILED``;
``SyncOutcome.raise_for_status()`` turns them back into exceptions.
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from hubmark_sync import __version__
from hubmark_sync.errors import (
    ConcurrentWriteExhaustedError,
    InvariantViolation,
    NotFoundError,
    SchemaValidationError,
    SyncCancelledError,
    SyncInProgressError,
    TransportError,
    VersionConflictError,
)
from hubmark_sync.sync.merger import merge
from hubmark_sync.sync.models import (
    Bookmark,
    Collection,
    ConflictStrategy,
    FailureReason,
    MergeResult,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
)
from hubmark_sync.sync.reporter import format_commit_message
from hubmark_sync.sync.schema import (
    SchemaValidator,
    parse_document,
    serialize_document,
)
from hubmark_sync.sync.settings import SyncSettings
from hubmark_sync.sync.stores import BaseStore, LocalStore, RemoteStore

logger = logging.getLogger(__name__)

GENERATOR = "hubmark-sync"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class _RunContext:
    """Mutable bookkeeping for the run in progress."""

    started_at: str
    dry_run: bool
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    attempts: int = 0
    merge_result: MergeResult | None = None
    remote_version: str | None = None


class SyncOrchestrator:
    """Run sync cycles between one local replica and one remote document.

    Args:
        remote: Store holding the canonical document.
        local: The local replica.
        base: Store for the common-ancestor snapshot.
        settings: Paths, default strategy and retry tuning.
        sleep: Called with the backoff delay in seconds.
        jitter: Returns a value in ``[0, 1)`` scaling the random part of
            the backoff.
    """

    def __init__(
        self,
        remote: RemoteStore,
        local: LocalStore,
        base: BaseStore,
        settings: SyncSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self.remote = remote
        self.local = local
        self.base = base
        self.settings = settings or SyncSettings()
        self._sleep = sleep
        self._jitter = jitter
        self._validator = SchemaValidator()

        self._run_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._state = SyncStatus.IDLE
        self._history: list[SyncStatus] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncStatus:
        """Current state; ``IDLE`` whenever no run is active."""
        return self._state

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> None:
        """Abandon the active run before it persists anything.

        Has no effect when no run is active.  The run ends as
        ``FAILED(cancelled)`` at its next checkpoint; a remote commit
        already made stays, but local and base are left untouched.
        """
        if self._run_lock.locked():
            logger.info("Cancellation requested")
            self._cancelled.set()

    def run(
        self,
        strategy: ConflictStrategy | str | None = None,
        *,
        resolutions: Mapping[str, Bookmark | None] | None = None,
        dry_run: bool = False,
        direction: SyncDirection | str | None = None,
    ) -> SyncOutcome:
        """Execute one sync cycle.

        Args:
            strategy: Conflict strategy (enum or any accepted label);
                defaults to ``settings.conflict_strategy``.
            resolutions: Caller decisions for ids left pending by an
                earlier ``manual`` run.
            dry_run: Fetch, validate and merge, but write nothing.
            direction: ``push``, ``pull`` or ``bidirectional`` (enum or
                any accepted label); defaults to ``settings.direction``.

        Returns:
            The run's ``SyncOutcome``.

        Raises:
            SyncInProgressError: If another run is active.
            ValueError: If *strategy* or *direction* is not a recognised
                label.
        """
        if not self._run_lock.acquire(blocking=False):
            raise SyncInProgressError("A sync is already in progress")

        ctx = _RunContext(started_at=_now_iso(), dry_run=dry_run)
        self._cancelled.clear()
        self._history = []
        try:
            chosen = (
                self.settings.conflict_strategy
                if strategy is None
                else ConflictStrategy.from_label(strategy)
            )
            ctx.direction = (
                self.settings.direction
                if direction is None
                else SyncDirection.from_label(direction)
            )
            logger.info(
                "Starting sync (strategy=%s, direction=%s, dry_run=%s)",
                chosen.value,
                ctx.direction.value,
                dry_run,
            )
            try:
                return self._execute(ctx, chosen, resolutions)
            except SchemaValidationError as exc:
                return self._failed(
                    ctx,
                    FailureReason.SCHEMA_INVALID,
                    exc,
                    violations=[str(v) for v in exc.violations],
                )
            except ConcurrentWriteExhaustedError as exc:
                return self._failed(
                    ctx, FailureReason.CONCURRENT_WRITE_EXHAUSTED, exc
                )
            except TransportError as exc:
                return self._failed(ctx, FailureReason.TRANSPORT_ERROR, exc)
            except InvariantViolation as exc:
                return self._failed(ctx, FailureReason.INVARIANT_VIOLATION, exc)
            except SyncCancelledError as exc:
                return self._failed(ctx, FailureReason.CANCELLED, exc)
            except Exception:
                logger.exception("Unexpected error during sync")
                self._transition(SyncStatus.FAILED)
                raise
        finally:
            self._state = SyncStatus.IDLE
            self._run_lock.release()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _execute(
        self,
        ctx: _RunContext,
        strategy: ConflictStrategy,
        resolutions: Mapping[str, Bookmark | None] | None,
    ) -> SyncOutcome:
        self._transition(SyncStatus.FETCHING)
        base = self.base.get() or Collection.empty()
        local = self.local.snapshot()
        remote, ctx.remote_version = self._fetch_remote()

        result = self._merge(ctx, base, local, remote, strategy, resolutions)
        if result.pending_conflicts:
            return self._manual_conflict(ctx, result)

        if ctx.dry_run:
            logger.info("Dry run: skipping write")
            self._transition(SyncStatus.IDLE)
            return self._outcome(ctx, SyncStatus.IDLE)

        if not ctx.direction.writes_remote:
            return self._pull(ctx, result)

        while True:
            self._check_cancelled()
            self._transition(SyncStatus.WRITING)
            content = self._render(result.merged)
            ctx.attempts += 1
            try:
                ctx.remote_version = self.remote.write_if_version(
                    self.settings.data_path,
                    content,
                    ctx.remote_version,
                    message=format_commit_message(result.stats),
                )
                break
            except VersionConflictError as exc:
                if ctx.attempts >= self.settings.max_attempts:
                    raise ConcurrentWriteExhaustedError(
                        f"Remote kept changing; gave up after {ctx.attempts} attempts",
                        attempts=ctx.attempts,
                    ) from exc
                delay = self.settings.backoff_delay(ctx.attempts, self._jitter())
                logger.warning(
                    "Write attempt %d was stale (%s); retrying in %.2fs",
                    ctx.attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)
            except NotFoundError as exc:
                # A 404 on write means the branch or repository is gone.
                raise TransportError(
                    f"Cannot write {self.settings.data_path}: {exc}"
                ) from exc

            self._check_cancelled()
            self._transition(SyncStatus.FETCHING)
            remote, ctx.remote_version = self._fetch_remote()
            result = self._merge(
                ctx, base, result.merged, remote, strategy, resolutions
            )
            if result.pending_conflicts:
                return self._manual_conflict(ctx, result)

        logger.info(
            "Committed %s at %s after %d attempt(s)",
            self.settings.data_path,
            ctx.remote_version,
            ctx.attempts,
        )

        self._check_cancelled()
        if not ctx.direction.writes_local:
            logger.info("Push only: local replica and base left as they were")
            self._transition(SyncStatus.IDLE)
            return self._outcome(ctx, SyncStatus.IDLE)

        self._transition(SyncStatus.PERSISTING)
        self.local.apply_merged(result.merged)
        self.base.set(result.merged)

        self._transition(SyncStatus.IDLE)
        return self._outcome(ctx, SyncStatus.IDLE)

    def _pull(self, ctx: _RunContext, result: MergeResult) -> SyncOutcome:
        """Apply *result* to the local replica without touching the remote.

        The base stays put: the remote has not seen the local changes kept
        in the merge, so they must still read as changes next time.
        """
        self._check_cancelled()
        self._transition(SyncStatus.PERSISTING)
        self.local.apply_merged(result.merged)
        logger.info("Pull only: applied the merge to the local replica")

        self._transition(SyncStatus.IDLE)
        return self._outcome(ctx, SyncStatus.IDLE)

    def _fetch_remote(self) -> tuple[Collection, str | None]:
        """Read and validate the remote document.

        A missing document is an empty collection with no version, so the
        first write creates it.
        """
        try:
            document = self.remote.read(self.settings.data_path)
        except NotFoundError:
            logger.info(
                "No remote document at %s; starting empty",
                self.settings.data_path,
            )
            self._transition(SyncStatus.VALIDATING)
            return Collection.empty(), None

        self._check_cancelled()
        self._transition(SyncStatus.VALIDATING)
        return parse_document(document.content, self._validator), document.version

    def _merge(
        self,
        ctx: _RunContext,
        base: Collection,
        local: Collection,
        remote: Collection,
        strategy: ConflictStrategy,
        resolutions: Mapping[str, Bookmark | None] | None,
    ) -> MergeResult:
        self._check_cancelled()
        self._transition(SyncStatus.MERGING)
        result = merge(
            base,
            local,
            remote,
            strategy,
            delete_policy=self.settings.delete_policy,
            resolutions=resolutions,
        )
        ctx.merge_result = result
        return result

    def _render(self, merged: Collection) -> str:
        """Serialise *merged* and re-check it against the schema."""
        content = serialize_document(
            merged,
            generated_at=_now_iso(),
            meta={
                "generator": GENERATOR,
                "generatorVersion": __version__,
                "lastSync": int(time.time() * 1000),
            },
        )
        check = self._validator.validate(json.loads(content))
        if not check.valid:
            raise InvariantViolation(
                "Merged document fails schema validation: "
                + "; ".join(check.messages)
            )
        return content

    # ------------------------------------------------------------------
    # State & outcomes
    # ------------------------------------------------------------------

    def _transition(self, status: SyncStatus) -> None:
        logger.debug("Sync state: %s -> %s", self._state.value, status.value)
        self._state = status
        self._history.append(status)

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise SyncCancelledError("Sync cancelled")

    def _manual_conflict(
        self, ctx: _RunContext, result: MergeResult
    ) -> SyncOutcome:
        logger.info(
            "%d conflict(s) need manual resolution; nothing written",
            len(result.pending_conflicts),
        )
        self._transition(SyncStatus.MANUAL_CONFLICT)
        return self._outcome(ctx, SyncStatus.MANUAL_CONFLICT)

    def _failed(
        self,
        ctx: _RunContext,
        reason: FailureReason,
        exc: Exception,
        violations: list[str] | None = None,
    ) -> SyncOutcome:
        logger.error("Sync failed (%s): %s", reason.value, exc)
        self._transition(SyncStatus.FAILED)
        return self._outcome(
            ctx,
            SyncStatus.FAILED,
            reason=reason,
            error=str(exc),
            violations=violations or [],
        )

    def _outcome(
        self, ctx: _RunContext, status: SyncStatus, **extra
    ) -> SyncOutcome:
        result = ctx.merge_result
        if result is not None:
            extra.setdefault("stats", result.stats)
            extra.setdefault("conflicts", result.conflicts)
            extra.setdefault("merged", result.merged)
        return SyncOutcome(
            status=status,
            attempts=ctx.attempts,
            remote_version=ctx.remote_version,
            dry_run=ctx.dry_run,
            direction=ctx.direction,
            started_at=ctx.started_at,
            completed_at=_now_iso(),
            history=list(self._history),
            **extra,
        )
