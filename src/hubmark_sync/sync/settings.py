"""Sync settings consumed by the orchestrator.

``SyncSettings`` is the ``sync:`` section of the unified config.  It lives
in the sync package so the orchestrator can be driven without importing
the config layer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from hubmark_sync.sync.models import ConflictStrategy, DeletePolicy, SyncDirection


class SyncSettings(BaseModel):
    """Settings for one sync profile.

    Attributes:
        profile: Profile name, used for the base-state file name.
        data_path: Path of the canonical document in the remote store.
        readme_path: Path of the generated Markdown view.
        write_readme: Whether to commit the Markdown view after a sync.
        local_path: JSON file holding the local replica (file-backed
            local store).
        state_dir: Directory holding the base snapshot.
        conflict_strategy: Default strategy; any label accepted by
            ``ConflictStrategy.from_label``.
        delete_policy: Delete-versus-edit handling.
        direction: Which side(s) a run changes; any label accepted by
            ``SyncDirection.from_label``.
        max_attempts: Compare-and-swap attempts before giving up.
        backoff_base: Delay before the first retry, in seconds.
        backoff_factor: Multiplier applied per further retry.
        backoff_max: Upper bound on the exponential part, in seconds.
        backoff_jitter: Upper bound of the random delay added, in seconds.
    """

    profile: str = "default"
    data_path: str = "bookmarks/data.json"
    readme_path: str = "bookmarks/README.md"
    write_readme: bool = True
    local_path: str = "bookmarks.json"
    state_dir: str = ".hubmark"
    conflict_strategy: ConflictStrategy = ConflictStrategy.MANUAL
    delete_policy: DeletePolicy = DeletePolicy.CONFLICT
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base: float = Field(default=0.25, ge=0)
    backoff_factor: float = Field(default=3.0, ge=1)
    backoff_max: float = Field(default=5.0, ge=0)
    backoff_jitter: float = Field(default=0.1, ge=0)

    model_config = {"frozen": True}

    @field_validator("conflict_strategy", mode="before")
    @classmethod
    def _parse_strategy_label(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ConflictStrategy.from_label(value)
        return value

    @field_validator("direction", mode="before")
    @classmethod
    def _parse_direction_label(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SyncDirection.from_label(value)
        return value

    def backoff_delay(self, attempt: int, jitter: float = 0.0) -> float:
        """Seconds to wait after the *attempt*-th stale write.

        ``min(base * factor ** (attempt - 1), max) + jitter * backoff_jitter``
        where *jitter* is a value in ``[0, 1)``.
        """
        exponential = self.backoff_base * self.backoff_factor ** (attempt - 1)
        return min(exponential, self.backoff_max) + jitter * self.backoff_jitter
