"""Tests for conflict resolver strategies and strategy labels."""

from __future__ import annotations

import pytest

from hubmark_sync.sync.models import (
    STRATEGY_LABELS,
    Bookmark,
    ConflictInfo,
    ConflictKind,
    ConflictStrategy,
    Resolution,
)
from hubmark_sync.sync.resolver import (
    LocalWinsResolver,
    ManualResolver,
    RemoteWinsResolver,
    create_resolver,
    parse_strategy,
    resolved_version,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_conflict(*, remote_deleted: bool = False) -> ConflictInfo:
    """Build a minimal edit/edit (or edit/delete) ConflictInfo."""
    base = Bookmark.create("https://example.com/", "A", timestamp=1)
    local = base.evolve(title="B")
    remote = None if remote_deleted else base.evolve(title="C")
    return ConflictInfo(
        id=base.id,
        kind=ConflictKind.EDIT_DELETE if remote_deleted else ConflictKind.EDIT_EDIT,
        base=base,
        local=local,
        remote=remote,
    )


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class TestLocalWinsResolver:
    """Tests for LocalWinsResolver."""

    def test_always_local(self) -> None:
        assert LocalWinsResolver().resolve(_make_conflict()) == Resolution.LOCAL


class TestRemoteWinsResolver:
    """Tests for RemoteWinsResolver."""

    def test_always_remote(self) -> None:
        assert RemoteWinsResolver().resolve(_make_conflict()) == Resolution.REMOTE


class TestManualResolver:
    """Tests for ManualResolver."""

    def test_pending_and_accumulated(self) -> None:
        resolver = ManualResolver()
        first, second = _make_conflict(), _make_conflict(remote_deleted=True)

        assert resolver.resolve(first) == Resolution.PENDING
        assert resolver.resolve(second) == Resolution.PENDING
        assert resolver.pending_conflicts == [first, second]

    def test_instances_do_not_share_state(self) -> None:
        ManualResolver().resolve(_make_conflict())
        assert ManualResolver().pending_conflicts == []


class TestResolvedVersion:
    """Tests for resolved_version()."""

    def test_local(self) -> None:
        conflict = _make_conflict()
        assert resolved_version(conflict, Resolution.LOCAL).title == "B"

    def test_remote_deleted(self) -> None:
        conflict = _make_conflict(remote_deleted=True)
        assert resolved_version(conflict, Resolution.REMOTE) is None

    def test_pending(self) -> None:
        assert resolved_version(_make_conflict(), Resolution.PENDING) is None


# ---------------------------------------------------------------------------
# Factory and labels
# ---------------------------------------------------------------------------


class TestCreateResolver:
    """Tests for create_resolver()."""

    @pytest.mark.parametrize(
        "strategy,cls",
        [
            (ConflictStrategy.LOCAL_WINS, LocalWinsResolver),
            (ConflictStrategy.REMOTE_WINS, RemoteWinsResolver),
            (ConflictStrategy.MANUAL, ManualResolver),
        ],
    )
    def test_maps_strategy(self, strategy, cls) -> None:
        resolver = create_resolver(strategy)
        assert isinstance(resolver, cls)
        assert resolver.strategy == strategy

    def test_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_resolver("nope")  # type: ignore[arg-type]


class TestParseStrategy:
    """Tests for parse_strategy() / ConflictStrategy.from_label()."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("local-wins", ConflictStrategy.LOCAL_WINS),
            ("browser-wins", ConflictStrategy.LOCAL_WINS),
            ("Prefer_Device", ConflictStrategy.LOCAL_WINS),
            ("remote-wins", ConflictStrategy.REMOTE_WINS),
            ("github wins", ConflictStrategy.REMOTE_WINS),
            ("  manual ", ConflictStrategy.MANUAL),
            ("ask", ConflictStrategy.MANUAL),
            (ConflictStrategy.MANUAL, ConflictStrategy.MANUAL),
        ],
    )
    def test_labels(self, label, expected) -> None:
        assert parse_strategy(label) == expected
        assert ConflictStrategy.from_label(label) == expected

    def test_unknown_label(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            parse_strategy("newest-wins")

    def test_every_member_has_its_own_label(self) -> None:
        for strategy in ConflictStrategy:
            assert STRATEGY_LABELS[strategy.value] == strategy
