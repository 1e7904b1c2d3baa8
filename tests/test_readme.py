"""Tests for the Markdown view."""

from __future__ import annotations

from datetime import datetime, timezone

from hubmark_sync.sync.readme import generate_readme, update_readme_if_changed
from hubmark_sync.sync.stores import InMemoryRemoteStore

WHEN = datetime(2026, 3, 4, tzinfo=timezone.utc)
README = "bookmarks/README.md"


class TestGenerateReadme:
    """Tests for generate_readme()."""

    def test_empty(self, make_collection) -> None:
        text = generate_readme(make_collection(), WHEN)
        assert text.startswith("# My Bookmarks\n")
        assert "*Generated by hubmark-sync on 2026-03-04*" in text
        assert "Total bookmarks: 0" in text
        assert "No bookmarks yet" in text

    def test_grouped_by_folder(self, make_bookmark, make_collection) -> None:
        collection = make_collection(
            make_bookmark("https://b.example/", "beta", folder="Dev"),
            make_bookmark("https://a.example/", "Alpha", folder="Dev"),
            make_bookmark("https://n.example/", "News", folder="reading"),
            make_bookmark("https://u.example/", "Loose"),
        )

        text = generate_readme(collection, WHEN)

        assert text.index("## Dev") < text.index("## reading")
        assert text.index("## reading") < text.index("## Uncategorized")
        assert text.index("[Alpha]") < text.index("[beta]")
        assert "Total bookmarks: 4" in text

    def test_entry_decorations(self, make_bookmark, make_collection) -> None:
        collection = make_collection(
            make_bookmark(
                "https://x.example/",
                "X",
                favorite=True,
                tags=["py", "ai"],
                notes="read later",
            )
        )
        text = generate_readme(collection, WHEN)
        assert "- [X](https://x.example/) ⭐ `ai` `py`\n  > read later" in text

    def test_archived_folded(self, make_bookmark, make_collection) -> None:
        collection = make_collection(
            make_bookmark("https://live.example/", "Live"),
            make_bookmark("https://old.example/", "Old", archived=True),
        )
        text = generate_readme(collection, WHEN)
        assert "## Archived (1)" in text
        assert "<details>" in text
        details = text[text.index("<details>") :]
        assert "[Old](https://old.example/)" in details
        assert "[Old]" not in text[: text.index("<details>")]


class TestUpdateReadmeIfChanged:
    """Tests for update_readme_if_changed()."""

    def test_creates_missing(self, make_bookmark, make_collection) -> None:
        remote = InMemoryRemoteStore()
        assert update_readme_if_changed(remote, README, make_collection(make_bookmark()))
        assert remote.commit_messages == ["docs: create README from bookmark data"]
        assert "Total bookmarks: 1" in remote.content_of(README)

    def test_unchanged_ignores_date(self, make_bookmark, make_collection) -> None:
        collection = make_collection(make_bookmark())
        old = generate_readme(collection, datetime(2020, 1, 1, tzinfo=timezone.utc))
        remote = InMemoryRemoteStore({README: old})

        assert not update_readme_if_changed(remote, README, collection)
        assert remote.write_calls == []

    def test_updates_changed(self, make_bookmark, make_collection) -> None:
        remote = InMemoryRemoteStore(
            {README: generate_readme(make_collection(), WHEN)}
        )
        assert update_readme_if_changed(
            remote, README, make_collection(make_bookmark())
        )
        assert remote.commit_messages == ["docs: update README from bookmark data"]
        assert remote.version_of(README) == "v2"
