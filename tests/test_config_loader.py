"""Tests for hubmark_sync.config_loader: hierarchical config loading."""

import textwrap

import pytest

from hubmark_sync.config_loader import (
    _expand_tree,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    load_yaml_file,
    resolve_config_path,
)

# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_OWNER", "alice")
        assert interpolate_env_vars("${MY_OWNER}") == "alice"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-main}") == "main"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("MY_BRANCH", "sync")
        assert interpolate_env_vars("${MY_BRANCH:-main}") == "sync"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("OWNER_A", "alice")
        monkeypatch.setenv("REPO_A", "bookmarks")
        assert interpolate_env_vars("${OWNER_A}/${REPO_A}") == "alice/bookmarks"

    def test_literal_dollar_brace_no_closing(self):
        # No closing }, left untouched
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_tree_expansion(self, monkeypatch):
        monkeypatch.setenv("TOKEN_X", "secret")
        data = {"github": {"token": "${TOKEN_X}", "timeout": 5}, "l": ["${TOKEN_X}", 1]}
        assert _expand_tree(data) == {
            "github": {"token": "secret", "timeout": 5},
            "l": ["secret", 1],
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludes:
    """Tests for the !include tag."""

    def test_relative_include(self, tmp_path):
        (tmp_path / "github.yml").write_text("owner: alice\nrepo: bookmarks\n")
        main = tmp_path / "config.yml"
        main.write_text("github: !include github.yml\n")

        assert load_yaml_file(main) == {
            "github": {"owner": "alice", "repo": "bookmarks"}
        }

    def test_nested_include(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "inner.yml").write_text("level: 2\n")
        (tmp_path / "sub" / "outer.yml").write_text("inner: !include inner.yml\n")
        main = tmp_path / "config.yml"
        main.write_text("outer: !include sub/outer.yml\n")

        assert load_yaml_file(main) == {"outer": {"inner": {"level": 2}}}

    def test_missing_include(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("github: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="Include file not found"):
            load_yaml_file(main)

    def test_circular_include(self, tmp_path):
        (tmp_path / "a.yml").write_text("b: !include b.yml\n")
        (tmp_path / "b.yml").write_text("a: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include detected"):
            load_yaml_file(tmp_path / "a.yml")

    def test_self_include(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("me: !include config.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            load_yaml_file(main)


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestDiscovery:
    """Tests for discover_config_files() and friends."""

    def test_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_precedence_order(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        explicit = _write(tmp_path / "elsewhere" / "c.yml", "a: 1\n")
        project = _write(tmp_path / ".hubmark" / "config.yml", "a: 2\n")
        user = _write(tmp_path / "home" / ".config" / "hubmark" / "config.yml", "a: 3\n")
        monkeypatch.setenv("HUBMARK_CONFIG", str(explicit))

        assert discover_config_files() == [
            explicit.resolve(),
            project,
            user,
        ]

    def test_resolve_default_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_config_path() == tmp_path / ".hubmark" / "config.yml"


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config()."""

    def test_project_section_replaces_user_section(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _write(
            tmp_path / "home" / ".config" / "hubmark" / "config.yml",
            """\
            github:
              owner: user-owner
              repo: user-repo
            logging:
              level: DEBUG
            """,
        )
        _write(
            tmp_path / ".hubmark" / "config.yml",
            """\
            github:
              owner: project-owner
            """,
        )

        data = load_hierarchical_config()

        assert data["github"] == {"owner": "project-owner"}
        assert data["logging"] == {"level": "DEBUG"}

    def test_env_expanded_after_merge(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MY_TOKEN", "ghp_secret")
        _write(
            tmp_path / ".hubmark" / "config.yml",
            """\
            github:
              token: ${MY_TOKEN}
              branch: ${MY_BRANCH:-main}
            """,
        )

        data = load_hierarchical_config()

        assert data["github"] == {"token": "ghp_secret", "branch": "main"}

    def test_non_mapping_root_skipped(self, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        _write(tmp_path / ".hubmark" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}
        assert "expected a mapping" in caplog.text

    def test_empty_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _write(tmp_path / ".hubmark" / "config.yml", "")
        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    """Tests for ensure_config()."""

    def test_creates_starter(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path, created = ensure_config()
        assert created
        assert path == tmp_path / ".hubmark" / "config.yml"
        assert "conflict_strategy" in path.read_text(encoding="utf-8")

    def test_existing_untouched(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        existing = _write(tmp_path / ".hubmark" / "config.yml", "a: 1\n")
        path, created = ensure_config()
        assert not created
        assert path == existing
        assert existing.read_text(encoding="utf-8") == "a: 1\n"

    def test_explicit_target(self, tmp_path):
        target = tmp_path / "custom" / "config.yml"
        path, created = ensure_config(target)
        assert created
        assert path == target
        assert target.exists()

    def test_starter_is_loadable(self, tmp_path):
        path, _ = ensure_config(tmp_path / "config.yml")
        assert load_yaml_file(path) is None
