"""Tests for config, preferences, the project cache and access history."""

import json
from dataclasses import replace

import pytest
import yaml

from tmux_nav.cache import ProjectCache, load_project_cache, save_project_cache
from tmux_nav.config import DEFAULT_KEYS, NavConfig, load_config
from tmux_nav.history import AccessHistory, sort_projects_by_access
from tmux_nav.models import ExtendedGitStatus, GitStatus, Project, ProjectKind
from tmux_nav.state import STATE_FILENAME, PathDisplayMode, SessionizerState, ViewMode


class TestConfig:
    """Tests for config.yml loading."""

    def test_missing_file(self, tmp_path):
        """Defaults apply without a config file."""
        config = load_config(tmp_path)
        assert config.search_paths == ["~/code"]
        assert config.available_keys == DEFAULT_KEYS

    def test_values(self, tmp_path):
        """Every setting is read from the file."""
        (tmp_path / "config.yml").write_text(yaml.safe_dump({
            "search_paths": ["~/work", "/srv/src"],
            "max_depth": 3,
            "available_keys": "asdf",
            "refresh_interval": 0.2,
            "notes_command": "nb count --json",
            "plans_command": ["flow", "plans", "--json"],
            "bind_table": "nav",
        }))
        config = load_config(tmp_path)
        assert config.search_paths == ["~/work", "/srv/src"]
        assert config.max_depth == 3
        assert config.available_keys == ["a", "s", "d", "f"]
        assert config.refresh_interval == 1.0
        assert config.notes_command == ["nb", "count", "--json"]
        assert config.plans_command == ["flow", "plans", "--json"]
        assert config.bind_table == "nav"

    def test_malformed(self, tmp_path):
        """A broken file falls back to defaults."""
        (tmp_path / "config.yml").write_text("search_paths: [oops")
        assert load_config(tmp_path) == NavConfig()

    def test_wrong_types(self, tmp_path):
        """Values of the wrong type fall back to defaults."""
        (tmp_path / "config.yml").write_text("max_depth: deep\n")
        assert load_config(tmp_path) == NavConfig()

    def test_expanded_search_paths(self, monkeypatch, tmp_path):
        """Search paths expand the home directory."""
        monkeypatch.setenv("HOME", str(tmp_path))
        config = NavConfig(search_paths=["~/code"])
        assert config.expanded_search_paths() == [tmp_path / "code"]


class TestSessionizerState:
    """Tests for state.yml preferences."""

    def test_defaults_when_missing(self, tmp_path):
        """No file means default preferences."""
        assert SessionizerState.load(tmp_path) == SessionizerState()

    def test_round_trip(self, tmp_path):
        """Saved preferences load back unchanged."""
        state = SessionizerState(
            focused_path="/w/app",
            worktrees_folded=True,
            show_plan_stats=False,
            path_display_mode=PathDisplayMode.OFF,
            view_mode=ViewMode.TABLE,
        )
        assert state.save(tmp_path)
        assert SessionizerState.load(tmp_path) == state

    def test_file_is_plain_yaml(self, tmp_path):
        """Enums are stored as plain values."""
        SessionizerState(view_mode=ViewMode.TABLE).save(tmp_path)
        data = yaml.safe_load((tmp_path / STATE_FILENAME).read_text())
        assert data["view_mode"] == "table"
        assert data["path_display_mode"] == 1

    def test_corrupt(self, tmp_path):
        """A corrupt file loads as defaults."""
        (tmp_path / STATE_FILENAME).write_text("focused_path: [")
        assert SessionizerState.load(tmp_path) == SessionizerState()

    def test_bad_values(self, tmp_path):
        """Unknown enum values fall back field by field."""
        (tmp_path / STATE_FILENAME).write_text(yaml.safe_dump({
            "path_display_mode": 9,
            "view_mode": "grid",
            "show_branch": False,
        }))
        state = SessionizerState.load(tmp_path)
        assert state.path_display_mode == PathDisplayMode.COMPACT
        assert state.view_mode == ViewMode.TREE
        assert not state.show_branch

    def test_save_failure(self, tmp_path):
        """An unwritable location is reported, not raised."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert not SessionizerState().save(blocker / "state")

    def test_is_shown(self):
        """Category visibility follows the flags."""
        state = SessionizerState(show_note_counts=False)
        assert state.is_shown("git")
        assert not state.is_shown("notes")


class TestProjectCache:
    """Tests for the project snapshot cache."""

    @pytest.fixture
    def cache(self, tmp_path):
        return ProjectCache(tmp_path / "cache.json")

    def test_round_trip_drops_enrichment(self, cache):
        """Identity survives; enrichment is never cached."""
        project = Project(
            "/w/app/api", "api", ProjectKind.ECOSYSTEM_SUB_PROJECT,
            parent_ecosystem_path="/w/app",
            git_status=ExtendedGitStatus(GitStatus(is_dirty=True)),
        )
        cache.save([project])
        loaded = cache.load()
        assert loaded == [replace(project, git_status=None)]

    def test_missing(self, cache):
        """No file loads as empty."""
        assert cache.load() == []
        assert cache.info() is None

    def test_corrupt(self, cache):
        """A corrupt file loads as empty."""
        cache.path.write_text("{not json")
        assert cache.load() == []

    def test_unknown_kind(self, cache):
        """Entries from an incompatible version are discarded."""
        cache.path.write_text(json.dumps({"projects": [{"path": "/x", "kind": "mystery"}]}))
        assert cache.load() == []

    def test_info_and_clear(self, cache):
        """Info reports the snapshot and clear removes it."""
        cache.save([Project("/w/a", "a"), Project("/w/b", "b")])
        info = cache.info()
        assert info["projects"] == 2
        assert info["size"] > 0
        assert cache.clear()
        assert not cache.clear()

    def test_module_helpers(self, tmp_path):
        """The helpers read and write the same snapshot."""
        path = tmp_path / "snapshot.json"
        save_project_cache([Project("/w/a", "a")], path)
        assert load_project_cache(path) == [Project("/w/a", "a")]


class TestAccessHistory:
    """Tests for access ordering."""

    @pytest.fixture
    def history(self, tmp_path):
        return AccessHistory(tmp_path / "history.json")

    def test_sort_most_recent_first(self, history):
        """Recently opened projects come first; the rest keep their order."""
        a, b, c = Project("/w/a", "a"), Project("/w/b", "b"), Project("/w/c", "c")
        history.record_access(b, now=100)
        history.record_access(c, now=200)
        assert history.sort_projects([a, b, c]) == [c, b, a]

    def test_worktree_touches_parent(self, history):
        """Opening a worktree also counts for its repository."""
        wt = Project("/w/a/.grove-worktrees/x", "x", ProjectKind.STANDALONE_PROJECT_WORKTREE, parent_path="/w/a")
        history.record_access(wt, now=50)
        assert history.last_accessed("/w/a") == 50

    def test_persisted(self, history, tmp_path):
        """History is written on every access."""
        history.record_access(Project("/w/a", "a"), now=10)
        assert AccessHistory(tmp_path / "history.json").last_accessed("/w/a") == 10

    def test_corrupt(self, tmp_path):
        """A corrupt file starts an empty history."""
        path = tmp_path / "history.json"
        path.write_text("[")
        assert AccessHistory(path).last_accessed("/w/a") == 0

    def test_sort_helper_is_stable(self, history):
        """Projects never opened keep their relative order."""
        a, b, c, d = (Project(f"/w/{n}", n) for n in "abcd")
        history.record_access(c, now=10)
        assert sort_projects_by_access([a, b, c, d], history) == [c, a, b, d]
