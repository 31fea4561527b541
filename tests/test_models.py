"""Tests for the project model."""

import pytest

from tmux_nav.models import (
    AgentStatus,
    ExtendedGitStatus,
    GitStatus,
    NoteCounts,
    Project,
    ProjectKind,
    SessionRecord,
    normalize_path,
    qualify_identifiers,
    sanitize_session_name,
)

K = ProjectKind


class TestIdentifier:
    """Tests for session name derivation."""

    @pytest.mark.parametrize("project,expected", [
        (Project("/w/app", "app", K.ECOSYSTEM_ROOT), "app"),
        (Project("/w/my.tool", "my.tool"), "my_tool"),
        (Project("/w/app/api", "api", K.ECOSYSTEM_SUB_PROJECT, parent_ecosystem_path="/w/app"), "app_api"),
        (Project("/w/lib/.grove-worktrees/fix", "fix", K.STANDALONE_PROJECT_WORKTREE,
                 parent_path="/w/lib"), "lib_fix"),
        (Project("/w/app/.grove-worktrees/feat", "feat", K.ECOSYSTEM_WORKTREE,
                 parent_path="/w/app"), "app_feat"),
        (Project("/w/app/api/.grove-worktrees/feat", "feat", K.ECOSYSTEM_SUB_PROJECT_WORKTREE,
                 parent_path="/w/app/api", parent_ecosystem_path="/w/app"), "app_api_feat"),
        (Project("/w/app/.grove-worktrees/feat/api", "api", K.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE,
                 parent_path="/w/app/api", parent_ecosystem_path="/w/app/.grove-worktrees/feat"), "app_feat_api"),
    ])
    def test_identifier(self, project, expected):
        """Each kind is prefixed with the projects it belongs to."""
        assert project.identifier() == expected

    def test_sub_project_differs_from_standalone(self):
        """A sub-project never shares a session with a same-named standalone repo."""
        standalone = Project("/w/api", "api")
        sub = Project("/w/app/api", "api", K.ECOSYSTEM_SUB_PROJECT, parent_ecosystem_path="/w/app")
        assert standalone.identifier() != sub.identifier()

    def test_trailing_slash(self):
        """Trailing separators do not change the name."""
        assert Project("/w/app/", "app").identifier() == "app"

    def test_sanitize(self):
        """Dots and colons are not allowed in tmux session names."""
        assert sanitize_session_name("a.b:c") == "a_b_c"


class TestQualifyIdentifiers:
    """Tests for making session names unique across projects."""

    def test_same_name_in_different_directories(self):
        """Repositories sharing a basename get distinct session names."""
        work = Project("/code/work/api", "api")
        personal = Project("/code/personal/api", "api")
        assert work.identifier() == personal.identifier()

        names = [p.identifier() for p in qualify_identifiers([work, personal])]
        assert names == ["work_api", "personal_api"]

    def test_worktrees_follow_their_repository(self):
        """Worktrees of same-named repositories are qualified by the repository's directory."""
        projects = [
            Project("/code/work/api/.grove-worktrees/fix", "fix", K.STANDALONE_PROJECT_WORKTREE,
                    parent_path="/code/work/api"),
            Project("/code/personal/api/.grove-worktrees/fix", "fix", K.STANDALONE_PROJECT_WORKTREE,
                    parent_path="/code/personal/api"),
        ]
        names = [p.identifier() for p in qualify_identifiers(projects)]
        assert names == ["work_api_fix", "personal_api_fix"]

    def test_falls_back_to_path_hash(self):
        """Names that still clash after qualification get a path hash."""
        projects = [Project("/x/src/api", "api"), Project("/y/src/api", "api")]
        names = [p.identifier() for p in qualify_identifiers(projects)]
        assert len(set(names)) == 2
        assert all(name.startswith("src-") and name.endswith("_api") for name in names)

    def test_unique_names_untouched(self):
        """Projects without a clash keep their plain names."""
        projects = [Project("/w/app", "app"), Project("/w/lib", "lib")]
        assert qualify_identifiers(projects) == projects
        assert [p.identifier() for p in projects] == ["app", "lib"]

    def test_qualifier_survives_cache(self):
        """The qualifier is part of the cached identity."""
        project = qualify_identifiers([Project("/a/api", "api"), Project("/b/api", "api")])[0]
        assert Project.from_dict(project.to_dict()).identifier() == "a_api"


class TestProject:
    """Tests for Project helpers."""

    def test_kind_predicates(self):
        """Kinds classify as worktree, ecosystem and sub-project."""
        ewspw = Project("/x", "x", K.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE)
        assert ewspw.is_worktree() and ewspw.is_sub_project() and not ewspw.is_ecosystem()
        eco_wt = Project("/y", "y", K.ECOSYSTEM_WORKTREE)
        assert eco_wt.is_worktree() and eco_wt.is_ecosystem()
        assert not Project("/z", "z").is_worktree()

    def test_group_key(self):
        """Worktrees group under their parent repository."""
        wt = Project("/w/lib/.grove-worktrees/fix", "fix", K.STANDALONE_PROJECT_WORKTREE, parent_path="/w/lib/")
        assert wt.group_key == "/w/lib"
        assert Project("/w/lib", "lib").group_key == "/w/lib"

    def test_dirty(self):
        """Dirty only when a status says so."""
        assert not Project("/w/a", "a").is_dirty()
        status = ExtendedGitStatus(GitStatus(is_dirty=True))
        assert Project("/w/a", "a", git_status=status).is_dirty()

    def test_dict_round_trip(self):
        """Identity fields survive serialization."""
        project = Project("/w/app/api", "api", K.ECOSYSTEM_SUB_PROJECT, parent_ecosystem_path="/w/app")
        assert Project.from_dict(project.to_dict()) == project

    def test_from_dict_defaults(self):
        """Missing optional fields take defaults."""
        project = Project.from_dict({"path": "/w/tool"})
        assert project.name == "tool"
        assert project.kind == K.STANDALONE_PROJECT


class TestHelpers:
    """Tests for small value types."""

    def test_normalize_path(self, monkeypatch, tmp_path):
        """Paths are absolute, expanded and without trailing separators."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert normalize_path("~/code/") == str(tmp_path / "code")
        assert normalize_path("/a/./b/../c") == "/a/c"
        assert normalize_path("") == ""

    def test_normalize_case_on_macos(self, monkeypatch):
        """Case-insensitive platforms fold case."""
        monkeypatch.setattr("sys.platform", "darwin")
        assert normalize_path("/Users/Me/Code") == "/users/me/code"

    def test_agent_status_parse(self):
        """Unknown statuses map to UNKNOWN."""
        assert AgentStatus.parse("Running") == AgentStatus.RUNNING
        assert AgentStatus.parse("zombie") == AgentStatus.UNKNOWN
        assert AgentStatus.parse(None) == AgentStatus.UNKNOWN

    def test_note_total(self):
        """The total sums every bucket."""
        assert NoteCounts(current=1, inbox=2, in_progress=3).total == 6

    def test_session_record_bound(self):
        """A record is bound when it has a path."""
        assert not SessionRecord("a").is_bound
        assert SessionRecord("a", "/w/app").is_bound
