"""Tests for enrichment providers."""

import json
import subprocess

import pytest

from tmux_nav.config import NavConfig
from tmux_nav.models import AgentStatus, ExtendedGitStatus, GitStatus, Project, normalize_path
from tmux_nav.providers import get_all_providers, get_available_providers, get_provider
from tmux_nav.providers import git as git_provider
from tmux_nav.providers.agents import AgentSessionProvider, parse_agent_sessions
from tmux_nav.providers.base import ProviderError, run_command, run_json_command
from tmux_nav.providers.git import GitStatusProvider, get_extended_status, parse_numstat, parse_porcelain_v2
from tmux_nav.providers.notes import NoteCountsProvider, parse_note_counts
from tmux_nav.providers.plans import PlanStatsProvider, parse_plan_stats

PORCELAIN = """\
# branch.oid 1234567890abcdef
# branch.head feature/login
# branch.upstream origin/feature/login
# branch.ab +2 -1
1 .M N... 100644 100644 100644 abc abc src/app.py
1 M. N... 100644 100644 100644 abc abc src/db.py
1 MM N... 100644 100644 100644 abc abc README.md
? notes.txt
? scratch/
"""


class FakeRun:
    """Stand-in for subprocess.run answering by the command's arguments."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        for needle, (code, stdout) in self.responses.items():
            if needle in " ".join(cmd):
                return subprocess.CompletedProcess(cmd, code, stdout=stdout, stderr="")
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="unexpected")


@pytest.fixture
def fake_run(monkeypatch):
    def install(responses):
        fake = FakeRun(responses)
        monkeypatch.setattr(subprocess, "run", fake)
        return fake
    return install


class TestRunCommand:
    """Tests for the subprocess wrapper."""

    def test_success(self, fake_run):
        """Stdout is returned on success."""
        fake_run({"echo": (0, "hi\n")})
        assert run_command(["echo", "hi"]) == "hi\n"

    def test_non_zero(self, fake_run):
        """A failing command raises ProviderError."""
        fake_run({"false": (2, "")})
        with pytest.raises(ProviderError):
            run_command(["false"])

    def test_missing_binary(self, monkeypatch):
        """A missing executable raises ProviderError."""
        def missing(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])
        monkeypatch.setattr(subprocess, "run", missing)
        with pytest.raises(ProviderError):
            run_command(["nope"])

    def test_timeout(self, monkeypatch):
        """A hung command raises ProviderError."""
        def hang(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))
        monkeypatch.setattr(subprocess, "run", hang)
        with pytest.raises(ProviderError):
            run_command(["sleep", "60"])

    def test_invalid_json(self, fake_run):
        """Garbage output raises ProviderError."""
        fake_run({"tool": (0, "not json")})
        with pytest.raises(ProviderError):
            run_json_command(["tool"])

    def test_empty_json(self, fake_run):
        """Empty output means no data."""
        fake_run({"tool": (0, "")})
        assert run_json_command(["tool"]) is None


class TestGitParsing:
    """Tests for git output parsing."""

    def test_porcelain(self):
        """Branch, divergence and change counts are read."""
        status = parse_porcelain_v2(PORCELAIN)
        assert status.branch == "feature/login"
        assert status.has_upstream
        assert (status.ahead, status.behind) == (2, 1)
        assert (status.modified, status.staged, status.untracked) == (2, 2, 2)
        assert status.is_dirty

    def test_clean(self):
        """A clean tree is not dirty."""
        status = parse_porcelain_v2("# branch.head main\n")
        assert status == GitStatus(branch="main")

    def test_detached(self):
        """Detached HEAD shows as HEAD."""
        assert parse_porcelain_v2("# branch.head (detached)\n").branch == "HEAD"

    def test_numstat(self):
        """Binary files are skipped."""
        output = "10\t2\tsrc/app.py\n-\t-\tlogo.png\n3\t0\tREADME.md\n"
        assert parse_numstat(output) == (13, 2)


class TestGitProvider:
    """Tests for the git status provider."""

    def test_extended_status(self, fake_run):
        """Status, main divergence and line counts are combined."""
        fake_run({
            "status --porcelain=v2": (0, PORCELAIN),
            "refs/heads/main": (0, "abc\n"),
            "rev-list": (0, "4\t2\n"),
            "diff --numstat": (0, "5\t1\tsrc/app.py\n"),
        })
        ext = get_extended_status("/w/app")
        assert ext.status.branch == "feature/login"
        assert (ext.status.behind_main, ext.status.ahead_main) == (4, 2)
        assert (ext.lines_added, ext.lines_deleted) == (5, 1)

    def test_master_fallback_and_no_head(self, fake_run):
        """master is used without main, and a missing HEAD means zero lines."""
        fake = fake_run({
            "status --porcelain=v2": (0, "# branch.head topic\n"),
            "refs/heads/master": (0, "abc\n"),
            "master...HEAD": (0, "0\t3\n"),
        })
        ext = get_extended_status("/w/app")
        assert ext.status.ahead_main == 3
        assert (ext.lines_added, ext.lines_deleted) == (0, 0)
        assert any("master...HEAD" in " ".join(c) for c in fake.calls)

    def test_fetch_skips_failures(self, monkeypatch, tmp_path):
        """Repositories that fail are left out; the rest are keyed by path."""
        good, bad = tmp_path / "good", tmp_path / "bad"
        good.mkdir()
        bad.mkdir()
        status = ExtendedGitStatus(GitStatus(branch="main"))

        def fake_status(path):
            if path == str(bad):
                raise ProviderError("not a repo")
            return status

        monkeypatch.setattr(git_provider, "get_extended_status", fake_status)
        projects = [
            Project(str(good), "good"),
            Project(str(bad), "bad"),
            Project(str(tmp_path / "gone"), "gone"),
        ]
        assert GitStatusProvider().fetch(projects) == {normalize_path(good): status}


class TestAgentProvider:
    """Tests for agent session parsing."""

    PAYLOAD = [
        {
            "type": "claude_session",
            "working_directory": "/w/app",
            "status": "running",
            "state_duration": "5m",
            "state_duration_seconds": 300,
            "pid": 4242,
            "id": "abc",
        },
        {"type": "job", "working_directory": "/w/other", "status": "running"},
        {"type": "claude_session", "status": "idle"},
    ]

    def test_parse(self):
        """Only interactive sessions with a directory are kept."""
        sessions = parse_agent_sessions(self.PAYLOAD)
        assert len(sessions) == 1
        session = sessions[0]
        assert session.path == "/w/app"
        assert session.status == AgentStatus.RUNNING
        assert session.duration == "5m"
        assert session.pid == 4242

    def test_parse_invalid(self):
        """A non-list payload is an error; no payload is no sessions."""
        with pytest.raises(ProviderError):
            parse_agent_sessions({"sessions": []})
        assert parse_agent_sessions(None) == []

    def test_fetch(self, fake_run):
        """Sessions are keyed by normalized working directory."""
        fake_run({"sessions list": (0, json.dumps(self.PAYLOAD))})
        config = NavConfig(agents_command=["hooks", "sessions", "list", "--json"])
        result = AgentSessionProvider(config).fetch([])
        assert list(result) == [normalize_path("/w/app")]


class TestNotesAndPlans:
    """Tests for the command-driven providers."""

    def test_note_counts(self):
        """Both spellings of in-progress are accepted."""
        counts = parse_note_counts({"current": 2, "inProgress": 1, "inbox": "x"})
        assert (counts.current, counts.in_progress, counts.inbox) == (2, 1, 0)

    def test_notes_by_name(self, fake_run):
        """Counts keyed by name are mapped onto project paths."""
        fake_run({"nb": (0, json.dumps({"app": {"current": 3}, "ghost": {"current": 1}}))})
        provider = NoteCountsProvider(NavConfig(notes_command=["nb", "count"]))
        result = provider.fetch([Project("/w/app", "app"), Project("/w/lib", "lib")])
        assert list(result) == [normalize_path("/w/app")]
        assert result[normalize_path("/w/app")].current == 3

    def test_notes_unconfigured(self):
        """Without a command the provider is unavailable."""
        provider = NoteCountsProvider(NavConfig())
        assert not provider.is_available()
        assert provider.fetch([Project("/w/app", "app")]) == {}

    def test_plan_stats(self, fake_run):
        """Plan stats are keyed by normalized path."""
        fake_run({"flow": (0, json.dumps({"/w/app/": {"total_plans": 4, "running": 1, "active_plan": "auth"}}))})
        provider = PlanStatsProvider(NavConfig(plans_command=["flow", "plans"]))
        stats = provider.fetch([])[normalize_path("/w/app")]
        assert (stats.total_plans, stats.running, stats.active_plan) == (4, 1, "auth")

    def test_plan_bad_numbers(self):
        """Non-numeric counts read as zero."""
        assert parse_plan_stats({"total_plans": "many"}).total_plans == 0

    def test_plans_wrong_shape(self, fake_run):
        """A list instead of a mapping is an error."""
        fake_run({"flow": (0, "[]")})
        with pytest.raises(ProviderError):
            PlanStatsProvider(NavConfig(plans_command=["flow"])).fetch([])


class TestProviderRegistry:
    """Tests for provider registry."""

    def test_all_categories_registered(self):
        """Every enrichment category has a provider."""
        names = {p.name for p in get_all_providers()}
        assert names == {"git", "claude", "notes", "plans"}

    def test_get_provider_by_name(self):
        """Providers are looked up by category."""
        assert isinstance(get_provider("notes"), NoteCountsProvider)
        assert get_provider("nonexistent") is None

    def test_available_respects_config(self):
        """Command-driven providers need a configured command."""
        config = NavConfig(notes_command=["nb"], plans_command=[])
        names = {p.name for p in get_available_providers(config)}
        assert "notes" in names
        assert "plans" not in names
