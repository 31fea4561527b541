"""Project model shared by discovery, filtering and the picker."""

import hashlib
import os
import sys
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


# Case-insensitive filesystems by default
CASE_INSENSITIVE_PLATFORMS = ("darwin", "win32")


def normalize_path(path) -> str:
    """Normalize a path for use as a lookup key.

    Every map keyed by project path (running sessions, key bindings,
    enrichment) goes through this on both insert and lookup.
    """
    if not path:
        return ""
    normalized = os.path.normpath(os.path.abspath(os.path.expanduser(str(path))))
    if sys.platform in CASE_INSENSITIVE_PLATFORMS:
        normalized = normalized.casefold()
    return normalized


def sanitize_session_name(name: str) -> str:
    """tmux rejects '.' and ':' in session names."""
    return name.replace(".", "_").replace(":", "_")


class ProjectKind(str, Enum):
    ECOSYSTEM_ROOT = "ecosystem-root"
    ECOSYSTEM_WORKTREE = "ecosystem-worktree"
    STANDALONE_PROJECT = "standalone-project"
    STANDALONE_PROJECT_WORKTREE = "standalone-project-worktree"
    ECOSYSTEM_SUB_PROJECT = "ecosystem-sub-project"
    ECOSYSTEM_SUB_PROJECT_WORKTREE = "ecosystem-sub-project-worktree"
    ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE = "ecosystem-worktree-sub-project-worktree"


WORKTREE_KINDS = frozenset({
    ProjectKind.ECOSYSTEM_WORKTREE,
    ProjectKind.STANDALONE_PROJECT_WORKTREE,
    ProjectKind.ECOSYSTEM_SUB_PROJECT_WORKTREE,
    ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE,
})

ECOSYSTEM_KINDS = frozenset({
    ProjectKind.ECOSYSTEM_ROOT,
    ProjectKind.ECOSYSTEM_WORKTREE,
})

SUB_PROJECT_KINDS = frozenset({
    ProjectKind.ECOSYSTEM_SUB_PROJECT,
    ProjectKind.ECOSYSTEM_SUB_PROJECT_WORKTREE,
    ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE,
})


class AgentStatus(str, Enum):
    """Status reported for an external agent session."""

    RUNNING = "running"
    IDLE = "idle"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AgentStatus":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class GitStatus:
    """Working tree and upstream status of a repository."""

    branch: str = ""
    has_upstream: bool = False
    ahead: int = 0
    behind: int = 0
    ahead_main: int = 0
    behind_main: int = 0
    modified: int = 0
    staged: int = 0
    untracked: int = 0
    is_dirty: bool = False


@dataclass(frozen=True)
class ExtendedGitStatus:
    """GitStatus plus diff line counts against HEAD."""

    status: GitStatus
    lines_added: int = 0
    lines_deleted: int = 0

    @property
    def is_dirty(self) -> bool:
        return self.status.is_dirty


@dataclass(frozen=True)
class AgentSession:
    """An interactive agent session running in some directory."""

    path: str
    status: AgentStatus = AgentStatus.UNKNOWN
    duration: str = ""
    session_id: str = field(default="", compare=False)
    pid: int = field(default=0, compare=False)
    duration_seconds: int = field(default=0, compare=False)


@dataclass(frozen=True)
class NoteCounts:
    current: int = 0
    issues: int = 0
    inbox: int = 0
    docs: int = 0
    completed: int = 0
    review: int = 0
    in_progress: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return (self.current + self.issues + self.inbox + self.docs
                + self.completed + self.review + self.in_progress + self.other)


@dataclass(frozen=True)
class PlanStats:
    total_plans: int = 0
    active_plan: str = ""
    running: int = 0
    pending: int = 0
    completed: int = 0
    failed: int = 0
    todo: int = 0
    hold: int = 0
    abandoned: int = 0
    plan_status: str = ""


@dataclass(frozen=True)
class Project:
    """A discovered project, ecosystem or worktree.

    Identity fields never change once discovered; enrichment is merged by
    building a new value with ``dataclasses.replace``.
    """

    # Identity
    path: str
    name: str
    kind: ProjectKind = ProjectKind.STANDALONE_PROJECT

    # Hierarchy
    parent_path: str = ""  # repo this is a worktree of
    parent_ecosystem_path: str = ""  # owning ecosystem root
    worktree_name: str = ""  # shared feature label across an ecosystem
    session_qualifier: str = ""  # set only when the plain name clashes

    # Enrichment
    git_status: Optional[ExtendedGitStatus] = None
    agent_session: Optional[AgentSession] = None
    note_counts: Optional[NoteCounts] = None
    plan_stats: Optional[PlanStats] = None
    enrichment_status: dict = field(default_factory=dict, compare=False)

    def is_worktree(self) -> bool:
        return self.kind in WORKTREE_KINDS

    def is_ecosystem(self) -> bool:
        return self.kind in ECOSYSTEM_KINDS

    def is_sub_project(self) -> bool:
        return self.kind in SUB_PROJECT_KINDS

    def is_dirty(self) -> bool:
        return self.git_status is not None and self.git_status.is_dirty

    @property
    def key(self) -> str:
        """Normalized path used for every lookup."""
        return normalize_path(self.path)

    @property
    def group_key(self) -> str:
        if self.is_worktree():
            return normalize_path(self.parent_path)
        return self.key

    def identifier(self) -> str:
        """Session name derived from the project's position in the hierarchy.

        Worktrees and sub-projects are prefixed with their owners so that
        ``app/api`` and a standalone ``api`` never share a session.
        Same-named repositories in different directories are told apart by
        ``session_qualifier``, see ``qualify_identifiers``.
        """
        base = os.path.basename(self.path.rstrip(os.sep)) or self.path
        parent = os.path.basename(self.parent_path.rstrip(os.sep))
        ecosystem = os.path.basename(self.parent_ecosystem_path.rstrip(os.sep))

        if self.kind == ProjectKind.ECOSYSTEM_SUB_PROJECT and ecosystem:
            parts = [ecosystem, base]
        elif self.kind == ProjectKind.ECOSYSTEM_SUB_PROJECT_WORKTREE and parent:
            parts = [ecosystem, parent, base] if ecosystem else [parent, base]
        elif self.kind == ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE and ecosystem:
            root = os.path.basename(os.path.dirname(self.parent_path.rstrip(os.sep)))
            parts = [root, ecosystem, base] if root else [ecosystem, base]
        elif self.is_worktree() and parent:
            parts = [parent, base]
        else:
            parts = [base]
        if self.session_qualifier:
            parts.insert(0, self.session_qualifier)
        return sanitize_session_name("_".join(parts))

    def to_dict(self) -> dict:
        """Identity fields only; enrichment is never cached."""
        return {
            "path": self.path,
            "name": self.name,
            "kind": self.kind.value,
            "parent_path": self.parent_path,
            "parent_ecosystem_path": self.parent_ecosystem_path,
            "worktree_name": self.worktree_name,
            "session_qualifier": self.session_qualifier,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            path=data["path"],
            name=data.get("name") or os.path.basename(data["path"]),
            kind=ProjectKind(data.get("kind", ProjectKind.STANDALONE_PROJECT.value)),
            parent_path=data.get("parent_path", ""),
            parent_ecosystem_path=data.get("parent_ecosystem_path", ""),
            worktree_name=data.get("worktree_name", ""),
            session_qualifier=data.get("session_qualifier", ""),
        )


def _repository_root(project: Project) -> str:
    """Top-level repository whose name leads the identifier."""
    kind = project.kind
    if kind == ProjectKind.ECOSYSTEM_SUB_PROJECT:
        root = project.parent_ecosystem_path
    elif kind == ProjectKind.ECOSYSTEM_SUB_PROJECT_WORKTREE:
        root = project.parent_ecosystem_path or project.parent_path
    elif kind == ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE:
        root = os.path.dirname(project.parent_path.rstrip(os.sep))
    elif project.is_worktree():
        root = project.parent_path
    else:
        root = project.path
    return (root or project.path).rstrip(os.sep)


def _clashing_identifiers(projects: list[Project]) -> set[str]:
    paths_by_name: dict[str, set[str]] = defaultdict(set)
    for p in projects:
        paths_by_name[p.identifier()].add(p.key)
    return {name for name, paths in paths_by_name.items() if len(paths) > 1}


def qualify_identifiers(projects: list[Project]) -> list[Project]:
    """Make session names unique across a discovered project list.

    Projects whose identifiers clash are prefixed with the directory that
    holds their repository (``work_api``, ``personal_api``). Any that still
    clash get a short hash of their path as well. Order is preserved and
    projects without a clash are returned unchanged.
    """
    clashing = _clashing_identifiers(projects)
    if not clashing:
        return projects

    projects = [
        replace(p, session_qualifier=os.path.basename(os.path.dirname(_repository_root(p))))
        if p.identifier() in clashing else p
        for p in projects
    ]

    clashing = _clashing_identifiers(projects)
    if not clashing:
        return projects

    qualified = []
    for p in projects:
        if p.identifier() in clashing:
            digest = hashlib.sha1(p.key.encode()).hexdigest()[:6]
            qualifier = f"{p.session_qualifier}-{digest}" if p.session_qualifier else digest
            p = replace(p, session_qualifier=qualifier)
        qualified.append(p)
    return qualified


@dataclass
class SessionRecord:
    """One shortcut key slot and the project it opens."""

    key: str
    project_path: str = ""
    repository_name: str = ""
    description: str = ""

    @property
    def is_bound(self) -> bool:
        return bool(self.project_path)
