"""Filesystem walker that produces the flat project list.

Layout conventions:

- a directory containing ``.git`` is a project; the walk does not descend
  into it
- a project whose ``grove.yml`` declares ``workspaces`` is an ecosystem;
  its git-bearing children are sub-projects
- ``<repo>/.grove-worktrees/<name>`` is a worktree of ``<repo>`` labelled
  ``<name>``; inside an ecosystem worktree, git-bearing children are
  worktrees of the matching sub-projects
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from ..config import NavConfig
from ..history import AccessHistory, sort_projects_by_access
from ..models import Project, ProjectKind, qualify_identifiers

logger = logging.getLogger(__name__)

WORKTREES_DIR = ".grove-worktrees"
ECOSYSTEM_MARKER = "grove.yml"
SKIP_DIRS = {"node_modules", "vendor", "__pycache__", "venv", ".venv"}


def is_repo(path: Path) -> bool:
    # .git is a file for worktrees and submodules
    return (path / ".git").exists()


def is_ecosystem(path: Path) -> bool:
    marker = path / ECOSYSTEM_MARKER
    if not marker.is_file():
        return False
    try:
        with open(marker) as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.debug(f"Unreadable {marker}: {e}")
        return False
    return isinstance(data, dict) and bool(data.get("workspaces"))


def _child_dirs(path: Path) -> list[Path]:
    try:
        children = sorted(path.iterdir())
    except OSError as e:
        logger.debug(f"Cannot list {path}: {e}")
        return []
    return [
        c for c in children
        if c.is_dir() and not c.name.startswith(".") and c.name not in SKIP_DIRS
    ]


def _worktrees(repo: Path) -> list[Path]:
    root = repo / WORKTREES_DIR
    if not root.is_dir():
        return []
    return _child_dirs(root)


class ProjectDiscovery:
    """Walks the configured search paths."""

    def __init__(self, config: Optional[NavConfig] = None, history: Optional[AccessHistory] = None):
        self.config = config or NavConfig()
        self.history = history

    def discover(self) -> list[Project]:
        """Full snapshot of the workspace, most recently opened first."""
        projects: list[Project] = []
        seen: set[str] = set()
        for root in self.config.expanded_search_paths():
            if not root.is_dir():
                logger.debug(f"Search path {root} does not exist")
                continue
            self._walk(root.resolve(), 0, projects, seen)

        if self.history is not None:
            projects = sort_projects_by_access(projects, self.history)
        projects = qualify_identifiers(projects)
        logger.debug(f"Discovered {len(projects)} projects")
        return projects

    def _walk(self, directory: Path, depth: int, out: list[Project], seen: set[str]):
        if is_repo(directory):
            self._add_repo(directory, out, seen)
            return
        if depth >= self.config.max_depth:
            return
        for child in _child_dirs(directory):
            self._walk(child, depth + 1, out, seen)

    def _add(self, out: list[Project], seen: set[str], project: Project):
        if project.path in seen:
            return
        seen.add(project.path)
        out.append(project)

    def _add_repo(self, repo: Path, out: list[Project], seen: set[str]):
        path = str(repo)
        if not is_ecosystem(repo):
            self._add(out, seen, Project(path=path, name=repo.name, kind=ProjectKind.STANDALONE_PROJECT))
            for wt in _worktrees(repo):
                self._add(out, seen, Project(
                    path=str(wt), name=wt.name,
                    kind=ProjectKind.STANDALONE_PROJECT_WORKTREE,
                    parent_path=path, worktree_name=wt.name,
                ))
            return

        self._add(out, seen, Project(path=path, name=repo.name, kind=ProjectKind.ECOSYSTEM_ROOT))

        for wt in _worktrees(repo):
            self._add(out, seen, Project(
                path=str(wt), name=wt.name,
                kind=ProjectKind.ECOSYSTEM_WORKTREE,
                parent_path=path, worktree_name=wt.name,
            ))
            for sub in _child_dirs(wt):
                if not is_repo(sub):
                    continue
                self._add(out, seen, Project(
                    path=str(sub), name=sub.name,
                    kind=ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE,
                    parent_path=str(repo / sub.name),
                    parent_ecosystem_path=str(wt),
                    worktree_name=wt.name,
                ))

        for sub in _child_dirs(repo):
            if not is_repo(sub):
                continue
            self._add(out, seen, Project(
                path=str(sub), name=sub.name,
                kind=ProjectKind.ECOSYSTEM_SUB_PROJECT,
                parent_ecosystem_path=path,
            ))
            for wt in _worktrees(sub):
                self._add(out, seen, Project(
                    path=str(wt), name=wt.name,
                    kind=ProjectKind.ECOSYSTEM_SUB_PROJECT_WORKTREE,
                    parent_path=str(sub),
                    parent_ecosystem_path=path,
                    worktree_name=wt.name,
                ))


def discover_projects(config: Optional[NavConfig] = None, history: Optional[AccessHistory] = None) -> list[Project]:
    return ProjectDiscovery(config, history).discover()
