"""Project access history, used to order discovery results."""

import json
import logging
import time
from pathlib import Path
from typing import Optional

from .config import DATA_DIR
from .models import Project, normalize_path

logger = logging.getLogger(__name__)

HISTORY_PATH = DATA_DIR / "access-history.json"


class AccessHistory:
    """Last-access time and open count per project path."""

    def __init__(self, history_path: Optional[Path] = None):
        self._path = history_path or HISTORY_PATH
        self._data: dict[str, dict] = {}
        self._load()

    def _load(self):
        """Load history from disk."""
        if self._path.exists():
            try:
                with open(self._path) as f:
                    data = json.load(f)
                self._data = data if isinstance(data, dict) else {}
            except (json.JSONDecodeError, IOError):
                self._data = {}

    def save(self):
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w") as f:
                json.dump(self._data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save access history: {e}")

    def last_accessed(self, path: str) -> float:
        entry = self._data.get(normalize_path(path)) or {}
        return float(entry.get("last_accessed", 0))

    def record_access(self, project: Project, now: Optional[float] = None):
        """Record that a project was opened.

        Opening a worktree also counts as activity on the repository it
        belongs to.
        """
        now = now if now is not None else time.time()
        paths = [project.path]
        if project.is_worktree() and project.parent_path:
            paths.append(project.parent_path)
        for path in paths:
            entry = self._data.setdefault(normalize_path(path), {"count": 0})
            entry["last_accessed"] = now
            entry["count"] = entry.get("count", 0) + 1
        self.save()

    def recent(self) -> list[tuple[str, float]]:
        """(normalized path, last access) pairs, most recent first."""
        entries = [
            (path, float(entry.get("last_accessed", 0)))
            for path, entry in self._data.items()
            if isinstance(entry, dict)
        ]
        return sorted(entries, key=lambda item: -item[1])

    def sort_projects(self, projects: list[Project]) -> list[Project]:
        """Most recently accessed first; never-accessed keep their order."""
        return sorted(projects, key=lambda p: -self.last_accessed(p.path))


def sort_projects_by_access(projects: list[Project], history: Optional[AccessHistory] = None) -> list[Project]:
    """Most recently opened first; a stable sort."""
    return (history or AccessHistory()).sort_projects(projects)
