"""Caching of the last discovered project list for fast startup."""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from .config import DATA_DIR
from .models import Project

logger = logging.getLogger(__name__)

# Default cache location
PROJECT_CACHE_PATH = DATA_DIR / "cache.json"


class ProjectCache:
    """Snapshot of the project list, shown provisionally while discovery runs.

    Only identity fields are stored; enrichment is always fetched live.
    """

    _lock = threading.Lock()

    def __init__(self, cache_path: Optional[Path] = None):
        self._cache_path = cache_path or PROJECT_CACHE_PATH

    @property
    def path(self) -> Path:
        return self._cache_path

    def load(self) -> list[Project]:
        """Load cached projects. A missing or corrupt cache loads as empty."""
        if not self._cache_path.exists():
            return []
        try:
            with open(self._cache_path) as f:
                data = json.load(f)
            return [Project.from_dict(entry) for entry in data.get("projects", [])]
        except (json.JSONDecodeError, IOError, KeyError, ValueError, AttributeError) as e:
            logger.warning(f"Discarding unreadable project cache {self._cache_path}: {e}")
            return []

    def save(self, projects: list[Project]):
        """Save projects to disk."""
        payload = {
            "projects": [p.to_dict() for p in projects],
            "timestamp": time.time(),
        }
        with self._lock:
            try:
                self._cache_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._cache_path, "w") as f:
                    json.dump(payload, f)
            except IOError as e:
                logger.warning(f"Could not write project cache {self._cache_path}: {e}")

    def info(self) -> Optional[dict]:
        """Return project count, age and size, or None if there is no cache."""
        if not self._cache_path.exists():
            return None
        try:
            with open(self._cache_path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
        return {
            "projects": len(data.get("projects", [])),
            "timestamp": data.get("timestamp"),
            "size": self._cache_path.stat().st_size,
        }

    def clear(self) -> bool:
        if self._cache_path.exists():
            self._cache_path.unlink()
            return True
        return False


def load_project_cache(cache_path: Optional[Path] = None) -> list[Project]:
    return ProjectCache(cache_path).load()


def save_project_cache(projects: list[Project], cache_path: Optional[Path] = None):
    ProjectCache(cache_path).save(projects)
