"""Persisted picker preferences (state.yml)."""

import logging
from dataclasses import asdict, dataclass
from enum import Enum, IntEnum
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.yml"


class PathDisplayMode(IntEnum):
    OFF = 0
    COMPACT = 1
    FULL = 2

    def next(self) -> "PathDisplayMode":
        return PathDisplayMode((self.value + 1) % len(PathDisplayMode))


class ViewMode(str, Enum):
    TREE = "tree"
    TABLE = "table"

    def toggled(self) -> "ViewMode":
        return ViewMode.TABLE if self is ViewMode.TREE else ViewMode.TREE


# Enrichment categories that can be toggled on and off
CATEGORY_FIELDS = {
    "git": "show_git_status",
    "branch": "show_branch",
    "claude": "show_claude_sessions",
    "notes": "show_note_counts",
    "plans": "show_plan_stats",
}


@dataclass(frozen=True)
class SessionizerState:
    """User preferences that survive restarts."""

    focused_path: str = ""
    worktrees_folded: bool = False
    show_git_status: bool = True
    show_branch: bool = True
    show_claude_sessions: bool = True
    show_note_counts: bool = True
    show_plan_stats: bool = True
    path_display_mode: PathDisplayMode = PathDisplayMode.COMPACT
    view_mode: ViewMode = ViewMode.TREE

    def is_shown(self, category: str) -> bool:
        return getattr(self, CATEGORY_FIELDS[category])

    @classmethod
    def from_dict(cls, data: dict) -> "SessionizerState":
        defaults = cls()
        try:
            path_mode = PathDisplayMode(int(data.get("path_display_mode", defaults.path_display_mode)))
        except (TypeError, ValueError):
            path_mode = defaults.path_display_mode
        try:
            view_mode = ViewMode(data.get("view_mode") or defaults.view_mode)
        except ValueError:
            view_mode = defaults.view_mode

        flags = {
            name: bool(data.get(name, getattr(defaults, name)))
            for name in ("worktrees_folded", *CATEGORY_FIELDS.values())
        }
        return cls(
            focused_path=str(data.get("focused_path") or ""),
            path_display_mode=path_mode,
            view_mode=view_mode,
            **flags,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["path_display_mode"] = int(self.path_display_mode)
        data["view_mode"] = self.view_mode.value
        return data

    @classmethod
    def load(cls, state_dir: Path) -> "SessionizerState":
        """Load state, returning defaults if the file is missing or corrupt."""
        path = state_dir / STATE_FILENAME
        if not path.exists():
            return cls()
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return cls.from_dict(data if isinstance(data, dict) else {})
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return cls()

    def save(self, state_dir: Path) -> bool:
        """Write state to disk. Failures are logged, never raised."""
        path = state_dir / STATE_FILENAME
        try:
            state_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
            return True
        except OSError as e:
            logger.warning(f"Could not save state to {path}: {e}")
            return False
