"""User configuration loaded from ~/.config/tmux-nav/config.yml."""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# Default locations
CONFIG_DIR = Path(os.environ.get("TMUX_NAV_CONFIG_DIR", Path.home() / ".config" / "tmux-nav"))
DATA_DIR = Path(os.environ.get("TMUX_NAV_DATA_DIR", Path.home() / ".cache" / "tmux-nav"))
CONFIG_FILENAME = "config.yml"

DEFAULT_KEYS = list("asdfghjklqwertyuiopzxcvbnm")
DEFAULT_AGENTS_COMMAND = ["grove-hooks", "sessions", "list", "--active", "--json"]


def _as_command(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(part) for part in value]


@dataclass
class NavConfig:
    """Settings for discovery, refresh and key bindings."""

    search_paths: list[str] = field(default_factory=lambda: ["~/code"])
    max_depth: int = 2
    available_keys: list[str] = field(default_factory=lambda: list(DEFAULT_KEYS))
    refresh_interval: float = 10.0

    # Enrichment commands (empty = provider unavailable)
    agents_command: list[str] = field(default_factory=lambda: list(DEFAULT_AGENTS_COMMAND))
    notes_command: list[str] = field(default_factory=list)
    plans_command: list[str] = field(default_factory=list)

    # tmux integration
    bind_table: str = ""  # key table for generated bindings; empty = prefix table
    tmux_conf: str = "~/.tmux.conf"

    @classmethod
    def from_dict(cls, data: dict) -> "NavConfig":
        config = cls()
        if "search_paths" in data:
            config.search_paths = [str(p) for p in data["search_paths"] or []]
        if "max_depth" in data:
            config.max_depth = int(data["max_depth"])
        if "available_keys" in data:
            keys = data["available_keys"] or []
            # Accept "asdf" as shorthand for ["a", "s", "d", "f"]
            config.available_keys = list(keys) if isinstance(keys, str) else [str(k) for k in keys]
        if "refresh_interval" in data:
            config.refresh_interval = max(1.0, float(data["refresh_interval"]))
        if "agents_command" in data:
            config.agents_command = _as_command(data["agents_command"])
        config.notes_command = _as_command(data.get("notes_command"))
        config.plans_command = _as_command(data.get("plans_command"))
        config.bind_table = str(data.get("bind_table") or "")
        config.tmux_conf = str(data.get("tmux_conf") or config.tmux_conf)
        return config

    def expanded_search_paths(self) -> list[Path]:
        return [Path(p).expanduser() for p in self.search_paths]


def load_config(config_dir: Optional[Path] = None) -> NavConfig:
    """Load config, falling back to defaults on a missing or malformed file."""
    path = (config_dir or CONFIG_DIR) / CONFIG_FILENAME
    if not path.exists():
        return NavConfig()
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("top level must be a mapping")
        return NavConfig.from_dict(data)
    except (yaml.YAMLError, OSError, ValueError, TypeError) as e:
        logger.warning(f"Ignoring invalid config {path}: {e}")
        return NavConfig()
