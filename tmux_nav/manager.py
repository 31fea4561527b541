"""Persistence of shortcut keys and the tmux bindings generated from them.

``sessions.yml`` stores only bound keys::

    sessions:
      a:
        path: /home/me/code/app
        repository: app
        description: ""

``generated-bindings.conf`` is derived from it and meant to be sourced from
the user's tmux config.
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Optional

import yaml

from .config import CONFIG_DIR, NavConfig
from .models import SessionRecord
from .tmux import TmuxClient

logger = logging.getLogger(__name__)

SESSIONS_FILENAME = "sessions.yml"
BINDINGS_FILENAME = "generated-bindings.conf"
SESSIONIZE_COMMAND = "tmux-nav sessionize"


class KeyManager:
    """Reads and writes key assignments and regenerates tmux bindings."""

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        config_dir: Optional[Path] = None,
        tmux: Optional[TmuxClient] = None,
    ):
        self.config = config or NavConfig()
        self.config_dir = config_dir or CONFIG_DIR
        self.tmux = tmux or TmuxClient()

    @property
    def sessions_path(self) -> Path:
        return self.config_dir / SESSIONS_FILENAME

    @property
    def bindings_path(self) -> Path:
        return self.config_dir / BINDINGS_FILENAME

    def get_available_keys(self) -> list[str]:
        return list(self.config.available_keys)

    def _read_bound(self) -> dict[str, dict]:
        if not self.sessions_path.exists():
            return {}
        try:
            with open(self.sessions_path) as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Could not read {self.sessions_path}: {e}")
            return {}
        sessions = data.get("sessions") if isinstance(data, dict) else None
        if not isinstance(sessions, dict):
            return {}
        return {str(k): v for k, v in sessions.items() if isinstance(v, dict) and v.get("path")}

    def get_sessions(self) -> list[SessionRecord]:
        """One record per available key, blank when unbound.

        Keys bound in the file but no longer in the configured alphabet are
        listed after the available ones so they can still be cleared.
        """
        bound = self._read_bound()
        keys = self.get_available_keys()
        keys += sorted(k for k in bound if k not in keys)

        records = []
        for key in keys:
            entry = bound.get(key) or {}
            path = str(entry.get("path") or "")
            records.append(SessionRecord(
                key=key,
                project_path=path,
                repository_name=str(entry.get("repository") or (os.path.basename(path) if path else "")),
                description=str(entry.get("description") or ""),
            ))
        return records

    def update_sessions(self, records: list[SessionRecord]):
        """Persist bound records. Raises OSError on failure."""
        sessions = {
            r.key: {
                "path": r.project_path,
                "repository": r.repository_name,
                "description": r.description,
            }
            for r in records
            if r.is_bound
        }
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.sessions_path, "w") as f:
            yaml.safe_dump({"sessions": sessions}, f, default_flow_style=False, sort_keys=True)

    def render_bindings(self, records: list[SessionRecord]) -> str:
        table = f"-T {self.config.bind_table} " if self.config.bind_table else ""
        lines = ["# Generated by tmux-nav. Do not edit; run `tmux-nav key set` instead.", ""]
        for record in sorted((r for r in records if r.is_bound), key=lambda r: r.key):
            lines.append(f"# {record.key}: {record.repository_name}")
            lines.append(
                f'bind-key -r {table}{record.key} run-shell '
                f'"{SESSIONIZE_COMMAND} {shlex.quote(record.project_path)}"'
            )
        return "\n".join(lines) + "\n"

    def regenerate_bindings(self):
        """Rewrite the bindings file from the persisted records. Raises OSError."""
        content = self.render_bindings(self.get_sessions())
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.bindings_path.write_text(content)
        logger.debug(f"Wrote {self.bindings_path}")

    def reload_config(self):
        """Re-source the tmux config so new bindings take effect.

        Does nothing outside tmux. Raises on tmux failure.
        """
        if not self.tmux.in_tmux():
            logger.debug("Not inside tmux, skipping config reload")
            return
        self.tmux.source_file(self.config.tmux_conf)
