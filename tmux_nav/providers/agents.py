"""Active agent sessions reported by grove-hooks."""

import logging
import shutil
from pathlib import Path

from ..models import AgentSession, AgentStatus, Project, normalize_path
from . import register_provider
from .base import EnrichmentProvider, ProviderError, run_json_command

logger = logging.getLogger(__name__)

# Installed copy takes precedence over PATH
GROVE_HOOKS_USER_BIN = Path.home() / ".grove" / "bin" / "grove-hooks"
AGENT_SESSION_TYPE = "claude_session"


def parse_agent_sessions(data) -> list[AgentSession]:
    """Convert the ``sessions list --json`` payload into AgentSession values."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise ProviderError("expected a JSON list of sessions")

    sessions = []
    for entry in data:
        if not isinstance(entry, dict) or entry.get("type") != AGENT_SESSION_TYPE:
            continue
        working_dir = entry.get("working_directory")
        if not working_dir:
            continue
        try:
            pid = int(entry.get("pid") or 0)
            seconds = int(entry.get("state_duration_seconds") or 0)
        except (TypeError, ValueError):
            pid, seconds = 0, 0
        sessions.append(AgentSession(
            path=str(working_dir),
            status=AgentStatus.parse(entry.get("status")),
            duration=str(entry.get("state_duration") or ""),
            session_id=str(entry.get("id") or ""),
            pid=pid,
            duration_seconds=seconds,
        ))
    return sessions


@register_provider
class AgentSessionProvider(EnrichmentProvider):
    """Interactive agent sessions, keyed by their working directory."""

    name = "claude"
    display_name = "Agent sessions"
    icon = "🤖"

    def command(self) -> list[str]:
        cmd = list(self.config.agents_command)
        if cmd and cmd[0] == "grove-hooks" and GROVE_HOOKS_USER_BIN.exists():
            cmd[0] = str(GROVE_HOOKS_USER_BIN)
        return cmd

    def is_available(self) -> bool:
        cmd = self.command()
        return bool(cmd) and (Path(cmd[0]).exists() or shutil.which(cmd[0]) is not None)

    def fetch_active(self) -> list[AgentSession]:
        return parse_agent_sessions(run_json_command(self.command()))

    def fetch(self, projects: list[Project]) -> dict[str, AgentSession]:
        # Sessions are independent of discovery; the picker matches them to projects
        return {normalize_path(s.path): s for s in self.fetch_active()}
