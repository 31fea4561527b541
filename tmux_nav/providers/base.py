"""Base class for enrichment providers."""

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

from ..config import NavConfig
from ..models import Project

logger = logging.getLogger(__name__)

# Seconds before an external command is abandoned
COMMAND_TIMEOUT = 10


class ProviderError(Exception):
    """A fetch failed; the category has no data this cycle."""


def run_command(cmd: list[str], cwd: Optional[str] = None, timeout: float = COMMAND_TIMEOUT) -> str:
    """Run a command and return its stdout, raising ProviderError on any failure."""
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProviderError(f"{cmd[0]}: {e}") from e
    if result.returncode != 0:
        raise ProviderError(f"{' '.join(cmd)} exited {result.returncode}: {result.stderr.strip()}")
    return result.stdout


def run_json_command(cmd: list[str], cwd: Optional[str] = None):
    output = run_command(cmd, cwd=cwd)
    try:
        return json.loads(output or "null")
    except json.JSONDecodeError as e:
        raise ProviderError(f"{cmd[0]} returned invalid JSON: {e}") from e


class EnrichmentProvider(ABC):
    """Abstract base class for enrichment providers.

    Each provider fetches one category of metadata (git status, agent
    sessions, note counts, plan stats) for a full project list. A fetch
    result is a complete replacement for that category.
    """

    # Provider identity
    name: str = ""  # category key: "git", "claude", "notes", "plans"
    display_name: str = ""
    icon: str = ""

    def __init__(self, config: Optional[NavConfig] = None):
        self.config = config or NavConfig()

    def is_available(self) -> bool:
        """Check whether the provider's external tool is installed/configured."""
        return True

    @abstractmethod
    def fetch(self, projects: list[Project]) -> dict:
        """Fetch data keyed by normalized project path.

        Raises ProviderError when the whole category is unavailable this
        cycle.
        """
        ...
