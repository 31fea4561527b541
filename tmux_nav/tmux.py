"""tmux operations for project sessions."""

import logging
import os
import subprocess
import time
from typing import Optional

logger = logging.getLogger(__name__)


class TmuxClient:
    """Thin wrapper over the tmux command line, keyed by session name."""

    def __init__(self, binary: str = "tmux"):
        self.binary = binary

    @staticmethod
    def in_tmux() -> bool:
        """True when running inside a tmux client."""
        return bool(os.environ.get("TMUX"))

    def _run_tmux(self, *args: str, check: bool = False) -> subprocess.CompletedProcess:
        """Run a tmux command."""
        cmd = [self.binary] + list(args)
        logger.debug(f"Running tmux command: {' '.join(cmd)}")
        return subprocess.run(cmd, capture_output=True, text=True, check=check)

    def session_exists(self, session_name: str) -> bool:
        """Check if a tmux session exists."""
        try:
            result = self._run_tmux("has-session", "-t", f"={session_name}")
        except OSError as e:
            logger.warning(f"tmux unavailable: {e}")
            return False
        return result.returncode == 0

    def list_sessions(self) -> list[str]:
        """Names of all running sessions; empty when no server is running."""
        try:
            result = self._run_tmux("list-sessions", "-F", "#{session_name}")
        except OSError as e:
            logger.warning(f"tmux unavailable: {e}")
            return []
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def current_session(self) -> Optional[str]:
        """Name of the session this client is attached to, if any."""
        if not self.in_tmux():
            return None
        try:
            result = self._run_tmux("display-message", "-p", "#S")
        except OSError:
            return None
        name = result.stdout.strip()
        return name if result.returncode == 0 and name else None

    def new_session(self, session_name: str, working_dir: str) -> bool:
        """Create a detached session rooted at working_dir."""
        try:
            self._run_tmux("new-session", "-d", "-s", session_name, "-c", working_dir, check=True)
            logger.info(f"Created tmux session {session_name} in {working_dir}")
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to create session {session_name}: {e.stderr}")
            return False
        except OSError as e:
            logger.error(f"Failed to create session {session_name}: {e}")
            return False

    def switch_client(self, session_name: str) -> bool:
        """Switch the current client to another session."""
        try:
            self._run_tmux("switch-client", "-t", f"={session_name}", check=True)
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to switch to {session_name}: {e.stderr}")
            return False
        except OSError as e:
            logger.error(f"Failed to switch to {session_name}: {e}")
            return False

    def attach_session(self, session_name: str):
        """Replace this process with a tmux client attached to the session."""
        os.execvp(self.binary, [self.binary, "attach-session", "-t", f"={session_name}"])

    def kill_session(self, session_name: str) -> bool:
        """Kill a session."""
        try:
            self._run_tmux("kill-session", "-t", f"={session_name}", check=True)
            logger.info(f"Killed tmux session {session_name}")
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to kill session {session_name}: {e.stderr}")
            return False
        except OSError as e:
            logger.error(f"Failed to kill session {session_name}: {e}")
            return False

    def open_session(self, session_name: str, working_dir: str) -> bool:
        """Create the session if needed, then switch to or attach it.

        Outside tmux this does not return on success.
        """
        if not self.session_exists(session_name):
            if not self.new_session(session_name, working_dir):
                return False
        if self.in_tmux():
            return self.switch_client(session_name)
        self.attach_session(session_name)
        return True

    def source_file(self, path: str):
        """Reload a tmux config file. Raises on failure."""
        self._run_tmux("source-file", os.path.expanduser(path), check=True)

    def wait_for_session_close(self, session_name: str, poll_interval: float = 1.0, timeout: float = 0) -> bool:
        """Block until the session is gone.

        Returns False if ``timeout`` seconds (0 = forever) pass first.
        """
        deadline = time.monotonic() + timeout if timeout > 0 else None
        while self.session_exists(session_name):
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(poll_interval)
        return True
