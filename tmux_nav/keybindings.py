"""In-memory shortcut key assignments with conflict resolution."""

import logging
import os
import subprocess
from typing import Optional

from .manager import KeyManager
from .models import SessionRecord, normalize_path

logger = logging.getLogger(__name__)


class KeyBindingError(ValueError):
    """Raised for a key outside the configured alphabet."""


class KeyBindingStore:
    """Shortcut key slots and the projects bound to them.

    Each key has one record; a project is bound to at most one key.
    Persistence, binding regeneration and tmux reload are best-effort: a
    failure is logged. After ``assign`` the in-memory table keeps the
    intended state until the next reload; ``clear`` re-reads the sessions
    file straight away.
    """

    def __init__(self, manager: KeyManager):
        self.manager = manager
        self.records: list[SessionRecord] = []
        self._lookup: dict[str, str] = {}
        self.reload()

    def reload(self):
        """Re-read the authoritative records from disk."""
        self.set_records(self.manager.get_sessions())

    def set_records(self, records: list[SessionRecord]):
        """Replace the table with records read elsewhere, e.g. by a worker."""
        self.records = records
        self._rebuild_lookup()

    def _rebuild_lookup(self):
        self._lookup = {
            normalize_path(r.project_path): r.key
            for r in self.records
            if r.is_bound
        }

    def lookup(self) -> dict[str, str]:
        """Copy of the normalized-path to key table."""
        return dict(self._lookup)

    def key_for(self, path: str) -> Optional[str]:
        return self._lookup.get(normalize_path(path))

    def _find_by_key(self, key: str) -> Optional[SessionRecord]:
        return next((r for r in self.records if r.key == key), None)

    def _find_by_path(self, path: str) -> Optional[SessionRecord]:
        target = normalize_path(path)
        return next(
            (r for r in self.records if r.is_bound and normalize_path(r.project_path) == target),
            None,
        )

    def assign(self, path: str, key: str):
        """Bind key to the project at path, stealing the key if it is taken."""
        if key not in self.manager.get_available_keys():
            raise KeyBindingError(f"'{key}' is not an available key")

        by_key = self._find_by_key(key)
        by_path = self._find_by_path(path)
        repository = os.path.basename(str(path).rstrip(os.sep))

        if by_path is not None and by_path is by_key:
            logger.debug(f"{path} already bound to {key}")
            return

        if by_path is not None:
            # Move the project to the new key; its old slot stays allocated
            old_key = by_path.key
            if by_key is not None:
                by_key.project_path = ""
                by_key.repository_name = ""
                by_key.description = ""
                by_key.key = old_key
            else:
                self.records.append(SessionRecord(key=old_key))
            by_path.key = key
        elif by_key is not None:
            by_key.project_path = path
            by_key.repository_name = repository
            by_key.description = ""
        else:
            self.records.append(SessionRecord(key=key, project_path=path, repository_name=repository))

        self._sort_records()
        self._persist()
        self._rebuild_lookup()
        logger.info(f"Bound {key} to {path}")

    def clear(self, path: str) -> Optional[str]:
        """Unbind the project at path. Returns the key it held, if any."""
        record = self._find_by_path(path)
        if record is None:
            return None

        key = record.key
        record.project_path = ""
        record.repository_name = ""
        record.description = ""

        self._persist()
        # Disk is authoritative after a clear, even when the save failed
        self.reload()
        logger.info(f"Cleared {key} from {path}")
        return key

    def _sort_records(self):
        order = {k: i for i, k in enumerate(self.manager.get_available_keys())}
        self.records.sort(key=lambda r: (order.get(r.key, len(order)), r.key))

    def _persist(self):
        try:
            self.manager.update_sessions(self.records)
        except OSError as e:
            logger.warning(f"Failed to save key bindings: {e}")
        try:
            self.manager.regenerate_bindings()
        except OSError as e:
            logger.warning(f"Failed to regenerate tmux bindings: {e}")
        try:
            self.manager.reload_config()
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning(f"Failed to reload tmux config: {e}")
