from __future__ import annotations

import logging
from typing import List

from ftms_lab.settings import SettingsStore


_logger = logging.getLogger(__name__)


class RecentFilesService:
    """Recent sample folders, kept in the app's shared settings store."""

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    def list_recent(self) -> List[str]:
        return self._store.recent_dirs()

    def add_recent(self, path: str) -> None:
        try:
            self._store.add_recent_dir(str(path))
        except OSError as exc:
            _logger.warning("Could not save recent folders: %s", exc)

    def clear(self) -> None:
        try:
            self._store.clear_recent_dirs()
        except OSError as exc:
            _logger.warning("Could not clear recent folders: %s", exc)
