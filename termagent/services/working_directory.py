from __future__ import annotations

import os
import threading

from termagent.errors import DirectoryNotFoundError
from termagent.log import logger
from termagent.services.platform import PlatformService


class WorkingDirectoryService:
    """The agent's current directory, kept apart from the process cwd.

    Directory-changing tools only move this pointer, so nothing else in the
    process (tests, the CLI, other sessions) observes the change.
    """

    def __init__(self, platform: PlatformService, initial_directory: str | None = None) -> None:
        self.platform = platform
        self._lock = threading.Lock()

        start = platform.normalize_path(initial_directory or os.getcwd())
        if not os.path.isdir(start):
            raise DirectoryNotFoundError(start)
        self._initial_directory = start
        self._current_directory = start

    @property
    def initial_directory(self) -> str:
        return self._initial_directory

    def get(self) -> str:
        with self._lock:
            return self._current_directory

    def set(self, path: str) -> str:
        with self._lock:
            resolved = self._resolve(path, self._current_directory)
            if not os.path.isdir(resolved):
                raise DirectoryNotFoundError(resolved)
            logger.debug(f"Working directory {self._current_directory} -> {resolved}")
            self._current_directory = resolved
            return resolved

    def resolve(self, path: str | None) -> str:
        with self._lock:
            current = self._current_directory
        return self._resolve(path, current)

    def exists(self, path: str | None) -> bool:
        try:
            return os.path.isdir(self.resolve(path))
        except (OSError, ValueError):
            return False

    def _resolve(self, path: str | None, current: str) -> str:
        if not path or not path.strip():
            return current

        expanded = self.platform.expand_home(path.strip())
        if self.platform.is_absolute(expanded):
            return self.platform.normalize_path(expanded)
        return self.platform.normalize_path(self.platform.join(current, expanded))
