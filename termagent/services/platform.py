from __future__ import annotations

import enum
import ntpath
import os
import platform as _platform
import posixpath
import shutil
from functools import cache
from pathlib import Path


class PlatformType(str, enum.Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"
    UNKNOWN = "unknown"


class ShellFamily(str, enum.Enum):
    POSIX = "posix"
    WINDOWS = "windows"


def _detect_platform(system: str) -> PlatformType:
    system = system.lower()
    if system.startswith("win") or system.startswith("cygwin"):
        return PlatformType.WINDOWS
    if system == "linux":
        return PlatformType.LINUX
    if system == "darwin":
        return PlatformType.MACOS
    return PlatformType.UNKNOWN


@cache
def get_platform_service() -> PlatformService:
    return PlatformService()


class PlatformService:
    """OS facts detected once: shell recipe, separators, line endings and path rules."""

    platform: PlatformType
    shell_family: ShellFamily

    def __init__(self, system: str | None = None, home_directory: str | None = None) -> None:
        self.platform = _detect_platform(system or _platform.system())
        self.shell_family = ShellFamily.WINDOWS if self.is_windows else ShellFamily.POSIX
        self._path = ntpath if self.is_windows else posixpath

        self.path_separator = self._path.sep
        self.line_ending = "\r\n" if self.is_windows else "\n"
        self.home_directory = home_directory or str(Path.home())
        self.shell_label = {
            PlatformType.WINDOWS: "PowerShell",
            PlatformType.LINUX: "Bash",
            PlatformType.MACOS: "Bash/Zsh",
        }.get(self.platform, "sh")

    @property
    def is_windows(self) -> bool:
        return self.platform == PlatformType.WINDOWS

    @property
    def is_linux(self) -> bool:
        return self.platform == PlatformType.LINUX

    @property
    def is_macos(self) -> bool:
        return self.platform == PlatformType.MACOS

    @property
    def paths_case_sensitive(self) -> bool:
        # Only Linux file systems are reliably case sensitive.
        return self.is_linux

    def expand_home(self, path: str) -> str:
        if path == "~" or path.startswith("~/") or path.startswith("~\\"):
            return self.home_directory + path[1:]
        return path

    def normalize_path(self, path: str) -> str:
        if not path or not path.strip():
            return path

        path = self.expand_home(path.strip())
        if self.is_windows:
            path = path.replace("/", "\\")
        else:
            path = path.replace("\\", "/")
        return self._path.normpath(self._path.abspath(path))

    def is_absolute(self, path: str) -> bool:
        return bool(path) and self._path.isabs(path)

    def join(self, *parts: str) -> str:
        return self._path.join(*parts)

    def paths_equal(self, first: str, second: str) -> bool:
        if not first or not first.strip() or not second or not second.strip():
            return False

        first, second = self.normalize_path(first), self.normalize_path(second)
        if self.paths_case_sensitive:
            return first == second
        return first.casefold() == second.casefold()

    def shell_argv(self, command: str) -> list[str]:
        """Build the argv that runs ``command`` through this platform's shell."""
        if self.is_windows:
            shell = "pwsh" if shutil.which("pwsh") else "powershell.exe"
            return [shell, "-NoProfile", "-NonInteractive", "-Command", command]

        shell = "/bin/bash" if os.path.exists("/bin/bash") else "/bin/sh"
        return [shell, "-c", command]
