from __future__ import annotations

import enum

from termagent.services.platform import ShellFamily


class FileOperation(str, enum.Enum):
    LIST = "list"
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    COPY = "copy"
    MOVE = "move"
    MKDIR = "mkdir"
    FIND = "find"
    CONTENT_SEARCH = "content_search"


def quote_posix(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def quote_powershell(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class CommandAdapter:
    """Translate abstract file operations into command text for one shell family.

    Pure string building; nothing here touches the file system.
    """

    def __init__(self, shell_family: ShellFamily) -> None:
        self.shell_family = shell_family

    @property
    def is_windows(self) -> bool:
        return self.shell_family == ShellFamily.WINDOWS

    def quote(self, value: str) -> str:
        return quote_powershell(value) if self.is_windows else quote_posix(value)

    def list_directory(self, path: str) -> str:
        if self.is_windows:
            return f"Get-ChildItem -Path {self.quote(path)} | Format-Table Name, Length, LastWriteTime"
        return f"ls -lah {self.quote(path)}"

    def change_directory(self, path: str) -> str:
        if self.is_windows:
            return f"Set-Location {self.quote(path)}"
        return f"cd {self.quote(path)}"

    def read_file(self, path: str) -> str:
        if self.is_windows:
            return f"Get-Content -Path {self.quote(path)} -Encoding UTF8"
        return f"cat {self.quote(path)}"

    def write_file(self, path: str, content: str) -> str:
        if self.is_windows:
            return f"Set-Content -Path {self.quote(path)} -Value {self.quote(content)} -Encoding UTF8"
        return f"printf '%s' {self.quote(content)} > {self.quote(path)}"

    def delete_file(self, path: str) -> str:
        if self.is_windows:
            return f"Remove-Item -Path {self.quote(path)} -Force"
        return f"rm -f {self.quote(path)}"

    def copy_file(self, source: str, destination: str) -> str:
        if self.is_windows:
            return f"Copy-Item -Path {self.quote(source)} -Destination {self.quote(destination)} -Force"
        return f"cp {self.quote(source)} {self.quote(destination)}"

    def move_file(self, source: str, destination: str) -> str:
        if self.is_windows:
            return f"Move-Item -Path {self.quote(source)} -Destination {self.quote(destination)} -Force"
        return f"mv {self.quote(source)} {self.quote(destination)}"

    def create_directory(self, path: str) -> str:
        if self.is_windows:
            return f"New-Item -ItemType Directory -Path {self.quote(path)} -Force"
        return f"mkdir -p {self.quote(path)}"

    def find_files(self, pattern: str, path: str) -> str:
        if self.is_windows:
            return f"Get-ChildItem -Path {self.quote(path)} -Filter {self.quote(pattern)} -Recurse -File"
        return f"find {self.quote(path)} -name {self.quote(pattern)} -type f"

    def search_in_files(self, pattern: str, path: str) -> str:
        if self.is_windows:
            return f"Get-ChildItem -Path {self.quote(path)} -Recurse -File | Select-String -Pattern {self.quote(pattern)}"
        return f"grep -r {self.quote(pattern)} {self.quote(path)}"

    def build(
        self,
        operation: FileOperation,
        path: str,
        *,
        destination: str | None = None,
        content: str | None = None,
        pattern: str | None = None,
    ) -> str:
        """Dispatch an operation with its operands; raises ``ValueError`` when one is missing."""
        operation = FileOperation(operation)
        if operation is FileOperation.LIST:
            return self.list_directory(path)
        if operation is FileOperation.READ:
            return self.read_file(path)
        if operation is FileOperation.WRITE:
            if content is None:
                raise ValueError("'write' requires 'content'")
            return self.write_file(path, content)
        if operation is FileOperation.DELETE:
            return self.delete_file(path)
        if operation in (FileOperation.COPY, FileOperation.MOVE):
            if not destination:
                raise ValueError(f"'{operation.value}' requires 'destination'")
            if operation is FileOperation.COPY:
                return self.copy_file(path, destination)
            return self.move_file(path, destination)
        if operation is FileOperation.MKDIR:
            return self.create_directory(path)
        if not pattern:
            raise ValueError(f"'{operation.value}' requires 'pattern'")
        if operation is FileOperation.FIND:
            return self.find_files(pattern, path)
        return self.search_in_files(pattern, path)
