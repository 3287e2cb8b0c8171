from __future__ import annotations

import codecs
import enum
import os
import shutil
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from termagent.errors import FileNotFoundInWorkspaceError, FileTooLargeError
from termagent.log import logger
from termagent.services.line_endings import LF, detect_line_ending, normalize_line_endings
from termagent.services.platform import PlatformService
from termagent.services.working_directory import WorkingDirectoryService

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


class EditOperation(str, enum.Enum):
    REPLACE = "replace"
    INSERT = "insert"
    APPEND = "append"
    DELETE = "delete"
    WRITE = "write"


class FileEditResult(BaseModel):
    success: bool
    message: str = ""
    file_path: str = ""
    lines_modified: int = 0
    backup_path: str | None = None
    error: str | None = None


class TextDocument(BaseModel):
    """A decoded file plus what is needed to write it back unchanged in form."""

    content: str
    encoding: str
    line_ending: str

    def lines(self) -> tuple[list[str], bool]:
        """Split into lines; the flag tells whether the text ended with a line break."""
        text = normalize_line_endings(self.content, LF)
        if not text:
            return [], False
        trailing = text.endswith(LF)
        if trailing:
            text = text[:-1]
        return text.split(LF), trailing

    def join(self, lines: list[str], trailing: bool) -> str:
        text = self.line_ending.join(lines)
        if trailing and lines:
            text += self.line_ending
        return text


class _Rejected(Exception):
    pass


def _detect_encoding(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    if data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
        return "utf-16"
    return "utf-8"


def _split_content(content: str) -> list[str]:
    text = normalize_line_endings(content, LF)
    if text.endswith(LF):
        text = text[:-1]
    return text.split(LF)


class FileEditService:
    """Text mutations with optional backup, keeping encoding and line endings.

    Every operation returns a :class:`FileEditResult`; nothing is written when
    validation fails.
    """

    def __init__(
        self,
        working_directory: WorkingDirectoryService,
        platform: PlatformService,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self.working_directory = working_directory
        self.platform = platform
        self.max_file_size = max_file_size

    def replace_text(
        self, file_path: str, search_text: str, replacement_text: str, create_backup: bool = True
    ) -> FileEditResult:
        def replace(document: TextDocument) -> tuple[str, int, str]:
            if not search_text:
                raise _Rejected("Search text cannot be empty")
            search = normalize_line_endings(search_text, document.line_ending)
            replacement = normalize_line_endings(replacement_text, document.line_ending)
            occurrences = document.content.count(search)
            if occurrences == 0:
                raise _Rejected("Search text not found in file")
            return (
                document.content.replace(search, replacement),
                occurrences,
                f"Replaced {occurrences} occurrence(s) of text",
            )

        return self._edit(file_path, "replacing text", replace, create_backup)

    def insert_text(self, file_path: str, line_number: int, content: str, create_backup: bool = True) -> FileEditResult:
        def insert(document: TextDocument) -> tuple[str, int, str]:
            lines, trailing = document.lines()
            if line_number < 1 or line_number > len(lines) + 1:
                raise _Rejected(f"Invalid line number: {line_number} (file has {len(lines)} lines)")
            inserted = _split_content(content)
            lines[line_number - 1 : line_number - 1] = inserted
            return (
                document.join(lines, trailing or len(lines) == len(inserted)),
                len(inserted),
                f"Inserted {len(inserted)} line(s) at line {line_number}",
            )

        return self._edit(file_path, "inserting text", insert, create_backup)

    def append_text(self, file_path: str, content: str, create_backup: bool = True) -> FileEditResult:
        def append(document: TextDocument) -> tuple[str, int, str]:
            appended = normalize_line_endings(content, document.line_ending)
            count = len(_split_content(content)) if content else 0
            return document.content + appended, count, "Content appended to file"

        return self._edit(file_path, "appending text", append, create_backup)

    def delete_lines(self, file_path: str, start_line: int, end_line: int, create_backup: bool = True) -> FileEditResult:
        def delete(document: TextDocument) -> tuple[str, int, str]:
            lines, trailing = document.lines()
            if start_line < 1 or end_line > len(lines) or start_line > end_line:
                raise _Rejected(f"Invalid line range: {start_line}-{end_line} (file has {len(lines)} lines)")
            count = end_line - start_line + 1
            del lines[start_line - 1 : end_line]
            return document.join(lines, trailing), count, f"Deleted {count} line(s)"

        return self._edit(file_path, "deleting lines", delete, create_backup)

    def write_file(self, file_path: str, content: str, create_backup: bool = True) -> FileEditResult:
        resolved = self.working_directory.resolve(file_path)
        try:
            exists = os.path.isfile(resolved)
            if not exists:
                os.makedirs(os.path.dirname(resolved) or ".", exist_ok=True)
                with open(resolved, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                logger.debug(f"Created {resolved}")
                return FileEditResult(
                    success=True,
                    message="File created",
                    file_path=resolved,
                    lines_modified=len(_split_content(content)) if content else 0,
                )
        except OSError as e:
            return FileEditResult(success=False, file_path=resolved, error=f"Error writing file: {e}")

        def write(document: TextDocument) -> tuple[str, int, str]:
            text = normalize_line_endings(content, document.line_ending)
            return text, len(_split_content(content)) if content else 0, "File updated"

        return self._edit(file_path, "writing file", write, create_backup)

    def read_file(self, file_path: str, max_bytes: int | None = None) -> str:
        resolved = self.working_directory.resolve(file_path)
        return self._load(resolved, max_bytes or self.max_file_size).content

    def create_backup(self, file_path: str) -> str:
        backup_path = f"{file_path}.backup_{datetime.now():%Y%m%d_%H%M%S_%f}"
        shutil.copy2(file_path, backup_path)
        logger.debug(f"Backed up {file_path} to {backup_path}")
        return backup_path

    def _load(self, resolved: str, limit: int) -> TextDocument:
        if not os.path.isfile(resolved):
            raise FileNotFoundInWorkspaceError(resolved)
        if os.path.getsize(resolved) > limit:
            raise FileTooLargeError(resolved, limit)

        with open(resolved, "rb") as f:
            data = f.read()
        encoding = _detect_encoding(data)
        content = data.decode(encoding)
        return TextDocument(
            content=content,
            encoding=encoding,
            line_ending=detect_line_ending(content, self.platform.line_ending),
        )

    def _edit(
        self,
        file_path: str,
        action: str,
        mutate: Callable[[TextDocument], tuple[str, int, str]],
        create_backup: bool,
    ) -> FileEditResult:
        resolved = self.working_directory.resolve(file_path)
        try:
            document = self._load(resolved, self.max_file_size)
        except FileNotFoundInWorkspaceError as e:
            return FileEditResult(success=False, file_path=resolved, error=str(e))
        except FileTooLargeError:
            limit_mb = self.max_file_size // (1024 * 1024)
            return FileEditResult(success=False, file_path=resolved, error=f"File too large (max {limit_mb} MB)")
        except (OSError, UnicodeDecodeError) as e:
            return FileEditResult(success=False, file_path=resolved, error=f"Error {action}: {e}")

        try:
            new_content, lines_modified, message = mutate(document)
        except _Rejected as e:
            return FileEditResult(success=False, file_path=resolved, error=str(e))

        try:
            backup_path = self.create_backup(resolved) if create_backup else None
            with open(resolved, "wb") as f:
                f.write(new_content.encode(document.encoding))
        except (OSError, UnicodeEncodeError) as e:
            logger.warning(f"Error {action} in {resolved}: {e}")
            return FileEditResult(success=False, file_path=resolved, error=f"Error {action}: {e}")

        logger.debug(f"{message}: {resolved}")
        return FileEditResult(
            success=True,
            message=message,
            file_path=resolved,
            lines_modified=lines_modified,
            backup_path=backup_path,
        )
