from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from termagent.errors import ToolValidationError
from termagent.services.file_edit import EditOperation, FileEditResult, FileEditService
from termagent.services.platform import PlatformService
from termagent.services.working_directory import WorkingDirectoryService
from termagent.tools import Tool, ToolExecutionResult

READ_LIMIT_BYTES = 200_000


class ReadLocalFileTool(Tool):
    name = "read_local_file"
    description = "Reads a file from the current working directory"

    class Arguments(BaseModel):
        path: str = Field(description="Relative path to the file to read from the current working directory")

    def __init__(
        self,
        working_directory: WorkingDirectoryService,
        file_edit: FileEditService,
        platform: PlatformService,
        max_bytes: int = READ_LIMIT_BYTES,
    ) -> None:
        self.working_directory = working_directory
        self.file_edit = file_edit
        self.platform = platform
        self.max_bytes = max_bytes

    def _inside(self, base: str, target: str) -> bool:
        base_with_separator = base if base.endswith(self.platform.path_separator) else base + self.platform.path_separator
        if self.platform.paths_case_sensitive:
            return target.startswith(base_with_separator)
        return target.casefold().startswith(base_with_separator.casefold())

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        if not arguments.path.strip():
            raise ToolValidationError("Path is required")

        base = self.working_directory.get()
        target = self.working_directory.resolve(arguments.path)
        if not self._inside(base, target):
            return ToolExecutionResult.fail("Path must stay inside the working directory")

        content = await asyncio.to_thread(self.file_edit.read_file, target, self.max_bytes)
        return ToolExecutionResult.ok(content)


class ChangeDirectoryTool(Tool):
    name = "change_directory"
    description = (
        "Changes the current working directory. Supports relative paths, absolute paths, "
        "'..' for parent directory, and '~' for home directory."
    )

    class Arguments(BaseModel):
        path: str = Field(
            description="The target directory path (relative or absolute). Use '..' for parent directory, '~' for home directory."
        )

    def __init__(self, working_directory: WorkingDirectoryService) -> None:
        self.working_directory = working_directory

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        if not arguments.path.strip():
            raise ToolValidationError("Path is required")

        previous = self.working_directory.get()
        current = self.working_directory.set(arguments.path)
        return ToolExecutionResult.ok(f"Changed directory from {previous} to {current}")


class EditFileTool(Tool):
    name = "edit_file"
    description = (
        "Edits text files with various operations: replace text, insert lines, append content, "
        "delete lines, or write entire file."
    )

    class Arguments(BaseModel):
        file_path: str = Field(description="Path to the file to edit (relative or absolute)")
        operation: EditOperation = Field(description="The edit operation to perform")
        search_text: str | None = Field(None, description="Text to search for (required for 'replace' operation)")
        replacement_text: str | None = Field(None, description="Text to replace with (required for 'replace' operation)")
        content: str | None = Field(
            None, description="Content to insert/append/write (required for 'insert', 'append', 'write' operations)"
        )
        line_number: int | None = Field(None, description="Line number for insert operation (1-based index)")
        start_line: int | None = Field(None, description="Start line for delete operation (1-based index)")
        end_line: int | None = Field(
            None, description="End line for delete operation (1-based index, defaults to start_line)"
        )
        create_backup: bool = Field(True, description="Create a timestamped backup before editing (default: true)")

    def __init__(self, file_edit: FileEditService) -> None:
        self.file_edit = file_edit

    def _apply(self, arguments: Arguments) -> FileEditResult:
        path, backup = arguments.file_path, arguments.create_backup
        match arguments.operation:
            case EditOperation.REPLACE:
                if arguments.search_text is None or arguments.replacement_text is None:
                    raise ToolValidationError("'replace' requires 'search_text' and 'replacement_text'")
                return self.file_edit.replace_text(path, arguments.search_text, arguments.replacement_text, backup)
            case EditOperation.INSERT:
                if arguments.line_number is None or arguments.content is None:
                    raise ToolValidationError("'insert' requires 'line_number' and 'content'")
                return self.file_edit.insert_text(path, arguments.line_number, arguments.content, backup)
            case EditOperation.APPEND:
                if arguments.content is None:
                    raise ToolValidationError("'append' requires 'content'")
                return self.file_edit.append_text(path, arguments.content, backup)
            case EditOperation.DELETE:
                if arguments.start_line is None:
                    raise ToolValidationError("'delete' requires 'start_line'")
                end_line = arguments.end_line if arguments.end_line is not None else arguments.start_line
                return self.file_edit.delete_lines(path, arguments.start_line, end_line, backup)
            case EditOperation.WRITE:
                if arguments.content is None:
                    raise ToolValidationError("'write' requires 'content'")
                return self.file_edit.write_file(path, arguments.content, backup)

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        result = await asyncio.to_thread(self._apply, arguments)
        summary = result.model_dump_json(exclude_none=True)
        if not result.success:
            return ToolExecutionResult.fail(result.error or "Edit failed", output=summary)
        return ToolExecutionResult.ok(summary)
