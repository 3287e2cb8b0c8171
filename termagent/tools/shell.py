from __future__ import annotations

import sys

from pydantic import BaseModel, Field

from termagent.errors import DirectoryNotFoundError, PermissionDeniedError, ToolValidationError
from termagent.permissions import PermissionGate
from termagent.services.commands import CommandAdapter, FileOperation
from termagent.services.shell import ShellExecutor, ShellResult
from termagent.services.working_directory import WorkingDirectoryService
from termagent.tools import Tool, ToolExecutionResult

DEFAULT_COMMAND_TIMEOUT = 300


def _to_result(result: ShellResult) -> ToolExecutionResult:
    if result.success:
        return ToolExecutionResult.ok(result.stdout, result.stderr, result.exit_code)
    return ToolExecutionResult.fail(
        result.stderr.strip() or "Command failed",
        output=result.stdout,
        exit_code=result.exit_code,
    )


class _GatedTool(Tool):
    def __init__(
        self,
        shell: ShellExecutor,
        working_directory: WorkingDirectoryService,
        gate: PermissionGate,
        default_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.shell = shell
        self.working_directory = working_directory
        self.gate = gate
        self.default_timeout = default_timeout

    async def authorize(self, command: str, directory: str) -> None:
        outcome = await self.gate.check(command, tool_name=self.name, working_directory=directory)
        if not outcome.allowed:
            raise PermissionDeniedError("Command not permitted", outcome.reason)

    def timeout(self, requested: int | None) -> int:
        if requested is None or requested <= 0:
            return self.default_timeout
        return requested


class RunCommandTool(_GatedTool):
    name = "run_command"
    description = "Executes CLI commands (e.g., build/test tools) in the working directory using the system shell."

    class Arguments(BaseModel):
        command: str = Field(description="The command to execute (e.g., 'pytest -q')")
        working_directory: str | None = Field(
            None,
            description="Optional path to run the command in (relative to the current working directory)",
        )
        timeout_seconds: int | None = Field(
            None,
            description=f"Maximum time to allow the command to run (default: {DEFAULT_COMMAND_TIMEOUT} seconds)",
        )

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        if not arguments.command.strip():
            raise ToolValidationError("Command cannot be empty")

        directory = self.working_directory.resolve(arguments.working_directory)
        await self.authorize(arguments.command, directory)
        if not self.working_directory.exists(directory):
            raise DirectoryNotFoundError(directory)

        result = await self.shell.execute(arguments.command, directory, self.timeout(arguments.timeout_seconds))
        return _to_result(result)


class CodeExecutionTool(_GatedTool):
    name = "code_execution"
    description = "Executes Python code with the local interpreter"

    class Arguments(BaseModel):
        code: str = Field(description="The Python code to execute")
        timeout_seconds: int | None = Field(None, description="Maximum run time in seconds")

    def __init__(self, *args, interpreter: str | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.interpreter = interpreter or sys.executable

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        if not arguments.code.strip():
            raise ToolValidationError("Code cannot be empty")

        directory = self.working_directory.get()
        command = f"python -c {arguments.code}"
        await self.authorize(command, directory)
        result = await self.shell.run(
            [self.interpreter, "-c", arguments.code],
            directory,
            self.timeout(arguments.timeout_seconds),
            command=command,
        )
        return _to_result(result)


class FileOperationTool(_GatedTool):
    name = "file_operation"
    description = (
        "Performs a file system operation (list, read, write, delete, copy, move, mkdir, find, "
        "content_search) using the platform shell."
    )

    class Arguments(BaseModel):
        operation: FileOperation = Field(description="The operation to perform")
        path: str = Field(".", description="Target path (relative to the current working directory)")
        destination: str | None = Field(None, description="Destination path for 'copy' and 'move'")
        content: str | None = Field(None, description="Content for 'write'")
        pattern: str | None = Field(None, description="Name pattern for 'find' or text pattern for 'content_search'")

    def __init__(self, *args, adapter: CommandAdapter, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.adapter = adapter

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        directory = self.working_directory.get()
        path = self.working_directory.resolve(arguments.path)
        destination = self.working_directory.resolve(arguments.destination) if arguments.destination else None
        try:
            command = self.adapter.build(
                arguments.operation,
                path,
                destination=destination,
                content=arguments.content,
                pattern=arguments.pattern,
            )
        except ValueError as e:
            raise ToolValidationError(str(e)) from e

        await self.authorize(command, directory)
        result = await self.shell.execute(command, directory, self.default_timeout)
        return _to_result(result)
