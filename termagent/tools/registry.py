from __future__ import annotations

from collections.abc import Iterable

from pydantic_ai.tools import ToolDefinition

from termagent.log import logger
from termagent.permissions import PermissionGate
from termagent.services.commands import CommandAdapter
from termagent.services.file_edit import FileEditService
from termagent.services.platform import PlatformService
from termagent.services.search import SearchEngine
from termagent.services.shell import ShellExecutor
from termagent.services.working_directory import WorkingDirectoryService
from termagent.tools import Tool, ToolExecutionResult
from termagent.tools.files import ChangeDirectoryTool, EditFileTool, ReadLocalFileTool
from termagent.tools.search import SearchTool
from termagent.tools.shell import DEFAULT_COMMAND_TIMEOUT, CodeExecutionTool, FileOperationTool, RunCommandTool
from termagent.tools.workflow import SetPlanTool, ShareReasoningTool, WorkflowDoneTool


class ToolRegistry:
    tools: dict[str, Tool]

    def __init__(self, tools: Iterable[Tool]) -> None:
        self.tools = {}
        for tool in tools:
            if tool.name in self.tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self.tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def names(self) -> list[str]:
        return list(self.tools)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition for tool in self.tools.values()]

    async def execute(self, name: str, arguments_json: str | None) -> ToolExecutionResult:
        tool = self.tools.get(name)
        if tool is None:
            logger.warning(f"Model called unknown tool {name!r}")
            return ToolExecutionResult.fail(f"Tool '{name}' not found")

        return await tool.execute(arguments_json)


def build_tools(
    *,
    platform: PlatformService,
    working_directory: WorkingDirectoryService,
    shell: ShellExecutor,
    gate: PermissionGate,
    search_engine: SearchEngine,
    file_edit: FileEditService,
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    search_timeout: int = 30,
) -> list[Tool]:
    """The fixed tool set, in the order advertised to the model."""
    gated = dict(shell=shell, working_directory=working_directory, gate=gate, default_timeout=command_timeout)
    return [
        RunCommandTool(**gated),
        CodeExecutionTool(**gated),
        FileOperationTool(**gated, adapter=CommandAdapter(platform.shell_family)),
        ReadLocalFileTool(working_directory, file_edit, platform),
        ChangeDirectoryTool(working_directory),
        EditFileTool(file_edit),
        SearchTool(search_engine, timeout_seconds=search_timeout),
        SetPlanTool(),
        ShareReasoningTool(),
        WorkflowDoneTool(),
    ]
