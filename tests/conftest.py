from __future__ import annotations

import asyncio
import os

os.environ["LOGURU_LEVEL"] = "DEBUG"

from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest
from pydantic_ai.messages import ModelMessage
from pydantic_ai.tools import ToolDefinition

from termagent.llms import ChatModel, StreamUpdate, ToolCallDelta
from termagent.permissions import PermissionGate, ScriptedApprovalChannel
from termagent.policy import PolicyStore
from termagent.services.file_edit import FileEditService
from termagent.services.platform import PlatformService
from termagent.services.search import SearchEngine
from termagent.services.shell import ShellExecutor
from termagent.services.working_directory import WorkingDirectoryService
from termagent.tools.registry import ToolRegistry, build_tools

HANG = object()


class ScriptedChatModel(ChatModel):
    """Plays back one scripted list of updates per ``stream`` call.

    A script entry may be an exception (raised mid-stream) or ``HANG``
    (blocks until cancelled).
    """

    def __init__(self, scripts: Sequence[Sequence[object]], model_name: str = "scripted") -> None:
        self.scripts = [list(script) for script in scripts]
        self.model_name = model_name
        self.calls: list[list[ModelMessage]] = []
        self.tools: list[list[ToolDefinition]] = []
        self.started = asyncio.Event()

    async def stream(
        self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[StreamUpdate]:
        self.calls.append(list(messages))
        self.tools.append(list(tools))
        script = self.scripts.pop(0) if self.scripts else [StreamUpdate(text_delta="done")]
        for item in script:
            if item is HANG:
                self.started.set()
                await asyncio.Event().wait()
            if isinstance(item, BaseException):
                raise item
            yield item


def text(value: str) -> StreamUpdate:
    return StreamUpdate(text_delta=value)


def tool_call(index: int, name: str, arguments: str, call_id: str | None = None) -> StreamUpdate:
    return StreamUpdate(
        tool_call_deltas=[ToolCallDelta(index=index, id=call_id or f"call_{index}", name=name, arguments_delta=arguments)]
    )


@pytest.fixture
def platform() -> PlatformService:
    return PlatformService()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def working_directory(platform, workspace) -> WorkingDirectoryService:
    return WorkingDirectoryService(platform, str(workspace))


@pytest.fixture
def shell(platform) -> ShellExecutor:
    return ShellExecutor(platform)


@pytest.fixture
def policy_path(tmp_path: Path) -> Path:
    return tmp_path / "termagent.config.json"


@pytest.fixture
def policy_store(policy_path) -> PolicyStore:
    return PolicyStore(policy_path)


@pytest.fixture
def approval_channel() -> ScriptedApprovalChannel:
    return ScriptedApprovalChannel()


@pytest.fixture
def gate(policy_store, approval_channel) -> PermissionGate:
    return PermissionGate(policy_store, approval_channel)


@pytest.fixture
def file_edit(working_directory, platform) -> FileEditService:
    return FileEditService(working_directory, platform)


@pytest.fixture
def registry(platform, working_directory, shell, gate, file_edit) -> ToolRegistry:
    tools = build_tools(
        platform=platform,
        working_directory=working_directory,
        shell=shell,
        gate=gate,
        search_engine=SearchEngine(platform, shell, working_directory),
        file_edit=file_edit,
        command_timeout=10,
        search_timeout=10,
    )
    return ToolRegistry(tools)
