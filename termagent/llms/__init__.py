from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from pydantic import BaseModel, Field
from pydantic_ai.messages import ModelMessage
from pydantic_ai.tools import ToolDefinition


class ToolCallDelta(BaseModel):
    index: int
    id: str | None = None
    name: str | None = None
    arguments_delta: str = ""


class UsageInfo(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class StreamUpdate(BaseModel):
    """One streamed chunk from the model; any combination of fields may be set."""

    text_delta: str | None = None
    reasoning_delta: str | None = None
    tool_call_deltas: list[ToolCallDelta] = Field(default_factory=list)
    usage: UsageInfo | None = None


class ChatModel(ABC):
    model_name: str

    @abstractmethod
    def stream(self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]) -> AsyncIterator[StreamUpdate]:
        pass
