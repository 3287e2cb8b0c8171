from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

from pydantic_ai.messages import (
    ModelMessage,
    PartDeltaEvent,
    PartStartEvent,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
    ToolCallPart,
    ToolCallPartDelta,
)
from pydantic_ai.models import Model, ModelRequestParameters, ModelSettings
from pydantic_ai.tools import ToolDefinition

from termagent.config import Config
from termagent.errors import ModelNotConfiguredError
from termagent.llms import ChatModel, StreamUpdate, ToolCallDelta, UsageInfo
from termagent.log import logger

KNOWN_MODELS = [
    "grok-4-1-fast-reasoning",
    "grok-4-1-fast-non-reasoning",
    "grok-4-fast-reasoning",
    "grok-4",
    "grok-code-fast-1",
    "grok-3-mini",
]


def _args_text(args: str | dict[str, Any] | None) -> str:
    if args is None:
        return ""
    if isinstance(args, str):
        return args
    return json.dumps(args, ensure_ascii=False)


class PydanticAIChatModel(ChatModel):
    """Adapt a pydantic-ai ``Model`` stream to :class:`StreamUpdate` chunks."""

    def __init__(self, model: Model, model_settings: ModelSettings | None = None) -> None:
        self.model = model
        self.model_settings = model_settings

    @property
    def model_name(self) -> str:
        return self.model.model_name

    async def stream(
        self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[StreamUpdate]:
        parameters = ModelRequestParameters(function_tools=list(tools))
        async with self.model.request_stream(list(messages), self.model_settings, parameters) as response:
            async for event in response:
                update = self._to_update(event)
                if update is not None:
                    yield update

            usage = response.usage
            yield StreamUpdate(usage=UsageInfo(input_tokens=usage.input_tokens, output_tokens=usage.output_tokens))

    def _to_update(self, event: Any) -> StreamUpdate | None:
        if isinstance(event, PartStartEvent):
            part = event.part
            if isinstance(part, TextPart):
                return StreamUpdate(text_delta=part.content) if part.content else None
            if isinstance(part, ThinkingPart):
                return StreamUpdate(reasoning_delta=part.content) if part.content else None
            if isinstance(part, ToolCallPart):
                return StreamUpdate(
                    tool_call_deltas=[
                        ToolCallDelta(
                            index=event.index,
                            id=part.tool_call_id,
                            name=part.tool_name,
                            arguments_delta=_args_text(part.args),
                        )
                    ]
                )
            return None

        if isinstance(event, PartDeltaEvent):
            delta = event.delta
            if isinstance(delta, TextPartDelta):
                return StreamUpdate(text_delta=delta.content_delta)
            if isinstance(delta, ThinkingPartDelta):
                return StreamUpdate(reasoning_delta=delta.content_delta) if delta.content_delta else None
            if isinstance(delta, ToolCallPartDelta):
                return StreamUpdate(
                    tool_call_deltas=[
                        ToolCallDelta(
                            index=event.index,
                            id=delta.tool_call_id,
                            name=delta.tool_name_delta,
                            arguments_delta=_args_text(delta.args_delta),
                        )
                    ]
                )
        # PartEndEvent / FinalResultEvent carry nothing new.
        return None


def init_model(config: Config, model_name: str | None = None, api_key: str | None = None) -> ChatModel:
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openai import OpenAIProvider

    api_key = api_key or config.api_key
    if not api_key:
        raise ModelNotConfiguredError("No API key configured; set XAI_API_KEY or add it to the policy file")

    model_name = model_name or config.model_name
    logger.info(f"Using model {model_name} at {config.base_url}")
    provider = OpenAIProvider(base_url=config.base_url, api_key=api_key)
    return PydanticAIChatModel(OpenAIChatModel(model_name, provider=provider))
