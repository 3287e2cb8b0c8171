from __future__ import annotations

from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)

from termagent.llms import ChatModel, UsageInfo
from termagent.llms.streaming import SurrogateDecoder, ToolCallAccumulator, ToolCallRequest
from termagent.log import logger
from termagent.tools import ToolExecutionResult
from termagent.tools.registry import ToolRegistry
from termagent.tools.workflow import COMPLETION_TOOL_NAME


class ConversationListener:
    """Receives streaming and tool events; override what you need."""

    def on_text_delta(self, text: str) -> None:
        pass

    def on_reasoning_delta(self, text: str) -> None:
        pass

    def on_tool_called(self, name: str, tool_call_id: str, arguments_json: str) -> None:
        pass

    def on_tool_result(self, name: str, tool_call_id: str, arguments_json: str, result: ToolExecutionResult) -> None:
        pass

    def on_usage(self, usage: UsageInfo) -> None:
        pass


class _Exchange:
    def __init__(self) -> None:
        self.text: list[str] = []
        self.tool_calls = ToolCallAccumulator()


class ConversationEngine:
    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        listener: ConversationListener | None = None,
        pre_prompt: str | None = None,
        completion_tool: str = COMPLETION_TOOL_NAME,
    ) -> None:
        self.model = model
        self.registry = registry
        self.listener = listener or ConversationListener()
        self.pre_prompt = pre_prompt
        self.completion_tool = completion_tool

    def set_model(self, model: ChatModel) -> None:
        logger.info(f"Switching model to {model.model_name}")
        self.model = model

    async def send_message(self, user_text: str, conversation: list[ModelMessage]) -> None:
        """Run one turn against ``conversation``, appending to it in place.

        On any exception (including cancellation) the conversation is cut back
        to its length before the call and the exception propagates.
        """
        checkpoint = len(conversation)
        try:
            if not conversation and self.pre_prompt:
                conversation.append(ModelRequest(parts=[SystemPromptPart(content=self.pre_prompt)]))
            conversation.append(ModelRequest(parts=[UserPromptPart(content=user_text)]))

            while True:
                exchange = await self._stream_exchange(conversation)
                text = "".join(exchange.text)
                calls = exchange.tool_calls.requests()
                conversation.append(self._assistant_message(text, calls))
                if not calls:
                    break

                finished = False
                for call in calls:
                    self.listener.on_tool_called(call.name, call.id, call.arguments_json)
                    result = await self.registry.execute(call.name, call.arguments_json)
                    self.listener.on_tool_result(call.name, call.id, call.arguments_json, result)
                    conversation.append(
                        ModelRequest(
                            parts=[ToolReturnPart(tool_name=call.name, content=result.to_json(), tool_call_id=call.id)]
                        )
                    )
                    finished = finished or call.name == self.completion_tool

                if finished:
                    break
        except BaseException as e:
            logger.info(f"Turn aborted ({type(e).__name__}), rolling back {len(conversation) - checkpoint} message(s)")
            del conversation[checkpoint:]
            raise

    async def _stream_exchange(self, conversation: list[ModelMessage]) -> _Exchange:
        exchange = _Exchange()
        text_decoder = SurrogateDecoder()
        reasoning_decoder = SurrogateDecoder()

        async for update in self.model.stream(list(conversation), self.registry.definitions()):
            for delta in update.tool_call_deltas:
                exchange.tool_calls.add(delta)

            if update.text_delta:
                self._emit_text(exchange, text_decoder.feed(update.text_delta))
            if update.reasoning_delta:
                self._emit_reasoning(reasoning_decoder.feed(update.reasoning_delta))
            if update.usage is not None:
                self.listener.on_usage(update.usage)

        self._emit_text(exchange, text_decoder.flush())
        self._emit_reasoning(reasoning_decoder.flush())
        return exchange

    def _emit_text(self, exchange: _Exchange, text: str) -> None:
        if text:
            exchange.text.append(text)
            self.listener.on_text_delta(text)

    def _emit_reasoning(self, text: str) -> None:
        if text:
            self.listener.on_reasoning_delta(text)

    def _assistant_message(self, text: str, calls: list[ToolCallRequest]) -> ModelResponse:
        parts: list[TextPart | ToolCallPart] = []
        if text:
            parts.append(TextPart(content=text))
        parts.extend(
            ToolCallPart(tool_name=call.name, args=call.arguments_json or None, tool_call_id=call.id) for call in calls
        )
        if not parts:
            parts.append(TextPart(content=""))
        return ModelResponse(parts=parts, model_name=self.model.model_name)
