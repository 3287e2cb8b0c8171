import pytest
from pydantic_ai.messages import ModelRequest, UserPromptPart
from pydantic_ai.models.function import AgentInfo, DeltaToolCall, FunctionModel
from pydantic_ai.models.test import TestModel
from pydantic_ai.tools import ToolDefinition

from termagent.config import Config
from termagent.errors import ModelNotConfiguredError
from termagent.llms.models import PydanticAIChatModel, init_model
from termagent.llms.streaming import ToolCallAccumulator

MESSAGES = [ModelRequest(parts=[UserPromptPart(content="hello")])]


async def collect(model, tools=()):
    return [update async for update in model.stream(MESSAGES, list(tools))]


async def test_text_stream():
    model = PydanticAIChatModel(TestModel(call_tools=[], custom_output_text="hello there world"))

    updates = await collect(model)

    assert "".join(u.text_delta or "" for u in updates) == "hello there world"
    assert updates[-1].usage is not None
    assert model.model_name == "test"


async def test_tool_call_stream():
    async def stream_function(messages, info: AgentInfo):
        assert [tool.name for tool in info.function_tools] == ["search"]
        yield {0: DeltaToolCall(name="search", json_args='{"pattern": ', tool_call_id="call_a")}
        yield {0: DeltaToolCall(json_args='"needle"}')}

    tool = ToolDefinition(name="search", parameters_json_schema={"type": "object", "properties": {}})
    model = PydanticAIChatModel(FunctionModel(stream_function=stream_function))

    updates = await collect(model, [tool])

    accumulator = ToolCallAccumulator()
    for update in updates:
        for delta in update.tool_call_deltas:
            accumulator.add(delta)
    (request,) = accumulator.requests()
    assert (request.id, request.name, request.arguments_json) == ("call_a", "search", '{"pattern": "needle"}')


def test_init_model_requires_key(monkeypatch):
    monkeypatch.delenv("XAI_API_KEY", raising=False)
    monkeypatch.delenv("TERMAGENT_API_KEY", raising=False)

    with pytest.raises(ModelNotConfiguredError):
        init_model(Config())


def test_init_model(monkeypatch):
    monkeypatch.delenv("XAI_API_KEY", raising=False)

    model = init_model(Config(), "grok-3-mini", api_key="test-key")

    assert model.model_name == "grok-3-mini"
