"""Tests for the tool-calling loop, chat model adapters and provider registry."""

import json
from typing import List

import httpx
import pytest
from pydantic import BaseModel

from app.core.errors import ModelCallError, UnsupportedProvider
from app.llm.anthropic_provider import AnthropicChatModel
from app.llm.base import ModelTurn, TokenUsage, ToolCall, ToolSpec
from app.llm.openai_provider import OpenAIChatModel
from app.llm.registry import build_chat_model, is_model_provider
from app.llm.tool_loop import Tool, generate_with_tools
from app.models.provider_settings import ProviderKind
from app.services.settings_resolver import ResolvedSettings, RetryPolicy


class ScriptedModel:
    """Chat model that replays prepared turns and records what it was sent."""

    provider = "fake"
    model = "fake-1"

    def __init__(self, turns: List[ModelTurn]):
        self.turns = list(turns)
        self.calls = []

    async def complete(self, *, system, messages, tools):
        self.calls.append({"system": system, "messages": list(messages), "tools": tools})
        return self.turns.pop(0)


class EchoInput(BaseModel):
    text: str


def echo_tool(log=None) -> Tool:
    async def handler(args: EchoInput):
        if log is not None:
            log.append(args.text)
        return {"success": True, "echo": args.text}
    return Tool(name="echo", description="Echo text", input_model=EchoInput, handler=handler)


def boom_tool() -> Tool:
    async def handler(args: EchoInput):
        raise RuntimeError("tool exploded")
    return Tool(name="boom", description="Always fails", input_model=EchoInput, handler=handler)


def call(name: str, call_id: str, **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


@pytest.mark.asyncio
async def test_plain_answer_ends_loop():
    model = ScriptedModel([ModelTurn(text="Done.", usage=TokenUsage(10, 5))])
    events = []

    async def on_step(event):
        events.append(event)

    result = await generate_with_tools(model, system="sys", prompt="hi", tools=[echo_tool()], on_step=on_step)

    assert result.text == "Done."
    assert result.finish_reason == "stop"
    assert result.usage.total_tokens == 15
    assert len(events) == 1 and events[0].tool_results == []
    assert model.calls[0]["tools"] == [echo_tool().spec]


@pytest.mark.asyncio
async def test_tool_calls_run_in_order_and_results_are_fed_back():
    log = []
    model = ScriptedModel([
        ModelTurn(tool_calls=[call("echo", "c1", text="a"), call("echo", "c2", text="b")], usage=TokenUsage(3, 1)),
        ModelTurn(text="All echoed", usage=TokenUsage(4, 2)),
    ])

    result = await generate_with_tools(model, system="sys", prompt="go", tools=[echo_tool(log)])

    assert log == ["a", "b"]
    assert [r.tool_call_id for r in result.steps[0].tool_results] == ["c1", "c2"]
    assert result.usage == TokenUsage(7, 3)

    second_messages = model.calls[1]["messages"]
    assert [m["role"] for m in second_messages] == ["user", "assistant", "tool", "tool"]
    assert json.loads(second_messages[2]["content"]) == {"success": True, "echo": "a"}


@pytest.mark.asyncio
async def test_tool_failures_become_error_outputs():
    model = ScriptedModel([
        ModelTurn(tool_calls=[
            call("boom", "c1", text="x"),
            call("echo", "c2"),
            call("missing", "c3"),
        ]),
        ModelTurn(text="gave up"),
    ])

    result = await generate_with_tools(model, system="s", prompt="p", tools=[echo_tool(), boom_tool()])

    outputs = [r.output for r in result.steps[0].tool_results]
    assert outputs[0] == {"success": False, "error": "tool exploded"}
    assert outputs[1]["success"] is False and outputs[1]["error"].startswith("Invalid arguments")
    assert outputs[2] == {"success": False, "error": "Unknown tool: missing"}
    assert all(r.failed for r in result.steps[0].tool_results)
    assert result.text == "gave up"


@pytest.mark.asyncio
async def test_turn_bound_stops_loop():
    model = ScriptedModel([ModelTurn(text=f"turn {i}", tool_calls=[call("echo", f"c{i}", text="x")]) for i in range(3)])

    result = await generate_with_tools(model, system="s", prompt="p", tools=[echo_tool()], max_steps=3)

    assert result.finish_reason == "max_steps"
    assert len(result.steps) == 3
    assert result.text == "turn 2"
    assert model.turns == []


def test_tool_spec_uses_pydantic_schema():
    spec = echo_tool().spec
    assert spec.name == "echo"
    assert spec.parameters["properties"]["text"]["type"] == "string"
    assert spec.parameters["required"] == ["text"]


@pytest.mark.asyncio
async def test_openai_model_converts_messages_and_parses_tool_calls():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "echo", "arguments": "{\"text\": \"hi\"}"},
                    }],
                },
            }],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3},
        })

    model = OpenAIChatModel(api_key="sk-test", model="gpt-4o", transport=httpx.MockTransport(handler))
    turn = await model.complete(
        system="sys",
        messages=[
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "", "tool_calls": [call("echo", "c0", text="x")]},
            {"role": "tool", "tool_call_id": "c0", "name": "echo", "content": "{}"},
        ],
        tools=[ToolSpec("echo", "Echo", {"type": "object"})],
    )

    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user", "assistant", "tool"]
    assert seen["body"]["messages"][2]["tool_calls"][0]["function"]["arguments"] == "{\"text\": \"x\"}"
    assert seen["body"]["tools"][0]["function"]["name"] == "echo"
    assert turn.tool_calls == [ToolCall(id="call_1", name="echo", arguments={"text": "hi"})]
    assert turn.usage == TokenUsage(12, 3)


@pytest.mark.asyncio
async def test_openai_model_raises_on_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="bad key"))
    model = OpenAIChatModel(api_key="sk", model="gpt-4o", transport=transport)

    with pytest.raises(ModelCallError):
        await model.complete(system="s", messages=[{"role": "user", "content": "hi"}], tools=[])


@pytest.mark.asyncio
async def test_anthropic_model_merges_tool_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "model": "claude-3-5-sonnet-20241022",
            "stop_sequence": None,
            "content": [
                {"type": "text", "text": "Looking up"},
                {"type": "tool_use", "id": "tu_1", "name": "echo", "input": {"text": "x"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 20, "output_tokens": 4},
        })

    model = AnthropicChatModel(api_key="sk-ant", transport=httpx.MockTransport(handler))
    turn = await model.complete(
        system="sys",
        messages=[
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "", "tool_calls": [call("echo", "a", text="1"), call("echo", "b", text="2")]},
            {"role": "tool", "tool_call_id": "a", "name": "echo", "content": "{}"},
            {"role": "tool", "tool_call_id": "b", "name": "echo", "content": "{}"},
        ],
        tools=[ToolSpec("echo", "Echo", {"type": "object"})],
    )

    assert seen["headers"]["x-api-key"] == "sk-ant"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    body = seen["body"]
    assert body["system"] == "sys"
    assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
    assert [b["tool_use_id"] for b in body["messages"][2]["content"]] == ["a", "b"]
    assert body["tools"][0]["input_schema"] == {"type": "object"}
    assert turn.text == "Looking up"
    assert turn.tool_calls == [ToolCall(id="tu_1", name="echo", arguments={"text": "x"})]
    assert turn.finish_reason == "tool_use"
    assert turn.usage.total_tokens == 24


class ClosingTransport(httpx.MockTransport):
    def __init__(self, handler):
        super().__init__(handler)
        self.closed = 0

    async def aclose(self) -> None:
        self.closed += 1


@pytest.mark.asyncio
async def test_anthropic_model_closes_its_http_client_after_each_call():
    transport = ClosingTransport(lambda request: httpx.Response(200, json={
        "id": "msg_2",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-5-sonnet-20241022",
        "stop_sequence": None,
        "content": [{"type": "text", "text": "ok"}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 1, "output_tokens": 1},
    }))
    model = AnthropicChatModel(api_key="sk-ant", transport=transport)

    for _ in range(2):
        turn = await model.complete(system="s", messages=[{"role": "user", "content": "hi"}], tools=[])
        assert turn.text == "ok"

    assert transport.closed == 2


@pytest.mark.asyncio
async def test_anthropic_error_becomes_model_call_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(
        401, json={"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
    ))
    model = AnthropicChatModel(api_key="bad", base_url="https://anthropic.test/v1", transport=transport)

    with pytest.raises(ModelCallError, match="anthropic error 401"):
        await model.complete(system="s", messages=[{"role": "user", "content": "hi"}], tools=[])


def resolved(kind: ProviderKind, default_model=None) -> ResolvedSettings:
    return ResolvedSettings(
        tenant_id="org-1",
        provider_kind=kind,
        base_url="https://llm.test/v1",
        api_key="key",
        retry_policy=RetryPolicy(),
        concurrency=2,
        daily_limit=1000,
        default_model=default_model,
    )


def test_registry_builds_models_per_kind():
    openai_model = build_chat_model(resolved(ProviderKind.OPENAI))
    assert isinstance(openai_model, OpenAIChatModel)
    assert openai_model.model == "gpt-4o"

    groq_model = build_chat_model(resolved(ProviderKind.GROQ, default_model="llama-3.1-8b-instant"))
    assert isinstance(groq_model, OpenAIChatModel)
    assert groq_model.provider == "groq"
    assert groq_model.model == "llama-3.1-8b-instant"
    assert groq_model.base_url == "https://llm.test/v1"

    assert isinstance(build_chat_model(resolved(ProviderKind.ANTHROPIC)), AnthropicChatModel)


def test_registry_rejects_non_model_provider():
    assert is_model_provider("deepseek")
    assert not is_model_provider(ProviderKind.ROCKETREACH)
    assert not is_model_provider("nonexistent")
    with pytest.raises(UnsupportedProvider):
        build_chat_model(resolved(ProviderKind.ROCKETREACH))
