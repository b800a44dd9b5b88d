"""Provider-neutral multi-step tool-calling loop."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from app.llm.base import ChatModel, TokenUsage, ToolCall, ToolSpec


logger = logging.getLogger(__name__)


@dataclass
class Tool:
    """A callable the model may invoke; arguments are validated by ``input_model``."""
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[Dict[str, Any]]]

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.input_model.model_json_schema(),
        )


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    duration_ms: int

    @property
    def failed(self) -> bool:
        return self.output.get("success") is False


@dataclass(frozen=True)
class StepEvent:
    """What one model turn produced."""
    text: str
    tool_calls: List[ToolCall]
    tool_results: List[ToolResult]
    finish_reason: str


@dataclass
class GenerationResult:
    text: str
    usage: TokenUsage
    finish_reason: str
    steps: List[StepEvent] = field(default_factory=list)


StepCallback = Callable[[StepEvent], Awaitable[None]]


async def run_tool(tool: Optional[Tool], call: ToolCall, clock: Callable[[], float]) -> ToolResult:
    """Validate and execute one tool call; failures become ``success: False`` outputs."""
    started = clock()
    if tool is None:
        output: Dict[str, Any] = {"success": False, "error": f"Unknown tool: {call.name}"}
    else:
        try:
            args = tool.input_model.model_validate(call.arguments)
            output = await tool.handler(args)
        except ValidationError as exc:
            output = {"success": False, "error": f"Invalid arguments: {exc.errors(include_url=False)}"}
        except Exception as exc:
            logger.warning("Tool %s raised %s", call.name, exc, exc_info=True)
            output = {"success": False, "error": str(exc) or type(exc).__name__}
    return ToolResult(
        tool_call_id=call.id,
        tool_name=call.name,
        input=call.arguments,
        output=output,
        duration_ms=int((clock() - started) * 1000),
    )


async def generate_with_tools(
    model: ChatModel,
    *,
    system: str,
    prompt: str,
    tools: Sequence[Tool],
    on_step: Optional[StepCallback] = None,
    max_steps: int = 10,
    clock: Optional[Callable[[], float]] = None,
) -> GenerationResult:
    """
    Drive the model until it answers without calling a tool, or ``max_steps`` turns pass.

    Tool calls within a turn run sequentially in the order the model emitted
    them, and ``on_step`` is awaited once per turn after its tools finish.
    """
    clock = clock or time.monotonic
    by_name = {tool.name: tool for tool in tools}
    specs = [tool.spec for tool in tools]
    messages: List[Dict[str, Any]] = [{"role": "user", "content": prompt}]
    usage = TokenUsage()
    steps: List[StepEvent] = []

    for turn_index in range(max_steps):
        turn = await model.complete(system=system, messages=messages, tools=specs)
        usage = usage + turn.usage

        if not turn.tool_calls:
            event = StepEvent(text=turn.text, tool_calls=[], tool_results=[], finish_reason=turn.finish_reason)
            steps.append(event)
            if on_step is not None:
                await on_step(event)
            return GenerationResult(text=turn.text, usage=usage, finish_reason=turn.finish_reason, steps=steps)

        messages.append({"role": "assistant", "content": turn.text, "tool_calls": turn.tool_calls})
        results: List[ToolResult] = []
        for call in turn.tool_calls:
            result = await run_tool(by_name.get(call.name), call, clock)
            results.append(result)
            messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "name": call.name,
                "content": json.dumps(result.output, default=str),
            })

        event = StepEvent(
            text=turn.text,
            tool_calls=list(turn.tool_calls),
            tool_results=results,
            finish_reason="tool_calls",
        )
        steps.append(event)
        logger.debug("Turn %d ran %d tool call(s)", turn_index + 1, len(results))
        if on_step is not None:
            await on_step(event)

    last_text = steps[-1].text if steps else ""
    return GenerationResult(text=last_text, usage=usage, finish_reason="max_steps", steps=steps)
