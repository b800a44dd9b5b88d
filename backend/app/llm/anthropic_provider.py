"""Anthropic Messages API model (anthropic SDK)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import anthropic
import httpx

from app.config import settings
from app.core.errors import ModelCallError
from app.llm.base import ModelTurn, TokenUsage, ToolCall, ToolSpec


DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


def _to_anthropic_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert neutral messages; consecutive tool results share one user turn."""
    converted: List[Dict[str, Any]] = []
    for msg in messages:
        role = msg["role"]
        if role == "assistant":
            blocks: List[Dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for call in msg.get("tool_calls") or []:
                blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
            converted.append({"role": "assistant", "content": blocks})
        elif role == "tool":
            block = {"type": "tool_result", "tool_use_id": msg["tool_call_id"], "content": msg["content"]}
            last = converted[-1] if converted else None
            if last and last["role"] == "user" and isinstance(last["content"], list):
                last["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        else:
            converted.append({"role": "user", "content": msg["content"]})
    return converted


def _sdk_base_url(base_url: str) -> str:
    # The SDK appends /v1/messages itself
    base = base_url.rstrip("/")
    return base[:-3] if base.endswith("/v1") else base


class AnthropicChatModel:
    """Messages API through the Anthropic SDK, with tool use."""

    provider = "anthropic"

    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 4096,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._base_url = _sdk_base_url(base_url)
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> anthropic.AsyncAnthropic:
        # One SDK client per call, closed with it; no SDK-level retries
        return anthropic.AsyncAnthropic(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=self._transport, timeout=self._timeout),
        )

    async def complete(
        self,
        *,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[ToolSpec],
    ) -> ModelTurn:
        request: Dict[str, Any] = {
            "model": self.model,
            "system": system,
            "max_tokens": self.max_tokens,
            "messages": _to_anthropic_messages(messages),
        }
        if tools:
            request["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}
                for tool in tools
            ]

        try:
            async with self._client() as client:
                response = await client.messages.create(**request)
        except anthropic.APIStatusError as exc:
            raise ModelCallError(f"anthropic error {exc.status_code}: {str(exc.message)[:500]}") from exc
        except anthropic.APIConnectionError as exc:
            raise ModelCallError(f"anthropic unreachable: {exc}") from exc

        text = "".join(block.text for block in response.content if block.type == "text")
        tool_calls = [
            ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {}))
            for block in response.content
            if block.type == "tool_use"
        ]
        return ModelTurn(
            text=text,
            tool_calls=tool_calls,
            finish_reason=response.stop_reason or "end_turn",
            usage=TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            ),
        )


def create_anthropic(resolved) -> AnthropicChatModel:
    return AnthropicChatModel(
        api_key=resolved.api_key,
        model=resolved.default_model or DEFAULT_MODEL,
        base_url=resolved.base_url,
        timeout=settings.HTTP_TIMEOUT_SECONDS * 2,
    )
