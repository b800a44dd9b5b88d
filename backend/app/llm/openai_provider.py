"""OpenAI Chat Completions model (also used for OpenAI-compatible vendors)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.errors import ModelCallError
from app.llm.base import ModelTurn, TokenUsage, ToolCall, ToolSpec


logger = logging.getLogger(__name__)


def _to_openai_messages(system: str, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    converted: List[Dict[str, Any]] = [{"role": "system", "content": system}]
    for msg in messages:
        role = msg["role"]
        if role == "assistant":
            entry: Dict[str, Any] = {"role": "assistant", "content": msg.get("content") or None}
            calls = msg.get("tool_calls") or []
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in calls
                ]
            converted.append(entry)
        elif role == "tool":
            converted.append({
                "role": "tool",
                "tool_call_id": msg["tool_call_id"],
                "content": msg["content"],
            })
        else:
            converted.append({"role": role, "content": msg["content"]})
    return converted


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # Surface malformed arguments to the tool, which will reject them
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": parsed}


class OpenAIChatModel:
    """Chat Completions over httpx with function-calling tools."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        provider: str = "openai",
        timeout: float = 60.0,
        temperature: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.timeout = timeout
        self.temperature = temperature
        self._transport = transport

    async def complete(
        self,
        *,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[ToolSpec],
    ) -> ModelTurn:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": _to_openai_messages(system, messages),
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        if resp.status_code >= 400:
            raise ModelCallError(f"{self.provider} error {resp.status_code}: {resp.text[:500]}")

        data = resp.json()
        choice = data["choices"][0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call.get("id") or f"call_{index}",
                name=call["function"]["name"],
                arguments=_parse_arguments(call["function"].get("arguments")),
            )
            for index, call in enumerate(message.get("tool_calls") or [])
        ]
        usage = data.get("usage") or {}
        return ModelTurn(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "stop",
            usage=TokenUsage(
                prompt_tokens=int(usage.get("prompt_tokens", 0)),
                completion_tokens=int(usage.get("completion_tokens", 0)),
            ),
        )


def create_openai_compatible(provider: str, default_model: str, timeout: float = settings.HTTP_TIMEOUT_SECONDS * 2):
    """Build a registry factory for an OpenAI-compatible vendor."""

    def factory(resolved) -> OpenAIChatModel:
        return OpenAIChatModel(
            api_key=resolved.api_key,
            model=resolved.default_model or default_model,
            base_url=resolved.base_url,
            provider=provider,
            timeout=timeout,
        )

    return factory
