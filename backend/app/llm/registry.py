"""Provider-kind registry of chat model factories."""

from __future__ import annotations

import logging
from typing import Callable, Dict

from app.core.errors import UnsupportedProvider
from app.llm.anthropic_provider import create_anthropic
from app.llm.base import ChatModel
from app.llm.openai_provider import create_openai_compatible
from app.models.provider_settings import ProviderKind
from app.services.settings_resolver import ResolvedSettings


logger = logging.getLogger(__name__)

ModelFactory = Callable[[ResolvedSettings], ChatModel]

DEFAULT_MODELS: Dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "gpt-4o",
    ProviderKind.ANTHROPIC: "claude-3-5-sonnet-20241022",
    ProviderKind.GROQ: "llama-3.3-70b-versatile",
    ProviderKind.DEEPSEEK: "deepseek-chat",
    ProviderKind.MISTRAL: "mistral-large-latest",
}

_factories: Dict[ProviderKind, ModelFactory] = {}


def register_model_factory(kind: ProviderKind, factory: ModelFactory) -> None:
    """Register (or replace) the factory for a provider kind."""
    if kind in _factories:
        logger.info("Replacing chat model factory for %s", kind.value)
    _factories[kind] = factory


def is_model_provider(kind: ProviderKind | str) -> bool:
    try:
        return ProviderKind(kind) in _factories
    except ValueError:
        return False


def build_chat_model(resolved: ResolvedSettings) -> ChatModel:
    """
    Build a chat model from a tenant's resolved settings.

    Raises:
        UnsupportedProvider: No factory is registered for the provider kind
    """
    factory = _factories.get(resolved.provider_kind)
    if factory is None:
        raise UnsupportedProvider(f"Unsupported AI provider: {resolved.provider_kind.value}")
    return factory(resolved)


register_model_factory(
    ProviderKind.OPENAI,
    create_openai_compatible("openai", DEFAULT_MODELS[ProviderKind.OPENAI]),
)
register_model_factory(ProviderKind.ANTHROPIC, create_anthropic)
for _kind in (ProviderKind.GROQ, ProviderKind.DEEPSEEK, ProviderKind.MISTRAL):
    register_model_factory(_kind, create_openai_compatible(_kind.value, DEFAULT_MODELS[_kind]))
