"""Model providers used by the analysis stages."""

from dreamcut.adapters.llm.anthropic import AnthropicProvider
from dreamcut.adapters.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    VisionMessage,
    conversation,
    vision_conversation,
)
from dreamcut.adapters.llm.openai import OpenAIProvider
from dreamcut.adapters.llm.stub import StubLLMProvider
from dreamcut.config import Settings, get_settings
from dreamcut.logging import get_logger

logger = get_logger(__name__)


def get_llm_provider(name: str | None = None, config: Settings | None = None) -> LLMProvider:
    """Provider for ``name`` (default ``config.llm_provider``).

    A hosted provider without a key falls back to whichever other key is
    configured, and to the stub when there is none.
    """
    config = config or get_settings()
    requested = (name or config.llm_provider).lower()
    if requested == "stub":
        return StubLLMProvider()

    hosted = {
        "openai": (config.openai_api_key, lambda: OpenAIProvider(config.openai_api_key, config.openai_model)),
        "anthropic": (
            config.anthropic_api_key,
            lambda: AnthropicProvider(config.anthropic_api_key, config.anthropic_model),
        ),
    }
    preference = [requested] + [other for other in hosted if other != requested]
    for candidate in preference:
        if candidate in hosted and hosted[candidate][0]:
            if candidate != requested:
                logger.warning("llm_provider_substituted", requested=requested, using=candidate)
            return hosted[candidate][1]()

    logger.warning("llm_api_keys_missing_using_stub", requested=requested)
    return StubLLMProvider()


__all__ = [
    "AnthropicProvider",
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "StubLLMProvider",
    "VisionMessage",
    "conversation",
    "get_llm_provider",
    "vision_conversation",
]
