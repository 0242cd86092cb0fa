"""Anthropic messages API provider."""

from typing import Any

from dreamcut.adapters.llm.base import LLMMessage, LLMProvider, LLMResponse, VisionMessage
from dreamcut.adapters.llm.transport import DEFAULT_TIMEOUT, post_json
from dreamcut.config import settings
from dreamcut.logging import get_logger

logger = get_logger(__name__)

API_VERSION = "2023-06-01"
# The messages API has no JSON response format; ask for it in the system prompt
JSON_INSTRUCTION = "\n\nIMPORTANT: You must respond with valid JSON only. No other text."


def split_system(messages: list[LLMMessage]) -> tuple[str, list[dict[str, Any]]]:
    """Anthropic takes the system prompt as a top-level field, not a turn."""
    system = ""
    turns: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            system = message.content
        else:
            turns.append({"role": message.role, "content": message.content})
    return system, turns


def split_system_vision(messages: list[VisionMessage]) -> tuple[str, list[dict[str, Any]]]:
    """Like :func:`split_system`; images go ahead of the text block."""
    system = ""
    turns: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            system = message.text
            continue
        blocks: list[dict[str, Any]] = [
            {"type": "image", "source": {"type": "url", "url": url}} for url in message.image_urls
        ]
        blocks.append({"type": "text", "text": message.text})
        turns.append({"role": message.role, "content": blocks})
    return system, turns


def response_from_anthropic(data: dict[str, Any], fallback_model: str) -> LLMResponse:
    text = "".join(
        block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
    )
    usage = data.get("usage") or {}
    prompt_tokens = usage.get("input_tokens", 0)
    completion_tokens = usage.get("output_tokens", 0)
    return LLMResponse(
        content=text,
        model=data.get("model", fallback_model),
        usage={
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
        raw_response=data,
        finish_reason=data.get("stop_reason"),
    )


class AnthropicProvider(LLMProvider):
    """Claude models; vision via URL image blocks."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str = "https://api.anthropic.com/v1",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.anthropic_model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        if not self.api_key:
            logger.warning("anthropic_api_key_missing")

    @property
    def name(self) -> str:
        return f"anthropic:{self.model}"

    @property
    def supports_vision(self) -> bool:
        return True

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
    ) -> LLMResponse:
        system, turns = split_system(messages)
        return await self._messages(system, turns, temperature, max_tokens, json_mode)

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
    ) -> LLMResponse:
        system, turns = split_system_vision(messages)
        return await self._messages(system, turns, temperature, max_tokens, json_mode)

    async def _messages(
        self,
        system: str,
        turns: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> LLMResponse:
        if not self.api_key:
            raise ValueError("Anthropic API key not configured")

        if json_mode:
            system += JSON_INSTRUCTION

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": turns,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            payload["system"] = system

        logger.debug("anthropic_request", model=self.model, messages=len(turns), json_mode=json_mode)
        data = await post_json(
            f"{self.base_url}/messages",
            {"x-api-key": self.api_key, "anthropic-version": API_VERSION},
            payload,
            provider="anthropic",
            timeout=self.timeout,
        )
        response = response_from_anthropic(data, self.model)
        logger.info(
            "anthropic_response",
            model=response.model,
            input_tokens=response.usage["prompt_tokens"],
            output_tokens=response.usage["completion_tokens"],
            stop_reason=response.finish_reason,
        )
        return response

    async def health_check(self) -> bool:
        """No health endpoint; a configured key counts as available."""
        return bool(self.api_key)
