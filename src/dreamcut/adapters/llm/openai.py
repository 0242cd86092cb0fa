"""OpenAI chat completions provider."""

from typing import Any

import httpx

from dreamcut.adapters.llm.base import LLMMessage, LLMProvider, LLMResponse, VisionMessage
from dreamcut.adapters.llm.transport import DEFAULT_TIMEOUT, post_json
from dreamcut.config import settings
from dreamcut.logging import get_logger

logger = get_logger(__name__)


def vision_to_openai(message: VisionMessage) -> dict[str, Any]:
    """Text-only messages stay plain strings; images become content parts."""
    if not message.image_urls:
        return {"role": message.role, "content": message.text}
    parts: list[dict[str, Any]] = [{"type": "text", "text": message.text}]
    parts += [{"type": "image_url", "image_url": {"url": url}} for url in message.image_urls]
    return {"role": message.role, "content": parts}


def response_from_openai(data: dict[str, Any], fallback_model: str) -> LLMResponse:
    choice = data["choices"][0]
    usage = data.get("usage") or {}
    return LLMResponse(
        content=choice["message"].get("content") or "",
        model=data.get("model", fallback_model),
        usage={
            "prompt_tokens": usage.get("prompt_tokens", 0),
            "completion_tokens": usage.get("completion_tokens", 0),
            "total_tokens": usage.get("total_tokens", 0),
        },
        raw_response=data,
        finish_reason=choice.get("finish_reason"),
    )


class OpenAIProvider(LLMProvider):
    """GPT models over the chat completions endpoint; vision via image_url parts."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        if not self.api_key:
            logger.warning("openai_api_key_missing")

    @property
    def name(self) -> str:
        return f"openai:{self.model}"

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
        wire = [{"role": m.role, "content": m.content} for m in messages]
        return await self._chat(wire, temperature, max_tokens, json_mode)

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
    ) -> LLMResponse:
        wire = [vision_to_openai(m) for m in messages]
        return await self._chat(wire, temperature, max_tokens, json_mode)

    async def _chat(
        self,
        wire_messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> LLMResponse:
        if not self.api_key:
            raise ValueError("OpenAI API key not configured")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": wire_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        logger.debug("openai_request", model=self.model, messages=len(wire_messages), json_mode=json_mode)
        data = await post_json(
            f"{self.base_url}/chat/completions",
            {"Authorization": f"Bearer {self.api_key}"},
            payload,
            provider="openai",
            timeout=self.timeout,
        )
        response = response_from_openai(data, self.model)
        logger.info(
            "openai_response",
            model=response.model,
            tokens_used=response.total_tokens,
            finish_reason=response.finish_reason,
        )
        return response

    async def health_check(self) -> bool:
        """The key is accepted by the models endpoint."""
        if not self.api_key:
            return False
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    f"{self.base_url}/models", headers={"Authorization": f"Bearer {self.api_key}"}
                )
        except httpx.HTTPError as e:
            logger.error("openai_health_check_failed", error=str(e))
            return False
        return response.status_code == 200
