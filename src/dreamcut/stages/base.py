"""Shared helpers for stage executors: model calls, error translation, parsing."""

import json
from typing import Any

import httpx

from dreamcut.adapters.llm.base import LLMMessage, LLMProvider, LLMResponse, VisionMessage
from dreamcut.errors import UpstreamError, UpstreamTimeoutError, ValidationError
from dreamcut.logging import get_logger

logger = get_logger(__name__)


async def call_model(
    llm: LLMProvider,
    messages: list[LLMMessage] | list[VisionMessage],
    stage: str,
    temperature: float = 0.3,
    max_tokens: int = 2048,
    json_mode: bool = True,
) -> LLMResponse:
    """Call the provider and translate transport failures into stage errors.

    Raises:
        UpstreamTimeoutError: The request timed out
        UpstreamError: The provider answered with an error or is unusable
    """
    try:
        if messages and isinstance(messages[0], VisionMessage):
            response = await llm.complete_with_vision(
                messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            )
        else:
            response = await llm.complete(
                messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            )
    except httpx.TimeoutException as e:
        logger.warning("stage_model_timeout", stage=stage, provider=llm.name)
        raise UpstreamTimeoutError(f"{llm.name} timed out during {stage}", stage=stage) from e
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        logger.warning("stage_model_http_error", stage=stage, provider=llm.name, status=status_code)
        raise UpstreamError(
            f"{llm.name} returned HTTP {status_code} during {stage}",
            stage=stage,
            status_code=status_code,
        ) from e
    except httpx.HTTPError as e:
        logger.warning("stage_model_transport_error", stage=stage, provider=llm.name, error=str(e))
        raise UpstreamError(f"{llm.name} request failed during {stage}: {e}", stage=stage) from e
    except ValueError as e:
        # Providers raise ValueError when not configured
        raise UpstreamError(str(e), stage=stage) from e

    logger.debug("stage_model_call", stage=stage, model=response.model, tokens=response.total_tokens)
    return response


def parse_json_object(content: str, stage: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object, tolerating markdown fences.

    Raises:
        ValidationError: If the content is not a JSON object
    """
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error("stage_json_parse_error", stage=stage, error=str(e), content=content[:300])
        raise ValidationError(f"Invalid JSON from model during {stage}: {e}", stage=stage) from e
    if not isinstance(data, dict):
        raise ValidationError(f"Expected a JSON object during {stage}", stage=stage)
    return data


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def as_float(value: Any, default: float | None = None) -> float | None:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_str(value: Any, default: str | None = None) -> str | None:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []
