"""HTTP round trip shared by the hosted model providers."""

from typing import Any

import httpx

from dreamcut.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 120.0


async def post_json(
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    provider: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """POST ``payload`` and return the decoded JSON body.

    Raises:
        httpx.TimeoutException: The provider did not answer in time
        httpx.HTTPStatusError: The provider answered with a 4xx/5xx
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(url, headers={**headers, "Content-Type": "application/json"}, json=payload)
        if response.is_error:
            logger.warning(
                "llm_http_error",
                provider=provider,
                status=response.status_code,
                body=response.text[:300],
            )
        response.raise_for_status()
        return response.json()
