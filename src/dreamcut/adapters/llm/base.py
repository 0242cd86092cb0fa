"""Provider-neutral message and response types for model calls."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]


@dataclass
class LLMResponse:
    """What a provider returned for one call."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: dict[str, Any] | None = None
    finish_reason: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


@dataclass
class LLMMessage:
    role: Role
    content: str


@dataclass
class VisionMessage:
    """A message whose images are sent alongside the text."""

    role: Role
    text: str
    image_urls: list[str] = field(default_factory=list)


def conversation(system: str, user: str) -> list[LLMMessage]:
    """The system-plus-user pair every stage sends."""
    return [LLMMessage(role="system", content=system), LLMMessage(role="user", content=user)]


def vision_conversation(system: str, user: str, image_urls: list[str]) -> list[VisionMessage]:
    """Like :func:`conversation`, with images attached to the user turn."""
    return [
        VisionMessage(role="system", text=system),
        VisionMessage(role="user", text=user, image_urls=list(image_urls)),
    ]


class LLMProvider(ABC):
    """A chat model the stage executors can call.

    Implementations: ``OpenAIProvider`` and ``AnthropicProvider`` over httpx,
    and ``StubLLMProvider`` which answers deterministically offline.

    Providers raise ``httpx.HTTPError`` subclasses for transport failures and
    ``ValueError`` when they are not configured; the stage layer translates
    both into pipeline errors.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
            messages: Conversation, system message first when present
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens in the reply
            json_mode: Ask the model for a single JSON object
        """
        ...

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        json_mode: bool = False,
    ) -> LLMResponse:
        raise NotImplementedError(f"{self.name} does not support vision")

    @property
    def supports_vision(self) -> bool:
        return False

    async def health_check(self) -> bool:
        return True
