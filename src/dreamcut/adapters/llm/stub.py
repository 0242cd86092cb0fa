"""Stub LLM provider for testing."""

import json
from typing import Any

from dreamcut.adapters.llm.base import LLMMessage, LLMProvider, LLMResponse, VisionMessage
from dreamcut.logging import get_logger

logger = get_logger(__name__)


def _field(text: str, label: str) -> str:
    """Value of a 'Label: value' line in a prompt, or empty string."""
    prefix = f"{label}:"
    for line in text.splitlines():
        if line.startswith(prefix):
            return line[len(prefix) :].strip()
    return ""


def _infer_intent(prompt: str) -> str:
    lowered = prompt.lower()
    if any(w in lowered for w in ("video", "trailer", "movie", "clip")):
        return "video"
    if any(w in lowered for w in ("image", "picture", "photo", "poster")):
        return "image"
    if any(w in lowered for w in ("audio", "sound", "music", "podcast")):
        return "audio"
    return "mixed"


class StubLLMProvider(LLMProvider):
    """Stub provider that returns mock responses shaped for each analysis stage."""

    @property
    def name(self) -> str:
        return "stub"

    @property
    def supports_vision(self) -> bool:
        """Stub provider supports vision for testing."""
        return True

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.7,  # noqa: ARG002
        max_tokens: int = 4096,  # noqa: ARG002
        json_mode: bool = False,
    ) -> LLMResponse:
        """Return a mock completion response."""
        system = next((m.content for m in messages if m.role == "system"), "")
        user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        return self._respond(system, user, json_mode)

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        temperature: float = 0.7,  # noqa: ARG002
        max_tokens: int = 4096,  # noqa: ARG002
        json_mode: bool = False,
    ) -> LLMResponse:
        """Return a mock vision completion response."""
        system = next((m.text for m in messages if m.role == "system"), "")
        user = next((m.text for m in reversed(messages) if m.role == "user"), "")
        return self._respond(system, user, json_mode)

    def _respond(self, system: str, user: str, json_mode: bool) -> LLMResponse:
        logger.info("stub_llm_complete", json_mode=json_mode)

        lowered = system.lower()
        if "query analyst" in lowered:
            body: dict[str, Any] | None = self._query_analysis(user)
        elif "asset analyst" in lowered:
            body = self._asset_analysis(user)
        elif "creative director" in lowered:
            body = self._creative_direction(user)
        else:
            body = None

        content = json.dumps(body, indent=2) if body is not None else f"Stub response: {user[:100]}"
        return LLMResponse(
            content=content,
            model="stub-model",
            usage={
                "prompt_tokens": len(user.split()),
                "completion_tokens": len(content.split()),
                "total_tokens": len(user.split()) + len(content.split()),
            },
            finish_reason="stop",
        )

    def _query_analysis(self, user: str) -> dict[str, Any]:
        prompt = _field(user, "User request") or user
        intent = _infer_intent(prompt)
        words = [w.strip(".,!?") for w in prompt.split() if len(w) > 3]
        return {
            "intent": {
                "primary_output_type": intent,
                "confidence": 0.8,
                "secondary_types": [],
                "reasoning": f"Request mentions {intent} output",
            },
            "modifiers": {
                "style": "cinematic" if intent == "video" else None,
                "mood": "uplifting",
                "theme": words[0].lower() if words else None,
                "time_period": None,
                "emotions": ["excitement"],
                "aesthetic": None,
                "genre": None,
            },
            "constraints": {
                "duration_seconds": None,
                "aspect_ratio": None,
                "platform": None,
                "target_audience": None,
            },
            "gaps": {
                "missing_duration": intent == "video",
                "missing_aspect_ratio": True,
                "missing_style_direction": intent != "video",
                "missing_target_audience": True,
                "missing_platform_specs": True,
                "missing_mood_tone": False,
                "vague_requirements": [],
                "needs_clarification": False,
            },
            "creative_reframing": f"A polished {intent} piece about {prompt[:80]}",
        }

    def _asset_analysis(self, user: str) -> dict[str, Any]:
        media_type = _field(user, "Media type") or "image"
        subject = _field(user, "User description") or _field(user, "Filename") or "the subject"
        request = _field(user, "User request")
        try:
            metadata = json.loads(_field(user, "Metadata") or "{}")
        except json.JSONDecodeError:
            metadata = {}
        description = (
            f"A clear, detailed, professional {media_type} showing {subject}. "
            f"Relevant to: {request}"
        )

        if media_type == "video":
            duration = metadata.get("duration_seconds") or metadata.get("duration") or 20.0
            return {
                "description": description,
                "scenes": ["opening shot", "main action"],
                "duration_seconds": float(duration),
                "has_audio": True,
                "transcription": None,
                "style": "modern",
                "mood": "energetic",
            }
        if media_type == "audio":
            return {
                "description": description,
                "transcription": f"Narration about {subject}. " * 3,
                "duration_seconds": float(metadata.get("duration_seconds") or 30.0),
                "tone": "calm",
                "has_speech": True,
                "has_music": False,
            }
        return {
            "description": description,
            "objects": [subject],
            "colors": ["blue", "gold"],
            "style": "modern",
            "mood": "calm",
            "width": metadata.get("width", 1920),
            "height": metadata.get("height", 1080),
        }

    def _creative_direction(self, user: str) -> dict[str, Any]:
        title = _field(user, "Project title") or "Untitled"
        return {
            "creative_direction": f"Lean into a cohesive visual story for {title}",
            "target_outcome": "A polished piece ready for production",
            "reasoning": "Assets and request point in the same direction",
        }

    async def health_check(self) -> bool:
        """Stub provider is always healthy."""
        return True
