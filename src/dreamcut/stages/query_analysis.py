"""Query analysis: what does the user want to produce."""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from dreamcut.adapters.llm.base import LLMProvider, conversation
from dreamcut.domain.enums import Intent
from dreamcut.errors import ValidationError
from dreamcut.logging import get_logger
from dreamcut.stages.base import as_float, as_str, as_str_list, call_model, clamp, parse_json_object

logger = get_logger(__name__)

STAGE = "query_analysis"

INTENT_KEYWORDS: list[tuple[Intent, tuple[str, ...]]] = [
    (Intent.VIDEO, ("video", "trailer", "movie")),
    (Intent.IMAGE, ("image", "picture", "photo")),
    (Intent.AUDIO, ("audio", "sound", "music")),
]


def infer_intent(prompt: str) -> Intent:
    """Keyword-based intent used when the request declares none."""
    lowered = prompt.lower()
    for intent, keywords in INTENT_KEYWORDS:
        if any(k in lowered for k in keywords):
            return intent
    return Intent.MIXED


def normalize_prompt(prompt: str) -> str:
    """Trim, collapse whitespace, capitalize a standalone "i", drop repeated words."""
    text = re.sub(r"\s+", " ", prompt.strip())
    text = re.sub(r"\bi\b", "I", text)
    text = re.sub(r"\b(\w+)(\s+\1\b)+", r"\1", text, flags=re.IGNORECASE)
    if text and text[-1] not in ".!?":
        text += "."
    return text


@dataclass
class IntentAnalysis:
    primary_output_type: Intent
    confidence: float = 0.5
    secondary_types: list[Intent] = field(default_factory=list)
    reasoning: str = ""


@dataclass
class Modifiers:
    style: str | None = None
    mood: str | None = None
    theme: str | None = None
    time_period: str | None = None
    emotions: list[str] = field(default_factory=list)
    aesthetic: str | None = None
    genre: str | None = None


@dataclass
class Constraints:
    duration_seconds: float | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    platform: str | None = None
    target_audience: str | None = None
    image_count: int | None = None
    fps: int | None = None


@dataclass
class Gaps:
    missing_duration: bool = False
    missing_aspect_ratio: bool = False
    missing_style_direction: bool = False
    missing_target_audience: bool = False
    missing_platform_specs: bool = False
    missing_mood_tone: bool = False
    vague_requirements: list[str] = field(default_factory=list)
    needs_clarification: bool = False


@dataclass
class QueryAnalysis:
    """Structured breakdown of the user's request."""

    original_prompt: str
    normalized_prompt: str
    intent: IntentAnalysis
    modifiers: Modifiers = field(default_factory=Modifiers)
    constraints: Constraints = field(default_factory=Constraints)
    gaps: Gaps = field(default_factory=Gaps)
    creative_reframing: str | None = None
    model_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _parse_intent(value: Any) -> Intent:
    try:
        return Intent(str(value).lower())
    except ValueError as e:
        raise ValidationError(f"Unknown output type: {value!r}", stage=STAGE) from e


def _parse_int(value: Any) -> int | None:
    number = as_float(value)
    return int(number) if number is not None else None


def parse_query_analysis(
    data: dict[str, Any],
    prompt: str,
    declared_intent: Intent | None = None,
) -> QueryAnalysis:
    """Build a QueryAnalysis from the model's JSON reply.

    Raises:
        ValidationError: If the intent block is missing or malformed
    """
    raw_intent = data.get("intent")
    if not isinstance(raw_intent, dict) or "primary_output_type" not in raw_intent:
        raise ValidationError("Response is missing intent.primary_output_type", stage=STAGE)

    primary = _parse_intent(raw_intent["primary_output_type"])
    confidence = clamp(as_float(raw_intent.get("confidence"), 0.5) or 0.0, 0.0, 1.0)
    if declared_intent is not None and declared_intent != primary:
        primary = declared_intent
        confidence = 1.0

    secondary: list[Intent] = []
    for item in as_str_list(raw_intent.get("secondary_types")):
        try:
            value = Intent(item.lower())
        except ValueError:
            continue
        if value != primary and value not in secondary:
            secondary.append(value)

    modifiers = data.get("modifiers") if isinstance(data.get("modifiers"), dict) else {}
    constraints = data.get("constraints") if isinstance(data.get("constraints"), dict) else {}
    gaps = data.get("gaps") if isinstance(data.get("gaps"), dict) else {}

    return QueryAnalysis(
        original_prompt=prompt,
        normalized_prompt=normalize_prompt(prompt),
        intent=IntentAnalysis(
            primary_output_type=primary,
            confidence=confidence,
            secondary_types=secondary,
            reasoning=as_str(raw_intent.get("reasoning"), "") or "",
        ),
        modifiers=Modifiers(
            style=as_str(modifiers.get("style")),
            mood=as_str(modifiers.get("mood")),
            theme=as_str(modifiers.get("theme")),
            time_period=as_str(modifiers.get("time_period")),
            emotions=as_str_list(modifiers.get("emotions")),
            aesthetic=as_str(modifiers.get("aesthetic")),
            genre=as_str(modifiers.get("genre")),
        ),
        constraints=Constraints(
            duration_seconds=as_float(constraints.get("duration_seconds")),
            aspect_ratio=as_str(constraints.get("aspect_ratio")),
            resolution=as_str(constraints.get("resolution")),
            platform=as_str(constraints.get("platform")),
            target_audience=as_str(constraints.get("target_audience")),
            image_count=_parse_int(constraints.get("image_count")),
            fps=_parse_int(constraints.get("fps")),
        ),
        gaps=Gaps(
            missing_duration=bool(gaps.get("missing_duration", False)),
            missing_aspect_ratio=bool(gaps.get("missing_aspect_ratio", False)),
            missing_style_direction=bool(gaps.get("missing_style_direction", False)),
            missing_target_audience=bool(gaps.get("missing_target_audience", False)),
            missing_platform_specs=bool(gaps.get("missing_platform_specs", False)),
            missing_mood_tone=bool(gaps.get("missing_mood_tone", False)),
            vague_requirements=as_str_list(gaps.get("vague_requirements")),
            needs_clarification=bool(gaps.get("needs_clarification", False)),
        ),
        creative_reframing=as_str(data.get("creative_reframing")),
    )


class QueryAnalyzer:
    """Turns a raw prompt into intent, modifiers, constraints and gaps."""

    SYSTEM_PROMPT = """You are DreamCut's query analyst. You break a creative request down into
what the user wants to produce and what is still unspecified.

Respond with a JSON object with this exact structure:
{
    "intent": {
        "primary_output_type": "image | video | audio | mixed",
        "confidence": 0.0-1.0,
        "secondary_types": ["image | video | audio"],
        "reasoning": "one sentence"
    },
    "modifiers": {
        "style": "string or null",
        "mood": "string or null",
        "theme": "string or null",
        "time_period": "string or null",
        "emotions": ["string"],
        "aesthetic": "string or null",
        "genre": "string or null"
    },
    "constraints": {
        "duration_seconds": "number or null",
        "aspect_ratio": "string or null",
        "resolution": "string or null",
        "platform": "string or null",
        "target_audience": "string or null",
        "image_count": "number or null",
        "fps": "number or null"
    },
    "gaps": {
        "missing_duration": true,
        "missing_aspect_ratio": true,
        "missing_style_direction": true,
        "missing_target_audience": true,
        "missing_platform_specs": true,
        "missing_mood_tone": true,
        "vague_requirements": ["string"],
        "needs_clarification": false
    },
    "creative_reframing": "the request restated as a clear creative brief"
}

Only report constraints the user actually stated. Use null when unknown."""

    def __init__(self, llm_provider: LLMProvider) -> None:
        self.llm = llm_provider

    async def analyze(self, prompt: str, declared_intent: Intent | None = None) -> QueryAnalysis:
        """Analyze one prompt.

        Raises:
            ValidationError: Unparsable or malformed model reply
            UpstreamTimeoutError: Model call timed out
            UpstreamError: Model call failed
        """
        user_prompt = "\n".join(
            [
                f"User request: {prompt}",
                f"Declared intent: {declared_intent or 'none'}",
                f"Keyword intent guess: {infer_intent(prompt)}",
            ]
        )
        response = await call_model(
            self.llm,
            conversation(self.SYSTEM_PROMPT, user_prompt),
            stage=STAGE,
        )
        data = parse_json_object(response.content, STAGE)
        analysis = parse_query_analysis(data, prompt, declared_intent)
        analysis.model_used = response.model

        logger.info(
            "query_analyzed",
            intent=str(analysis.intent.primary_output_type),
            confidence=analysis.intent.confidence,
            model=response.model,
        )
        return analysis

