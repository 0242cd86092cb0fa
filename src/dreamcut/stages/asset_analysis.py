"""Per-asset analysis: one typed result per image, video or audio input."""

import json
import re
from typing import Any

from dreamcut.adapters.llm.base import (
    LLMMessage,
    LLMProvider,
    VisionMessage,
    conversation,
    vision_conversation,
)
from dreamcut.domain.analysis import (
    Alignment,
    AssetAnalysis,
    AudioAnalysis,
    ImageAnalysis,
    ProcessingNeeds,
    VideoAnalysis,
)
from dreamcut.domain.enums import AssetRole, MediaType, Severity
from dreamcut.domain.models import AssetDescriptor
from dreamcut.errors import ValidationError
from dreamcut.logging import get_logger
from dreamcut.stages.base import as_float, as_str, as_str_list, call_model, clamp, parse_json_object

logger = get_logger(__name__)

STAGE = "asset_analysis"

POSITIVE_QUALITY = ("high quality", "clear", "sharp", "detailed", "professional")
NEGATIVE_QUALITY = ("blurry", "low quality", "pixelated", "grainy", "poor")
MOOD_WORDS = ("happy", "sad", "calm", "energetic")
STYLE_WORDS = ("modern", "vintage", "minimalist", "artistic", "professional", "casual", "formal")


def significant_words(text: str) -> set[str]:
    """Lowercased words longer than three characters."""
    return {w for w in re.findall(r"[a-z0-9']+", text.lower()) if len(w) > 3}


def compute_alignment(query_text: str, content: str) -> float:
    """Share of the query's significant words that appear in the content."""
    words = significant_words(query_text)
    if not words:
        return 0.0
    lowered = content.lower()
    matches = sum(1 for w in words if w in lowered)
    return round(matches / len(words), 3)


def role_for_alignment(score: float) -> AssetRole:
    if score > 0.7:
        return AssetRole.PRIMARY_CONTENT
    if score > 0.4:
        return AssetRole.SUPPORTING_ELEMENT
    if score > 0.2:
        return AssetRole.REFERENCE_MATERIAL
    return AssetRole.UNCLEAR


def visual_quality(text: str) -> float:
    """Start at 5, +/-1 per quality indicator, clamped to 1-10."""
    lowered = text.lower()
    score = 5.0
    score += sum(1 for word in POSITIVE_QUALITY if word in lowered)
    score -= sum(1 for word in NEGATIVE_QUALITY if word in lowered)
    return clamp(score, 1.0, 10.0)


def audio_quality(transcription: str | None) -> float:
    """Audio is judged by how much intelligible speech was transcribed."""
    length = len((transcription or "").strip())
    if length > 200:
        return 8.0
    if length > 100:
        return 7.0
    if length > 20:
        return 6.0
    return 4.0


def detect_word(text: str, candidates: tuple[str, ...], default: str) -> str:
    lowered = text.lower()
    return next((word for word in candidates if word in lowered), default)


def compute_confidence(corpus: str, used_fallback: bool) -> float:
    confidence = 0.8
    if used_fallback:
        confidence -= 0.2
    if len(corpus) > 500:
        confidence += 0.1
    return round(clamp(confidence, 0.0, 1.0), 2)


def processing_needs_for(
    analysis: AssetAnalysis,
    max_duration_seconds: float | None,
) -> ProcessingNeeds:
    needs = ProcessingNeeds()
    quality = analysis.quality_score
    alignment = analysis.alignment.alignment_score

    if isinstance(analysis, ImageAnalysis):
        needs.requires_upscaling = quality < 6
        needs.requires_enhancement = quality < 7
        needs.requires_style_transfer = alignment < 0.5
    elif isinstance(analysis, VideoAnalysis):
        needs.requires_upscaling = quality < 6
        needs.requires_enhancement = quality < 7
        needs.requires_style_transfer = alignment < 0.5
        needs.requires_trimming = bool(
            max_duration_seconds
            and analysis.duration_seconds
            and analysis.duration_seconds > max_duration_seconds
        )
    elif isinstance(analysis, AudioAnalysis):
        needs.requires_enhancement = quality < 7
        needs.requires_noise_reduction = quality < 6

    tools = []
    if needs.requires_upscaling:
        tools.append("upscaler")
    if needs.requires_enhancement:
        tools.append("enhancer")
    if needs.requires_style_transfer:
        tools.append("style_transfer")
    if needs.requires_trimming:
        tools.append("video_trimmer")
    if needs.requires_noise_reduction:
        tools.append("noise_reduction")
    needs.recommended_tools = tools

    if len(tools) >= 2:
        needs.priority_level = Severity.HIGH
    elif tools:
        needs.priority_level = Severity.MEDIUM
    return needs


def usage_recommendations(role: AssetRole, media_type: MediaType) -> list[str]:
    if role == AssetRole.PRIMARY_CONTENT:
        return [f"Feature this {media_type} as core content"]
    if role == AssetRole.SUPPORTING_ELEMENT:
        return [f"Use this {media_type} to support the main content"]
    if role == AssetRole.REFERENCE_MATERIAL:
        return [f"Use this {media_type} as style or mood reference"]
    return [f"Clarify how this {media_type} should be used"]


def build_analysis(
    asset_id: str,
    descriptor: AssetDescriptor,
    data: dict[str, Any],
    query_text: str,
    max_duration_seconds: float | None = None,
) -> AssetAnalysis:
    """Turn the model's JSON into a typed analysis and apply the scoring heuristics.

    Raises:
        ValidationError: If the reply has no description
    """
    description = as_str(data.get("description")) or as_str(data.get("caption"))
    used_fallback = False
    if description is None:
        if not descriptor.description:
            raise ValidationError("Response is missing a description", stage=STAGE)
        description = descriptor.description
        used_fallback = True

    common: dict[str, Any] = {
        "asset_id": asset_id,
        "description": description,
        "style": as_str(data.get("style")) or detect_word(description, STYLE_WORDS, "unknown"),
        "mood": as_str(data.get("mood")) or detect_word(description, MOOD_WORDS, "neutral"),
    }

    analysis: AssetAnalysis
    if descriptor.type == MediaType.IMAGE:
        analysis = ImageAnalysis(
            **common,
            objects=as_str_list(data.get("objects")),
            colors=as_str_list(data.get("colors")),
            width=int(as_float(data.get("width"), 0) or 0) or None,
            height=int(as_float(data.get("height"), 0) or 0) or None,
        )
        analysis.quality_score = visual_quality(analysis.text_corpus())
    elif descriptor.type == MediaType.VIDEO:
        duration = as_float(data.get("duration_seconds"))
        if duration is None:
            duration = as_float(descriptor.metadata.get("duration_seconds"))
        analysis = VideoAnalysis(
            **common,
            scenes=as_str_list(data.get("scenes")),
            duration_seconds=duration,
            has_audio=bool(data.get("has_audio", False)),
            transcription=as_str(data.get("transcription")),
        )
        analysis.quality_score = visual_quality(analysis.text_corpus())
    else:
        transcription = as_str(data.get("transcription"))
        analysis = AudioAnalysis(
            **common,
            transcription=transcription,
            duration_seconds=as_float(data.get("duration_seconds")),
            tone=as_str(data.get("tone")) or detect_word(description, MOOD_WORDS, "neutral"),
            has_speech=bool(data.get("has_speech", bool(transcription))),
            has_music=bool(data.get("has_music", False)),
        )
        analysis.quality_score = audio_quality(transcription)

    corpus = " ".join(filter(None, [analysis.text_corpus(), descriptor.description]))
    score = compute_alignment(query_text, corpus)
    role = role_for_alignment(score)
    analysis.alignment = Alignment(
        supports_query_intent=score > 0.3,
        alignment_score=score,
        role_in_project=role,
        usage_recommendations=usage_recommendations(role, descriptor.type),
    )
    analysis.processing_needs = processing_needs_for(analysis, max_duration_seconds)
    analysis.confidence = compute_confidence(corpus, used_fallback)
    return analysis


class AssetAnalyzer:
    """Analyzes one asset independently of every other asset."""

    SYSTEM_PROMPT = """You are DreamCut's asset analyst. You describe a single user-supplied
media asset so it can be used in a creative project.

Respond with a JSON object. Always include:
    "description": "detailed description of the content and its visual/audio quality",
    "style": "one word style (modern, vintage, minimalist, artistic, professional, casual, formal)",
    "mood": "one word mood (happy, sad, calm, energetic, neutral)"

For images also include: "objects": [..], "colors": [..], "width": int, "height": int
For videos also include: "scenes": [..], "duration_seconds": number, "has_audio": bool,
    "transcription": "spoken words or null"
For audio also include: "transcription": "spoken words or null", "duration_seconds": number,
    "tone": "one word", "has_speech": bool, "has_music": bool

Mention quality honestly (clear, sharp, detailed, blurry, grainy, pixelated)."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        max_video_duration_seconds: float | None = None,
    ) -> None:
        self.llm = llm_provider
        self.max_video_duration_seconds = max_video_duration_seconds

    def _user_prompt(self, descriptor: AssetDescriptor, query_text: str) -> str:
        return "\n".join(
            [
                f"Media type: {descriptor.type}",
                f"Filename: {descriptor.display_name}",
                f"URL: {descriptor.url}",
                f"User description: {descriptor.description or ''}",
                f"Metadata: {json.dumps(descriptor.metadata, default=str)}",
                f"User request: {query_text}",
            ]
        )

    async def analyze(
        self,
        asset_id: str,
        descriptor: AssetDescriptor,
        query_text: str,
    ) -> AssetAnalysis:
        """Analyze one asset.

        Raises:
            ValidationError: Unparsable or malformed model reply
            UpstreamTimeoutError: Model call timed out
            UpstreamError: Model call failed
        """
        user_prompt = self._user_prompt(descriptor, query_text)
        use_vision = (
            descriptor.type == MediaType.IMAGE
            and self.llm.supports_vision
            and descriptor.url.startswith(("http://", "https://", "data:"))
        )
        if use_vision:
            messages: list[LLMMessage] | list[VisionMessage] = vision_conversation(
                self.SYSTEM_PROMPT, user_prompt, [descriptor.url]
            )
        else:
            messages = conversation(self.SYSTEM_PROMPT, user_prompt)

        response = await call_model(self.llm, messages, stage=STAGE)
        data = parse_json_object(response.content, STAGE)
        analysis = build_analysis(
            asset_id,
            descriptor,
            data,
            query_text,
            max_duration_seconds=self.max_video_duration_seconds,
        )
        analysis.model_used = response.model

        logger.info(
            "asset_analyzed",
            asset_id=asset_id,
            media_type=str(descriptor.type),
            quality=analysis.quality_score,
            alignment=analysis.alignment.alignment_score,
        )
        return analysis
