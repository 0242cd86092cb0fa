"""Script generation: templated narration driven by a creative profile."""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from dreamcut.domain.enums import MediaType, UtilizationBucket
from dreamcut.logging import get_logger
from dreamcut.presets.profiles import CreativeProfile, ProfileMatch, detect_profile, get_profile
from dreamcut.stages.query_analysis import QueryAnalysis
from dreamcut.stages.synthesis import CreativeBrief

logger = get_logger(__name__)

STAGE = "script_generation"

HOOKS: dict[str, str] = {
    "educational_explainer": "Ever wondered how {subject} really works? Let's break it down.",
    "anime_mode": "The story of {subject} begins now!",
    "ugc_influencer": "Okay, you have to see this: {subject}.",
    "finance_explainer": "Here is what you need to know about {subject}.",
    "presentation_corporate": "Today we present {subject}.",
    "pleasure_relaxation": "Take a deep breath and settle in with {subject}.",
    "ads_commercial": "Meet {subject}, made for you.",
    "demo_product_showcase": "Let's see {subject} in action.",
    "funny_meme_style": "Nobody was ready for {subject}.",
    "documentary_storytelling": "Every story has a beginning. This one is about {subject}.",
}

CLOSERS: dict[str, str] = {
    "ads_commercial": "Get yours today.",
    "demo_product_showcase": "Try it yourself and see the difference.",
    "educational_explainer": "Now you know. Keep learning.",
    "ugc_influencer": "Let me know what you think in the comments!",
    "funny_meme_style": "Tag someone who needs to see this.",
}

DEFAULT_HOOK = "This is {subject}."
DEFAULT_CLOSER = "Thanks for watching."


@dataclass
class ScriptScene:
    index: int
    heading: str
    narration: str
    visual: str
    duration_seconds: float
    transition: str
    text_overlay: str | None = None
    asset_ids: list[str] = field(default_factory=list)


@dataclass
class Script:
    """Narration plus scene breakdown for a video-bound query."""

    profile: str
    title: str
    narration: str
    scenes: list[ScriptScene]
    word_count: int
    estimated_duration_seconds: float
    pacing: str
    audio_style: str
    profile_detection: dict[str, Any] = field(default_factory=dict)

    @property
    def scene_count(self) -> int:
        return len(self.scenes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["scene_count"] = self.scene_count
        return data


def count_words(text: str) -> int:
    return len(re.findall(r"\b[\w']+\b", text))


def estimate_duration(word_count: int, words_per_minute: int = 150) -> float:
    return round(word_count / words_per_minute * 60, 1)


def subject_of(query: QueryAnalysis) -> str:
    text = query.creative_reframing or query.normalized_prompt
    return text.rstrip(".!?").strip() or "this project"


def _scene_plan(brief: CreativeBrief) -> list[tuple[str, str, list[str]]]:
    """(heading, visual, asset ids) for the body scenes."""
    plan: list[tuple[str, str, list[str]]] = []
    primary = brief.bucket(UtilizationBucket.PRIMARY)
    supporting = brief.bucket(UtilizationBucket.SUPPORTING)
    for number, asset_id in enumerate(primary, start=1):
        plan.append((f"Main content {number}", "Feature the primary asset", [asset_id]))
    if not primary:
        plan.append(("Main content", "Generated visuals from the brief", []))
    if supporting:
        plan.append(("Supporting details", "Layer supporting assets as b-roll", supporting))
    return plan


class ScriptGenerator:
    """Builds narration text from a creative brief and a creative profile."""

    def __init__(self, words_per_minute: int = 150) -> None:
        self.words_per_minute = words_per_minute

    def select_profile(
        self,
        brief: CreativeBrief,
        query: QueryAnalysis,
        asset_types: list[MediaType],
        profile_name: str | None = None,
    ) -> ProfileMatch:
        if profile_name:
            profile = get_profile(profile_name)
            if profile is not None:
                return ProfileMatch(
                    profile=profile,
                    score=profile.priority,
                    confidence=1.0,
                    matched_factors=["requested"],
                    method="requested",
                )
            logger.warning("unknown_profile_requested", profile=profile_name)
        return detect_profile(
            query.original_prompt,
            brief.unified_intent.primary_output_type,
            platform=brief.constraints.platform,
            asset_types=asset_types,
            duration_seconds=brief.constraints.duration_seconds,
        )

    async def generate(
        self,
        brief: CreativeBrief,
        query: QueryAnalysis,
        asset_types: list[MediaType],
        profile_name: str | None = None,
    ) -> Script:
        match = self.select_profile(brief, query, asset_types, profile_name)
        profile = match.profile
        subject = subject_of(query)

        lines: list[tuple[str, str, str, list[str]]] = [
            (
                "Hook",
                HOOKS.get(profile.name, DEFAULT_HOOK).format(subject=subject),
                "Title card",
                [],
            )
        ]
        for number, (heading, visual, asset_ids) in enumerate(_scene_plan(brief)):
            lines.append((heading, self._body_line(brief, number), visual, asset_ids))
        lines.append(("Closing", CLOSERS.get(profile.name, DEFAULT_CLOSER), "End card", []))

        scenes = self._build_scenes(profile, brief, lines)
        narration = " ".join(scene.narration for scene in scenes)
        words = count_words(narration)
        script = Script(
            profile=profile.name,
            title=brief.project_title,
            narration=narration,
            scenes=scenes,
            word_count=words,
            estimated_duration_seconds=estimate_duration(words, self.words_per_minute),
            pacing=profile.pacing,
            audio_style=profile.audio_style,
            profile_detection={
                "method": match.method,
                "confidence": match.confidence,
                "matched_factors": match.matched_factors,
            },
        )
        logger.info(
            "script_generated",
            profile=profile.name,
            scenes=script.scene_count,
            words=words,
        )
        return script

    def _body_line(self, brief: CreativeBrief, number: int) -> str:
        mood = brief.creative_synthesis.get("mood_integration", "neutral")
        style = brief.creative_synthesis.get("style_fusion", "to_be_defined")
        if number == 0:
            outcome = brief.unified_intent.target_outcome or brief.unified_intent.creative_direction
            return f"{outcome.rstrip('.')}."
        if style == "to_be_defined":
            return f"Every moment keeps the {mood} feeling going."
        return f"Every moment stays {style}, keeping the {mood} feeling going."

    def _build_scenes(
        self,
        profile: CreativeProfile,
        brief: CreativeBrief,
        lines: list[tuple[str, str, str, list[str]]],
    ) -> list[ScriptScene]:
        word_counts = [max(1, count_words(text)) for _, text, _, _ in lines]
        total_words = sum(word_counts)
        target = brief.constraints.duration_seconds or estimate_duration(
            total_words, self.words_per_minute
        )
        transitions = profile.transitions or ["cut"]
        overlays: list[str | None] = list(profile.text_overlays) or [None]

        scenes = []
        for index, (line, words) in enumerate(zip(lines, word_counts)):
            heading, text, visual, asset_ids = line
            scenes.append(
                ScriptScene(
                    index=index + 1,
                    heading=heading,
                    narration=text,
                    visual=visual,
                    duration_seconds=round(target * words / total_words, 1),
                    transition=transitions[index % len(transitions)],
                    text_overlay=overlays[index % len(overlays)],
                    asset_ids=list(asset_ids),
                )
            )
        return scenes
