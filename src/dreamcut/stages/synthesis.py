"""Combination/synthesis: cross-reference the request with every analyzed asset.

Produces the creative brief: unified intent, unified constraints, exactly one
utilization bucket per asset, gaps and conflicts on the shared severity scale,
a production plan and overall alignment/completeness scores.
"""

import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

from dreamcut.adapters.llm.base import LLMProvider, conversation
from dreamcut.domain.analysis import AssetAnalysis, AudioAnalysis, ImageAnalysis, VideoAnalysis
from dreamcut.domain.enums import AssetRole, Intent, MediaType, Severity, UtilizationBucket
from dreamcut.errors import ValidationError
from dreamcut.logging import get_logger
from dreamcut.stages.base import as_str, call_model, clamp, parse_json_object
from dreamcut.stages.query_analysis import QueryAnalysis

logger = get_logger(__name__)

STAGE = "synthesis"

PLATFORM_RULES: dict[str, dict[str, Any]] = {
    "instagram": {"max_duration_seconds": 60, "aspect_ratios": ["1:1", "9:16"]},
    "youtube": {"max_duration_seconds": 3600, "aspect_ratios": ["16:9"]},
    "tiktok": {"max_duration_seconds": 180, "aspect_ratios": ["9:16"]},
}

FORMAT_REQUIREMENTS: dict[Intent, list[str]] = {
    Intent.VIDEO: ["mp4", "h264"],
    Intent.IMAGE: ["png", "jpg"],
    Intent.AUDIO: ["mp3", "wav"],
    Intent.MIXED: ["mp4", "png", "mp3"],
}

CONTENT_CREATION_BASE_MINUTES: dict[Intent, int] = {
    Intent.VIDEO: 45,
    Intent.MIXED: 45,
    Intent.AUDIO: 30,
    Intent.IMAGE: 20,
}

MEDIA_INTENT: dict[MediaType, Intent] = {
    MediaType.IMAGE: Intent.IMAGE,
    MediaType.VIDEO: Intent.VIDEO,
    MediaType.AUDIO: Intent.AUDIO,
}


@dataclass
class UnifiedIntent:
    primary_output_type: Intent
    confidence: float
    secondary_outputs: list[Intent] = field(default_factory=list)
    is_mixed: bool = False
    creative_direction: str = ""
    target_outcome: str = ""
    reasoning: str = ""
    direction_source: str = "fallback"


@dataclass
class UnifiedConstraints:
    duration_seconds: float | None = None
    aspect_ratio: str | None = None
    platform: str | None = None
    target_audience: str | None = None
    quality_target: str = "high"
    format_requirements: list[str] = field(default_factory=list)
    platform_requirements: dict[str, Any] = field(default_factory=dict)
    budget_tier: str = "standard"
    complexity: str = "simple"


@dataclass
class AssetAssignment:
    asset_id: str
    media_type: MediaType
    bucket: UtilizationBucket
    role: str
    combined_score: float
    processing_priority: Severity


@dataclass
class Gap:
    category: str
    description: str
    severity: Severity
    suggestion: str


@dataclass
class Conflict:
    conflict_type: str
    description: str
    severity: Severity
    resolution: str
    asset_ids: list[str] = field(default_factory=list)


@dataclass
class ProductionStep:
    order: int
    name: str
    description: str
    estimated_minutes_min: int
    estimated_minutes_max: int
    asset_ids: list[str] = field(default_factory=list)


@dataclass
class ProductionPlan:
    steps: list[ProductionStep]
    generated_content_only: bool = False

    @property
    def total_minutes_min(self) -> int:
        return sum(s.estimated_minutes_min for s in self.steps)

    @property
    def total_minutes_max(self) -> int:
        return sum(s.estimated_minutes_max for s in self.steps)


@dataclass
class CreativeBrief:
    """Synthesized creative brief; the payload of a completed query."""

    project_title: str
    unified_intent: UnifiedIntent
    constraints: UnifiedConstraints
    assignments: list[AssetAssignment]
    gaps: list[Gap]
    conflicts: list[Conflict]
    production_plan: ProductionPlan
    creative_synthesis: dict[str, Any]
    suggested_directions: list[str]
    alignment_score: float
    completeness_score: float
    failed_asset_ids: list[str] = field(default_factory=list)
    model_used: str | None = None

    def bucket(self, bucket: UtilizationBucket) -> list[str]:
        return [a.asset_id for a in self.assignments if a.bucket == bucket]

    @property
    def utilization_counts(self) -> dict[str, int]:
        counts = {str(b): 0 for b in UtilizationBucket}
        for assignment in self.assignments:
            counts[str(assignment.bucket)] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["asset_utilization"] = {str(b): self.bucket(b) for b in UtilizationBucket}
        data["asset_utilization_counts"] = self.utilization_counts
        data["production_plan"]["total_minutes_min"] = self.production_plan.total_minutes_min
        data["production_plan"]["total_minutes_max"] = self.production_plan.total_minutes_max
        return data


# =============================================================================
# Building blocks
# =============================================================================


def quality_target(mean_quality: float) -> str:
    if mean_quality >= 9:
        return "cinema"
    if mean_quality >= 7:
        return "professional"
    if mean_quality >= 5:
        return "high"
    return "standard"


def mean(values: list[float], default: float) -> float:
    return sum(values) / len(values) if values else default


def assign_bucket(analysis: AssetAnalysis) -> UtilizationBucket:
    """Every asset lands in exactly one bucket; checked in priority order."""
    role = analysis.alignment.role_in_project
    score = analysis.alignment.alignment_score
    if role == AssetRole.PRIMARY_CONTENT and score > 0.6:
        return UtilizationBucket.PRIMARY
    if role == AssetRole.REFERENCE_MATERIAL or 0.3 < score <= 0.6:
        return UtilizationBucket.REFERENCE
    if role == AssetRole.SUPPORTING_ELEMENT or score > 0.1:
        return UtilizationBucket.SUPPORTING
    return UtilizationBucket.UNUSED


def primary_role(score: float) -> str:
    if score > 0.8:
        return "hero"
    if score > 0.6:
        return "main_content"
    if score > 0.4:
        return "key_element"
    return "supporting"


def support_role(analysis: AssetAnalysis) -> str:
    if isinstance(analysis, AudioAnalysis):
        return "audio_layer"
    if isinstance(analysis, VideoAnalysis):
        return "b_roll"
    if analysis.alignment.alignment_score > 0.3:
        return "overlay"
    if analysis.quality_score >= 7:
        return "background"
    return "texture"


def media_type_of(analysis: AssetAnalysis) -> MediaType:
    return MediaType(analysis.kind)


def assign_assets(analyses: list[AssetAnalysis]) -> list[AssetAssignment]:
    assignments = []
    for analysis in analyses:
        bucket = assign_bucket(analysis)
        score = analysis.alignment.alignment_score
        combined = round((score + analysis.quality_score / 10) / 2, 3)
        if bucket == UtilizationBucket.PRIMARY:
            role = primary_role(score)
        elif bucket == UtilizationBucket.SUPPORTING:
            role = support_role(analysis)
        elif bucket == UtilizationBucket.REFERENCE:
            role = "style_reference"
        else:
            role = "unused"

        if combined >= 0.75:
            priority = Severity.HIGH
        elif combined >= 0.5:
            priority = Severity.MEDIUM
        else:
            priority = Severity.LOW

        assignments.append(
            AssetAssignment(
                asset_id=analysis.asset_id,
                media_type=media_type_of(analysis),
                bucket=bucket,
                role=role,
                combined_score=combined,
                processing_priority=priority,
            )
        )
    return assignments


def unify_intent(query: QueryAnalysis, analyses: list[AssetAnalysis]) -> UnifiedIntent:
    primary = query.intent.primary_output_type
    confidence = query.intent.confidence
    if any(a.alignment.supports_query_intent for a in analyses):
        confidence = min(1.0, confidence + 0.1)

    secondary = list(query.intent.secondary_types)
    for analysis in analyses:
        if assign_bucket(analysis) in (UtilizationBucket.PRIMARY, UtilizationBucket.SUPPORTING):
            media_intent = MEDIA_INTENT[media_type_of(analysis)]
            if media_intent != primary and media_intent not in secondary:
                secondary.append(media_intent)

    return UnifiedIntent(
        primary_output_type=primary,
        confidence=round(confidence, 3),
        secondary_outputs=secondary,
        is_mixed=primary == Intent.MIXED or bool(secondary),
        reasoning=query.intent.reasoning,
    )


def unify_constraints(query: QueryAnalysis, analyses: list[AssetAnalysis]) -> UnifiedConstraints:
    stated = query.constraints
    platform = stated.platform.lower() if stated.platform else None
    rules = PLATFORM_RULES.get(platform or "", {})

    duration = stated.duration_seconds
    if duration is not None and rules:
        duration = min(duration, rules["max_duration_seconds"])
    aspect_ratio = stated.aspect_ratio or (rules["aspect_ratios"][0] if rules else None)

    target = quality_target(mean([a.quality_score for a in analyses], 5.0))
    return UnifiedConstraints(
        duration_seconds=duration,
        aspect_ratio=aspect_ratio,
        platform=platform,
        target_audience=stated.target_audience,
        quality_target=target,
        format_requirements=list(FORMAT_REQUIREMENTS[query.intent.primary_output_type]),
        platform_requirements=dict(rules),
        budget_tier="premium" if target in ("cinema", "professional") else "standard",
    )


def find_conflicts(
    query: QueryAnalysis,
    analyses: list[AssetAnalysis],
    target_duration_seconds: float,
) -> list[Conflict]:
    conflicts: list[Conflict] = []
    intent = query.intent.primary_output_type
    videos = [a for a in analyses if isinstance(a, VideoAnalysis)]

    if intent == Intent.VIDEO and analyses and not videos:
        conflicts.append(
            Conflict(
                conflict_type="intent_vs_assets",
                description="A video was requested but no video assets were provided",
                severity=Severity.MEDIUM,
                resolution="animate_still_assets",
                asset_ids=[a.asset_id for a in analyses],
            )
        )

    limit = query.constraints.duration_seconds or target_duration_seconds
    for video in videos:
        if video.duration_seconds and video.duration_seconds > limit:
            conflicts.append(
                Conflict(
                    conflict_type="duration_mismatch",
                    description=(
                        f"Video is {video.duration_seconds:g}s but the target is {limit:g}s"
                    ),
                    severity=Severity.MEDIUM,
                    resolution="trim_video",
                    asset_ids=[video.asset_id],
                )
            )

    styles = {a.style for a in analyses if a.style and a.style != "unknown"}
    if len(styles) > 2:
        conflicts.append(
            Conflict(
                conflict_type="asset_vs_asset",
                description=f"Assets mix {len(styles)} styles: {', '.join(sorted(styles))}",
                severity=Severity.LOW,
                resolution="harmonize_styles",
                asset_ids=[a.asset_id for a in analyses],
            )
        )
    return conflicts


def find_gaps(
    query: QueryAnalysis,
    analyses: list[AssetAnalysis],
    assignments: list[AssetAssignment],
    failed_asset_ids: list[str],
) -> list[Gap]:
    gaps: list[Gap] = []
    buckets = Counter(a.bucket for a in assignments)
    intent = query.intent.primary_output_type

    if not buckets[UtilizationBucket.PRIMARY]:
        gaps.append(
            Gap(
                category="content",
                description="No asset can serve as primary content",
                severity=Severity.CRITICAL,
                suggestion="Generate the core content from the prompt",
            )
        )
    if not query.modifiers.style and not buckets[UtilizationBucket.REFERENCE]:
        gaps.append(
            Gap(
                category="style",
                description="No style direction and no reference material",
                severity=Severity.HIGH,
                suggestion="Pick a visual style or provide a reference asset",
            )
        )
    if intent == Intent.VIDEO and query.constraints.duration_seconds is None:
        gaps.append(
            Gap(
                category="technical",
                description="Target video duration is not specified",
                severity=Severity.MEDIUM,
                suggestion="Specify a target duration",
            )
        )
    low_quality = [a.asset_id for a in analyses if a.quality_score < 6]
    if low_quality:
        gaps.append(
            Gap(
                category="quality",
                description=f"{len(low_quality)} asset(s) fall below production quality",
                severity=Severity.MEDIUM,
                suggestion="Enhance or replace low-quality assets",
            )
        )
    if failed_asset_ids:
        gaps.append(
            Gap(
                category="asset_failure",
                description=f"{len(failed_asset_ids)} asset(s) could not be analyzed",
                severity=Severity.MEDIUM,
                suggestion="Re-upload the failed assets or continue without them",
            )
        )
    if intent in (Intent.IMAGE, Intent.VIDEO) and not query.constraints.aspect_ratio:
        gaps.append(
            Gap(
                category="missing_element",
                description="Aspect ratio is not specified",
                severity=Severity.LOW,
                suggestion="Specify an aspect ratio (16:9, 9:16, 1:1)",
            )
        )
    if not query.constraints.target_audience:
        gaps.append(
            Gap(
                category="missing_element",
                description="Target audience is not specified",
                severity=Severity.LOW,
                suggestion="Describe who the piece is for",
            )
        )
    return gaps


def completeness_score(gaps: list[Gap]) -> float:
    critical = sum(1 for g in gaps if g.severity == Severity.CRITICAL)
    high = sum(1 for g in gaps if g.severity == Severity.HIGH)
    essential_missing = sum(
        1 for g in gaps if g.category == "missing_element" and "aspect ratio" in g.description.lower()
    )
    score = 1.0 - 0.3 * critical - 0.15 * high - 0.2 * essential_missing
    return round(clamp(score, 0.1, 1.0), 3)


def complexity_level(
    assignments: list[AssetAssignment], conflicts: list[Conflict], gaps: list[Gap]
) -> str:
    points = len([a for a in assignments if a.bucket != UtilizationBucket.UNUSED])
    points += len(conflicts)
    points += sum(1 for g in gaps if g.severity.rank >= Severity.HIGH.rank)
    if points < 3:
        return "simple"
    if points < 6:
        return "moderate"
    return "complex"


def build_production_plan(
    intent: Intent,
    analyses: list[AssetAnalysis],
    assignments: list[AssetAssignment],
) -> ProductionPlan:
    by_id = {a.asset_id: a for a in analyses}
    used = [a for a in assignments if a.bucket != UtilizationBucket.UNUSED]
    primary = [a.asset_id for a in used if a.bucket == UtilizationBucket.PRIMARY]
    supporting = [
        a.asset_id
        for a in used
        if a.bucket in (UtilizationBucket.SUPPORTING, UtilizationBucket.REFERENCE)
    ]
    needs_work = [a.asset_id for a in used if by_id[a.asset_id].processing_needs.any_required]

    steps: list[ProductionStep] = []
    if needs_work:
        steps.append(
            ProductionStep(
                order=0,
                name="Asset Enhancement",
                description="Upscale, enhance, trim or clean up assets before use",
                estimated_minutes_min=15,
                estimated_minutes_max=30,
                asset_ids=needs_work,
            )
        )

    base = CONTENT_CREATION_BASE_MINUTES[intent] + 10 * len(used)
    steps.append(
        ProductionStep(
            order=0,
            name="Content Creation",
            description=(
                f"Produce the {intent} around the primary assets"
                if primary
                else f"Generate the {intent} from the prompt"
            ),
            estimated_minutes_min=base,
            estimated_minutes_max=int(base * 1.5),
            asset_ids=primary,
        )
    )
    if supporting:
        steps.append(
            ProductionStep(
                order=0,
                name="Asset Integration",
                description="Layer supporting and reference assets into the piece",
                estimated_minutes_min=20,
                estimated_minutes_max=45,
                asset_ids=supporting,
            )
        )
    steps.append(
        ProductionStep(
            order=0,
            name="Final Polish",
            description="Color, timing and audio pass before delivery",
            estimated_minutes_min=10,
            estimated_minutes_max=20,
        )
    )
    for index, step in enumerate(steps, start=1):
        step.order = index

    return ProductionPlan(steps=steps, generated_content_only=not primary and not supporting)


def creative_synthesis(
    query: QueryAnalysis,
    analyses: list[AssetAnalysis],
    assignments: list[AssetAssignment],
) -> dict[str, Any]:
    styles = Counter(a.style for a in analyses if a.style != "unknown")
    moods = Counter(a.mood for a in analyses if a.mood != "neutral")
    primary_count = sum(1 for a in assignments if a.bucket == UtilizationBucket.PRIMARY)

    if primary_count <= 1:
        narrative = "single_focus"
    elif primary_count <= 3:
        narrative = "sequential"
    else:
        narrative = "montage"

    has_audio = any(isinstance(a, AudioAnalysis) for a in analyses)
    has_visual = any(isinstance(a, (ImageAnalysis, VideoAnalysis)) for a in analyses)
    if has_audio and has_visual:
        audio_visual = "sync_visuals_to_audio"
    elif query.intent.primary_output_type in (Intent.VIDEO, Intent.MIXED):
        audio_visual = "generate_soundtrack"
    else:
        audio_visual = "not_applicable"

    ranked = sorted(
        (a for a in assignments if a.bucket != UtilizationBucket.UNUSED),
        key=lambda a: a.combined_score,
        reverse=True,
    )
    return {
        "style_fusion": query.modifiers.style
        or (styles.most_common(1)[0][0] if styles else "to_be_defined"),
        "mood_integration": query.modifiers.mood
        or (moods.most_common(1)[0][0] if moods else "neutral"),
        "narrative_structure": narrative,
        "visual_hierarchy": [a.asset_id for a in ranked],
        "audio_visual_alignment": audio_visual,
        "brand_voice": query.modifiers.aesthetic or query.modifiers.genre or "neutral",
    }


def project_title(query: QueryAnalysis) -> str:
    words = [w for w in re.findall(r"[A-Za-z0-9']+", query.normalized_prompt) if len(w) > 3]
    subject = " ".join(w.capitalize() for w in words[:3]) or "Untitled"
    return f"{str(query.intent.primary_output_type).capitalize()} Project: {subject}"


def fallback_direction(query: QueryAnalysis, synthesis: dict[str, Any]) -> tuple[str, str, str]:
    intent = query.intent.primary_output_type
    reframed = query.creative_reframing or query.normalized_prompt
    return (
        f"Create a {synthesis['style_fusion']} {intent} with a {synthesis['mood_integration']} "
        f"mood: {reframed}",
        f"A finished {intent} that matches the request",
        "Derived from the request and asset analysis",
    )


def suggested_directions(brief_direction: str, gaps: list[Gap], conflicts: list[Conflict]) -> list[str]:
    directions = [brief_direction]
    for gap in sorted(gaps, key=lambda g: g.severity.rank, reverse=True):
        if gap.severity.rank >= Severity.MEDIUM.rank:
            directions.append(gap.suggestion)
    directions.extend(c.resolution.replace("_", " ").capitalize() for c in conflicts)
    seen: list[str] = []
    for direction in directions:
        if direction and direction not in seen:
            seen.append(direction)
    return seen[:5]


# =============================================================================
# Stage executor
# =============================================================================


class Synthesizer:
    """Combines the query analysis with all successful asset analyses."""

    SYSTEM_PROMPT = """You are DreamCut's creative director. Given a creative request and a
summary of the available assets, state the creative direction for the project.

Respond with a JSON object:
{
    "creative_direction": "one or two sentences",
    "target_outcome": "what the finished piece achieves",
    "reasoning": "why this direction fits the request and assets"
}"""

    def __init__(
        self,
        llm_provider: LLMProvider | None = None,
        target_duration_seconds: float = 30.0,
    ) -> None:
        self.llm = llm_provider
        self.target_duration_seconds = target_duration_seconds

    async def synthesize(
        self,
        query: QueryAnalysis,
        analyses: list[AssetAnalysis],
        failed_asset_ids: list[str] | None = None,
    ) -> CreativeBrief:
        """Build the creative brief. Works with zero analyses.

        Raises:
            UpstreamTimeoutError: Creative direction call timed out
            UpstreamError: Creative direction call failed
        """
        failed = list(failed_asset_ids or [])
        intent = unify_intent(query, analyses)
        constraints = unify_constraints(query, analyses)
        assignments = assign_assets(analyses)
        conflicts = find_conflicts(query, analyses, self.target_duration_seconds)
        gaps = find_gaps(query, analyses, assignments, failed)
        constraints.complexity = complexity_level(assignments, conflicts, gaps)
        synthesis = creative_synthesis(query, analyses, assignments)
        plan = build_production_plan(intent.primary_output_type, analyses, assignments)
        title = project_title(query)

        direction, outcome, reasoning = fallback_direction(query, synthesis)
        model_used = None
        if self.llm is not None:
            model_used, model_direction = await self._creative_direction(
                title, query, assignments, synthesis
            )
            if model_direction is not None:
                direction, outcome, reasoning = model_direction
                intent.direction_source = "model"
        intent.creative_direction = direction
        intent.target_outcome = outcome
        intent.reasoning = reasoning or intent.reasoning

        brief = CreativeBrief(
            project_title=title,
            unified_intent=intent,
            constraints=constraints,
            assignments=assignments,
            gaps=gaps,
            conflicts=conflicts,
            production_plan=plan,
            creative_synthesis=synthesis,
            suggested_directions=suggested_directions(direction, gaps, conflicts),
            alignment_score=round(
                mean([a.alignment.alignment_score for a in analyses], 0.5), 3
            ),
            completeness_score=completeness_score(gaps),
            failed_asset_ids=failed,
            model_used=model_used,
        )

        logger.info(
            "synthesis_complete",
            assets=len(analyses),
            failed_assets=len(failed),
            gaps=len(gaps),
            conflicts=len(conflicts),
            completeness=brief.completeness_score,
        )
        return brief

    async def _creative_direction(
        self,
        title: str,
        query: QueryAnalysis,
        assignments: list[AssetAssignment],
        synthesis: dict[str, Any],
    ) -> tuple[str, tuple[str, str, str] | None]:
        """Ask the model for a creative direction; None when the reply is unusable."""
        assert self.llm is not None
        summary = ", ".join(f"{a.media_type}:{a.bucket}:{a.role}" for a in assignments) or "none"
        user_prompt = "\n".join(
            [
                f"Project title: {title}",
                f"User request: {query.normalized_prompt}",
                f"Intent: {query.intent.primary_output_type}",
                f"Style: {synthesis['style_fusion']}",
                f"Mood: {synthesis['mood_integration']}",
                f"Assets: {summary}",
            ]
        )
        response = await call_model(
            self.llm,
            conversation(self.SYSTEM_PROMPT, user_prompt),
            stage=STAGE,
            temperature=0.7,
            max_tokens=800,
        )
        try:
            data = parse_json_object(response.content, STAGE)
        except ValidationError:
            logger.warning("creative_direction_fallback", reason="unparsable_response")
            return response.model, None

        direction = as_str(data.get("creative_direction"))
        if direction is None:
            logger.warning("creative_direction_fallback", reason="missing_direction")
            return response.model, None
        return response.model, (
            direction,
            as_str(data.get("target_outcome"), "") or "",
            as_str(data.get("reasoning"), "") or "",
        )
