"""Typed asset analysis results.

Each media kind has its own variant so synthesis can dispatch on the type
instead of probing optional fields. Variants share the alignment and
processing-needs blocks.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal

from dreamcut.domain.enums import AssetRole, MediaType, Severity


@dataclass
class Alignment:
    """How well an asset supports the user's request."""

    supports_query_intent: bool = False
    alignment_score: float = 0.0
    role_in_project: AssetRole = AssetRole.UNCLEAR
    usage_recommendations: list[str] = field(default_factory=list)


@dataclass
class ProcessingNeeds:
    """Post-processing an asset needs before production."""

    requires_upscaling: bool = False
    requires_enhancement: bool = False
    requires_style_transfer: bool = False
    requires_trimming: bool = False
    requires_noise_reduction: bool = False
    priority_level: Severity = Severity.LOW
    recommended_tools: list[str] = field(default_factory=list)

    @property
    def any_required(self) -> bool:
        return any(
            (
                self.requires_upscaling,
                self.requires_enhancement,
                self.requires_style_transfer,
                self.requires_trimming,
                self.requires_noise_reduction,
            )
        )


@dataclass(kw_only=True)
class BaseAnalysis:
    asset_id: str
    description: str
    quality_score: float = 5.0
    confidence: float = 0.8
    style: str = "unknown"
    mood: str = "neutral"
    alignment: Alignment = field(default_factory=Alignment)
    processing_needs: ProcessingNeeds = field(default_factory=ProcessingNeeds)
    model_used: str | None = None

    def text_corpus(self) -> str:
        """All free text in the analysis, used for keyword matching."""
        return self.description

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(kw_only=True)
class ImageAnalysis(BaseAnalysis):
    kind: Literal["image"] = "image"
    objects: list[str] = field(default_factory=list)
    colors: list[str] = field(default_factory=list)
    width: int | None = None
    height: int | None = None

    def text_corpus(self) -> str:
        return " ".join([self.description, *self.objects, *self.colors])


@dataclass(kw_only=True)
class VideoAnalysis(BaseAnalysis):
    kind: Literal["video"] = "video"
    scenes: list[str] = field(default_factory=list)
    duration_seconds: float | None = None
    has_audio: bool = False
    transcription: str | None = None

    def text_corpus(self) -> str:
        return " ".join([self.description, *self.scenes, self.transcription or ""])


@dataclass(kw_only=True)
class AudioAnalysis(BaseAnalysis):
    kind: Literal["audio"] = "audio"
    transcription: str | None = None
    duration_seconds: float | None = None
    tone: str = "neutral"
    has_speech: bool = False
    has_music: bool = False

    def text_corpus(self) -> str:
        return " ".join([self.description, self.transcription or ""])


AssetAnalysis = ImageAnalysis | VideoAnalysis | AudioAnalysis

ANALYSIS_TYPES: dict[MediaType, type[BaseAnalysis]] = {
    MediaType.IMAGE: ImageAnalysis,
    MediaType.VIDEO: VideoAnalysis,
    MediaType.AUDIO: AudioAnalysis,
}


def analysis_from_dict(data: dict[str, Any]) -> AssetAnalysis:
    """Rebuild a typed analysis from its stored dict form.

    Raises:
        ValueError: If the kind tag is missing or unknown
    """
    kind = data.get("kind")
    try:
        cls = ANALYSIS_TYPES[MediaType(kind)]
    except ValueError as e:
        raise ValueError(f"Unknown analysis kind: {kind!r}") from e

    known = {f.name for f in fields(cls)}
    values = {k: v for k, v in data.items() if k in known and k != "kind"}
    if isinstance(values.get("alignment"), dict):
        alignment = dict(values["alignment"])
        alignment["role_in_project"] = AssetRole(
            alignment.get("role_in_project", AssetRole.UNCLEAR)
        )
        values["alignment"] = Alignment(**alignment)
    if isinstance(values.get("processing_needs"), dict):
        needs = dict(values["processing_needs"])
        needs["priority_level"] = Severity(needs.get("priority_level", Severity.LOW))
        values["processing_needs"] = ProcessingNeeds(**needs)
    return cls(**values)  # type: ignore[return-value]
