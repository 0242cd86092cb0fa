"""Director narration: the human-readable feed of a running query."""

from uuid import UUID

from dreamcut.domain.analysis import AssetAnalysis, AudioAnalysis, ImageAnalysis, VideoAnalysis
from dreamcut.domain.enums import MediaType, MessageType
from dreamcut.domain.models import AssetRecord
from dreamcut.errors import PersistenceError
from dreamcut.logging import get_logger
from dreamcut.stages.synthesis import Conflict, CreativeBrief
from dreamcut.store.base import ProgressStore

logger = get_logger(__name__)

MEDIA_EMOJI: dict[MediaType, str] = {
    MediaType.IMAGE: "🖼️",
    MediaType.VIDEO: "🎥",
    MediaType.AUDIO: "🎵",
}


def summarize_analysis(analysis: AssetAnalysis) -> str:
    """One-line summary of an asset analysis."""
    quality = f"quality {analysis.quality_score:g}/10"
    if isinstance(analysis, VideoAnalysis):
        length = f"{analysis.duration_seconds:g}s" if analysis.duration_seconds else "unknown length"
        return f"{length} clip, {len(analysis.scenes)} scene(s), {quality}"
    if isinstance(analysis, AudioAnalysis):
        kind = "speech" if analysis.has_speech else "music" if analysis.has_music else "audio"
        return f"{analysis.tone} {kind}, {quality}"
    if isinstance(analysis, ImageAnalysis):
        subject = ", ".join(analysis.objects[:3]) or analysis.style
        return f"{subject}, {quality}"
    return quality


class Director:
    """Writes narration messages for one query to the progress store."""

    def __init__(self, store: ProgressStore, query_id: UUID) -> None:
        self.store = store
        self.query_id = query_id

    def say(
        self,
        type: MessageType,
        content: str,
        emoji: str | None = None,
        asset_id: UUID | None = None,
        data: dict | None = None,
    ) -> None:
        """Append a narration message; a failed write is logged, not raised."""
        try:
            self.store.add_message(
                self.query_id, type, content, emoji=emoji, asset_id=asset_id, data=data
            )
        except PersistenceError as e:
            logger.warning(
                "narration_write_failed",
                query_id=str(self.query_id),
                type=str(type),
                error=e.message,
            )

    def started(self) -> None:
        self.say(MessageType.STATUS, "Got your request. Let's break it down...", "🎬")

    def query_understood(self, intent: str, confidence: float) -> None:
        self.say(
            MessageType.STATUS,
            f"You want a {intent} (confidence {confidence:.0%}).",
            "🧠",
            data={"intent": intent, "confidence": confidence},
        )

    def asset_started(self, asset: AssetRecord) -> None:
        name = asset.filename or asset.descriptor().display_name
        self.say(
            MessageType.ASSET_START,
            f"Analyzing {asset.type}: {name}",
            MEDIA_EMOJI[asset.type],
            asset_id=asset.id,
        )

    def asset_completed(self, asset: AssetRecord, analysis: AssetAnalysis) -> None:
        name = asset.filename or asset.descriptor().display_name
        self.say(
            MessageType.ASSET_COMPLETE,
            f"{name}: {summarize_analysis(analysis)}",
            "✅",
            asset_id=asset.id,
            data={
                "quality_score": analysis.quality_score,
                "alignment_score": analysis.alignment.alignment_score,
                "role": str(analysis.alignment.role_in_project),
            },
        )

    def asset_failed(self, asset: AssetRecord, error: str) -> None:
        name = asset.filename or asset.descriptor().display_name
        self.say(
            MessageType.ERROR,
            f"Couldn't analyze {name}: {error}",
            "⚠️",
            asset_id=asset.id,
        )

    def conflict(self, conflict: Conflict) -> None:
        self.say(
            MessageType.CONFLICT,
            conflict.description,
            "⚠️",
            data={
                "conflict_type": conflict.conflict_type,
                "severity": str(conflict.severity),
                "resolution": conflict.resolution,
                "asset_ids": conflict.asset_ids,
            },
        )

    def duration_conflict(self, asset: AssetRecord, duration: float, target: float) -> None:
        name = asset.filename or asset.descriptor().display_name
        self.say(
            MessageType.CONFLICT,
            f"{name} is {duration:g}s but the target is {target:g}s; it will be trimmed",
            "✂️",
            asset_id=asset.id,
            data={
                "conflict_type": "duration_mismatch",
                "resolution": "trim_video",
                "duration_seconds": duration,
                "target_seconds": target,
            },
        )

    def merging(self) -> None:
        self.say(MessageType.MERGE, "Combining query + assets into creative brief...", "🎭")

    def brief_ready(self, brief: CreativeBrief) -> None:
        counts = brief.utilization_counts
        self.say(
            MessageType.FINAL,
            (
                f"{brief.project_title}: {counts['primary']} primary, "
                f"{counts['supporting']} supporting, {counts['reference']} reference asset(s). "
                f"Completeness {brief.completeness_score:.0%}."
            ),
            "📋",
            data={
                "alignment_score": brief.alignment_score,
                "completeness_score": brief.completeness_score,
                "gaps": len(brief.gaps),
                "conflicts": len(brief.conflicts),
            },
        )
        for direction in brief.suggested_directions:
            self.say(MessageType.SUGGESTION, direction, "💡")

    def ready(self) -> None:
        self.say(MessageType.FINAL, "Ready for production! 🚀", "✨")

    def cancelled(self) -> None:
        self.say(MessageType.STATUS, "Cancelled at your request.", "🛑")

    def failed(self, stage: str, error: str) -> None:
        self.say(
            MessageType.ERROR,
            f"Analysis failed at {stage}: {error}",
            "❌",
            data={"stage": stage},
        )
