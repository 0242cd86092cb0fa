"""Tests for domain models."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from dreamcut.domain.analysis import (
    Alignment,
    AudioAnalysis,
    ImageAnalysis,
    VideoAnalysis,
    analysis_from_dict,
)
from dreamcut.domain.enums import (
    AssetRole,
    AssetStatus,
    Intent,
    MediaType,
    QueryStatus,
    Severity,
)
from dreamcut.domain.models import AssetDescriptor, AssetRecord, QueryRecord, to_jsonable
from dreamcut.errors import InsufficientAssetsError, InvalidTransitionError, PersistenceError


class TestEnums:
    """Tests for domain enumerations."""

    def test_severity_rank_is_ordinal(self) -> None:
        """Severity ranks follow low < medium < high < critical."""
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4

    def test_string_values(self) -> None:
        """Enums serialize as their plain string values."""
        assert str(QueryStatus.PROCESSING) == "processing"
        assert str(MediaType.AUDIO) == "audio"
        assert Intent("mixed") == Intent.MIXED


class TestAssetDescriptor:
    """Tests for AssetDescriptor."""

    def test_display_name_prefers_filename(self) -> None:
        descriptor = AssetDescriptor(
            url="https://cdn.example.com/a/b.png", type=MediaType.IMAGE, filename="hero.png"
        )
        assert descriptor.display_name == "hero.png"

    def test_display_name_from_url(self) -> None:
        descriptor = AssetDescriptor(
            url="https://cdn.example.com/uploads/clip.mp4?sig=abc", type=MediaType.VIDEO
        )
        assert descriptor.display_name == "clip.mp4"

    def test_display_name_unknown(self) -> None:
        descriptor = AssetDescriptor(url="https://cdn.example.com/", type=MediaType.AUDIO)
        assert descriptor.display_name == "unknown"


class TestRecords:
    """Tests for query and asset records."""

    def test_query_terminal_states(self) -> None:
        query = QueryRecord(id=uuid4(), user_id="u1", user_prompt="hi", intent=Intent.IMAGE)
        assert query.is_terminal is False

        query.status = QueryStatus.COMPLETED
        assert query.is_terminal is True

        query.status = QueryStatus.FAILED
        assert query.is_terminal is True

    def test_asset_descriptor_roundtrip(self) -> None:
        asset = AssetRecord(
            id=uuid4(),
            query_id=uuid4(),
            url="https://cdn.example.com/song.mp3",
            type=MediaType.AUDIO,
            user_description="theme song",
            metadata={"duration_seconds": 12},
        )
        descriptor = asset.descriptor()

        assert descriptor.description == "theme song"
        assert descriptor.metadata == {"duration_seconds": 12}
        assert asset.status == AssetStatus.PENDING
        assert asset.is_terminal is False

    def test_to_jsonable(self) -> None:
        query_id = uuid4()
        stamp = datetime(2025, 1, 2, tzinfo=UTC)

        result = to_jsonable({"id": query_id, "items": [stamp, (1, 2)]})

        assert result == {"id": str(query_id), "items": [stamp.isoformat(), [1, 2]]}

    def test_query_to_dict(self) -> None:
        query = QueryRecord(id=uuid4(), user_id="u1", user_prompt="hi", intent=Intent.VIDEO)
        data = query.to_dict()

        assert data["id"] == str(query.id)
        assert data["status"] == "processing"
        assert data["progress"] == 0


class TestAnalysis:
    """Tests for typed asset analyses."""

    def test_variants_carry_kind(self) -> None:
        assert ImageAnalysis(asset_id="a", description="d").kind == "image"
        assert VideoAnalysis(asset_id="a", description="d").kind == "video"
        assert AudioAnalysis(asset_id="a", description="d").kind == "audio"

    def test_from_dict_restores_variant(self) -> None:
        original = VideoAnalysis(
            asset_id="v1",
            description="A city at night",
            scenes=["skyline", "traffic"],
            duration_seconds=42.0,
            alignment=Alignment(
                supports_query_intent=True,
                alignment_score=0.9,
                role_in_project=AssetRole.PRIMARY_CONTENT,
            ),
        )
        original.processing_needs.priority_level = Severity.HIGH

        restored = analysis_from_dict(original.to_dict())

        assert isinstance(restored, VideoAnalysis)
        assert restored.duration_seconds == 42.0
        assert restored.alignment.role_in_project == AssetRole.PRIMARY_CONTENT
        assert restored.processing_needs.priority_level == Severity.HIGH

    def test_from_dict_rejects_unknown_kind(self) -> None:
        with pytest.raises(ValueError, match="Unknown analysis kind"):
            analysis_from_dict({"kind": "hologram", "asset_id": "x", "description": "d"})

    def test_text_corpus_includes_transcription(self) -> None:
        audio = AudioAnalysis(asset_id="a", description="Voice memo", transcription="hello world")
        assert "hello world" in audio.text_corpus()


class TestErrors:
    """Tests for error codes."""

    def test_error_codes(self) -> None:
        assert InsufficientAssetsError("x").error_code == "INSUFFICIENT_ASSETS"
        assert isinstance(InvalidTransitionError("x"), PersistenceError)
        assert InvalidTransitionError("x").error_code == "INVALID_TRANSITION"
