"""Tests for the query analysis stage."""

import json

import httpx
import pytest

from dreamcut.adapters.llm.base import LLMResponse
from dreamcut.adapters.llm.stub import StubLLMProvider
from dreamcut.domain.enums import Intent
from dreamcut.errors import UpstreamError, UpstreamTimeoutError, ValidationError
from dreamcut.stages.query_analysis import (
    QueryAnalyzer,
    infer_intent,
    normalize_prompt,
    parse_query_analysis,
)


class ScriptedLLM(StubLLMProvider):
    """Returns a fixed reply, or raises a fixed error, for every call."""

    def __init__(self, content: str = "", error: Exception | None = None) -> None:
        self.content = content
        self.error = error

    async def complete(self, messages, temperature=0.7, max_tokens=4096, json_mode=False):
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content, model="scripted-model")


class TestHelpers:
    """Tests for prompt helpers."""

    def test_normalize_prompt(self) -> None:
        assert normalize_prompt("  i want   a a video ") == "I want a video."

    def test_normalize_keeps_terminal_punctuation(self) -> None:
        assert normalize_prompt("Make it pop!") == "Make it pop!"

    @pytest.mark.parametrize(
        "prompt,expected",
        [
            ("Cut a trailer for my film", Intent.VIDEO),
            ("Retouch this photo", Intent.IMAGE),
            ("Mix some background music", Intent.AUDIO),
            ("Something for my launch", Intent.MIXED),
        ],
    )
    def test_infer_intent(self, prompt: str, expected: Intent) -> None:
        assert infer_intent(prompt) == expected


class TestParseQueryAnalysis:
    """Tests for parsing model replies."""

    def test_missing_intent_block(self) -> None:
        with pytest.raises(ValidationError, match="primary_output_type"):
            parse_query_analysis({"modifiers": {}}, "Make a video")

    def test_unknown_output_type(self) -> None:
        with pytest.raises(ValidationError, match="Unknown output type"):
            parse_query_analysis({"intent": {"primary_output_type": "hologram"}}, "Make one")

    def test_declared_intent_wins(self) -> None:
        analysis = parse_query_analysis(
            {"intent": {"primary_output_type": "image", "confidence": 0.4}},
            "Make a poster",
            declared_intent=Intent.VIDEO,
        )
        assert analysis.intent.primary_output_type == Intent.VIDEO
        assert analysis.intent.confidence == 1.0

    def test_clamps_and_filters(self) -> None:
        analysis = parse_query_analysis(
            {
                "intent": {
                    "primary_output_type": "VIDEO",
                    "confidence": 3,
                    "secondary_types": ["audio", "video", "smell", "audio"],
                },
                "constraints": {"duration_seconds": "30", "fps": 24.0, "aspect_ratio": ""},
            },
            "Make a video",
        )
        assert analysis.intent.confidence == 1.0
        assert analysis.intent.secondary_types == [Intent.AUDIO]
        assert analysis.constraints.duration_seconds == 30.0
        assert analysis.constraints.fps == 24
        assert analysis.constraints.aspect_ratio is None


class TestQueryAnalyzer:
    """Tests for the analyzer against model providers."""

    @pytest.mark.asyncio
    async def test_stub_analysis(self, llm_provider) -> None:
        analyzer = QueryAnalyzer(llm_provider)

        analysis = await analyzer.analyze("Make a short video about ocean waves")

        assert analysis.intent.primary_output_type == Intent.VIDEO
        assert analysis.modifiers.style == "cinematic"
        assert analysis.gaps.missing_duration is True
        assert analysis.normalized_prompt == "Make a short video about ocean waves."
        assert analysis.model_used == "stub-model"

    @pytest.mark.asyncio
    async def test_accepts_fenced_json(self) -> None:
        reply = json.dumps({"intent": {"primary_output_type": "audio", "confidence": 0.7}})
        analyzer = QueryAnalyzer(ScriptedLLM(f"```json\n{reply}\n```"))

        analysis = await analyzer.analyze("Record a jingle")

        assert analysis.intent.primary_output_type == Intent.AUDIO
        assert analysis.model_used == "scripted-model"

    @pytest.mark.asyncio
    async def test_unparsable_reply(self) -> None:
        analyzer = QueryAnalyzer(ScriptedLLM("I think you want a video"))

        with pytest.raises(ValidationError) as exc_info:
            await analyzer.analyze("Make a video")
        assert exc_info.value.stage == "query_analysis"

    @pytest.mark.asyncio
    async def test_timeout_is_translated(self) -> None:
        analyzer = QueryAnalyzer(ScriptedLLM(error=httpx.ReadTimeout("slow")))

        with pytest.raises(UpstreamTimeoutError):
            await analyzer.analyze("Make a video")

    @pytest.mark.asyncio
    async def test_http_error_is_translated(self) -> None:
        request = httpx.Request("POST", "https://api.example.com/v1/chat")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)
        analyzer = QueryAnalyzer(ScriptedLLM(error=error))

        with pytest.raises(UpstreamError) as exc_info:
            await analyzer.analyze("Make a video")
        assert exc_info.value.status_code == 503
