"""Tests for the command-line interface."""

import httpx
import pytest
import typer
from typer.testing import CliRunner

from dreamcut.cli import app, parse_asset
from dreamcut.domain.enums import MediaType

runner = CliRunner()


class TestParseAsset:
    """Tests for URL:TYPE parsing."""

    def test_url_with_scheme(self) -> None:
        descriptor = parse_asset("https://cdn.example.com/wave.jpg:image")

        assert descriptor.url == "https://cdn.example.com/wave.jpg"
        assert descriptor.type == MediaType.IMAGE

    def test_missing_type(self) -> None:
        with pytest.raises(typer.BadParameter):
            parse_asset("wave.jpg")

    def test_unknown_type(self) -> None:
        with pytest.raises(typer.BadParameter, match="Unknown asset type"):
            parse_asset("https://cdn.example.com/model.obj:mesh")


class TestCommands:
    """Tests for CLI commands."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "DreamCut v" in result.output

    def test_analyze_streams_messages(self) -> None:
        result = runner.invoke(
            app,
            [
                "analyze",
                "Make a video about ocean waves",
                "--asset",
                "https://cdn.example.com/wave.jpg:image",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Got your request" in result.output
        assert "Ready for production" in result.output
        assert "Video Project" in result.output

    def test_analyze_rejects_bad_intent(self) -> None:
        result = runner.invoke(app, ["analyze", "Make a poster", "--intent", "hologram"])

        assert result.exit_code != 0

    def test_profiles(self) -> None:
        result = runner.invoke(app, ["profiles"])

        assert result.exit_code == 0
        assert "Documentary Storytelling" in result.output

    def test_status_reports_api_errors(self, monkeypatch) -> None:
        monkeypatch.setattr(
            httpx,
            "get",
            lambda url, timeout: httpx.Response(
                404, json={"success": False, "error": "Query not found", "error_code": "NOT_FOUND"}
            ),
        )

        result = runner.invoke(app, ["status", "00000000-0000-0000-0000-000000000000"])

        assert result.exit_code == 1
        assert "Query not found" in result.output

    def test_status_without_api(self, monkeypatch) -> None:
        def refuse(url, timeout):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx, "get", refuse)

        result = runner.invoke(app, ["status", "00000000-0000-0000-0000-000000000000"])

        assert result.exit_code == 1
        assert "Cannot connect to API" in result.output
