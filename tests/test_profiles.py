"""Tests for creative profiles and profile detection."""

from dreamcut.domain.enums import Intent, MediaType
from dreamcut.presets import PROFILES, detect_profile, get_profile, get_profile_names


class TestProfileRegistry:
    """Tests for the profile registry."""

    def test_all_profiles_registered(self) -> None:
        names = get_profile_names()

        assert len(names) == 10
        assert "documentary_storytelling" in names
        assert set(names) == set(PROFILES)

    def test_get_profile_case_insensitive(self) -> None:
        profile = get_profile("Anime_Mode")

        assert profile is not None
        assert profile.display_name == "Anime Mode"
        assert profile.pacing == "fast"

    def test_unknown_profile(self) -> None:
        assert get_profile("vaporwave") is None

    def test_duration_range(self) -> None:
        profile = get_profile("ugc_influencer")
        assert profile is not None

        assert profile.fits_duration(30)
        assert not profile.fits_duration(120)


class TestDetectProfile:
    """Tests for scoring requests against profiles."""

    def test_keywords_dominate(self) -> None:
        match = detect_profile("Explain this tutorial lesson on fractions", Intent.VIDEO)

        assert match.profile.name == "educational_explainer"
        assert match.method == "multi-factor"
        assert "keywords: explain, tutorial, lesson" in match.matched_factors

    def test_platform_and_asset_types_add_score(self) -> None:
        plain = detect_profile("An anime opening with kawaii characters", Intent.VIDEO)
        rich = detect_profile(
            "An anime opening with kawaii characters",
            Intent.VIDEO,
            platform="TikTok",
            asset_types=[MediaType.IMAGE, MediaType.AUDIO],
            duration_seconds=30,
        )

        assert plain.profile.name == rich.profile.name == "anime_mode"
        assert rich.score == plain.score + 10 + 10 + 5
        assert "platform: tiktok" in rich.matched_factors
        assert "duration_range" in rich.matched_factors

    def test_confidence_is_capped(self) -> None:
        match = detect_profile(
            "finance stock market investment trading economy business financial",
            Intent.VIDEO,
            platform="youtube",
        )

        assert match.profile.name == "finance_explainer"
        assert match.confidence == 0.95

    def test_fallback_without_keywords(self) -> None:
        match = detect_profile("Something nice", Intent.VIDEO)

        assert match.method == "fallback"
        assert match.profile.name == "finance_explainer"
        assert match.confidence == 0.5
