"""Creative profile definitions for script generation.

A profile is a named style template: how the piece is paced, cut, scored and
captioned. Script generation picks one by scoring the request against each
profile's detection criteria.
"""

from dataclasses import dataclass, field

from dreamcut.domain.enums import Intent, MediaType

VISUAL_INTENTS = (Intent.IMAGE, Intent.VIDEO, Intent.MIXED)
ALL_MEDIA = (MediaType.IMAGE, MediaType.VIDEO, MediaType.AUDIO)


@dataclass(frozen=True)
class CreativeProfile:
    """A creative style template.

    Attributes:
        name: Unique identifier for the profile
        display_name: Human-readable name
        description: Brief description of the style
        keywords: Prompt keywords that signal this profile
        intents: Output intents the profile applies to
        platforms: Platforms the profile is built for
        asset_types: Media types the profile works with
        min_duration_seconds: Shortest duration the profile suits
        max_duration_seconds: Longest duration the profile suits
        pacing: Pacing style of generated scripts
        transitions: Preferred scene transitions
        editing_conventions: Editing rules of thumb
        audio_style: Music and narration direction
        text_overlays: Typical on-screen text
        priority: Tie-breaker, higher wins
    """

    name: str
    display_name: str
    description: str
    keywords: list[str]
    intents: tuple[Intent, ...] = VISUAL_INTENTS
    platforms: list[str] = field(default_factory=list)
    asset_types: tuple[MediaType, ...] = ALL_MEDIA
    min_duration_seconds: float = 0
    max_duration_seconds: float = 3600
    pacing: str = "moderate"
    transitions: list[str] = field(default_factory=list)
    editing_conventions: list[str] = field(default_factory=list)
    audio_style: str = ""
    text_overlays: list[str] = field(default_factory=list)
    priority: int = 50

    def fits_duration(self, duration_seconds: float) -> bool:
        return self.min_duration_seconds <= duration_seconds <= self.max_duration_seconds


# =============================================================================
# PROFILE DEFINITIONS
# =============================================================================

EDUCATIONAL_EXPLAINER = CreativeProfile(
    name="educational_explainer",
    display_name="Educational Explainer",
    description="Clear step-by-step teaching with diagrams and narration",
    keywords=["explain", "teach", "learn", "tutorial", "how to", "guide", "education", "course", "lesson"],
    platforms=["youtube", "linkedin", "educational"],
    min_duration_seconds=30,
    max_duration_seconds=600,
    pacing="steady",
    transitions=["fade", "cut", "dissolve"],
    editing_conventions=["Simple cuts", "Fade transitions", "Clear pacing"],
    audio_style="Clear, professional narration",
    text_overlays=["Educational captions", "Key points", "Step numbers"],
    priority=90,
)

ANIME_MODE = CreativeProfile(
    name="anime_mode",
    display_name="Anime Mode",
    description="High-energy anime styling with bold colors and dynamic cuts",
    keywords=["anime", "manga", "japanese", "kawaii", "otaku", "weeb", "chibi", "shounen", "shoujo"],
    platforms=["tiktok", "instagram", "youtube"],
    min_duration_seconds=15,
    max_duration_seconds=180,
    pacing="fast",
    transitions=["speed_lines", "manga_panels", "dynamic_cuts"],
    editing_conventions=["Dynamic compositions", "Speed lines", "High energy pacing"],
    audio_style="Fast-paced J-Pop/EDM",
    text_overlays=["Fansub-style subtitles", "Anime captions", "Karaoke text"],
    priority=85,
)

UGC_INFLUENCER = CreativeProfile(
    name="ugc_influencer",
    display_name="UGC Influencer",
    description="Authentic handheld creator content with social captions",
    keywords=["selfie", "vlog", "day in my life", "get ready with me", "haul", "review", "influencer", "lifestyle"],
    platforms=["tiktok", "instagram", "youtube_shorts"],
    min_duration_seconds=15,
    max_duration_seconds=60,
    pacing="casual",
    transitions=["jump_cut", "quick_cut", "natural"],
    editing_conventions=["Jump cuts", "Handheld style", "Casual pacing"],
    audio_style="Light, trendy background music",
    text_overlays=["Bold social captions", "Stickers", "Emojis", "Hashtags"],
    priority=80,
)

FINANCE_EXPLAINER = CreativeProfile(
    name="finance_explainer",
    display_name="Finance Explainer",
    description="Data-driven market coverage with charts and tickers",
    keywords=["finance", "stock", "market", "investment", "trading", "economy", "business", "bloomberg", "financial"],
    platforms=["linkedin", "youtube", "professional"],
    min_duration_seconds=60,
    max_duration_seconds=300,
    pacing="measured",
    transitions=["fade", "cut", "professional"],
    editing_conventions=["Clean cuts", "Professional pacing", "Data focus"],
    audio_style="Serious, professional background music",
    text_overlays=["Financial data", "Stock tickers", "Professional captions"],
    priority=95,
)

PRESENTATION_CORPORATE = CreativeProfile(
    name="presentation_corporate",
    display_name="Corporate Presentation",
    description="Slide-like scenes with professional voiceover",
    keywords=["presentation", "slides", "corporate", "deck", "pitch", "meeting", "business", "proposal"],
    platforms=["linkedin", "youtube", "corporate"],
    min_duration_seconds=60,
    max_duration_seconds=600,
    pacing="measured",
    transitions=["slide_transition", "fade", "professional"],
    editing_conventions=["Smooth transitions", "Professional pacing", "Slide-based"],
    audio_style="Professional voiceover narration",
    text_overlays=["Slide titles", "Bullet points", "Corporate captions"],
    priority=90,
)

PLEASURE_RELAXATION = CreativeProfile(
    name="pleasure_relaxation",
    display_name="Relaxation",
    description="Slow, calming visuals with ambient sound",
    keywords=["relax", "calm", "peaceful", "meditation", "zen", "spa", "wellness", "mindfulness", "serene"],
    platforms=["youtube", "instagram", "wellness"],
    min_duration_seconds=60,
    max_duration_seconds=1800,
    pacing="slow",
    transitions=["fade", "dissolve", "gentle"],
    editing_conventions=["Slow pacing", "Gentle transitions", "Looping"],
    audio_style="Ambient, calming background music",
    text_overlays=["Minimal text", "Gentle captions", "Wellness quotes"],
    priority=75,
)

ADS_COMMERCIAL = CreativeProfile(
    name="ads_commercial",
    display_name="Ads & Commercial",
    description="Punchy product-focused spots with a call to action",
    keywords=["ad", "commercial", "promo", "sale", "buy", "product", "brand", "marketing", "campaign"],
    platforms=["facebook", "instagram", "youtube", "tiktok"],
    min_duration_seconds=15,
    max_duration_seconds=60,
    pacing="fast",
    transitions=["quick_cut", "dynamic", "energetic"],
    editing_conventions=["Fast cuts", "Energetic pacing", "Product focus"],
    audio_style="Upbeat, energetic music",
    text_overlays=["Bold headlines", "Call-to-action", "Product benefits", "Pricing"],
    priority=85,
)

DEMO_PRODUCT_SHOWCASE = CreativeProfile(
    name="demo_product_showcase",
    display_name="Product Demo",
    description="Show functionality with step-by-step demonstrations",
    keywords=["demo", "showcase", "tutorial", "how it works", "features", "product", "app", "software"],
    platforms=["youtube", "linkedin", "product"],
    min_duration_seconds=30,
    max_duration_seconds=300,
    pacing="steady",
    transitions=["cut", "zoom", "highlight"],
    editing_conventions=["Step-by-step", "Clear pacing", "Feature focus"],
    audio_style="Neutral, professional music",
    text_overlays=["Step numbers", "Feature labels", "Instructions", "Benefits"],
    priority=80,
)

FUNNY_MEME_STYLE = CreativeProfile(
    name="funny_meme_style",
    display_name="Funny Meme",
    description="Comedic timing, reaction overlays and meme captions",
    keywords=["funny", "meme", "comedy", "lol", "haha", "joke", "hilarious", "viral", "trending"],
    platforms=["tiktok", "instagram", "youtube_shorts"],
    min_duration_seconds=15,
    max_duration_seconds=60,
    pacing="fast",
    transitions=["quick_cut", "zoom_punch", "comedic"],
    editing_conventions=["Fast cuts", "Comedic timing", "Unexpected pacing"],
    audio_style="Comedic sound effects and music",
    text_overlays=["Meme captions", "Reaction text", "Comedic labels", "Viral hashtags"],
    priority=70,
)

DOCUMENTARY_STORYTELLING = CreativeProfile(
    name="documentary_storytelling",
    display_name="Documentary Storytelling",
    description="Narrative chapters with cinematic pacing and voiceover",
    keywords=["story", "documentary", "narrative", "journey", "experience", "life", "history", "biography"],
    platforms=["youtube", "netflix", "documentary"],
    min_duration_seconds=300,
    max_duration_seconds=3600,
    pacing="cinematic",
    transitions=["cinematic_fade", "dissolve", "professional"],
    editing_conventions=["Cinematic pacing", "Narrative structure", "Professional transitions"],
    audio_style="Cinematic score and ambient audio",
    text_overlays=["Speaker names", "Chapter titles", "Documentary captions", "Timeline markers"],
    priority=90,
)


# =============================================================================
# PROFILE REGISTRY
# =============================================================================

PROFILES: dict[str, CreativeProfile] = {
    profile.name: profile
    for profile in (
        EDUCATIONAL_EXPLAINER,
        ANIME_MODE,
        UGC_INFLUENCER,
        FINANCE_EXPLAINER,
        PRESENTATION_CORPORATE,
        PLEASURE_RELAXATION,
        ADS_COMMERCIAL,
        DEMO_PRODUCT_SHOWCASE,
        FUNNY_MEME_STYLE,
        DOCUMENTARY_STORYTELLING,
    )
}


def get_profile(name: str) -> CreativeProfile | None:
    """Get a profile by name (case-insensitive).

    Args:
        name: Profile name

    Returns:
        CreativeProfile if found, None otherwise
    """
    return PROFILES.get(name.lower())


def get_profile_names() -> list[str]:
    """Get list of available profile names."""
    return list(PROFILES.keys())


@dataclass
class ProfileMatch:
    """Result of profile detection."""

    profile: CreativeProfile
    score: int
    confidence: float
    matched_factors: list[str]
    method: str


def detect_profile(
    prompt: str,
    intent: Intent,
    platform: str | None = None,
    asset_types: list[MediaType] | None = None,
    duration_seconds: float | None = None,
) -> ProfileMatch:
    """Pick the profile that best fits a request.

    Keyword hits dominate the score; intent, platform, asset types and
    duration add smaller amounts and priority breaks ties. When no profile
    matches any keyword the highest-priority profile for the intent wins.
    """
    lowered = prompt.lower()
    platform_name = (platform or "").lower()
    types = set(asset_types or [])

    scored: list[ProfileMatch] = []
    any_keyword = False
    for profile in PROFILES.values():
        score = 0
        factors: list[str] = []

        hits = [k for k in profile.keywords if k in lowered]
        if hits:
            any_keyword = True
            score += 10 * len(hits)
            factors.append(f"keywords: {', '.join(hits)}")
        if intent in profile.intents:
            score += 15
            factors.append(f"intent: {intent}")
        if platform_name and platform_name in profile.platforms:
            score += 10
            factors.append(f"platform: {platform_name}")
        matched_types = [t for t in profile.asset_types if t in types]
        if matched_types:
            score += 5 * len(matched_types)
            factors.append(f"asset_types: {', '.join(str(t) for t in matched_types)}")
        if duration_seconds is not None and profile.fits_duration(duration_seconds):
            score += 5
            factors.append("duration_range")

        score += profile.priority
        scored.append(
            ProfileMatch(
                profile=profile,
                score=score,
                confidence=round(min(0.95, score / 200), 3),
                matched_factors=factors,
                method="multi-factor",
            )
        )

    if not any_keyword:
        candidates = [p for p in PROFILES.values() if intent in p.intents] or list(
            PROFILES.values()
        )
        fallback = max(candidates, key=lambda p: p.priority)
        return ProfileMatch(
            profile=fallback,
            score=fallback.priority,
            confidence=0.5,
            matched_factors=["fallback: highest priority"],
            method="fallback",
        )

    return max(scored, key=lambda m: (m.score, m.profile.priority))
