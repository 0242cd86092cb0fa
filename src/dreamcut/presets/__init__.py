"""Creative profiles for script generation."""

from dreamcut.presets.profiles import (
    PROFILES,
    CreativeProfile,
    ProfileMatch,
    detect_profile,
    get_profile,
    get_profile_names,
)

__all__ = [
    "PROFILES",
    "CreativeProfile",
    "ProfileMatch",
    "detect_profile",
    "get_profile",
    "get_profile_names",
]
