"""Build Profile Configuration.

This module defines the optimization/debug flag sets applied to every
emitted compile and link step.

Design:
    Profiles declare ALL flags they control explicitly. Caller-supplied extra
    flags that start with one of the profile's controlled patterns are
    stripped so the profile always wins, then the profile flags are appended.
    This is declarative - no ad-hoc flag manipulation elsewhere.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class BuildProfile(Enum):
    """Build profile enum for type-safe profile selection."""

    RELEASE = "release"
    DEBUG = "debug"

    def __str__(self) -> str:
        """Return the string value for directory names and display."""
        return self.value


@dataclass(frozen=True)
class ProfileFlags:
    """Generic build profile flags.

    All fields are mandatory - no defaults.

    Attributes:
        name: Profile identifier (matches BuildProfile enum value)
        description: Human-readable profile description
        compile_flags: All compilation flags for this profile
        link_flags: All linker flags for this profile
        controlled_patterns: Flag prefixes this profile controls (stripped from extra flags)
    """

    name: str
    description: str
    compile_flags: tuple[str, ...]
    link_flags: tuple[str, ...]
    controlled_patterns: tuple[str, ...]  # Ordered tuple, not unordered set


_CONTROLLED = ("-O", "-g", "-DNDEBUG", "-UNDEBUG")

# Profile configurations - keyed by BuildProfile enum
PROFILES: dict[BuildProfile, ProfileFlags] = {
    BuildProfile.RELEASE: ProfileFlags(
        name="release",
        description="Optimized build without assertions (default)",
        compile_flags=("-O2", "-DNDEBUG"),
        link_flags=(),
        controlled_patterns=_CONTROLLED,
    ),
    BuildProfile.DEBUG: ProfileFlags(
        name="debug",
        description="Unoptimized build with debug info and assertions",
        compile_flags=("-O0", "-g"),
        link_flags=("-g",),
        controlled_patterns=_CONTROLLED,
    ),
}


def get_profile(profile: BuildProfile) -> ProfileFlags:
    """Get profile configuration by enum.

    Args:
        profile: BuildProfile enum value

    Returns:
        ProfileFlags for the requested profile
    """
    return PROFILES[profile]


def parse_profile(name: str) -> BuildProfile:
    """Parse a profile name.

    Raises:
        ValueError: If the name is not a known profile
    """
    try:
        return BuildProfile(name.lower())
    except ValueError:
        choices = ", ".join(p.value for p in BuildProfile)
        raise ValueError(f"Unknown build profile: {name!r} (expected one of {choices})")


def filter_extra_flags(flags: Sequence[str], profile_flags: ProfileFlags) -> list[str]:
    """Remove flags that the profile controls.

    Args:
        flags: Caller-supplied flags
        profile_flags: The profile flags whose controlled patterns to filter

    Returns:
        Filtered list of flags with controlled patterns removed
    """
    return [f for f in flags if not any(f.startswith(p) for p in profile_flags.controlled_patterns)]


def merge_compile_flags(extra_flags: Sequence[str], profile_flags: ProfileFlags) -> list[str]:
    """Profile compile flags followed by the filtered extra flags."""
    return list(profile_flags.compile_flags) + filter_extra_flags(extra_flags, profile_flags)


def merge_link_flags(extra_flags: Sequence[str], profile_flags: ProfileFlags) -> list[str]:
    """Profile link flags followed by the filtered extra flags."""
    return list(profile_flags.link_flags) + filter_extra_flags(extra_flags, profile_flags)
