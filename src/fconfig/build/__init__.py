"""Build Plan Emitter: profiles, plan and header models."""

from .emitter import BuildPlanEmitter, emit
from .header import CapabilityHeader
from .plan import BuildPlan, BuildStep, StepKind
from .profiles import PROFILES, BuildProfile, ProfileFlags, get_profile, parse_profile

__all__ = [
    "PROFILES",
    "BuildPlan",
    "BuildPlanEmitter",
    "BuildProfile",
    "BuildStep",
    "CapabilityHeader",
    "ProfileFlags",
    "StepKind",
    "emit",
    "get_profile",
    "parse_profile",
]
