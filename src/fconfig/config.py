"""
Engine settings.

Centralized configuration for a configure run. Values come from keyword
arguments or from the environment, so that the same engine can be driven by
the CLI, by tests, or by an outer build script.

Environment variables:
- FCONFIG_CC (fallback CC): compiler command
- FCONFIG_CFLAGS / CFLAGS, FCONFIG_LDFLAGS / LDFLAGS: extra probe flags
- FCONFIG_PROBE_TIMEOUT: per-probe timeout in seconds (default 30)
- FCONFIG_PROBE_RETRIES: retries after a probe timeout (default 1)
- FCONFIG_JOBS: probe worker count (default: CPU count)
- FCONFIG_LANGUAGE: "c" or "c++" (default "c")
- FCONFIG_OS_FAMILY, FCONFIG_ARCH: host overrides for cross configurations
"""

from __future__ import annotations

import multiprocessing
import os
import shlex
import sys
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

DEFAULT_PROBE_TIMEOUT = 30.0
DEFAULT_TIMEOUT_RETRIES = 1
SUPPORTED_LANGUAGES = ("c", "c++")


def _default_compiler() -> str:
    if sys.platform == "win32":
        return "gcc"
    return "cc"


def _env_first(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {raw!r}")
    return value


@dataclass(frozen=True)
class EngineSettings:
    """Settings shared by every component of a configure run.

    Attributes:
        compiler: Compiler command (e.g. "cc", "clang", "x86_64-w64-mingw32-gcc")
        cflags: Extra flags passed to every probe compilation
        ldflags: Extra flags passed to every probe link
        language: Probe source language ("c" or "c++")
        probe_timeout: Seconds before a probe's compiler is killed
        timeout_retries: How many times a timed-out probe is retried
        jobs: Maximum number of probes run concurrently
        os_family: Forced OS family, or None to detect from the runtime
        architecture: Forced architecture, or None to detect from the runtime
    """

    compiler: str = field(default_factory=_default_compiler)
    cflags: tuple[str, ...] = ()
    ldflags: tuple[str, ...] = ()
    language: str = "c"
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    timeout_retries: int = DEFAULT_TIMEOUT_RETRIES
    jobs: int = field(default_factory=multiprocessing.cpu_count)
    os_family: Optional[str] = None
    architecture: Optional[str] = None

    def __post_init__(self) -> None:
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported probe language: {self.language!r} (expected one of {', '.join(SUPPORTED_LANGUAGES)})")
        if self.jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {self.jobs}")

    @property
    def compiler_argv(self) -> list[str]:
        """The compiler command split into argv form (supports "ccache gcc")."""
        return shlex.split(self.compiler)

    @property
    def source_suffix(self) -> str:
        """File suffix for probe sources."""
        return ".cpp" if self.language == "c++" else ".c"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: object) -> "EngineSettings":
        """Create settings from environment variables.

        Args:
            env: Environment mapping (defaults to os.environ)
            **overrides: Field values that take precedence over the environment

        Returns:
            EngineSettings instance

        Raises:
            ValueError: If an environment variable holds an invalid value
        """
        env = os.environ if env is None else env

        values: dict[str, object] = {
            "compiler": _env_first(env, "FCONFIG_CC", "CC") or _default_compiler(),
            "cflags": tuple(shlex.split(_env_first(env, "FCONFIG_CFLAGS", "CFLAGS") or "")),
            "ldflags": tuple(shlex.split(_env_first(env, "FCONFIG_LDFLAGS", "LDFLAGS") or "")),
            "language": env.get("FCONFIG_LANGUAGE") or "c",
            "probe_timeout": _env_float(env, "FCONFIG_PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT),
            "timeout_retries": _env_int(env, "FCONFIG_PROBE_RETRIES", DEFAULT_TIMEOUT_RETRIES, minimum=0),
            "jobs": _env_int(env, "FCONFIG_JOBS", multiprocessing.cpu_count(), minimum=1),
            "os_family": env.get("FCONFIG_OS_FAMILY") or None,
            "architecture": env.get("FCONFIG_ARCH") or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]

    def with_overrides(self, **changes: object) -> "EngineSettings":
        """Return a copy with the given fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})  # type: ignore[arg-type]
