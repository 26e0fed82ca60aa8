"""Platform Detector - determine OS, architecture, compiler and features.

Runs once per configure run and produces an immutable PlatformFacts value.

Steps:
    1. Read OS family and architecture from the runtime (or settings overrides)
    2. Run a minimal sanity probe; if the compiler cannot build it, abort with
       BuildEnvironmentError instead of reporting every feature as absent
    3. Identify the compiler and pointer width from predefined macros,
       falling back to sizeof() probes for the width
    4. Probe every applicable catalog feature in parallel and merge the
       successes once all probes have finished
"""

from __future__ import annotations

import logging
import platform
import sys
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from fconfig.catalog.features import OS_FAMILIES, FeatureCatalog
from fconfig.config import EngineSettings
from fconfig.errors import BuildEnvironmentError
from fconfig.probe.callbacks import NullCallback, ProbeCallback
from fconfig.probe.models import ProbeMode, ProbeResult
from fconfig.probe.pool import ProbePool
from fconfig.probe.runner import ProbeRunner

logger = logging.getLogger(__name__)

SANITY_PROGRAM = "int main(void) { return 0; }\n"
SANITY_PROBE_ID = "compiler_sanity"

_WORD_SIZE_PROGRAM = "typedef char word_size_check[(sizeof(void *) == {size}) ? 1 : -1];\nint main(void) {{ return 0; }}\n"

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "x86": "x86",
}


@dataclass(frozen=True)
class PlatformFacts:
    """Immutable record of everything detected about the build environment.

    Attributes:
        os_family: "unix", "darwin" or "windows"
        architecture: Normalized machine name ("x86_64", "aarch64", "arm", "x86", ...)
        word_size: Pointer width in bits
        compiler_id: "gcc", "clang", "msvc" or "unknown"
        compiler_version: Dotted version string ("" if unknown)
        detected_features: FeatureIDs whose probes succeeded
        probe_results: Every feature probe result, in catalog order
    """

    os_family: str
    architecture: str
    word_size: int
    compiler_id: str
    compiler_version: str
    detected_features: frozenset[str] = field(default_factory=frozenset)
    probe_results: tuple[ProbeResult, ...] = ()

    def has(self, feature_id: str) -> bool:
        return feature_id in self.detected_features

    def result_for(self, feature_id: str) -> Optional[ProbeResult]:
        """The probe result recorded for a feature, if it was probed."""
        for result in self.probe_results:
            if result.feature_id == feature_id:
                return result
        return None

    def with_features(self, enable: Iterable[str] = (), disable: Iterable[str] = ()) -> "PlatformFacts":
        """Return new facts with features forced on/off. Disable wins over enable."""
        disabled = set(disable)
        features = (set(self.detected_features) | set(enable)) - disabled
        return replace(self, detected_features=frozenset(features))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (feature ids sorted for stable output)."""
        return {
            "os_family": self.os_family,
            "architecture": self.architecture,
            "word_size": self.word_size,
            "compiler_id": self.compiler_id,
            "compiler_version": self.compiler_version,
            "detected_features": sorted(self.detected_features),
            "probe_results": [r.to_dict() for r in self.probe_results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlatformFacts":
        """Deserialize from dictionary."""
        return cls(
            os_family=data["os_family"],
            architecture=data["architecture"],
            word_size=int(data["word_size"]),
            compiler_id=data["compiler_id"],
            compiler_version=data.get("compiler_version", ""),
            detected_features=frozenset(data.get("detected_features", [])),
            probe_results=tuple(ProbeResult.from_dict(r) for r in data.get("probe_results", [])),
        )


def host_os_family() -> str:
    """OS family of the running interpreter."""
    if sys.platform in ("win32", "msys"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "unix"


def normalize_architecture(machine: str) -> str:
    """Normalize a machine name (platform.machine()) to a stable identifier."""
    lowered = machine.strip().lower()
    if lowered in _ARCH_ALIASES:
        return _ARCH_ALIASES[lowered]
    if lowered.startswith("arm"):
        return "arm"
    return lowered or "unknown"


def identify_compiler(macros: dict[str, str]) -> tuple[str, str]:
    """Derive (compiler_id, compiler_version) from predefined macros.

    clang also defines __GNUC__, so it is checked first.
    """
    if "__clang__" in macros:
        parts = [macros.get(k, "0") for k in ("__clang_major__", "__clang_minor__", "__clang_patchlevel__")]
        return "clang", ".".join(parts)
    if "__GNUC__" in macros:
        parts = [macros.get(k, "0") for k in ("__GNUC__", "__GNUC_MINOR__", "__GNUC_PATCHLEVEL__")]
        return "gcc", ".".join(parts)
    if "_MSC_VER" in macros:
        return "msvc", macros["_MSC_VER"]
    return "unknown", macros.get("__VERSION__", "").strip('"')


class PlatformDetector:
    """Detects PlatformFacts using the probe runner and the feature catalog.

    Args:
        runner: Probe runner bound to the configured compiler
        catalog: Feature catalog to probe
        settings: Engine settings (worker count, host overrides)
        callback: Progress callback for feature probes
    """

    def __init__(self, runner: ProbeRunner, catalog: FeatureCatalog, settings: EngineSettings, callback: Optional[ProbeCallback] = None) -> None:
        self._runner = runner
        self._catalog = catalog
        self._settings = settings
        self._callback = callback if callback is not None else NullCallback()

    def detect(self) -> PlatformFacts:
        """Detect the platform.

        Returns:
            PlatformFacts for this run

        Raises:
            BuildEnvironmentError: If the compiler cannot be invoked or cannot
                build the minimal sanity program
        """
        os_family = self._settings.os_family or host_os_family()
        if os_family not in OS_FAMILIES:
            raise BuildEnvironmentError(f"Unsupported OS family: {os_family!r} (expected one of {', '.join(OS_FAMILIES)})")
        architecture = normalize_architecture(self._settings.architecture or platform.machine())
        logger.info(f"Host: os_family={os_family} architecture={architecture}")

        self._check_sanity()

        macros = self._runner.predefined_macros()
        compiler_id, compiler_version = identify_compiler(macros)
        word_size = self._detect_word_size(macros)
        logger.info(f"Compiler: {compiler_id} {compiler_version} ({word_size}-bit)")

        features = self._catalog.applicable(os_family)
        requests = [f.to_request(os_family) for f in features]
        with ProbePool(max_workers=self._settings.jobs) as pool:
            results = pool.run_all(self._runner, requests, self._callback)

        # Merge once, after every probe has completed
        ordered = tuple(results[f.feature_id] for f in features)
        detected = frozenset(r.feature_id for r in ordered if r.succeeded)
        logger.info(f"Detected {len(detected)}/{len(ordered)} features")

        return PlatformFacts(
            os_family=os_family,
            architecture=architecture,
            word_size=word_size,
            compiler_id=compiler_id,
            compiler_version=compiler_version,
            detected_features=detected,
            probe_results=ordered,
        )

    def _check_sanity(self) -> None:
        result = self._runner.run_probe(SANITY_PROGRAM, mode=ProbeMode.LINK, feature_id=SANITY_PROBE_ID)
        if not result.succeeded:
            raise BuildEnvironmentError(
                f"Compiler '{self._settings.compiler}' cannot build a minimal program",
                compiler=self._settings.compiler,
                diagnostic=result.diagnostic,
            )

    def _detect_word_size(self, macros: dict[str, str]) -> int:
        pointer_size = macros.get("__SIZEOF_POINTER__")
        if pointer_size and pointer_size.isdigit():
            return int(pointer_size) * 8

        for size in (8, 4):
            program = _WORD_SIZE_PROGRAM.format(size=size)
            if self._runner.run_probe(program, mode=ProbeMode.COMPILE, feature_id=f"word_size_{size * 8}").succeeded:
                return size * 8

        raise BuildEnvironmentError(f"Cannot determine pointer width for compiler '{self._settings.compiler}'", compiler=self._settings.compiler)


def detect_platform(settings: EngineSettings, catalog: FeatureCatalog, runner: Optional[ProbeRunner] = None, callback: Optional[ProbeCallback] = None) -> PlatformFacts:
    """Convenience wrapper: build a detector and run it.

    Raises:
        BuildEnvironmentError: If the compiler is unusable
    """
    runner = runner if runner is not None else ProbeRunner(settings)
    return PlatformDetector(runner, catalog, settings, callback).detect()
