"""Build Plan Emitter - turn a resolved graph into a plan and a header.

Given the ResolvedGraph and PlatformFacts, the emitter produces:
- a BuildPlan: one compile step per module source file (modules in graph
  order, sources in declared order) followed by one link step over every
  object file
- a CapabilityHeader: detected features in catalog order, then included
  modules in graph order, then the platform fact symbols

Emission is a pure function of its inputs. Nothing here iterates an
unordered collection, reads the clock or embeds an absolute path, so two
runs with the same inputs render byte-identical artifacts.
"""

import logging
import posixpath
from pathlib import PurePosixPath
from typing import Optional, Sequence

from fconfig.catalog.features import FeatureCatalog, os_family_matches
from fconfig.catalog.modules import LibraryRef, ModuleSpec
from fconfig.detect import PlatformFacts
from fconfig.diagnostics import DiagnosticCollector, Phase
from fconfig.resolve import ResolvedGraph

from .header import CapabilityHeader, HeaderValue, render_value
from .plan import BuildPlan, BuildStep, StepKind
from .profiles import BuildProfile, get_profile, merge_compile_flags, merge_link_flags

logger = logging.getLogger(__name__)

PTHREAD_FEATURE = "library_pthread"

# -m32/-m64 are only meaningful to x86 gcc/clang
X86_ARCHITECTURES = ("x86", "x86_64")


def _normalize_build_dir(build_dir: str) -> str:
    path = PurePosixPath(build_dir.replace("\\", "/"))
    if path.is_absolute():
        raise ValueError(f"Build directory must be relative to the project root: {build_dir!r}")
    return path.as_posix()


class BuildPlanEmitter:
    """Emits the build plan and capability header for one configure run.

    Args:
        feature_catalog: Catalog the facts were detected from
        profile: Build profile supplying optimization/debug flags
        build_dir: Relative directory for objects, the header and the output
        output_name: Name of the linked program
        extra_cflags: Caller compile flags (profile-controlled flags are dropped)
        extra_ldflags: Caller link flags (profile-controlled flags are dropped)
        compiler: Default driver recorded in the plan (CC ?= ...)
        diagnostics: Collector for emission warnings (symbol collisions)
    """

    def __init__(
        self,
        feature_catalog: FeatureCatalog,
        profile: BuildProfile = BuildProfile.RELEASE,
        build_dir: str = "build",
        output_name: str = "app",
        extra_cflags: Sequence[str] = (),
        extra_ldflags: Sequence[str] = (),
        compiler: str = "cc",
        diagnostics: Optional[DiagnosticCollector] = None,
    ) -> None:
        if not output_name or "/" in output_name or "\\" in output_name:
            raise ValueError(f"Invalid output name: {output_name!r}")
        self._features = feature_catalog
        self._profile = get_profile(profile)
        self._build_dir = _normalize_build_dir(build_dir)
        self._output_name = output_name
        self._extra_cflags = tuple(extra_cflags)
        self._extra_ldflags = tuple(extra_ldflags)
        self._compiler = compiler
        self._diagnostics = diagnostics

    def emit(self, graph: ResolvedGraph, facts: PlatformFacts) -> tuple[BuildPlan, CapabilityHeader]:
        """Emit the plan and the header.

        Returns:
            (BuildPlan, CapabilityHeader)
        """
        plan = self.emit_plan(graph, facts)
        header = self.emit_header(graph, facts)
        logger.info(f"Emitted {len(plan.steps)} build steps and {len(header)} header symbols")
        return plan, header

    # ─── Plan ─────────────────────────────────────────────────────────────

    def emit_plan(self, graph: ResolvedGraph, facts: PlatformFacts) -> BuildPlan:
        windows = facts.os_family == "windows"
        object_suffix = ".obj" if windows else ".o"
        base_flags = merge_compile_flags(self._extra_cflags, self._profile) + self._platform_flags(graph, facts)

        steps: list[BuildStep] = []
        for module in graph.modules:
            flags = tuple(base_flags + self._define_flags(module))
            for source, obj in self._object_paths(module, object_suffix):
                steps.append(BuildStep(inputs=(source,), output=obj, step_kind=StepKind.COMPILE, flags=flags, module=module.name))

        objects = tuple(s.output for s in steps)
        if not objects:
            logger.info("No sources to build, plan has no link step")
            return BuildPlan(steps=(), compiler=self._compiler)
        program = self._output_name + (".exe" if windows else "")
        link_flags = merge_link_flags(self._extra_ldflags, self._profile) + self._library_flags(graph.libraries)
        steps.append(
            BuildStep(
                inputs=objects,
                output=posixpath.join(self._build_dir, program),
                step_kind=StepKind.LINK,
                flags=tuple(link_flags),
            )
        )
        return BuildPlan(steps=tuple(steps), compiler=self._compiler)

    def _object_paths(self, module: ModuleSpec, suffix: str) -> list[tuple[str, str]]:
        """Map each source to its object path; repeated stems get _2, _3, ... suffixes."""
        obj_dir = posixpath.join(self._build_dir, "obj", module.name)
        used: set[str] = set()
        paths = []
        for source in module.source_files:
            stem = PurePosixPath(source).stem
            candidate = stem
            n = 2
            while candidate in used:
                candidate = f"{stem}_{n}"
                n += 1
            used.add(candidate)
            paths.append((source, posixpath.join(obj_dir, candidate + suffix)))
        return paths

    def _platform_flags(self, graph: ResolvedGraph, facts: PlatformFacts) -> list[str]:
        flags = []
        if facts.compiler_id in ("gcc", "clang") and facts.architecture in X86_ARCHITECTURES:
            flags.append(f"-m{facts.word_size}")
        if os_family_matches(facts.os_family, ("unix",)):
            flags.append("-fPIC")
        if any(lib.feature == PTHREAD_FEATURE or lib.name == "pthread" for lib in graph.libraries):
            flags.append("-pthread")
        flags.append(f"-I{self._build_dir}")
        return flags

    @staticmethod
    def _define_flags(module: ModuleSpec) -> list[str]:
        return [f"-D{name}={render_value(value)}" for name, value in module.defines]

    def _library_flags(self, libraries: Sequence[LibraryRef]) -> list[str]:
        flags: list[str] = []
        for lib in libraries:
            link = lib.link_flags
            if lib.feature and not lib.link and lib.feature in self._features:
                link = self._features.get(lib.feature).link_requirements or link
            for flag in link:
                if flag not in flags:
                    flags.append(flag)
        return flags

    # ─── Header ───────────────────────────────────────────────────────────

    def emit_header(self, graph: ResolvedGraph, facts: PlatformFacts) -> CapabilityHeader:
        entries: dict[str, HeaderValue] = {}
        owners: dict[str, str] = {}

        def put(symbol: str, value: HeaderValue, owner: str) -> None:
            if symbol in entries:
                message = f"Header symbol {symbol} from '{owner}' ignored; already defined by '{owners[symbol]}'"
                logger.warning(message)
                if self._diagnostics is not None:
                    self._diagnostics.warn(Phase.EMIT, symbol, message)
                return
            entries[symbol] = value
            owners[symbol] = owner

        for feature in self._features:
            if facts.has(feature.feature_id):
                put(feature.header_symbol, feature.value, feature.feature_id)

        for unknown in sorted(f for f in facts.detected_features if f not in self._features):
            logger.warning(f"Detected feature '{unknown}' is not in the catalog; no header symbol emitted")

        for module in graph.modules:
            put(module.header_symbol, 1, module.name)

        put(f"FCONFIG_OS_{facts.os_family.upper()}", 1, "os_family")
        put("FCONFIG_WORD_SIZE", facts.word_size, "word_size")
        put(f"FCONFIG_COMPILER_{facts.compiler_id.upper()}", 1, "compiler_id")

        undefined: list[str] = []
        for feature in self._features.applicable(facts.os_family):
            symbol = feature.header_symbol
            if not facts.has(feature.feature_id) and symbol not in entries and symbol not in undefined:
                undefined.append(symbol)

        return CapabilityHeader(entries=tuple(entries.items()), undefined=tuple(undefined))


def emit(
    graph: ResolvedGraph,
    facts: PlatformFacts,
    catalog: FeatureCatalog,
    profile: BuildProfile = BuildProfile.RELEASE,
    build_dir: str = "build",
    output_name: str = "app",
    extra_cflags: Sequence[str] = (),
    extra_ldflags: Sequence[str] = (),
    compiler: str = "cc",
    diagnostics: Optional[DiagnosticCollector] = None,
) -> tuple[BuildPlan, CapabilityHeader]:
    """Emit the build plan and capability header for a resolved graph.

    Raises:
        ValueError: If build_dir is absolute or output_name is invalid
    """
    emitter = BuildPlanEmitter(
        catalog,
        profile=profile,
        build_dir=build_dir,
        output_name=output_name,
        extra_cflags=extra_cflags,
        extra_ldflags=extra_ldflags,
        compiler=compiler,
        diagnostics=diagnostics,
    )
    return emitter.emit(graph, facts)
