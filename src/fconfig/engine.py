"""
Configure engine - one end-to-end run from catalogs to written artifacts.

Phases:
    1. Assemble catalogs (built-in features + project catalogs), validate
       feature overrides
    2. Detect the platform (skipped when facts are replayed)
    3. Apply overrides, probe link-check libraries
    4. Resolve the module graph and emit the plan and header
    5. Write both artifacts, or neither
"""

import errno
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Optional

from fconfig.build.emitter import emit
from fconfig.build.header import CapabilityHeader
from fconfig.build.plan import BuildPlan
from fconfig.build.profiles import BuildProfile
from fconfig.catalog.features import FeatureCatalog, builtin_catalog
from fconfig.catalog.loader import ProjectCatalog, load_catalog_file
from fconfig.catalog.modules import LibraryRef, ModuleCatalog
from fconfig.config import EngineSettings
from fconfig.detect import PlatformFacts, detect_platform
from fconfig.diagnostics import DiagnosticCollector, Phase
from fconfig.errors import CatalogError
from fconfig.probe.callbacks import ProbeCallback
from fconfig.probe.models import ProbeResult
from fconfig.probe.runner import ProbeRunner
from fconfig.resolve import DroppedModule, ResolvedGraph, probe_libraries, resolve

logger = logging.getLogger(__name__)


@dataclass
class ConfigureRequest:
    """Inputs of one configure run.

    Attributes:
        requested: Explicitly requested module names
        catalogs: Already-loaded project catalogs
        catalog_paths: Project catalog files to load (after ``catalogs``)
        force_enable: FeatureIDs treated as detected
        force_disable: FeatureIDs treated as missing (wins over force_enable)
        profile: Build profile for the plan
        build_dir: Relative build directory used inside the plan
        output_name: Name of the linked program
        plan_path: Where to write the plan (None = not written)
        header_path: Where to write the header (None = not written)
        facts: Previously detected facts to replay instead of probing
        include_builtin_features: Prepend the built-in feature catalog
    """

    requested: tuple[str, ...] = ()
    catalogs: tuple[ProjectCatalog, ...] = ()
    catalog_paths: tuple[Path, ...] = ()
    force_enable: tuple[str, ...] = ()
    force_disable: tuple[str, ...] = ()
    profile: BuildProfile = BuildProfile.RELEASE
    build_dir: str = "build"
    output_name: str = "app"
    plan_path: Optional[Path] = None
    header_path: Optional[Path] = None
    facts: Optional[PlatformFacts] = None
    include_builtin_features: bool = True


@dataclass
class ConfigureResult:
    """Outcome of a successful configure run."""

    facts: PlatformFacts
    graph: ResolvedGraph
    plan: BuildPlan
    header: CapabilityHeader
    diagnostics: DiagnosticCollector
    written: tuple[Path, ...] = field(default=())
    success: bool = True

    @property
    def dropped(self) -> tuple[DroppedModule, ...]:
        return self.graph.dropped

    @property
    def partial(self) -> bool:
        """True when optional modules were dropped (still a success)."""
        return bool(self.graph.dropped)


def assemble_catalogs(request: ConfigureRequest) -> tuple[FeatureCatalog, ModuleCatalog]:
    """Build the feature and module catalogs for a request.

    Raises:
        CatalogError: If a catalog file is invalid or two catalogs declare the
            same feature or module
    """
    projects = list(request.catalogs) + [load_catalog_file(Path(p)) for p in request.catalog_paths]

    features = builtin_catalog() if request.include_builtin_features else FeatureCatalog()
    modules = ModuleCatalog()
    for project in projects:
        try:
            features = features.merged(project.features)
            for module in project.modules:
                modules.add(module)
        except CatalogError as e:
            raise CatalogError(f"{project.source or '<catalog>'}: {e}") from e
    return features, modules


def validate_overrides(features: FeatureCatalog, enable: Iterable[str], disable: Iterable[str]) -> None:
    """Reject overrides naming features the catalog does not declare.

    Raises:
        CatalogError: Naming every unknown FeatureID, sorted
    """
    unknown = sorted({f for f in list(enable) + list(disable) if f not in features})
    if unknown:
        raise CatalogError(f"Unknown feature(s) in overrides: {', '.join(unknown)}")


def candidate_libraries(modules: ModuleCatalog, requested: Iterable[str]) -> list[LibraryRef]:
    """Libraries referenced anywhere in the closure of the candidate roots.

    Unknown names and cycles are ignored here; the resolver reports them.
    """
    roots = [n for n in modules.names if n in set(requested)] + [m.name for m in modules.default_enabled()]
    seen: set[str] = set()
    stack = list(reversed(roots))
    order: list[str] = []
    while stack:
        name = stack.pop()
        if name in seen or name not in modules:
            continue
        seen.add(name)
        order.append(name)
        stack.extend(reversed(modules.get(name).required_modules))

    libraries: dict[str, LibraryRef] = {}
    for name in order:
        for lib in modules.get(name).required_libraries:
            libraries.setdefault(lib.name, lib)
    return list(libraries.values())


def _plan_compiler(settings: EngineSettings) -> str:
    argv = settings.compiler_argv
    if not argv:
        return "cc"
    return " ".join([os.path.basename(argv[0])] + argv[1:])


def _restore(installed: list[tuple[Path, Optional[Path]]]) -> None:
    """Undo replaced destinations, newest first."""
    for destination, backup in reversed(installed):
        try:
            if backup is not None:
                os.replace(backup, destination)
            elif destination.exists():
                destination.unlink()
        except OSError as e:
            logger.error(f"Could not restore {destination}: {e}")


def write_artifacts(artifacts: list[tuple[Path, str]]) -> tuple[Path, ...]:
    """Write every artifact or none of them.

    Each text is first written to a temporary file beside its destination.
    Only when all temporaries exist are they moved into place. Existing
    destinations are moved aside first and put back if a later move fails.

    Returns:
        The destination paths written

    Raises:
        OSError: If an artifact cannot be written; every destination is left
            as it was
    """
    staged: list[tuple[Path, Path]] = []
    installed: list[tuple[Path, Optional[Path]]] = []
    try:
        for destination, text in artifacts:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
            temp_path = Path(temp_name)
            staged.append((temp_path, destination))
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
        for _temp, destination in staged:
            if destination.is_dir():
                raise IsADirectoryError(errno.EISDIR, "Artifact destination is a directory", str(destination))
        try:
            for temp_path, destination in staged:
                backup = temp_path.with_suffix(".bak") if destination.exists() else None
                if backup is not None:
                    os.replace(destination, backup)
                installed.append((destination, backup))
                os.replace(temp_path, destination)
        except OSError:
            _restore(installed)
            raise
        for _destination, backup in installed:
            if backup is not None:
                backup.unlink()
    finally:
        for temp_path, _destination in staged:
            if temp_path.exists():
                temp_path.unlink()
    for _temp, destination in staged:
        logger.info(f"Wrote {destination}")
    return tuple(destination for _temp, destination in staged)


def configure(
    request: ConfigureRequest,
    settings: Optional[EngineSettings] = None,
    runner: Optional[ProbeRunner] = None,
    callback: Optional[ProbeCallback] = None,
    diagnostics: Optional[DiagnosticCollector] = None,
) -> ConfigureResult:
    """Run a complete configure pass.

    Args:
        request: What to configure
        settings: Engine settings (defaults to EngineSettings.from_env())
        runner: Probe runner (defaults to one built from settings)
        callback: Progress callback for probes
        diagnostics: Collector to record into (a new one by default)

    Returns:
        ConfigureResult with the facts, graph and rendered artifacts

    Raises:
        BuildEnvironmentError: If the toolchain is unusable
        UnsatisfiedDependencyError: If a requested module cannot be built
        CyclicDependencyError: If module requirements form a cycle
        CatalogError: If a catalog or an override is invalid
    """
    settings = settings if settings is not None else EngineSettings.from_env()
    diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

    features, modules = assemble_catalogs(request)
    validate_overrides(features, request.force_enable, request.force_disable)
    logger.info(f"Catalogs: {len(features)} features, {len(modules)} modules")

    if request.facts is not None:
        facts = request.facts
        logger.info("Replaying previously detected platform facts")
    else:
        runner = runner if runner is not None else ProbeRunner(settings)
        facts = detect_platform(settings, features, runner, callback)
        for result in facts.probe_results:
            diagnostics.record_probe(result)

    facts = facts.with_features(request.force_enable, request.force_disable)

    # Link checks: reuse results carried by the facts, probe the rest
    libraries = candidate_libraries(modules, request.requested)
    library_results: dict[str, ProbeResult] = {}
    pending: list[LibraryRef] = []
    for lib in libraries:
        if not lib.is_link_check:
            continue
        known = facts.result_for(lib.probe_id)
        if known is not None:
            library_results[lib.probe_id] = known
        else:
            pending.append(lib)
    if pending and request.facts is not None and runner is None:
        for lib in pending:
            diagnostics.warn(Phase.DETECT, lib.name, "no recorded link check in replayed facts; treated as missing")
    elif pending:
        runner = runner if runner is not None else ProbeRunner(settings)
        probed = probe_libraries(pending, runner, settings.jobs, callback)
        for lib in pending:
            result = probed[lib.probe_id]
            diagnostics.record_probe(result)
            library_results[lib.probe_id] = result
        facts = replace(facts, probe_results=facts.probe_results + tuple(probed[lib.probe_id] for lib in pending))

    graph = resolve(request.requested, modules, facts, library_results)
    for dropped in graph.dropped:
        diagnostics.warn(Phase.RESOLVE, dropped.name, f"optional module dropped: {dropped.reason}")

    plan, header = emit(
        graph,
        facts,
        features,
        profile=request.profile,
        build_dir=request.build_dir,
        output_name=request.output_name,
        extra_cflags=settings.cflags,
        extra_ldflags=settings.ldflags,
        compiler=_plan_compiler(settings),
        diagnostics=diagnostics,
    )

    # Render both before touching the filesystem
    artifacts: list[tuple[Path, str]] = []
    if request.plan_path is not None:
        artifacts.append((Path(request.plan_path), plan.render()))
    if request.header_path is not None:
        artifacts.append((Path(request.header_path), header.render()))
    written = write_artifacts(artifacts) if artifacts else ()

    return ConfigureResult(facts=facts, graph=graph, plan=plan, header=header, diagnostics=diagnostics, written=written)
