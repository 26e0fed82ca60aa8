"""Module Graph Resolver - expand a module request into an ordered DAG.

Starting from the requested modules (plus optional modules that are enabled
by default), the resolver walks module -> module requirements depth-first
with three-color marking (unvisited / in progress / done). A back edge to an
in-progress module is a cycle and is reported as the full path from the
resolution root to the repeated module.

Every visited module is checked against PlatformFacts (features) and the
library probe results (libraries). Unsatisfiable closures are:
- a hard UnsatisfiedDependencyError when the root was explicitly requested
- silently dropped (and recorded) when the root is an optional default module

The output order is a topological sort (dependencies first) whose ties are
broken by catalog declaration order, so identical inputs always yield the
identical order.
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

from fconfig.catalog.modules import LibraryRef, ModuleCatalog, ModuleSpec
from fconfig.detect import PlatformFacts
from fconfig.errors import CyclicDependencyError, UnsatisfiedDependencyError
from fconfig.probe.callbacks import ProbeCallback
from fconfig.probe.models import ProbeResult
from fconfig.probe.pool import ProbePool
from fconfig.probe.runner import ProbeRunner

logger = logging.getLogger(__name__)

LibraryProber = Callable[[LibraryRef], ProbeResult]

# DFS colors
_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class MissingRequirement:
    """First unmet requirement found in a module's closure.

    Attributes:
        module: Module that declares the unmet requirement
        requirement: Missing module name, FeatureID or library name
        kind: "module", "feature" or "library"
        tried_probes: Probe results consulted for the requirement
    """

    module: str
    requirement: str
    kind: str
    tried_probes: tuple[ProbeResult, ...] = ()

    def to_error(self) -> UnsatisfiedDependencyError:
        return UnsatisfiedDependencyError(self.module, self.requirement, self.kind, self.tried_probes)


@dataclass(frozen=True)
class DroppedModule:
    """An optional default module excluded because its closure is unsatisfiable."""

    name: str
    missing: MissingRequirement

    @property
    def reason(self) -> str:
        m = self.missing
        if m.module == self.name:
            return f"requires {m.kind} '{m.requirement}'"
        return f"dependency '{m.module}' requires {m.kind} '{m.requirement}'"


@dataclass(frozen=True)
class ResolvedGraph:
    """Directed acyclic graph of the modules to build.

    Attributes:
        order: Module names, dependencies before dependents
        modules: ModuleSpecs in ``order``
        edges: (dependent, dependency) pairs, ordered by dependent position
        libraries: Libraries linked by the included modules, de-duplicated, in order
        dropped: Optional modules that were excluded, with the reason
        requested: The explicitly requested module names, in catalog order
    """

    order: tuple[str, ...]
    modules: tuple[ModuleSpec, ...]
    edges: tuple[tuple[str, str], ...]
    libraries: tuple[LibraryRef, ...]
    dropped: tuple[DroppedModule, ...] = ()
    requested: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.order

    def __len__(self) -> int:
        return len(self.order)

    def module(self, name: str) -> ModuleSpec:
        """Look up an included module.

        Raises:
            KeyError: If the module is not part of the graph.
        """
        for spec in self.modules:
            if spec.name == name:
                return spec
        raise KeyError(f"Module not in graph: {name}")

    def dependencies_of(self, name: str) -> list[str]:
        return [dep for dependent, dep in self.edges if dependent == name]

    def position(self, name: str) -> int:
        return self.order.index(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "edges": [list(e) for e in self.edges],
            "libraries": [lib.name for lib in self.libraries],
            "dropped": [{"name": d.name, "reason": d.reason} for d in self.dropped],
            "requested": list(self.requested),
        }


def probe_libraries(
    libraries: Iterable[LibraryRef],
    runner: ProbeRunner,
    jobs: int,
    callback: Optional[ProbeCallback] = None,
) -> dict[str, ProbeResult]:
    """Run the explicit link checks for a set of libraries in parallel.

    Libraries proven by a catalog feature are skipped; their result is
    already part of PlatformFacts.

    Returns:
        Mapping of LibraryRef.probe_id to ProbeResult
    """
    requests = {}
    for lib in libraries:
        if lib.is_link_check and lib.probe_id not in requests:
            requests[lib.probe_id] = lib.to_request()
    if not requests:
        return {}
    with ProbePool(max_workers=jobs) as pool:
        return pool.run_all(runner, requests.values(), callback)


class ModuleResolver:
    """Resolves module requests against a catalog and detected facts.

    Args:
        catalog: Module catalog
        facts: Detected platform facts
        library_results: Pre-computed link-check results by probe id
        library_prober: Called for link-check libraries missing from
            ``library_results`` (results are cached for the resolver's lifetime)
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        facts: PlatformFacts,
        library_results: Optional[Mapping[str, ProbeResult]] = None,
        library_prober: Optional[LibraryProber] = None,
    ) -> None:
        self._catalog = catalog
        self._facts = facts
        self._library_results: dict[str, ProbeResult] = dict(library_results or {})
        self._library_prober = library_prober
        self._color: dict[str, int] = {}
        self._missing: dict[str, Optional[MissingRequirement]] = {}

    def resolve(self, requested: Iterable[str]) -> ResolvedGraph:
        """Resolve the requested modules.

        Args:
            requested: Names of explicitly requested modules

        Returns:
            ResolvedGraph of every module to build

        Raises:
            UnsatisfiedDependencyError: If a requested module (or anything it
                needs) is unknown or has an unmet feature/library requirement
            CyclicDependencyError: If module requirements form a cycle
        """
        requested_set = set(requested)
        for name in sorted(requested_set):
            if name not in self._catalog:
                raise UnsatisfiedDependencyError(name, name, "module")

        requested_order = [n for n in self._catalog.names if n in requested_set]
        defaults = [m.name for m in self._catalog.default_enabled() if m.name not in requested_set]

        for root in requested_order + defaults:
            if self._color.get(root, _WHITE) == _WHITE:
                self._visit(root, [])

        for root in requested_order:
            missing = self._missing[root]
            if missing is not None:
                raise missing.to_error()

        included: set[str] = set()
        dropped: list[DroppedModule] = []
        for root in requested_order + defaults:
            missing = self._missing[root]
            if missing is not None:
                logger.warning(f"Dropping optional module '{root}': {missing.kind} '{missing.requirement}' unavailable (needed by '{missing.module}')")
                dropped.append(DroppedModule(root, missing))
                continue
            self._collect_closure(root, included)

        order = self._topological_order(included)
        modules = tuple(self._catalog.get(n) for n in order)
        edges = tuple((m.name, dep) for m in modules for dep in m.required_modules)

        libraries: dict[str, LibraryRef] = {}
        for module in modules:
            for lib in module.required_libraries:
                libraries.setdefault(lib.name, lib)

        logger.info(f"Resolved {len(order)} modules ({len(dropped)} dropped)")
        return ResolvedGraph(
            order=order,
            modules=modules,
            edges=edges,
            libraries=tuple(libraries.values()),
            dropped=tuple(dropped),
            requested=tuple(requested_order),
        )

    def _visit(self, name: str, path: list[str]) -> None:
        self._color[name] = _GRAY
        path.append(name)
        spec = self._catalog.get(name)
        missing: Optional[MissingRequirement] = None

        for dep in spec.required_modules:
            if dep not in self._catalog:
                missing = missing or MissingRequirement(name, dep, "module")
                continue
            color = self._color.get(dep, _WHITE)
            if color == _GRAY:
                raise CyclicDependencyError(path + [dep])
            if color == _WHITE:
                self._visit(dep, path)
            missing = missing or self._missing[dep]

        for feature_id in spec.required_features:
            if not self._facts.has(feature_id):
                result = self._facts.result_for(feature_id)
                missing = missing or MissingRequirement(name, feature_id, "feature", (result,) if result else ())

        for lib in spec.required_libraries:
            available, tried = self._library_available(lib)
            if not available:
                missing = missing or MissingRequirement(name, lib.name, "library", tried)

        path.pop()
        self._missing[name] = missing
        self._color[name] = _BLACK

    def _library_available(self, lib: LibraryRef) -> tuple[bool, tuple[ProbeResult, ...]]:
        if not lib.is_link_check:
            result = self._facts.result_for(lib.feature)
            return self._facts.has(lib.feature), (result,) if result else ()

        result = self._library_results.get(lib.probe_id)
        if result is None and self._library_prober is not None:
            # Not covered by the up-front library probes; probe now
            logger.debug(f"Probing library '{lib.name}' at resolution time")
            result = self._library_prober(lib)
            self._library_results[lib.probe_id] = result
        if result is None:
            return False, ()
        return result.succeeded, (result,)

    def _collect_closure(self, root: str, into: set[str]) -> None:
        stack = [root]
        while stack:
            name = stack.pop()
            if name in into:
                continue
            into.add(name)
            stack.extend(self._catalog.get(name).required_modules)

    def _topological_order(self, included: set[str]) -> tuple[str, ...]:
        """Kahn's algorithm; the ready heap is keyed by catalog declaration index."""
        remaining = {n: len(set(self._catalog.get(n).required_modules)) for n in included}
        dependents: dict[str, list[str]] = {n: [] for n in included}
        for name in included:
            for dep in set(self._catalog.get(name).required_modules):
                dependents[dep].append(name)

        ready = [(self._catalog.index_of(n), n) for n, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _index, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._catalog.index_of(dependent), dependent))

        if len(order) != len(included):
            # Only possible if the catalog changed after the DFS pass
            stuck = sorted(n for n in included if n not in order)
            raise CyclicDependencyError(stuck + stuck[:1])
        return tuple(order)


def resolve(
    requested: Iterable[str],
    catalog: ModuleCatalog,
    facts: PlatformFacts,
    library_results: Optional[Mapping[str, ProbeResult]] = None,
    library_prober: Optional[LibraryProber] = None,
) -> ResolvedGraph:
    """Resolve ``requested`` against ``catalog`` and ``facts``.

    See ModuleResolver.resolve().
    """
    return ModuleResolver(catalog, facts, library_results, library_prober).resolve(requested)
