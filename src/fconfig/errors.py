"""Error taxonomy for fconfig.

Only environment-level and resolver-level failures are raised. A probe that
fails to compile is a normal negative result (see ProbeResult) and is never
raised on its own.

Hierarchy:
    FconfigError
    ├── BuildEnvironmentError       toolchain unusable, aborts the run
    ├── UnsatisfiedDependencyError  requested module cannot be satisfied
    ├── CyclicDependencyError       module catalog contains a cycle
    └── CatalogError                malformed catalog or override input
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from fconfig.probe.models import ProbeResult


class FconfigError(Exception):
    """Base class for all fconfig errors."""

    pass


class BuildEnvironmentError(FconfigError):
    """Raised when the compiler/toolchain cannot be used at all.

    Examples: the compiler binary does not exist, is not executable, or the
    minimal sanity probe fails to build. There is no point in probing any
    further once this is raised.

    Attributes:
        compiler: The compiler command that was attempted
        diagnostic: Compiler output or OS error text, if any
    """

    def __init__(self, message: str, compiler: str = "", diagnostic: str = "") -> None:
        super().__init__(message)
        self.compiler = compiler
        self.diagnostic = diagnostic


class UnsatisfiedDependencyError(FconfigError):
    """Raised when an explicitly requested module cannot be satisfied.

    Attributes:
        module: Name of the module whose requirement is missing
        missing_requirement: The missing module name, FeatureID or library name
        requirement_kind: One of "module", "feature", "library"
        tried_probes: Probe results that were consulted for the requirement
    """

    def __init__(
        self,
        module: str,
        missing_requirement: str,
        requirement_kind: str = "module",
        tried_probes: Sequence["ProbeResult"] = (),
    ) -> None:
        self.module = module
        self.missing_requirement = missing_requirement
        self.requirement_kind = requirement_kind
        self.tried_probes = tuple(tried_probes)
        super().__init__(f"Module '{module}' requires {requirement_kind} '{missing_requirement}' which is not available")

    def format_detail(self) -> str:
        """Format the error together with the diagnostics of the probes tried.

        Returns:
            Multi-line human-readable description
        """
        lines = [str(self)]
        for result in self.tried_probes:
            status = "ok" if result.succeeded else "failed"
            lines.append(f"  probe {result.feature_id}: {status}")
            if result.diagnostic:
                lines.append(f"    {result.diagnostic.strip().splitlines()[0]}")
        return "\n".join(lines)


class CyclicDependencyError(FconfigError, ValueError):
    """Raised when the module dependency graph contains a cycle.

    Attributes:
        cycle_path: Path from the resolution root to the repeated node,
            e.g. ["A", "B", "A"]
    """

    def __init__(self, cycle_path: Sequence[str]) -> None:
        self.cycle_path = list(cycle_path)
        super().__init__(f"Cyclic dependency detected: {' -> '.join(self.cycle_path)}")


class CatalogError(FconfigError, ValueError):
    """Raised when a feature/module catalog or an override is malformed."""

    pass
