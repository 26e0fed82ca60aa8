"""fconfig - platform and feature probing build configuration.

Probes the C toolchain, resolves the requested modules against what was
found, and emits a dependency-ordered build plan plus a capability header.
"""

__version__ = "0.1.0"

from fconfig.build import BuildPlan, BuildProfile, BuildStep, CapabilityHeader, emit
from fconfig.catalog import FeatureCatalog, FeatureSpec, LibraryRef, ModuleCatalog, ModuleSpec, builtin_catalog, load_catalog_file
from fconfig.config import EngineSettings
from fconfig.detect import PlatformDetector, PlatformFacts, detect_platform
from fconfig.diagnostics import Diagnostic, DiagnosticCollector
from fconfig.engine import ConfigureRequest, ConfigureResult, configure
from fconfig.errors import BuildEnvironmentError, CatalogError, CyclicDependencyError, FconfigError, UnsatisfiedDependencyError
from fconfig.probe import ProbeMode, ProbeResult, ProbeRunner
from fconfig.resolve import ModuleResolver, ResolvedGraph, resolve

__all__ = [
    "BuildEnvironmentError",
    "BuildPlan",
    "BuildProfile",
    "BuildStep",
    "CapabilityHeader",
    "CatalogError",
    "ConfigureRequest",
    "ConfigureResult",
    "CyclicDependencyError",
    "Diagnostic",
    "DiagnosticCollector",
    "EngineSettings",
    "FconfigError",
    "FeatureCatalog",
    "FeatureSpec",
    "LibraryRef",
    "ModuleCatalog",
    "ModuleResolver",
    "ModuleSpec",
    "PlatformDetector",
    "PlatformFacts",
    "ProbeMode",
    "ProbeResult",
    "ProbeRunner",
    "ResolvedGraph",
    "UnsatisfiedDependencyError",
    "__version__",
    "configure",
    "detect_platform",
    "emit",
    "resolve",
]
