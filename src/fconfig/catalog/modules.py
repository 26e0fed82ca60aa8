"""
Module catalog models.

A module is a named unit of source files plus its requirements: other
modules, probeable features, and libraries. Modules are loaded once from a
static catalog and never modified during resolution.

All requirement collections are ordered tuples (declaration order, duplicates
removed) so everything derived from them is deterministic.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from fconfig.errors import CatalogError
from fconfig.probe.models import ProbeMode, ProbeRequest

from .features import FEATURE_ID_RE, SYMBOL_RE

MODULE_NAME_RE = FEATURE_ID_RE

DefineValue = Union[int, str]


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True)
class LibraryRef:
    """A library a module links against.

    The library is available iff its probe succeeds. The probe is either a
    catalog feature (``feature``) or an explicit link check built from
    ``link``/``symbol``/``header``.

    Attributes:
        name: Library name (e.g. "z" for libz)
        feature: FeatureID whose detection proves the library, or "" for a link check
        link: Linker arguments (default: -l<name>)
        symbol: Function that must resolve in the link check (optional)
        header: Header included by the link check (optional)
    """

    name: str
    feature: str = ""
    link: tuple[str, ...] = ()
    symbol: str = ""
    header: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise CatalogError("Library name must not be empty")
        if self.symbol and not SYMBOL_RE.match(self.symbol):
            raise CatalogError(f"Invalid symbol for library '{self.name}': {self.symbol!r}")

    @property
    def link_flags(self) -> tuple[str, ...]:
        return self.link or (f"-l{self.name}",)

    @property
    def probe_id(self) -> str:
        """Identifier used for the probe result of this library."""
        return self.feature or f"link_{self.name}"

    @property
    def is_link_check(self) -> bool:
        return not self.feature

    def link_check_program(self) -> str:
        """Source of the explicit link-check probe."""
        if not self.symbol:
            return "int main(void) { return 0; }\n"
        if self.header:
            return f"#include <{self.header}>\nint main(void) {{\n    void *volatile fn = (void *)&{self.symbol};\n    return fn == 0;\n}}\n"
        # Prototype-less declaration; links against whatever the library exports
        return f"char {self.symbol}(void);\nint main(void) {{ return (int){self.symbol}(); }}\n"

    def to_request(self) -> ProbeRequest:
        """Build the link-check ProbeRequest.

        Raises:
            ValueError: If the library is backed by a catalog feature.
        """
        if not self.is_link_check:
            raise ValueError(f"Library '{self.name}' is proven by feature '{self.feature}', not a link check")
        return ProbeRequest(feature_id=self.probe_id, program=self.link_check_program(), mode=ProbeMode.LINK, link_requirements=self.link_flags)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LibraryRef":
        """Parse a library declaration.

        Raises:
            CatalogError: If required fields are missing or invalid
        """
        try:
            name = data["name"]
        except KeyError as e:
            raise CatalogError(f"Missing required field in library declaration: {e}")
        return cls(
            name=name,
            feature=data.get("feature", ""),
            link=tuple(data.get("link", ())),
            symbol=data.get("symbol", ""),
            header=data.get("header", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.feature:
            data["feature"] = self.feature
        if self.link:
            data["link"] = list(self.link)
        if self.symbol:
            data["symbol"] = self.symbol
        if self.header:
            data["header"] = self.header
        return data


@dataclass(frozen=True)
class ModuleSpec:
    """
    A buildable module.

    Attributes:
        name: Module name (lowercase, digits, underscores)
        source_files: Ordered source paths, relative to the project root
        required_modules: Names of modules this module depends on
        required_features: FeatureIDs that must be detected
        required_libraries: Libraries that must link
        optional: True if the module may be dropped when unsatisfiable
        default_enabled: For optional modules, considered even when not requested
        defines: Preprocessor defines applied to this module's sources
        description: Human-readable description
    """

    name: str
    source_files: tuple[str, ...] = ()
    required_modules: tuple[str, ...] = ()
    required_features: tuple[str, ...] = ()
    required_libraries: tuple[LibraryRef, ...] = ()
    optional: bool = False
    default_enabled: bool = False
    defines: tuple[tuple[str, DefineValue], ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not MODULE_NAME_RE.match(self.name):
            raise CatalogError(f"Invalid module name: {self.name!r} (expected [a-z0-9_]+)")
        if self.default_enabled and not self.optional:
            raise CatalogError(f"Module '{self.name}' is default-enabled but not optional")
        for path in self.source_files:
            if not path or path.startswith("/") or "\\" in path:
                raise CatalogError(f"Module '{self.name}' has invalid source path {path!r} (must be relative, '/'-separated)")
        for key, _value in self.defines:
            if not SYMBOL_RE.match(key):
                raise CatalogError(f"Module '{self.name}' has invalid define name {key!r}")
        object.__setattr__(self, "source_files", _unique(self.source_files))
        object.__setattr__(self, "required_modules", _unique(self.required_modules))
        object.__setattr__(self, "required_features", _unique(self.required_features))

    @property
    def header_symbol(self) -> str:
        """Capability header symbol announcing this module is built."""
        return f"FCONFIG_MODULE_{self.name.upper()}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], libraries: Optional[Dict[str, LibraryRef]] = None) -> "ModuleSpec":
        """
        Parse a module declaration.

        Library names not present in ``libraries`` become plain link checks
        against -l<name>.

        Args:
            data: Raw module dictionary from JSON
            libraries: Declared libraries by name

        Returns:
            ModuleSpec instance

        Raises:
            CatalogError: If required fields are missing or invalid
        """
        try:
            name = data["name"]
        except KeyError as e:
            raise CatalogError(f"Missing required field in module declaration: {e}")

        libraries = libraries or {}
        requires = data.get("requires", {})
        if not isinstance(requires, dict):
            raise CatalogError(f"Module '{name}': 'requires' must be an object")

        library_names: List[str] = list(requires.get("libraries", []))
        required_libraries = tuple(libraries.get(lib) or LibraryRef(name=lib) for lib in _unique(library_names))

        defines = data.get("defines", {})
        if not isinstance(defines, dict):
            raise CatalogError(f"Module '{name}': 'defines' must be an object")

        return cls(
            name=name,
            source_files=tuple(data.get("sources", [])),
            required_modules=tuple(requires.get("modules", [])),
            required_features=tuple(requires.get("features", [])),
            required_libraries=required_libraries,
            optional=bool(data.get("optional", False)),
            default_enabled=bool(data.get("default", False)),
            defines=tuple(defines.items()),
            description=data.get("description", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "sources": list(self.source_files),
            "requires": {
                "modules": list(self.required_modules),
                "features": list(self.required_features),
                "libraries": [lib.name for lib in self.required_libraries],
            },
            "optional": self.optional,
            "default": self.default_enabled,
            "defines": dict(self.defines),
        }


class ModuleCatalog:
    """Ordered collection of ModuleSpecs. Declaration order is the tie-breaker for build order."""

    def __init__(self, modules: Optional[Iterable[ModuleSpec]] = None) -> None:
        self._modules: Dict[str, ModuleSpec] = {}
        for module in modules or []:
            self.add(module)

    def add(self, module: ModuleSpec) -> None:
        """Register a module.

        Raises:
            CatalogError: If a module with the same name already exists.
        """
        if module.name in self._modules:
            raise CatalogError(f"Duplicate module name: {module.name}")
        self._modules[module.name] = module

    def get(self, name: str) -> ModuleSpec:
        """Look up a module.

        Raises:
            KeyError: If the module is not declared.
        """
        if name not in self._modules:
            raise KeyError(f"Unknown module: {name}")
        return self._modules[name]

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __iter__(self) -> Iterator[ModuleSpec]:
        return iter(list(self._modules.values()))

    def __len__(self) -> int:
        return len(self._modules)

    @property
    def names(self) -> List[str]:
        return list(self._modules)

    def index_of(self, name: str) -> int:
        return self.names.index(name)

    def default_enabled(self) -> List[ModuleSpec]:
        """Optional modules that are considered even when not requested."""
        return [m for m in self._modules.values() if m.optional and m.default_enabled]

    def libraries(self) -> List[LibraryRef]:
        """Every library referenced by any module, first occurrence wins, declaration order."""
        seen: Dict[str, LibraryRef] = {}
        for module in self._modules.values():
            for lib in module.required_libraries:
                seen.setdefault(lib.name, lib)
        return list(seen.values())
