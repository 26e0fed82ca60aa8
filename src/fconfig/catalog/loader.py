"""Project catalog loader.

A project catalog is a JSON file declaring project-specific features,
libraries and modules:

    {
      "features":  [{"id": "header_zlib_h", "header": "zlib.h"},
                    {"id": "symbol_deflate", "function": "deflate",
                     "includes": ["zlib.h"], "link": ["-lz"]},
                    {"id": "custom", "program": "...", "mode": "compile"}],
      "libraries": [{"name": "z", "symbol": "deflate", "header": "zlib.h"}],
      "modules":   [{"name": "compress", "sources": ["src/compress.c"],
                     "requires": {"features": ["header_zlib_h"],
                                  "libraries": ["z"], "modules": []},
                     "optional": true, "default": true}]
    }

Feature entries take exactly one of "program" (full source text, or a list
of lines), "header" (compile check that the header exists) or "function"
(link check that the function resolves).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from fconfig.errors import CatalogError
from fconfig.probe.models import ProbeMode

from .features import FeatureCatalog, FeatureSpec
from .modules import LibraryRef, ModuleCatalog, ModuleSpec

logger = logging.getLogger(__name__)


@dataclass
class ProjectCatalog:
    """Everything declared by one project catalog file.

    Attributes:
        features: Project-specific features (appended after the built-ins)
        libraries: Declared libraries by name
        modules: Declared modules
        source: File the catalog was loaded from (for diagnostics)
    """

    features: FeatureCatalog = field(default_factory=FeatureCatalog)
    libraries: dict[str, LibraryRef] = field(default_factory=dict)
    modules: ModuleCatalog = field(default_factory=ModuleCatalog)
    source: str = ""


def _parse_mode(raw: Any, where: str) -> ProbeMode:
    try:
        return ProbeMode(raw)
    except ValueError:
        raise CatalogError(f"{where}: invalid probe mode {raw!r} (expected compile, link or run)")


def feature_from_dict(data: dict[str, Any]) -> FeatureSpec:
    """Parse a feature declaration.

    Args:
        data: Raw feature dictionary

    Returns:
        FeatureSpec instance

    Raises:
        CatalogError: If the declaration is incomplete or ambiguous
    """
    try:
        feature_id = data["id"]
    except KeyError as e:
        raise CatalogError(f"Missing required field in feature declaration: {e}")

    where = f"feature '{feature_id}'"
    kinds = [k for k in ("program", "header", "function") if k in data]
    if len(kinds) != 1:
        raise CatalogError(f"{where}: exactly one of 'program', 'header' or 'function' is required")

    includes = [f"#include <{h}>" for h in data.get("includes", [])]

    if "program" in data:
        program = data["program"]
        if isinstance(program, list):
            program = "\n".join(program) + "\n"
        default_mode = ProbeMode.LINK
    elif "header" in data:
        program = "\n".join(includes + [f"#include <{data['header']}>", "int main(void) { return 0; }"]) + "\n"
        default_mode = ProbeMode.COMPILE
    else:
        function = data["function"]
        if includes:
            body = f"    void *volatile fn = (void *)&{function};\n    return fn == 0;"
            program = "\n".join(includes + ["int main(void) {", body, "}"]) + "\n"
        else:
            program = f"char {function}(void);\nint main(void) {{ return (int){function}(); }}\n"
        default_mode = ProbeMode.LINK

    mode = _parse_mode(data["mode"], where) if "mode" in data else default_mode
    value: Union[int, str] = data.get("value", 1)
    if not isinstance(value, (int, str)) or isinstance(value, bool):
        raise CatalogError(f"{where}: 'value' must be an integer or a string")

    return FeatureSpec(
        feature_id=feature_id,
        program=program,
        mode=mode,
        link_requirements=tuple(data.get("link", ())),
        os_families=tuple(data.get("os_families", ())),
        symbol=data.get("symbol", ""),
        value=value,
        description=data.get("description", ""),
    )


def catalog_from_dict(data: dict[str, Any], source: str = "<memory>") -> ProjectCatalog:
    """Build a ProjectCatalog from a parsed JSON document.

    Raises:
        CatalogError: If any entry is invalid (message names the source)
    """
    if not isinstance(data, dict):
        raise CatalogError(f"{source}: catalog must be a JSON object")

    unknown = sorted(set(data) - {"features", "libraries", "modules"})
    if unknown:
        raise CatalogError(f"{source}: unknown top-level keys: {', '.join(unknown)}")

    try:
        features = FeatureCatalog([feature_from_dict(f) for f in data.get("features", [])])

        libraries: dict[str, LibraryRef] = {}
        for entry in data.get("libraries", []):
            library = LibraryRef.from_dict(entry)
            if library.name in libraries:
                raise CatalogError(f"Duplicate library name: {library.name}")
            libraries[library.name] = library

        modules = ModuleCatalog(ModuleSpec.from_dict(m, libraries) for m in data.get("modules", []))
    except CatalogError as e:
        raise CatalogError(f"{source}: {e}") from e
    except (TypeError, AttributeError) as e:
        raise CatalogError(f"{source}: malformed entry: {e}") from e

    logger.debug(f"Loaded catalog {source}: {len(features)} features, {len(libraries)} libraries, {len(modules)} modules")
    return ProjectCatalog(features=features, libraries=libraries, modules=modules, source=source)


def load_catalog_file(path: Path) -> ProjectCatalog:
    """Load a project catalog from a JSON file.

    Args:
        path: Path to the catalog file

    Returns:
        ProjectCatalog instance

    Raises:
        CatalogError: If the file cannot be read or is invalid
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise CatalogError(f"Catalog file not found: {path}")
    except json.JSONDecodeError as e:
        raise CatalogError(f"{path}: invalid JSON: {e}") from e

    return catalog_from_dict(data, source=str(path))
