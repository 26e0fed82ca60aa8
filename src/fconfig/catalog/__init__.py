"""Feature and module catalogs."""

from .features import BUILTIN_FEATURES, FeatureCatalog, FeatureSpec, builtin_catalog, os_family_matches
from .loader import ProjectCatalog, catalog_from_dict, feature_from_dict, load_catalog_file
from .modules import LibraryRef, ModuleCatalog, ModuleSpec

__all__ = [
    "BUILTIN_FEATURES",
    "FeatureCatalog",
    "FeatureSpec",
    "LibraryRef",
    "ModuleCatalog",
    "ModuleSpec",
    "ProjectCatalog",
    "builtin_catalog",
    "catalog_from_dict",
    "feature_from_dict",
    "load_catalog_file",
    "os_family_matches",
]
