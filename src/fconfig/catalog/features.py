"""Feature Catalog - declarative registry of probeable capabilities.

Design:
    Every platform quirk is a catalog entry, not new control flow. A feature
    is a (FeatureID, probe program, applicability) tuple plus the header
    symbol it turns into when detected. The detector and the resolver only
    ever look features up here; neither knows what any probe tests.

    Probe programs are fixed text, optionally parameterized by OS family
    (a callable taking the os_family string), e.g. to select a macro that
    only makes sense on one family.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

from fconfig.errors import CatalogError
from fconfig.probe.models import ProbeMode, ProbeRequest

FEATURE_ID_RE = re.compile(r"^[a-z0-9_]+$")
SYMBOL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

OS_FAMILIES = ("unix", "darwin", "windows")

ProgramSource = Union[str, Callable[[str], str]]


def os_family_matches(os_family: str, families: tuple[str, ...]) -> bool:
    """Check whether a feature declared for ``families`` applies to ``os_family``.

    An empty tuple means universal. Darwin is a unix, so a feature declared
    for "unix" also applies to darwin hosts.
    """
    if not families:
        return True
    if os_family in families:
        return True
    return os_family == "darwin" and "unix" in families


def default_symbol(feature_id: str) -> str:
    """Default header symbol for a feature id (HAVE_<UPPER_ID>)."""
    return f"HAVE_{feature_id.upper()}"


@dataclass(frozen=True)
class FeatureSpec:
    """A probeable capability.

    Attributes:
        feature_id: Stable identifier (lowercase, digits, underscores)
        program: Probe source text, or a callable os_family -> source text
        mode: How far the program is taken (compile/link/run)
        link_requirements: Extra linker arguments for the probe
        os_families: Families the feature is meaningful on (empty = universal)
        symbol: Header symbol defined when detected ("" = default_symbol)
        value: Header value for the symbol
        description: Human-readable description
    """

    feature_id: str
    program: ProgramSource
    mode: ProbeMode = ProbeMode.LINK
    link_requirements: tuple[str, ...] = ()
    os_families: tuple[str, ...] = ()
    symbol: str = ""
    value: Union[int, str] = 1
    description: str = ""

    def __post_init__(self) -> None:
        if not FEATURE_ID_RE.match(self.feature_id):
            raise CatalogError(f"Invalid feature id: {self.feature_id!r} (expected [a-z0-9_]+)")
        if self.symbol and not SYMBOL_RE.match(self.symbol):
            raise CatalogError(f"Invalid header symbol for feature '{self.feature_id}': {self.symbol!r}")
        for family in self.os_families:
            if family not in OS_FAMILIES:
                raise CatalogError(f"Unknown OS family {family!r} for feature '{self.feature_id}'")

    @property
    def header_symbol(self) -> str:
        """The symbol this feature defines in the capability header."""
        return self.symbol or default_symbol(self.feature_id)

    def applies_to(self, os_family: str) -> bool:
        return os_family_matches(os_family, self.os_families)

    def render(self, os_family: str) -> str:
        """Produce the probe program text for the given OS family."""
        if callable(self.program):
            return self.program(os_family)
        return self.program

    def to_request(self, os_family: str) -> ProbeRequest:
        """Build the ProbeRequest for this feature."""
        return ProbeRequest(
            feature_id=self.feature_id,
            program=self.render(os_family),
            mode=self.mode,
            link_requirements=self.link_requirements,
        )


class FeatureCatalog:
    """Ordered registry of FeatureSpecs.

    Iteration order is declaration order; it is the tie-breaker wherever
    output must be deterministic (header symbol order, symbol collisions).
    """

    def __init__(self, features: Optional[list[FeatureSpec]] = None) -> None:
        self._features: dict[str, FeatureSpec] = {}
        for feature in features or []:
            self.add(feature)

    def add(self, feature: FeatureSpec) -> None:
        """Register a feature.

        Raises:
            CatalogError: If a feature with the same id already exists.
        """
        if feature.feature_id in self._features:
            raise CatalogError(f"Duplicate feature id: {feature.feature_id}")
        self._features[feature.feature_id] = feature

    def get(self, feature_id: str) -> FeatureSpec:
        """Look up a feature.

        Raises:
            KeyError: If the feature is not declared.
        """
        if feature_id not in self._features:
            raise KeyError(f"Unknown feature: {feature_id}")
        return self._features[feature_id]

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    def __iter__(self) -> Iterator[FeatureSpec]:
        return iter(list(self._features.values()))

    def __len__(self) -> int:
        return len(self._features)

    @property
    def feature_ids(self) -> list[str]:
        return list(self._features)

    def index_of(self, feature_id: str) -> int:
        """Declaration index of a feature (used for deterministic ordering)."""
        return self.feature_ids.index(feature_id)

    def applicable(self, os_family: str) -> list[FeatureSpec]:
        """Features whose applicability predicate matches the OS family."""
        return [f for f in self._features.values() if f.applies_to(os_family)]

    def symbol_for(self, feature_id: str) -> str:
        return self.get(feature_id).header_symbol

    def merged(self, other: "FeatureCatalog") -> "FeatureCatalog":
        """Return a new catalog with ``other``'s features appended.

        Raises:
            CatalogError: If a feature id is declared in both catalogs.
        """
        return FeatureCatalog(list(self) + list(other))


# ─── Built-in probe programs ──────────────────────────────────────────────────

_MAIN = "int main(void) {{ {body} }}\n"


def _header_program(header: str) -> str:
    return f"#include <{header}>\n" + _MAIN.format(body="return 0;")


def _symbol_program(includes: tuple[str, ...], call: str) -> str:
    lines = [f"#include <{h}>" for h in includes]
    lines.append(_MAIN.format(body=f"{call} return 0;"))
    return "\n".join(lines)


def _large_file_program(os_family: str) -> str:
    if os_family == "windows":
        # MinGW honours _FILE_OFFSET_BITS; off64_t is always 64-bit there
        prelude = "#define _FILE_OFFSET_BITS 64\n#include <sys/types.h>\n#include <stdio.h>\n"
    else:
        prelude = "#define _FILE_OFFSET_BITS 64\n#include <sys/types.h>\n"
    return prelude + "typedef char off_t_is_64bit[(sizeof(off_t) == 8) ? 1 : -1];\n" + _MAIN.format(body="return 0;")


_THREAD_LOCAL_PROGRAM = """\
#ifdef __cplusplus
static thread_local int counter;
#else
static _Thread_local int counter;
#endif
int main(void) { return counter; }
"""

_VISIBILITY_PROGRAM = """\
__attribute__((visibility("hidden"))) int hidden_fn(void) { return 0; }
int main(void) { return hidden_fn(); }
"""

_BUILTIN_EXPECT_PROGRAM = """\
int main(void) {
    volatile int x = 0;
    if (__builtin_expect(x, 0)) { return 1; }
    return 0;
}
"""

_LIBM_PROGRAM = """\
#include <math.h>
int main(void) {
    volatile double x = 0.5;
    return (int)cos(x) - 1 + (int)floor(x);
}
"""

_PTHREAD_PROGRAM = """\
#include <pthread.h>
#include <stddef.h>
static void *worker(void *arg) { return arg; }
int main(void) {
    pthread_t thread;
    if (pthread_create(&thread, NULL, worker, NULL) != 0) { return 1; }
    return pthread_join(thread, NULL);
}
"""

_LIBDL_PROGRAM = """\
#include <dlfcn.h>
#include <stddef.h>
int main(void) {
    void *handle = dlopen(NULL, RTLD_NOW);
    return handle == NULL;
}
"""


BUILTIN_FEATURES: tuple[FeatureSpec, ...] = (
    FeatureSpec("header_stdint_h", _header_program("stdint.h"), ProbeMode.COMPILE, symbol="HAVE_STDINT_H", description="<stdint.h> is available"),
    FeatureSpec("header_unistd_h", _header_program("unistd.h"), ProbeMode.COMPILE, os_families=("unix",), symbol="HAVE_UNISTD_H", description="<unistd.h> is available"),
    FeatureSpec("header_sys_mman_h", _header_program("sys/mman.h"), ProbeMode.COMPILE, os_families=("unix",), symbol="HAVE_SYS_MMAN_H", description="<sys/mman.h> is available"),
    FeatureSpec("header_pthread_h", _header_program("pthread.h"), ProbeMode.COMPILE, os_families=("unix",), symbol="HAVE_PTHREAD_H", description="<pthread.h> is available"),
    FeatureSpec("header_windows_h", _header_program("windows.h"), ProbeMode.COMPILE, os_families=("windows",), symbol="HAVE_WINDOWS_H", description="<windows.h> is available"),
    FeatureSpec("symbol_fseeko", _symbol_program(("stdio.h",), "(void)fseeko;"), os_families=("unix",), symbol="HAVE_FSEEKO", description="fseeko() links"),
    FeatureSpec("symbol_mmap", _symbol_program(("sys/mman.h",), "(void)mmap;"), os_families=("unix",), symbol="HAVE_MMAP", description="mmap() links"),
    FeatureSpec("symbol_clock_gettime", _symbol_program(("time.h",), "struct timespec ts; (void)clock_gettime(CLOCK_MONOTONIC, &ts);"), os_families=("unix",), symbol="HAVE_CLOCK_GETTIME", description="clock_gettime() links"),
    FeatureSpec("symbol_strlcpy", _symbol_program(("string.h",), "char buf[4]; (void)strlcpy(buf, \"abc\", sizeof(buf));"), symbol="HAVE_STRLCPY", description="strlcpy() links"),
    FeatureSpec("symbol_posix_memalign", _symbol_program(("stdlib.h",), "void *p = 0; (void)posix_memalign(&p, 16, 64);"), os_families=("unix",), symbol="HAVE_POSIX_MEMALIGN", description="posix_memalign() links"),
    FeatureSpec("large_file_support", _large_file_program, ProbeMode.COMPILE, symbol="_FILE_OFFSET_BITS", value=64, description="64-bit off_t with _FILE_OFFSET_BITS=64"),
    FeatureSpec("builtin_expect", _BUILTIN_EXPECT_PROGRAM, symbol="HAVE_BUILTIN_EXPECT", description="__builtin_expect() is available"),
    FeatureSpec("attribute_visibility", _VISIBILITY_PROGRAM, ProbeMode.COMPILE, os_families=("unix",), symbol="HAVE_ATTRIBUTE_VISIBILITY", description="__attribute__((visibility)) is accepted"),
    FeatureSpec("thread_local", _THREAD_LOCAL_PROGRAM, ProbeMode.COMPILE, symbol="HAVE_THREAD_LOCAL", description="thread-local storage keyword"),
    FeatureSpec("library_m", _LIBM_PROGRAM, link_requirements=("-lm",), os_families=("unix",), symbol="HAVE_LIBM", description="libm links"),
    FeatureSpec("library_pthread", _PTHREAD_PROGRAM, link_requirements=("-lpthread",), os_families=("unix",), symbol="HAVE_LIBPTHREAD", description="libpthread links"),
    FeatureSpec("library_dl", _LIBDL_PROGRAM, link_requirements=("-ldl",), os_families=("unix",), symbol="HAVE_LIBDL", description="libdl links"),
)


def builtin_catalog() -> FeatureCatalog:
    """Return a fresh catalog containing the built-in features."""
    return FeatureCatalog(list(BUILTIN_FEATURES))
