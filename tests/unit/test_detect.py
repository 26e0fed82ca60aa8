"""Tests for platform detection."""

import pytest

from fconfig.catalog.features import FeatureCatalog, FeatureSpec, builtin_catalog
from fconfig.detect import PlatformDetector, PlatformFacts, detect_platform, host_os_family, identify_compiler, normalize_architecture
from fconfig.errors import BuildEnvironmentError
from fconfig.probe.models import ProbeResult


def _catalog() -> FeatureCatalog:
    return FeatureCatalog(
        [
            FeatureSpec("header_stdint_h", "#include <stdint.h>\n", symbol="HAVE_STDINT_H"),
            FeatureSpec("header_unistd_h", "#include <unistd.h>\n", os_families=("unix",)),
            FeatureSpec("header_windows_h", "#include <windows.h>\n", os_families=("windows",)),
            FeatureSpec("symbol_mmap", "int main(void) { return 0; }\n", os_families=("unix",)),
        ]
    )


class TestNormalizeArchitecture:
    @pytest.mark.parametrize(
        "machine,expected",
        [("AMD64", "x86_64"), ("x86_64", "x86_64"), ("arm64", "aarch64"), ("i686", "x86"), ("armv7l", "arm"), ("riscv64", "riscv64"), ("", "unknown")],
    )
    def test_aliases(self, machine, expected):
        assert normalize_architecture(machine) == expected


class TestIdentifyCompiler:
    def test_gcc(self):
        assert identify_compiler({"__GNUC__": "13", "__GNUC_MINOR__": "2", "__GNUC_PATCHLEVEL__": "1"}) == ("gcc", "13.2.1")

    def test_clang_checked_before_gcc(self):
        macros = {"__GNUC__": "4", "__clang__": "1", "__clang_major__": "17", "__clang_minor__": "0", "__clang_patchlevel__": "6"}
        assert identify_compiler(macros) == ("clang", "17.0.6")

    def test_msvc(self):
        assert identify_compiler({"_MSC_VER": "1938"}) == ("msvc", "1938")

    def test_unknown(self):
        assert identify_compiler({"__VERSION__": '"tcc 0.9"'}) == ("unknown", "tcc 0.9")


class TestHostOsFamily:
    def test_returns_known_family(self):
        assert host_os_family() in ("unix", "darwin", "windows")


class TestPlatformDetector:
    def test_detects_applicable_features(self, fake_runner, settings):
        runner = fake_runner(available={"header_stdint_h", "symbol_mmap", "header_windows_h"})
        facts = PlatformDetector(runner, _catalog(), settings).detect()

        assert facts.os_family == "unix"
        assert facts.architecture == "x86_64"
        assert facts.word_size == 64
        assert (facts.compiler_id, facts.compiler_version) == ("gcc", "13.2.0")
        assert facts.detected_features == frozenset({"header_stdint_h", "symbol_mmap"})
        # windows-only feature is never probed on unix
        assert "header_windows_h" not in runner.calls
        assert [r.feature_id for r in facts.probe_results] == ["header_stdint_h", "header_unistd_h", "symbol_mmap"]

    def test_sanity_failure_aborts(self, fake_runner, settings):
        runner = fake_runner(available={"header_stdint_h"}, sanity=False)
        with pytest.raises(BuildEnvironmentError) as exc_info:
            PlatformDetector(runner, _catalog(), settings).detect()
        assert exc_info.value.compiler == "cc"
        assert "no input" in exc_info.value.diagnostic
        assert "header_stdint_h" not in runner.calls

    def test_word_size_falls_back_to_probes(self, fake_runner, settings):
        runner = fake_runner(available={"word_size_32"}, macros={"__GNUC__": "9"})
        facts = PlatformDetector(runner, _catalog(), settings).detect()
        assert facts.word_size == 32
        assert runner.calls.index("word_size_64") < runner.calls.index("word_size_32")

    def test_word_size_undeterminable(self, fake_runner, settings):
        runner = fake_runner(macros={})
        with pytest.raises(BuildEnvironmentError, match="pointer width"):
            PlatformDetector(runner, _catalog(), settings).detect()

    def test_unsupported_os_family(self, fake_runner, settings):
        with pytest.raises(BuildEnvironmentError, match="Unsupported OS family"):
            PlatformDetector(fake_runner(), _catalog(), settings.with_overrides(os_family="plan9")).detect()

    def test_windows_family(self, fake_runner, settings):
        runner = fake_runner(available={"header_windows_h"})
        facts = detect_platform(settings.with_overrides(os_family="windows"), _catalog(), runner=runner)
        assert facts.detected_features == frozenset({"header_windows_h"})
        assert "header_unistd_h" not in runner.calls

    def test_timed_out_probe_is_absent(self, fake_runner, settings):
        runner = fake_runner(available={"header_stdint_h"}, timed_out={"symbol_mmap"})
        facts = PlatformDetector(runner, _catalog(), settings).detect()
        assert not facts.has("symbol_mmap")
        assert facts.result_for("symbol_mmap").timed_out

    def test_deterministic(self, fake_runner, settings):
        available = {"header_stdint_h", "header_unistd_h", "symbol_mmap", "library_m"}
        first = PlatformDetector(fake_runner(available=available), builtin_catalog(), settings).detect()
        second = PlatformDetector(fake_runner(available=available), builtin_catalog(), settings).detect()
        assert first == second


class TestPlatformFacts:
    def test_with_features_disable_wins(self, unix_facts):
        facts = unix_facts.with_features(enable={"symbol_mmap", "library_dl"}, disable={"library_dl", "library_m"})
        assert facts.has("symbol_mmap")
        assert not facts.has("library_dl")
        assert not facts.has("library_m")
        assert unix_facts.has("library_m")

    def test_result_for(self, unix_facts):
        assert unix_facts.result_for("header_sys_mman_h") == ProbeResult("header_sys_mman_h", False, "sys/mman.h: No such file or directory")
        assert unix_facts.result_for("nope") is None

    def test_dict_round_trip(self, unix_facts):
        data = unix_facts.to_dict()
        assert data["detected_features"] == sorted(unix_facts.detected_features)
        assert PlatformFacts.from_dict(data) == unix_facts
