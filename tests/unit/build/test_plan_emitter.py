"""Tests for BuildPlanEmitter: compile/link steps and header contents."""

from dataclasses import replace

import pytest

from fconfig.build.emitter import BuildPlanEmitter, emit
from fconfig.build.plan import StepKind
from fconfig.build.profiles import BuildProfile
from fconfig.catalog.features import FeatureCatalog, FeatureSpec, builtin_catalog
from fconfig.catalog.modules import LibraryRef, ModuleCatalog, ModuleSpec
from fconfig.diagnostics import DiagnosticCollector, Phase
from fconfig.resolve import resolve


def _graph(facts, *modules: ModuleSpec, requested=None):
    catalog = ModuleCatalog(modules)
    return resolve(requested if requested is not None else [m.name for m in modules], catalog, facts)


class TestPlan:
    def test_single_module_with_two_sources(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core", source_files=("src/main.c", "src/util.c"), required_features=("header_stdint_h",)))
        plan, header = emit(graph, unix_facts, builtin_catalog(), extra_cflags=("-O3", "-Wall"))

        assert [s.step_kind for s in plan.steps] == [StepKind.COMPILE, StepKind.COMPILE, StepKind.LINK]
        assert [s.inputs for s in plan.compile_steps] == [("src/main.c",), ("src/util.c",)]
        assert plan.outputs == ["build/obj/core/main.o", "build/obj/core/util.o", "build/app"]
        assert plan.link_step.inputs == ("build/obj/core/main.o", "build/obj/core/util.o")
        assert plan.compile_steps[0].flags == ("-O2", "-DNDEBUG", "-Wall", "-m64", "-fPIC", "-Ibuild")
        assert header["HAVE_STDINT_H"] == 1
        assert header["FCONFIG_MODULE_CORE"] == 1

    def test_steps_follow_graph_order(self, unix_facts):
        graph = _graph(
            unix_facts,
            ModuleSpec("app", source_files=("src/app.c",), required_modules=("core",)),
            ModuleSpec("core", source_files=("src/core.c",)),
            requested=["app"],
        )
        plan, _header = emit(graph, unix_facts, builtin_catalog())
        assert plan.module_order() == ["core", "app"]

    def test_module_defines(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core", source_files=("a.c",), defines=(("LEVEL", 3), ("NAME", "fast"))))
        plan, _header = emit(graph, unix_facts, builtin_catalog())
        assert plan.compile_steps[0].flags[-2:] == ("-DLEVEL=3", '-DNAME="fast"')

    def test_repeated_stems_get_suffixes(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core", source_files=("a/util.c", "b/util.c", "c/util.c")))
        plan, _header = emit(graph, unix_facts, builtin_catalog())
        assert [s.output for s in plan.compile_steps] == ["build/obj/core/util.o", "build/obj/core/util_2.o", "build/obj/core/util_3.o"]

    def test_pthread_library(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("threads", source_files=("t.c",), required_libraries=(LibraryRef("pthread", feature="library_pthread"), LibraryRef("m", feature="library_m"))))
        plan, _header = emit(graph, unix_facts, builtin_catalog(), extra_ldflags=("-static",))
        assert "-pthread" in plan.compile_steps[0].flags
        assert plan.link_step.flags == ("-static", "-lpthread", "-lm")

    def test_debug_profile(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core", source_files=("a.c",)))
        plan, _header = emit(graph, unix_facts, builtin_catalog(), profile=BuildProfile.DEBUG)
        assert plan.compile_steps[0].flags[:2] == ("-O0", "-g")
        assert plan.link_step.flags == ("-g",)

    def test_windows_suffixes(self, unix_facts):
        facts = replace(unix_facts, os_family="windows", detected_features=frozenset())
        graph = _graph(facts, ModuleSpec("core", source_files=("a.c",)))
        plan, header = emit(graph, facts, builtin_catalog(), output_name="tool")
        assert plan.outputs == ["build/obj/core/a.obj", "build/tool.exe"]
        assert "-fPIC" not in plan.compile_steps[0].flags
        assert "FCONFIG_OS_WINDOWS" in header

    def test_empty_graph_has_no_link_step(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("extra", source_files=("x.c",), optional=True), requested=[])
        assert graph.order == ()
        plan, header = emit(graph, unix_facts, builtin_catalog())
        assert plan.steps == ()
        assert plan.link_step is None
        assert plan.render() == "# Generated by fconfig. Do not edit.\nCC ?= cc\n\n.PHONY: all\nall:\n"
        assert "FCONFIG_OS_UNIX" in header

    def test_modules_without_sources_have_no_link_step(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("headers_only"))
        plan, header = emit(graph, unix_facts, builtin_catalog())
        assert plan.steps == ()
        assert header["FCONFIG_MODULE_HEADERS_ONLY"] == 1

    def test_word_flag_only_on_x86(self, unix_facts):
        facts = replace(unix_facts, architecture="aarch64")
        graph = _graph(facts, ModuleSpec("core", source_files=("a.c",)))
        plan, _header = emit(graph, facts, builtin_catalog())
        assert not any(f.startswith("-m") for f in plan.compile_steps[0].flags)

    def test_build_dir(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core", source_files=("a.c",)))
        plan, _header = emit(graph, unix_facts, builtin_catalog(), build_dir="out\\release")
        assert plan.outputs == ["out/release/obj/core/a.o", "out/release/app"]
        assert "-Iout/release" in plan.compile_steps[0].flags

    def test_absolute_build_dir_rejected(self):
        with pytest.raises(ValueError, match="relative"):
            BuildPlanEmitter(builtin_catalog(), build_dir="/tmp/build")

    @pytest.mark.parametrize("name", ["", "bin/app", "bin\\app"])
    def test_invalid_output_name(self, name):
        with pytest.raises(ValueError, match="Invalid output name"):
            BuildPlanEmitter(builtin_catalog(), output_name=name)

    def test_deterministic(self, unix_facts):
        modules = (
            ModuleSpec("core", source_files=("src/core.c",), required_features=("header_stdint_h",)),
            ModuleSpec("net", source_files=("src/net.c", "src/http.c"), required_modules=("core",), defines=(("NET", 1),)),
        )
        first = emit(_graph(unix_facts, *modules), unix_facts, builtin_catalog())
        second = emit(_graph(unix_facts, *modules), unix_facts, builtin_catalog())
        assert first[0].render() == second[0].render()
        assert first[1].render() == second[1].render()


class TestHeader:
    def test_symbol_order(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core"))
        _plan, header = emit(graph, unix_facts, builtin_catalog())
        assert header.symbols == [
            "HAVE_STDINT_H",
            "HAVE_UNISTD_H",
            "HAVE_PTHREAD_H",
            "HAVE_LIBM",
            "HAVE_LIBPTHREAD",
            "FCONFIG_MODULE_CORE",
            "FCONFIG_OS_UNIX",
            "FCONFIG_WORD_SIZE",
            "FCONFIG_COMPILER_GCC",
        ]
        assert header["FCONFIG_WORD_SIZE"] == 64

    def test_undefined_lists_missing_applicable_features(self, unix_facts):
        graph = _graph(unix_facts, ModuleSpec("core"))
        _plan, header = emit(graph, unix_facts, builtin_catalog())
        assert "HAVE_SYS_MMAN_H" in header.undefined
        assert "HAVE_LIBDL" in header.undefined
        assert "HAVE_WINDOWS_H" not in header.undefined
        assert "HAVE_STDINT_H" not in header.undefined

    def test_feature_value(self, unix_facts):
        facts = unix_facts.with_features(enable={"large_file_support"})
        _plan, header = emit(_graph(facts, ModuleSpec("core")), facts, builtin_catalog())
        assert header["_FILE_OFFSET_BITS"] == 64

    def test_symbol_collision_first_wins(self, unix_facts):
        catalog = FeatureCatalog(
            [
                FeatureSpec("header_stdint_h", "", symbol="HAVE_DUP", value=1),
                FeatureSpec("header_unistd_h", "", symbol="HAVE_DUP", value=2),
            ]
        )
        diagnostics = DiagnosticCollector()
        _plan, header = emit(_graph(unix_facts, ModuleSpec("core")), unix_facts, catalog, diagnostics=diagnostics)
        assert header["HAVE_DUP"] == 1
        warnings = diagnostics.by_phase(Phase.EMIT)
        assert len(warnings) == 1
        assert warnings[0].subject == "HAVE_DUP"
        assert "header_unistd_h" in warnings[0].message

    def test_unknown_detected_feature_is_ignored(self, unix_facts):
        facts = unix_facts.with_features(enable={"not_in_catalog"})
        _plan, header = emit(_graph(facts, ModuleSpec("core")), facts, builtin_catalog())
        assert "HAVE_NOT_IN_CATALOG" not in header
