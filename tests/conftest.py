"""Pytest configuration and shared fixtures for fconfig tests.

Also addresses Python 3.13 compatibility issues with pytest's capture fixtures:
tests that close stdout/stderr would otherwise break teardown with
"I/O operation on closed file". See https://github.com/pytest-dev/pytest/issues/11439
"""

import sys
import threading
import warnings
from typing import Iterable, Optional, Sequence

import pytest

from fconfig.config import EngineSettings
from fconfig.detect import PlatformFacts
from fconfig.probe.models import ProbeMode, ProbeRequest, ProbeResult

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)

GCC_X86_64_MACROS = {
    "__GNUC__": "13",
    "__GNUC_MINOR__": "2",
    "__GNUC_PATCHLEVEL__": "0",
    "__SIZEOF_POINTER__": "8",
    "__x86_64__": "1",
}


class FakeRunner:
    """Stand-in for ProbeRunner that answers probes from a fixed table.

    Args:
        available: Probe ids that succeed
        macros: Predefined macros reported by the "compiler"
        sanity: Whether the compiler sanity probe succeeds
        timed_out: Probe ids that report a timeout
    """

    def __init__(
        self,
        available: Iterable[str] = (),
        macros: Optional[dict[str, str]] = None,
        sanity: bool = True,
        timed_out: Iterable[str] = (),
    ) -> None:
        self.available = set(available)
        self.macros = dict(GCC_X86_64_MACROS if macros is None else macros)
        self.sanity = sanity
        self.timed_out = set(timed_out)
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def _record(self, feature_id: str) -> None:
        with self._lock:
            self.calls.append(feature_id)

    def run_probe(
        self,
        program_text: str,
        link_requirements: Sequence[str] = (),
        mode: ProbeMode = ProbeMode.LINK,
        feature_id: str = "",
    ) -> ProbeResult:
        self._record(feature_id)
        if feature_id == "compiler_sanity":
            return ProbeResult(feature_id, self.sanity, "" if self.sanity else "cc: error: no input")
        if feature_id in self.timed_out:
            return ProbeResult(feature_id, False, "timed out", timed_out=True)
        succeeded = feature_id in self.available
        return ProbeResult(feature_id, succeeded, "" if succeeded else f"{feature_id}: probe failed")

    def run_request(self, request: ProbeRequest) -> ProbeResult:
        return self.run_probe(request.program, request.link_requirements, request.mode, request.feature_id)

    def predefined_macros(self) -> dict[str, str]:
        self._record("predefined_macros")
        return dict(self.macros)


@pytest.fixture
def fake_runner():
    """Factory for FakeRunner instances."""
    return FakeRunner


@pytest.fixture
def settings():
    """Engine settings pinned to a 64-bit unix host."""
    return EngineSettings(compiler="cc", jobs=2, os_family="unix", architecture="x86_64", probe_timeout=5.0)


@pytest.fixture
def unix_facts():
    """Facts of a simulated 64-bit unix host with gcc."""
    return PlatformFacts(
        os_family="unix",
        architecture="x86_64",
        word_size=64,
        compiler_id="gcc",
        compiler_version="13.2.0",
        detected_features=frozenset({"header_stdint_h", "header_unistd_h", "header_pthread_h", "library_pthread", "library_m"}),
        probe_results=(
            ProbeResult("header_stdint_h", True),
            ProbeResult("header_unistd_h", True),
            ProbeResult("header_pthread_h", True),
            ProbeResult("library_m", True),
            ProbeResult("library_pthread", True),
            ProbeResult("header_sys_mman_h", False, "sys/mman.h: No such file or directory"),
        ),
    )


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test."""
    yield

    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_call(item):  # noqa: ARG001
    """Wrap test execution to handle stdout/stderr closure gracefully."""
    yield

    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__
