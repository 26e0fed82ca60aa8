"""Probe Runner - compile, link and optionally run small test programs.

Each probe gets a private scratch directory that is removed on every exit
path. The runner holds no mutable state, so probes may run concurrently from
any number of worker threads.

Outcomes:
- Program builds (and runs, in RUN mode)   -> ProbeResult(succeeded=True)
- Program fails to compile/link/run        -> ProbeResult(succeeded=False)
- Compiler killed after the timeout        -> ProbeResult(succeeded=False, timed_out=True)
- Compiler cannot be invoked at all        -> BuildEnvironmentError
"""

import logging
import re
import sys
import tempfile
from pathlib import Path
from typing import Sequence

from fconfig.config import EngineSettings
from fconfig.errors import BuildEnvironmentError
from fconfig.subprocess_utils import CommandResult, run_bounded

from .models import ProbeMode, ProbeRequest, ProbeResult

logger = logging.getLogger(__name__)

_DEFINE_RE = re.compile(r"^#define\s+(\w+)(?:\s+(.*))?$")

PROBE_BASENAME = "probe"


class ProbeRunner:
    """Runs probe programs against the configured compiler.

    Args:
        settings: Engine settings (compiler, flags, timeout, retries)
    """

    def __init__(self, settings: EngineSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def run_probe(
        self,
        program_text: str,
        link_requirements: Sequence[str] = (),
        mode: ProbeMode = ProbeMode.LINK,
        feature_id: str = "",
    ) -> ProbeResult:
        """Build (and optionally run) a probe program.

        A timed-out probe is retried up to ``settings.timeout_retries`` times;
        deterministic failures are never retried.

        Args:
            program_text: Full C/C++ source of the probe
            link_requirements: Extra linker arguments appended to the link line
            mode: COMPILE, LINK or RUN
            feature_id: Identifier reported back in the result

        Returns:
            ProbeResult describing the outcome

        Raises:
            BuildEnvironmentError: If the compiler cannot be invoked
        """
        attempts = 1 + self._settings.timeout_retries
        result = ProbeResult(feature_id=feature_id, succeeded=False)
        for attempt in range(attempts):
            if attempt > 0:
                logger.info(f"Retrying timed-out probe {feature_id} ({attempt}/{attempts - 1})")
            result = self._run_once(program_text, tuple(link_requirements), mode, feature_id)
            if not result.timed_out:
                break
        return result

    def run_request(self, request: ProbeRequest) -> ProbeResult:
        """Run a queued ProbeRequest."""
        return self.run_probe(request.program, request.link_requirements, request.mode, request.feature_id)

    def predefined_macros(self) -> dict[str, str]:
        """Return the compiler's predefined preprocessor macros.

        Runs the preprocessor with ``-dM -E`` on an empty source file.

        Returns:
            Mapping of macro name to its (possibly empty) value

        Raises:
            BuildEnvironmentError: If the compiler cannot be invoked
        """
        with tempfile.TemporaryDirectory(prefix="fconfig_probe_") as scratch:
            source = Path(scratch) / f"{PROBE_BASENAME}{self._settings.source_suffix}"
            source.write_text("", encoding="utf-8")
            cmd = self._compiler_cmd() + ["-dM", "-E", str(source)]
            outcome = self._invoke(cmd, scratch)

        if outcome.returncode != 0:
            logger.debug(f"Predefined macro query failed: {outcome.output.strip()}")
            return {}

        macros: dict[str, str] = {}
        for line in outcome.stdout.splitlines():
            match = _DEFINE_RE.match(line.strip())
            if match:
                macros[match.group(1)] = (match.group(2) or "").strip()
        return macros

    def _run_once(self, program_text: str, link_requirements: tuple[str, ...], mode: ProbeMode, feature_id: str) -> ProbeResult:
        with tempfile.TemporaryDirectory(prefix="fconfig_probe_") as scratch:
            scratch_dir = Path(scratch)
            source = scratch_dir / f"{PROBE_BASENAME}{self._settings.source_suffix}"
            source.write_text(program_text, encoding="utf-8")

            if mode == ProbeMode.COMPILE:
                cmd = self._compiler_cmd() + ["-c", str(source), "-o", str(scratch_dir / f"{PROBE_BASENAME}.o")]
            else:
                binary = scratch_dir / f"{PROBE_BASENAME}{self._executable_suffix()}"
                cmd = self._compiler_cmd() + [str(source), "-o", str(binary)] + list(self._settings.ldflags) + list(link_requirements)

            logger.debug(f"Probe {feature_id or '<anonymous>'}: {' '.join(cmd)}")
            build = self._invoke(cmd, scratch)

            if build.timed_out:
                return ProbeResult(feature_id=feature_id, succeeded=False, diagnostic=f"compiler timed out after {self._settings.probe_timeout}s", timed_out=True)
            if build.returncode != 0:
                return ProbeResult(feature_id=feature_id, succeeded=False, diagnostic=build.output)
            if mode != ProbeMode.RUN:
                return ProbeResult(feature_id=feature_id, succeeded=True, diagnostic=build.output)

            return self._execute(binary, scratch, feature_id)

    def _execute(self, binary: Path, scratch: str, feature_id: str) -> ProbeResult:
        try:
            run = run_bounded([str(binary)], timeout=self._settings.probe_timeout, cwd=scratch)
        except OSError as e:
            # A binary we cannot execute (e.g. cross compiling) is a negative result
            return ProbeResult(feature_id=feature_id, succeeded=False, diagnostic=f"cannot execute probe: {e}")

        if run.timed_out:
            return ProbeResult(feature_id=feature_id, succeeded=False, diagnostic=f"probe program timed out after {self._settings.probe_timeout}s", timed_out=True)
        if run.returncode != 0:
            return ProbeResult(feature_id=feature_id, succeeded=False, diagnostic=f"probe program exited with status {run.returncode}\n{run.stderr}".strip(), output=run.stdout)
        return ProbeResult(feature_id=feature_id, succeeded=True, output=run.stdout)

    def _invoke(self, cmd: list[str], cwd: str) -> CommandResult:
        try:
            return run_bounded(cmd, timeout=self._settings.probe_timeout, cwd=cwd)
        except OSError as e:
            raise BuildEnvironmentError(
                f"Cannot invoke compiler '{self._settings.compiler}': {e}",
                compiler=self._settings.compiler,
                diagnostic=str(e),
            ) from e

    def _compiler_cmd(self) -> list[str]:
        argv = self._settings.compiler_argv
        if not argv:
            raise BuildEnvironmentError("No compiler configured", compiler="")
        return argv + list(self._settings.cflags)

    def _executable_suffix(self) -> str:
        os_family = self._settings.os_family
        if os_family == "windows" or (os_family is None and sys.platform == "win32"):
            return ".exe"
        return ""
