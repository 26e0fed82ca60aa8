"""Subprocess utilities for platform-safe compiler invocation.

This module wraps the subprocess module so that every compiler, linker and
probe-binary invocation:
- never opens a console window on Windows
- never inherits the parent's stdin
- is bounded by a timeout that kills the whole process tree
  (compiler drivers spawn cc1/as/ld children that outlive a plain kill)
"""

import logging
import subprocess
import sys
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a bounded command execution.

    Attributes:
        returncode: Process exit status (-1 if the process was killed on timeout)
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True if the timeout elapsed and the process tree was killed
    """

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stdout first."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def _apply_defaults(kwargs: dict[str, Any]) -> dict[str, Any]:
    default_flags = get_subprocess_creation_flags()

    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    # Child processes must not steal keystrokes from the parent terminal
    if "stdin" not in kwargs:
        kwargs["stdin"] = subprocess.DEVNULL

    return kwargs


def safe_run(cmd: Sequence[str], **kwargs: Any) -> subprocess.CompletedProcess:
    """Execute subprocess.run with platform-specific flags.

    Args:
        cmd: Command and arguments (same as subprocess.run)
        **kwargs: Additional arguments passed to subprocess.run

    Returns:
        CompletedProcess result from subprocess.run

    Note:
        If 'creationflags' is provided it is OR'd with the platform defaults.
        If 'stdin' is provided it is used as-is, otherwise stdin is DEVNULL.
    """
    return subprocess.run(list(cmd), **_apply_defaults(kwargs))


def safe_popen(cmd: Sequence[str], **kwargs: Any) -> subprocess.Popen:
    """Execute subprocess.Popen with platform-specific flags.

    Similar to safe_run() but returns the process handle.

    Args:
        cmd: Command and arguments (same as subprocess.Popen)
        **kwargs: Additional arguments passed to subprocess.Popen

    Returns:
        Popen process handle
    """
    return subprocess.Popen(list(cmd), **_apply_defaults(kwargs))


def kill_process_tree(pid: int) -> None:
    """Kill a process and all of its descendants.

    Args:
        pid: Root process id
    """
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        processes = root.children(recursive=True)
    except psutil.NoSuchProcess:
        processes = []
    processes.append(root)

    for proc in processes:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue

    _gone, alive = psutil.wait_procs(processes, timeout=3)
    for proc in alive:
        logger.warning(f"Process {proc.pid} survived kill")


def run_bounded(cmd: Sequence[str], timeout: Optional[float], cwd: Optional[str] = None, env: Optional[dict[str, str]] = None) -> CommandResult:
    """Run a command to completion, killing its process tree on timeout.

    Args:
        cmd: Command and arguments
        timeout: Seconds to wait before killing (None = wait forever)
        cwd: Working directory
        env: Environment (None = inherit)

    Returns:
        CommandResult with captured output

    Raises:
        FileNotFoundError: If the executable does not exist
        PermissionError: If the executable cannot be executed
    """
    proc = safe_popen(cmd, cwd=cwd, env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, errors="replace")
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.debug(f"Timeout after {timeout}s, killing process tree of pid {proc.pid}")
        kill_process_tree(proc.pid)
        stdout, stderr = proc.communicate()
        return CommandResult(returncode=-1, stdout=stdout or "", stderr=stderr or "", timed_out=True)
    except BaseException:
        kill_process_tree(proc.pid)
        proc.communicate()
        raise

    return CommandResult(returncode=proc.returncode, stdout=stdout or "", stderr=stderr or "")
