"""
Timestamped console output for the fconfig command line.

Each line starts with the time since startup as MM:SS.cc:

    00:00.01 fconfig v0.1.0
    00:00.02 [1/1] Configuring with cc...
    00:00.85       unix x86_64, gcc 13.2.0 (64-bit)
    00:00.85       17/21 probes succeeded
    00:00.86 Configuration complete

Library modules log through ``logging``; only the CLI writes here.
"""

import sys
import time
from types import TracebackType
from typing import Optional, TextIO

DETAIL_INDENT = 6

_start_time: Optional[float] = None
_output_stream: TextIO = sys.stdout
_verbose: bool = False


def init_timer(output_stream: Optional[TextIO] = None) -> None:
    """Reset the reference time, optionally redirecting output."""
    global _start_time, _output_stream
    _start_time = time.monotonic()
    if output_stream is not None:
        _output_stream = output_stream


def set_verbose(verbose: bool) -> None:
    global _verbose
    _verbose = verbose


def is_verbose() -> bool:
    return _verbose


def format_timestamp() -> str:
    """Time since init_timer() as MM:SS.cc. Starts the timer on first use."""
    global _start_time
    if _start_time is None:
        _start_time = time.monotonic()
    minutes, seconds = divmod(time.monotonic() - _start_time, 60)
    return f"{int(minutes):02d}:{seconds:05.2f}"


def _emit(text: str, verbose_only: bool = False) -> None:
    if verbose_only and not _verbose:
        return
    _output_stream.write(f"{format_timestamp()} {text}\n")
    _output_stream.flush()


def log(message: str, verbose_only: bool = False) -> None:
    _emit(message, verbose_only)


def log_phase(phase: int, total: int, message: str, verbose_only: bool = False) -> None:
    """Log ``[phase/total] message``."""
    _emit(f"[{phase}/{total}] {message}", verbose_only)


def log_detail(message: str, indent: int = DETAIL_INDENT, verbose_only: bool = False) -> None:
    _emit(" " * indent + message, verbose_only)


def log_header(title: str, version: str) -> None:
    _emit(f"{title} v{version}")


def log_error(message: str) -> None:
    _emit(f"ERROR: {message}")


def log_warning(message: str) -> None:
    _emit(f"WARNING: {message}")


class TimedPhase:
    """Numbered phase whose details are indented under it.

    The elapsed time is kept in ``elapsed`` and printed in verbose mode when
    the phase ends without an exception.

    Usage:
        with TimedPhase(1, 1, "Configuring with cc") as phase:
            result = configure(...)
            phase.detail(f"Modules: {', '.join(result.graph.order)}")
    """

    def __init__(self, phase: int, total: int, operation: str):
        self.phase = phase
        self.total = total
        self.operation = operation
        self._started = 0.0
        self.elapsed = 0.0

    def __enter__(self) -> "TimedPhase":
        self._started = time.monotonic()
        log_phase(self.phase, self.total, f"{self.operation}...")
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.elapsed = time.monotonic() - self._started
        if exc_type is None:
            log_detail(f"Done ({self.elapsed:.2f}s)", verbose_only=True)

    def detail(self, message: str, verbose_only: bool = False) -> None:
        log_detail(message, verbose_only=verbose_only)
