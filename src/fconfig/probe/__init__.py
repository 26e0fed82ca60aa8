"""Probe execution: runner, bounded worker pool and progress reporting."""

from .callbacks import NullCallback, ProbeCallback
from .models import ProbeMode, ProbeRequest, ProbeResult
from .pool import ProbePool
from .runner import ProbeRunner

__all__ = [
    "NullCallback",
    "ProbeCallback",
    "ProbeMode",
    "ProbePool",
    "ProbeRequest",
    "ProbeResult",
    "ProbeRunner",
]
