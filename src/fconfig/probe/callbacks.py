"""Progress callback protocol for probe execution.

Defines the callback interface used by the probe pool to report progress to
a display layer.
"""

from typing import Protocol, runtime_checkable

from .models import ProbeResult


@runtime_checkable
class ProbeCallback(Protocol):
    """Protocol for receiving probe progress updates.

    Called from pool worker threads; implementations must be thread-safe.
    """

    def on_probe_started(self, feature_id: str) -> None:
        """Called when a worker starts running a probe.

        Args:
            feature_id: Identifier of the probe (feature, library or check name).
        """
        ...

    def on_probe_finished(self, result: ProbeResult) -> None:
        """Called when a probe has produced a result.

        Args:
            result: The probe outcome.
        """
        ...


class NullCallback:
    """No-op callback implementation for tests and non-interactive use."""

    def on_probe_started(self, feature_id: str) -> None:
        """Discard progress update."""
        pass

    def on_probe_finished(self, result: ProbeResult) -> None:
        """Discard progress update."""
        pass
