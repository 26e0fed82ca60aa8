"""
Diagnostics - structured collection of probe outcomes, warnings and errors.

Negative probe results are not exceptions; they are recorded here so a
configure run can explain why a feature was absent or a module was dropped.
The collector is shared by the probe worker threads, so every access is
guarded by a lock.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fconfig.probe.models import ProbeResult

logger = logging.getLogger(__name__)

DETAIL_PREVIEW_CHARS = 500


class Severity(Enum):
    """Severity level of a diagnostic."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class Phase(Enum):
    """Configure phase a diagnostic was produced in."""

    PROBE = "probe"
    DETECT = "detect"
    RESOLVE = "resolve"
    EMIT = "emit"
    WRITE = "write"


@dataclass(frozen=True)
class Diagnostic:
    """Single diagnostic entry."""

    severity: Severity
    phase: Phase
    subject: str  # FeatureID, module name, symbol or file path
    message: str
    detail: str = ""

    def format(self) -> str:
        """Format as human-readable text.

        Returns:
            Formatted diagnostic
        """
        lines = [f"[{self.severity.value.upper()}] {self.phase.value}: {self.subject}: {self.message}"]
        if self.detail:
            preview = self.detail[:DETAIL_PREVIEW_CHARS]
            if len(self.detail) > DETAIL_PREVIEW_CHARS:
                preview += "... (truncated)"
            lines.extend(f"  {line}" for line in preview.rstrip().splitlines())
        return "\n".join(lines)


class DiagnosticCollector:
    """Collects diagnostics during a configure run."""

    def __init__(self, max_entries: int = 1000):
        """Initialize the collector.

        Args:
            max_entries: Maximum number of diagnostics kept (oldest dropped first)
        """
        self._entries: list[Diagnostic] = []
        self._lock = threading.RLock()
        self.max_entries = max_entries

    def add(self, diagnostic: Diagnostic) -> None:
        """Add a diagnostic."""
        with self._lock:
            if len(self._entries) >= self.max_entries:
                logger.warning(f"DiagnosticCollector full ({self.max_entries} entries), dropping oldest")
                self._entries.pop(0)
            self._entries.append(diagnostic)
        logger.debug(f"Added {diagnostic.severity.value} diagnostic in {diagnostic.phase.value}: {diagnostic.subject}: {diagnostic.message}")

    def record_probe(self, result: ProbeResult) -> None:
        """Record a probe outcome.

        Successes are INFO entries; failures are WARNING entries carrying the
        compiler diagnostic.
        """
        if result.succeeded:
            self.add(Diagnostic(Severity.INFO, Phase.PROBE, result.feature_id, "found"))
        elif result.timed_out:
            self.add(Diagnostic(Severity.WARNING, Phase.PROBE, result.feature_id, "probe timed out", result.diagnostic))
        else:
            self.add(Diagnostic(Severity.WARNING, Phase.PROBE, result.feature_id, "not found", result.diagnostic))

    def warn(self, phase: Phase, subject: str, message: str, detail: str = "") -> None:
        self.add(Diagnostic(Severity.WARNING, phase, subject, message, detail))

    def error(self, phase: Phase, subject: str, message: str, detail: str = "", fatal: bool = False) -> None:
        self.add(Diagnostic(Severity.FATAL if fatal else Severity.ERROR, phase, subject, message, detail))

    def entries(self, severity: Optional[Severity] = None) -> list[Diagnostic]:
        """All diagnostics, optionally filtered by severity."""
        with self._lock:
            if severity is not None:
                return [d for d in self._entries if d.severity == severity]
            return list(self._entries)

    def by_phase(self, phase: Phase) -> list[Diagnostic]:
        with self._lock:
            return [d for d in self._entries if d.phase == phase]

    def warnings(self) -> list[Diagnostic]:
        return self.entries(Severity.WARNING)

    def errors(self) -> list[Diagnostic]:
        """ERROR and FATAL diagnostics."""
        with self._lock:
            return [d for d in self._entries if d.severity in (Severity.ERROR, Severity.FATAL)]

    def has_errors(self) -> bool:
        return bool(self.errors())

    def counts(self) -> dict[str, int]:
        """Count of diagnostics by severity.

        Returns:
            Dictionary with counts by severity plus "total"
        """
        with self._lock:
            counts = {s.value: sum(1 for d in self._entries if d.severity == s) for s in Severity}
            counts["total"] = len(self._entries)
        return counts

    def format_report(self, include_info: bool = False, max_entries: Optional[int] = None) -> str:
        """Format diagnostics as a human-readable report.

        Args:
            include_info: Include INFO entries (successful probes)
            max_entries: Maximum number of entries to include (None = all)

        Returns:
            Formatted report
        """
        with self._lock:
            shown = [d for d in self._entries if include_info or d.severity != Severity.INFO]
            if not shown:
                return "No diagnostics"

            total = len(shown)
            if max_entries is not None:
                shown = shown[:max_entries]
            lines = [d.format() for d in shown]
            if max_entries is not None and total > max_entries:
                lines.append(f"... and {total - max_entries} more")
            lines.append(f"Summary: {self.format_summary()}")
            return "\n\n".join(lines)

    def format_summary(self) -> str:
        """Brief summary such as "1 error, 3 warnings"."""
        counts = self.counts()
        parts = []
        if counts["fatal"]:
            parts.append(f"{counts['fatal']} fatal")
        if counts["error"]:
            parts.append(f"{counts['error']} error{'s' if counts['error'] != 1 else ''}")
        if counts["warning"]:
            parts.append(f"{counts['warning']} warning{'s' if counts['warning'] != 1 else ''}")
        if not parts:
            return "No problems"
        return ", ".join(parts)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
