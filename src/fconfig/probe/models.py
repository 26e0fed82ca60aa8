"""Data models for probe execution.

Defines the value types exchanged between the probe runner, the probe pool
and the platform detector:
- ProbeMode: How far a probe program is taken (compile, link, run)
- ProbeRequest: A single probe program to execute
- ProbeResult: Outcome of one probe execution
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProbeMode(Enum):
    """How far a probe program is taken before it counts as a success."""

    COMPILE = "compile"
    LINK = "link"
    RUN = "run"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProbeRequest:
    """A probe program queued for execution.

    Attributes:
        feature_id: Identifier reported back in the ProbeResult
        program: Full source text of the probe program
        mode: How far to take the program
        link_requirements: Extra linker arguments (e.g. "-lm")
    """

    feature_id: str
    program: str
    mode: ProbeMode = ProbeMode.LINK
    link_requirements: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a probe.

    A negative result is a normal outcome and carries the compiler output in
    ``diagnostic``; it is never raised.

    Attributes:
        feature_id: The probed feature (or library/sanity check name)
        succeeded: True if the program compiled (and linked/ran, per mode)
        diagnostic: Compiler/linker/program output explaining a failure
        output: Standard output of the probe binary (RUN mode only)
        timed_out: True if the probe was killed after the timeout
    """

    feature_id: str
    succeeded: bool
    diagnostic: str = ""
    output: str = ""
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "feature_id": self.feature_id,
            "succeeded": self.succeeded,
            "diagnostic": self.diagnostic,
            "output": self.output,
            "timed_out": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProbeResult":
        """Deserialize from dictionary."""
        return cls(
            feature_id=data["feature_id"],
            succeeded=data["succeeded"],
            diagnostic=data.get("diagnostic", ""),
            output=data.get("output", ""),
            timed_out=data.get("timed_out", False),
        )
