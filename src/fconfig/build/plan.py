"""Build plan model and Makefile-style rendering.

A BuildPlan is an ordered sequence of BuildSteps. Every input of a step is
either a source file or the output of an earlier step, so the plan can be
executed top to bottom by any generic build executor.

Rendered format (one rule per output, dependencies before dependents):

    # Generated by fconfig. Do not edit.
    CC ?= cc

    .PHONY: all
    all: build/app

    build/obj/core/main.o: src/main.c
    	@mkdir -p $(@D)
    	$(CC) -O2 -DNDEBUG -Ibuild -c src/main.c -o build/obj/core/main.o
"""

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

PLAN_BANNER = "# Generated by fconfig. Do not edit."


class StepKind(Enum):
    """Kind of build step."""

    COMPILE = "compile"
    LINK = "link"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BuildStep:
    """A single compile or link step.

    Attributes:
        inputs: Ordered input paths (sources or earlier outputs)
        output: Output path produced by this step
        step_kind: COMPILE or LINK
        flags: Ordered invocation flags
        module: Module the step belongs to ("" for the link step)
    """

    inputs: tuple[str, ...]
    output: str
    step_kind: StepKind
    flags: tuple[str, ...]
    module: str = ""

    def command(self) -> list[str]:
        """The compiler invocation for this step, with $(CC) as the driver."""
        if self.step_kind == StepKind.COMPILE:
            return ["$(CC)"] + list(self.flags) + ["-c"] + list(self.inputs) + ["-o", self.output]
        return ["$(CC)"] + list(self.inputs) + ["-o", self.output] + list(self.flags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputs": list(self.inputs),
            "output": self.output,
            "step_kind": self.step_kind.value,
            "flags": list(self.flags),
            "module": self.module,
        }


def make_escape(path: str) -> str:
    """Escape a path for use in a make rule.

    Raises:
        ValueError: If the path contains characters make cannot represent
    """
    if re.search("[\n\0]", path):
        raise ValueError(f"Path {path!r} cannot be encoded in a make rule")
    return re.sub(r"([ :\$\\])", r"\\\1", path)


def _shell_word(arg: str) -> str:
    # $(CC)/$(@D) are make variables, everything else is shell-quoted
    if arg.startswith("$(") and arg.endswith(")"):
        return arg
    return shlex.quote(arg).replace("$", "$$")


@dataclass(frozen=True)
class BuildPlan:
    """Ordered build steps plus the driver variable used to run them.

    Attributes:
        steps: Compile steps in module order, then the link step
        compiler: Default value of the CC make variable
    """

    steps: tuple[BuildStep, ...]
    compiler: str = "cc"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check the ordering invariant.

        Raises:
            ValueError: If an output is produced twice, or a step consumes
                an output that is only produced by a later step
        """
        produced_later = {s.output for s in self.steps}
        seen_outputs: set[str] = set()
        for step in self.steps:
            if step.output in seen_outputs:
                raise ValueError(f"Output produced twice: {step.output}")
            for path in step.inputs:
                if path in produced_later and path not in seen_outputs:
                    raise ValueError(f"Step for {step.output} consumes {path} before it is produced")
            seen_outputs.add(step.output)

    @property
    def compile_steps(self) -> list[BuildStep]:
        return [s for s in self.steps if s.step_kind == StepKind.COMPILE]

    @property
    def link_step(self) -> Optional[BuildStep]:
        for step in self.steps:
            if step.step_kind == StepKind.LINK:
                return step
        return None

    @property
    def outputs(self) -> list[str]:
        return [s.output for s in self.steps]

    def module_order(self) -> list[str]:
        """Modules in the order their first compile step appears."""
        return list(dict.fromkeys(s.module for s in self.compile_steps))

    def to_dict(self) -> dict[str, Any]:
        return {"compiler": self.compiler, "steps": [s.to_dict() for s in self.steps]}

    def render(self) -> str:
        """Render the plan as a Makefile-compatible rule file."""
        lines = [PLAN_BANNER, f"CC ?= {self.compiler}", ""]

        final = self.link_step.output if self.link_step else " ".join(make_escape(s.output) for s in self.steps)
        lines.append(".PHONY: all")
        lines.append(f"all: {make_escape(final) if self.link_step else final}".rstrip())

        for step in self.steps:
            lines.append("")
            inputs = " ".join(make_escape(p) for p in step.inputs)
            lines.append(f"{make_escape(step.output)}: {inputs}".rstrip())
            lines.append("\t@mkdir -p $(@D)")
            lines.append("\t" + " ".join(_shell_word(a) for a in step.command()))

        return "\n".join(lines) + "\n"
