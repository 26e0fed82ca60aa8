"""Rich-based live display of running probes.

Renders one line per probe that transitions through:

    waiting -> checking (spinner) -> yes (checkmark) / no (cross)

Thread-safe: pool worker threads call on_probe_started()/on_probe_finished()
concurrently while the display renders in the main thread.
"""

import threading
import time
from enum import Enum
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from .models import ProbeResult

# Braille spinner frames for running probes
_SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


class ProbeStatus(Enum):
    """Display status of a single probe."""

    WAITING = "waiting"
    RUNNING = "running"
    FOUND = "found"
    MISSING = "missing"


class _ProbeDisplayState:
    """Internal state for a single probe's display line."""

    __slots__ = ("name", "description", "status", "detail", "start_time", "elapsed")

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self.status = ProbeStatus.WAITING
        self.detail: str = ""
        self.start_time: float | None = None
        self.elapsed: float = 0.0


class ProbeProgressDisplay:
    """Live probe table using Rich.

    Implements ProbeCallback.

    Args:
        console: Rich Console instance for rendering. If None, creates a new one.
        title: Header line shown above the table.
        refresh_per_second: Display refresh rate.
    """

    def __init__(self, console: Console | None, title: str, refresh_per_second: int = 10) -> None:
        self._console = console if console is not None else Console()
        self._title = title
        self._refresh_per_second = refresh_per_second
        self._states: dict[str, _ProbeDisplayState] = {}
        self._order: list[str] = []
        self._lock = threading.Lock()
        self._live: Live | None = None

    def register_probe(self, name: str, description: str = "") -> None:
        """Register a probe before probing starts so it shows as waiting."""
        with self._lock:
            if name not in self._states:
                self._states[name] = _ProbeDisplayState(name, description)
                self._order.append(name)

    def _state(self, name: str) -> _ProbeDisplayState:
        state = self._states.get(name)
        if state is None:
            state = _ProbeDisplayState(name, "")
            self._states[name] = state
            self._order.append(name)
        return state

    def on_probe_started(self, feature_id: str) -> None:
        with self._lock:
            state = self._state(feature_id)
            state.status = ProbeStatus.RUNNING
            state.start_time = time.monotonic()

    def on_probe_finished(self, result: ProbeResult) -> None:
        with self._lock:
            state = self._state(result.feature_id)
            state.status = ProbeStatus.FOUND if result.succeeded else ProbeStatus.MISSING
            if result.timed_out:
                state.detail = "timed out"
            if state.start_time is not None:
                state.elapsed = time.monotonic() - state.start_time

    def start(self) -> None:
        """Start the live display."""
        self._live = Live(
            console=self._console,
            refresh_per_second=self._refresh_per_second,
            transient=False,
            get_renderable=self._render_display,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display after a final render."""
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _render_display(self) -> Group:
        header = Text(f"\n{self._title}\n", style="bold")
        return Group(header, self._render_table(), self._render_footer())

    def _render_table(self) -> Table:
        table = Table(show_header=False, show_edge=False, show_lines=False, box=None, padding=(0, 1), expand=False)
        table.add_column("Probe", style="bold", no_wrap=True, min_width=28)
        table.add_column("Status", no_wrap=True, min_width=16)
        table.add_column("Description", no_wrap=True, style="dim")

        with self._lock:
            for name in self._order:
                state = self._states[name]
                table.add_row(Text(name), self._format_status(state), Text(state.description))
        return table

    def _render_footer(self) -> Text:
        with self._lock:
            total = len(self._states)
            found = sum(1 for s in self._states.values() if s.status == ProbeStatus.FOUND)
            missing = sum(1 for s in self._states.values() if s.status == ProbeStatus.MISSING)
        return Text(f"\n  {total} probes, {found} found, {missing} missing", style="dim")

    def _format_status(self, state: _ProbeDisplayState) -> Text:
        if state.status == ProbeStatus.RUNNING:
            spinner = _SPINNER_FRAMES[int(time.monotonic() * 8) % len(_SPINNER_FRAMES)]
            return Text(f"{spinner} checking", style="cyan")
        if state.status == ProbeStatus.FOUND:
            return Text(f"✓ yes {state.elapsed:.1f}s", style="green")
        if state.status == ProbeStatus.MISSING:
            suffix = f" ({state.detail})" if state.detail else ""
            return Text(f"✗ no{suffix}", style="yellow")
        return Text("waiting", style="dim")

    def get_snapshot(self) -> list[dict[str, Any]]:
        """Get a snapshot of current display states for testing."""
        with self._lock:
            return [{"name": s.name, "status": s.status, "detail": s.detail} for s in (self._states[n] for n in self._order)]

    def __enter__(self) -> "ProbeProgressDisplay":
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
