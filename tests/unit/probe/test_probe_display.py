"""Unit tests for the rich-based probe progress display.

Tests cover:
- ProbeProgressDisplay implements ProbeCallback
- Registration order and auto-registration of unknown probes
- Status transitions (waiting, running, found, missing)
- Footer counts and console rendering
- Thread-safety of concurrent callbacks
"""

import threading
from io import StringIO

from rich.console import Console

from fconfig.probe.callbacks import NullCallback, ProbeCallback
from fconfig.probe.display import ProbeProgressDisplay, ProbeStatus
from fconfig.probe.models import ProbeResult


def _display(buffer: StringIO | None = None) -> ProbeProgressDisplay:
    console = Console(file=buffer if buffer is not None else StringIO(), width=120, force_terminal=False)
    return ProbeProgressDisplay(console=console, title="Probing toolchain", refresh_per_second=4)


class TestProtocol:
    def test_display_implements_protocol(self) -> None:
        assert isinstance(_display(), ProbeCallback)

    def test_null_callback_implements_protocol(self) -> None:
        callback = NullCallback()
        assert isinstance(callback, ProbeCallback)
        callback.on_probe_started("x")
        callback.on_probe_finished(ProbeResult("x", True))


class TestStateTransitions:
    def test_registered_probe_starts_waiting(self) -> None:
        display = _display()
        display.register_probe("header_stdint_h", "stdint.h")
        assert display.get_snapshot() == [{"name": "header_stdint_h", "status": ProbeStatus.WAITING, "detail": ""}]

    def test_started_then_found(self) -> None:
        display = _display()
        display.on_probe_started("symbol_mmap")
        assert display.get_snapshot()[0]["status"] == ProbeStatus.RUNNING
        display.on_probe_finished(ProbeResult("symbol_mmap", True))
        assert display.get_snapshot()[0]["status"] == ProbeStatus.FOUND

    def test_timed_out_probe_is_missing_with_detail(self) -> None:
        display = _display()
        display.on_probe_started("slow")
        display.on_probe_finished(ProbeResult("slow", False, timed_out=True))
        snapshot = display.get_snapshot()[0]
        assert snapshot["status"] == ProbeStatus.MISSING
        assert snapshot["detail"] == "timed out"

    def test_order_is_registration_order(self) -> None:
        display = _display()
        display.register_probe("b")
        display.register_probe("a")
        display.on_probe_started("c")
        assert [s["name"] for s in display.get_snapshot()] == ["b", "a", "c"]


class TestRendering:
    def test_context_manager_renders_footer(self) -> None:
        buffer = StringIO()
        with _display(buffer) as display:
            display.on_probe_started("a")
            display.on_probe_finished(ProbeResult("a", True))
            display.on_probe_started("b")
            display.on_probe_finished(ProbeResult("b", False))
        output = buffer.getvalue()
        assert "Probing toolchain" in output
        assert "2 probes, 1 found, 1 missing" in output

    def test_live_renderable_tracks_callbacks(self) -> None:
        display = _display()
        display.start()
        try:
            display.on_probe_started("x")
            display.on_probe_finished(ProbeResult("x", True))
            table = display._live.renderable.renderables[1]
            assert table.row_count == 1
            display.register_probe("y")
            assert display._live.renderable.renderables[1].row_count == 2
        finally:
            display.stop()


class TestThreadSafety:
    def test_concurrent_updates(self) -> None:
        display = _display()
        ids = [f"probe_{i}" for i in range(50)]

        def work(feature_id: str) -> None:
            display.on_probe_started(feature_id)
            display.on_probe_finished(ProbeResult(feature_id, True))

        threads = [threading.Thread(target=work, args=(i,)) for i in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = display.get_snapshot()
        assert len(snapshot) == 50
        assert all(s["status"] == ProbeStatus.FOUND for s in snapshot)
