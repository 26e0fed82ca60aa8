"""Tests for timestamped CLI output."""

import sys
from io import StringIO

import pytest

from fconfig import output


@pytest.fixture
def stream():
    buffer = StringIO()
    output.init_timer(buffer)
    output.set_verbose(False)
    yield buffer
    output.set_verbose(False)
    output._output_stream = sys.stdout


class TestOutput:
    def test_timestamp_format(self, stream):
        assert len(output.format_timestamp()) == len("00:00.00")
        output.log("hello")
        line = stream.getvalue()
        assert line.endswith(" hello\n")
        assert line[2] == ":" and line[5] == "."

    def test_verbose_only_suppressed(self, stream):
        output.log("hidden", verbose_only=True)
        output.log_detail("hidden too", verbose_only=True)
        assert stream.getvalue() == ""

        output.set_verbose(True)
        assert output.is_verbose()
        output.log_detail("shown", indent=2, verbose_only=True)
        assert stream.getvalue().endswith("   shown\n")

    def test_prefixes(self, stream):
        output.log_header("fconfig", "0.1.0")
        output.log_phase(1, 3, "Detecting")
        output.log_error("boom")
        output.log_warning("careful")
        lines = [line.split(" ", 1)[1] for line in stream.getvalue().splitlines()]
        assert lines == ["fconfig v0.1.0", "[1/3] Detecting", "ERROR: boom", "WARNING: careful"]


class TestTimedPhase:
    def test_logs_phase_and_detail(self, stream):
        with output.TimedPhase(2, 4, "Resolving modules") as phase:
            phase.detail("3 modules")
        text = stream.getvalue()
        assert "[2/4] Resolving modules..." in text
        assert "3 modules" in text
        assert "Done" not in text

    def test_done_in_verbose_mode(self, stream):
        output.set_verbose(True)
        with output.TimedPhase(1, 1, "Work"):
            pass
        assert "Done (" in stream.getvalue()

    def test_verbose_only_detail_and_elapsed(self, stream):
        with output.TimedPhase(1, 1, "Work") as phase:
            phase.detail("quiet", verbose_only=True)
        assert "quiet" not in stream.getvalue()
        assert phase.elapsed >= 0.0

    def test_exception_propagates(self, stream):
        with pytest.raises(RuntimeError):
            with output.TimedPhase(1, 1, "Work"):
                raise RuntimeError("fail")
