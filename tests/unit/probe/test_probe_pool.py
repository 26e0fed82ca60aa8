"""Unit tests for ProbePool."""

import threading
import time

import pytest

from fconfig.errors import BuildEnvironmentError
from fconfig.probe.models import ProbeRequest, ProbeResult
from fconfig.probe.pool import ProbePool


def _requests(*ids: str) -> list[ProbeRequest]:
    return [ProbeRequest(feature_id=i, program="int x;\n") for i in ids]


class RecordingCallback:
    def __init__(self):
        self.started: list[str] = []
        self.finished: list[str] = []
        self._lock = threading.Lock()

    def on_probe_started(self, feature_id):
        with self._lock:
            self.started.append(feature_id)

    def on_probe_finished(self, result):
        with self._lock:
            self.finished.append(result.feature_id)


class TestProbePool:
    def test_invalid_worker_count(self):
        with pytest.raises(ValueError, match="max_workers"):
            ProbePool(max_workers=0)

    def test_run_all_returns_results_in_request_order(self, fake_runner):
        runner = fake_runner(available={"b"})
        with ProbePool(max_workers=3) as pool:
            results = pool.run_all(runner, _requests("c", "a", "b"))
        assert list(results) == ["c", "a", "b"]
        assert results["b"].succeeded
        assert not results["a"].succeeded

    def test_callbacks_invoked_for_every_probe(self, fake_runner):
        callback = RecordingCallback()
        with ProbePool(max_workers=2) as pool:
            pool.run_all(fake_runner(), _requests("a", "b", "c"), callback)
        assert sorted(callback.started) == ["a", "b", "c"]
        assert sorted(callback.finished) == ["a", "b", "c"]

    def test_duplicate_ids_rejected(self, fake_runner):
        with ProbePool(max_workers=1) as pool:
            with pytest.raises(ValueError, match="Duplicate probe id"):
                pool.run_all(fake_runner(), _requests("a", "a"))

    def test_submit_after_shutdown_raises(self, fake_runner):
        pool = ProbePool(max_workers=1)
        pool.shutdown()
        with pytest.raises(RuntimeError, match="shut down"):
            pool.submit_probe(fake_runner(), _requests("a")[0], RecordingCallback())

    def test_probes_run_concurrently(self):
        """With enough workers every probe is in flight at the same time."""
        barrier = threading.Barrier(3, timeout=5)

        class BarrierRunner:
            def run_request(self, request):
                barrier.wait()
                return ProbeResult(request.feature_id, True)

        with ProbePool(max_workers=3) as pool:
            results = pool.run_all(BarrierRunner(), _requests("a", "b", "c"))
        assert all(r.succeeded for r in results.values())

    def test_waits_for_all_probes_before_raising(self):
        finished = []

        class FailingRunner:
            def run_request(self, request):
                if request.feature_id == "broken":
                    raise BuildEnvironmentError("compiler vanished")
                time.sleep(0.05)
                finished.append(request.feature_id)
                return ProbeResult(request.feature_id, True)

        with ProbePool(max_workers=2) as pool:
            with pytest.raises(BuildEnvironmentError):
                pool.run_all(FailingRunner(), _requests("broken", "slow1", "slow2"))
        assert sorted(finished) == ["slow1", "slow2"]

    def test_max_workers_property(self):
        with ProbePool(max_workers=4) as pool:
            assert pool.max_workers == 4
