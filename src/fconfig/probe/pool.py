"""Bounded thread pool for running independent probes in parallel.

Probes touch nothing but their private scratch directory, so no locking is
needed around probe execution. Results are collected from the futures and
merged once on the calling thread after every probe has finished; concurrent
probes never observe each other's results.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Iterable

from .callbacks import NullCallback, ProbeCallback
from .models import ProbeRequest, ProbeResult
from .runner import ProbeRunner

logger = logging.getLogger(__name__)


class ProbePool:
    """Thread pool for probe programs.

    Args:
        max_workers: Maximum number of probes run concurrently.
    """

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="probe")
        self._shutdown = False
        self._lock = threading.Lock()

    def submit_probe(self, runner: ProbeRunner, request: ProbeRequest, callback: ProbeCallback) -> Future[ProbeResult]:
        """Submit a single probe.

        Args:
            runner: Runner used to execute the probe.
            request: The probe to run.
            callback: Progress callback.

        Returns:
            Future resolving to the ProbeResult.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError("ProbePool has been shut down")
        return self._executor.submit(self._do_probe, runner, request, callback)

    def _do_probe(self, runner: ProbeRunner, request: ProbeRequest, callback: ProbeCallback) -> ProbeResult:
        callback.on_probe_started(request.feature_id)
        result = runner.run_request(request)
        callback.on_probe_finished(result)
        return result

    def run_all(self, runner: ProbeRunner, requests: Iterable[ProbeRequest], callback: ProbeCallback | None = None) -> dict[str, ProbeResult]:
        """Run every request and wait for all of them (barrier).

        Args:
            runner: Runner used to execute the probes.
            requests: Probes to run; feature ids must be unique.
            callback: Progress callback (defaults to NullCallback).

        Returns:
            Mapping of feature id to ProbeResult, in request order.

        Raises:
            ValueError: If two requests share a feature id.
            BuildEnvironmentError: If any probe could not invoke the compiler.
        """
        callback = callback if callback is not None else NullCallback()
        futures: dict[str, Future[ProbeResult]] = {}
        for request in requests:
            if request.feature_id in futures:
                raise ValueError(f"Duplicate probe id: {request.feature_id}")
            futures[request.feature_id] = self.submit_probe(runner, request, callback)

        # Wait for every probe before surfacing the first error so no probe
        # is left running against a scratch directory after we return.
        errors: list[BaseException] = []
        results: dict[str, ProbeResult] = {}
        for feature_id, future in futures.items():
            try:
                results[feature_id] = future.result()
            except Exception as e:
                errors.append(e)

        if errors:
            raise errors[0]

        logger.debug(f"Collected {len(results)} probe results")
        return results

    def shutdown(self) -> None:
        """Shut down the pool, waiting for running probes to finish."""
        with self._lock:
            self._shutdown = True
        self._executor.shutdown(wait=True)

    @property
    def max_workers(self) -> int:
        """Maximum number of concurrent probe workers."""
        return self._max_workers

    def __enter__(self) -> "ProbePool":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()
