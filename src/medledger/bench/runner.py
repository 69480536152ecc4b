"""Concurrent workload runner.

Stands in for an external load generator: every worker gets its own workload
(and therefore its own stream cursor) and its own session, and runs them
strictly sequentially.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from ..errors import MedLedgerError, SinkWriteError, SourceExhaustedError
from .driver import BenchmarkSession, Workload

logger = logging.getLogger(__name__)


@dataclass
class WorkerResult:
    worker: int
    succeeded: int = 0
    failed: int = 0
    exhausted: bool = False
    errors: Counter = field(default_factory=Counter)


@dataclass
class RunSummary:
    workers: int
    succeeded: int
    failed: int
    exhausted_workers: int
    elapsed_s: float
    errors: dict[str, int]

    @property
    def throughput_tps(self) -> float:
        return self.succeeded / self.elapsed_s if self.elapsed_s > 0 else 0.0


def _run_worker(
    worker: int,
    workload: Workload,
    session: BenchmarkSession,
    iterations: int,
) -> WorkerResult:
    result = WorkerResult(worker=worker)
    workload.init(session)
    try:
        for _ in range(iterations):
            try:
                results = workload.run(session)
            except SourceExhaustedError:
                logger.info(f"Worker {worker}: source exhausted")
                result.exhausted = True
                break
            except SinkWriteError:
                raise
            except MedLedgerError as e:
                # A failed transaction is counted; the run continues.
                result.failed += 1
                result.errors[type(e).__name__] += 1
                logger.warning(f"Worker {worker}: transaction failed: {e}")
                continue
            result.succeeded += len(results)
    finally:
        workload.end(session)
    return result


def run_workload(
    workload_factory: Callable[[int], Workload],
    session_factory: Callable[[int], BenchmarkSession],
    iterations: int,
    workers: int = 1,
) -> RunSummary:
    """Run ``iterations`` transactions on each of ``workers`` threads.

    Args:
        workload_factory: Builds the workload for a worker index
        session_factory: Builds the session for a worker index
        iterations: Maximum runs per worker
        workers: Number of concurrent workers

    Returns:
        RunSummary aggregated over all workers

    Raises:
        SinkWriteError: If any worker could not record a latency sample
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if iterations < 0:
        raise ValueError(f"iterations must be >= 0, got {iterations}")

    started = time.monotonic()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="medledger-worker") as pool:
        futures = [
            pool.submit(_run_worker, i, workload_factory(i), session_factory(i), iterations)
            for i in range(workers)
        ]
        worker_results = [f.result() for f in futures]
    elapsed = time.monotonic() - started

    errors: Counter = Counter()
    for wr in worker_results:
        errors.update(wr.errors)

    summary = RunSummary(
        workers=workers,
        succeeded=sum(wr.succeeded for wr in worker_results),
        failed=sum(wr.failed for wr in worker_results),
        exhausted_workers=sum(1 for wr in worker_results if wr.exhausted),
        elapsed_s=elapsed,
        errors=dict(errors),
    )
    logger.info(
        f"Run complete: {summary.succeeded} succeeded, {summary.failed} failed "
        f"in {elapsed:.2f}s across {workers} worker(s)"
    )
    return summary
