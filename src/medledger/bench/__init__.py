"""Benchmark harness: workloads, payload builders, latency sink and runner."""

from .builders import FabricTransactionBuilder, TransactionBuilder, get_transaction_builder
from .driver import (
    BenchmarkSession,
    InsertWorkload,
    QueryWorkload,
    Workload,
)
from .runner import RunSummary, run_workload
from .sink import LatencySink, read_durations, summarize_latencies

__all__ = [
    # Builders
    "TransactionBuilder",
    "FabricTransactionBuilder",
    "get_transaction_builder",
    # Workloads
    "BenchmarkSession",
    "Workload",
    "InsertWorkload",
    "QueryWorkload",
    # Runner
    "RunSummary",
    "run_workload",
    # Sink
    "LatencySink",
    "read_durations",
    "summarize_latencies",
]
