"""Tests for the concurrent workload runner."""

import pytest

from medledger.bench.driver import BenchmarkSession, InsertWorkload, QueryWorkload
from medledger.bench.runner import run_workload
from medledger.bench.sink import LatencySink
from medledger.errors import SinkWriteError
from medledger.ledger.client import ClientContext
from medledger.stream.tokenizer import partition_source


def _patients(count: int) -> str:
    return "".join(f"{i},{100 + i},F,2100-01-01 00:00:00,,,,0\n" for i in range(count))


def _session_factory(client, sink_path):
    def factory(worker: int) -> BenchmarkSession:
        return BenchmarkSession(client=client, context=ClientContext(f"w{worker}"), sink=LatencySink(sink_path))

    return factory


def test_single_worker_stops_at_end_of_source(write_source, ledger_client, world_state, sink_path):
    path, header = write_source("PATIENTS.csv", "H\n", _patients(3))

    summary = run_workload(
        lambda i: InsertWorkload.from_source("patient", path, start_offset=header),
        _session_factory(ledger_client, sink_path),
        iterations=10,
    )

    assert summary.succeeded == 3
    assert summary.failed == 0
    assert summary.exhausted_workers == 1
    # record + index entry per patient
    assert world_state.count_keys() == 6
    assert len(sink_path.read_text().splitlines()) == 3


def test_partitioned_workers_insert_every_line_once(write_source, ledger_client, world_state, sink_path):
    path, header = write_source("PATIENTS.csv", "H\n", _patients(25))
    ranges = partition_source(path, header, 4)

    summary = run_workload(
        lambda i: InsertWorkload.from_source("patient", path, start_offset=ranges[i][0], end_offset=ranges[i][1]),
        _session_factory(ledger_client, sink_path),
        iterations=100,
        workers=4,
    )

    assert summary.workers == 4
    assert summary.succeeded == 25
    assert summary.exhausted_workers == 4
    assert world_state.count_keys() == 50
    assert summary.throughput_tps >= 0


def test_failed_transactions_are_counted_and_run_continues(write_source, ledger_client, sink_path):
    body = "1,10,F,2100-01-01 00:00:00,,,,0\n" "bad,line\n" "2,11,,2100-01-01 00:00:00,,,,0\n" "3,12,M,2100-01-01 00:00:00,,,,0\n"
    path, header = write_source("PATIENTS.csv", "H\n", body)

    summary = run_workload(
        lambda i: InsertWorkload.from_source("patient", path, start_offset=header),
        _session_factory(ledger_client, sink_path),
        iterations=4,
    )

    assert summary.succeeded == 2
    assert summary.failed == 2
    assert summary.errors == {"SchemaMismatchError": 1, "LedgerRejectedError": 1}
    assert summary.exhausted_workers == 0


def test_query_iterations(ledger_client, sink_path):
    summary = run_workload(
        lambda i: QueryWorkload(id_min=1, id_max=1),
        _session_factory(ledger_client, sink_path),
        iterations=3,
        workers=2,
    )
    assert summary.succeeded == 6
    assert len(sink_path.read_text().splitlines()) == 6


def test_sink_failure_aborts_run(ledger_client, tmp_path):
    with pytest.raises(SinkWriteError):
        run_workload(
            lambda i: QueryWorkload(id_min=1, id_max=1),
            _session_factory(ledger_client, tmp_path / "missing" / "EXECUTION_TIME"),
            iterations=1,
        )


def test_invalid_arguments(ledger_client, sink_path):
    with pytest.raises(ValueError):
        run_workload(lambda i: QueryWorkload(), _session_factory(ledger_client, sink_path), iterations=1, workers=0)
