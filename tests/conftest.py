"""Pytest fixtures for medledger tests."""

from pathlib import Path

import pytest

from medledger.bench.driver import BenchmarkSession
from medledger.bench.sink import LatencySink
from medledger.ledger.client import ClientContext, LocalLedgerClient
from medledger.ledger.state import SqliteWorldState
from medledger.store import RecordStore

DITEM_FIELDS = [
    "1", "220000", "Heart Rate", "HR", "metavision",
    "chartevents", "Routine Vital Signs", "bpm", "Numeric", "",
]

PATIENT_FIELDS = ["234", "249", "F", "2075-03-13 00:00:00", "", "", "", "0"]


@pytest.fixture
def world_state(tmp_path):
    """Create an empty SQLite world state.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        SqliteWorldState instance
    """
    return SqliteWorldState(tmp_path / "state" / "ledger.sqlite")


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def ledger_client(world_state, store):
    """Create a local ledger client with the record store deployed.

    Args:
        world_state: Empty SqliteWorldState
        store: RecordStore contract

    Returns:
        LocalLedgerClient instance
    """
    client = LocalLedgerClient(world_state)
    client.deploy("medrecords", "v0", store)
    return client


@pytest.fixture
def sink_path(tmp_path) -> Path:
    return tmp_path / "EXECUTION_TIME"


@pytest.fixture
def session(ledger_client, sink_path):
    return BenchmarkSession(
        client=ledger_client,
        context=ClientContext(client_id="test"),
        sink=LatencySink(sink_path),
    )


@pytest.fixture
def write_source(tmp_path):
    """Return a helper that writes a source file with a header line.

    Returns:
        Callable(name, header, lines) -> (path, header_bytes)
    """

    def _write(name: str, header: str, body: str) -> tuple[Path, int]:
        path = tmp_path / name
        data = header.encode("utf-8") + body.encode("utf-8")
        path.write_bytes(data)
        return path, len(header.encode("utf-8"))

    return _write


@pytest.fixture
def ditem_fields() -> list[str]:
    """The D_ITEMS 'Heart Rate' row; the trailing conceptid is empty."""
    return list(DITEM_FIELDS)


@pytest.fixture
def patient_fields() -> list[str]:
    return list(PATIENT_FIELDS)
