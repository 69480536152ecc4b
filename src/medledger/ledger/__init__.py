"""Ledger boundary: the client interface and the local SQLite world state."""

from .client import ClientContext, Contract, LedgerClient, LocalLedgerClient, get_ledger_client
from .state import (
    ChaincodeStub,
    HistoryRecord,
    ResultsIterator,
    SqliteWorldState,
    StateEntry,
    create_composite_key,
    split_composite_key,
)

__all__ = [
    # Client
    "ClientContext",
    "Contract",
    "LedgerClient",
    "LocalLedgerClient",
    "get_ledger_client",
    # World state
    "ChaincodeStub",
    "HistoryRecord",
    "ResultsIterator",
    "SqliteWorldState",
    "StateEntry",
    "create_composite_key",
    "split_composite_key",
]
