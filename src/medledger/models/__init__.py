"""Pydantic models for medledger."""

from .latency import LatencySample, LatencyStats
from .records import HistoryEntry, KeyedRecord, Record
from .transaction import TransactionPayload, TransactionResult

__all__ = [
    "Record",
    "KeyedRecord",
    "HistoryEntry",
    # Transactions
    "TransactionPayload",
    "TransactionResult",
    # Latency
    "LatencySample",
    "LatencyStats",
]
