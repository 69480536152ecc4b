"""SQLite-backed world state with a per-transaction stub API.

The world state is a flat key -> bytes map plus an append-only history of
every write. Callers never touch it directly; they open a transaction and
work through the ``ChaincodeStub`` it yields. A transaction commits only when
its body returns normally and it finished before its deadline; otherwise every
write made through the stub is rolled back.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from ..errors import LedgerTimeoutError, ValidationError

logger = logging.getLogger(__name__)

COMPOSITE_KEY_NAMESPACE = "\x00"
MAX_UNICODE_RUNE = "\U0010ffff"
INDEX_SENTINEL = b"\x00"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OPERATORS = {"$eq": "=", "$ne": "!=", "$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def create_composite_key(object_type: str, attributes: list[str]) -> str:
    """Join an index name and attribute values with the reserved separator."""
    for part in [object_type, *attributes]:
        if COMPOSITE_KEY_NAMESPACE in part:
            raise ValidationError(f"Composite key part contains reserved separator: {part!r}")
    return COMPOSITE_KEY_NAMESPACE + "".join(p + COMPOSITE_KEY_NAMESPACE for p in [object_type, *attributes])


def split_composite_key(key: str) -> tuple[str, list[str]]:
    if not key.startswith(COMPOSITE_KEY_NAMESPACE):
        raise ValidationError(f"Not a composite key: {key!r}")
    parts = key[1:].split(COMPOSITE_KEY_NAMESPACE)[:-1]
    if not parts:
        raise ValidationError(f"Empty composite key: {key!r}")
    return parts[0], parts[1:]


def _document_text(value: bytes) -> Optional[str]:
    """Return ``value`` as JSON text when it holds a JSON object, else None."""
    try:
        text = value.decode("utf-8")
        parsed = json.loads(text)
    except (UnicodeDecodeError, ValueError):
        return None
    return text if isinstance(parsed, dict) else None


def _sql_literal(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (str, int, float)):
        return value
    raise ValidationError(f"Unsupported selector value: {value!r}")


def compile_selector(selector: dict[str, Any]) -> tuple[str, list[Any]]:
    """Translate a JSON selector into a SQL WHERE clause over ``doc``."""
    clauses: list[str] = ["doc IS NOT NULL"]
    params: list[Any] = []
    for field, condition in selector.items():
        if not isinstance(field, str) or not _FIELD_RE.match(field):
            raise ValidationError(f"Invalid selector field: {field!r}")
        column = f"json_extract(doc, '$.{field}')"

        if not isinstance(condition, dict):
            condition = {"$eq": condition}

        for op, operand in condition.items():
            if op == "$in":
                if not isinstance(operand, list):
                    raise ValidationError(f"$in expects a list for field {field!r}")
                if not operand:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({', '.join('?' for _ in operand)})")
                params.extend(_sql_literal(v) for v in operand)
            elif op in _OPERATORS:
                if operand is None:
                    clauses.append(f"{column} IS {'NOT ' if op == '$ne' else ''}NULL")
                    continue
                clauses.append(f"{column} {_OPERATORS[op]} ?")
                params.append(_sql_literal(operand))
            else:
                raise ValidationError(f"Unsupported selector operator: {op!r}")
    return " AND ".join(clauses), params


@dataclass(frozen=True)
class StateEntry:
    key: str
    value: bytes


@dataclass(frozen=True)
class HistoryRecord:
    tx_id: str
    timestamp: str
    value: bytes
    is_delete: bool


class ResultsIterator:
    """Lazy iterator over a query cursor. Must be closed by its consumer."""

    def __init__(self, cursor: sqlite3.Cursor, make: Callable[[sqlite3.Row], Any]):
        self._cursor = cursor
        self._make = make
        self.closed = False

    def __iter__(self) -> "ResultsIterator":
        return self

    def __next__(self) -> Any:
        if self.closed:
            raise StopIteration
        row = self._cursor.fetchone()
        if row is None:
            raise StopIteration
        return self._make(row)

    def close(self) -> None:
        if not self.closed:
            self._cursor.close()
            self.closed = True


class ChaincodeStub:
    """State access for a single transaction."""

    def __init__(self, conn: sqlite3.Connection, tx_id: str, read_only: bool = False):
        self._conn = conn
        self.tx_id = tx_id
        self.read_only = read_only
        self._iterators: list[ResultsIterator] = []

    def get_state(self, key: str) -> bytes:
        """Return the value stored under ``key``, or ``b""`` when absent."""
        row = self._conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
        return bytes(row["value"]) if row is not None else b""

    def put_state(self, key: str, value: bytes) -> None:
        if self.read_only:
            raise ValidationError("Cannot write state in a read-only transaction")
        if not key:
            raise ValidationError("State key must not be empty")
        if not value:
            # An empty value removes the key.
            self.delete_state(key)
            return
        self._conn.execute(
            "INSERT INTO state(key, value, doc) VALUES(?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, doc=excluded.doc",
            (key, value, _document_text(value)),
        )
        self._conn.execute(
            "INSERT INTO history(key, tx_id, ts, value, is_delete) VALUES(?, ?, ?, ?, 0)",
            (key, self.tx_id, _iso_now(), value),
        )

    def delete_state(self, key: str) -> None:
        if self.read_only:
            raise ValidationError("Cannot write state in a read-only transaction")
        self._conn.execute("DELETE FROM state WHERE key = ?", (key,))
        self._conn.execute(
            "INSERT INTO history(key, tx_id, ts, value, is_delete) VALUES(?, ?, ?, ?, 1)",
            (key, self.tx_id, _iso_now(), b""),
        )

    create_composite_key = staticmethod(create_composite_key)
    split_composite_key = staticmethod(split_composite_key)

    def get_query_result(self, query: Union[str, dict[str, Any]]) -> ResultsIterator:
        """Run a rich query ``{"selector": {...}, "limit": n}`` against JSON documents."""
        if isinstance(query, str):
            try:
                query = json.loads(query)
            except ValueError as e:
                raise ValidationError(f"Query string is not valid JSON: {e}") from e
        if not isinstance(query, dict) or not isinstance(query.get("selector"), dict):
            raise ValidationError("Query must be an object with a 'selector' object")

        where, params = compile_selector(query["selector"])
        sql = f"SELECT key, value FROM state WHERE {where} ORDER BY key"
        limit = query.get("limit")
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                raise ValidationError(f"Invalid query limit: {limit!r}")
            sql += " LIMIT ?"
            params.append(limit)
        return self._track(self._conn.execute(sql, params), _state_entry)

    def get_state_by_partial_composite_key(self, object_type: str, attributes: list[str]) -> ResultsIterator:
        prefix = create_composite_key(object_type, attributes)
        cursor = self._conn.execute(
            "SELECT key, value FROM state WHERE key >= ? AND key < ? ORDER BY key",
            (prefix, prefix + MAX_UNICODE_RUNE),
        )
        return self._track(cursor, _state_entry)

    def get_history_for_key(self, key: str) -> ResultsIterator:
        cursor = self._conn.execute(
            "SELECT tx_id, ts, value, is_delete FROM history WHERE key = ? ORDER BY seq",
            (key,),
        )
        return self._track(cursor, _history_record)

    def _track(self, cursor: sqlite3.Cursor, make: Callable[[sqlite3.Row], Any]) -> ResultsIterator:
        iterator = ResultsIterator(cursor, make)
        self._iterators.append(iterator)
        return iterator

    def close_iterators(self) -> None:
        for iterator in self._iterators:
            iterator.close()
        self._iterators.clear()


def _state_entry(row: sqlite3.Row) -> StateEntry:
    return StateEntry(key=str(row["key"]), value=bytes(row["value"]))


def _history_record(row: sqlite3.Row) -> HistoryRecord:
    return HistoryRecord(
        tx_id=str(row["tx_id"]),
        timestamp=str(row["ts"]),
        value=bytes(row["value"]),
        is_delete=bool(row["is_delete"]),
    )


class SqliteWorldState:
    def __init__(self, db_path: Path, busy_timeout_s: float = 30.0):
        self.db_path = db_path
        self.busy_timeout_s = busy_timeout_s
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_s,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS state(
                  key TEXT PRIMARY KEY,
                  value BLOB NOT NULL,
                  doc TEXT
                );

                CREATE TABLE IF NOT EXISTS history(
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  key TEXT NOT NULL,
                  tx_id TEXT NOT NULL,
                  ts TEXT NOT NULL,
                  value BLOB NOT NULL,
                  is_delete INTEGER NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_history_key ON history(key, seq);
                """
            )
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        tx_id: str,
        *,
        deadline: Optional[float] = None,
        read_only: bool = False,
    ) -> Iterator[ChaincodeStub]:
        """Open one atomic unit of work.

        ``deadline`` is a ``time.monotonic()`` value. Long-running statements
        are interrupted once it passes, and a body that returns late is rolled
        back instead of committed. Read-only transactions never commit.
        """
        conn = self._connect()
        if deadline is not None:
            conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, 1000)
        stub = ChaincodeStub(conn, tx_id, read_only=read_only)
        try:
            conn.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield stub
            finally:
                stub.close_iterators()

            if read_only:
                conn.execute("ROLLBACK")
                return
            if deadline is not None and time.monotonic() > deadline:
                conn.execute("ROLLBACK")
                raise LedgerTimeoutError(f"Transaction {tx_id} exceeded its deadline before commit")
            conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            if "interrupted" in str(e):
                raise LedgerTimeoutError(f"Transaction {tx_id} interrupted at its deadline") from e
            raise
        finally:
            conn.set_progress_handler(None, 0)
            if conn.in_transaction:
                conn.execute("ROLLBACK")
                logger.debug(f"Rolled back transaction {tx_id}")
            conn.close()

    def get(self, key: str) -> bytes:
        """Read a committed value outside any transaction (``b""`` when absent)."""
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
            return bytes(row["value"]) if row is not None else b""
        finally:
            conn.close()

    def count_keys(self) -> int:
        conn = self._connect()
        try:
            return int(conn.execute("SELECT COUNT(1) AS n FROM state").fetchone()["n"])
        finally:
            conn.close()
