"""Clinical record store executed inside ledger transactions.

``RecordStore`` is the contract deployed on the ledger. Every public function
takes the transaction's ``ChaincodeStub`` and a list of string arguments, the
same way a transaction payload names them, and returns the bytes handed back
to the client.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Optional, Union

from .errors import (
    DuplicateKeyError,
    NotFoundError,
    SchemaMismatchError,
    UnknownFunctionError,
    ValidationError,
)
from .ledger.state import COMPOSITE_KEY_NAMESPACE, INDEX_SENTINEL, ChaincodeStub, ResultsIterator
from .models.records import HistoryEntry, KeyedRecord, Record
from .schemas import RECORD_SCHEMAS, RecordSchema, get_schema, schema_for_function

logger = logging.getLogger(__name__)

Document = dict[str, Any]


def _json_bytes(obj: Any) -> bytes:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def _parse_value(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError as e:
        logger.warning(f"Returning raw value, not JSON: {e}")
        return text


def _doc_type(raw: bytes) -> Optional[str]:
    try:
        document = json.loads(raw.decode("utf-8"))
    except ValueError:
        return None
    return document.get("docType") if isinstance(document, dict) else None


def _single_argument(args: list[str], what: str) -> str:
    if len(args) != 1:
        raise SchemaMismatchError(what, 1, len(args))
    return args[0]


class RecordStore:
    """Document store over an opaque key-value ledger.

    Records are stored as JSON under their identity key. Each insert also
    writes one secondary index entry whose value is a sentinel byte, so index
    scans never duplicate record payloads.
    """

    def __init__(self, schemas: Optional[dict[str, RecordSchema]] = None):
        self.schemas = dict(schemas or RECORD_SCHEMAS)
        self._functions: dict[str, Callable[[ChaincodeStub, list[str]], bytes]] = {
            "queryPatientById": lambda stub, args: _json_bytes(
                self.query_by_patient_id(stub, _single_argument(args, "queryPatientById"))
            ),
            "readPatient": lambda stub, args: _json_bytes(
                self.read_patient(stub, _single_argument(args, "readPatient"))
            ),
            "queryRecords": lambda stub, args: _json_bytes(
                [r.model_dump() for r in self.query_records(stub, _single_argument(args, "queryRecords"))]
            ),
            "getHistoryForRecord": lambda stub, args: _json_bytes(
                [h.model_dump() for h in self.get_history_for_record(stub, _single_argument(args, "getHistoryForRecord"))]
            ),
            "getRecordsByIndex": lambda stub, args: _json_bytes(
                [r.model_dump() for r in self.records_by_index(stub, args[0] if args else "", args[1:])]
            ),
        }

    def invoke(self, stub: ChaincodeStub, function: str, args: list[str]) -> bytes:
        """Dispatch a named contract function."""
        logger.debug(f"Transaction {stub.tx_id}: {function} with {len(args)} argument(s)")
        schema = schema_for_function(function, self.schemas)
        if schema is not None:
            return self.insert(stub, schema.record_type, args)
        handler = self._functions.get(function)
        if handler is None:
            raise UnknownFunctionError(f"Received unknown function {function} invocation")
        return handler(stub, args)

    def _schema(self, record_type: str) -> RecordSchema:
        schema = self.schemas.get(record_type)
        return schema if schema is not None else get_schema(record_type)

    def validate(self, record_type: str, values: list[str]) -> Document:
        """Check arity, required fields and the reserved separator.

        Returns the JSON document to store. Raises before anything is written.
        """
        schema = self._schema(record_type)
        if len(values) != schema.arity:
            raise SchemaMismatchError(record_type, schema.arity, len(values))

        for name, value in zip(schema.fields, values):
            if not isinstance(value, str):
                raise ValidationError(f"{record_type}.{name} must be a string")
            if COMPOSITE_KEY_NAMESPACE in value:
                raise ValidationError(f"{record_type}.{name} contains the reserved separator")

        document: Document = Record(
            record_type=schema.record_type,
            doc_type=schema.doc_type,
            values=dict(zip(schema.fields, values)),
        ).to_document()
        for name in schema.required_fields:
            if not document[name]:
                raise ValidationError(f"{record_type}.{name} must be a non-empty string")
        return document

    def insert(self, stub: ChaincodeStub, record_type: str, values: list[str]) -> bytes:
        """Store one record and its index entry in the current transaction."""
        schema = self._schema(record_type)
        document = self.validate(record_type, values)
        key = document[schema.identity_field]

        existing = stub.get_state(key)
        if existing:
            if schema.enforce_uniqueness:
                raise DuplicateKeyError(key)
            # Identity keys share one keyspace across record types.
            existing_type = _doc_type(existing)
            if existing_type != schema.doc_type:
                raise DuplicateKeyError(key, existing_type or "non-record")

        payload = _json_bytes(document)
        stub.put_state(key, payload)
        index_key = stub.create_composite_key(
            schema.index_name, [document[f] for f in schema.index_fields]
        )
        stub.put_state(index_key, INDEX_SENTINEL)
        logger.debug(f"Stored {record_type} {key} with index {schema.index_name}")
        return payload

    def query_by_patient_id(self, stub: ChaincodeStub, subject_id: str) -> list[Document]:
        """Return every patient document whose subjectId matches."""
        query = {"selector": {"docType": self._schema("patient").doc_type, "subjectId": subject_id}}
        results = self.get_all_results(stub.get_query_result(json.dumps(query)), is_history=False)
        return [r.record for r in results]

    def read_patient(self, stub: ChaincodeStub, subject_id: str) -> Document:
        if not subject_id:
            raise ValidationError("Patient id must not be empty")
        raw = stub.get_state(subject_id)
        if not raw:
            raise NotFoundError(f"Patient does not exist: {subject_id}")
        document = _parse_value(raw)
        # Identity keys share one keyspace across record types.
        if not isinstance(document, dict) or document.get("docType") != self._schema("patient").doc_type:
            raise NotFoundError(f"Patient does not exist: {subject_id}")
        return document

    def query_records(self, stub: ChaincodeStub, query: Union[str, dict[str, Any]]) -> list[KeyedRecord]:
        """Run an arbitrary selector query."""
        logger.info(f"Rich query: {query}")
        return self.get_all_results(stub.get_query_result(query), is_history=False)

    def records_by_index(self, stub: ChaincodeStub, index_name: str, attributes: list[str]) -> list[KeyedRecord]:
        """Resolve records through a partial composite key scan of one index."""
        if not index_name:
            raise ValidationError("Index name must not be empty")
        doc_types = {s.doc_type for s in self.schemas.values() if s.index_name == index_name}
        iterator = stub.get_state_by_partial_composite_key(index_name, attributes)
        records: list[KeyedRecord] = []
        try:
            for entry in iterator:
                _, attrs = stub.split_composite_key(entry.key)
                # The identity key is always the last indexed attribute.
                key = attrs[-1] if attrs else ""
                raw = stub.get_state(key) if key else b""
                if not raw:
                    continue
                record = _parse_value(raw)
                if doc_types and (not isinstance(record, dict) or record.get("docType") not in doc_types):
                    logger.warning(f"Index {index_name} entry {key} resolves to a record of another type")
                    continue
                records.append(KeyedRecord(key=key, record=record))
        finally:
            iterator.close()
        return records

    def get_history_for_record(self, stub: ChaincodeStub, key: str) -> list[HistoryEntry]:
        if not key:
            raise ValidationError("Record key must not be empty")
        return self.get_all_results(stub.get_history_for_key(key), is_history=True)

    def get_all_results(
        self,
        iterator: Union[ResultsIterator, Iterable[Any]],
        is_history: bool,
    ) -> list[Any]:
        """Drain ``iterator`` into structured entries and close it.

        Values that fail to parse as JSON are kept as raw strings. Entries with
        empty values are skipped, except history deletes, which carry no value.
        """
        results: list[Any] = []
        try:
            for entry in iterator:
                if is_history and entry.is_delete:
                    results.append(
                        HistoryEntry(tx_id=entry.tx_id, timestamp=entry.timestamp, is_delete=True, value=None)
                    )
                    continue
                if not entry.value:
                    continue
                value = _parse_value(entry.value)
                if is_history:
                    results.append(
                        HistoryEntry(
                            tx_id=entry.tx_id,
                            timestamp=entry.timestamp,
                            is_delete=entry.is_delete,
                            value=value,
                        )
                    )
                else:
                    results.append(KeyedRecord(key=entry.key, record=value))
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
        logger.debug(f"Drained {len(results)} result(s)")
        return results
