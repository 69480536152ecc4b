"""Bind delimited source lines to record schemas."""

from __future__ import annotations

from typing import Optional

from ..errors import SchemaMismatchError
from ..models.records import Record
from ..schemas import RECORD_SCHEMAS, RecordSchema, get_schema


class RecordMapper:
    """Split a line on ``separator`` and bind the fields to a record schema.

    Only arity is checked here. Field content (empty identity fields, reserved
    characters) is the store's concern and fails later with ValidationError.
    """

    def __init__(
        self,
        record_type: str,
        separator: str = ",",
        schemas: Optional[dict[str, RecordSchema]] = None,
    ):
        if len(separator) != 1:
            raise ValueError(f"separator must be a single character, got {separator!r}")
        table = schemas or RECORD_SCHEMAS
        self.schema = table[record_type] if record_type in table else get_schema(record_type)
        self.separator = separator

    @property
    def record_type(self) -> str:
        return self.schema.record_type

    def split(self, line: str) -> list[str]:
        return line.split(self.separator)

    def map_line(self, line: str) -> Record:
        fields = self.split(line)
        if len(fields) != self.schema.arity:
            raise SchemaMismatchError(self.schema.record_type, self.schema.arity, len(fields))
        return Record(
            record_type=self.schema.record_type,
            doc_type=self.schema.doc_type,
            values=dict(zip(self.schema.fields, fields)),
        )
