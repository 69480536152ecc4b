"""Pydantic models for clinical records and ledger result entries."""

from typing import Any

from pydantic import BaseModel, Field


class Record(BaseModel):
    """A typed, flat clinical record bound from one source line.

    ``values`` keeps the schema's declaration order, so ``arguments()``
    reproduces the positional field list the insert functions expect.
    """

    record_type: str = Field(description="Schema key, e.g. 'dictionaryItem'")
    doc_type: str = Field(description="Discriminator stored with the document")
    values: dict[str, str] = Field(description="Field name -> raw string value, in column order")

    model_config = {"frozen": True}

    def arguments(self) -> list[str]:
        return list(self.values.values())

    def to_document(self) -> dict[str, str]:
        """Return the JSON document shape stored on the ledger."""
        return {"docType": self.doc_type, **self.values}


class KeyedRecord(BaseModel):
    """One entry drained from a state query iterator."""

    key: str
    record: Any = Field(description="Parsed JSON document, or the raw string if parsing failed")


class HistoryEntry(BaseModel):
    """One entry drained from a key history iterator."""

    tx_id: str
    timestamp: str
    is_delete: bool = False
    value: Any = Field(description="Parsed JSON document, or the raw string if parsing failed")
