"""Pydantic models for transaction payloads and results."""

from pydantic import BaseModel, Field


class TransactionPayload(BaseModel):
    """A single contract call submitted to the ledger client."""

    target_function: str = Field(description="Contract function name, e.g. 'insertDitem'")
    arguments: list[str] = Field(default_factory=list, description="Ordered positional arguments")

    model_config = {"frozen": True}


class TransactionResult(BaseModel):
    """Outcome of one submitted transaction.

    Timestamps are epoch milliseconds taken by the ledger client.
    """

    tx_id: str
    status: str = Field(default="success", description="Ledger-reported status; failures are raised, not returned")
    time_create: int
    time_final: int
    result: bytes = b""

    model_config = {"frozen": True}

    @property
    def duration_ms(self) -> int:
        return self.time_final - self.time_create
