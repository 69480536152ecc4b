"""Exception hierarchy for medledger."""

from typing import Optional


class MedLedgerError(Exception):
    """Base class for all medledger errors."""


class ConfigError(MedLedgerError):
    """Invalid or unsupported configuration."""


class UnsupportedLedgerError(ConfigError):
    """Ledger flavor has no transaction builder."""

    def __init__(self, flavor: str):
        super().__init__(f"Unsupported ledger flavor: {flavor!r}")
        self.flavor = flavor


class SchemaMismatchError(MedLedgerError):
    """A line or argument list does not match the record type's arity."""

    def __init__(self, record_type: str, expected: int, actual: int):
        super().__init__(
            f"Incorrect number of fields for {record_type}: expected {expected}, got {actual}"
        )
        self.record_type = record_type
        self.expected = expected
        self.actual = actual


class ValidationError(MedLedgerError):
    """A record field failed validation before any write."""


class DuplicateKeyError(MedLedgerError):
    """The identity key already holds a value."""

    def __init__(self, key: str, existing_doc_type: Optional[str] = None):
        if existing_doc_type is None:
            message = f"This input already exists: {key}"
        else:
            message = f"Key {key} already holds a {existing_doc_type} record"
        super().__init__(message)
        self.key = key
        self.existing_doc_type = existing_doc_type


class NotFoundError(MedLedgerError):
    """A direct lookup found no value."""


class UnknownFunctionError(MedLedgerError):
    """A transaction named a function the contract does not provide."""


class LedgerTimeoutError(MedLedgerError):
    """The ledger did not complete the transaction within its timeout."""


class LedgerRejectedError(MedLedgerError):
    """The ledger aborted the transaction. The contract error is the __cause__."""


class SinkWriteError(MedLedgerError):
    """A latency sample could not be appended to the sink."""


class SourceExhaustedError(MedLedgerError):
    """The source file has no more complete lines."""
