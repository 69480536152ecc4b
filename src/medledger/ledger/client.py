"""Ledger client implementations for the benchmark harness.

Provides the boundary the benchmark driver submits transactions through.
Only the local SQLite-backed ledger ships here; it executes contracts
in-process with Fabric-style stub semantics.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..errors import ConfigError, LedgerRejectedError, LedgerTimeoutError
from ..models.transaction import TransactionPayload, TransactionResult
from .state import ChaincodeStub, SqliteWorldState

logger = logging.getLogger(__name__)


class Contract(Protocol):
    def invoke(self, stub: ChaincodeStub, function: str, args: list[str]) -> bytes: ...


@dataclass
class ClientContext:
    """Per-worker client identity handed to every submission."""

    client_id: str = field(default_factory=lambda: f"client-{uuid.uuid4().hex[:8]}")


class LedgerClient(ABC):
    """Abstract interface for ledger clients.

    Implementations submit payloads and report one TransactionResult per
    completed transaction. Failures are raised, never returned: a timeout as
    LedgerTimeoutError, a contract failure as LedgerRejectedError.
    """

    @abstractmethod
    def get_type(self) -> str:
        """Return the ledger flavor (e.g., 'fabric')."""
        pass

    @abstractmethod
    def invoke(
        self,
        context: ClientContext,
        contract_name: str,
        version: str,
        transactions: list[TransactionPayload],
        timeout_ms: int,
    ) -> list[TransactionResult]:
        """Submit state-changing transactions and wait for all of them.

        Args:
            context: Submitting client's context
            contract_name: Deployed contract name
            version: Deployed contract version
            transactions: Payloads to submit, in order
            timeout_ms: Per-transaction timeout in milliseconds

        Returns:
            One result per transaction, in submission order
        """
        pass

    @abstractmethod
    def query(
        self,
        context: ClientContext,
        contract_name: str,
        version: str,
        transaction: TransactionPayload,
        timeout_ms: int,
    ) -> list[TransactionResult]:
        """Evaluate a read-only transaction. Nothing is committed."""
        pass


class LocalLedgerClient(LedgerClient):
    """In-process ledger over a SqliteWorldState.

    Each payload runs in its own world-state transaction against the contract
    deployed under (contract_name, version).
    """

    FLAVOR = "fabric"

    def __init__(self, state: SqliteWorldState):
        self.state = state
        self._contracts: dict[tuple[str, str], Contract] = {}

    def get_type(self) -> str:
        return self.FLAVOR

    def deploy(self, contract_name: str, version: str, contract: Contract) -> None:
        self._contracts[(contract_name, version)] = contract
        logger.info(f"Deployed contract {contract_name}@{version}")

    def _contract(self, contract_name: str, version: str) -> Contract:
        try:
            return self._contracts[(contract_name, version)]
        except KeyError:
            raise ConfigError(f"Contract not deployed: {contract_name}@{version}") from None

    def invoke(
        self,
        context: ClientContext,
        contract_name: str,
        version: str,
        transactions: list[TransactionPayload],
        timeout_ms: int,
    ) -> list[TransactionResult]:
        contract = self._contract(contract_name, version)
        return [
            self._execute(context, contract, payload, timeout_ms, read_only=False)
            for payload in transactions
        ]

    def query(
        self,
        context: ClientContext,
        contract_name: str,
        version: str,
        transaction: TransactionPayload,
        timeout_ms: int,
    ) -> list[TransactionResult]:
        contract = self._contract(contract_name, version)
        return [self._execute(context, contract, transaction, timeout_ms, read_only=True)]

    def _execute(
        self,
        context: ClientContext,
        contract: Contract,
        payload: TransactionPayload,
        timeout_ms: int,
        read_only: bool,
    ) -> TransactionResult:
        if timeout_ms <= 0:
            raise ConfigError(f"timeout_ms must be positive, got {timeout_ms}")

        tx_id = f"{context.client_id}-{uuid.uuid4().hex}"
        time_create = time.time_ns() // 1_000_000
        started = time.monotonic()
        deadline = started + timeout_ms / 1000.0

        try:
            with self.state.transaction(tx_id, deadline=deadline, read_only=read_only) as stub:
                result = contract.invoke(stub, payload.target_function, list(payload.arguments))
        except LedgerTimeoutError:
            logger.warning(f"Transaction {tx_id} ({payload.target_function}) timed out after {timeout_ms} ms")
            raise
        except Exception as e:
            logger.warning(f"Transaction {tx_id} ({payload.target_function}) rejected: {e}")
            raise LedgerRejectedError(f"{payload.target_function} rejected: {e}") from e

        # time_final is derived from the monotonic clock.
        elapsed_ms = int((time.monotonic() - started) * 1000)
        return TransactionResult(
            tx_id=tx_id,
            status="success",
            time_create=time_create,
            time_final=time_create + elapsed_ms,
            result=result or b"",
        )


def get_ledger_client(ledger_db_path: Path, contract_name: str, contract_version: str, contract: Contract) -> LocalLedgerClient:
    """Build the local ledger client with ``contract`` deployed.

    Args:
        ledger_db_path: Path to the SQLite world-state file
        contract_name: Name to deploy the contract under
        contract_version: Version to deploy the contract under
        contract: Contract object (usually a RecordStore)

    Returns:
        Ready-to-use LocalLedgerClient
    """
    client = LocalLedgerClient(SqliteWorldState(ledger_db_path))
    client.deploy(contract_name, contract_version, contract)
    return client
