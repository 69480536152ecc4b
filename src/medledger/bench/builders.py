"""Transaction builders, one per ledger flavor.

The driver never shapes payloads itself. It asks the builder registered for
``client.get_type()``, and an unknown flavor fails fast instead of submitting
nothing.
"""

from abc import ABC, abstractmethod

from ..errors import UnsupportedLedgerError
from ..models.records import Record
from ..models.transaction import TransactionPayload


class TransactionBuilder(ABC):
    """Abstract interface for per-flavor payload construction."""

    flavor: str = ""

    @abstractmethod
    def build_insert_transaction(self, function: str, record: Record) -> list[TransactionPayload]:
        """Build the payloads that insert ``record`` through ``function``."""
        pass

    @abstractmethod
    def build_query_transaction(self, function: str, identifier: str) -> TransactionPayload:
        """Build the payload that looks up ``identifier`` through ``function``."""
        pass


class FabricTransactionBuilder(TransactionBuilder):
    """Chaincode-style payloads: function name plus positional string args."""

    flavor = "fabric"

    def build_insert_transaction(self, function: str, record: Record) -> list[TransactionPayload]:
        return [TransactionPayload(target_function=function, arguments=record.arguments())]

    def build_query_transaction(self, function: str, identifier: str) -> TransactionPayload:
        return TransactionPayload(target_function=function, arguments=[identifier])


_BUILDERS: dict[str, type[TransactionBuilder]] = {
    FabricTransactionBuilder.flavor: FabricTransactionBuilder,
}


def get_transaction_builder(flavor: str) -> TransactionBuilder:
    """Return the builder for a ledger flavor.

    Raises:
        UnsupportedLedgerError: If no builder handles ``flavor``
    """
    builder_cls = _BUILDERS.get(flavor)
    if builder_cls is None:
        raise UnsupportedLedgerError(flavor)
    return builder_cls()
