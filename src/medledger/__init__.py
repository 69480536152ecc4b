"""medledger - clinical record store on a key-value ledger, plus a streaming benchmark harness."""

__version__ = "0.1.0"
