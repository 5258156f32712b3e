"""Ledger subsystem for gigmarket.

Internal balance ledger: append-only transactions and escrow holds.

Models:
- Transaction: A signed ledger row (integer cents)
- TransactionStatus / TransactionKind: Row lifecycle and meaning
- EscrowHold: Funds reserved against a job
- HoldState: held -> released | refunded

Service:
- LedgerService: Balances, top-ups, withdrawals, hold create/release/refund
"""

from gigmarket.ledger.models import (
    EscrowHold,
    HoldState,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from gigmarket.ledger.service import LedgerService
from gigmarket.ledger.storage import InMemoryLedgerStorage, LedgerStorage

__all__ = [
    # Models
    "Transaction",
    "TransactionStatus",
    "TransactionKind",
    "EscrowHold",
    "HoldState",
    # Storage
    "LedgerStorage",
    "InMemoryLedgerStorage",
    # Service
    "LedgerService",
]
