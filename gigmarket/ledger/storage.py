"""
Ledger storage layer.

Storage owns atomicity: writes that must land together (a hold and its
debit, a hold settlement and its credits) are single storage calls, and
state changes are compare-and-set so a lost race returns False instead of
overwriting.
"""

import dataclasses
import logging
import threading
from datetime import datetime
from typing import List, Optional, Protocol

from gigmarket.ledger.models import EscrowHold, HoldState, Transaction, TransactionStatus

logger = logging.getLogger(__name__)


class LedgerStorage(Protocol):
    """Protocol for ledger persistence backends.

    `shared` is True when other processes or service instances may write the
    same data, so nothing read from it can be cached by the caller.
    """

    shared: bool

    # Transactions
    def append_transaction(self, transaction: Transaction) -> str:
        """Append a transaction. Returns the transaction ID."""
        ...

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get a transaction by ID."""
        ...

    def list_transactions(self, user_id: str, limit: int = 100) -> List[Transaction]:
        """List a user's transactions, newest first."""
        ...

    def find_transaction_by_key(self, user_id: str, idempotency_key: str) -> Optional[Transaction]:
        """Find a transaction by its per-user idempotency key."""
        ...

    def sum_completed(self, user_id: str) -> int:
        """Sum of a user's completed transaction amounts, in cents."""
        ...

    def update_transaction_status(
        self, transaction_id: str, expected: TransactionStatus, status: TransactionStatus
    ) -> bool:
        """Compare-and-set a transaction's status. False if it was not `expected`."""
        ...

    # Holds
    def create_hold(self, hold: EscrowHold, debit: Transaction) -> bool:
        """Save a hold and its client debit together.

        Returns False (writing nothing) if the job already has a held hold.
        """
        ...

    def get_latest_hold(self, job_id: str) -> Optional[EscrowHold]:
        """Most recent hold for a job, any state."""
        ...

    def settle_hold(
        self,
        hold_id: str,
        state: HoldState,
        settled_at: datetime,
        credits: List[Transaction],
    ) -> bool:
        """Move a held hold to a terminal state and append its credits together.

        Returns False (writing nothing) if the hold is no longer held.
        """
        ...


class InMemoryLedgerStorage:
    """In-memory ledger storage for testing and local development.

    Stores and hands out copies, so callers never share a record with it.
    """

    shared = False

    def __init__(self):
        self._lock = threading.Lock()
        self._transactions: dict[str, Transaction] = {}
        self._by_user: dict[str, list[str]] = {}  # user_id -> txn ids, append order
        self._holds: dict[str, list[EscrowHold]] = {}  # job_id -> holds, oldest first

    def _append(self, transaction: Transaction) -> None:
        if transaction.id in self._transactions:
            raise ValueError(f"Duplicate transaction id: {transaction.id}")
        self._transactions[transaction.id] = dataclasses.replace(transaction)
        self._by_user.setdefault(transaction.user_id, []).append(transaction.id)

    # === Transactions ===

    def append_transaction(self, transaction: Transaction) -> str:
        with self._lock:
            self._append(transaction)
        return transaction.id

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            txn = self._transactions.get(transaction_id)
            return dataclasses.replace(txn) if txn else None

    def list_transactions(self, user_id: str, limit: int = 100) -> List[Transaction]:
        with self._lock:
            ids = self._by_user.get(user_id, [])[::-1][:limit]
            return [dataclasses.replace(self._transactions[i]) for i in ids]

    def find_transaction_by_key(self, user_id: str, idempotency_key: str) -> Optional[Transaction]:
        with self._lock:
            for txn_id in self._by_user.get(user_id, []):
                txn = self._transactions[txn_id]
                if txn.idempotency_key == idempotency_key:
                    return dataclasses.replace(txn)
        return None

    def sum_completed(self, user_id: str) -> int:
        with self._lock:
            return sum(
                self._transactions[i].amount_cents
                for i in self._by_user.get(user_id, [])
                if self._transactions[i].is_completed
            )

    def update_transaction_status(
        self, transaction_id: str, expected: TransactionStatus, status: TransactionStatus
    ) -> bool:
        with self._lock:
            txn = self._transactions.get(transaction_id)
            if txn is None or txn.status != expected.value:
                return False
            self._transactions[transaction_id] = dataclasses.replace(txn, status=status.value)
            return True

    # === Holds ===

    def create_hold(self, hold: EscrowHold, debit: Transaction) -> bool:
        with self._lock:
            holds = self._holds.setdefault(hold.job_id, [])
            if any(h.is_active for h in holds):
                return False
            self._append(debit)
            holds.append(dataclasses.replace(hold))
            return True

    def get_latest_hold(self, job_id: str) -> Optional[EscrowHold]:
        with self._lock:
            holds = self._holds.get(job_id)
            return dataclasses.replace(holds[-1]) if holds else None

    def settle_hold(
        self,
        hold_id: str,
        state: HoldState,
        settled_at: datetime,
        credits: List[Transaction],
    ) -> bool:
        with self._lock:
            for holds in self._holds.values():
                for i, hold in enumerate(holds):
                    if hold.id != hold_id:
                        continue
                    if not hold.is_active:
                        return False
                    for credit in credits:
                        self._append(credit)
                    holds[i] = dataclasses.replace(
                        hold, state=state.value, settled_at=settled_at
                    )
                    return True
            return False
