"""
Ledger service.

Business logic for balances, top-ups, withdrawals and escrow holds.

Balances are derived: the sum of a user's completed transactions. Over
private (in-memory) storage a running total per user is cached and dropped
whenever a completed row for that user is appended or a pending one settles.
Over shared storage (SQLite) every read goes to storage, since another
instance may have written since. Writes that depend on a balance check
run under that user's lock so the check and the write cannot interleave
with another debit.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from gigmarket.config import MarketConfig
from gigmarket.errors import (
    DuplicateHold,
    HoldNotFound,
    InsufficientFunds,
    InvalidHoldState,
    TransactionNotFound,
)
from gigmarket.ledger.models import (
    EscrowHold,
    HoldState,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from gigmarket.ledger.storage import LedgerStorage
from gigmarket.locks import KeyedLock
from gigmarket.logging_config import log_hold, log_ledger
from gigmarket.money import Amount, fee_cents, from_cents, to_cents
from gigmarket.types import utc_now

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for ledger operations.

    Thread-safe. Holds no job locks; callers coordinating a job-level flow
    take the job lock first.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        config: Optional[MarketConfig] = None,
        user_locks: Optional[KeyedLock] = None,
    ):
        self.storage = storage
        self.config = config or MarketConfig()
        self._user_locks = user_locks or KeyedLock()
        self._balance_cache: dict[str, int] = {}
        self._cache_balances = not getattr(storage, "shared", False)

    # === Balances ===

    def get_balance(self, user_id: str) -> Decimal:
        """Current balance: sum of completed transactions."""
        return from_cents(self._balance_cents(user_id))

    def _balance_cents(self, user_id: str) -> int:
        with self._user_locks.hold(user_id):
            if not self._cache_balances:
                return self.storage.sum_completed(user_id)
            cached = self._balance_cache.get(user_id)
            if cached is None:
                cached = self.storage.sum_completed(user_id)
                self._balance_cache[user_id] = cached
            return cached

    def _invalidate(self, *user_ids: str) -> None:
        for user_id in user_ids:
            self._balance_cache.pop(user_id, None)

    # === Transactions ===

    def record_transaction(
        self,
        user_id: str,
        description: str,
        amount: Amount,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        *,
        kind: TransactionKind = TransactionKind.ADJUSTMENT,
        job_id: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        """Append a transaction. No balance check."""
        txn = self._new_transaction(
            user_id,
            description,
            to_cents(amount),
            status=status,
            kind=kind,
            job_id=job_id,
            reference=reference,
            idempotency_key=idempotency_key,
        )
        with self._user_locks.hold(user_id):
            self.storage.append_transaction(txn)
            if txn.is_completed:
                self._invalidate(user_id)
        log_ledger(user_id, txn.kind, txn.amount, txn.status, job_id=job_id)
        return txn

    def list_transactions(self, user_id: str, limit: int = 100) -> List[Transaction]:
        """A user's transactions, newest first."""
        return self.storage.list_transactions(user_id, limit=limit)

    def get_transaction(self, transaction_id: str) -> Transaction:
        txn = self.storage.get_transaction(transaction_id)
        if not txn:
            raise TransactionNotFound(transaction_id)
        return txn

    def settle_transaction(self, transaction_id: str, status: TransactionStatus) -> Transaction:
        """Move a pending transaction to completed or failed."""
        status = TransactionStatus(status)
        if status == TransactionStatus.PENDING:
            raise ValueError("Transactions can only settle to completed or failed")

        txn = self.get_transaction(transaction_id)
        with self._user_locks.hold(txn.user_id):
            if not self.storage.update_transaction_status(
                transaction_id, TransactionStatus.PENDING, status
            ):
                current = self.get_transaction(transaction_id)
                raise ValueError(
                    f"Transaction {transaction_id} is {current.status}, only pending can settle"
                )
            self._invalidate(txn.user_id)

        logger.info(f"Settled transaction {transaction_id} as {status.value}")
        return self.get_transaction(transaction_id)

    def top_up(
        self,
        user_id: str,
        amount: Amount,
        source_method_id: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        """Credit a user's balance from an external payment method.

        Replaying the same idempotency_key returns the original transaction.
        """
        cents = self._positive_cents(amount)
        with self._user_locks.hold(user_id):
            if idempotency_key:
                existing = self.storage.find_transaction_by_key(user_id, idempotency_key)
                if existing:
                    logger.debug(f"Replayed top-up {idempotency_key} for {user_id}")
                    return existing
            txn = self._new_transaction(
                user_id,
                "Top-up",
                cents,
                kind=TransactionKind.TOP_UP,
                reference=source_method_id,
                idempotency_key=idempotency_key,
            )
            self.storage.append_transaction(txn)
            self._invalidate(user_id)

        log_ledger(user_id, txn.kind, txn.amount, txn.status)
        logger.info(f"Top-up of {txn.amount} for {user_id}")
        return txn

    def withdraw(
        self,
        user_id: str,
        amount: Amount,
        *,
        destination: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        """Debit a user's balance for a payout.

        Raises:
            InsufficientFunds: If the balance is below the amount
        """
        cents = self._positive_cents(amount)
        with self._user_locks.hold(user_id):
            if idempotency_key:
                existing = self.storage.find_transaction_by_key(user_id, idempotency_key)
                if existing:
                    logger.debug(f"Replayed withdrawal {idempotency_key} for {user_id}")
                    return existing
            available = self._balance_cents(user_id)
            if available < cents:
                raise InsufficientFunds(user_id, from_cents(cents), from_cents(available))
            txn = self._new_transaction(
                user_id,
                "Withdrawal",
                -cents,
                kind=TransactionKind.WITHDRAWAL,
                reference=destination,
                idempotency_key=idempotency_key,
            )
            self.storage.append_transaction(txn)
            self._invalidate(user_id)

        log_ledger(user_id, txn.kind, txn.amount, txn.status)
        logger.info(f"Withdrawal of {from_cents(cents)} for {user_id}")
        return txn

    # === Escrow ===

    def get_hold(self, job_id: str) -> Optional[EscrowHold]:
        """Latest hold for a job, or None if it never had one."""
        return self.storage.get_latest_hold(job_id)

    def create_hold(
        self, job_id: str, client_id: str, freelancer_id: str, amount: Amount
    ) -> EscrowHold:
        """Reserve funds from the client's balance for a job.

        Raises:
            DuplicateHold: If the job already has a held hold
            InsufficientFunds: If the client's balance is below the amount
        """
        cents = self._positive_cents(amount)
        with self._user_locks.hold(client_id):
            latest = self.storage.get_latest_hold(job_id)
            if latest and latest.is_active:
                raise DuplicateHold(job_id)

            available = self._balance_cents(client_id)
            if available < cents:
                raise InsufficientFunds(client_id, from_cents(cents), from_cents(available))

            now = utc_now()
            hold = EscrowHold(
                id=str(uuid.uuid4()),
                job_id=job_id,
                client_id=client_id,
                freelancer_id=freelancer_id,
                amount_cents=cents,
                state=HoldState.HELD,
                created_at=now,
            )
            debit = self._new_transaction(
                client_id,
                "Escrow hold",
                -cents,
                kind=TransactionKind.ESCROW_HOLD,
                job_id=job_id,
            )
            if not self.storage.create_hold(hold, debit):
                raise DuplicateHold(job_id)
            self._invalidate(client_id)

        log_hold(job_id, hold.state, hold.amount, actor_id=client_id)
        logger.info(f"Created escrow hold of {hold.amount} for job {job_id}")
        return hold

    def release_hold(self, job_id: str) -> EscrowHold:
        """Pay the held amount to the freelancer, less any platform fee.

        Already released holds are returned unchanged.

        Raises:
            HoldNotFound: If the job never had a hold
            InvalidHoldState: If the hold was refunded
        """
        return self._settle(job_id, HoldState.RELEASED)

    def refund_hold(self, job_id: str) -> EscrowHold:
        """Return the held amount to the client.

        Already refunded holds are returned unchanged.

        Raises:
            HoldNotFound: If the job never had a hold
            InvalidHoldState: If the hold was released
        """
        return self._settle(job_id, HoldState.REFUNDED)

    def _settle(self, job_id: str, target: HoldState) -> EscrowHold:
        requested = "release" if target == HoldState.RELEASED else "refund"
        hold = self.storage.get_latest_hold(job_id)
        if hold is None:
            raise HoldNotFound(job_id)
        if hold.state == target.value:
            logger.debug(f"Hold for job {job_id} already {target.value}")
            return hold
        if not hold.is_active:
            raise InvalidHoldState(job_id, hold.state, requested)

        credits = self._settlement_credits(hold, target)
        users = {c.user_id for c in credits}
        with self._user_locks.hold_all(users):
            if not self.storage.settle_hold(hold.id, target, utc_now(), credits):
                # Lost a race with another settlement; report what won.
                current = self.storage.get_latest_hold(job_id)
                if current is not None and current.state == target.value:
                    return current
                raise InvalidHoldState(job_id, current.state if current else "missing", requested)
            self._invalidate(*users)

        for credit in credits:
            log_ledger(credit.user_id, credit.kind, credit.amount, credit.status, job_id=job_id)
        settled = self.storage.get_latest_hold(job_id)
        log_hold(job_id, target.value, hold.amount)
        logger.info(f"Escrow hold for job {job_id} {target.value}")
        return settled

    def _settlement_credits(self, hold: EscrowHold, target: HoldState) -> List[Transaction]:
        if target == HoldState.REFUNDED:
            return [
                self._new_transaction(
                    hold.client_id,
                    "Escrow refund",
                    hold.amount_cents,
                    kind=TransactionKind.ESCROW_REFUND,
                    job_id=hold.job_id,
                )
            ]

        fee = fee_cents(hold.amount_cents, self.config.platform_fee_rate)
        credits = [
            self._new_transaction(
                hold.freelancer_id,
                "Escrow release",
                hold.amount_cents - fee,
                kind=TransactionKind.ESCROW_RELEASE,
                job_id=hold.job_id,
            )
        ]
        if fee > 0:
            credits.append(
                self._new_transaction(
                    self.config.platform_account_id,
                    "Platform fee",
                    fee,
                    kind=TransactionKind.PLATFORM_FEE,
                    job_id=hold.job_id,
                )
            )
        return credits

    # === Helpers ===

    @staticmethod
    def _positive_cents(amount: Amount) -> int:
        cents = to_cents(amount)
        if cents <= 0:
            raise ValueError("Amount must be positive")
        return cents

    @staticmethod
    def _new_transaction(
        user_id: str,
        description: str,
        amount_cents: int,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        *,
        kind: TransactionKind,
        job_id: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        return Transaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            description=description,
            amount_cents=amount_cents,
            status=status,
            kind=kind,
            job_id=job_id,
            reference=reference,
            idempotency_key=idempotency_key,
            created_at=utc_now(),
        )
