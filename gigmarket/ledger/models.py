"""
Ledger data models.

Transactions are append-only rows of signed integer cents. A user's balance
is never stored: it is the sum of their completed transactions. Escrow
holds track funds reserved against a job until they are released to the
freelancer or refunded to the client.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from gigmarket.money import from_cents
from gigmarket.types import format_datetime, parse_datetime


class TransactionStatus(str, Enum):
    """Transaction status. Only pending may change, once."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionKind(str, Enum):
    """What a ledger row represents."""

    TOP_UP = "top_up"
    WITHDRAWAL = "withdrawal"
    ESCROW_HOLD = "escrow_hold"
    ESCROW_RELEASE = "escrow_release"
    ESCROW_REFUND = "escrow_refund"
    PLATFORM_FEE = "platform_fee"
    ADJUSTMENT = "adjustment"


class HoldState(str, Enum):
    """Escrow hold state. held -> released | refunded, both terminal."""

    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


VALID_TRANSACTION_STATUSES = frozenset(s.value for s in TransactionStatus)
VALID_TRANSACTION_KINDS = frozenset(k.value for k in TransactionKind)
VALID_HOLD_STATES = frozenset(s.value for s in HoldState)


def _enum_value(value: Any, valid: frozenset, label: str) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value not in valid:
        raise ValueError(f"Invalid {label}: {value}")
    return value


@dataclass
class Transaction:
    """A single ledger row.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Owner of the balance this row affects
        description: Human-readable label ("Escrow hold", "Top-up", ...)
        amount_cents: Signed amount; credits positive, debits negative
        status: pending, completed or failed
        kind: TransactionKind value
        job_id: Related job for escrow rows
        reference: External reference (payment method, payout destination)
        idempotency_key: Caller-supplied key for retry-safe top-ups/withdrawals
        created_at: When the row was appended
    """

    id: str
    user_id: str
    description: str
    amount_cents: int
    status: str = TransactionStatus.COMPLETED.value
    kind: str = TransactionKind.ADJUSTMENT.value
    job_id: Optional[str] = None
    reference: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int):
            raise ValueError("amount_cents must be an integer")
        self.status = _enum_value(self.status, VALID_TRANSACTION_STATUSES, "status")
        self.kind = _enum_value(self.kind, VALID_TRANSACTION_KINDS, "kind")

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "description": self.description,
            "amount": str(self.amount),
            "status": self.status,
            "kind": self.kind,
            "job_id": self.job_id,
            "reference": self.reference,
            "idempotency_key": self.idempotency_key,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        if "amount_cents" in data:
            cents = int(data["amount_cents"])
        else:
            cents = int(Decimal(str(data["amount"])) * 100)
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            description=data.get("description", ""),
            amount_cents=cents,
            status=data.get("status", TransactionStatus.COMPLETED.value),
            kind=data.get("kind", TransactionKind.ADJUSTMENT.value),
            job_id=data.get("job_id"),
            reference=data.get("reference"),
            idempotency_key=data.get("idempotency_key"),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass
class EscrowHold:
    """Funds reserved from a client's balance for one job."""

    id: str
    job_id: str
    client_id: str
    freelancer_id: str
    amount_cents: int
    state: str = HoldState.HELD.value
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount_cents <= 0:
            raise ValueError("Hold amount must be positive")
        if self.client_id == self.freelancer_id:
            raise ValueError("Hold client and freelancer must differ")
        self.state = _enum_value(self.state, VALID_HOLD_STATES, "hold state")

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def is_active(self) -> bool:
        return self.state == HoldState.HELD.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "client_id": self.client_id,
            "freelancer_id": self.freelancer_id,
            "amount": str(self.amount),
            "state": self.state,
            "created_at": format_datetime(self.created_at),
            "settled_at": format_datetime(self.settled_at),
        }
