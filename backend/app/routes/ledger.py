"""Ledger routes: balances, transaction history, top-ups, withdrawals and escrow holds.

Balances are derived from completed transactions; nothing here writes a
balance directly.
"""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from gigmarket import Marketplace, UserRef
from gigmarket.errors import Forbidden, HoldNotFound
from gigmarket.ledger.models import EscrowHold

from ..auth import CurrentUser
from ..dependencies import Market, run_sync
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("routes.ledger")
router = APIRouter(prefix="/ledger", tags=["ledger"])


class BalanceResponse(BaseModel):
    user_id: str
    balance: Decimal
    currency: str


class TransactionResponse(BaseModel):
    id: str
    user_id: str
    description: str
    amount: Decimal
    status: str
    kind: str
    job_id: str | None = None
    reference: str | None = None
    idempotency_key: str | None = None
    created_at: datetime


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    source_method_id: str = Field(..., min_length=1, max_length=200)
    idempotency_key: str | None = Field(None, min_length=1, max_length=200)


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    destination: str | None = Field(None, max_length=200)
    idempotency_key: str | None = Field(None, min_length=1, max_length=200)


class HoldResponse(BaseModel):
    id: str
    job_id: str
    client_id: str
    freelancer_id: str
    amount: Decimal
    state: str
    created_at: datetime
    settled_at: datetime | None = None


def _resolve_user(user: UserRef, user_id: str | None) -> str:
    """Only admins may look at someone else's ledger."""
    if user_id is None or user_id == user.id:
        return user.id
    if not user.is_admin:
        raise Forbidden("Cannot view another user's ledger")
    return user_id


def _hold_for_party(market: Marketplace, job_id: str, user: UserRef) -> EscrowHold:
    job = market.jobs.get_job(job_id)
    if not user.is_admin and user.id not in (job.client_id, job.hired_freelancer_id):
        raise Forbidden("Only the job's parties can view its escrow")
    hold = market.ledger.get_hold(job_id)
    if hold is None:
        raise HoldNotFound(job_id)
    return hold


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user: CurrentUser,
    market: Market,
    user_id: str | None = Query(None, description="Admins only: another user's id"),
):
    target = _resolve_user(user, user_id)
    balance = await run_sync(market.ledger.get_balance, target)
    return BalanceResponse(user_id=target, balance=balance, currency=market.config.currency)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    user: CurrentUser,
    market: Market,
    limit: int = Query(100, ge=1, le=500),
    user_id: str | None = Query(None, description="Admins only: another user's id"),
):
    """Transactions, newest first."""
    target = _resolve_user(user, user_id)
    txns = await run_sync(market.ledger.list_transactions, target, limit)
    return [TransactionResponse(**t.to_dict()) for t in txns]


@router.post("/top-up", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def top_up(request: Request, body: TopUpRequest, user: CurrentUser, market: Market):
    """Add funds from an external payment method. Replays by idempotency_key."""
    txn = await run_sync(
        market.ledger.top_up,
        user.id,
        body.amount,
        body.source_method_id,
        idempotency_key=body.idempotency_key,
    )
    logger.info(f"Top-up {txn.id} of {txn.amount} for {user.id}")
    return TransactionResponse(**txn.to_dict())


@router.post("/withdraw", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def withdraw(request: Request, body: WithdrawRequest, user: CurrentUser, market: Market):
    txn = await run_sync(
        market.ledger.withdraw,
        user.id,
        body.amount,
        destination=body.destination,
        idempotency_key=body.idempotency_key,
    )
    logger.info(f"Withdrawal {txn.id} of {txn.amount} for {user.id}")
    return TransactionResponse(**txn.to_dict())


@router.get("/holds/{job_id}", response_model=HoldResponse)
async def get_hold(job_id: str, user: CurrentUser, market: Market):
    """Latest escrow hold for a job. Job parties and admins only."""
    hold = await run_sync(_hold_for_party, market, job_id, user)
    return HoldResponse(**hold.to_dict())


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: str, user: CurrentUser, market: Market):
    txn = await run_sync(market.ledger.get_transaction, transaction_id)
    if txn.user_id != user.id and not user.is_admin:
        # Same answer as a missing transaction
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return TransactionResponse(**txn.to_dict())
