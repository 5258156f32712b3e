"""Proposal routes: freelancers bid on open jobs, clients read the bids."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from gigmarket import Marketplace, UserRef
from gigmarket.proposals.models import Proposal

from ..auth import CurrentUser
from ..dependencies import Market, run_sync
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("routes.proposals")
router = APIRouter(prefix="/jobs/{job_id}/proposals", tags=["proposals"])


class ProposalCreate(BaseModel):
    """Request to submit or update a proposal."""

    cover_letter: str = Field(..., min_length=1, max_length=10000)
    proposed_rate: Decimal = Field(..., gt=0, decimal_places=2)


class ProposalResponse(BaseModel):
    id: str
    job_id: str
    freelancer_id: str
    cover_letter: str
    proposed_rate: Decimal
    sequence: int
    status: Literal["pending", "accepted", "rejected"]
    created_at: datetime
    updated_at: datetime


def _response(market: Marketplace, proposal: Proposal) -> ProposalResponse:
    return ProposalResponse(
        **proposal.to_dict(),
        status=market.proposals.proposal_status(proposal).value,
    )


def _visible_proposals(market: Marketplace, job_id: str, user: UserRef) -> list[ProposalResponse]:
    return [_response(market, p) for p in market.lifecycle.list_proposals(job_id, user)]


@router.post("", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def submit_proposal(
    request: Request, job_id: str, body: ProposalCreate, user: CurrentUser, market: Market
):
    """Submit a proposal, or replace the caller's earlier one on the same job."""
    proposal = await run_sync(
        market.lifecycle.submit_proposal, job_id, user, body.cover_letter, body.proposed_rate
    )
    logger.info(f"Proposal {proposal.id} on job {job_id} from {user.id}")
    return await run_sync(_response, market, proposal)


@router.get("", response_model=list[ProposalResponse])
async def list_proposals(job_id: str, user: CurrentUser, market: Market):
    """Proposals in submission order.

    The job's client and admins see all of them; anyone else sees only
    their own.
    """
    return await run_sync(_visible_proposals, market, job_id, user)
