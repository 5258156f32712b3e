"""Matching routes.

Ranking and recommendations are advisory: when no provider is configured
or it fails, these endpoints return an empty list rather than an error.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from gigmarket.errors import Forbidden
from gigmarket.types import Role

from ..auth import CurrentUser
from ..dependencies import Market, run_sync
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("routes.matching")
router = APIRouter(prefix="/jobs", tags=["matching"])


class RankedProposalResponse(BaseModel):
    proposal_id: str
    rank: float
    reason: str = ""


class RecommendationResponse(BaseModel):
    job_id: str
    rank: float
    reason: str = ""


@router.get("/recommended", response_model=list[RecommendationResponse])
@limiter.limit("10/minute")
async def recommended_jobs(request: Request, user: CurrentUser, market: Market):
    """Open jobs suited to the calling freelancer, best first."""
    if user.role != Role.FREELANCER:
        raise Forbidden("Only freelancers get job recommendations")
    recommendations = await market.matching.recommend_jobs(user.id)
    logger.info(f"{len(recommendations)} recommendation(s) for {user.id}")
    return [RecommendationResponse(**r.to_dict()) for r in recommendations]


@router.get("/{job_id}/ranked-proposals", response_model=list[RankedProposalResponse])
@limiter.limit("10/minute")
async def ranked_proposals(request: Request, job_id: str, user: CurrentUser, market: Market):
    """The job's proposals ranked best first. Job client or admin only."""
    await run_sync(market.lifecycle.ensure_job_client, job_id, user)
    ranked = await market.matching.rank_proposals(job_id)
    logger.info(f"Ranked {len(ranked)} proposal(s) for job {job_id}")
    return [RankedProposalResponse(**r.to_dict()) for r in ranked]
