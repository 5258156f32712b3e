"""Jobs routes.

Posting, hiring, work hand-in, approval, cancellation and disputes. Every
write goes through the job lifecycle, which enforces roles and the status
machine.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field

from gigmarket.jobs.models import Job
from gigmarket.types import Role

from ..auth import CurrentUser
from ..dependencies import Market, run_sync
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("routes.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatusValue = Literal[
    "open", "hired", "in_progress", "submitted", "completed", "disputed", "cancelled"
]


class JobCreate(BaseModel):
    """Request to post a job."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = ""
    budget: Decimal = Field(..., gt=0, decimal_places=2)
    deadline: datetime


class DeliverableModel(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    content_type: str | None = None
    size: int | None = Field(None, ge=0)


class JobResponse(BaseModel):
    """Job details response."""

    id: str
    client_id: str
    title: str
    description: str
    category: str
    budget: Decimal
    deadline: datetime
    status: JobStatusValue
    hired_freelancer_id: str | None = None
    deliverables: list[DeliverableModel] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    hired_at: datetime | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    disputed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(**job.to_dict())


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class TransitionResponse(BaseModel):
    id: str
    job_id: str
    from_status: str | None = None
    to_status: str
    actor_id: str | None = None
    reason: str | None = None
    created_at: datetime


class HireRequest(BaseModel):
    freelancer_id: str = Field(..., min_length=1)


class SubmitWorkRequest(BaseModel):
    deliverables: list[DeliverableModel] = Field(..., min_length=1)


class ReasonRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    resolution: Literal["freelancer", "client"]


def _reason(body: ReasonRequest | None) -> str | None:
    return body.reason if body else None


# =============================================================================
# Posting and reads
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_job(request: Request, body: JobCreate, user: CurrentUser, market: Market):
    """Post a new open job. Clients only."""
    job = await run_sync(
        market.lifecycle.create_job,
        user,
        body.title,
        body.description,
        body.category,
        body.budget,
        body.deadline,
    )
    logger.info(f"Job {job.id} posted by {user.id}")
    return JobResponse.from_job(job)


@router.get("", response_model=JobListResponse)
async def list_open_jobs(
    user: CurrentUser,
    market: Market,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Open jobs, newest first."""
    jobs = await run_sync(market.jobs.list_open_jobs, limit, offset)
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in jobs], total=len(jobs))


@router.get("/mine", response_model=JobListResponse)
async def list_my_jobs(user: CurrentUser, market: Market):
    """Jobs the caller posted (clients) or was hired for (freelancers)."""
    if user.role == Role.FREELANCER:
        jobs = await run_sync(market.jobs.list_jobs_for_freelancer, user.id)
    else:
        jobs = await run_sync(market.lifecycle.list_jobs_for_client, user.id)
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, user: CurrentUser, market: Market):
    job = await run_sync(market.lifecycle.get_job, job_id)
    return JobResponse.from_job(job)


@router.get("/{job_id}/history", response_model=list[TransitionResponse])
async def get_job_history(job_id: str, user: CurrentUser, market: Market):
    """Status transitions in the order they happened."""
    history = await run_sync(market.lifecycle.get_job_history, job_id)
    return [TransitionResponse(**t.to_dict()) for t in history]


# =============================================================================
# Lifecycle actions
# =============================================================================


@router.post("/{job_id}/hire", response_model=JobResponse)
@limiter.limit("30/minute")
async def hire(request: Request, job_id: str, body: HireRequest, user: CurrentUser, market: Market):
    """Hire a freelancer who proposed. Funds the escrow hold from the client's balance."""
    job = await run_sync(market.lifecycle.hire, job_id, user, body.freelancer_id)
    logger.info(f"Job {job_id} hired {body.freelancer_id}")
    return JobResponse.from_job(job)


@router.post("/{job_id}/start", response_model=JobResponse)
async def start_work(job_id: str, user: CurrentUser, market: Market):
    job = await run_sync(market.lifecycle.start_work, job_id, user)
    return JobResponse.from_job(job)


@router.post("/{job_id}/submit", response_model=JobResponse)
@limiter.limit("30/minute")
async def submit_work(
    request: Request, job_id: str, body: SubmitWorkRequest, user: CurrentUser, market: Market
):
    """Hand in deliverables. Hired freelancer only."""
    job = await run_sync(
        market.lifecycle.submit_deliverable,
        job_id,
        user,
        [d.model_dump() for d in body.deliverables],
    )
    logger.info(f"Job {job_id} submitted with {len(body.deliverables)} deliverable(s)")
    return JobResponse.from_job(job)


@router.post("/{job_id}/approve", response_model=JobResponse)
async def approve(job_id: str, user: CurrentUser, market: Market):
    """Accept the submission and release the escrow to the freelancer."""
    job = await run_sync(market.lifecycle.approve, job_id, user)
    logger.info(f"Job {job_id} approved by {user.id}")
    return JobResponse.from_job(job)


@router.post("/{job_id}/reject", response_model=JobResponse)
async def reject_submission(
    job_id: str, user: CurrentUser, market: Market, body: ReasonRequest | None = None
):
    job = await run_sync(market.lifecycle.reject_submission, job_id, user, _reason(body))
    return JobResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel(
    job_id: str, user: CurrentUser, market: Market, body: ReasonRequest | None = None
):
    job = await run_sync(market.lifecycle.cancel, job_id, user, _reason(body))
    logger.info(f"Job {job_id} cancelled by {user.id}")
    return JobResponse.from_job(job)


@router.post("/{job_id}/dispute", response_model=JobResponse)
async def dispute(
    job_id: str, user: CurrentUser, market: Market, body: ReasonRequest | None = None
):
    job = await run_sync(market.lifecycle.dispute, job_id, user, _reason(body))
    logger.info(f"Job {job_id} disputed by {user.id}")
    return JobResponse.from_job(job)


@router.post("/{job_id}/resolve", response_model=JobResponse)
async def resolve_dispute(
    job_id: str, body: ResolveDisputeRequest, user: CurrentUser, market: Market
):
    """Settle a dispute for one side. Admins only."""
    job = await run_sync(market.lifecycle.resolve_dispute, job_id, user, body.resolution)
    logger.info(f"Dispute on job {job_id} resolved for {body.resolution}")
    return JobResponse.from_job(job)
