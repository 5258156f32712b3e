"""Review routes: the parties to a completed job rate each other."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field

from gigmarket import Marketplace

from ..auth import CurrentUser
from ..dependencies import Market, run_sync
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("routes.reviews")
router = APIRouter(tags=["reviews"])


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=5000)


class ReviewResponse(BaseModel):
    id: str
    job_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: str
    created_at: datetime


class UserReviewsResponse(BaseModel):
    user_id: str
    average_rating: Optional[Decimal]
    reviews: list[ReviewResponse]


def _user_reviews(market: Marketplace, user_id: str, limit: int) -> UserReviewsResponse:
    return UserReviewsResponse(
        user_id=user_id,
        average_rating=market.reviews.average_rating(user_id),
        reviews=[
            ReviewResponse(**r.to_dict())
            for r in market.reviews.list_reviews_for_user(user_id, limit=limit)
        ],
    )


@router.post(
    "/jobs/{job_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit("30/minute")
async def submit_review(
    request: Request, job_id: str, body: ReviewCreate, user: CurrentUser, market: Market
):
    """Review the other party on a completed job. One review per party."""
    review = await run_sync(market.lifecycle.review, job_id, user, body.rating, body.comment)
    logger.info(f"Review {review.id} on job {job_id} from {user.id}")
    return ReviewResponse(**review.to_dict())


@router.get("/jobs/{job_id}/reviews", response_model=list[ReviewResponse])
async def list_job_reviews(job_id: str, user: CurrentUser, market: Market):
    reviews = await run_sync(market.lifecycle.list_reviews, job_id)
    return [ReviewResponse(**r.to_dict()) for r in reviews]


@router.get("/users/{user_id}/reviews", response_model=UserReviewsResponse)
async def list_user_reviews(
    user_id: str,
    user: CurrentUser,
    market: Market,
    limit: int = Query(50, ge=1, le=200),
):
    """Reviews a user has received, newest first, with their average rating."""
    return await run_sync(_user_reviews, market, user_id, limit)
