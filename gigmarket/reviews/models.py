"""Review data models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from gigmarket.types import format_datetime

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 5000


@dataclass(frozen=True)
class Review:
    """One party's rating of the other on a completed job.

    Attributes:
        reviewer_id: The client or hired freelancer writing the review
        reviewee_id: The other party on the job
        rating: Whole stars, 1-5
    """

    id: str
    job_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: str
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.job_id:
            raise ValueError("job_id cannot be empty")
        if not self.reviewer_id or not self.reviewee_id:
            raise ValueError("reviewer_id and reviewee_id cannot be empty")
        if self.reviewer_id == self.reviewee_id:
            raise ValueError("Cannot review yourself")
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValueError("Rating must be a whole number")
        if not MIN_RATING <= self.rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        if not self.comment or not self.comment.strip():
            raise ValueError("Comment cannot be empty")
        if len(self.comment) > MAX_COMMENT_LENGTH:
            raise ValueError(f"Comment too long (max {MAX_COMMENT_LENGTH} chars)")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "reviewer_id": self.reviewer_id,
            "reviewee_id": self.reviewee_id,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": format_datetime(self.created_at),
        }


def average_rating(reviews: Iterable[Review]) -> Optional[Decimal]:
    """Mean rating to one decimal place, or None with no reviews."""
    ratings = [r.rating for r in reviews]
    if not ratings:
        return None
    return (Decimal(sum(ratings)) / len(ratings)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
