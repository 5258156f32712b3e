"""
Review service.

Business logic for leaving and reading reviews. Reviews are allowed only
on completed jobs, only by the job's client or hired freelancer, and at
most once per reviewer per job.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from gigmarket.errors import DuplicateReview, Forbidden, JobNotCompleted
from gigmarket.jobs.models import Job, JobStatus
from gigmarket.logging_config import log_review
from gigmarket.reviews.models import Review, average_rating
from gigmarket.reviews.storage import ReviewStorage
from gigmarket.types import utc_now

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for review operations."""

    def __init__(self, storage: ReviewStorage):
        self.storage = storage

    def submit_review(self, job: Job, reviewer_id: str, rating: int, comment: str) -> Review:
        """Review the other party on a completed job.

        Raises:
            Forbidden: If reviewer is neither the client nor the hired freelancer
            JobNotCompleted: If the job is not completed
            DuplicateReview: If reviewer already reviewed this job
            ValueError: If rating or comment is invalid
        """
        if reviewer_id == job.client_id:
            reviewee_id = job.hired_freelancer_id
        elif reviewer_id == job.hired_freelancer_id:
            reviewee_id = job.client_id
        else:
            raise Forbidden("Only the client or the hired freelancer can review this job")
        if job.status != JobStatus.COMPLETED.value:
            raise JobNotCompleted(job.id, job.status)

        review = Review(
            id=str(uuid.uuid4()),
            job_id=job.id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment.strip() if comment else comment,
            created_at=utc_now(),
        )
        if not self.storage.add_review(review):
            raise DuplicateReview(job.id, reviewer_id)

        log_review(job.id, reviewee_id, rating, actor_id=reviewer_id)
        logger.info(f"{reviewer_id} rated {reviewee_id} {rating}/5 on job {job.id}")
        return review

    def list_reviews_for_job(self, job_id: str) -> List[Review]:
        return self.storage.list_reviews_for_job(job_id)

    def list_reviews_for_user(self, user_id: str, limit: int = 100) -> List[Review]:
        """Reviews a user has received, newest first."""
        return self.storage.list_reviews_for_user(user_id, limit=limit)

    def average_rating(self, user_id: str) -> Optional[Decimal]:
        return average_rating(self.storage.list_reviews_for_user(user_id, limit=None))
