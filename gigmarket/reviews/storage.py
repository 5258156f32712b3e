"""Review storage layer."""

import logging
import threading
from typing import List, Optional, Protocol

from gigmarket.reviews.models import Review

logger = logging.getLogger(__name__)


class ReviewStorage(Protocol):
    """Protocol for review persistence backends."""

    def add_review(self, review: Review) -> bool:
        """Save a review. False (writing nothing) if the reviewer already
        reviewed the job."""
        ...

    def list_reviews_for_job(self, job_id: str) -> List[Review]:
        """Reviews on a job, oldest first."""
        ...

    def list_reviews_for_user(self, reviewee_id: str, limit: Optional[int] = 100) -> List[Review]:
        """Reviews received by a user, newest first. A limit of None returns all."""
        ...


class InMemoryReviewStorage:
    """In-memory review storage for testing and local development."""

    def __init__(self):
        self._lock = threading.Lock()
        self._reviews: dict[tuple[str, str], Review] = {}  # (job_id, reviewer_id)

    def add_review(self, review: Review) -> bool:
        key = (review.job_id, review.reviewer_id)
        with self._lock:
            if key in self._reviews:
                return False
            self._reviews[key] = review
        return True

    def list_reviews_for_job(self, job_id: str) -> List[Review]:
        with self._lock:
            reviews = [r for r in self._reviews.values() if r.job_id == job_id]
        return reviews

    def list_reviews_for_user(self, reviewee_id: str, limit: Optional[int] = 100) -> List[Review]:
        with self._lock:
            reviews = [r for r in self._reviews.values() if r.reviewee_id == reviewee_id]
        return reviews[::-1][:limit]
