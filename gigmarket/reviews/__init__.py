"""Reviews subsystem for gigmarket.

After a job completes, the client and the hired freelancer may each leave
one review of the other.
"""

from gigmarket.reviews.models import Review, average_rating
from gigmarket.reviews.service import ReviewService
from gigmarket.reviews.storage import InMemoryReviewStorage, ReviewStorage

__all__ = [
    "Review",
    "average_rating",
    "ReviewStorage",
    "InMemoryReviewStorage",
    "ReviewService",
]
