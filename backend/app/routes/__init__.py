"""API routes."""

from .jobs import router as jobs_router
from .ledger import router as ledger_router
from .matching import router as matching_router
from .proposals import router as proposals_router
from .reviews import router as reviews_router

__all__ = [
    "jobs_router",
    "proposals_router",
    "matching_router",
    "ledger_router",
    "reviews_router",
]
