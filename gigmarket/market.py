"""
Marketplace composition root.

Builds the stores, services, orchestrator and matching gateway for one
process. Nothing here is a module-level singleton: the API builds one
Marketplace at startup and tests build their own.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from gigmarket.assist import TextAssistant
from gigmarket.config import MarketConfig
from gigmarket.jobs.service import JobService
from gigmarket.jobs.storage import InMemoryJobStorage, JobStorage
from gigmarket.ledger.service import LedgerService
from gigmarket.ledger.storage import InMemoryLedgerStorage, LedgerStorage
from gigmarket.lifecycle.events import EventBus
from gigmarket.lifecycle.orchestrator import JobLifecycle
from gigmarket.locks import KeyedLock
from gigmarket.matching.gateway import MatchingGateway
from gigmarket.matching.providers import ModelRankingProvider
from gigmarket.proposals.service import ProposalService
from gigmarket.proposals.storage import InMemoryProposalStorage, ProposalStorage
from gigmarket.reviews.service import ReviewService
from gigmarket.reviews.storage import InMemoryReviewStorage, ReviewStorage
from gigmarket.protocols import (
    ModelProtocol,
    ProfileTextProvider,
    RankingProvider,
    RecommendationProvider,
    StaticProfileTextProvider,
)

logger = logging.getLogger(__name__)


class Marketplace:
    """Everything the marketplace needs, wired once.

    Attributes:
        ledger: LedgerService
        jobs: JobService
        proposals: ProposalService
        reviews: ReviewService
        lifecycle: JobLifecycle (the write path for jobs)
        matching: MatchingGateway
        assistant: TextAssistant
        events: EventBus shared by the lifecycle
    """

    def __init__(
        self,
        *,
        job_storage: Optional[JobStorage] = None,
        proposal_storage: Optional[ProposalStorage] = None,
        ledger_storage: Optional[LedgerStorage] = None,
        review_storage: Optional[ReviewStorage] = None,
        config: Optional[MarketConfig] = None,
        profiles: Optional[ProfileTextProvider] = None,
        ranking_provider: Optional[RankingProvider] = None,
        recommendation_provider: Optional[RecommendationProvider] = None,
        model: Optional[ModelProtocol] = None,
        events: Optional[EventBus] = None,
    ):
        self.config = config or MarketConfig()
        self.events = events or EventBus()
        self.profiles = profiles or StaticProfileTextProvider()

        # A model fills in whichever providers were not given explicitly
        if model is not None:
            model_provider = ModelRankingProvider(model)
            ranking_provider = ranking_provider or model_provider
            recommendation_provider = recommendation_provider or model_provider

        self.ledger = LedgerService(
            ledger_storage or InMemoryLedgerStorage(), self.config, user_locks=KeyedLock()
        )
        self.jobs = JobService(job_storage or InMemoryJobStorage())
        self.proposals = ProposalService(proposal_storage or InMemoryProposalStorage(), self.jobs)
        self.reviews = ReviewService(review_storage or InMemoryReviewStorage())
        self.lifecycle = JobLifecycle(
            self.jobs,
            self.proposals,
            self.ledger,
            events=self.events,
            config=self.config,
            job_locks=KeyedLock(),
            reviews=self.reviews,
        )
        self.matching = MatchingGateway(
            self.jobs,
            self.proposals,
            self.profiles,
            ranking_provider=ranking_provider,
            recommendation_provider=recommendation_provider,
            config=self.config,
        )
        self.assistant = TextAssistant(model)

    @classmethod
    def in_memory(cls, **kwargs) -> "Marketplace":
        """All in-memory stores; for tests and local experiments."""
        return cls(**kwargs)

    @classmethod
    def sqlite(cls, db_path: Optional[Union[str, Path]] = None, **kwargs) -> "Marketplace":
        """All stores backed by one SQLite database file."""
        from gigmarket.storage.sqlite import SQLiteMarketStorage

        storage = SQLiteMarketStorage(db_path)
        logger.info(f"Using SQLite market storage at {storage.db_path}")
        return cls(
            job_storage=storage,
            proposal_storage=storage,
            ledger_storage=storage,
            review_storage=storage,
            **kwargs,
        )
