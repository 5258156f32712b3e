"""
Matching gateway.

Wraps an opaque ranking provider so its failures never reach callers:
errors, timeouts, malformed output and empty output all become an empty
list. The gateway reads jobs and proposals but writes nothing and holds no
entity lock while the provider runs.
"""

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from gigmarket.config import MarketConfig
from gigmarket.jobs.service import JobService
from gigmarket.proposals.service import ProposalService
from gigmarket.protocols import (
    JobSummary,
    ProfileTextProvider,
    ProviderRanking,
    RankingCandidate,
    RankingProvider,
    RecommendationProvider,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCandidate:
    """A proposal with its provider-assigned rank."""

    proposal_id: str
    rank: float
    reason: str = ""

    def to_dict(self) -> dict:
        return {"proposal_id": self.proposal_id, "rank": self.rank, "reason": self.reason}


@dataclass(frozen=True)
class JobRecommendation:
    """An open job recommended to a freelancer (rank on a 1-10 scale)."""

    job_id: str
    rank: float
    reason: str = ""

    def to_dict(self) -> dict:
        return {"job_id": self.job_id, "rank": self.rank, "reason": self.reason}


class MalformedRanking(ValueError):
    """Provider output could not be read as a list of rankings."""

    pass


def _coerce_entry(entry: Any) -> ProviderRanking:
    if isinstance(entry, ProviderRanking):
        candidate_id, rank, reason = entry.candidate_id, entry.rank, entry.reason
    elif isinstance(entry, dict):
        candidate_id = entry.get("candidate_id", entry.get("id"))
        rank = entry.get("rank")
        reason = entry.get("reason", "")
    else:
        raise MalformedRanking(f"Unexpected ranking entry: {entry!r}")

    if not isinstance(candidate_id, str) or not candidate_id:
        raise MalformedRanking(f"Ranking entry has no candidate id: {entry!r}")
    if isinstance(rank, bool) or not isinstance(rank, (int, float)):
        raise MalformedRanking(f"Ranking entry has non-numeric rank: {entry!r}")
    if not math.isfinite(rank):
        raise MalformedRanking(f"Ranking entry has non-finite rank: {entry!r}")
    return ProviderRanking(candidate_id=candidate_id, rank=float(rank), reason=str(reason or ""))


def normalize_rankings(raw: Any, known_ids: List[str]) -> List[ProviderRanking]:
    """Validate provider output against the ids that were sent.

    Unknown ids are dropped and repeated ids keep their first entry. The
    result is sorted by rank descending; equal ranks keep the order of
    known_ids.

    Raises:
        MalformedRanking: If the output is not a list of readable entries
    """
    if not isinstance(raw, (list, tuple)):
        raise MalformedRanking(f"Expected a list of rankings, got {type(raw).__name__}")

    position = {cid: i for i, cid in enumerate(known_ids)}
    seen: set[str] = set()
    rankings: List[ProviderRanking] = []
    for entry in raw:
        ranking = _coerce_entry(entry)
        if ranking.candidate_id not in position:
            logger.debug(f"Dropping ranking for unknown id {ranking.candidate_id}")
            continue
        if ranking.candidate_id in seen:
            continue
        seen.add(ranking.candidate_id)
        rankings.append(ranking)

    rankings.sort(key=lambda r: (-r.rank, position[r.candidate_id]))
    return rankings


class MatchingGateway:
    """AI ranking of proposals and job recommendations, failure-absorbing."""

    def __init__(
        self,
        jobs: JobService,
        proposals: ProposalService,
        profiles: ProfileTextProvider,
        ranking_provider: Optional[RankingProvider] = None,
        recommendation_provider: Optional[RecommendationProvider] = None,
        config: Optional[MarketConfig] = None,
    ):
        self.jobs = jobs
        self.proposals = proposals
        self.profiles = profiles
        self.ranking_provider = ranking_provider
        self.recommendation_provider = recommendation_provider
        self.config = config or MarketConfig()

    async def rank_proposals(self, job_id: str) -> List[RankedCandidate]:
        """Rank a job's proposals, best first.

        Returns [] when there are no proposals, no provider, or the provider
        fails in any way.

        Raises:
            JobNotFound: If job doesn't exist
        """
        job = await asyncio.to_thread(self.jobs.get_job, job_id)
        proposals = await asyncio.to_thread(self.proposals.list_proposals, job_id)
        if not proposals or self.ranking_provider is None:
            return []

        proposals = proposals[: self.config.max_proposals_ranked]
        candidates = await asyncio.to_thread(self._build_candidates, proposals)

        raw = await self._call_provider(
            self.ranking_provider.rank, job.description, candidates, purpose=f"rank job {job_id}"
        )
        if raw is None:
            return []

        try:
            rankings = normalize_rankings(raw, [p.id for p in proposals])
        except MalformedRanking as e:
            logger.warning(f"Discarding malformed ranking for job {job_id}: {e}")
            return []

        return [RankedCandidate(r.candidate_id, r.rank, r.reason) for r in rankings]

    async def recommend_jobs(self, freelancer_id: str) -> List[JobRecommendation]:
        """Recommend open jobs to a freelancer, best first.

        Only jobs ranked at least recommendation_min_rank are kept. The
        freelancer's own jobs are never recommended. Same failure policy
        as rank_proposals.
        """
        if self.recommendation_provider is None:
            return []

        open_jobs = await asyncio.to_thread(self.jobs.list_open_jobs)
        open_jobs = [j for j in open_jobs if j.client_id != freelancer_id]
        if not open_jobs:
            return []

        profile = await asyncio.to_thread(self._profile_text, freelancer_id)
        summaries = [JobSummary(job_id=j.id, title=j.title, description=j.description) for j in open_jobs]

        raw = await self._call_provider(
            self.recommendation_provider.recommend,
            profile,
            summaries,
            purpose=f"recommend jobs for {freelancer_id}",
        )
        if raw is None:
            return []

        try:
            rankings = normalize_rankings(raw, [j.id for j in open_jobs])
        except MalformedRanking as e:
            logger.warning(f"Discarding malformed recommendations for {freelancer_id}: {e}")
            return []

        return [
            JobRecommendation(r.candidate_id, r.rank, r.reason)
            for r in rankings
            if r.rank >= self.config.recommendation_min_rank
        ]

    # === Internals ===

    def _profile_text(self, freelancer_id: str) -> str:
        try:
            return self.profiles.get_freelancer_profile_text(freelancer_id) or ""
        except Exception:
            logger.warning(f"Profile text unavailable for {freelancer_id}", exc_info=True)
            return ""

    def _build_candidates(self, proposals) -> List[RankingCandidate]:
        return [
            RankingCandidate(
                candidate_id=p.id,
                profile=self._profile_text(p.freelancer_id),
                proposal=p.cover_letter,
            )
            for p in proposals
        ]

    async def _call_provider(self, fn: Callable, *args, purpose: str) -> Any:
        """Run a sync or async provider call under the ranking timeout.

        Returns None on any provider failure. Cancellation of the caller
        propagates.
        """

        async def _invoke():
            if inspect.iscoroutinefunction(fn):
                return await fn(*args)
            result = await asyncio.to_thread(fn, *args)
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            return await asyncio.wait_for(_invoke(), timeout=self.config.ranking_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Provider timed out after {self.config.ranking_timeout_seconds}s ({purpose})"
            )
            return None
        except Exception:
            logger.warning(f"Provider failed ({purpose})", exc_info=True)
            return None
