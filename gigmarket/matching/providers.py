"""
Model-backed ranking providers.

ModelRankingProvider turns any ModelProtocol into a RankingProvider and a
RecommendationProvider: it prompts for a JSON array and parses the reply.
Parsing is strict; anything unreadable raises ValueError, which the
matching gateway turns into an empty result.
"""

import json
import logging
import re
from typing import Any, List, Optional

from gigmarket.protocols import (
    JobSummary,
    ModelMessage,
    ModelProtocol,
    ProviderRanking,
    RankingCandidate,
)

logger = logging.getLogger(__name__)

_RANKING_SYSTEM_PROMPT = (
    "You are an expert in matching freelancers to jobs.\n\n"
    "Given a job description and a list of freelancers, each with a profile and "
    "a proposal, rank the freelancers by how well they fit the job requirements. "
    "Higher rank means a better match. Give a short reason for each rank.\n\n"
    "Return ONLY a JSON array (no markdown, no explanation):\n"
    '[{"id": "<freelancer id as given>", "rank": <number>, "reason": "<1 sentence>"}]'
)

_RECOMMEND_SYSTEM_PROMPT = (
    "You are an expert career advisor for freelancers.\n\n"
    "Given a freelancer profile and a list of available jobs, rate each job "
    "from 1 to 10 for how good a match it is (10 is a perfect match) and give "
    "a concise reason.\n\n"
    "Return ONLY a JSON array (no markdown, no explanation):\n"
    '[{"id": "<job id as given>", "rank": <integer 1-10>, "reason": "<1 sentence>"}]'
)


def _build_ranking_prompt(job_description: str, candidates: List[RankingCandidate]) -> str:
    lines = ["JOB DESCRIPTION", job_description.strip(), "", "FREELANCERS"]
    for c in candidates:
        lines.append(f"- ID: {c.candidate_id}")
        lines.append(f"  Profile: {c.profile or 'not provided'}")
        lines.append(f"  Proposal: {c.proposal}")
    return "\n".join(lines)


def _build_recommend_prompt(freelancer_profile: str, jobs: List[JobSummary]) -> str:
    lines = ["FREELANCER PROFILE", freelancer_profile or "not provided", "", "AVAILABLE JOBS"]
    for j in jobs:
        lines.append(f"- ID: {j.job_id}")
        lines.append(f"  Title: {j.title}")
        lines.append(f"  Description: {j.description}")
    return "\n".join(lines)


def parse_rankings(raw_text: str) -> List[ProviderRanking]:
    """Parse a model's JSON reply into rankings.

    Handles markdown-wrapped JSON.
    Raises ValueError on malformed response.
    """
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse ranking response as JSON: {e}") from e

    if isinstance(data, dict):
        # Some models wrap the array: {"rankings": [...]}
        data = next((v for v in data.values() if isinstance(v, list)), None)
    if not isinstance(data, list):
        raise ValueError("Ranking response is not a JSON array")

    rankings = []
    for item in data:
        if not isinstance(item, dict) or "id" not in item or "rank" not in item:
            raise ValueError(f"Ranking entry missing 'id' or 'rank': {item!r}")
        try:
            rank = float(item["rank"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Ranking entry has non-numeric rank: {item!r}") from e
        rankings.append(
            ProviderRanking(
                candidate_id=str(item["id"]),
                rank=rank,
                reason=str(item.get("reason", "")),
            )
        )
    return rankings


class ModelRankingProvider:
    """Ranking and recommendation provider backed by a text model."""

    def __init__(
        self,
        model: ModelProtocol,
        *,
        temperature: Optional[float] = 0.0,
        max_tokens: Optional[int] = 2048,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _complete(self, prompt: str, system: str) -> str:
        response = self.model.generate(
            [ModelMessage(role="user", content=prompt)],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            system=system,
        )
        return response.content

    def rank(self, job_description: str, candidates: List[RankingCandidate]) -> List[ProviderRanking]:
        if not candidates:
            return []
        raw = self._complete(_build_ranking_prompt(job_description, candidates), _RANKING_SYSTEM_PROMPT)
        rankings = parse_rankings(raw)
        logger.debug(f"{self.model.model_id} ranked {len(rankings)} of {len(candidates)} candidates")
        return rankings

    def recommend(self, freelancer_profile: str, jobs: List[JobSummary]) -> List[ProviderRanking]:
        if not jobs:
            return []
        raw = self._complete(_build_recommend_prompt(freelancer_profile, jobs), _RECOMMEND_SYSTEM_PROMPT)
        return parse_rankings(raw)
