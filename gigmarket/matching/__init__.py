"""Matching subsystem for gigmarket.

- MatchingGateway: ranks proposals / recommends jobs, degrading to []
- ModelRankingProvider: provider backed by any ModelProtocol
"""

from gigmarket.matching.gateway import (
    JobRecommendation,
    MalformedRanking,
    MatchingGateway,
    RankedCandidate,
    normalize_rankings,
)
from gigmarket.matching.providers import ModelRankingProvider, parse_rankings

__all__ = [
    "MatchingGateway",
    "RankedCandidate",
    "JobRecommendation",
    "MalformedRanking",
    "normalize_rankings",
    "ModelRankingProvider",
    "parse_rankings",
]
