"""
gigmarket Protocol Definitions
==============================

Interface contracts between the marketplace core and its collaborators.

Collaborators and their roles:
- Profile text provider: supplies freelancer profile text (skills + bio).
- Ranking provider: scores proposals for a job. Opaque, may fail.
- Model: a text-generation engine used by the model-backed ranking
  provider and the generation wrapper.

Error handling philosophy:
- Ledger and job-state errors are typed (see gigmarket.errors) and always
  block the action with a specific reason.
- Storage failures raise StorageError, the only retryable kind.
- Ranking and generation failures never cross the core boundary; they
  become an empty result or a tagged failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

# =============================================================================
# ERRORS
# =============================================================================


class GigmarketError(Exception):
    """Base for all gigmarket errors."""

    pass


# =============================================================================
# MODEL TYPES
# =============================================================================


@dataclass
class ModelCapabilities:
    """What a model implementation can do."""

    model_id: str
    provider: str  # "anthropic", "openai", ...
    context_window: int
    max_output_tokens: int = 4096


@dataclass
class ModelMessage:
    """A message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelResponse:
    """Complete response from a model."""

    content: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model_id: Optional[str] = None


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface for a text-generation engine.

    Implementations: AnthropicModel, OpenAIModel.
    """

    @property
    def model_id(self) -> str:
        """Identifier (e.g., 'claude-haiku-4-5-20251001', 'gpt-4o-mini')."""
        ...

    @property
    def capabilities(self) -> ModelCapabilities:
        """What this model can do."""
        ...

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        """Generate a complete response."""
        ...


# =============================================================================
# RANKING TYPES
# =============================================================================
# Provider input/output. candidate_id is whatever the caller uses to map a
# result back to its own records (proposal id for ranking, job id for
# recommendations). Providers must echo it unchanged.
# =============================================================================


@dataclass(frozen=True)
class RankingCandidate:
    """One freelancer entry sent to a ranking provider."""

    candidate_id: str
    profile: str
    proposal: str


@dataclass(frozen=True)
class JobSummary:
    """Lean job view sent to a recommendation provider."""

    job_id: str
    title: str
    description: str


@dataclass(frozen=True)
class ProviderRanking:
    """One scored entry as returned by a provider (before normalization)."""

    candidate_id: str
    rank: float
    reason: str = ""


@runtime_checkable
class RankingProvider(Protocol):
    """Scores proposals against a job description.

    Higher rank means a better match. May be sync or async; may raise.
    """

    def rank(
        self, job_description: str, candidates: list[RankingCandidate]
    ) -> list[ProviderRanking]: ...


@runtime_checkable
class RecommendationProvider(Protocol):
    """Scores open jobs for a freelancer profile (1-10 scale)."""

    def recommend(self, freelancer_profile: str, jobs: list[JobSummary]) -> list[ProviderRanking]: ...


# =============================================================================
# EXTERNAL COLLABORATORS
# =============================================================================


@runtime_checkable
class ProfileTextProvider(Protocol):
    """Supplies freelancer profile text (skills + bio concatenation)."""

    def get_freelancer_profile_text(self, freelancer_id: str) -> str: ...


class StaticProfileTextProvider:
    """ProfileTextProvider backed by a dict of freelancer_id -> text.

    Useful for local development and tests. Unknown freelancers get "".
    """

    def __init__(self, profiles: Optional[dict[str, str]] = None) -> None:
        self._profiles: dict[str, str] = dict(profiles or {})

    def set_profile(self, freelancer_id: str, skills: list[str], bio: str) -> None:
        self._profiles[freelancer_id] = format_profile_text(skills, bio)

    def get_freelancer_profile_text(self, freelancer_id: str) -> str:
        return self._profiles.get(freelancer_id, "")


def format_profile_text(skills: list[str], bio: str) -> str:
    """Concatenate skills and bio the way ranking prompts expect."""
    return f"Skills: {', '.join(skills)}. Bio: {bio}"
