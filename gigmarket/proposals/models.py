"""
Proposal data models.

Proposals are never mutated when a job leaves open. Whether a proposal was
accepted or rejected is read off the job (see proposal_status).
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from gigmarket.jobs.models import Job
from gigmarket.money import CENT
from gigmarket.types import format_datetime

MAX_COVER_LETTER_LENGTH = 10000


class ProposalStatus(str, Enum):
    """Derived proposal status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class Proposal:
    """A freelancer's bid on a job.

    One per (job_id, freelancer_id). Resubmitting replaces cover_letter
    and proposed_rate but keeps id and sequence.

    Attributes:
        sequence: Submission order within the job (1-based)
    """

    id: str
    job_id: str
    freelancer_id: str
    cover_letter: str
    proposed_rate: Decimal
    sequence: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.job_id:
            raise ValueError("job_id cannot be empty")
        if not self.freelancer_id:
            raise ValueError("freelancer_id cannot be empty")
        if not self.cover_letter or not self.cover_letter.strip():
            raise ValueError("Cover letter cannot be empty")
        if len(self.cover_letter) > MAX_COVER_LETTER_LENGTH:
            raise ValueError(f"Cover letter too long (max {MAX_COVER_LETTER_LENGTH} chars)")

        if not isinstance(self.proposed_rate, Decimal):
            if isinstance(self.proposed_rate, float):
                raise ValueError("Proposed rate must be a Decimal, not float")
            try:
                self.proposed_rate = Decimal(str(self.proposed_rate))
            except InvalidOperation as e:
                raise ValueError(f"Invalid proposed rate: {self.proposed_rate!r}") from e
        if not self.proposed_rate.is_finite() or self.proposed_rate <= 0:
            raise ValueError("Proposed rate must be positive")
        if self.proposed_rate != self.proposed_rate.quantize(CENT):
            raise ValueError("Proposed rate has more than two decimal places")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "freelancer_id": self.freelancer_id,
            "cover_letter": self.cover_letter,
            "proposed_rate": str(self.proposed_rate),
            "sequence": self.sequence,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }


def proposal_status(proposal: Proposal, job: Job) -> ProposalStatus:
    """Status of a proposal as seen from its job.

    Pending while the job has no hired freelancer; afterwards accepted for
    the hired freelancer and rejected for everyone else. A job cancelled
    before hiring leaves its proposals rejected.
    """
    if proposal.job_id != job.id:
        raise ValueError("Proposal does not belong to this job")
    if job.is_open:
        return ProposalStatus.PENDING
    if job.hired_freelancer_id == proposal.freelancer_id:
        return ProposalStatus.ACCEPTED
    return ProposalStatus.REJECTED
