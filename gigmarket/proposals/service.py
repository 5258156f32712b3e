"""
Proposal service.

Business logic for submitting and listing proposals.
"""

import logging
import uuid
from typing import List, Optional

from gigmarket.errors import JobNotOpen
from gigmarket.jobs.service import JobService
from gigmarket.money import Amount, from_cents, to_cents
from gigmarket.proposals.models import Proposal, ProposalStatus, proposal_status
from gigmarket.proposals.storage import ProposalStorage
from gigmarket.types import utc_now

logger = logging.getLogger(__name__)


class ProposalService:
    """Service for proposal operations."""

    def __init__(self, storage: ProposalStorage, jobs: JobService):
        self.storage = storage
        self.jobs = jobs

    def submit_proposal(
        self,
        job_id: str,
        freelancer_id: str,
        cover_letter: str,
        proposed_rate: Amount,
    ) -> Proposal:
        """Submit or update a freelancer's proposal on an open job.

        Raises:
            JobNotFound: If job doesn't exist
            JobNotOpen: If job is not accepting proposals
        """
        job = self.jobs.get_job(job_id)
        if not job.is_open:
            raise JobNotOpen(job_id, job.status)

        now = utc_now()
        proposal = Proposal(
            id=str(uuid.uuid4()),
            job_id=job_id,
            freelancer_id=freelancer_id,
            cover_letter=cover_letter,
            proposed_rate=from_cents(to_cents(proposed_rate)),
            created_at=now,
            updated_at=now,
        )
        stored = self.storage.upsert_proposal(proposal)
        if stored.id == proposal.id:
            logger.info(f"Freelancer {freelancer_id} submitted proposal {stored.id} on job {job_id}")
        else:
            logger.info(f"Freelancer {freelancer_id} updated proposal {stored.id} on job {job_id}")
        return stored

    def get_proposal(self, job_id: str, freelancer_id: str) -> Optional[Proposal]:
        return self.storage.get_proposal(job_id, freelancer_id)

    def list_proposals(self, job_id: str) -> List[Proposal]:
        """Proposals for a job in submission order."""
        return self.storage.list_proposals(job_id)

    def list_proposals_for_freelancer(self, freelancer_id: str) -> List[Proposal]:
        return self.storage.list_proposals_for_freelancer(freelancer_id)

    def proposal_status(self, proposal: Proposal) -> ProposalStatus:
        return proposal_status(proposal, self.jobs.get_job(proposal.job_id))
