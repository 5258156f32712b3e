"""Proposal storage layer."""

import logging
import threading
from typing import List, Optional, Protocol

from gigmarket.proposals.models import Proposal

logger = logging.getLogger(__name__)


class ProposalStorage(Protocol):
    """Protocol for proposal persistence backends."""

    def upsert_proposal(self, proposal: Proposal) -> Proposal:
        """Insert, or replace the content of the (job, freelancer) proposal.

        On replace the stored id, sequence and created_at are kept. On
        insert the next sequence number for the job is assigned. Returns
        the stored proposal.
        """
        ...

    def get_proposal(self, job_id: str, freelancer_id: str) -> Optional[Proposal]:
        ...

    def list_proposals(self, job_id: str) -> List[Proposal]:
        """Proposals for a job in submission order."""
        ...

    def list_proposals_for_freelancer(self, freelancer_id: str) -> List[Proposal]:
        """A freelancer's proposals, newest first."""
        ...


class InMemoryProposalStorage:
    """In-memory proposal storage for testing and local development."""

    def __init__(self):
        self._lock = threading.Lock()
        self._proposals: dict[tuple[str, str], Proposal] = {}  # (job_id, freelancer_id)
        self._sequences: dict[str, int] = {}  # job_id -> last sequence

    def upsert_proposal(self, proposal: Proposal) -> Proposal:
        key = (proposal.job_id, proposal.freelancer_id)
        with self._lock:
            existing = self._proposals.get(key)
            if existing is not None:
                stored = Proposal(
                    id=existing.id,
                    job_id=existing.job_id,
                    freelancer_id=existing.freelancer_id,
                    cover_letter=proposal.cover_letter,
                    proposed_rate=proposal.proposed_rate,
                    sequence=existing.sequence,
                    created_at=existing.created_at,
                    updated_at=proposal.updated_at,
                )
            else:
                sequence = self._sequences.get(proposal.job_id, 0) + 1
                self._sequences[proposal.job_id] = sequence
                stored = Proposal(
                    id=proposal.id,
                    job_id=proposal.job_id,
                    freelancer_id=proposal.freelancer_id,
                    cover_letter=proposal.cover_letter,
                    proposed_rate=proposal.proposed_rate,
                    sequence=sequence,
                    created_at=proposal.created_at,
                    updated_at=proposal.updated_at,
                )
            self._proposals[key] = stored
        return stored

    def get_proposal(self, job_id: str, freelancer_id: str) -> Optional[Proposal]:
        return self._proposals.get((job_id, freelancer_id))

    def list_proposals(self, job_id: str) -> List[Proposal]:
        with self._lock:
            proposals = [p for p in self._proposals.values() if p.job_id == job_id]
        return sorted(proposals, key=lambda p: p.sequence)

    def list_proposals_for_freelancer(self, freelancer_id: str) -> List[Proposal]:
        with self._lock:
            proposals = [p for p in self._proposals.values() if p.freelancer_id == freelancer_id]
        return sorted(
            proposals,
            key=lambda p: p.updated_at.timestamp() if p.updated_at else 0.0,
            reverse=True,
        )
