"""Proposals subsystem for gigmarket.

One proposal per (job, freelancer); status is derived from the job.
"""

from gigmarket.proposals.models import Proposal, ProposalStatus, proposal_status
from gigmarket.proposals.service import ProposalService
from gigmarket.proposals.storage import InMemoryProposalStorage, ProposalStorage

__all__ = [
    "Proposal",
    "ProposalStatus",
    "proposal_status",
    "ProposalStorage",
    "InMemoryProposalStorage",
    "ProposalService",
]
