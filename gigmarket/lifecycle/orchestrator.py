"""
Job lifecycle orchestrator.

The state machine that ties jobs, proposals and the ledger together:

    open        -> hired        client hires; escrow hold for the budget
    hired       -> in_progress  client or freelancer acknowledges
    in_progress -> submitted    freelancer submits deliverables
    submitted   -> completed    client approves; hold released
    submitted   -> in_progress  client requests a revision
    hired | in_progress | submitted -> disputed
    disputed    -> completed | cancelled   admin releases or refunds
    open        -> cancelled    client cancels; no ledger effect

Once a job is completed each party may review the other, once.

Every write for a job runs under that job's lock, and every status change
is a compare-and-set in storage, so concurrent callers see at most one
success per edge. Events are published only after the writes land.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional, Union

from gigmarket.config import MarketConfig
from gigmarket.errors import Forbidden, InvalidTransition, ProposalNotFound
from gigmarket.jobs.models import Deliverable, Job, JobStateTransition, JobStatus
from gigmarket.jobs.service import JobService
from gigmarket.ledger.service import LedgerService
from gigmarket.lifecycle.events import EventBus, JobEvent, JobEventType
from gigmarket.locks import KeyedLock
from gigmarket.money import Amount
from gigmarket.proposals.models import Proposal
from gigmarket.proposals.service import ProposalService
from gigmarket.reviews.models import Review
from gigmarket.reviews.service import ReviewService
from gigmarket.reviews.storage import InMemoryReviewStorage
from gigmarket.types import Role, UserRef

logger = logging.getLogger(__name__)

DISPUTABLE_STATUSES = (JobStatus.HIRED, JobStatus.IN_PROGRESS, JobStatus.SUBMITTED)


class DisputeResolution(str, Enum):
    """Who a dispute is resolved in favour of."""

    FREELANCER = "freelancer"  # release hold, job completed
    CLIENT = "client"  # refund hold, job cancelled


class JobLifecycle:
    """Orchestrates job state changes and their ledger side effects."""

    def __init__(
        self,
        jobs: JobService,
        proposals: ProposalService,
        ledger: LedgerService,
        events: Optional[EventBus] = None,
        config: Optional[MarketConfig] = None,
        job_locks: Optional[KeyedLock] = None,
        reviews: Optional[ReviewService] = None,
    ):
        self.jobs = jobs
        self.proposals = proposals
        self.ledger = ledger
        self.reviews = reviews or ReviewService(InMemoryReviewStorage())
        self.events = events or EventBus()
        self.config = config or MarketConfig()
        self._job_locks = job_locks or KeyedLock()

    # === Authorization helpers ===

    @staticmethod
    def _require_role(actor: UserRef, role: Role, action: str) -> None:
        if actor.role != role:
            raise Forbidden(f"Only a {role.value} can {action}")

    @staticmethod
    def _require_client(job: Job, actor: UserRef, action: str) -> None:
        if actor.id != job.client_id:
            raise Forbidden(f"Only the client can {action}")

    @staticmethod
    def _require_party(job: Job, actor: UserRef, action: str) -> None:
        if actor.id not in (job.client_id, job.hired_freelancer_id):
            raise Forbidden(f"Only the client or hired freelancer can {action}")

    def ensure_job_client(self, job_id: str, actor: UserRef) -> Job:
        """Return the job if actor is its client (or an admin)."""
        job = self.jobs.get_job(job_id)
        if not actor.is_admin:
            self._require_client(job, actor, "view this job's proposals")
        return job

    def _publish(self, event_type: JobEventType, job_id: str, actor: Optional[UserRef], **payload) -> None:
        self.events.publish(
            JobEvent(
                event_type=event_type,
                job_id=job_id,
                actor_id=actor.id if actor else None,
                payload=payload,
            )
        )

    # === Posting ===

    def create_job(
        self,
        actor: UserRef,
        title: str,
        description: str,
        category: str,
        budget: Amount,
        deadline,
    ) -> Job:
        """Post a new open job.

        Raises:
            Forbidden: If actor is not a client
        """
        self._require_role(actor, Role.CLIENT, "post jobs")
        job = self.jobs.create_job(actor.id, title, description, category, budget, deadline)
        self._publish(JobEventType.CREATED, job.id, actor, budget=str(job.budget))
        return job

    def submit_proposal(
        self, job_id: str, actor: UserRef, cover_letter: str, proposed_rate: Amount
    ) -> Proposal:
        """Submit or update a proposal.

        Raises:
            Forbidden: If actor is not a freelancer or owns the job
            JobNotOpen: If job is not accepting proposals
        """
        self._require_role(actor, Role.FREELANCER, "submit proposals")
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            if job.client_id == actor.id:
                raise Forbidden("Cannot submit a proposal on your own job")
            proposal = self.proposals.submit_proposal(job_id, actor.id, cover_letter, proposed_rate)
        self._publish(JobEventType.PROPOSAL_SUBMITTED, job_id, actor, proposal_id=proposal.id)
        return proposal

    # === Hiring ===

    def hire(self, job_id: str, actor: UserRef, freelancer_id: str) -> Job:
        """Hire a freelancer who proposed on the job.

        Funds the escrow hold first, then records the hire. If recording
        the hire fails the hold is refunded and the error re-raised.

        Raises:
            Forbidden: If actor is not the job's client
            InvalidTransition: If job is not open
            ProposalNotFound: If the freelancer has no proposal on the job
            InsufficientFunds: If the client cannot cover the budget
            DuplicateHold: If the job already has an active hold
        """
        started = False
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_client(job, actor, "hire for this job")
            if not job.is_open:
                raise InvalidTransition(job_id, JobStatus.OPEN.value, JobStatus.HIRED.value, actual=job.status)
            proposal = self.proposals.get_proposal(job_id, freelancer_id)
            if proposal is None:
                raise ProposalNotFound(job_id, freelancer_id)

            hold = self.ledger.create_hold(job_id, job.client_id, freelancer_id, job.budget)
            try:
                job = self.jobs.set_hired_freelancer(job_id, freelancer_id, actor_id=actor.id)
            except Exception:
                logger.warning(f"Hire of {freelancer_id} on job {job_id} failed; refunding hold")
                try:
                    self.ledger.refund_hold(job_id)
                except Exception:
                    logger.error(f"Refund after failed hire on job {job_id} failed", exc_info=True)
                raise

            if self.config.auto_start_work:
                job = self.jobs.transition_status(
                    job_id, JobStatus.HIRED, JobStatus.IN_PROGRESS, reason="auto start"
                )
                started = True

        self._publish(
            JobEventType.HIRED,
            job_id,
            actor,
            freelancer_id=freelancer_id,
            proposal_id=proposal.id,
            hold_id=hold.id,
            amount=str(hold.amount),
        )
        if started:
            self._publish(JobEventType.WORK_STARTED, job_id, None)
        return job

    # === Work ===

    def start_work(self, job_id: str, actor: UserRef) -> Job:
        """Acknowledge the hire: hired -> in_progress."""
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_party(job, actor, "start work")
            job = self.jobs.transition_status(
                job_id, JobStatus.HIRED, JobStatus.IN_PROGRESS, actor_id=actor.id
            )
        self._publish(JobEventType.WORK_STARTED, job_id, actor)
        return job

    def submit_deliverable(
        self,
        job_id: str,
        actor: UserRef,
        deliverables: Iterable[Union[Deliverable, dict]],
    ) -> Job:
        """Hand in work: in_progress -> submitted.

        Raises:
            Forbidden: If actor is not the hired freelancer
            ValueError: If no deliverables are given
        """
        items = [d if isinstance(d, Deliverable) else Deliverable.from_dict(d) for d in deliverables]
        if not items:
            raise ValueError("At least one deliverable is required")

        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            if actor.id != job.hired_freelancer_id:
                raise Forbidden("Only the hired freelancer can submit work")
            job = self.jobs.transition_status(
                job_id,
                JobStatus.IN_PROGRESS,
                JobStatus.SUBMITTED,
                actor_id=actor.id,
                deliverables=items,
            )
        self._publish(JobEventType.SUBMITTED, job_id, actor, deliverables=len(items))
        return job

    def approve(self, job_id: str, actor: UserRef) -> Job:
        """Accept the submission: release the hold, then submitted -> completed.

        Safe to retry: a hold released by an earlier attempt is not paid
        twice.
        """
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_client(job, actor, "approve work")
            if job.status != JobStatus.SUBMITTED.value:
                raise InvalidTransition(
                    job_id, JobStatus.SUBMITTED.value, JobStatus.COMPLETED.value, actual=job.status
                )
            hold = self.ledger.release_hold(job_id)
            job = self.jobs.transition_status(
                job_id, JobStatus.SUBMITTED, JobStatus.COMPLETED, actor_id=actor.id
            )
        self._publish(JobEventType.COMPLETED, job_id, actor, amount=str(hold.amount))
        return job

    def reject_submission(self, job_id: str, actor: UserRef, reason: Optional[str] = None) -> Job:
        """Request a revision: submitted -> in_progress."""
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_client(job, actor, "request a revision")
            job = self.jobs.transition_status(
                job_id, JobStatus.SUBMITTED, JobStatus.IN_PROGRESS, actor_id=actor.id, reason=reason
            )
        self._publish(JobEventType.REVISION_REQUESTED, job_id, actor, reason=reason)
        return job

    def cancel(self, job_id: str, actor: UserRef, reason: Optional[str] = None) -> Job:
        """Withdraw an open job. Nothing is held, so the ledger is untouched."""
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_client(job, actor, "cancel this job")
            job = self.jobs.transition_status(
                job_id, JobStatus.OPEN, JobStatus.CANCELLED, actor_id=actor.id, reason=reason
            )
        self._publish(JobEventType.CANCELLED, job_id, actor, reason=reason)
        return job

    # === Disputes ===

    def dispute(self, job_id: str, actor: UserRef, reason: Optional[str] = None) -> Job:
        """Raise a dispute on a hired, in-progress or submitted job."""
        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            self._require_party(job, actor, "dispute this job")
            current = JobStatus(job.status)
            if current not in DISPUTABLE_STATUSES:
                raise InvalidTransition(job_id, current.value, JobStatus.DISPUTED.value)
            job = self.jobs.transition_status(
                job_id, current, JobStatus.DISPUTED, actor_id=actor.id, reason=reason
            )
        self._publish(JobEventType.DISPUTED, job_id, actor, reason=reason, from_status=current.value)
        return job

    def resolve_dispute(
        self, job_id: str, actor: UserRef, resolution: Union[DisputeResolution, str]
    ) -> Job:
        """Settle a dispute.

        freelancer: release the hold, disputed -> completed.
        client: refund the hold, disputed -> cancelled. The hired
        freelancer is cleared from the job; the hold and history keep it.

        Raises:
            Forbidden: If actor is not an admin
            ValueError: If resolution is unknown
        """
        self._require_role(actor, Role.ADMIN, "resolve disputes")
        try:
            resolution = DisputeResolution(resolution)
        except ValueError:
            raise ValueError(f"Invalid resolution: {resolution}") from None

        with self._job_locks.hold(job_id):
            job = self.jobs.get_job(job_id)
            target = (
                JobStatus.COMPLETED
                if resolution == DisputeResolution.FREELANCER
                else JobStatus.CANCELLED
            )
            if job.status != JobStatus.DISPUTED.value:
                raise InvalidTransition(
                    job_id, JobStatus.DISPUTED.value, target.value, actual=job.status
                )
            if resolution == DisputeResolution.FREELANCER:
                hold = self.ledger.release_hold(job_id)
            else:
                hold = self.ledger.refund_hold(job_id)
            job = self.jobs.transition_status(
                job_id,
                JobStatus.DISPUTED,
                target,
                actor_id=actor.id,
                reason=f"resolved for {resolution.value}",
            )

        self._publish(
            JobEventType.DISPUTE_RESOLVED,
            job_id,
            actor,
            resolution=resolution.value,
            status=job.status,
            amount=str(hold.amount),
        )
        return job

    # === Reviews ===

    def review(self, job_id: str, actor: UserRef, rating: int, comment: str) -> Review:
        """Rate the other party on a completed job.

        Raises:
            Forbidden: If actor is neither the client nor the hired freelancer
            JobNotCompleted: If the job is not completed
            DuplicateReview: If actor already reviewed this job
        """
        job = self.jobs.get_job(job_id)
        review = self.reviews.submit_review(job, actor.id, rating, comment)
        self._publish(
            JobEventType.REVIEWED,
            job_id,
            actor,
            review_id=review.id,
            reviewee_id=review.reviewee_id,
            rating=review.rating,
        )
        return review

    def list_reviews(self, job_id: str) -> List[Review]:
        self.jobs.get_job(job_id)
        return self.reviews.list_reviews_for_job(job_id)

    # === Reads ===

    def get_job(self, job_id: str) -> Job:
        return self.jobs.get_job(job_id)

    def list_jobs_for_client(self, client_id: str) -> List[Job]:
        return self.jobs.list_jobs_for_client(client_id)

    def list_open_jobs(self) -> List[Job]:
        return self.jobs.list_open_jobs()

    def list_proposals(self, job_id: str, actor: Optional[UserRef] = None) -> List[Proposal]:
        """Proposals in submission order.

        With an actor, the job's client and admins see every proposal and
        anyone else sees only their own.
        """
        job = self.jobs.get_job(job_id)
        proposals = self.proposals.list_proposals(job_id)
        if actor is None or actor.is_admin or actor.id == job.client_id:
            return proposals
        return [p for p in proposals if p.freelancer_id == actor.id]

    def get_job_history(self, job_id: str) -> List[JobStateTransition]:
        return self.jobs.get_job_history(job_id)
