"""
Job service.

Owns job records and the legality of status changes. Authorization and
side effects (escrow, events) belong to the lifecycle orchestrator; this
layer only guarantees that every status change is a valid edge applied
with compare-and-set.
"""

import logging
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, List, Optional, Union

from gigmarket.errors import InvalidTransition, JobNotFound
from gigmarket.jobs.models import (
    STATUS_TIMESTAMP_FIELDS,
    Deliverable,
    Job,
    JobStateTransition,
    JobStatus,
    is_valid_transition,
)
from gigmarket.jobs.storage import NOT_FOUND, JobStorage
from gigmarket.logging_config import log_transition
from gigmarket.money import Amount, from_cents, to_cents
from gigmarket.types import utc_now

logger = logging.getLogger(__name__)


def _normalize_deadline(deadline: Union[datetime, date]) -> datetime:
    if isinstance(deadline, datetime):
        if deadline.tzinfo is None:
            return deadline.replace(tzinfo=timezone.utc)
        return deadline
    if isinstance(deadline, date):
        return datetime.combine(deadline, time.max, tzinfo=timezone.utc)
    raise ValueError(f"Deadline must be a date or datetime, got {type(deadline).__name__}")


class JobService:
    """Service for job records and status transitions."""

    def __init__(self, storage: JobStorage):
        self.storage = storage

    # === Creation / reads ===

    def create_job(
        self,
        client_id: str,
        title: str,
        description: str,
        category: str,
        budget: Amount,
        deadline: Union[datetime, date],
    ) -> Job:
        """Create an open job.

        A date deadline means the end of that day, UTC. Naive datetimes are
        taken as UTC.

        Raises:
            ValueError: If the budget is not positive, or the deadline is not
                a date or datetime or has passed
        """
        budget_value: Decimal = from_cents(to_cents(budget))
        if budget_value <= 0:
            raise ValueError("Budget must be positive")

        deadline = _normalize_deadline(deadline)
        now = utc_now()
        if deadline <= now:
            raise ValueError("Deadline must be in the future")

        job = Job(
            id=str(uuid.uuid4()),
            client_id=client_id,
            title=title.strip() if title else title,
            description=description,
            category=category or "",
            budget=budget_value,
            deadline=deadline,
            status=JobStatus.OPEN,
            created_at=now,
            updated_at=now,
        )
        self.storage.save_job(job)
        logger.info(f"Created job {job.id} for client {client_id}: {job.title}")
        return job

    def get_job(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFound: If job doesn't exist
        """
        job = self.storage.get_job(job_id)
        if not job:
            raise JobNotFound(job_id)
        return job

    def list_jobs_for_client(self, client_id: str, limit: int = 100) -> List[Job]:
        return self.storage.list_jobs(client_id=client_id, limit=limit)

    def list_open_jobs(self, limit: int = 100, offset: int = 0) -> List[Job]:
        return self.storage.list_jobs(status=JobStatus.OPEN, limit=limit, offset=offset)

    def list_jobs_for_freelancer(self, freelancer_id: str, limit: int = 100) -> List[Job]:
        return self.storage.list_jobs(freelancer_id=freelancer_id, limit=limit)

    def get_job_history(self, job_id: str) -> List[JobStateTransition]:
        """Audit log of status changes, oldest first."""
        self.get_job(job_id)
        return self.storage.get_transitions(job_id)

    # === Transitions ===

    def transition_status(
        self,
        job_id: str,
        from_status: JobStatus,
        to_status: JobStatus,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        hired_freelancer_id: Optional[str] = None,
        deliverables: Optional[List[Deliverable]] = None,
    ) -> Job:
        """Move a job from from_status to to_status atomically.

        The write only lands if the stored status is still from_status.
        Entering hired records hired_freelancer_id in the same write;
        entering cancelled clears it.

        Raises:
            InvalidTransition: Not an edge, or the stored status differs
            JobNotFound: If job doesn't exist
        """
        from_status = JobStatus(from_status)
        to_status = JobStatus(to_status)
        if not is_valid_transition(from_status.value, to_status.value):
            raise InvalidTransition(job_id, from_status.value, to_status.value)

        now = utc_now()
        fields: dict[str, Any] = {"updated_at": now}
        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(to_status.value)
        if timestamp_field:
            fields[timestamp_field] = now

        if to_status == JobStatus.HIRED:
            if not hired_freelancer_id:
                raise ValueError("hired_freelancer_id is required to hire")
            fields["hired_freelancer_id"] = hired_freelancer_id
        elif hired_freelancer_id is not None:
            raise ValueError("hired_freelancer_id can only be set when hiring")
        if to_status == JobStatus.CANCELLED:
            fields["hired_freelancer_id"] = None
        if deliverables is not None:
            fields["deliverables"] = list(deliverables)

        transition = JobStateTransition(
            id=str(uuid.uuid4()),
            job_id=job_id,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_id=actor_id,
            reason=reason,
            created_at=now,
        )

        job, failure = self.storage.transition_job(
            job_id, from_status, to_status, fields, transition
        )
        if job is None:
            if failure == NOT_FOUND:
                raise JobNotFound(job_id)
            current = self.storage.get_job(job_id)
            raise InvalidTransition(
                job_id,
                from_status.value,
                to_status.value,
                actual=current.status if current else None,
            )

        log_transition(job_id, from_status.value, to_status.value, actor_id=actor_id)
        logger.info(f"Job {job_id}: {from_status.value} -> {to_status.value}")
        return job

    def set_hired_freelancer(
        self, job_id: str, freelancer_id: str, *, actor_id: Optional[str] = None
    ) -> Job:
        """Record the hire: open -> hired with the freelancer, one write."""
        return self.transition_status(
            job_id,
            JobStatus.OPEN,
            JobStatus.HIRED,
            actor_id=actor_id,
            hired_freelancer_id=freelancer_id,
        )
