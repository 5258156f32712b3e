"""
Jobs storage layer.

Status changes go through transition_job, a compare-and-set on the stored
status that writes the new fields and the audit record together.
"""

import dataclasses
import logging
import threading
from typing import Any, List, Optional, Protocol

from gigmarket.jobs.models import Job, JobStateTransition, JobStatus

logger = logging.getLogger(__name__)

# Result reasons returned alongside a None job from transition_job
NOT_FOUND = "not_found"
CONFLICT = "conflict"

# Fields transition_job may write besides status
MUTABLE_JOB_FIELDS = frozenset(
    {
        "hired_freelancer_id",
        "deliverables",
        "updated_at",
        "hired_at",
        "started_at",
        "submitted_at",
        "completed_at",
        "disputed_at",
        "cancelled_at",
    }
)


class JobStorage(Protocol):
    """Protocol for job persistence backends."""

    def save_job(self, job: Job) -> str:
        """Insert a new job. Returns the job ID."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        ...

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters, newest first."""
        ...

    def transition_job(
        self,
        job_id: str,
        expected: JobStatus,
        status: JobStatus,
        fields: dict[str, Any],
        transition: JobStateTransition,
    ) -> tuple[Optional[Job], Optional[str]]:
        """Compare-and-set a job's status.

        Applies status and fields and records the transition only if the
        stored status equals `expected`. Returns (job, None) on success,
        otherwise (None, "not_found") or (None, "conflict").
        """
        ...

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """All state transitions for a job, oldest first."""
        ...


class InMemoryJobStorage:
    """In-memory job storage for testing and local development."""

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}
        self._transitions: dict[str, list[JobStateTransition]] = {}  # job_id -> list

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = job
            self._transitions.setdefault(job.id, [])
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())

        if status is not None:
            status_val = status.value if isinstance(status, JobStatus) else status
            jobs = [j for j in jobs if j.status == status_val]
        if client_id is not None:
            jobs = [j for j in jobs if j.client_id == client_id]
        if freelancer_id is not None:
            jobs = [j for j in jobs if j.hired_freelancer_id == freelancer_id]

        # Sort by created_at desc
        jobs.sort(key=lambda j: j.created_at.timestamp() if j.created_at else 0.0, reverse=True)

        return jobs[offset : offset + limit]

    def transition_job(
        self,
        job_id: str,
        expected: JobStatus,
        status: JobStatus,
        fields: dict[str, Any],
        transition: JobStateTransition,
    ) -> tuple[Optional[Job], Optional[str]]:
        unknown = set(fields) - MUTABLE_JOB_FIELDS
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None, NOT_FOUND
            if current.status != JobStatus(expected).value:
                return None, CONFLICT
            # replace() re-runs model validation, so a bad write raises here
            updated = dataclasses.replace(current, status=JobStatus(status).value, **fields)
            self._jobs[job_id] = updated
            self._transitions.setdefault(job_id, []).append(transition)
        return updated, None

    # === Transitions ===

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        return list(self._transitions.get(job_id, []))
