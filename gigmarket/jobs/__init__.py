"""Jobs subsystem for gigmarket.

Models:
- Job: A fixed-price job posted by a client
- JobStatus: Job lifecycle status
- Deliverable: File/link attached on submission
- JobStateTransition: Audit log entry for state changes

Service:
- JobService: Job records and compare-and-set status transitions
"""

from gigmarket.jobs.models import (
    VALID_JOB_TRANSITIONS,
    Deliverable,
    Job,
    JobStateTransition,
    JobStatus,
)
from gigmarket.jobs.service import JobService
from gigmarket.jobs.storage import InMemoryJobStorage, JobStorage

__all__ = [
    # Models
    "Job",
    "JobStatus",
    "Deliverable",
    "JobStateTransition",
    "VALID_JOB_TRANSITIONS",
    # Storage
    "JobStorage",
    "InMemoryJobStorage",
    # Service
    "JobService",
]
