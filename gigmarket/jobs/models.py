"""
Job data models.

A job moves through a fixed state machine. The hired freelancer is recorded
in the same write that moves the job out of open, and is present exactly
while the job is in a hired-or-later state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from gigmarket.money import CENT
from gigmarket.types import format_datetime, parse_datetime


class JobStatus(str, Enum):
    """Job lifecycle status."""

    OPEN = "open"  # Accepting proposals
    HIRED = "hired"  # Freelancer chosen, escrow funded
    IN_PROGRESS = "in_progress"  # Work acknowledged
    SUBMITTED = "submitted"  # Deliverables awaiting review
    COMPLETED = "completed"  # Approved, escrow released
    DISPUTED = "disputed"  # Awaiting admin resolution
    CANCELLED = "cancelled"  # Withdrawn or resolved for the client


VALID_JOB_STATUSES = frozenset(s.value for s in JobStatus)

# Valid state transitions: from_status -> allowed to_statuses
VALID_JOB_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"hired", "cancelled"}),
    "hired": frozenset({"in_progress", "disputed"}),
    "in_progress": frozenset({"submitted", "disputed"}),
    "submitted": frozenset({"completed", "in_progress", "disputed"}),
    "disputed": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

# Statuses in which hired_freelancer_id must be set
HIRED_STATUSES = frozenset({"hired", "in_progress", "submitted", "completed", "disputed"})

# Timestamp field stamped when a job enters each status
STATUS_TIMESTAMP_FIELDS: dict[str, str] = {
    "hired": "hired_at",
    "in_progress": "started_at",
    "submitted": "submitted_at",
    "completed": "completed_at",
    "disputed": "disputed_at",
    "cancelled": "cancelled_at",
}

MAX_TITLE_LENGTH = 200


def is_valid_transition(from_status: str, to_status: str) -> bool:
    return to_status in VALID_JOB_TRANSITIONS.get(from_status, frozenset())


@dataclass(frozen=True)
class Deliverable:
    """A file or link handed over on submission."""

    name: str
    url: str
    content_type: Optional[str] = None
    size: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Deliverable name cannot be empty")
        if not self.url:
            raise ValueError("Deliverable url cannot be empty")
        if self.size is not None and self.size < 0:
            raise ValueError("Deliverable size cannot be negative")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "content_type": self.content_type,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Deliverable":
        return cls(
            name=data["name"],
            url=data["url"],
            content_type=data.get("content_type"),
            size=data.get("size"),
        )


@dataclass
class Job:
    """A job posted by a client.

    Attributes:
        id: Unique identifier (UUID)
        client_id: User who posted the job
        title: Short title (max 200 chars)
        description: Full description
        category: Free-form category label
        budget: Fixed price, paid through escrow
        deadline: When the work is due
        status: Current lifecycle status
        hired_freelancer_id: Set exactly while status is hired or later
        deliverables: Files/links attached on submission
    """

    id: str
    client_id: str
    title: str
    description: str
    budget: Decimal
    deadline: datetime
    category: str = ""
    status: str = JobStatus.OPEN.value
    hired_freelancer_id: Optional[str] = None
    deliverables: list[Deliverable] = field(default_factory=list)

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    hired_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate job fields."""
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if self.status not in VALID_JOB_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")

        if not self.title or not self.title.strip():
            raise ValueError("Title cannot be empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} chars)")
        if not self.client_id:
            raise ValueError("client_id cannot be empty")

        if not isinstance(self.budget, Decimal):
            if isinstance(self.budget, float):
                raise ValueError("Budget must be a Decimal, not float")
            try:
                self.budget = Decimal(str(self.budget))
            except InvalidOperation as e:
                raise ValueError(f"Invalid budget: {self.budget!r}") from e
        if not self.budget.is_finite():
            raise ValueError(f"Invalid budget: {self.budget}")
        if self.budget <= 0:
            raise ValueError("Budget must be positive")
        if self.budget != self.budget.quantize(CENT):
            raise ValueError("Budget has more than two decimal places")

        hired = self.status in HIRED_STATUSES
        if hired and not self.hired_freelancer_id:
            raise ValueError(f"A {self.status} job must have a hired freelancer")
        if not hired and self.hired_freelancer_id:
            raise ValueError(f"A {self.status} job cannot have a hired freelancer")
        if self.hired_freelancer_id and self.hired_freelancer_id == self.client_id:
            raise ValueError("A client cannot hire themselves")

    @property
    def is_open(self) -> bool:
        return self.status == JobStatus.OPEN.value

    @property
    def is_terminal(self) -> bool:
        return not VALID_JOB_TRANSITIONS.get(self.status)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "budget": str(self.budget),
            "deadline": format_datetime(self.deadline),
            "status": self.status,
            "hired_freelancer_id": self.hired_freelancer_id,
            "deliverables": [d.to_dict() for d in self.deliverables],
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "hired_at": format_datetime(self.hired_at),
            "started_at": format_datetime(self.started_at),
            "submitted_at": format_datetime(self.submitted_at),
            "completed_at": format_datetime(self.completed_at),
            "disputed_at": format_datetime(self.disputed_at),
            "cancelled_at": format_datetime(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        """Create from dictionary."""
        deadline = data["deadline"]
        if isinstance(deadline, str):
            deadline = parse_datetime(deadline)
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            title=data["title"],
            description=data.get("description", ""),
            category=data.get("category", ""),
            budget=Decimal(str(data["budget"])),
            deadline=deadline,
            status=data.get("status", JobStatus.OPEN.value),
            hired_freelancer_id=data.get("hired_freelancer_id"),
            deliverables=[Deliverable.from_dict(d) for d in data.get("deliverables") or []],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            hired_at=parse_datetime(data.get("hired_at")),
            started_at=parse_datetime(data.get("started_at")),
            submitted_at=parse_datetime(data.get("submitted_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            disputed_at=parse_datetime(data.get("disputed_at")),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
        )


@dataclass
class JobStateTransition:
    """Audit log entry for a job status change.

    actor_id is None for system-driven transitions.
    """

    id: str
    job_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "created_at": format_datetime(self.created_at),
        }
