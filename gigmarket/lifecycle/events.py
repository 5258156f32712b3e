"""
Domain events for the job lifecycle.

Events are published after the operation they describe has been written.
Subscribers run synchronously in the publishing thread; a failing
subscriber is logged and does not affect the operation or other
subscribers.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from gigmarket.types import format_datetime, utc_now

logger = logging.getLogger(__name__)


class JobEventType(str, Enum):
    """Kinds of job lifecycle events."""

    CREATED = "created"
    PROPOSAL_SUBMITTED = "proposal_submitted"
    HIRED = "hired"
    WORK_STARTED = "work_started"
    SUBMITTED = "submitted"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    DISPUTE_RESOLVED = "dispute_resolved"
    CANCELLED = "cancelled"
    REVIEWED = "reviewed"


@dataclass
class JobEvent:
    """Something that happened to a job."""

    event_type: JobEventType
    job_id: str
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "job_id": self.job_id,
            "actor_id": self.actor_id,
            "payload": dict(self.payload),
            "occurred_at": format_datetime(self.occurred_at),
        }


EventHandler = Callable[[JobEvent], None]


class EventBus:
    """In-process publish/subscribe for job events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[Optional[JobEventType], List[EventHandler]] = {}

    def subscribe(self, handler: EventHandler, event_type: Optional[JobEventType] = None) -> None:
        """Register a handler for one event type, or all when event_type is None."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, handler: EventHandler, event_type: Optional[JobEventType] = None) -> bool:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def publish(self, event: JobEvent) -> int:
        """Deliver an event. Returns how many handlers ran without error."""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(
                self._handlers.get(None, [])
            )

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for {event.event_type.value} on job {event.job_id}",
                    exc_info=True,
                )
        return delivered


class RecordingSubscriber:
    """Keeps every event it receives; handy for tests and debugging."""

    def __init__(self):
        self.events: List[JobEvent] = []

    def __call__(self, event: JobEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[JobEventType]:
        return [e.event_type for e in self.events]
