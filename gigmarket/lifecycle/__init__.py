"""Job lifecycle subsystem for gigmarket.

- JobLifecycle: the job state machine with escrow side effects
- EventBus / JobEvent / JobEventType: domain events
"""

from gigmarket.lifecycle.events import (
    EventBus,
    JobEvent,
    JobEventType,
    RecordingSubscriber,
)
from gigmarket.lifecycle.orchestrator import DisputeResolution, JobLifecycle

__all__ = [
    "JobLifecycle",
    "DisputeResolution",
    "EventBus",
    "JobEvent",
    "JobEventType",
    "RecordingSubscriber",
]
