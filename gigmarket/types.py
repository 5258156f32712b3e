"""
Shared types for gigmarket.

Small vocabulary used by every subsystem: timestamps, user references and
roles. Domain records (Job, Proposal, Transaction, EscrowHold) live in their
subsystem's models module.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# === Shared Utility Functions ===


def utc_now() -> datetime:
    """Get current timestamp as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string. Naive values are treated as UTC."""
    if not s:
        return None
    parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO string (None passes through)."""
    return dt.isoformat() if dt else None


# === Users ===


class Role(str, Enum):
    """Marketplace role of a user."""

    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"


VALID_ROLE_VALUES = frozenset(r.value for r in Role)


@dataclass(frozen=True)
class UserRef:
    """Opaque reference to a user owned by the identity provider.

    The core treats users as immutable foreign keys.
    """

    id: str
    role: Role

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("User id cannot be empty")
        if isinstance(self.role, str) and not isinstance(self.role, Role):
            if self.role not in VALID_ROLE_VALUES:
                raise ValueError(f"Invalid role: {self.role}")
            object.__setattr__(self, "role", Role(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
