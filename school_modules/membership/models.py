"""
Membership Domain Models (``school_modules.membership.models``).

Responsibility
--------------
Frozen dataclass value objects for enrollment records: the link between one
subject and one group for one period, and the result of a transfer.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* ``ACTIVE`` is the only status with outbound transitions; see
  ``workflows.MEMBERSHIP_WORKFLOW``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from school_kernel.logging_config import get_logger

logger = get_logger("modules.membership.models")


class MembershipStatus(Enum):
    """Membership lifecycle states."""
    ACTIVE = "active"
    COMPLETED = "completed"
    TRANSFERRED = "transferred"
    WITHDRAWN = "withdrawn"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class Membership:
    """One subject's enrollment in one group for one period."""
    id: UUID
    tenant_id: UUID
    subject_id: UUID
    group_id: UUID
    period: str
    enrollment_date: date
    status: MembershipStatus = MembershipStatus.ACTIVE
    status_change_date: datetime | None = None
    status_change_reason: str | None = None
    successor_membership_id: UUID | None = None
    final_grade: str | None = None
    notes: str | None = None
    idempotency_key: str | None = None  # set on transfer successors

    @property
    def is_active(self) -> bool:
        return self.status is MembershipStatus.ACTIVE


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a transfer: the closed source and its active successor."""
    source: Membership
    successor: Membership
