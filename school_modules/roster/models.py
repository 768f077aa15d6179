"""
Roster Domain Models (``school_modules.roster.models``).

Responsibility
--------------
Frozen dataclass value objects for the records every ledger references:
subjects (students) and groups (classes).

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``RosterService`` and read by the membership and presence services.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* A subject is never deleted; withdrawal is the terminal ``WITHDRAWN`` flag.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from school_kernel.logging_config import get_logger

logger = get_logger("modules.roster.models")


class SubjectStatus(Enum):
    """Membership-status flag of a subject record."""
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    GRADUATED = "graduated"


def display_name(first_name: str, last_name: str) -> str:
    """Display identity, ``"Last, First"``."""
    return f"{last_name}, {first_name}"


@dataclass(frozen=True)
class Subject:
    """A person tracked by the ledgers (a student)."""
    id: UUID
    tenant_id: UUID
    first_name: str
    last_name: str
    admission_number: str
    status: SubjectStatus = SubjectStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return display_name(self.first_name, self.last_name)

    @property
    def is_active(self) -> bool:
        return self.status is SubjectStatus.ACTIVE


@dataclass(frozen=True)
class Group:
    """A class: a named collection scoped to one period and one tenant."""
    id: UUID
    tenant_id: UUID
    name: str
    period: str  # e.g. "2024-2025"
    capacity: int = 30
    teacher_id: UUID | None = None
    is_active: bool = True
