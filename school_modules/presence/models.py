"""
Presence Domain Models (``school_modules.presence.models``).

Responsibility
--------------
Frozen dataclass value objects for daily attendance, plus the pure
functions that derive statistics from stored statuses.  Percentages and
counts are computed on read and never stored.

Architecture position
---------------------
**Modules layer** -- pure data definitions and calculations with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* percentage = round(present / total * 100), half up; 0 when total is 0.
* Arrival times are ``HH:MM`` on a 24-hour clock.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from school_kernel.exceptions import ValidationError
from school_kernel.logging_config import get_logger

logger = get_logger("modules.presence.models")

_ARRIVAL_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PresenceStatus(Enum):
    """Daily attendance outcome."""
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"
    SICK = "sick"


def parse_status(value: "PresenceStatus | str") -> PresenceStatus:
    """Read a status, raising ValidationError on unknown values."""
    if isinstance(value, PresenceStatus):
        return value
    try:
        return PresenceStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid attendance status: {value!r}", field="status") from exc


def validate_arrival_time(value: str | None) -> str | None:
    """Return ``value`` when it is ``HH:MM`` (or None)."""
    if value is None:
        return None
    value = value.strip()
    if not _ARRIVAL_TIME.match(value):
        raise ValidationError(
            f"Arrival time must be HH:MM, got {value!r}", field="arrival_time"
        )
    return value


def attendance_percentage(present: int, total: int) -> int:
    """Share of ``present`` days, rounded half up.  0 when ``total`` is 0."""
    if total <= 0:
        return 0
    ratio = Decimal(present) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def count_by_status(statuses: Iterable[PresenceStatus | str]) -> dict[str, int]:
    """Counts keyed by every status value, zeros included."""
    counts = {s.value: 0 for s in PresenceStatus}
    for status in statuses:
        counts[parse_status(status).value] += 1
    return counts


@dataclass(frozen=True)
class AttendanceEntry:
    """One line of an attendance batch."""
    subject_id: UUID
    status: PresenceStatus
    arrival_time: str | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "status", parse_status(self.status))
        object.__setattr__(self, "arrival_time", validate_arrival_time(self.arrival_time))

    @classmethod
    def coerce(cls, value: "AttendanceEntry | Mapping[str, Any]") -> "AttendanceEntry":
        """Accept an entry or a mapping with the same keys."""
        if isinstance(value, cls):
            return value
        if "subject_id" not in value or "status" not in value:
            raise ValidationError(
                "Attendance entries need subject_id and status", field="records"
            )
        subject_id = value["subject_id"]
        return cls(
            subject_id=subject_id if isinstance(subject_id, UUID) else UUID(str(subject_id)),
            status=value["status"],
            arrival_time=value.get("arrival_time"),
            notes=value.get("notes"),
        )


@dataclass(frozen=True)
class PresenceRecord:
    """
    Stored attendance for one subject on one day.

    Placeholders for an unmarked roster have ``id`` and ``status`` set to
    None.
    """
    id: UUID | None
    tenant_id: UUID
    subject_id: UUID
    group_id: UUID
    period: str
    day: date
    status: PresenceStatus | None
    arrival_time: str | None = None
    notes: str | None = None
    recorder_id: UUID | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.id is None


@dataclass(frozen=True)
class AttendanceBatchResult:
    """Outcome of ``mark_group_attendance``."""
    group_id: UUID
    day: date
    created: int
    updated: int
    counts: dict[str, int] = field(default_factory=dict)
    records: tuple[PresenceRecord, ...] = field(default_factory=tuple)

    @property
    def marked(self) -> int:
        return self.created + self.updated


@dataclass(frozen=True)
class AttendanceStatistics:
    """Per-subject totals over a range of days."""
    subject_id: UUID
    total: int
    present: int
    absent: int
    late: int
    excused: int
    sick: int
    percentage: int

    @classmethod
    def from_statuses(
        cls, subject_id: UUID, statuses: Iterable[PresenceStatus | str]
    ) -> "AttendanceStatistics":
        counts = count_by_status(statuses)
        total = sum(counts.values())
        return cls(
            subject_id=subject_id,
            total=total,
            present=counts["present"],
            absent=counts["absent"],
            late=counts["late"],
            excused=counts["excused"],
            sick=counts["sick"],
            percentage=attendance_percentage(counts["present"], total),
        )


@dataclass(frozen=True)
class GroupReportRow:
    """One subject's line in a group attendance report."""
    subject_id: UUID
    first_name: str
    last_name: str
    admission_number: str
    statistics: AttendanceStatistics

    @property
    def display_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"


@dataclass(frozen=True)
class AttendanceDashboard:
    """Tenant-wide attendance summary for one day."""
    day: date
    total_groups: int
    groups_with_attendance: int
    total_marked: int
    counts: dict[str, int]
    attendance_rate: int
