"""
Values -- small immutable value objects shared by the ledgers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from school_kernel.exceptions import ValidationError


def normalize_day(value: date | datetime | str) -> date:
    """Normalize a day to a plain ``date`` with no time component.

    Accepts a date, a datetime (time of day is dropped in its own timezone)
    or an ISO-8601 string.

    Raises:
        ValidationError: value cannot be read as a day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError as exc:
            raise ValidationError(f"Invalid day: {value!r}", field="day") from exc
    raise ValidationError(f"Invalid day: {value!r}", field="day")


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of days. Either bound may be open (None)."""

    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", normalize_day(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", normalize_day(self.end))
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValidationError(
                f"Range start {self.start} is after end {self.end}", field="start"
            )

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True
