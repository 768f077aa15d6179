"""
Presence ORM Models (``school_modules.presence.orm``).

Responsibility
--------------
SQLAlchemy persistence for daily attendance.  ``group_id`` and ``period``
are denormalized from the membership that validated the write.

Architecture position
---------------------
**Modules layer** -- persistence.  MUST NOT be imported by ``school_kernel``.

Invariants enforced
-------------------
* One row per (subject_id, day) regardless of group
  (uq_presence_subject_day).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class PresenceRecordModel(TrackedBase):
    """
    ORM model for presence records.

    Guarantees:
        - (subject_id, day) is unique.
        - day is a DATE with no time component.
    """

    __tablename__ = "presence_records"

    __table_args__ = (
        UniqueConstraint("subject_id", "day", name="uq_presence_subject_day"),
        Index("idx_presence_group_day", "group_id", "day"),
        Index("idx_presence_tenant_day", "tenant_id", "day"),
        Index("idx_presence_subject_day_status", "subject_id", "day", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    subject_id: Mapped[UUID] = mapped_column(
        ForeignKey("subjects.id"), nullable=False
    )
    group_id: Mapped[UUID] = mapped_column(
        ForeignKey("school_groups.id"), nullable=False
    )
    period: Mapped[str] = mapped_column(String(50), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    arrival_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorder_id: Mapped[UUID] = mapped_column(nullable=False)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.presence.models import PresenceRecord, PresenceStatus

        return PresenceRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            subject_id=self.subject_id,
            group_id=self.group_id,
            period=self.period,
            day=self.day,
            status=PresenceStatus(self.status),
            arrival_time=self.arrival_time,
            notes=self.notes,
            recorder_id=self.recorder_id,
        )

    def __repr__(self) -> str:
        return f"<PresenceRecordModel {self.subject_id} {self.day}: {self.status}>"
