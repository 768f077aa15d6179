"""
Membership ORM Models (``school_modules.membership.orm``).

Responsibility
--------------
SQLAlchemy persistence for enrollment history.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``school_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``school_kernel``.

Invariants enforced
-------------------
* At most one ``active`` row per (subject_id, group_id, period): a partial
  unique index (``WHERE status = 'active'``) on PostgreSQL and SQLite.
* A transfer successor carries a unique ``idempotency_key``.
* subject_id, group_id, period and enrollment_date are frozen after insert
  (``school_modules._orm_registry``).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class MembershipModel(TrackedBase):
    """
    ORM model for memberships.

    Maps to the ``Membership`` frozen dataclass.  Rows are never deleted.

    Guarantees:
        - uq_memberships_active: unique (subject_id, group_id, period) among
          rows whose status is ``active``.
        - uq_memberships_idempotency_key: one successor per transfer key.
        - successor_membership_id FK to memberships.id.
    """

    __tablename__ = "memberships"

    __table_args__ = (
        Index(
            "uq_memberships_active",
            "subject_id",
            "group_id",
            "period",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("uq_memberships_idempotency_key", "idempotency_key", unique=True),
        Index("idx_memberships_subject_status", "subject_id", "status"),
        Index("idx_memberships_group_status", "group_id", "status"),
        Index("idx_memberships_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    subject_id: Mapped[UUID] = mapped_column(
        ForeignKey("subjects.id"), nullable=False
    )
    group_id: Mapped[UUID] = mapped_column(
        ForeignKey("school_groups.id"), nullable=False
    )
    period: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")
    enrollment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status_change_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status_change_reason: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    successor_membership_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("memberships.id"), nullable=True
    )
    final_grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.membership.models import Membership, MembershipStatus

        return Membership(
            id=self.id,
            tenant_id=self.tenant_id,
            subject_id=self.subject_id,
            group_id=self.group_id,
            period=self.period,
            enrollment_date=self.enrollment_date,
            status=MembershipStatus(self.status),
            status_change_date=self.status_change_date,
            status_change_reason=self.status_change_reason,
            successor_membership_id=self.successor_membership_id,
            final_grade=self.final_grade,
            notes=self.notes,
            idempotency_key=self.idempotency_key,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "MembershipModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=dto.id,
            tenant_id=dto.tenant_id,
            subject_id=dto.subject_id,
            group_id=dto.group_id,
            period=dto.period,
            status=dto.status.value,
            enrollment_date=dto.enrollment_date,
            status_change_date=dto.status_change_date,
            status_change_reason=dto.status_change_reason,
            successor_membership_id=dto.successor_membership_id,
            final_grade=dto.final_grade,
            notes=dto.notes,
            idempotency_key=dto.idempotency_key,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<MembershipModel {self.subject_id} in {self.group_id} ({self.status})>"
