"""
Roster ORM Models (``school_modules.roster.orm``).

Responsibility
--------------
SQLAlchemy persistence for subjects and groups.  Maps the frozen
dataclasses in ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``school_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``school_kernel``.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class SubjectModel(TrackedBase):
    """
    ORM model for subject records.

    Guarantees:
        - admission_number is unique within a tenant
          (uq_subjects_tenant_admission).
        - Rows are never deleted; ``status`` carries withdrawal.
    """

    __tablename__ = "subjects"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "admission_number", name="uq_subjects_tenant_admission"
        ),
        Index("idx_subjects_tenant_name", "tenant_id", "last_name", "first_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    admission_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.roster.models import Subject, SubjectStatus

        return Subject(
            id=self.id,
            tenant_id=self.tenant_id,
            first_name=self.first_name,
            last_name=self.last_name,
            admission_number=self.admission_number,
            status=SubjectStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "SubjectModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=dto.id,
            tenant_id=dto.tenant_id,
            first_name=dto.first_name,
            last_name=dto.last_name,
            admission_number=dto.admission_number,
            status=dto.status.value,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<SubjectModel {self.admission_number}: {self.last_name}, {self.first_name}>"


class GroupModel(TrackedBase):
    """
    ORM model for groups (classes).

    Guarantees:
        - (tenant_id, period, name) is unique (uq_groups_tenant_period_name).
        - capacity defaults to 30.
    """

    __tablename__ = "school_groups"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "period", "name", name="uq_groups_tenant_period_name"
        ),
        Index("idx_groups_tenant_active", "tenant_id", "is_active"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(default=30)
    teacher_id: Mapped[UUID | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.roster.models import Group

        return Group(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            period=self.period,
            capacity=self.capacity,
            teacher_id=self.teacher_id,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "GroupModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=dto.id,
            tenant_id=dto.tenant_id,
            name=dto.name,
            period=dto.period,
            capacity=dto.capacity,
            teacher_id=dto.teacher_id,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<GroupModel {self.period}/{self.name}>"
