"""
Module: school_kernel.db.base
Responsibility: Declarative base classes for every SQLAlchemy model in the
    school ledgers.  Provides the UUID primary key convention, the type
    annotation map shared by all columns, and the TrackedBase mixin that
    records who created and last touched a row.
Architecture position: Kernel > DB.  Lowest-level import target in the
    kernel.  MUST NOT import from models/, services/, domain/,
    or any school_modules package.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated key stored
      as String(36) so the schema runs unchanged on PostgreSQL and SQLite.
    - Decimal precision: Decimal maps to Numeric(38, 9).  Invoice principal,
      amount paid, balance and payment amounts never touch float.
    - Actor stamps: TrackedBase carries created_by_id / updated_by_id so a
      ledger row always names the actor that produced it.

Failure modes:
    - IntegrityError on a duplicate primary key (uuid4 collision).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger (safe for counters).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps and actor tracking.

    Contract:
        created_at / created_by_id describe the insert; updated_at /
        updated_by_id move with every ledger transition applied to the row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
