"""
Module: school_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    AuditEvent IS the audit trail.  Every ledger mutation, successful or
    rejected, produces one row: enrollments and transfers, attendance
    batches, invoices, payments, cancellations and repairs.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: every member names one class of ledger event that MUST be
    recorded in the audit chain.
    """

    # Roster
    SUBJECT_REGISTERED = "subject_registered"
    SUBJECT_WITHDRAWN = "subject_withdrawn"
    GROUP_CREATED = "group_created"

    # Membership ledger
    MEMBERSHIP_ENROLLED = "membership_enrolled"
    MEMBERSHIP_TRANSFERRED = "membership_transferred"
    MEMBERSHIP_COMPLETED = "membership_completed"
    MEMBERSHIP_WITHDRAWN = "membership_withdrawn"
    MEMBERSHIP_SUSPENDED = "membership_suspended"

    # Presence ledger
    ATTENDANCE_MARKED = "attendance_marked"
    ATTENDANCE_CORRECTED = "attendance_corrected"

    # Financial ledger
    INVOICE_CREATED = "invoice_created"
    INVOICE_CANCELLED = "invoice_cancelled"
    INVOICE_REPAIRED = "invoice_repaired"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_VOIDED = "payment_voided"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - payload_hash covers actor, tenant, success flag and payload.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT compute hashes; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_tenant", "tenant_id"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Monotonic sequence for ordering
    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Kind of entity being audited (e.g. "Membership", "Invoice", "Group")
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    action: Mapped[AuditAction] = mapped_column(
        String(50),
        nullable=False,
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # False when the operation was rejected
    success: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # before/after snapshots, counts, error codes
    payload: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    payload_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Hash of the previous audit event (null for first event)
    prev_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    # hash = H(entity_type + entity_id + action + payload_hash + prev_hash)
    hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    def __repr__(self) -> str:
        action = self.action.value if isinstance(self.action, AuditAction) else self.action
        return f"<AuditEvent {action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        """Check if this is the first event in the hash chain."""
        return self.prev_hash is None
