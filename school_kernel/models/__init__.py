"""Persistence models owned by the kernel."""

from school_kernel.models.audit_event import AuditAction, AuditEvent
from school_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "SequenceCounter",
]
