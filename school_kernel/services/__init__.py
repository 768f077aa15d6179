"""Services for the school kernel (write side)."""

from school_kernel.services.sequence_service import SequenceCounter, SequenceService
from school_kernel.services.auditor_service import (
    AuditorService,
    AuditRecord,
    AuditSink,
    AuditTrace,
    InMemoryAuditSink,
    emit_audit,
)
from school_kernel.services.base import BaseService

__all__ = [
    "AuditorService",
    "AuditRecord",
    "AuditSink",
    "AuditTrace",
    "BaseService",
    "InMemoryAuditSink",
    "SequenceCounter",
    "SequenceService",
    "emit_audit",
]
