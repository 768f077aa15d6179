"""
Typed exceptions for the school ledgers.

===============================================================================
HIERARCHY
===============================================================================

SchoolKernelError (SCHOOL_KERNEL_ERROR)
|
+-- ValidationError (VALIDATION_ERROR)           malformed or missing input
|   +-- PeriodMismatchError (PERIOD_MISMATCH)
|   +-- UnenrolledSubjectsError (UNENROLLED_SUBJECTS)
|   +-- InvalidAmountError (INVALID_AMOUNT)
|
+-- ConflictError (CONFLICT)                     uniqueness violations
|   +-- DuplicateActiveMembershipError (DUPLICATE_ACTIVE_MEMBERSHIP)
|   +-- DuplicateRecordError (DUPLICATE_RECORD)
|   +-- GroupCapacityExceededError (GROUP_CAPACITY_EXCEEDED)
|
+-- StateError (ILLEGAL_STATE)                   illegal lifecycle transitions
|   +-- IllegalTransitionError (ILLEGAL_TRANSITION)
|   +-- InvoiceClosedError (INVOICE_CLOSED)
|   +-- InvoiceHasPaymentsError (INVOICE_HAS_PAYMENTS)
|
+-- NotFoundError (NOT_FOUND)                    referenced entity absent
|
+-- AuthorizationError (AUTHORIZATION_ERROR)     tenant scope violations
|   +-- TenantMismatchError (TENANT_MISMATCH)
|
+-- AuditError (AUDIT_ERROR)
    +-- AuditChainBrokenError (AUDIT_CHAIN_BROKEN)
    +-- ImmutabilityViolationError (IMMUTABILITY_VIOLATION)
    +-- AuditSinkError (AUDIT_SINK_FAILED)

===============================================================================
CONVENTIONS
===============================================================================

1. Every class carries a ``code`` class attribute.  Callers map codes to
   user-facing responses; they never parse messages.

2. Context is stored as attributes (subject ids, statuses, amounts).
   StructuredFormatter copies those attributes into the log line when an
   exception is logged with ``exc_info``.

3. The five ledger categories (validation, conflict, state, not found,
   authorization) are disjoint.  A caller can catch the category base and
   be sure it is not catching another category.

===============================================================================
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID


class SchoolKernelError(Exception):
    """
    Base exception for all school ledger errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SCHOOL_KERNEL_ERROR"


# Validation


class ValidationError(SchoolKernelError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class PeriodMismatchError(ValidationError):
    """Supplied period does not match the group's period."""

    code: str = "PERIOD_MISMATCH"

    def __init__(self, group_id: UUID, group_period: str, supplied_period: str):
        self.group_id = group_id
        self.group_period = group_period
        self.supplied_period = supplied_period
        super().__init__(
            f"Period '{supplied_period}' does not match group {group_id} "
            f"period '{group_period}'",
            field="period",
        )


class UnenrolledSubjectsError(ValidationError):
    """Attendance submitted for subjects not actively enrolled in the group."""

    code: str = "UNENROLLED_SUBJECTS"

    def __init__(self, group_id: UUID, subject_ids: Iterable[UUID]):
        self.group_id = group_id
        self.subject_ids = sorted(str(s) for s in subject_ids)
        super().__init__(
            f"Subjects not actively enrolled in group {group_id}: "
            f"{', '.join(self.subject_ids)}",
            field="records",
        )


class InvalidAmountError(ValidationError):
    """Amount rejected by the financial ledger."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}", field="amount")


# Conflict


class ConflictError(SchoolKernelError):
    """Uniqueness violation."""

    code: str = "CONFLICT"


class DuplicateActiveMembershipError(ConflictError):
    """An active membership already exists for (subject, group, period)."""

    code: str = "DUPLICATE_ACTIVE_MEMBERSHIP"

    def __init__(self, subject_id: UUID, group_id: UUID, period: str):
        self.subject_id = subject_id
        self.group_id = group_id
        self.period = period
        super().__init__(
            f"Subject {subject_id} already has an active membership in "
            f"group {group_id} for period {period}"
        )


class DuplicateRecordError(ConflictError):
    """A record with the same natural key already exists."""

    code: str = "DUPLICATE_RECORD"

    def __init__(self, entity_type: str, key: str):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} already exists: {key}")


class GroupCapacityExceededError(ConflictError):
    """Group is at capacity."""

    code: str = "GROUP_CAPACITY_EXCEEDED"

    def __init__(self, group_id: UUID, capacity: int):
        self.group_id = group_id
        self.capacity = capacity
        super().__init__(f"Group {group_id} is full (capacity {capacity})")


# State


class StateError(SchoolKernelError):
    """Illegal lifecycle transition."""

    code: str = "ILLEGAL_STATE"


class IllegalTransitionError(StateError):
    """Requested action is not allowed from the entity's current status."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, entity_type: str, entity_id: UUID, status: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: status is {status}"
        )


class InvoiceClosedError(StateError):
    """Payment attempted against a paid or cancelled invoice."""

    code: str = "INVOICE_CLOSED"

    def __init__(self, invoice_id: UUID, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} is {status}; payment rejected")


class InvoiceHasPaymentsError(StateError):
    """Cancellation attempted on an invoice with money applied."""

    code: str = "INVOICE_HAS_PAYMENTS"

    def __init__(self, invoice_id: UUID, amount_paid: Decimal):
        self.invoice_id = invoice_id
        self.amount_paid = amount_paid
        super().__init__(
            f"Cannot cancel invoice {invoice_id}: amount paid is {amount_paid}"
        )


# Not found


class NotFoundError(SchoolKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Authorization


class AuthorizationError(SchoolKernelError):
    """Actor is not allowed to touch the target."""

    code: str = "AUTHORIZATION_ERROR"


class TenantMismatchError(AuthorizationError):
    """Target record belongs to a different tenant than the actor."""

    code: str = "TENANT_MISMATCH"

    def __init__(self, actor_id: UUID, actor_tenant_id: UUID, target_tenant_id: UUID):
        self.actor_id = actor_id
        self.actor_tenant_id = actor_tenant_id
        self.target_tenant_id = target_tenant_id
        super().__init__(
            f"Actor {actor_id} of tenant {actor_tenant_id} cannot access "
            f"tenant {target_tenant_id}"
        )


# Audit


class AuditError(SchoolKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class ImmutabilityViolationError(AuditError):
    """Attempted to modify or delete an append-only record or frozen field."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditSinkError(AuditError):
    """The audit sink gave up recording an event."""

    code: str = "AUDIT_SINK_FAILED"

    def __init__(self, action: str, entity_type: str, entity_id: UUID, attempts: int):
        self.action = action
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Audit sink failed to record {action} on {entity_type} "
            f"{entity_id} after {attempts} attempt(s)"
        )
