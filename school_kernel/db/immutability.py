"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Ledger history must be tamper-evident.  Audit events are append-only, and
certain fields of ledger rows are facts that never change once written: a
payment's amount and invoice, a membership's subject, group and period.
Lifecycle fields (status, change reason, successor link) stay mutable.

SQLAlchemy fires mapper events before UPDATE/DELETE reaches the database:

    session.flush()
         |
         v
    [before_update] --> frozen field changed? --> ImmutabilityViolationError
         |
         v
    [before_delete] --> append-only model? ----> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule                                  | Registered by
--------------|---------------------------------------|-----------------------------
AuditEvent    | ALWAYS immutable, never deleted       | register_immutability_listeners
Payment       | amount / invoice / number frozen      | school_modules._orm_registry
Membership    | subject / group / period frozen       | school_modules._orm_registry

===============================================================================
USAGE
===============================================================================

    from school_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

    # module layer
    protect_fields(PaymentModel, "Payment", ("amount", "invoice_id"))

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from typing import Callable, Iterable

from sqlalchemy import event, inspect

from school_kernel.exceptions import ImmutabilityViolationError
from school_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# (target, event_name, listener) triples currently installed
_registered: list[tuple[type, str, Callable]] = []

# Models already passed to protect_fields
_protected: set[type] = set()


def _blocked(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_event_immutability(mapper, connection, target):
    """Prevent any updates to AuditEvent records."""
    _blocked(
        "AuditEvent", target, "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    """Prevent deletion of AuditEvent records."""
    _blocked("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _listen(target: type, event_name: str, fn: Callable) -> None:
    if not event.contains(target, event_name, fn):
        event.listen(target, event_name, fn)
        _registered.append((target, event_name, fn))


def protect_fields(
    model: type,
    entity_type: str,
    frozen_fields: Iterable[str],
    allow_delete: bool = False,
) -> None:
    """
    Freeze ``frozen_fields`` on ``model`` after insert.

    Args:
        model: ORM class to protect.
        entity_type: Name used in errors and logs.
        frozen_fields: Column attributes that may never change after insert.
        allow_delete: If False, deleting a row raises as well.
    """
    if model in _protected:
        return
    _protected.add(model)
    fields = tuple(frozen_fields)

    def _check_update(mapper, connection, target):
        state = inspect(target)
        changed = [f for f in fields if state.attrs[f].history.has_changes()]
        if changed:
            _blocked(
                entity_type, target, "UPDATE",
                f"Fields are frozen after insert: {', '.join(changed)}",
            )

    def _check_delete(mapper, connection, target):
        _blocked(entity_type, target, "DELETE", f"{entity_type} history is permanent")

    _listen(model, "before_update", _check_update)
    if not allow_delete:
        _listen(model, "before_delete", _check_delete)
    logger.debug(
        "immutability_fields_protected",
        extra={"entity_type": entity_type, "fields": list(fields)},
    )


def register_immutability_listeners() -> None:
    """
    Register kernel immutability listeners (AuditEvent).

    Call after models are imported and before any database work.
    Idempotent.
    """
    from school_kernel.models.audit_event import AuditEvent

    _listen(AuditEvent, "before_update", _check_audit_event_immutability)
    _listen(AuditEvent, "before_delete", _check_audit_event_delete)


def unregister_immutability_listeners() -> None:
    """
    Remove every listener installed by this module.

    WARNING: Only use this in tests that intentionally tamper with rows to
    verify detection.
    """
    while _registered:
        target, event_name, fn = _registered.pop()
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
    _protected.clear()
