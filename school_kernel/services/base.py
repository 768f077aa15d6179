"""
BaseService -- shared transaction and audit plumbing for ledger services.

Responsibility:
    Gives every ledger service the same session handling, clock and audit
    sink wiring, plus the ``_transaction`` scope that commits a ledger
    operation as one unit or rolls it back and records the rejection.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Extended by the
    roster, membership, presence and billing services in school_modules.

Invariants enforced:
    - One operation, one transaction: ``_transaction`` commits on success and
      rolls back on any exception, so a multi-row write (transfer, attendance
      batch, payment + invoice update) lands completely or not at all.
    - Audit after commit: success records are emitted after the commit and
      failure records after the rollback, through ``emit_audit``, so a sink
      failure can never undo or block the ledger outcome.

Failure modes:
    - SchoolKernelError subclasses propagate unchanged after rollback and a
      ``success=False`` audit record.
    - Any other exception propagates after rollback and an ERROR log line.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Any, Generator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock, SystemClock
from school_kernel.exceptions import ConflictError, NotFoundError, SchoolKernelError
from school_kernel.logging_config import LogContext, get_logger
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import (
    AuditorService,
    AuditRecord,
    AuditSink,
    emit_audit,
)

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for ledger services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  Public mutating
        methods wrap their work in ``_transaction`` and own the commit.

    Non-goals:
        - Does NOT open or close sessions.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source. Defaults to SystemClock.
            audit_sink: Where audit records go. Defaults to the hash-chained
                database sink on the same session.
        """
        self.session = session
        self._clock = clock or SystemClock()
        self._audit = audit_sink if audit_sink is not None else AuditorService(
            session, self._clock
        )

    def _emit(self, record: AuditRecord) -> None:
        emit_audit(self._audit, record)

    def _record(
        self,
        actor: ActorContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        tenant_id: UUID | None = None,
        **payload: Any,
    ) -> None:
        self._emit(
            AuditRecord.from_actor(
                actor, action, entity_type, entity_id, tenant_id=tenant_id, **payload
            )
        )

    @contextmanager
    def _transaction(
        self,
        actor: ActorContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
    ) -> Generator[None, None, None]:
        """
        Run one ledger operation as a unit.

        On success the session is committed.  On failure it is rolled back,
        a failed-operation audit record names ``entity_type``/``entity_id``,
        and the exception is re-raised.
        """
        with LogContext.bind(
            actor_id=str(actor.actor_id),
            tenant_id=str(actor.tenant_id),
            operation=action.value,
            entity_id=str(entity_id),
        ):
            try:
                yield
                self.session.commit()
            except SchoolKernelError as exc:
                self.session.rollback()
                logger.warning(
                    "ledger_operation_rejected",
                    extra={"action": action.value, "error_code": exc.code},
                )
                self._emit(
                    AuditRecord.from_actor(
                        actor,
                        action,
                        entity_type,
                        entity_id,
                        success=False,
                        error_code=exc.code,
                        error=str(exc),
                    )
                )
                raise
            except Exception:
                self.session.rollback()
                logger.error(
                    "ledger_operation_failed",
                    exc_info=True,
                    extra={"action": action.value},
                )
                raise

    def _load_scoped(
        self,
        model: type,
        entity_type: str,
        entity_id: UUID,
        actor: ActorContext,
        for_update: bool = False,
    ):
        """
        Load one tenant-owned row by id.

        Raises:
            NotFoundError: no row with ``entity_id``.
            TenantMismatchError: the row belongs to another tenant.
        """
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFoundError(entity_type, entity_id)
        actor.ensure_tenant(row.tenant_id)
        return row

    def _flush_unique(self, conflict: ConflictError) -> None:
        """
        Flush pending rows, turning a uniqueness violation into ``conflict``.

        The session must be rolled back afterwards; ``_transaction`` does so.
        """
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.info(
                "unique_constraint_conflict",
                extra={"error_code": conflict.code},
            )
            raise conflict from exc
