"""
Billing Ledger Service - invoices, payments, cancellation and repair.

Invoices and payments share one transaction per operation, with the invoice
row locked (``SELECT ... FOR UPDATE``) so concurrent payments on the same
invoice serialize.  Document numbers come from locked per-(tenant, year)
counters in SequenceService; reading the highest existing number is never
used.

Write order inside ``apply_payment``: the payment row first (the durable
record of money movement), then the invoice's derived fields.  ``repair``
rebuilds amount paid, balance and status from the counted payments, and runs
before every write and on every single-invoice read, so an invoice left
stale by an interrupted write heals on next access.

Usage:
    service = BillingService(session, clock=clock)
    invoice = service.create_invoice(subject_id, Decimal("1000"), due, "2024-2025", actor)
    applied = service.apply_payment(invoice.id, Decimal("400"), "cash", "RCPT-1", actor)
"""

from __future__ import annotations

from datetime import date
from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_kernel.db.types import ZERO, InvalidCurrencyError, to_money, validate_currency
from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock
from school_kernel.domain.values import DateRange
from school_kernel.exceptions import (
    DuplicateRecordError,
    IllegalTransitionError,
    InvalidAmountError,
    InvoiceClosedError,
    InvoiceHasPaymentsError,
    ValidationError,
)
from school_kernel.logging_config import get_logger
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import AuditRecord, AuditSink
from school_kernel.services.base import BaseService
from school_kernel.services.sequence_service import SequenceService
from school_modules.billing.config import BillingConfig
from school_modules.billing.models import (
    OVERDUE_ELIGIBLE,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    Payment,
    PaymentApplication,
    PaymentMethod,
    PaymentStatus,
    derive_status,
    format_document_number,
    line_amount,
    sum_counted,
)
from school_modules.billing.orm import InvoiceLineModel, InvoiceModel, PaymentModel
from school_modules.billing.workflows import INVOICE_WORKFLOW
from school_modules.roster.orm import SubjectModel

logger = get_logger("modules.billing.service")

INVOICE = "Invoice"
PAYMENT = "Payment"


def _parse_amount(value: Any, field: str) -> Decimal:
    try:
        amount = to_money(value)
    except (TypeError, InvalidOperation) as exc:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field) from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    return amount


def _parse_method(value: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown payment method: {value!r}", field="method") from exc


def _parse_status(value: InvoiceStatus | str) -> InvoiceStatus:
    try:
        return InvoiceStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown invoice status: {value!r}", field="status") from exc


def _parse_lines(
    entries: Sequence[InvoiceLine | Mapping[str, Any]],
    principal: Decimal,
) -> list[InvoiceLine]:
    """Validate line items and check they add up to the principal."""
    lines = []
    for number, entry in enumerate(entries, start=1):
        if isinstance(entry, InvoiceLine):
            entry = {
                "description": entry.description,
                "quantity": entry.quantity,
                "unit_price": entry.unit_price,
            }
        description = (entry.get("description") or "").strip()
        if not description:
            raise ValidationError(
                f"Line {number} needs a description", field="line_items"
            )
        quantity = _parse_amount(entry.get("quantity", 1), "quantity")
        unit_price = _parse_amount(entry.get("unit_price"), "unit_price")
        if quantity <= ZERO or unit_price < ZERO:
            raise ValidationError(
                f"Line {number} has quantity {quantity} and unit price {unit_price}",
                field="line_items",
            )
        lines.append(InvoiceLine(
            line_number=number,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=line_amount(quantity, unit_price),
        ))
    total = sum((line.amount for line in lines), ZERO)
    if total != principal:
        raise ValidationError(
            f"Line items total {total}, principal is {principal}", field="line_items"
        )
    return lines


def _invoice_snapshot(model: InvoiceModel) -> dict:
    return {
        "status": model.status,
        "amount_paid": model.amount_paid,
        "balance": model.balance,
        "paid_date": model.paid_date,
    }


class BillingService(BaseService):
    """
    Financial ledger.

    Transaction boundary: this service commits on success, rolls back on
    failure.  Single-invoice reads commit a repair when one was needed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        config: BillingConfig | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._config = config or BillingConfig()
        self._sequences = SequenceService(session)

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(
        self,
        subject_id: UUID,
        principal: Decimal | int | str,
        due_date: date,
        period: str,
        actor: ActorContext,
        currency: str | None = None,
        description: str | None = None,
        term: str | None = None,
        notes: str | None = None,
        line_items: Sequence[InvoiceLine | Mapping[str, Any]] | None = None,
    ) -> Invoice:
        """
        Issue an invoice to a subject.

        ``line_items`` (description, quantity, unit_price) break the
        principal down; when given they must add up to it exactly.

        Raises:
            ValidationError: principal not positive, unknown currency, blank
                period, malformed line items or a line total that differs
                from the principal.
            NotFoundError / TenantMismatchError: subject.
        """
        invoice_id = uuid4()
        with self._transaction(actor, AuditAction.INVOICE_CREATED, INVOICE, invoice_id):
            amount = _parse_amount(principal, "principal")
            if amount <= ZERO:
                raise InvalidAmountError(amount, "principal must be positive")
            try:
                resolved_currency = validate_currency(currency or self._config.default_currency)
            except InvalidCurrencyError as exc:
                raise ValidationError(str(exc), field="currency") from exc
            if not period or not period.strip():
                raise ValidationError("period is required", field="period")
            lines = _parse_lines(line_items, amount) if line_items else []

            subject = self._load_scoped(SubjectModel, "Subject", subject_id, actor)
            issue_date = self._clock.today()
            number = self._next_number(
                SequenceService.INVOICE, self._config.invoice_prefix,
                subject.tenant_id, issue_date.year,
            )

            model = InvoiceModel(
                id=invoice_id,
                tenant_id=subject.tenant_id,
                invoice_number=number,
                subject_id=subject.id,
                principal=amount,
                currency=resolved_currency,
                due_date=due_date,
                period=period.strip(),
                term=term,
                issue_date=issue_date,
                status=derive_status(
                    amount, ZERO, due_date, issue_date, InvoiceStatus.UNPAID
                ).value,
                amount_paid=ZERO,
                balance=amount,
                description=description,
                notes=notes,
                issued_by_id=actor.actor_id,
                created_by_id=actor.actor_id,
            )
            for line in lines:
                model.lines.append(InvoiceLineModel(
                    line_number=line.line_number,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    amount=line.amount,
                    created_by_id=actor.actor_id,
                ))
            self.session.add(model)
            self._flush_unique(DuplicateRecordError(INVOICE, number))
            invoice = model.to_dto()

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "principal": str(invoice.principal),
                "currency": invoice.currency,
            },
        )
        self._record(
            actor,
            AuditAction.INVOICE_CREATED,
            INVOICE,
            invoice.id,
            tenant_id=invoice.tenant_id,
            invoice_number=invoice.invoice_number,
            subject_id=invoice.subject_id,
            principal=invoice.principal,
            currency=invoice.currency,
            due_date=invoice.due_date,
            line_count=len(invoice.lines),
        )
        return invoice

    def cancel(
        self,
        invoice_id: UUID,
        actor: ActorContext,
        reason: str | None = None,
    ) -> Invoice:
        """
        Cancel an invoice with no money applied.

        Cancelling a cancelled invoice returns it unchanged.

        Raises:
            InvoiceHasPaymentsError: amount paid is above zero.
        """
        with self._transaction(actor, AuditAction.INVOICE_CANCELLED, INVOICE, invoice_id):
            model = self._lock_invoice(invoice_id, actor)
            repaired = self._reconcile(model)

            if model.status == InvoiceStatus.CANCELLED.value:
                logger.info("invoice_already_cancelled", extra={"invoice_id": str(invoice_id)})
                cancelled = False
            else:
                if model.amount_paid > ZERO:
                    raise InvoiceHasPaymentsError(model.id, model.amount_paid)
                if INVOICE_WORKFLOW.find_transition(model.status, "cancel") is None:
                    raise IllegalTransitionError(INVOICE, model.id, model.status, "cancel")
                before = model.status
                model.status = InvoiceStatus.CANCELLED.value
                model.cancellation_reason = reason
                model.updated_by_id = actor.actor_id
                self.session.flush()
                cancelled = True
            invoice = model.to_dto()

        self._emit_repair(actor, invoice, repaired)
        if cancelled:
            logger.info(
                "invoice_cancelled",
                extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number},
            )
            self._record(
                actor,
                AuditAction.INVOICE_CANCELLED,
                INVOICE,
                invoice.id,
                tenant_id=invoice.tenant_id,
                before={"status": before},
                after={"status": invoice.status.value},
                reason=reason,
            )
        return invoice

    def repair(self, invoice_id: UUID, actor: ActorContext) -> Invoice:
        """
        Rebuild amount paid, balance and status from the counted payments.

        Idempotent.  An audit record is emitted only when something changed.
        """
        with self._transaction(actor, AuditAction.INVOICE_REPAIRED, INVOICE, invoice_id):
            model = self._lock_invoice(invoice_id, actor)
            repaired = self._reconcile(model)
            invoice = model.to_dto()

        self._emit_repair(actor, invoice, repaired)
        return invoice

    def get_invoice(self, invoice_id: UUID, actor: ActorContext) -> Invoice:
        """Load one invoice, repaired and reclassified as of today."""
        return self.repair(invoice_id, actor)

    def list_invoices(
        self,
        actor: ActorContext,
        subject_id: UUID | None = None,
        status: InvoiceStatus | str | None = None,
    ) -> list[Invoice]:
        """
        Invoices of the actor's tenant, newest number first.

        Open invoices past due are reclassified ``overdue`` before the
        status filter is applied.
        """
        wanted = _parse_status(status) if status is not None else None
        if subject_id is not None:
            self._load_scoped(SubjectModel, "Subject", subject_id, actor)

        self._sweep_overdue(actor, subject_id)

        stmt = select(InvoiceModel).where(InvoiceModel.tenant_id == actor.tenant_id)
        if subject_id is not None:
            stmt = stmt.where(InvoiceModel.subject_id == subject_id)
        if wanted is not None:
            stmt = stmt.where(InvoiceModel.status == wanted.value)
        rows = self.session.execute(
            stmt.order_by(InvoiceModel.issue_date.desc(), InvoiceModel.invoice_number.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def list_overdue(self, actor: ActorContext) -> list[Invoice]:
        """Overdue invoices of the actor's tenant."""
        return self.list_invoices(actor, status=InvoiceStatus.OVERDUE)

    # =========================================================================
    # Payments
    # =========================================================================

    def apply_payment(
        self,
        invoice_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        reference: str,
        actor: ActorContext,
        notes: str | None = None,
    ) -> PaymentApplication:
        """
        Apply money (or a refund, when negative) to an invoice.

        A payment with the same reference already on the invoice is returned
        as-is (``replayed=True``) without touching the ledger.

        Raises:
            ValidationError: zero or malformed amount, unknown method, blank
                reference.
            InvalidAmountError: refund larger than the amount paid, or
                overpayment when not allowed.
            InvoiceClosedError: invoice cancelled, or paid and ``amount > 0``.
        """
        with self._transaction(actor, AuditAction.PAYMENT_RECORDED, INVOICE, invoice_id):
            model = self._lock_invoice(invoice_id, actor)
            repaired = self._reconcile(model)

            value = _parse_amount(amount, "amount")
            payment_method = _parse_method(method)
            if not reference or not reference.strip():
                raise ValidationError("reference is required", field="reference")
            reference = reference.strip()

            existing = self.session.execute(
                select(PaymentModel).where(
                    PaymentModel.invoice_id == model.id,
                    PaymentModel.reference == reference,
                )
            ).scalar_one_or_none()
            before = _invoice_snapshot(model)
            if existing is not None:
                logger.info(
                    "payment_replayed",
                    extra={
                        "payment_id": str(existing.id),
                        "invoice_id": str(model.id),
                        "reference": reference,
                    },
                )
                result = PaymentApplication(
                    payment=existing.to_dto(), invoice=model.to_dto(), replayed=True
                )
            else:
                result = self._apply_new_payment(
                    model, value, payment_method, reference, actor, notes
                )

        self._emit_repair(actor, result.invoice, repaired)
        if not result.replayed:
            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(result.payment.id),
                    "payment_number": result.payment.payment_number,
                    "invoice_id": str(result.invoice.id),
                    "amount": str(result.payment.amount),
                    "invoice_status": result.invoice.status.value,
                },
            )
            self._record(
                actor,
                AuditAction.PAYMENT_RECORDED,
                INVOICE,
                result.invoice.id,
                tenant_id=result.invoice.tenant_id,
                payment_id=result.payment.id,
                payment_number=result.payment.payment_number,
                amount=result.payment.amount,
                method=result.payment.method.value,
                reference=result.payment.reference,
                before=before,
                after={
                    "status": result.invoice.status.value,
                    "amount_paid": result.invoice.amount_paid,
                    "balance": result.invoice.balance,
                    "paid_date": result.invoice.paid_date,
                },
            )
        return result

    def void_payment(
        self,
        payment_id: UUID,
        reason: str,
        actor: ActorContext,
    ) -> PaymentApplication:
        """
        Void a payment and repair its invoice.

        Raises:
            IllegalTransitionError: payment already voided.
            InvoiceClosedError: invoice cancelled.
            InvalidAmountError: the remaining payments would sum below zero.
        """
        with self._transaction(actor, AuditAction.PAYMENT_VOIDED, PAYMENT, payment_id):
            payment = self._load_scoped(
                PaymentModel, PAYMENT, payment_id, actor, for_update=True
            )
            if payment.status == PaymentStatus.VOIDED.value:
                raise IllegalTransitionError(PAYMENT, payment.id, payment.status, "void")
            model = self._lock_invoice(payment.invoice_id, actor)
            if model.status == InvoiceStatus.CANCELLED.value:
                raise InvoiceClosedError(model.id, model.status)
            remaining = self._counted_total(model.id) - payment.amount
            if remaining < ZERO:
                raise InvalidAmountError(
                    payment.amount,
                    f"voiding leaves amount paid at {remaining}; void the refunds first",
                )

            before = _invoice_snapshot(model)
            payment.status = PaymentStatus.VOIDED.value
            payment.void_reason = reason
            payment.updated_by_id = actor.actor_id
            self.session.flush()
            self._reconcile(model)
            model.updated_by_id = actor.actor_id
            self.session.flush()
            result = PaymentApplication(payment=payment.to_dto(), invoice=model.to_dto())

        logger.info(
            "payment_voided",
            extra={
                "payment_id": str(result.payment.id),
                "invoice_id": str(result.invoice.id),
                "invoice_status": result.invoice.status.value,
            },
        )
        self._record(
            actor,
            AuditAction.PAYMENT_VOIDED,
            PAYMENT,
            result.payment.id,
            tenant_id=result.payment.tenant_id,
            invoice_id=result.invoice.id,
            amount=result.payment.amount,
            reason=reason,
            before=before,
            after={
                "status": result.invoice.status.value,
                "amount_paid": result.invoice.amount_paid,
                "balance": result.invoice.balance,
            },
        )
        return result

    def list_payments(self, invoice_id: UUID, actor: ActorContext) -> list[Payment]:
        """Every payment on an invoice, in number order, voided ones included."""
        self._load_scoped(InvoiceModel, INVOICE, invoice_id, actor)
        rows = self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.invoice_id == invoice_id)
            .order_by(PaymentModel.payment_number)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def list_subject_payments(
        self,
        subject_id: UUID,
        actor: ActorContext,
        start: date | str | None = None,
        end: date | str | None = None,
    ) -> list[Payment]:
        """
        Payment history of one subject across invoices, newest first.

        ``start``/``end`` bound the payment date inclusively; either may be
        left open.
        """
        day_range = DateRange(start, end)
        self._load_scoped(SubjectModel, "Subject", subject_id, actor)
        stmt = select(PaymentModel).where(PaymentModel.subject_id == subject_id)
        if day_range.start is not None:
            stmt = stmt.where(PaymentModel.payment_date >= day_range.start)
        if day_range.end is not None:
            stmt = stmt.where(PaymentModel.payment_date <= day_range.end)
        rows = self.session.execute(
            stmt.order_by(PaymentModel.payment_date.desc(), PaymentModel.payment_number.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply_new_payment(
        self,
        model: InvoiceModel,
        value: Decimal,
        method: PaymentMethod,
        reference: str,
        actor: ActorContext,
        notes: str | None,
    ) -> PaymentApplication:
        if value == ZERO:
            raise InvalidAmountError(value, "amount cannot be zero")

        action = "apply_payment" if value > ZERO else "refund"
        if INVOICE_WORKFLOW.find_transition(model.status, action) is None:
            logger.warning(
                "payment_rejected_invoice_closed",
                extra={"invoice_id": str(model.id), "status": model.status},
            )
            raise InvoiceClosedError(model.id, model.status)

        new_paid = model.amount_paid + value
        if new_paid < ZERO:
            raise InvalidAmountError(value, "refund exceeds amount paid")
        if value > ZERO and not self._config.allow_overpayment and value > model.balance:
            raise InvalidAmountError(value, f"exceeds balance {model.balance}")

        payment_date = self._clock.today()
        number = self._next_number(
            SequenceService.PAYMENT, self._config.payment_prefix,
            model.tenant_id, payment_date.year,
        )

        payment = PaymentModel(
            tenant_id=model.tenant_id,
            invoice_id=model.id,
            subject_id=model.subject_id,
            payment_number=number,
            amount=value,
            currency=model.currency,
            method=method.value,
            reference=reference,
            status=PaymentStatus.SUCCESSFUL.value,
            payment_date=payment_date,
            recorder_id=actor.actor_id,
            notes=notes,
            created_by_id=actor.actor_id,
        )
        self.session.add(payment)
        self._flush_unique(DuplicateRecordError(PAYMENT, reference))

        # Payment is written; now the invoice's derived fields
        self._set_amounts(model, new_paid)
        model.updated_by_id = actor.actor_id
        self.session.flush()
        return PaymentApplication(payment=payment.to_dto(), invoice=model.to_dto())

    def _counted_total(self, invoice_id: UUID) -> Decimal:
        rows = self.session.execute(
            select(PaymentModel.amount, PaymentModel.status).where(
                PaymentModel.invoice_id == invoice_id
            )
        )
        return sum_counted((row.amount, row.status) for row in rows)

    def _lock_invoice(self, invoice_id: UUID, actor: ActorContext) -> InvoiceModel:
        return self._load_scoped(InvoiceModel, INVOICE, invoice_id, actor, for_update=True)

    def _next_number(self, family: str, prefix: str, tenant_id: UUID, year: int) -> str:
        value = self._sequences.next_scoped_value(family, tenant_id, year)
        return format_document_number(prefix, year, value, self._config.number_width)

    def _set_amounts(self, model: InvoiceModel, amount_paid: Decimal) -> None:
        today = self._clock.today()
        model.amount_paid = amount_paid
        model.balance = model.principal - amount_paid
        status = derive_status(
            model.principal, amount_paid, model.due_date, today, InvoiceStatus(model.status)
        )
        if status is InvoiceStatus.PAID and model.status != InvoiceStatus.PAID.value:
            model.paid_date = today
        elif status is not InvoiceStatus.PAID:
            model.paid_date = None
        model.status = status.value

    def _reconcile(self, model: InvoiceModel) -> dict | None:
        """
        Bring the invoice in line with its payments and today's date.

        Returns the prior state when anything changed, else None.  Flushes.
        """
        counted = self._counted_total(model.id)
        before = _invoice_snapshot(model)
        self._set_amounts(model, counted)
        after = _invoice_snapshot(model)
        if after == before:
            return None
        self.session.flush()
        logger.warning(
            "invoice_repaired",
            extra={
                "invoice_id": str(model.id),
                "before_status": before["status"],
                "after_status": after["status"],
                "before_amount_paid": str(before["amount_paid"]),
                "after_amount_paid": str(after["amount_paid"]),
            },
        )
        return before

    def _emit_repair(
        self, actor: ActorContext, invoice: Invoice, before: dict | None
    ) -> None:
        if before is None:
            return
        self._emit(
            AuditRecord.from_actor(
                actor,
                AuditAction.INVOICE_REPAIRED,
                INVOICE,
                invoice.id,
                tenant_id=invoice.tenant_id,
                before=before,
                after={
                    "status": invoice.status.value,
                    "amount_paid": invoice.amount_paid,
                    "balance": invoice.balance,
                    "paid_date": invoice.paid_date,
                },
            )
        )

    def _sweep_overdue(self, actor: ActorContext, subject_id: UUID | None) -> None:
        today = self._clock.today()
        stmt = select(InvoiceModel).where(
            InvoiceModel.tenant_id == actor.tenant_id,
            InvoiceModel.status.in_([s.value for s in OVERDUE_ELIGIBLE]),
            InvoiceModel.due_date < today,
        )
        if subject_id is not None:
            stmt = stmt.where(InvoiceModel.subject_id == subject_id)
        stale = self.session.execute(stmt.with_for_update()).scalars().all()
        if not stale:
            return

        with self._transaction(actor, AuditAction.INVOICE_REPAIRED, INVOICE, stale[0].id):
            for model in stale:
                if INVOICE_WORKFLOW.find_transition(model.status, "mark_overdue"):
                    model.status = InvoiceStatus.OVERDUE.value
            self.session.flush()

        logger.info(
            "invoices_marked_overdue",
            extra={"count": len(stale), "invoice_ids": [str(m.id) for m in stale]},
        )
