"""
Billing ORM Models (``school_modules.billing.orm``).

Responsibility
--------------
SQLAlchemy persistence for invoices and payments.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``school_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``school_kernel``.

Invariants enforced
-------------------
* Document numbers are unique per tenant (uq_invoices_tenant_number,
  uq_payments_tenant_number).
* A payment reference is unique per invoice (uq_payments_invoice_reference);
  it is the idempotency key of ``apply_payment``.
* Payment amount, invoice and number are frozen after insert, and invoice
  lines are frozen entirely (``school_modules._orm_registry``).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_kernel.db.base import TrackedBase


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    ``amount_paid`` and ``balance`` are denormalized from the payments and
    kept consistent by ``BillingService``; ``repair`` rebuilds them.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        Index("idx_invoices_tenant_status_due", "tenant_id", "status", "due_date"),
        Index("idx_invoices_subject_status", "subject_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_id: Mapped[UUID] = mapped_column(
        ForeignKey("subjects.id"), nullable=False
    )
    principal: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    period: Mapped[str] = mapped_column(String(50), nullable=False)
    term: Mapped[str | None] = mapped_column(String(50), nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="unpaid")
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issued_by_id: Mapped[UUID] = mapped_column(nullable=False)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.billing.models import Invoice, InvoiceStatus

        return Invoice(
            id=self.id,
            tenant_id=self.tenant_id,
            invoice_number=self.invoice_number,
            subject_id=self.subject_id,
            principal=self.principal,
            currency=self.currency,
            due_date=self.due_date,
            period=self.period,
            issue_date=self.issue_date,
            status=InvoiceStatus(self.status),
            amount_paid=self.amount_paid,
            balance=self.balance,
            paid_date=self.paid_date,
            description=self.description,
            term=self.term,
            notes=self.notes,
            cancellation_reason=self.cancellation_reason,
            issued_by_id=self.issued_by_id,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} ({self.status})>"


class InvoiceLineModel(TrackedBase):
    """
    ORM model for invoice line items.

    Lines are written with their invoice and never change afterwards.
    """

    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_lines_number"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.billing.models import InvoiceLine

        return InvoiceLine(
            id=self.id,
            invoice_id=self.invoice_id,
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            amount=self.amount,
        )


class PaymentModel(TrackedBase):
    """
    ORM model for payments.

    Rows are never deleted; a mistaken payment is voided.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payments_tenant_number"),
        UniqueConstraint("invoice_id", "reference", name="uq_payments_invoice_reference"),
        Index("idx_payments_invoice", "invoice_id"),
        Index("idx_payments_subject", "subject_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    subject_id: Mapped[UUID] = mapped_column(
        ForeignKey("subjects.id"), nullable=False
    )
    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="successful")
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    recorder_id: Mapped[UUID] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from school_modules.billing.models import Payment, PaymentMethod, PaymentStatus

        return Payment(
            id=self.id,
            tenant_id=self.tenant_id,
            invoice_id=self.invoice_id,
            subject_id=self.subject_id,
            payment_number=self.payment_number,
            amount=self.amount,
            currency=self.currency,
            method=PaymentMethod(self.method),
            reference=self.reference,
            payment_date=self.payment_date,
            recorder_id=self.recorder_id,
            status=PaymentStatus(self.status),
            notes=self.notes,
            void_reason=self.void_reason,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.payment_number}: {self.amount} ({self.status})>"
