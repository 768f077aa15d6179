"""
Billing Domain Models (``school_modules.billing.models``).

Responsibility
--------------
Frozen dataclass value objects for invoices and payments, and the pure
functions that derive an invoice's status from its stored amounts.

Architecture position
---------------------
**Modules layer** -- pure data definitions and calculations with ZERO I/O.
``BillingService`` persists; everything here is deterministic.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``balance == principal - amount_paid`` (``derive_status``).
* amount_paid counts every payment except ``voided`` ones, and never
  drops below zero.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from school_kernel.db.types import ZERO, round_money
from school_kernel.logging_config import get_logger

logger = get_logger("modules.billing.models")


class InvoiceStatus(Enum):
    """Invoice lifecycle states."""
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    """How money moved."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    MOBILE_MONEY = "mobile_money"
    CHECK = "check"


class PaymentStatus(Enum):
    """Payment processing states."""
    SUCCESSFUL = "successful"
    VOIDED = "voided"


# Payments whose amount never counts toward amount_paid
UNCOUNTED_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.VOIDED,
})

# Statuses the lazy sweep may reclassify as overdue
OVERDUE_ELIGIBLE: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.UNPAID,
    InvoiceStatus.PARTIALLY_PAID,
})


def counts_toward_paid(status: PaymentStatus | str) -> bool:
    return PaymentStatus(status) not in UNCOUNTED_PAYMENT_STATUSES


def sum_counted(payments: Iterable[tuple[Decimal, PaymentStatus | str]]) -> Decimal:
    """Sum of (amount, status) pairs whose status counts toward amount_paid."""
    total = ZERO
    for amount, status in payments:
        if counts_toward_paid(status):
            total += amount
    return total


def is_overdue(status: InvoiceStatus, due_date: date, today: date) -> bool:
    """True when an open invoice is past its due date."""
    if status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
        return False
    return due_date < today


def derive_status(
    principal: Decimal,
    amount_paid: Decimal,
    due_date: date,
    today: date,
    current: InvoiceStatus,
) -> InvoiceStatus:
    """
    Status implied by the stored amounts.

    ``balance <= 0`` is paid, any money applied is partially paid, otherwise
    unpaid; an unpaid or partially paid invoice past due is overdue.  A
    cancelled invoice stays cancelled.
    """
    if current is InvoiceStatus.CANCELLED:
        return current
    balance = principal - amount_paid
    if balance <= ZERO:
        return InvoiceStatus.PAID
    status = InvoiceStatus.PARTIALLY_PAID if amount_paid > ZERO else InvoiceStatus.UNPAID
    if is_overdue(status, due_date, today):
        return InvoiceStatus.OVERDUE
    return status


def format_document_number(prefix: str, year: int, value: int, width: int = 5) -> str:
    """``INV-2025-00001`` style document number."""
    return f"{prefix}-{year:04d}-{value:0{width}d}"


def line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """Extended amount of one line, rounded to money precision."""
    return round_money(quantity * unit_price)


@dataclass(frozen=True)
class InvoiceLine:
    """One charge on an invoice (tuition, transport, books)."""
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    id: UUID | None = None
    invoice_id: UUID | None = None


@dataclass(frozen=True)
class Invoice:
    """A bill addressed to one subject."""
    id: UUID
    tenant_id: UUID
    invoice_number: str
    subject_id: UUID
    principal: Decimal
    currency: str
    due_date: date
    period: str
    issue_date: date
    status: InvoiceStatus = InvoiceStatus.UNPAID
    amount_paid: Decimal = ZERO
    balance: Decimal = ZERO
    paid_date: date | None = None
    description: str | None = None
    term: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    issued_by_id: UUID | None = None
    lines: tuple[InvoiceLine, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.status not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


@dataclass(frozen=True)
class Payment:
    """Money applied to exactly one invoice.  Negative amounts are refunds."""
    id: UUID
    tenant_id: UUID
    invoice_id: UUID
    subject_id: UUID
    payment_number: str
    amount: Decimal
    currency: str
    method: PaymentMethod
    reference: str
    payment_date: date
    recorder_id: UUID
    status: PaymentStatus = PaymentStatus.SUCCESSFUL
    notes: str | None = None
    void_reason: str | None = None

    @property
    def is_refund(self) -> bool:
        return self.amount < ZERO


@dataclass(frozen=True)
class PaymentApplication:
    """Outcome of applying or voiding a payment."""
    payment: Payment
    invoice: Invoice
    replayed: bool = False
