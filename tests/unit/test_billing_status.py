"""
Tests for invoice status derivation.

Status is a pure function of principal, amount paid, due date and today:
balance <= 0 is paid, money applied is partially paid, otherwise unpaid,
and an open invoice past due reads as overdue.  Cancelled never changes.
"""

from datetime import date
from decimal import Decimal

import pytest

from school_modules.billing.models import (
    InvoiceStatus,
    PaymentStatus,
    counts_toward_paid,
    derive_status,
    format_document_number,
    is_overdue,
    sum_counted,
)

DUE = date(2025, 1, 31)
BEFORE_DUE = date(2025, 1, 15)
AFTER_DUE = date(2025, 2, 1)


class TestDeriveStatus:

    @pytest.mark.parametrize(
        "paid,expected",
        [
            (Decimal("0"), InvoiceStatus.UNPAID),
            (Decimal("400"), InvoiceStatus.PARTIALLY_PAID),
            (Decimal("1000"), InvoiceStatus.PAID),
            (Decimal("1200"), InvoiceStatus.PAID),
        ],
    )
    def test_before_due_date(self, paid, expected):
        assert derive_status(
            Decimal("1000"), paid, DUE, BEFORE_DUE, InvoiceStatus.UNPAID
        ) is expected

    def test_unpaid_past_due_is_overdue(self):
        assert derive_status(
            Decimal("1000"), Decimal("0"), DUE, AFTER_DUE, InvoiceStatus.UNPAID
        ) is InvoiceStatus.OVERDUE

    def test_partially_paid_past_due_is_overdue(self):
        assert derive_status(
            Decimal("1000"), Decimal("10"), DUE, AFTER_DUE, InvoiceStatus.PARTIALLY_PAID
        ) is InvoiceStatus.OVERDUE

    def test_paid_never_overdue(self):
        assert derive_status(
            Decimal("1000"), Decimal("1000"), DUE, AFTER_DUE, InvoiceStatus.OVERDUE
        ) is InvoiceStatus.PAID

    def test_due_date_itself_is_not_overdue(self):
        assert derive_status(
            Decimal("1000"), Decimal("0"), DUE, DUE, InvoiceStatus.UNPAID
        ) is InvoiceStatus.UNPAID

    def test_cancelled_is_sticky(self):
        assert derive_status(
            Decimal("1000"), Decimal("0"), DUE, AFTER_DUE, InvoiceStatus.CANCELLED
        ) is InvoiceStatus.CANCELLED


class TestIsOverdue:

    def test_closed_statuses_never_overdue(self):
        assert not is_overdue(InvoiceStatus.PAID, DUE, AFTER_DUE)
        assert not is_overdue(InvoiceStatus.CANCELLED, DUE, AFTER_DUE)

    def test_open_past_due(self):
        assert is_overdue(InvoiceStatus.UNPAID, DUE, AFTER_DUE)
        assert not is_overdue(InvoiceStatus.UNPAID, DUE, BEFORE_DUE)


class TestCountedPayments:

    def test_only_voided_excluded(self):
        assert not counts_toward_paid(PaymentStatus.VOIDED)
        assert not counts_toward_paid("voided")
        assert counts_toward_paid(PaymentStatus.SUCCESSFUL)
        assert counts_toward_paid("successful")

    def test_payment_statuses_are_recorded_or_voided(self):
        # refunds are negative successful payments, not a status
        assert {s.value for s in PaymentStatus} == {"successful", "voided"}

    @pytest.mark.parametrize("status", ["failed", "refunded", "pending"])
    def test_unknown_status_rejected(self, status):
        with pytest.raises(ValueError):
            counts_toward_paid(status)

    def test_sum_counted(self):
        total = sum_counted([
            (Decimal("300"), "successful"),
            (Decimal("200"), PaymentStatus.VOIDED),
            (Decimal("-100"), "successful"),
        ])
        assert total == Decimal("200")


class TestDocumentNumbers:

    def test_format(self):
        assert format_document_number("INV", 2025, 1) == "INV-2025-00001"
        assert format_document_number("PAY", 2025, 42, width=3) == "PAY-2025-042"

    def test_overflowing_width_keeps_digits(self):
        assert format_document_number("INV", 2025, 123456) == "INV-2025-123456"
