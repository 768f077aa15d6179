"""
Hypothesis-based fuzzing.

Property-based tests that generate payment sequences and attendance tallies
and check that ledger invariants hold after every step.

Boundaries fuzzed here:
- Ledger sequences: mixed payments, refunds, voids, zero and oversized amounts
  against one invoice; balance and payment-sum invariants after each call
- Status derivation over arbitrary amounts and dates
- Attendance percentage bounds and monotonicity
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from school_kernel.exceptions import (
    IllegalTransitionError,
    InvalidAmountError,
    InvoiceClosedError,
)
from school_modules.billing.models import (
    InvoiceStatus,
    PaymentStatus,
    derive_status,
    sum_counted,
)
from school_modules.presence.models import attendance_percentage
from tests.conftest import TEST_PERIOD

TODAY = date(2025, 1, 15)

money = st.decimals(
    min_value=Decimal("-1500"),
    max_value=Decimal("1500"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


ledger_steps = st.one_of(
    st.tuples(st.just("pay"), money),
    st.tuples(st.just("void"), st.integers(min_value=0, max_value=7)),
)


class TestInvoiceBalanceInvariant:

    @given(
        principal=st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("2000"), places=2
        ),
        steps=st.lists(ledger_steps, min_size=1, max_size=10),
        due_offset=st.integers(min_value=-30, max_value=30),
    )
    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_balance_matches_payments(
        self, billing_service, make_subject, actor, principal, steps, due_offset
    ):
        subject = make_subject()
        invoice = billing_service.create_invoice(
            subject.id, principal, TODAY + timedelta(days=due_offset), TEST_PERIOD, actor
        )

        for i, (kind, value) in enumerate(steps):
            try:
                if kind == "pay":
                    billing_service.apply_payment(invoice.id, value, "cash", f"R-{i}", actor)
                else:
                    recorded = billing_service.list_payments(invoice.id, actor)
                    if recorded:
                        target = recorded[value % len(recorded)]
                        billing_service.void_payment(target.id, "Reversed", actor)
            except (InvalidAmountError, InvoiceClosedError, IllegalTransitionError):
                pass

            current = billing_service.get_invoice(invoice.id, actor)
            payments = billing_service.list_payments(invoice.id, actor)
            counted = sum_counted((p.amount, p.status) for p in payments)

            assert current.amount_paid == counted
            assert current.amount_paid >= 0
            assert current.balance == current.principal - current.amount_paid
            assert current.status is derive_status(
                current.principal, current.amount_paid, current.due_date, TODAY, current.status
            )
            assert (current.status is InvoiceStatus.PAID) == (current.balance <= 0)
            assert (current.paid_date is not None) == (current.status is InvoiceStatus.PAID)


class TestStatusDerivation:

    @given(
        principal=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1e6"), places=2),
        paid=st.decimals(min_value=Decimal("0"), max_value=Decimal("2e6"), places=2),
        due_offset=st.integers(min_value=-400, max_value=400),
    )
    def test_status_consistent_with_amounts(self, principal, paid, due_offset):
        due = TODAY + timedelta(days=due_offset)
        status = derive_status(principal, paid, due, TODAY, InvoiceStatus.UNPAID)

        if paid >= principal:
            assert status is InvoiceStatus.PAID
        elif due < TODAY:
            assert status is InvoiceStatus.OVERDUE
        elif paid > 0:
            assert status is InvoiceStatus.PARTIALLY_PAID
        else:
            assert status is InvoiceStatus.UNPAID

    @given(
        principal=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1e6"), places=2),
        paid=st.decimals(min_value=Decimal("0"), max_value=Decimal("2e6"), places=2),
    )
    def test_cancelled_is_sticky(self, principal, paid):
        status = derive_status(principal, paid, TODAY, TODAY, InvoiceStatus.CANCELLED)
        assert status is InvoiceStatus.CANCELLED

    @given(
        rows=st.lists(
            st.tuples(money, st.sampled_from(list(PaymentStatus))), max_size=20
        )
    )
    def test_uncounted_statuses_ignored(self, rows):
        expected = sum(
            (a for a, s in rows if s is not PaymentStatus.VOIDED),
            Decimal("0"),
        )
        assert sum_counted(rows) == expected


class TestAttendancePercentage:

    @given(data=st.data())
    def test_bounded(self, data):
        total = data.draw(st.integers(min_value=0, max_value=10_000))
        present = data.draw(st.integers(min_value=0, max_value=total))
        pct = attendance_percentage(present, total)
        assert 0 <= pct <= 100
        if total and present == total:
            assert pct == 100
        if present == 0:
            assert pct == 0

    @given(
        total=st.integers(min_value=1, max_value=5_000),
        present=st.integers(min_value=0, max_value=4_999),
    )
    def test_monotonic_in_present(self, total, present):
        if present >= total:
            return
        assert attendance_percentage(present, total) <= attendance_percentage(present + 1, total)
