"""
ORM-level immutability tests.

Audit events are append-only.  Payment amounts, invoice lines and membership
placement are facts: lifecycle fields may change, the facts may not.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from school_kernel.exceptions import ImmutabilityViolationError
from school_kernel.models.audit_event import AuditEvent
from school_modules.billing.orm import InvoiceLineModel, PaymentModel
from school_modules.membership.orm import MembershipModel
from tests.conftest import TEST_PERIOD


@pytest.fixture
def payment_row(session, billing_service, subject, actor):
    invoice = billing_service.create_invoice(
        subject.id, Decimal("100"), date(2025, 2, 1), TEST_PERIOD, actor
    )
    applied = billing_service.apply_payment(invoice.id, Decimal("40"), "cash", "R-1", actor)
    return session.get(PaymentModel, applied.payment.id)


class TestAuditEventImmutability:

    def _first_event(self, session):
        return session.execute(select(AuditEvent).order_by(AuditEvent.seq).limit(1)).scalar_one()

    def test_update_blocked(self, session, subject):
        event = self._first_event(session)
        event.payload = {"forged": True}
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, subject):
        event = self._first_event(session)
        session.delete(event)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestPaymentImmutability:

    def test_amount_frozen(self, session, payment_row):
        payment_row.amount = Decimal("4000")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "amount" in str(exc_info.value)
        session.rollback()

    def test_reference_frozen(self, session, payment_row):
        payment_row.reference = "R-999"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_status_is_mutable(self, session, payment_row):
        payment_row.status = "voided"
        session.flush()
        session.rollback()

    def test_delete_blocked(self, session, payment_row):
        session.delete(payment_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestInvoiceLineImmutability:

    @pytest.fixture
    def line_row(self, session, billing_service, subject, actor):
        invoice = billing_service.create_invoice(
            subject.id, Decimal("100"), date(2025, 2, 1), TEST_PERIOD, actor,
            line_items=[{"description": "Tuition", "quantity": 1, "unit_price": "100"}],
        )
        return session.get(InvoiceLineModel, invoice.lines[0].id)

    def test_amount_frozen(self, session, line_row):
        line_row.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "amount" in str(exc_info.value)
        session.rollback()

    def test_description_frozen(self, session, line_row):
        line_row.description = "Discount"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, line_row):
        session.delete(line_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestMembershipImmutability:

    def test_group_frozen(self, session, subject, group, make_group, enrolled):
        other = make_group("Grade 6A")
        membership = enrolled(subject, group)
        row = session.get(MembershipModel, membership.id)
        row.group_id = other.id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_period_frozen(self, session, subject, group, enrolled):
        row = session.get(MembershipModel, enrolled(subject, group).id)
        row.period = "2030-2031"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_status_reason_mutable(self, session, subject, group, enrolled):
        row = session.get(MembershipModel, enrolled(subject, group).id)
        row.status_change_reason = "Note"
        session.flush()
        session.rollback()
