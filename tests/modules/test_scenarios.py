"""
End-to-end ledger scenarios.

Each test walks one school workflow across services and checks that a
refused operation leaves no partial state behind.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from school_kernel.exceptions import StateError, UnenrolledSubjectsError
from school_modules.billing.models import InvoiceStatus
from school_modules.membership.models import MembershipStatus
from school_modules.membership.orm import MembershipModel
from school_modules.presence.orm import PresenceRecordModel
from tests.conftest import TEST_PERIOD

TODAY = date(2025, 1, 15)


class TestInvoiceSettlement:

    def test_two_payments_settle_then_closed(self, billing_service, subject, actor):
        invoice = billing_service.create_invoice(
            subject.id, Decimal("1000"), date(2025, 3, 1), TEST_PERIOD, actor
        )

        a = billing_service.apply_payment(invoice.id, Decimal("400"), "cash", "A", actor)
        assert a.invoice.status is InvoiceStatus.PARTIALLY_PAID
        assert a.invoice.balance == Decimal("600")

        b = billing_service.apply_payment(invoice.id, Decimal("600"), "cash", "B", actor)
        assert b.invoice.status is InvoiceStatus.PAID
        assert b.invoice.balance == Decimal("0")
        assert b.invoice.paid_date is not None

        with pytest.raises(StateError):
            billing_service.apply_payment(invoice.id, Decimal("1"), "cash", "C", actor)

        assert len(billing_service.list_payments(invoice.id, actor)) == 2
        assert billing_service.get_invoice(invoice.id, actor).status is InvoiceStatus.PAID

    def test_cancel_with_money_applied_leaves_status(self, billing_service, subject, actor):
        invoice = billing_service.create_invoice(
            subject.id, Decimal("1000"), date(2025, 3, 1), TEST_PERIOD, actor
        )
        billing_service.apply_payment(invoice.id, Decimal("400"), "cash", "A", actor)

        with pytest.raises(StateError):
            billing_service.cancel(invoice.id, actor)

        current = billing_service.get_invoice(invoice.id, actor)
        assert current.status is InvoiceStatus.PARTIALLY_PAID
        assert current.amount_paid == Decimal("400")


class TestAttendanceBatchAllOrNothing:

    def test_unenrolled_subject_fails_whole_batch(
        self, session, presence_service, make_subject, group, enrolled, actor
    ):
        s1 = make_subject("Grace", "Hopper")
        s2 = make_subject("Ada", "Lovelace")
        s3 = make_subject("Alan", "Turing")
        enrolled(s1, group)
        enrolled(s2, group)

        with pytest.raises(UnenrolledSubjectsError) as exc_info:
            presence_service.mark_group_attendance(
                group.id,
                TODAY,
                [
                    {"subject_id": s1.id, "status": "present"},
                    {"subject_id": s2.id, "status": "absent"},
                    {"subject_id": s3.id, "status": "present"},
                ],
                actor,
            )

        assert exc_info.value.subject_ids == [str(s3.id)]
        stored = session.execute(
            select(func.count(PresenceRecordModel.id))
        ).scalar_one()
        assert stored == 0
        sheet = presence_service.get_group_attendance(group.id, TODAY, actor)
        assert all(r.is_placeholder for r in sheet)


class TestTransferChain:

    def test_transferred_membership_cannot_transfer_again(
        self, session, membership_service, subject, make_group, actor
    ):
        first = make_group("Grade 5A")
        second = make_group("Grade 5B")
        third = make_group("Grade 5C")
        membership = membership_service.enroll(subject.id, first.id, actor)
        membership_service.transfer(membership.id, second.id, "Timetable clash", actor)

        with pytest.raises(StateError):
            membership_service.transfer(membership.id, third.id, "Again", actor)

        rows = session.execute(
            select(MembershipModel).where(MembershipModel.subject_id == subject.id)
        ).scalars().all()
        assert len(rows) == 2
        assert not any(r.group_id == third.id for r in rows)
        active = membership_service.find_active_by_subject(subject.id, actor)
        assert [m.group_id for m in active] == [second.id]
        assert membership_service.get(membership.id, actor).status is MembershipStatus.TRANSFERRED
