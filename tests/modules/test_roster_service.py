"""
Tests for the Roster Service.

Validates:
- Subject registration and group creation, with uniqueness per tenant
- Soft delete: withdraw_subject flags the subject and closes its memberships
- Reads are tenant-scoped
"""

from uuid import uuid4

import pytest

from school_kernel.exceptions import (
    DuplicateRecordError,
    NotFoundError,
    TenantMismatchError,
    ValidationError,
)
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import InMemoryAuditSink
from school_modules.membership.models import MembershipStatus
from school_modules.roster.models import SubjectStatus
from school_modules.roster.service import RosterService
from tests.conftest import TEST_PERIOD, TEST_TENANT_ID


class TestRegisterSubject:

    def test_register(self, roster_service, actor):
        subject = roster_service.register_subject(
            TEST_TENANT_ID, "Ada", "Lovelace", "ADM-001", actor
        )
        assert subject.status is SubjectStatus.ACTIVE
        assert subject.display_name == "Lovelace, Ada"
        assert roster_service.get_subject(subject.id, actor) == subject

    def test_names_are_trimmed(self, roster_service, actor):
        subject = roster_service.register_subject(
            TEST_TENANT_ID, "  Ada ", " Lovelace", " ADM-002 ", actor
        )
        assert subject.first_name == "Ada"
        assert subject.admission_number == "ADM-002"

    def test_blank_name_rejected(self, roster_service, actor):
        with pytest.raises(ValidationError) as exc_info:
            roster_service.register_subject(TEST_TENANT_ID, " ", "Lovelace", "ADM-003", actor)
        assert exc_info.value.field == "first_name"

    def test_duplicate_admission_number(self, make_subject):
        make_subject(admission_number="ADM-100")
        with pytest.raises(DuplicateRecordError):
            make_subject(admission_number="ADM-100")

    def test_same_admission_number_in_other_tenant(self, make_subject, other_actor):
        make_subject(admission_number="ADM-200")
        other = make_subject(admission_number="ADM-200", as_actor=other_actor)
        assert other.tenant_id == other_actor.tenant_id

    def test_cannot_register_into_other_tenant(self, roster_service, other_actor):
        with pytest.raises(TenantMismatchError):
            roster_service.register_subject(
                TEST_TENANT_ID, "Ada", "Lovelace", "ADM-300", other_actor
            )


class TestCreateGroup:

    def test_create(self, roster_service, actor):
        group = roster_service.create_group("Grade 5A", TEST_PERIOD, actor, capacity=25)
        assert group.tenant_id == actor.tenant_id
        assert group.capacity == 25
        assert group.is_active
        assert roster_service.get_group(group.id, actor) == group

    def test_duplicate_name_in_period(self, make_group):
        make_group("Grade 5A")
        with pytest.raises(DuplicateRecordError):
            make_group("Grade 5A")

    def test_same_name_next_period(self, make_group):
        make_group("Grade 5A", period="2024-2025")
        group = make_group("Grade 5A", period="2025-2026")
        assert group.period == "2025-2026"

    def test_capacity_must_be_positive(self, roster_service, actor):
        with pytest.raises(ValidationError):
            roster_service.create_group("Grade 5B", TEST_PERIOD, actor, capacity=0)


class TestReads:

    def test_unknown_subject(self, roster_service, actor):
        with pytest.raises(NotFoundError):
            roster_service.get_subject(uuid4(), actor)

    def test_other_tenant_subject(self, roster_service, subject, other_actor):
        with pytest.raises(TenantMismatchError):
            roster_service.get_subject(subject.id, other_actor)

    def test_superadmin_reads_any_tenant(self, roster_service, subject, superadmin):
        assert roster_service.get_subject(subject.id, superadmin).id == subject.id


class TestWithdrawSubject:

    def test_withdraw_closes_active_memberships(
        self, roster_service, membership_service, make_group, subject, actor, enrolled
    ):
        first = enrolled(subject, make_group())
        second = enrolled(subject, make_group())

        withdrawn = roster_service.withdraw_subject(subject.id, actor, reason="Moved away")

        assert withdrawn.status is SubjectStatus.WITHDRAWN
        assert membership_service.find_active_by_subject(subject.id, actor) == []
        for membership_id in (first.id, second.id):
            closed = membership_service.get(membership_id, actor)
            assert closed.status is MembershipStatus.WITHDRAWN
            assert closed.status_change_reason == "Subject record withdrawn"

    def test_withdraw_keeps_history(
        self, roster_service, membership_service, group, subject, actor, enrolled
    ):
        enrolled(subject, group)
        roster_service.withdraw_subject(subject.id, actor)
        history = membership_service.history(subject.id, actor)
        assert len(history) == 1
        assert history[0].status is MembershipStatus.WITHDRAWN

    def test_withdraw_is_idempotent(self, session, deterministic_clock, subject, actor):
        sink = InMemoryAuditSink()
        service = RosterService(session, clock=deterministic_clock, audit_sink=sink)
        service.withdraw_subject(subject.id, actor)
        again = service.withdraw_subject(subject.id, actor)

        assert again.status is SubjectStatus.WITHDRAWN
        assert sink.actions() == [AuditAction.SUBJECT_WITHDRAWN]

    def test_withdraw_audits_each_closed_membership(
        self, session, deterministic_clock, group, subject, actor, enrolled
    ):
        membership = enrolled(subject, group)
        sink = InMemoryAuditSink()
        service = RosterService(session, clock=deterministic_clock, audit_sink=sink)
        service.withdraw_subject(subject.id, actor)

        assert sink.actions() == [
            AuditAction.SUBJECT_WITHDRAWN,
            AuditAction.MEMBERSHIP_WITHDRAWN,
        ]
        assert sink.records[1].entity_id == membership.id

    def test_withdrawn_subject_cannot_enroll(
        self, roster_service, membership_service, group, subject, actor
    ):
        roster_service.withdraw_subject(subject.id, actor)
        with pytest.raises(ValidationError):
            membership_service.enroll(subject.id, group.id, actor)
