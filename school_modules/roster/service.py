"""
Roster Service - subject registration, group creation, subject withdrawal.

Keeps the subject and group records the three ledgers reference.  Subjects
are never deleted: ``withdraw_subject`` sets the terminal ``withdrawn`` flag
and closes every active membership of the subject in the same transaction.

Usage:
    service = RosterService(session, clock=clock)
    subject = service.register_subject(tenant_id, "Ada", "Lovelace", "ADM-001", actor)
    group = service.create_group("Grade 5A", "2024-2025", actor)
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock
from school_kernel.exceptions import DuplicateRecordError, ValidationError
from school_kernel.logging_config import get_logger
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import AuditRecord, AuditSink
from school_kernel.services.base import BaseService
from school_modules.membership.config import MembershipConfig
from school_modules.membership.models import MembershipStatus
from school_modules.membership.orm import MembershipModel
from school_modules.membership.service import MembershipService
from school_modules.roster.models import Group, Subject, SubjectStatus
from school_modules.roster.orm import GroupModel, SubjectModel

logger = get_logger("modules.roster.service")


def _required(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


class RosterService(BaseService):
    """
    Subject and group records.

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        membership_config: MembershipConfig | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._memberships = MembershipService(
            session, self._clock, self._audit, config=membership_config
        )

    def register_subject(
        self,
        tenant_id: UUID,
        first_name: str,
        last_name: str,
        admission_number: str,
        actor: ActorContext,
    ) -> Subject:
        """
        Register a new subject under ``tenant_id``.

        Raises:
            TenantMismatchError: actor may not write to ``tenant_id``.
            ValidationError: blank name or admission number.
            DuplicateRecordError: admission number already used in the tenant.
        """
        subject_id = uuid4()
        with self._transaction(
            actor, AuditAction.SUBJECT_REGISTERED, "Subject", subject_id
        ):
            actor.ensure_tenant(tenant_id)
            subject = Subject(
                id=subject_id,
                tenant_id=tenant_id,
                first_name=_required(first_name, "first_name"),
                last_name=_required(last_name, "last_name"),
                admission_number=_required(admission_number, "admission_number"),
            )
            taken = self.session.execute(
                select(SubjectModel.id).where(
                    SubjectModel.tenant_id == tenant_id,
                    SubjectModel.admission_number == subject.admission_number,
                )
            ).first()
            conflict = DuplicateRecordError("Subject", subject.admission_number)
            if taken is not None:
                raise conflict
            self.session.add(SubjectModel.from_dto(subject, created_by_id=actor.actor_id))
            self._flush_unique(conflict)

        logger.info(
            "subject_registered",
            extra={
                "subject_id": str(subject.id),
                "admission_number": subject.admission_number,
            },
        )
        self._record(
            actor,
            AuditAction.SUBJECT_REGISTERED,
            "Subject",
            subject.id,
            tenant_id=tenant_id,
            admission_number=subject.admission_number,
        )
        return subject

    def create_group(
        self,
        name: str,
        period: str,
        actor: ActorContext,
        capacity: int = 30,
        teacher_id: UUID | None = None,
    ) -> Group:
        """
        Create a group in the actor's tenant.

        Raises:
            ValidationError: blank name or period, capacity below 1.
            DuplicateRecordError: (tenant, period, name) already exists.
        """
        group_id = uuid4()
        with self._transaction(actor, AuditAction.GROUP_CREATED, "Group", group_id):
            if capacity < 1:
                raise ValidationError("capacity must be at least 1", field="capacity")
            group = Group(
                id=group_id,
                tenant_id=actor.tenant_id,
                name=_required(name, "name"),
                period=_required(period, "period"),
                capacity=capacity,
                teacher_id=teacher_id,
            )
            taken = self.session.execute(
                select(GroupModel.id).where(
                    GroupModel.tenant_id == group.tenant_id,
                    GroupModel.period == group.period,
                    GroupModel.name == group.name,
                )
            ).first()
            conflict = DuplicateRecordError("Group", f"{group.period}/{group.name}")
            if taken is not None:
                raise conflict
            self.session.add(GroupModel.from_dto(group, created_by_id=actor.actor_id))
            self._flush_unique(conflict)

        logger.info(
            "group_created",
            extra={"group_id": str(group.id), "period": group.period, "group_name": group.name},
        )
        self._record(
            actor,
            AuditAction.GROUP_CREATED,
            "Group",
            group.id,
            name=group.name,
            period=group.period,
            capacity=group.capacity,
        )
        return group

    def get_subject(self, subject_id: UUID, actor: ActorContext) -> Subject:
        return self._load_scoped(SubjectModel, "Subject", subject_id, actor).to_dto()

    def get_group(self, group_id: UUID, actor: ActorContext) -> Group:
        return self._load_scoped(GroupModel, "Group", group_id, actor).to_dto()

    def withdraw_subject(
        self,
        subject_id: UUID,
        actor: ActorContext,
        reason: str | None = None,
    ) -> Subject:
        """
        Soft-delete a subject.

        Sets the ``withdrawn`` flag and withdraws every active membership of
        the subject.  A subject that is already withdrawn is returned
        unchanged.
        """
        with self._transaction(
            actor, AuditAction.SUBJECT_WITHDRAWN, "Subject", subject_id
        ):
            model = self._load_scoped(
                SubjectModel, "Subject", subject_id, actor, for_update=True
            )
            if model.status == SubjectStatus.WITHDRAWN.value:
                logger.info(
                    "subject_already_withdrawn",
                    extra={"subject_id": str(subject_id)},
                )
                return model.to_dto()

            previous_status = model.status
            model.status = SubjectStatus.WITHDRAWN.value
            model.updated_by_id = actor.actor_id

            active = self.session.execute(
                select(MembershipModel)
                .where(
                    MembershipModel.subject_id == subject_id,
                    MembershipModel.status == MembershipStatus.ACTIVE.value,
                )
                .with_for_update()
            ).scalars().all()
            closing_reason = self._memberships.config.subject_withdrawal_reason
            closed = [
                self._memberships.close_membership(
                    row, "withdraw", actor, reason=closing_reason
                )
                for row in active
            ]
            self.session.flush()
            subject = model.to_dto()

        logger.info(
            "subject_withdrawn",
            extra={
                "subject_id": str(subject.id),
                "memberships_closed": len(closed),
            },
        )
        self._record(
            actor,
            AuditAction.SUBJECT_WITHDRAWN,
            "Subject",
            subject.id,
            tenant_id=subject.tenant_id,
            before={"status": previous_status},
            after={"status": subject.status.value},
            reason=reason,
            memberships_closed=[str(m.id) for m in closed],
        )
        for membership in closed:
            self._emit(
                AuditRecord.from_actor(
                    actor,
                    AuditAction.MEMBERSHIP_WITHDRAWN,
                    "Membership",
                    membership.id,
                    tenant_id=membership.tenant_id,
                    before={"status": MembershipStatus.ACTIVE.value},
                    after={
                        "status": membership.status.value,
                        "status_change_reason": membership.status_change_reason,
                    },
                )
            )
        return subject
