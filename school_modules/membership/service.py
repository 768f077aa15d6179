"""
Membership Ledger Service - enrollment, transfer and closing of memberships.

Owns the enrollment history of every subject.  Each public mutation is one
transaction: it commits on success, rolls back on failure, and hands one
audit record to the sink after the outcome is settled.

Uniqueness of active rows is enforced by the storage layer (partial unique
index); the pre-insert lookup only exists to produce a precise error.  A
concurrent duplicate that slips past the lookup is translated from
IntegrityError into ConflictError.

Usage:
    service = MembershipService(session, clock=clock)
    membership = service.enroll(subject_id, group_id, actor)
    result = service.transfer(membership.id, other_group_id, "Moved", actor)
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock
from school_kernel.exceptions import (
    DuplicateActiveMembershipError,
    DuplicateRecordError,
    GroupCapacityExceededError,
    IllegalTransitionError,
    PeriodMismatchError,
    ValidationError,
)
from school_kernel.logging_config import get_logger
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import AuditSink
from school_kernel.services.base import BaseService
from school_kernel.utils.idempotency import generate_idempotency_key
from school_modules.membership.config import MembershipConfig
from school_modules.membership.models import (
    Membership,
    MembershipStatus,
    TransferResult,
)
from school_modules.membership.orm import MembershipModel
from school_modules.membership.workflows import MEMBERSHIP_WORKFLOW
from school_modules.roster.models import SubjectStatus
from school_modules.roster.orm import GroupModel, SubjectModel

logger = get_logger("modules.membership.service")

ENTITY_TYPE = "Membership"

_CLOSING_ACTIONS: dict[str, AuditAction] = {
    "complete": AuditAction.MEMBERSHIP_COMPLETED,
    "withdraw": AuditAction.MEMBERSHIP_WITHDRAWN,
    "suspend": AuditAction.MEMBERSHIP_SUSPENDED,
}


class MembershipService(BaseService):
    """
    Membership ledger.

    Transaction boundary: this service commits on success, rolls back on
    failure.  ``close_membership`` is the one flush-only entry point, used by
    the roster when a subject withdrawal cascades.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        config: MembershipConfig | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._config = config or MembershipConfig()

    @property
    def config(self) -> MembershipConfig:
        return self._config

    # =========================================================================
    # Mutations
    # =========================================================================

    def enroll(
        self,
        subject_id: UUID,
        group_id: UUID,
        actor: ActorContext,
        period: str | None = None,
        notes: str | None = None,
    ) -> Membership:
        """
        Enroll a subject in a group.

        ``period`` defaults to the group's period and is always re-validated
        against it.

        Raises:
            NotFoundError / TenantMismatchError: subject or group.
            PeriodMismatchError: supplied period differs from the group's.
            ValidationError: subject withdrawn, group inactive.
            DuplicateActiveMembershipError: already active in (group, period).
            GroupCapacityExceededError: group full and capacity enforced.
        """
        membership_id = uuid4()
        logger.info(
            "membership_enroll_started",
            extra={"subject_id": str(subject_id), "group_id": str(group_id)},
        )

        with self._transaction(
            actor, AuditAction.MEMBERSHIP_ENROLLED, ENTITY_TYPE, membership_id
        ):
            subject = self._load_scoped(SubjectModel, "Subject", subject_id, actor)
            group = self._load_scoped(GroupModel, "Group", group_id, actor)
            self._check_enrollable(subject, group)

            resolved_period = (period or group.period).strip()
            if resolved_period != group.period:
                raise PeriodMismatchError(group.id, group.period, resolved_period)

            self._check_not_active_in(subject.id, group, resolved_period)
            self._check_capacity(group)

            model = MembershipModel(
                id=membership_id,
                tenant_id=subject.tenant_id,
                subject_id=subject.id,
                group_id=group.id,
                period=resolved_period,
                status=MembershipStatus.ACTIVE.value,
                enrollment_date=self._clock.today(),
                notes=notes,
                created_by_id=actor.actor_id,
            )
            self.session.add(model)
            self._flush_unique(
                DuplicateActiveMembershipError(subject.id, group.id, resolved_period)
            )
            membership = model.to_dto()

        logger.info(
            "membership_enrolled",
            extra={
                "membership_id": str(membership.id),
                "subject_id": str(membership.subject_id),
                "group_id": str(membership.group_id),
                "period": membership.period,
            },
        )
        self._record(
            actor,
            AuditAction.MEMBERSHIP_ENROLLED,
            ENTITY_TYPE,
            membership.id,
            tenant_id=membership.tenant_id,
            after=_snapshot(membership),
        )
        return membership

    def transfer(
        self,
        membership_id: UUID,
        target_group_id: UUID,
        reason: str,
        actor: ActorContext,
    ) -> TransferResult:
        """
        Move an active membership to another group.

        The source row is locked, marked ``transferred`` and linked to a new
        ``active`` successor on the target group (carrying the target's
        period).  Both writes commit together or not at all.

        Raises:
            IllegalTransitionError: source is not ``active``.
            DuplicateActiveMembershipError: subject already active in target.
            DuplicateRecordError: a successor for this transfer already exists.
            GroupCapacityExceededError: target full and capacity enforced.
        """
        logger.info(
            "membership_transfer_started",
            extra={
                "membership_id": str(membership_id),
                "target_group_id": str(target_group_id),
            },
        )

        with self._transaction(
            actor, AuditAction.MEMBERSHIP_TRANSFERRED, ENTITY_TYPE, membership_id
        ):
            source = self._load_scoped(
                MembershipModel, ENTITY_TYPE, membership_id, actor, for_update=True
            )
            self._require_transition(source, "transfer")

            target = self._load_scoped(GroupModel, "Group", target_group_id, actor)
            if not target.is_active:
                raise ValidationError(
                    f"Group {target.id} is not active", field="target_group_id"
                )
            if target.tenant_id != source.tenant_id:
                raise ValidationError(
                    "Target group belongs to a different tenant",
                    field="target_group_id",
                )
            self._check_not_active_in(source.subject_id, target, target.period)
            self._check_capacity(target)

            key = generate_idempotency_key(
                "membership.transfer", source.id, target.id
            )
            now = self._clock.now()

            # Successor goes in first so the source's FK link resolves
            successor = MembershipModel(
                id=uuid4(),
                tenant_id=source.tenant_id,
                subject_id=source.subject_id,
                group_id=target.id,
                period=target.period,
                status=MembershipStatus.ACTIVE.value,
                enrollment_date=self._clock.today(),
                idempotency_key=key,
                notes=reason,
                created_by_id=actor.actor_id,
            )
            self.session.add(successor)
            self._flush_unique(DuplicateRecordError(ENTITY_TYPE, key))

            source.status = MembershipStatus.TRANSFERRED.value
            source.status_change_date = now
            source.status_change_reason = reason
            source.successor_membership_id = successor.id
            source.updated_by_id = actor.actor_id
            self.session.flush()

            result = TransferResult(source=source.to_dto(), successor=successor.to_dto())

        logger.info(
            "membership_transferred",
            extra={
                "source_id": str(result.source.id),
                "successor_id": str(result.successor.id),
                "target_group_id": str(result.successor.group_id),
            },
        )
        self._record(
            actor,
            AuditAction.MEMBERSHIP_TRANSFERRED,
            ENTITY_TYPE,
            result.source.id,
            tenant_id=result.source.tenant_id,
            before={"status": MembershipStatus.ACTIVE.value, "group_id": result.source.group_id},
            after=_snapshot(result.source),
            successor=_snapshot(result.successor),
            reason=reason,
        )
        return result

    def complete(
        self,
        membership_id: UUID,
        final_grade: str | None,
        actor: ActorContext,
    ) -> Membership:
        """Close an active membership as ``completed`` with a final grade."""
        return self._close_and_commit(
            membership_id, "complete", actor, final_grade=final_grade
        )

    def withdraw(
        self,
        membership_id: UUID,
        reason: str,
        actor: ActorContext,
    ) -> Membership:
        """Close an active membership as ``withdrawn``."""
        return self._close_and_commit(membership_id, "withdraw", actor, reason=reason)

    def suspend(
        self,
        membership_id: UUID,
        reason: str,
        actor: ActorContext,
    ) -> Membership:
        """Close an active membership as ``suspended``."""
        return self._close_and_commit(membership_id, "suspend", actor, reason=reason)

    def close_membership(
        self,
        model: MembershipModel,
        action: str,
        actor: ActorContext,
        reason: str | None = None,
        final_grade: str | None = None,
    ) -> Membership:
        """
        Apply a closing transition to a loaded row.  Flushes, never commits.

        Raises:
            IllegalTransitionError: ``model`` is not ``active``.
        """
        transition = self._require_transition(model, action)
        model.status = transition.to_state
        model.status_change_date = self._clock.now()
        model.status_change_reason = reason
        if final_grade is not None:
            model.final_grade = final_grade
        model.updated_by_id = actor.actor_id
        self.session.flush()
        return model.to_dto()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, membership_id: UUID, actor: ActorContext) -> Membership:
        """Load one membership."""
        return self._load_scoped(
            MembershipModel, ENTITY_TYPE, membership_id, actor
        ).to_dto()

    def find_active_by_subject(
        self, subject_id: UUID, actor: ActorContext
    ) -> list[Membership]:
        """Active memberships of a subject, any group."""
        self._load_scoped(SubjectModel, "Subject", subject_id, actor)
        rows = self.session.execute(
            select(MembershipModel)
            .where(
                MembershipModel.subject_id == subject_id,
                MembershipModel.status == MembershipStatus.ACTIVE.value,
            )
            .order_by(MembershipModel.period.desc(), MembershipModel.enrollment_date.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def find_active_by_group(
        self, group_id: UUID, actor: ActorContext
    ) -> list[Membership]:
        """Active memberships of a group."""
        self._load_scoped(GroupModel, "Group", group_id, actor)
        return [m.to_dto() for m in self.active_rows_for_group(group_id)]

    def find_by_period(
        self,
        period: str,
        actor: ActorContext,
        group_id: UUID | None = None,
    ) -> list[Membership]:
        """
        Every membership of a period in the actor's tenant, any status.

        Narrowed to one group when ``group_id`` is given.  Ordered by
        enrollment date, oldest first.
        """
        if not period or not period.strip():
            raise ValidationError("period is required", field="period")
        stmt = select(MembershipModel).where(MembershipModel.period == period.strip())
        if group_id is not None:
            group = self._load_scoped(GroupModel, "Group", group_id, actor)
            stmt = stmt.where(MembershipModel.group_id == group.id)
        else:
            stmt = stmt.where(MembershipModel.tenant_id == actor.tenant_id)
        rows = self.session.execute(
            stmt.order_by(MembershipModel.enrollment_date, MembershipModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def history(self, subject_id: UUID, actor: ActorContext) -> list[Membership]:
        """
        Full enrollment history of a subject, newest first.

        Ordered by period descending, then enrollment date descending.
        """
        self._load_scoped(SubjectModel, "Subject", subject_id, actor)
        rows = self.session.execute(
            select(MembershipModel)
            .where(MembershipModel.subject_id == subject_id)
            .order_by(
                MembershipModel.period.desc(),
                MembershipModel.enrollment_date.desc(),
                MembershipModel.created_at.desc(),
            )
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def active_rows_for_group(self, group_id: UUID) -> list[MembershipModel]:
        """Active membership rows of a group, unscoped.  Callers check tenant."""
        return list(
            self.session.execute(
                select(MembershipModel).where(
                    MembershipModel.group_id == group_id,
                    MembershipModel.status == MembershipStatus.ACTIVE.value,
                )
            ).scalars().all()
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _close_and_commit(
        self,
        membership_id: UUID,
        action: str,
        actor: ActorContext,
        reason: str | None = None,
        final_grade: str | None = None,
    ) -> Membership:
        audit_action = _CLOSING_ACTIONS[action]
        logger.info(
            "membership_close_started",
            extra={"membership_id": str(membership_id), "action": action},
        )

        with self._transaction(actor, audit_action, ENTITY_TYPE, membership_id):
            model = self._load_scoped(
                MembershipModel, ENTITY_TYPE, membership_id, actor, for_update=True
            )
            membership = self.close_membership(
                model, action, actor, reason=reason, final_grade=final_grade
            )

        logger.info(
            "membership_closed",
            extra={
                "membership_id": str(membership.id),
                "status": membership.status.value,
            },
        )
        self._record(
            actor,
            audit_action,
            ENTITY_TYPE,
            membership.id,
            tenant_id=membership.tenant_id,
            before={"status": MembershipStatus.ACTIVE.value},
            after=_snapshot(membership),
        )
        return membership

    def _require_transition(self, model: MembershipModel, action: str):
        transition = MEMBERSHIP_WORKFLOW.find_transition(model.status, action)
        if transition is None:
            logger.warning(
                "membership_transition_rejected",
                extra={
                    "membership_id": str(model.id),
                    "status": model.status,
                    "action": action,
                },
            )
            raise IllegalTransitionError(ENTITY_TYPE, model.id, model.status, action)
        return transition

    def _check_enrollable(self, subject: SubjectModel, group: GroupModel) -> None:
        if subject.status != SubjectStatus.ACTIVE.value:
            raise ValidationError(
                f"Subject {subject.id} is {subject.status}", field="subject_id"
            )
        if not group.is_active:
            raise ValidationError(f"Group {group.id} is not active", field="group_id")
        if subject.tenant_id != group.tenant_id:
            raise ValidationError(
                "Subject and group belong to different tenants", field="group_id"
            )

    def _check_not_active_in(
        self, subject_id: UUID, group: GroupModel, period: str
    ) -> None:
        existing = self.session.execute(
            select(MembershipModel.id).where(
                MembershipModel.subject_id == subject_id,
                MembershipModel.group_id == group.id,
                MembershipModel.period == period,
                MembershipModel.status == MembershipStatus.ACTIVE.value,
            )
        ).first()
        if existing is not None:
            raise DuplicateActiveMembershipError(subject_id, group.id, period)

    def _check_capacity(self, group: GroupModel) -> None:
        if not self._config.enforce_capacity:
            return
        active_count = self.session.execute(
            select(func.count(MembershipModel.id)).where(
                MembershipModel.group_id == group.id,
                MembershipModel.period == group.period,
                MembershipModel.status == MembershipStatus.ACTIVE.value,
            )
        ).scalar_one()
        if active_count >= group.capacity:
            raise GroupCapacityExceededError(group.id, group.capacity)


def _snapshot(membership: Membership) -> dict:
    return {
        "status": membership.status.value,
        "subject_id": membership.subject_id,
        "group_id": membership.group_id,
        "period": membership.period,
        "status_change_reason": membership.status_change_reason,
        "successor_membership_id": membership.successor_membership_id,
        "final_grade": membership.final_grade,
    }
