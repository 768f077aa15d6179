"""
Presence Ledger Service - daily attendance for whole groups.

The main operation is ``mark_group_attendance``: read the group's active
memberships, validate every line of the batch against them, then upsert all
lines keyed by (subject, day) in one transaction.  A batch with a single bad
line writes nothing.  One audit record summarizes the batch.

Reads derive counts and percentages on the fly from stored statuses.

Usage:
    service = PresenceService(session, clock=clock)
    result = service.mark_group_attendance(
        group_id, date(2025, 1, 15),
        [{"subject_id": s1, "status": "present"}], actor,
    )
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock
from school_kernel.domain.values import DateRange, normalize_day
from school_kernel.exceptions import (
    DuplicateRecordError,
    UnenrolledSubjectsError,
    ValidationError,
)
from school_kernel.logging_config import get_logger
from school_kernel.models.audit_event import AuditAction
from school_kernel.services.auditor_service import AuditSink
from school_kernel.services.base import BaseService
from school_modules.membership.service import MembershipService
from school_modules.presence.config import PresenceConfig
from school_modules.presence.models import (
    AttendanceBatchResult,
    AttendanceDashboard,
    AttendanceEntry,
    AttendanceStatistics,
    GroupReportRow,
    PresenceRecord,
    attendance_percentage,
    count_by_status,
    parse_status,
    validate_arrival_time,
)
from school_modules.presence.orm import PresenceRecordModel
from school_modules.roster.orm import GroupModel, SubjectModel

logger = get_logger("modules.presence.service")

ENTITY_TYPE = "PresenceRecord"

_UNSET: Any = object()


class PresenceService(BaseService):
    """
    Presence ledger.

    Transaction boundary: this service commits on success, rolls back on
    failure.  Reads never write.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        config: PresenceConfig | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._config = config or PresenceConfig()
        self._memberships = MembershipService(session, self._clock, self._audit)

    # =========================================================================
    # Mutations
    # =========================================================================

    def mark_group_attendance(
        self,
        group_id: UUID,
        day: date | datetime | str,
        records: Sequence[AttendanceEntry | Mapping[str, Any]],
        actor: ActorContext,
    ) -> AttendanceBatchResult:
        """
        Record attendance for a group on one day.

        Idempotent: replaying the same batch leaves the same stored state.

        Raises:
            ValidationError: empty batch, malformed line, duplicate subject,
                day in the future (unless allowed).
            UnenrolledSubjectsError: a line names a subject that is not
                actively enrolled in the group; nothing is written.
        """
        with self._transaction(
            actor, AuditAction.ATTENDANCE_MARKED, "Group", group_id
        ):
            marked_day = normalize_day(day)
            entries = self._normalize_batch(records, marked_day)

            group = self._load_scoped(GroupModel, "Group", group_id, actor)

            # Membership read happens-before the write
            active = {
                m.subject_id: m for m in self._memberships.active_rows_for_group(group.id)
            }
            offending = [e.subject_id for e in entries if e.subject_id not in active]
            if offending:
                logger.warning(
                    "attendance_unenrolled_subjects",
                    extra={
                        "group_id": str(group.id),
                        "subject_ids": sorted(str(s) for s in offending),
                    },
                )
                raise UnenrolledSubjectsError(group.id, offending)

            existing = {
                row.subject_id: row
                for row in self.session.execute(
                    select(PresenceRecordModel)
                    .where(
                        PresenceRecordModel.subject_id.in_([e.subject_id for e in entries]),
                        PresenceRecordModel.day == marked_day,
                    )
                    .with_for_update()
                ).scalars()
            }

            created = updated = 0
            rows: list[PresenceRecordModel] = []
            for entry in entries:
                membership = active[entry.subject_id]
                row = existing.get(entry.subject_id)
                if row is None:
                    row = PresenceRecordModel(
                        tenant_id=membership.tenant_id,
                        subject_id=entry.subject_id,
                        day=marked_day,
                        created_by_id=actor.actor_id,
                    )
                    self.session.add(row)
                    created += 1
                else:
                    row.updated_by_id = actor.actor_id
                    updated += 1
                row.group_id = membership.group_id
                row.period = membership.period
                row.status = entry.status.value
                row.arrival_time = entry.arrival_time
                row.notes = entry.notes
                row.recorder_id = actor.actor_id
                rows.append(row)

            self._flush_unique(
                DuplicateRecordError(ENTITY_TYPE, f"{group.id}:{marked_day.isoformat()}")
            )
            counts = count_by_status(e.status for e in entries)
            result = AttendanceBatchResult(
                group_id=group.id,
                day=marked_day,
                created=created,
                updated=updated,
                counts=counts,
                records=tuple(r.to_dto() for r in rows),
            )
            tenant_id = group.tenant_id

        logger.info(
            "attendance_marked",
            extra={
                "group_id": str(result.group_id),
                "day": result.day.isoformat(),
                "rows_created": result.created,
                "rows_updated": result.updated,
            },
        )
        self._record(
            actor,
            AuditAction.ATTENDANCE_MARKED,
            "Group",
            result.group_id,
            tenant_id=tenant_id,
            day=result.day,
            total=len(result.records),
            counts=result.counts,
            created=result.created,
            updated=result.updated,
        )
        return result

    def update_attendance(
        self,
        record_id: UUID,
        actor: ActorContext,
        status: Any = _UNSET,
        notes: Any = _UNSET,
        arrival_time: Any = _UNSET,
    ) -> PresenceRecord:
        """
        Correct one stored record.

        Only status, notes and arrival time change; subject, group and day
        are fixed.  The audit record carries before and after snapshots.
        """
        with self._transaction(
            actor, AuditAction.ATTENDANCE_CORRECTED, ENTITY_TYPE, record_id
        ):
            row = self._load_scoped(
                PresenceRecordModel, ENTITY_TYPE, record_id, actor, for_update=True
            )
            before = _snapshot(row)
            if status is not _UNSET:
                row.status = parse_status(status).value
            if notes is not _UNSET:
                row.notes = notes
            if arrival_time is not _UNSET:
                row.arrival_time = validate_arrival_time(arrival_time)
            row.recorder_id = actor.actor_id
            row.updated_by_id = actor.actor_id
            self.session.flush()
            after = _snapshot(row)
            record = row.to_dto()

        logger.info(
            "attendance_corrected",
            extra={"record_id": str(record.id), "status": record.status.value},
        )
        self._record(
            actor,
            AuditAction.ATTENDANCE_CORRECTED,
            ENTITY_TYPE,
            record.id,
            tenant_id=record.tenant_id,
            before=before,
            after=after,
        )
        return record

    # =========================================================================
    # Reads
    # =========================================================================

    def get_group_attendance(
        self,
        group_id: UUID,
        day: date | datetime | str,
        actor: ActorContext,
    ) -> list[PresenceRecord]:
        """
        Attendance of a group on one day, ordered by subject display name.

        If nothing has been recorded yet, returns a placeholder (status None)
        for every active member so an unmarked roster can be rendered.
        """
        marked_day = normalize_day(day)
        group = self._load_scoped(GroupModel, "Group", group_id, actor)

        rows = self.session.execute(
            select(PresenceRecordModel)
            .join(SubjectModel, SubjectModel.id == PresenceRecordModel.subject_id)
            .where(
                PresenceRecordModel.group_id == group.id,
                PresenceRecordModel.day == marked_day,
            )
            .order_by(SubjectModel.last_name, SubjectModel.first_name)
        ).scalars().all()
        if rows:
            return [r.to_dto() for r in rows]

        members = self._memberships.active_rows_for_group(group.id)
        names = self._subject_names([m.subject_id for m in members])
        members.sort(key=lambda m: names.get(m.subject_id, ("", "")))
        return [
            PresenceRecord(
                id=None,
                tenant_id=m.tenant_id,
                subject_id=m.subject_id,
                group_id=m.group_id,
                period=m.period,
                day=marked_day,
                status=None,
            )
            for m in members
        ]

    def get_subject_attendance(
        self,
        subject_id: UUID,
        actor: ActorContext,
        start: date | datetime | str | None = None,
        end: date | datetime | str | None = None,
    ) -> list[PresenceRecord]:
        """Records of one subject in ``[start, end]``, newest first."""
        self._load_scoped(SubjectModel, "Subject", subject_id, actor)
        return [r.to_dto() for r in self._subject_rows(subject_id, DateRange(start, end))]

    def get_statistics(
        self,
        subject_id: UUID,
        actor: ActorContext,
        start: date | datetime | str | None = None,
        end: date | datetime | str | None = None,
    ) -> AttendanceStatistics:
        """Counts per status and attendance percentage for one subject."""
        self._load_scoped(SubjectModel, "Subject", subject_id, actor)
        rows = self._subject_rows(subject_id, DateRange(start, end))
        return AttendanceStatistics.from_statuses(subject_id, (r.status for r in rows))

    def get_group_report(
        self,
        group_id: UUID,
        actor: ActorContext,
        start: date | datetime | str | None = None,
        end: date | datetime | str | None = None,
    ) -> list[GroupReportRow]:
        """
        Per-subject totals of a group over a range.

        Covers every subject with at least one record for the group in the
        range, sorted by last name then first name.
        """
        group = self._load_scoped(GroupModel, "Group", group_id, actor)
        stmt = (
            select(PresenceRecordModel.subject_id, PresenceRecordModel.status)
            .where(PresenceRecordModel.group_id == group.id)
        )
        stmt = _within(stmt, DateRange(start, end))

        by_subject: dict[UUID, list[str]] = {}
        for subject_id, status in self.session.execute(stmt):
            by_subject.setdefault(subject_id, []).append(status)

        subjects = {
            s.id: s
            for s in self.session.execute(
                select(SubjectModel).where(SubjectModel.id.in_(list(by_subject)))
            ).scalars()
        } if by_subject else {}

        report = [
            GroupReportRow(
                subject_id=subject_id,
                first_name=subjects[subject_id].first_name,
                last_name=subjects[subject_id].last_name,
                admission_number=subjects[subject_id].admission_number,
                statistics=AttendanceStatistics.from_statuses(subject_id, statuses),
            )
            for subject_id, statuses in by_subject.items()
        ]
        report.sort(key=lambda row: (row.last_name, row.first_name))
        return report

    def get_dashboard(
        self,
        actor: ActorContext,
        day: date | datetime | str | None = None,
    ) -> AttendanceDashboard:
        """Attendance summary across the actor's active groups for one day."""
        marked_day = normalize_day(day) if day is not None else self._clock.today()
        group_ids = list(
            self.session.execute(
                select(GroupModel.id).where(
                    GroupModel.tenant_id == actor.tenant_id,
                    GroupModel.is_active.is_(True),
                )
            ).scalars()
        )
        rows = self.session.execute(
            select(PresenceRecordModel.group_id, PresenceRecordModel.status).where(
                PresenceRecordModel.group_id.in_(group_ids),
                PresenceRecordModel.day == marked_day,
            )
        ).all() if group_ids else []

        counts = count_by_status(status for _, status in rows)
        return AttendanceDashboard(
            day=marked_day,
            total_groups=len(group_ids),
            groups_with_attendance=len({g for g, _ in rows}),
            total_marked=len(rows),
            counts=counts,
            attendance_rate=attendance_percentage(counts["present"], len(rows)),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _normalize_batch(
        self,
        records: Sequence[AttendanceEntry | Mapping[str, Any]],
        marked_day: date,
    ) -> list[AttendanceEntry]:
        if not records:
            raise ValidationError("Attendance batch is empty", field="records")
        if not self._config.allow_future_days and marked_day > self._clock.today():
            raise ValidationError(
                f"Cannot mark attendance for future day {marked_day}", field="day"
            )
        try:
            entries = [AttendanceEntry.coerce(r) for r in records]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed attendance entry: {exc}", field="records") from exc

        seen: set[UUID] = set()
        duplicates = set()
        for entry in entries:
            if entry.subject_id in seen:
                duplicates.add(str(entry.subject_id))
            seen.add(entry.subject_id)
        if duplicates:
            raise ValidationError(
                f"Subjects listed more than once: {', '.join(sorted(duplicates))}",
                field="records",
            )
        return entries

    def _subject_rows(
        self, subject_id: UUID, day_range: DateRange
    ) -> list[PresenceRecordModel]:
        stmt = select(PresenceRecordModel).where(
            PresenceRecordModel.subject_id == subject_id
        )
        stmt = _within(stmt, day_range).order_by(PresenceRecordModel.day.desc())
        return list(self.session.execute(stmt).scalars().all())

    def _subject_names(self, subject_ids: list[UUID]) -> dict[UUID, tuple[str, str]]:
        if not subject_ids:
            return {}
        return {
            row.id: (row.last_name, row.first_name)
            for row in self.session.execute(
                select(SubjectModel).where(SubjectModel.id.in_(subject_ids))
            ).scalars()
        }


def _within(stmt, day_range: DateRange):
    if day_range.start is not None:
        stmt = stmt.where(PresenceRecordModel.day >= day_range.start)
    if day_range.end is not None:
        stmt = stmt.where(PresenceRecordModel.day <= day_range.end)
    return stmt


def _snapshot(row: PresenceRecordModel) -> dict:
    return {
        "status": row.status,
        "notes": row.notes,
        "arrival_time": row.arrival_time,
    }
