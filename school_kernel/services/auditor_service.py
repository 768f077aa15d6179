"""
AuditorService -- tamper-evident audit sink and hash chain maintenance.

Responsibility:
    Receives ``AuditRecord`` facts emitted by the ledgers and persists them
    as immutable, hash-chained ``AuditEvent`` rows.  Provides chain
    validation for tamper detection and trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell.  The membership, presence, billing
    and roster services emit through the ``AuditSink`` interface; this module
    supplies the database-backed sink and an in-memory one.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - Audit chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Fire-and-observe: a sink failure never rolls back the ledger mutation
      that produced the record.  Ledgers record after their own commit and
      route through ``emit_audit``, which logs sink failures instead of
      raising them.

Failure modes:
    - AuditChainBrokenError: a recomputed hash does not match the stored one,
      or prev_hash does not match the predecessor's hash.
    - AuditSinkError: the database sink exhausted its retries.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from school_kernel.domain.actor import ActorContext
from school_kernel.domain.clock import Clock, SystemClock
from school_kernel.exceptions import AuditChainBrokenError, AuditSinkError
from school_kernel.logging_config import get_logger
from school_kernel.models.audit_event import AuditAction, AuditEvent
from school_kernel.services.sequence_service import SequenceService
from school_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditRecord:
    """One auditable fact, as emitted by a ledger."""

    action: AuditAction
    entity_type: str
    entity_id: UUID
    tenant_id: UUID
    actor_id: UUID
    success: bool = True
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_actor(
        cls,
        actor: ActorContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        *,
        success: bool = True,
        tenant_id: UUID | None = None,
        **payload: Any,
    ) -> "AuditRecord":
        return cls(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            tenant_id=tenant_id or actor.tenant_id,
            actor_id=actor.actor_id,
            success=success,
            payload={k: v for k, v in payload.items() if v is not None},
        )


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    success: bool
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for an entity.

    Contains all audit events in chronological order.
    """

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditSink(ABC):
    """Append-only recipient of ledger audit records."""

    @abstractmethod
    def record(self, record: AuditRecord) -> None:
        """Persist or forward one record.  May raise; callers use emit_audit."""
        ...


class InMemoryAuditSink(AuditSink):
    """Keeps records in a list.  For embedding and tests."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def record(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self) -> list[AuditAction]:
        return [r.action for r in self.records]


def emit_audit(sink: AuditSink, record: AuditRecord) -> None:
    """
    Hand a record to the sink without letting a sink failure escape.

    The ledger mutation that produced ``record`` is already committed; a
    failure here is logged at ERROR with the full record and is not raised.
    """
    try:
        sink.record(record)
    except Exception:
        logger.error(
            "audit_emit_failed",
            exc_info=True,
            extra={
                "action": record.action.value,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "audit_tenant_id": str(record.tenant_id),
                "success": record.success,
            },
        )


def _json_safe(payload: dict[str, Any]) -> dict[str, Any]:
    # Round-trip through canonical JSON so stored and hashed forms match
    return json.loads(canonicalize_json(payload))


class AuditorService(AuditSink):
    """
    Database-backed audit sink with hash chain linkage.

    Contract:
        ``record()`` writes one ``AuditEvent`` inside a savepoint and commits
        it.  Transient database errors are retried up to ``max_attempts``
        times before ``AuditSinkError`` is raised.

    Guarantees:
        - Every event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Sequence numbers come from SequenceService (locked counter row).
        - Audit events are append-only (db/immutability.py).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = 3,
        commit: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session.
            clock: Clock for timestamps. Defaults to SystemClock.
            max_attempts: Write attempts before giving up.
            commit: Commit after each record.  Pass False to keep the audit
                write inside the caller's transaction.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)
        self._max_attempts = max_attempts
        self._commit = commit

    # AuditSink

    def record(self, record: AuditRecord) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._session.begin_nested():
                    self._create_audit_event(record)
                if self._commit:
                    self._session.commit()
                return
            except SQLAlchemyError:
                if self._commit:
                    self._session.rollback()
                logger.warning(
                    "audit_sink_retry",
                    exc_info=True,
                    extra={
                        "action": record.action.value,
                        "entity_id": str(record.entity_id),
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                    },
                )

        logger.error(
            "audit_sink_record_failed",
            extra={
                "action": record.action.value,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "attempts": self._max_attempts,
            },
        )
        raise AuditSinkError(
            record.action.value,
            record.entity_type,
            record.entity_id,
            self._max_attempts,
        )

    # Chain writing

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent audit event."""
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    @staticmethod
    def _envelope_hash(
        actor_id: UUID,
        tenant_id: UUID,
        success: bool,
        payload: dict[str, Any],
    ) -> str:
        return hash_payload({
            "actor_id": str(actor_id),
            "tenant_id": str(tenant_id),
            "success": success,
            "payload": payload,
        })

    def _create_audit_event(self, record: AuditRecord) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and a valid chain link.
        """
        # Counter lock also serializes chain writers
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)

        prev_hash = self._get_last_hash()

        payload_data = _json_safe(record.payload)
        computed_payload_hash = self._envelope_hash(
            record.actor_id, record.tenant_id, record.success, payload_data
        )

        event_hash = hash_audit_event(
            entity_type=record.entity_type,
            entity_id=str(record.entity_id),
            action=record.action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            tenant_id=record.tenant_id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            action=record.action,
            actor_id=record.actor_id,
            success=record.success,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "action": record.action.value,
                "success": record.success,
                "seq": seq,
            },
        )

        return audit_event

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's payload hash and hash
              match their recomputed values and every ``prev_hash`` matches
              its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: If validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(
                str(events[0].id),
                "None",
                events[0].prev_hash,
            )

        for i, event in enumerate(events):
            action_value = (
                event.action.value if isinstance(event.action, AuditAction) else event.action
            )

            expected_payload_hash = self._envelope_hash(
                event.actor_id, event.tenant_id, event.success, event.payload or {}
            )
            if event.payload_hash != expected_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_payload_hash,
                    event.payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=action_value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )

            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_hash,
                    event.hash,
                )

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id),
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    # Trace and query methods

    def get_trace(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> AuditTrace:
        """
        Get the complete audit trace for an entity, oldest first.
        """
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                success=event.success,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def get_recent_events(
        self,
        limit: int = 100,
        tenant_id: UUID | None = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, most recent first.
        """
        stmt = select(AuditEvent)
        if tenant_id is not None:
            stmt = stmt.where(AuditEvent.tenant_id == tenant_id)
        result = self._session.execute(
            stmt.order_by(AuditEvent.seq.desc()).limit(limit)
        )
        return list(result.scalars().all())
