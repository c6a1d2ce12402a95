from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from .catalog import StatusCode
from .collaborators import AuditEntry, AuditSink, Clock, IncidentStore
from .session import IncidentRecord

logger = logging.getLogger(__name__)

S = StatusCode

TRANSITION_TABLE: dict[StatusCode, frozenset[StatusCode]] = {
    S.NEW: frozenset({S.OPEN}),
    S.OPEN: frozenset({S.IN_PROGRESS, S.RESOLVED}),
    S.IN_PROGRESS: frozenset({S.PENDING, S.RESOLVED}),
    S.PENDING: frozenset({S.IN_PROGRESS, S.RESOLVED}),
    S.RESOLVED: frozenset({S.CLOSED, S.IN_PROGRESS}),
    # reopen
    S.CLOSED: frozenset({S.IN_PROGRESS}),
}


def can_transition(from_status: StatusCode, to_status: StatusCode) -> bool:
    return to_status in TRANSITION_TABLE.get(from_status, frozenset())


def allowed_targets(from_status: StatusCode) -> list[StatusCode]:
    targets = TRANSITION_TABLE.get(from_status, frozenset())
    return [s for s in StatusCode if s in targets]


@dataclass(frozen=True, slots=True)
class TransitionError:
    code: str
    message: str
    from_status: StatusCode | None
    to_status: StatusCode | None


@dataclass(frozen=True, slots=True)
class TransitionResult:
    ok: bool
    record: IncidentRecord | None
    error: TransitionError | None = None
    audit_entry: AuditEntry | None = None


def check_preconditions(record: IncidentRecord, to_status: object) -> TransitionError | None:
    """Returns the first failed rule for moving ``record`` to ``to_status``, or None."""
    current = record.status
    if not isinstance(to_status, StatusCode):
        return TransitionError(
            code="unknown_status",
            message=f"'{to_status}' is not a valid status",
            from_status=current,
            to_status=None,
        )
    if to_status is current:
        return TransitionError(
            code="same_status",
            message=f"Incident is already {current.value}",
            from_status=current,
            to_status=to_status,
        )
    if not can_transition(current, to_status):
        allowed = ", ".join(s.value for s in allowed_targets(current)) or "none"
        return TransitionError(
            code="illegal_transition",
            message=f"Cannot move from {current.value} to {to_status.value}; allowed: {allowed}",
            from_status=current,
            to_status=to_status,
        )
    if to_status is S.CLOSED:
        if not record.resolution.strip():
            return TransitionError(
                code="resolution_required",
                message="Cannot close an incident without a resolution",
                from_status=current,
                to_status=to_status,
            )
        if record.is_major and not record.notice_sent:
            return TransitionError(
                code="notice_required",
                message="Major incidents need the notice of incident sent before closing",
                from_status=current,
                to_status=to_status,
            )
    return None


class StatusTransitionGuard:
    """The only writer of ``IncidentRecord.status``.

    Preconditions are checked against the stored record, and only the status
    and its timestamps are written back. The status write and its audit entry
    share one store transaction, so a failing audit sink leaves the stored
    status untouched.
    """

    def __init__(self, store: IncidentStore, audit: AuditSink, clock: Clock):
        self.store = store
        self.audit = audit
        self.clock = clock

    def transition(
        self,
        record: IncidentRecord,
        to_status: StatusCode,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        try:
            with self.store.transaction():
                stored = self.store.load(record.record_id) if record.record_id is not None else None
                if stored is None:
                    error = TransitionError(
                        code="record_not_found",
                        message=f"Incident {record.record_id or '(unsaved)'} does not exist",
                        from_status=None,
                        to_status=to_status if isinstance(to_status, StatusCode) else None,
                    )
                else:
                    error = check_preconditions(stored, to_status)
                if error is not None:
                    logger.info("Transition rejected for %s: %s", record.record_id, error.code)
                    return TransitionResult(ok=False, record=record, error=error)

                from_status = stored.status
                entry = AuditEntry(
                    record_id=stored.record_id,
                    action="status_change",
                    actor=actor,
                    timestamp=self.clock.now(),
                    from_status=from_status,
                    to_status=to_status,
                    reason=reason,
                )
                updated = replace(stored, status=to_status)
                if to_status is S.RESOLVED:
                    updated.resolved_at = entry.timestamp
                elif to_status is S.CLOSED:
                    updated.closed_at = entry.timestamp
                elif from_status is S.CLOSED:
                    updated.closed_at = None

                if not self.store.update_status(stored.record_id, to_status):
                    missing = TransitionError(
                        code="record_not_found",
                        message=f"Incident {stored.record_id} does not exist",
                        from_status=from_status,
                        to_status=to_status,
                    )
                    return TransitionResult(ok=False, record=record, error=missing)
                self.store.save(updated)
                self.audit.append(entry)
        except Exception:
            logger.exception("Status change to %s failed for %s", to_status, record.record_id)
            raise

        record.status = to_status
        record.resolved_at = updated.resolved_at
        record.closed_at = updated.closed_at
        logger.info("Incident %s moved %s -> %s by %s", record.record_id, from_status.value, to_status.value, actor)
        return TransitionResult(ok=True, record=record, audit_entry=entry)
