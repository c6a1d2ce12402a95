from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .catalog import Classification, ImpactScheme, StatusCode
from .collaborators import AuditEntry, AuditSink, Clock, IncidentStore, Notifier
from .navigation import NavigationOutcome, WorkflowNavigator, total_steps
from .priority import PriorityCalculator, PriorityResult
from .session import IncidentRecord, IntakeSession, parse_classification
from .transitions import StatusTransitionGuard, TransitionError, TransitionResult
from .validation import FieldError, FieldId, StepValidation, StepValidator

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


class TrackingNumberGenerator:
    """``<prefix><date>-<suffix>``, e.g. ``INC-20250726-0042``.

    The suffix is ``sequence() % modulo``. Nothing here prevents two
    incidents from receiving the same number; storage must enforce uniqueness.
    """

    def __init__(
        self,
        clock: Clock,
        prefix: str = "INC-",
        date_format: str = "%Y%m%d",
        modulo: int = 10000,
        sequence: Callable[[], int] | None = None,
    ):
        self.clock = clock
        self.prefix = prefix
        self.date_format = date_format
        self.modulo = modulo
        self.sequence = sequence

    def next_number(self) -> str:
        now = self.clock.now()
        if self.sequence is not None:
            counter = self.sequence()
        else:
            aware = now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)
            counter = (aware - _EPOCH) // _MICROSECOND
        width = len(str(self.modulo - 1))
        return f"{self.prefix}{now.strftime(self.date_format)}-{counter % self.modulo:0{width}d}"


@dataclass(frozen=True, slots=True)
class FinalizeResult:
    ok: bool
    record: IncidentRecord | None = None
    errors: tuple[FieldError, ...] = ()
    priority: PriorityResult | None = None

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]


@dataclass(frozen=True, slots=True)
class RecordUpdateResult:
    ok: bool
    record: IncidentRecord | None = None
    code: str | None = None
    message: str = ""
    errors: tuple[FieldError, ...] = ()


@dataclass(slots=True)
class FieldUpdate:
    accepted: list[str]
    ignored: list[str]
    step_valid: bool
    errors: tuple[FieldError, ...] = field(default_factory=tuple)


class IntakeOrchestrator:
    def __init__(
        self,
        calculator: PriorityCalculator,
        validator: StepValidator,
        store: IncidentStore,
        audit: AuditSink,
        clock: Clock,
        notifier: Notifier | None = None,
        navigator: WorkflowNavigator | None = None,
        tracking_numbers: TrackingNumberGenerator | None = None,
    ):
        self.calculator = calculator
        self.validator = validator
        self.navigator = navigator or WorkflowNavigator(validator)
        self.store = store
        self.audit = audit
        self.clock = clock
        self.notifier = notifier
        self.tracking_numbers = tracking_numbers or TrackingNumberGenerator(clock)
        self.guard = StatusTransitionGuard(store, audit, clock)

    @property
    def impact_scheme(self) -> ImpactScheme:
        return self.calculator.matrix.scheme

    # intake session

    def create_session(self, session_id: str | None = None) -> IntakeSession:
        now = self.clock.now()
        session = IntakeSession(time_issue_started=now, time_reported=now)
        if session_id:
            session.session_id = session_id
        logger.debug("Created intake session %s", session.session_id)
        return session

    def update_fields(self, session: IntakeSession, payload: dict[str, Any]) -> FieldUpdate:
        """Applies edits and re-validates the current step.

        A classification change goes through the navigator so the step is
        clamped and Major-only fields are dropped.
        """
        payload = dict(payload)
        accepted: list[str] = []
        ignored: list[str] = []
        for key in [k for k in payload if str(k).strip().lower() == "classification"]:
            raw = payload.pop(key)
            classification = parse_classification(raw)
            if classification is not None:
                if self.navigator.change_classification(session, classification).reason != "classification_unchanged":
                    accepted.append("classification")
            else:
                ignored.append(str(key))

        more_accepted, more_ignored = session.apply_fields(payload)
        accepted.extend(more_accepted)
        ignored.extend(more_ignored)

        result = self.validate_step(session)
        return FieldUpdate(accepted=accepted, ignored=ignored, step_valid=result.valid, errors=result.errors)

    def validate_step(self, session: IntakeSession, step: int | None = None) -> StepValidation:
        return self.validator.validate_step(
            session.current_step if step is None else step,
            session.classification,
            session,
        )

    def advance(self, session: IntakeSession) -> NavigationOutcome:
        return self.navigator.advance(session)

    def retreat(self, session: IntakeSession) -> NavigationOutcome:
        return self.navigator.retreat(session)

    def jump_to(self, session: IntakeSession, step: int) -> NavigationOutcome:
        return self.navigator.jump_to(session, step)

    def change_classification(self, session: IntakeSession, classification: Classification) -> NavigationOutcome:
        return self.navigator.change_classification(session, classification)

    def is_finalizable(self, session: IntakeSession) -> bool:
        if not self.navigator.is_last_step(session):
            return False
        last = total_steps(session.classification)
        return not self.validator.validate_through(last, session.classification, session)

    def preview_priority(self, session: IntakeSession) -> PriorityResult:
        return self.calculator.calculate(
            session.urgency,
            self._impact_value(session),
            override=session.priority_override or None,
            tags=session.tags,
        )

    def finalize(self, session: IntakeSession) -> FinalizeResult:
        """Validates every step, numbers and prioritises the incident, then saves it.

        Works on a snapshot of ``session``; the session itself only changes
        after the record and its audit entry are stored.
        """
        if session.record_id is not None:
            logger.warning("Session %s was already submitted as %s", session.session_id, session.record_id)
            return FinalizeResult(
                ok=False,
                errors=(FieldError(FieldId.TRACKING_NUMBER, f"Incident already submitted as {session.tracking_number}"),),
            )

        draft = session.snapshot()
        last = total_steps(draft.classification)

        errors: list[FieldError] = []
        if not self.navigator.is_last_step(draft):
            errors.append(FieldError(FieldId.CURRENT_STEP, f"Complete steps {draft.current_step + 1}-{last} before submitting"))
        errors.extend(self.validator.validate_through(last, draft.classification, draft))
        if errors:
            logger.warning(
                "Incident validation failed for session %s: %s",
                draft.session_id,
                ", ".join(e.message for e in errors),
            )
            return FinalizeResult(ok=False, errors=tuple(errors))

        tracking_number = draft.tracking_number.strip() or self.tracking_numbers.next_number()
        priority = self.preview_priority(draft)
        is_major = draft.classification is Classification.MAJOR
        now = self.clock.now()
        record = IncidentRecord(
            record_id=None,
            tracking_number=tracking_number,
            classification=draft.classification,
            title=draft.title,
            description=draft.description,
            urgency=draft.urgency,
            application=draft.application,
            location=draft.location,
            time_issue_started=draft.time_issue_started,
            time_reported=draft.time_reported,
            priority=priority.code,
            matrix_priority=priority.matrix_code,
            created_at=now,
            impacted_users=draft.impacted_users,
            impact_level=draft.impact_level,
            business_impact=draft.business_impact if is_major else None,
            workaround=draft.workaround or None,
            incident_source=draft.incident_source,
            generating_multiple_calls=draft.generating_multiple_calls,
            status=StatusCode.NEW,
        )

        try:
            with self.store.transaction():
                record_id = self.store.save(replace(record))
                record.record_id = record_id
                self.audit.append(
                    AuditEntry(
                        record_id=record_id,
                        action="created",
                        actor=session.session_id,
                        timestamp=now,
                        to_status=StatusCode.NEW,
                        reason=f"priority {priority.code.value} ({priority.source})",
                    )
                )
        except Exception:
            logger.exception("Failed to create incident for session %s: %s", draft.session_id, draft.title)
            raise

        old_priority = session.priority
        session.record_id = record.record_id
        session.tracking_number = tracking_number
        session.priority = priority.code
        session.log_update("priority", old_priority.value if old_priority else None, priority.code.value, priority.source)
        logger.info("Successfully created incident %s (%s): %s", record.record_id, tracking_number, record.title)
        return FinalizeResult(ok=True, record=record, priority=priority)

    # persisted records

    def transition(
        self,
        record_id: str,
        to_status: StatusCode,
        actor: str,
        reason: str | None = None,
    ) -> TransitionResult:
        record = self.store.load(record_id)
        if record is None:
            return TransitionResult(
                ok=False,
                record=None,
                error=TransitionError(
                    code="record_not_found",
                    message=f"Incident {record_id} does not exist",
                    from_status=None,
                    to_status=to_status if isinstance(to_status, StatusCode) else None,
                ),
            )
        return self.guard.transition(record, to_status, actor, reason)

    def record_resolution(self, record_id: str, resolution: str, actor: str) -> RecordUpdateResult:
        record = self.store.load(record_id)
        if record is None:
            return RecordUpdateResult(ok=False, code="record_not_found", message=f"Incident {record_id} does not exist")

        text = (resolution or "").strip()
        limit = self.validator.limits.resolution
        error = None
        if not text:
            error = FieldError(FieldId.RESOLUTION, "Resolution is required")
        elif len(text) > limit:
            error = FieldError(FieldId.RESOLUTION, f"Resolution cannot exceed {limit} characters")
        if error is not None:
            logger.warning("Resolution for %s rejected: %s", record_id, error.message)
            return RecordUpdateResult(ok=False, record=record, code="invalid_resolution", message=error.message, errors=(error,))

        record.resolution = text
        with self.store.transaction():
            self.store.save(record)
            self.audit.append(
                AuditEntry(
                    record_id=record_id,
                    action="resolution_recorded",
                    actor=actor,
                    timestamp=self.clock.now(),
                    reason=text,
                )
            )
        return RecordUpdateResult(ok=True, record=record)

    def send_notice_of_incident(
        self,
        record_id: str,
        content: str,
        recipients: list[str],
        actor: str,
    ) -> RecordUpdateResult:
        """Hands a composed notice to the notifier and flags the record when it was sent."""
        record = self.store.load(record_id)
        if record is None:
            return RecordUpdateResult(ok=False, code="record_not_found", message=f"Incident {record_id} does not exist")
        if not record.is_major:
            return RecordUpdateResult(
                ok=False, record=record, code="not_major", message="Notice of incident applies to Major incidents only"
            )
        if self.notifier is None:
            logger.warning("No notifier configured; notice of incident for %s not sent", record_id)
            return RecordUpdateResult(
                ok=False, record=record, code="notifier_not_configured", message="No notifier configured"
            )

        logger.info("Sending notice of incident for %s to %d recipients", record_id, len(recipients))
        if not self.notifier.send(content, list(recipients)):
            logger.warning("Notice of incident for %s was not sent", record_id)
            return RecordUpdateResult(
                ok=False, record=record, code="notice_not_sent", message="The notifier did not send the notice"
            )

        record.notice_sent = True
        with self.store.transaction():
            self.store.save(record)
            self.audit.append(
                AuditEntry(
                    record_id=record_id,
                    action="notice_sent",
                    actor=actor,
                    timestamp=self.clock.now(),
                    reason=f"{len(recipients)} recipients",
                )
            )
        return RecordUpdateResult(ok=True, record=record)

    def _impact_value(self, session: IntakeSession) -> object:
        if self.impact_scheme is ImpactScheme.IMPACT_LEVEL:
            return session.impact_level
        return session.impacted_users
