from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from .catalog import (
    DEFAULT_LIMITS,
    Classification,
    FieldLimits,
    ImpactLevel,
    ImpactScheme,
    UrgencyLevel,
)
from .collaborators import Clock
from .session import IntakeSession


class FieldId(str, Enum):
    CLASSIFICATION = "classification"
    CURRENT_STEP = "current_step"
    TIME_ISSUE_STARTED = "time_issue_started"
    TIME_REPORTED = "time_reported"
    IMPACTED_USERS = "impacted_users"
    IMPACT_LEVEL = "impact_level"
    APPLICATION = "application"
    LOCATION = "location"
    WORKAROUND = "workaround"
    TITLE = "title"
    DESCRIPTION = "description"
    URGENCY = "urgency"
    TRACKING_NUMBER = "tracking_number"
    BUSINESS_IMPACT = "business_impact"
    RESOLUTION = "resolution"


@dataclass(frozen=True, slots=True)
class FieldError:
    field: FieldId
    message: str


@dataclass(frozen=True, slots=True)
class StepValidation:
    step: int
    valid: bool
    errors: tuple[FieldError, ...] = ()

    @property
    def fields(self) -> list[str]:
        return [e.field.value for e in self.errors]


MAX_STEP = 4

TRACKING_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")

_LABELS = {
    FieldId.CLASSIFICATION: "Incident type",
    FieldId.TIME_ISSUE_STARTED: "Issue start time",
    FieldId.TIME_REPORTED: "Reported time",
    FieldId.IMPACTED_USERS: "Number of impacted users",
    FieldId.IMPACT_LEVEL: "Impact level",
    FieldId.APPLICATION: "Application affected",
    FieldId.LOCATION: "Locations affected",
    FieldId.WORKAROUND: "Workaround",
    FieldId.TITLE: "Incident title",
    FieldId.DESCRIPTION: "Incident description",
    FieldId.URGENCY: "Urgency",
    FieldId.TRACKING_NUMBER: "Incident number",
    FieldId.BUSINESS_IMPACT: "Business impact",
    FieldId.RESOLUTION: "Resolution",
}

# text fields length-checked at each step, including optional ones
_STEP_TEXT_FIELDS = {
    2: (FieldId.APPLICATION, FieldId.LOCATION, FieldId.WORKAROUND),
    3: (FieldId.TITLE, FieldId.DESCRIPTION, FieldId.APPLICATION, FieldId.LOCATION, FieldId.TRACKING_NUMBER),
    4: (FieldId.BUSINESS_IMPACT,),
}


def required_fields(
    classification: Classification | None,
    step: int,
    scheme: ImpactScheme = ImpactScheme.USER_COUNT,
) -> frozenset[FieldId]:
    if step == 1:
        return frozenset({FieldId.CLASSIFICATION})
    if step == 2:
        impact = FieldId.IMPACT_LEVEL if scheme is ImpactScheme.IMPACT_LEVEL else FieldId.IMPACTED_USERS
        return frozenset(
            {
                FieldId.TIME_ISSUE_STARTED,
                FieldId.TIME_REPORTED,
                impact,
                FieldId.APPLICATION,
                FieldId.LOCATION,
            }
        )
    if step == 3:
        return frozenset(
            {
                FieldId.TITLE,
                FieldId.DESCRIPTION,
                FieldId.URGENCY,
                FieldId.APPLICATION,
                FieldId.LOCATION,
            }
        )
    if step == 4 and classification is Classification.MAJOR:
        return frozenset({FieldId.BUSINESS_IMPACT})
    return frozenset()


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class StepValidator:
    """Field-scoped validation of one wizard step. Never mutates the session."""

    def __init__(
        self,
        scheme: ImpactScheme = ImpactScheme.USER_COUNT,
        limits: FieldLimits = DEFAULT_LIMITS,
        clock: Clock | None = None,
        future_tolerance: timedelta = timedelta(minutes=5),
    ):
        self.scheme = scheme
        self.limits = limits
        self.clock = clock
        self.future_tolerance = future_tolerance

    def validate_step(
        self,
        step: int,
        classification: Classification | None,
        session: IntakeSession,
    ) -> StepValidation:
        if not isinstance(step, int) or step < 1 or step > MAX_STEP:
            return StepValidation(
                step=step,
                valid=False,
                errors=(FieldError(FieldId.CURRENT_STEP, f"Step {step} does not exist"),),
            )

        errors: list[FieldError] = []
        required = required_fields(classification, step, self.scheme)
        for field_id in sorted(required, key=lambda f: list(FieldId).index(f)):
            if field_id is FieldId.CLASSIFICATION:
                if not isinstance(classification, Classification):
                    errors.append(FieldError(field_id, "Select an incident type"))
                continue
            if not _is_present(getattr(session, field_id.value)):
                errors.append(FieldError(field_id, f"{_LABELS[field_id]} is required"))

        missing = {e.field for e in errors}
        if step == 2:
            errors.extend(self._check_impact_and_times(session, missing))
        elif step == 3:
            errors.extend(self._check_details(session, missing))

        errors.extend(self._check_lengths(session, step, classification))
        return StepValidation(step=step, valid=not errors, errors=tuple(errors))

    def validate_through(
        self,
        last_step: int,
        classification: Classification | None,
        session: IntakeSession,
    ) -> list[FieldError]:
        seen: set[tuple[FieldId, str]] = set()
        errors: list[FieldError] = []
        for step in range(1, last_step + 1):
            for error in self.validate_step(step, classification, session).errors:
                key = (error.field, error.message)
                if key in seen:
                    continue
                seen.add(key)
                errors.append(error)
        return errors

    def _check_impact_and_times(self, session: IntakeSession, missing: set[FieldId]) -> list[FieldError]:
        errors: list[FieldError] = []
        if self.scheme is ImpactScheme.USER_COUNT and FieldId.IMPACTED_USERS not in missing:
            users = session.impacted_users
            if not isinstance(users, int) or isinstance(users, bool) or users <= 0:
                errors.append(FieldError(FieldId.IMPACTED_USERS, "Number of impacted users must be a positive number"))
        if self.scheme is ImpactScheme.IMPACT_LEVEL and FieldId.IMPACT_LEVEL not in missing:
            if not isinstance(session.impact_level, ImpactLevel):
                errors.append(FieldError(FieldId.IMPACT_LEVEL, "Impact level must be low, medium or high"))

        started = session.time_issue_started
        reported = session.time_reported
        for field_id, value in ((FieldId.TIME_ISSUE_STARTED, started), (FieldId.TIME_REPORTED, reported)):
            if field_id not in missing and not isinstance(value, datetime):
                errors.append(FieldError(field_id, f"{_LABELS[field_id]} must be a valid date and time"))

        if isinstance(started, datetime) and self.clock is not None:
            try:
                in_future = started > self.clock.now() + self.future_tolerance
            except TypeError:
                errors.append(FieldError(FieldId.TIME_ISSUE_STARTED, "Issue start time needs a time zone"))
            else:
                if in_future:
                    errors.append(FieldError(FieldId.TIME_ISSUE_STARTED, "Issue start time cannot be in the future"))
        if isinstance(started, datetime) and isinstance(reported, datetime):
            try:
                out_of_order = reported < started
            except TypeError:
                errors.append(FieldError(FieldId.TIME_REPORTED, "Reported time and issue start time need a time zone"))
            else:
                if out_of_order:
                    errors.append(
                        FieldError(FieldId.TIME_REPORTED, "Reported time must be after or equal to issue start time")
                    )
        return errors

    def _check_details(self, session: IntakeSession, missing: set[FieldId]) -> list[FieldError]:
        errors: list[FieldError] = []
        if FieldId.URGENCY not in missing and not isinstance(session.urgency, UrgencyLevel):
            errors.append(FieldError(FieldId.URGENCY, "Urgency must be between 1 (High) and 3 (Low)"))

        number = session.tracking_number.strip()
        if number and not TRACKING_NUMBER_PATTERN.match(number):
            errors.append(
                FieldError(
                    FieldId.TRACKING_NUMBER,
                    "Incident number may only contain letters, digits, '.', '_', '/' and '-'",
                )
            )
        return errors

    def _check_lengths(
        self,
        session: IntakeSession,
        step: int,
        classification: Classification | None,
    ) -> list[FieldError]:
        if step == 4 and classification is not Classification.MAJOR:
            return []
        errors: list[FieldError] = []
        for field_id in _STEP_TEXT_FIELDS.get(step, ()):
            value = getattr(session, field_id.value)
            limit = self.limits.for_field(field_id.value)
            if isinstance(value, str) and limit is not None and len(value) > limit:
                errors.append(FieldError(field_id, f"{_LABELS[field_id]} cannot exceed {limit} characters"))
        return errors
