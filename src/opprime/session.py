from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .catalog import (
    Classification,
    ImpactLevel,
    IncidentSource,
    PriorityCode,
    StatusCode,
    UrgencyLevel,
)


TEXT_FIELDS = (
    "title",
    "description",
    "business_impact",
    "application",
    "location",
    "workaround",
    "tracking_number",
)

# keys the caller may set through apply_fields; classification changes go
# through the navigator so the step stays in range
EDITABLE_FIELDS = TEXT_FIELDS + (
    "urgency",
    "impacted_users",
    "impact_level",
    "time_issue_started",
    "time_reported",
    "incident_source",
    "generating_multiple_calls",
    "tags",
    "priority_override",
)


def _normalize_key(key: object) -> str:
    return str(key).strip().lower().replace("-", "_").replace(" ", "_")


def _coerce_enum(enum_cls, value: Any):
    if value is None or isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    if not text:
        return None
    for member in enum_cls:
        if text.lower() in (str(member.value).lower(), member.name.lower()):
            return member
    # unknown values are kept as-is so validation can report them
    return value


def parse_classification(value: Any) -> Classification | None:
    result = _coerce_enum(Classification, value)
    return result if isinstance(result, Classification) else None


def _coerce_urgency(value: Any):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return UrgencyLevel.from_rank(value) or value
    if isinstance(value, str) and value.strip().isdigit():
        return UrgencyLevel.from_rank(int(value.strip())) or value
    return _coerce_enum(UrgencyLevel, value)


def _coerce_count(value: Any):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    text = str(value).strip().rstrip("~")
    if not text:
        return None
    return int(text) if text.isdigit() else value


def _coerce_time(value: Any):
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return value


def _coerce_tags(value: Any) -> set[str]:
    if isinstance(value, str):
        value = value.replace(";", ",").split(",")
    return {str(t).strip().lower() for t in (value or ()) if str(t).strip()}


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"yes", "true", "1", "y"}
    return bool(value)


_COERCERS = {
    "urgency": _coerce_urgency,
    "impact_level": lambda v: _coerce_enum(ImpactLevel, v),
    "incident_source": lambda v: _coerce_enum(IncidentSource, v),
    "impacted_users": _coerce_count,
    "time_issue_started": _coerce_time,
    "time_reported": _coerce_time,
    "generating_multiple_calls": _coerce_flag,
    "tags": _coerce_tags,
}


@dataclass(slots=True)
class IntakeSession:
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    classification: Classification | None = None
    current_step: int = 1
    urgency: UrgencyLevel | None = None
    impacted_users: int | None = None
    impact_level: ImpactLevel | None = None
    title: str = ""
    description: str = ""
    business_impact: str = ""
    application: str = ""
    location: str = ""
    workaround: str = ""
    time_issue_started: datetime | None = None
    time_reported: datetime | None = None
    tracking_number: str = ""
    incident_source: IncidentSource = IncidentSource.SERVICE_DESK
    generating_multiple_calls: bool = False
    tags: set[str] = field(default_factory=set)
    priority_override: str = ""
    priority: PriorityCode | None = None
    status: StatusCode = StatusCode.NEW
    record_id: str | None = None
    variables_used: list[str] = field(default_factory=list)
    value_updates: list[dict[str, Any]] = field(default_factory=list)

    def apply_fields(self, payload: dict[str, Any]) -> tuple[list[str], list[str]]:
        """Applies caller edits; returns (accepted, ignored) keys.

        Status, priority, classification and navigation are not editable here.
        """
        accepted: list[str] = []
        ignored: list[str] = []
        for raw_key, raw_value in payload.items():
            key = _normalize_key(raw_key)
            if key not in EDITABLE_FIELDS:
                ignored.append(str(raw_key))
                continue

            if key in TEXT_FIELDS or key == "priority_override":
                value = "" if raw_value is None else str(raw_value).strip()
            else:
                value = _COERCERS.get(key, lambda v: v)(raw_value)

            old_value = getattr(self, key)
            if old_value == value:
                continue
            setattr(self, key, value)
            self.log_update(key, _plain(old_value), _plain(value), "field_update")
            accepted.append(key)
        return accepted, ignored

    def snapshot(self) -> "IntakeSession":
        return copy.deepcopy(self)

    def log_update(self, variable: str, old_value: Any, new_value: Any, reason: str) -> None:
        self.variables_used.append(variable)
        self.value_updates.append(
            {
                "variable": variable,
                "old_value": old_value,
                "new_value": new_value,
                "reason": reason,
            }
        )


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, set):
        return sorted(value)
    return value


@dataclass(slots=True)
class IncidentRecord:
    record_id: str | None
    tracking_number: str
    classification: Classification
    title: str
    description: str
    urgency: UrgencyLevel
    application: str
    location: str
    time_issue_started: datetime
    time_reported: datetime
    priority: PriorityCode
    matrix_priority: PriorityCode
    created_at: datetime
    impacted_users: int | None = None
    impact_level: ImpactLevel | None = None
    business_impact: str | None = None
    workaround: str | None = None
    incident_source: IncidentSource = IncidentSource.SERVICE_DESK
    generating_multiple_calls: bool = False
    status: StatusCode = StatusCode.NEW
    resolution: str = ""
    notice_sent: bool = False
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_major(self) -> bool:
        return self.classification is Classification.MAJOR
