from __future__ import annotations

from dataclasses import dataclass

from .catalog import ImpactScheme, PriorityCode, StatusCode, bucket_count
from .priority import PriorityMatrix, PriorityMatrixError
from .session import IncidentRecord, IntakeSession
from .transitions import TRANSITION_TABLE


CONTRACT_VERSIONS = {
    "session_schema": "v1",
    "record_schema": "v1",
    "transition_table": "v1",
    "priority_matrix": "v1",
}


REQUIRED_SESSION_FIELDS = {
    "session_id",
    "classification",
    "current_step",
    "urgency",
    "impacted_users",
    "impact_level",
    "title",
    "description",
    "business_impact",
    "application",
    "location",
    "workaround",
    "time_issue_started",
    "time_reported",
    "tracking_number",
    "incident_source",
    "generating_multiple_calls",
    "tags",
    "priority_override",
    "priority",
    "status",
    "record_id",
    "variables_used",
    "value_updates",
}

REQUIRED_RECORD_FIELDS = {
    "record_id",
    "tracking_number",
    "classification",
    "title",
    "description",
    "urgency",
    "application",
    "location",
    "time_issue_started",
    "time_reported",
    "priority",
    "matrix_priority",
    "created_at",
    "impacted_users",
    "impact_level",
    "business_impact",
    "workaround",
    "incident_source",
    "generating_multiple_calls",
    "status",
    "resolution",
    "notice_sent",
    "resolved_at",
    "closed_at",
}

EXPECTED_STATUSES = {"new", "open", "in_progress", "pending", "resolved", "closed"}

EXPECTED_PRIORITIES = {"P1", "P2", "P3", "P4"}

EXPECTED_EDGES = {
    ("new", "open"),
    ("open", "in_progress"),
    ("open", "resolved"),
    ("in_progress", "pending"),
    ("in_progress", "resolved"),
    ("pending", "in_progress"),
    ("pending", "resolved"),
    ("resolved", "closed"),
    ("resolved", "in_progress"),
    ("closed", "in_progress"),
}


@dataclass(frozen=True, slots=True)
class ContractValidationResult:
    is_valid: bool
    errors: list[str]


def _field_drift(name: str, current: set[str], required: set[str]) -> list[str]:
    errors: list[str] = []
    missing = required.difference(current)
    if missing:
        errors.append(f"missing_{name}_fields:{sorted(missing)}")
    unexpected = current.difference(required)
    if unexpected:
        errors.append(f"unexpected_{name}_fields:{sorted(unexpected)}")
    return errors


def validate_contract_freeze(matrix: PriorityMatrix | None = None) -> ContractValidationResult:
    errors: list[str] = []

    if set(CONTRACT_VERSIONS.keys()) != {"session_schema", "record_schema", "transition_table", "priority_matrix"}:
        errors.append("contract_versions_missing_required_keys")

    errors.extend(_field_drift("session", set(IntakeSession.__dataclass_fields__.keys()), REQUIRED_SESSION_FIELDS))
    errors.extend(_field_drift("record", set(IncidentRecord.__dataclass_fields__.keys()), REQUIRED_RECORD_FIELDS))

    if EXPECTED_STATUSES != {s.value for s in StatusCode}:
        errors.append("status_values_changed")

    if EXPECTED_PRIORITIES != {p.value for p in PriorityCode}:
        errors.append("priority_codes_changed")

    edges = {(src.value, dst.value) for src, targets in TRANSITION_TABLE.items() for dst in targets}
    if edges != EXPECTED_EDGES:
        errors.append(f"transition_table_changed:{sorted(edges.symmetric_difference(EXPECTED_EDGES))}")

    if bucket_count(ImpactScheme.USER_COUNT) != 5 or bucket_count(ImpactScheme.IMPACT_LEVEL) != 3:
        errors.append("bucket_counts_changed")

    for candidate in [matrix] if matrix is not None else [PriorityMatrix.user_count_default(), PriorityMatrix.impact_level_default()]:
        try:
            candidate.validate_shape()
        except PriorityMatrixError as exc:
            errors.append(f"priority_matrix_shape:{exc}")

    return ContractValidationResult(is_valid=not errors, errors=errors)
