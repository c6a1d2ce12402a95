"""Loads the priority matrix and override rules from an Excel workbook.

Sheet "Priority Matrix": an ``Urgency`` column followed by one column per
impact bucket, least impact first. Three bucket columns select the
impact-level scheme, five select the user-count scheme.

Optional sheet "Priority Overrides": ``Rule ID``, ``Trigger Tags``,
``Priority`` and an optional ``Precedence``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from openpyxl import load_workbook

from .catalog import ImpactScheme, PriorityCode, UrgencyLevel, bucket_count
from .priority import PriorityMatrix, PriorityOverrideRule

MATRIX_SHEET = "Priority Matrix"
OVERRIDES_SHEET = "Priority Overrides"


class ContractError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class SheetContract:
    sheet_name: str
    required_columns: tuple[str, ...]
    required_non_empty_columns: tuple[str, ...] = ()


def _norm(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _header_map(headers: Iterable[object]) -> dict[str, int]:
    seen: dict[str, int] = {}
    for index, header in enumerate(headers):
        key = _norm(header)
        if not key:
            continue
        if key in seen:
            raise ContractError(f"Duplicate header detected: {header}")
        seen[key] = index
    return seen


def read_sheet_rows(workbook_path: Path | str, contract: SheetContract) -> tuple[list[str], list[dict[str, object]]]:
    """Returns (headers, rows keyed by normalized header) after checking the contract."""
    wb = load_workbook(workbook_path, read_only=True, data_only=True)
    try:
        if contract.sheet_name not in wb.sheetnames:
            raise ContractError(f"Missing sheet: {contract.sheet_name}")

        rows = wb[contract.sheet_name].iter_rows(min_row=1, values_only=True)
        try:
            header_cells = next(rows)
        except StopIteration:
            raise ContractError(f"Sheet '{contract.sheet_name}' is empty") from None

        header_map = _header_map(header_cells)
        missing = [col for col in contract.required_columns if _norm(col) not in header_map]
        if missing:
            raise ContractError(
                f"Sheet '{contract.sheet_name}' is missing required columns: {', '.join(missing)}"
            )

        headers = [_norm(h) for h in header_cells if _norm(h)]
        records: list[dict[str, object]] = []
        for row_num, row in enumerate(rows, start=2):
            record = {key: (row[idx] if idx < len(row) else None) for key, idx in header_map.items()}
            if all(v in (None, "") for v in record.values()):
                continue
            for col in contract.required_non_empty_columns:
                if record.get(_norm(col)) in (None, ""):
                    raise ContractError(
                        f"Sheet '{contract.sheet_name}' row {row_num} has empty required value for column '{col}'"
                    )
            records.append(record)
    finally:
        wb.close()

    if not records:
        raise ContractError(f"Sheet '{contract.sheet_name}' contains no valid records")
    return headers, records


def _parse_urgency(value: object) -> UrgencyLevel | None:
    text = _norm(value)
    if text.isdigit():
        return UrgencyLevel.from_rank(int(text))
    for level in UrgencyLevel:
        if text in (level.value, level.name.lower()):
            return level
    return None


def _parse_code(value: object, where: str) -> PriorityCode:
    code = PriorityCode.parse(value)
    if code is None:
        raise ContractError(f"{where}: '{value}' is not a priority code (P1-P4)")
    return code


def load_priority_matrix(workbook_path: Path | str) -> PriorityMatrix:
    headers, records = read_sheet_rows(
        workbook_path,
        SheetContract(sheet_name=MATRIX_SHEET, required_columns=("Urgency",), required_non_empty_columns=("Urgency",)),
    )
    bucket_columns = [h for h in headers if h != "urgency"]
    if len(bucket_columns) == bucket_count(ImpactScheme.IMPACT_LEVEL):
        scheme = ImpactScheme.IMPACT_LEVEL
    elif len(bucket_columns) == bucket_count(ImpactScheme.USER_COUNT):
        scheme = ImpactScheme.USER_COUNT
    else:
        raise ContractError(
            f"Sheet '{MATRIX_SHEET}' has {len(bucket_columns)} impact columns; expected 3 or 5"
        )

    rows: dict[UrgencyLevel, tuple[PriorityCode, ...]] = {}
    for record in records:
        urgency = _parse_urgency(record["urgency"])
        if urgency is None:
            raise ContractError(f"Sheet '{MATRIX_SHEET}': unknown urgency '{record['urgency']}'")
        if urgency in rows:
            raise ContractError(f"Sheet '{MATRIX_SHEET}': duplicate row for urgency '{urgency.value}'")
        rows[urgency] = tuple(
            _parse_code(record[col], f"Sheet '{MATRIX_SHEET}' row '{urgency.value}'") for col in bucket_columns
        )

    missing = [u.value for u in UrgencyLevel if u not in rows]
    if missing:
        raise ContractError(f"Sheet '{MATRIX_SHEET}' is missing urgency rows: {', '.join(missing)}")
    return PriorityMatrix(scheme=scheme, rows=rows)


def load_override_rules(workbook_path: Path | str) -> list[PriorityOverrideRule]:
    wb = load_workbook(workbook_path, read_only=True)
    try:
        has_sheet = OVERRIDES_SHEET in wb.sheetnames
    finally:
        wb.close()
    if not has_sheet:
        return []

    _headers, records = read_sheet_rows(
        workbook_path,
        SheetContract(
            sheet_name=OVERRIDES_SHEET,
            required_columns=("Rule ID", "Trigger Tags", "Priority"),
            required_non_empty_columns=("Rule ID", "Trigger Tags", "Priority"),
        ),
    )
    rules: list[PriorityOverrideRule] = []
    for record in records:
        rule_id = str(record["rule id"]).strip()
        tags = [t.strip().lower() for t in str(record["trigger tags"]).replace(";", ",").split(",") if t.strip()]
        precedence = record.get("precedence")
        rules.append(
            PriorityOverrideRule(
                rule_id=rule_id,
                trigger_tags=frozenset(tags),
                outcome=_parse_code(record["priority"], f"Sheet '{OVERRIDES_SHEET}' rule '{rule_id}'"),
                precedence=int(precedence) if precedence not in (None, "") else 1,
            )
        )
    return rules
