"""Learner rows for a sample plan, plus the unit/learner key helpers."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

Unit = Dict[str, Any]


class LearnerRow(BaseModel):
    """One learner returned for a plan, with the units that can be sampled."""

    model_config = ConfigDict(extra="allow")

    learner_name: str = ""
    learner_id: Optional[str] = None
    risk_percentage: Any = None
    risk_level: Optional[str] = None
    assessor_name: Optional[str] = None
    planned_date: Optional[str] = None
    status: Optional[str] = None
    sample_type: Optional[str] = None
    qa_approved: Any = None
    units: List[Unit] = Field(default_factory=list)

    @field_validator("learner_name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("learner_id", "risk_level", "assessor_name", "planned_date", "status", "sample_type", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("units", mode="before")
    @classmethod
    def keep_mapping_units(cls, value: Any) -> List[Unit]:
        if not isinstance(value, list):
            return []
        return [dict(unit) for unit in value if isinstance(unit, Mapping)]


class PlanSummary(BaseModel):
    plan_id: Optional[str] = None
    course_name: Optional[str] = None


def unit_key(unit: Mapping[str, Any] | None) -> str | None:
    """Return `unit_code`, falling back to `unit_name`; None when both are blank."""

    if not unit:
        return None
    for field in ("unit_code", "unit_name"):
        value = unit.get(field)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def learner_key(learner_name: str | None, row_index: int) -> str:
    """Composite key; the row index separates learners sharing a name."""
    return f"{learner_name or ''}-{row_index}"


def unit_keys(units: Iterable[Mapping[str, Any]]) -> List[str]:
    """Ordered, de-duplicated unit keys; units without a key are skipped."""
    seen: Dict[str, None] = {}
    for unit in units:
        key = unit_key(unit)
        if key is not None:
            seen.setdefault(key, None)
    return list(seen)


def find_unit(units: Sequence[Mapping[str, Any]], key: str) -> Mapping[str, Any] | None:
    for unit in units:
        if unit_key(unit) == key:
            return unit
    return None


def _dedupe_units(units: Sequence[Unit]) -> List[Unit]:
    by_key: Dict[str, Unit] = {}
    for unit in units:
        key = unit_key(unit)
        if key and key not in by_key:
            by_key[key] = unit
    return list(by_key.values())


def _learner_records(raw: Any) -> Tuple[List[Any], Mapping[str, Any] | None]:
    if isinstance(raw, list):
        return raw, None
    if not isinstance(raw, Mapping):
        return [], None
    data = raw.get("data", raw)
    if isinstance(data, list):
        return data, None
    if isinstance(data, Mapping):
        learners = data.get("learners")
        return (learners if isinstance(learners, list) else []), data
    return [], None


def normalize_learner_rows(raw: Any, *, plan_id: str | None = None) -> Tuple[List[LearnerRow], PlanSummary]:
    """Parse a learners response into rows (units de-duplicated) and a plan summary."""

    records, envelope = _learner_records(raw)
    rows: List[LearnerRow] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        payload = dict(record)
        if payload.get("learner_id") is None:
            payload["learner_id"] = payload.get("learnerId", payload.get("id"))
        row = LearnerRow.model_validate(payload)
        rows.append(row.model_copy(update={"units": _dedupe_units(row.units)}))

    if envelope is not None:
        summary_plan = envelope.get("plan_id", envelope.get("planId", envelope.get("id", plan_id)))
        course_name = envelope.get("course_name") or envelope.get("courseName") or envelope.get("name")
        summary = PlanSummary(
            plan_id=str(summary_plan) if summary_plan is not None else plan_id,
            course_name=str(course_name) if course_name else None,
        )
    else:
        if records == [] and raw:
            logger.debug("Unrecognised learners payload shape: %s", type(raw).__name__)
        summary = PlanSummary(plan_id=plan_id)
    return rows, summary


def filter_visible_rows(
    rows: Sequence[LearnerRow],
    search_text: str,
    filter_applied: bool,
) -> List[Tuple[int, LearnerRow]]:
    """Rows shown to the user, paired with their index so learner keys stay stable."""

    if not filter_applied:
        return []
    needle = search_text.strip().lower()
    visible: List[Tuple[int, LearnerRow]] = []
    for index, row in enumerate(rows):
        if needle:
            haystack = " ".join(
                value for value in (row.learner_name, row.assessor_name, row.risk_level, row.status) if value
            ).lower()
            if needle not in haystack:
                continue
        visible.append((index, row))
    return visible


def count_sampled_units(units: Sequence[Mapping[str, Any]]) -> int:
    """Units that already carry sample history."""
    return sum(1 for unit in units if isinstance(unit.get("sample_history"), list) and unit["sample_history"])


def learner_planned_date(row: LearnerRow) -> str | None:
    if row.planned_date:
        return row.planned_date
    for unit in row.units:
        history = unit.get("sample_history")
        if not isinstance(history, list):
            continue
        for entry in history:
            if isinstance(entry, Mapping) and entry.get("planned_date"):
                return str(entry["planned_date"])
    return None


EXPORT_HEADERS: Tuple[str, ...] = (
    "Assessor Name",
    "Learner Name",
    "Learner ID",
    "Risk Level",
    "QA Approved",
    "Total Units",
    "Selected Units",
    "Planned Date",
    "Course Name",
)


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    return str(value).strip() or "-"


def format_display_date(value: str | None) -> str:
    """`YYYY-MM-DD...` as `DD/MM/YYYY`; "-" when missing or unparseable."""

    if not value:
        return "-"
    try:
        parsed = date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return "-"
    return parsed.strftime("%d/%m/%Y")


def export_rows(
    visible: Iterable[Tuple[int, LearnerRow]],
    selected_units: Mapping[str, Iterable[str]],
    *,
    course_name: str | None = None,
) -> List[List[str]]:
    """One CSV record per visible learner, in `EXPORT_HEADERS` order.

    Selected Units is the size of the learner's current selection, or the
    count of units already carrying sample history when nothing is selected.
    """

    records: List[List[str]] = []
    for index, row in visible:
        extra = row.model_extra or {}
        learner_id = row.learner_id or extra.get("learnerId") or extra.get("id")
        selected = len(set(selected_units.get(learner_key(row.learner_name, index)) or ()))
        records.append(
            [
                _cell(row.assessor_name),
                _cell(row.learner_name),
                _cell(learner_id),
                _cell(row.risk_level),
                "Yes" if row.qa_approved else "No",
                str(len(row.units)),
                str(selected or count_sampled_units(row.units)),
                format_display_date(learner_planned_date(row)),
                _cell(course_name),
            ]
        )
    return records


__all__ = [
    "EXPORT_HEADERS",
    "LearnerRow",
    "PlanSummary",
    "Unit",
    "count_sampled_units",
    "export_rows",
    "filter_visible_rows",
    "find_unit",
    "format_display_date",
    "learner_key",
    "learner_planned_date",
    "normalize_learner_rows",
    "unit_key",
    "unit_keys",
]
