"""Normalize the sample-plan payloads returned by the LMS into `Plan` records."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

PLAN_ID_KEYS: tuple[str, ...] = ("plan_id", "planId", "id", "sample_plan_id")
PLAN_LABEL_KEYS: tuple[str, ...] = ("plan_name", "planName", "sample_plan_name", "title", "name")


class Plan(BaseModel):
    """Canonical sample plan: a non-empty id and a display label."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str


def _first_text(record: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = record.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


# Shape hypotheses, tried in order. Each returns None when the raw value does
# not have that shape.


def _bare_list(raw: Any) -> Optional[List[Any]]:
    if isinstance(raw, list):
        return raw
    return None


def _envelope_list(raw: Any) -> Optional[List[Any]]:
    if isinstance(raw, Mapping) and isinstance(raw.get("data"), list):
        return raw["data"]
    return None


def _nested_list(raw: Any) -> Optional[List[Any]]:
    if not isinstance(raw, Mapping):
        return None
    inner = raw.get("data")
    if isinstance(inner, Mapping) and isinstance(inner.get("data"), list):
        return inner["data"]
    return None


def _single_record(raw: Any) -> Optional[List[Any]]:
    if not isinstance(raw, Mapping):
        return None
    source = raw.get("data")
    if source is None:
        source = raw
    if isinstance(source, Mapping) and len(source) > 0:
        return [source]
    return None


_SHAPE_HYPOTHESES: tuple[Callable[[Any], Optional[List[Any]]], ...] = (
    _bare_list,
    _envelope_list,
    _nested_list,
    _single_record,
)


def extract_plan_records(raw: Any) -> List[Any]:
    """Return the raw plan records carried by `raw`, or an empty list."""

    for hypothesis in _SHAPE_HYPOTHESES:
        records = hypothesis(raw)
        if records is not None:
            return records
    logger.debug("Unrecognised sample-plan payload shape: %s", type(raw).__name__)
    return []


def normalize_plan(record: Any) -> Plan | None:
    """Convert one raw record into a Plan, or None when no id resolves."""

    if not isinstance(record, Mapping):
        return None
    plan_id = _first_text(record, PLAN_ID_KEYS)
    if not plan_id:
        return None
    label = _first_text(record, PLAN_LABEL_KEYS) or f"Plan {plan_id}"
    return Plan(id=plan_id, label=label)


def normalize_plans(raw: Any) -> List[Plan]:
    """Normalize any plan payload into a de-duplicated list of plans.

    Accepts a bare list of records, a response envelope, a single record or
    a nested ``{"data": {"data": [...]}}`` payload. When two records share an
    id the later one wins. Never raises; unknown shapes yield ``[]``.
    """

    unique: Dict[str, Plan] = {}
    for record in extract_plan_records(raw):
        plan = normalize_plan(record)
        if plan is not None:
            unique[plan.id] = plan
    return list(unique.values())


__all__ = ["PLAN_ID_KEYS", "PLAN_LABEL_KEYS", "Plan", "extract_plan_records", "normalize_plan", "normalize_plans"]
