"""Build the apply-samples submission from the current selections."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .constants import ASSESSMENT_METHOD_PAYLOAD_IDS
from .learners import LearnerRow, find_unit, learner_key


class SampledUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_key: str
    unit_code: Optional[str] = None
    unit_name: Optional[str] = None


class SampledLearner(BaseModel):
    model_config = ConfigDict(frozen=True)

    learner_name: str
    learner_id: Optional[str] = None
    unit_keys: Tuple[str, ...]
    units: Tuple[SampledUnit, ...] = ()


class ApplySamplesPayload(BaseModel):
    """Immutable submission for the add-sampled-learners endpoint."""

    model_config = ConfigDict(frozen=True)

    plan_id: str
    sample_type: str
    assessor_id: str
    date_from: Optional[str] = None
    methods: Tuple[str, ...] = ()
    learners: Tuple[SampledLearner, ...] = Field(..., min_length=1)

    def request_learners(self) -> List[Dict[str, Any]]:
        """Learner entries as the LMS expects them.

        Learners without an id, and unit keys that do not match one of the
        learner's units, are left out; the LMS cannot attach either.
        """

        entries: List[Dict[str, Any]] = []
        for learner in self.learners:
            if not learner.learner_id:
                continue
            units = [
                {
                    "id": _numeric_or_text(unit.unit_code or unit.unit_key),
                    "unit_ref": unit.unit_name or unit.unit_code,
                }
                for unit in learner.units
                if unit.unit_code or unit.unit_name
            ]
            if not units:
                continue
            entries.append(
                {
                    "learner_id": _numeric_or_text(learner.learner_id),
                    "plannedDate": self.date_from or None,
                    "units": units,
                }
            )
        return entries

    def to_request_body(self) -> Dict[str, Any]:
        """Render the wire format expected by the LMS API."""

        selected = set(self.methods)
        return {
            "plan_id": _numeric_or_text(self.plan_id),
            "sample_type": self.sample_type,
            "created_by": _numeric_or_text(self.assessor_id),
            "assessment_methods": {code: code in selected for code in ASSESSMENT_METHOD_PAYLOAD_IDS},
            "learners": self.request_learners(),
        }


def _numeric_or_text(value: Any) -> Any:
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isnan(number) or math.isinf(number):
        return text
    return int(number) if number.is_integer() else number


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _sampled_units(row: LearnerRow, keys: Sequence[str]) -> Tuple[SampledUnit, ...]:
    units: List[SampledUnit] = []
    for key in keys:
        unit = find_unit(row.units, key) or {}
        units.append(
            SampledUnit(
                unit_key=key,
                unit_code=_text_or_none(unit.get("unit_code")),
                unit_name=_text_or_none(unit.get("unit_name")),
            )
        )
    return tuple(units)


def build_apply_samples_payload(
    *,
    plan_id: str,
    sample_type: str,
    assessor_id: Any,
    learner_rows: Sequence[LearnerRow],
    selection_map: Mapping[str, Iterable[str]],
    date_from: str | None = None,
    selected_methods: Sequence[str] = (),
) -> ApplySamplesPayload | None:
    """Return the submission payload, or None when no learner has selected units.

    A learner is included when its learner key maps to a non-empty set of unit
    keys; its keys are sorted. Rows without a selection are left out.
    """

    learners: List[SampledLearner] = []
    for index, row in enumerate(learner_rows):
        selected = selection_map.get(learner_key(row.learner_name, index))
        keys = sorted(set(selected or ()))
        if not keys:
            continue
        learners.append(
            SampledLearner(
                learner_name=row.learner_name,
                learner_id=row.learner_id,
                unit_keys=tuple(keys),
                units=_sampled_units(row, keys),
            )
        )

    if not learners:
        return None

    return ApplySamplesPayload(
        plan_id=str(plan_id),
        sample_type=sample_type,
        assessor_id=str(assessor_id),
        date_from=date_from or None,
        methods=tuple(selected_methods),
        learners=tuple(learners),
    )


__all__ = ["ApplySamplesPayload", "SampledLearner", "SampledUnit", "build_apply_samples_payload"]
