from __future__ import annotations

import pytest
from pydantic import ValidationError

from qaplan.constants import ASSESSMENT_METHOD_CODES
from qaplan.learners import LearnerRow
from qaplan.payload import ApplySamplesPayload, build_apply_samples_payload
from tests.mocks.lms_api import make_learner


def _rows() -> list[LearnerRow]:
    return [
        LearnerRow.model_validate(make_learner("Ada", units=3, learner_id=101)),
        LearnerRow.model_validate(make_learner("Ben", units=2, learner_id="102")),
        LearnerRow.model_validate(make_learner("Ada", units=2, learner_id=103)),
    ]


def _build(selection, **overrides):
    kwargs = dict(
        plan_id="12",
        sample_type="Portfolio",
        assessor_id="55",
        learner_rows=_rows(),
        selection_map=selection,
    )
    kwargs.update(overrides)
    return build_apply_samples_payload(**kwargs)


def test_returns_none_without_any_selected_unit() -> None:
    assert _build({}) is None
    assert _build({"Ada-0": frozenset(), "Ben-1": set()}) is None


def test_selection_for_unknown_learner_key_is_ignored() -> None:
    assert _build({"Zed-9": {"U01"}}) is None


def test_includes_only_learners_with_units_and_sorts_keys() -> None:
    payload = _build({"Ada-0": {"U03", "U01"}, "Ben-1": set(), "Ada-2": {"U02"}}, date_from="2025-03-01")

    assert payload is not None
    assert [learner.learner_id for learner in payload.learners] == ["101", "103"]
    assert payload.learners[0].unit_keys == ("U01", "U03")
    assert payload.learners[1].unit_keys == ("U02",)
    assert payload.plan_id == "12"
    assert payload.assessor_id == "55"
    assert payload.date_from == "2025-03-01"


def test_blank_date_becomes_none() -> None:
    payload = _build({"Ben-1": {"U01"}}, date_from="")
    assert payload is not None
    assert payload.date_from is None


def test_payload_is_immutable_and_requires_a_learner() -> None:
    payload = _build({"Ben-1": {"U01"}})
    with pytest.raises(ValidationError):
        payload.plan_id = "13"
    with pytest.raises(ValidationError):
        ApplySamplesPayload(plan_id="1", sample_type="Final", assessor_id="2", learners=())


def test_request_body_matches_wire_format() -> None:
    payload = _build(
        {"Ada-0": {"U02"}, "Ben-1": {"U01", "U02"}},
        date_from="2025-04-10",
        selected_methods=("WO", "RPL"),
    )
    body = payload.to_request_body()

    assert body["plan_id"] == 12
    assert body["created_by"] == 55
    assert body["sample_type"] == "Portfolio"
    assert set(body["assessment_methods"]) == set(ASSESSMENT_METHOD_CODES)
    assert body["assessment_methods"]["WO"] is True
    assert body["assessment_methods"]["RPL"] is True
    assert body["assessment_methods"]["PW"] is False
    assert body["learners"] == [
        {"learner_id": 101, "plannedDate": "2025-04-10", "units": [{"id": "U02", "unit_ref": "Unit U02"}]},
        {
            "learner_id": 102,
            "plannedDate": "2025-04-10",
            "units": [{"id": "U01", "unit_ref": "Unit U01"}, {"id": "U02", "unit_ref": "Unit U02"}],
        },
    ]


def test_unit_name_only_units_use_the_name_as_key() -> None:
    rows = [LearnerRow.model_validate({"learner_id": 9, "learner_name": "Cy", "units": [{"unit_name": "Safety"}]})]
    payload = build_apply_samples_payload(
        plan_id="p-1",
        sample_type="Final",
        assessor_id="u-9",
        learner_rows=rows,
        selection_map={"Cy-0": {"Safety"}},
    )
    body = payload.to_request_body()
    assert body["plan_id"] == "p-1"
    assert body["learners"] == [{"learner_id": 9, "plannedDate": None, "units": [{"id": "Safety", "unit_ref": "Safety"}]}]


def test_request_body_skips_learners_without_id_and_unknown_units() -> None:
    rows = [
        LearnerRow.model_validate(make_learner("Ada", units=2)),
        LearnerRow.model_validate(make_learner("Ben", units=2, learner_id=102)),
        LearnerRow.model_validate(make_learner("Cy", units=2, learner_id=103)),
    ]
    payload = _build({"Ada-0": {"U01"}, "Ben-1": {"U02", "ZZZ"}, "Cy-2": {"ZZZ"}}, learner_rows=rows)

    assert payload is not None
    assert [learner.learner_name for learner in payload.learners] == ["Ada", "Ben", "Cy"]
    assert payload.request_learners() == [
        {"learner_id": 102, "plannedDate": None, "units": [{"id": "U02", "unit_ref": "Unit U02"}]},
    ]
    assert payload.to_request_body()["learners"] == payload.request_learners()


def test_request_learners_empty_when_nothing_resolves() -> None:
    rows = [LearnerRow.model_validate(make_learner("Ada", units=2))]
    payload = _build({"Ada-0": {"U01"}}, learner_rows=rows)

    assert payload is not None
    assert payload.request_learners() == []
