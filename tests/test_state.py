from __future__ import annotations

import pytest

from qaplan.constants import ASSESSMENT_METHOD_CODES
from qaplan.learners import LearnerRow, PlanSummary
from qaplan.plans import Plan
from qaplan.state import (
    FilterState,
    Phase,
    QASamplePlanState,
    SelectCourse,
    SelectionStateStore,
    SetLearnerRows,
    SetPlans,
    SetPlansLoading,
    ToggleUnit,
    reduce,
)

PLANS = (Plan(id="1", label="Plan One"), Plan(id="2", label="Plan Two"))
ROWS = (LearnerRow(learner_name="Ada", units=[{"unit_code": "U1"}]),)


def _loaded_store() -> SelectionStateStore:
    store = SelectionStateStore()
    store.select_course("7")
    store.set_plans(PLANS)
    store.set_selected_plan("1")
    store.set_filter_applied(True)
    store.set_learner_rows(ROWS, PlanSummary(plan_id="1", course_name="Business"))
    store.toggle_unit("Ada-0", "U1")
    return store


def test_initial_state_defaults() -> None:
    store = SelectionStateStore()
    assert store.phase is Phase.IDLE
    assert store.plans == ()
    assert store.selected_plan == ""
    assert store.selected_units_map == {}
    assert store.filter_state.selected_methods == ASSESSMENT_METHOD_CODES
    assert store.filter_state.filter_applied is False


def test_phase_follows_the_workflow() -> None:
    store = SelectionStateStore()
    store.select_course("7")
    assert store.phase is Phase.PLANS_READY
    store.dispatch(SetPlansLoading(True))
    assert store.phase is Phase.PLANS_LOADING
    store.dispatch(SetPlansLoading(False), SetPlans(PLANS))
    assert store.phase is Phase.PLANS_READY
    store.set_selected_plan("2")
    assert store.phase is Phase.PLAN_SELECTED
    store.set_filter_applied(True)
    assert store.phase is Phase.FILTER_APPLIED
    store.set_learner_rows(ROWS)
    assert store.phase is Phase.LEARNERS_LOADED


def test_course_switch_clears_dependent_state() -> None:
    store = _loaded_store()
    store.set_filter_error("boom")
    store.select_course("9")

    state = store.state
    assert state.selected_course == "9"
    assert state.plans == ()
    assert state.selected_plan == ""
    assert state.learner_rows == ()
    assert state.plan_summary is None
    assert state.selected_units == {}
    assert state.filters.filter_applied is False
    assert state.filters.filter_error == ""


def test_new_plan_list_without_selected_plan_clears_it() -> None:
    store = _loaded_store()
    store.set_plans((Plan(id="3", label="Plan Three"),))

    assert store.selected_plan == ""
    assert store.learner_rows == ()
    assert store.selected_units_map == {}
    assert store.filter_state.filter_applied is False


def test_new_plan_list_keeping_selected_plan_keeps_selection() -> None:
    store = _loaded_store()
    store.set_plans(PLANS + (Plan(id="3", label="Plan Three"),))

    assert store.selected_plan == "1"
    assert store.selected_units_map == {"Ada-0": frozenset({"U1"})}


def test_selecting_another_plan_resets_rows_and_filter() -> None:
    store = _loaded_store()
    store.set_selected_plan("2")

    assert store.learner_rows == ()
    assert store.selected_units_map == {}
    assert store.state.plan_summary is None
    assert store.filter_state.filter_applied is False


def test_reselecting_same_plan_keeps_rows() -> None:
    store = _loaded_store()
    store.set_selected_plan("1")
    assert store.learner_rows == ROWS
    assert store.filter_state.filter_applied is False


def test_loading_rows_resets_selection() -> None:
    store = _loaded_store()
    store.set_learner_rows(ROWS)
    assert store.selected_units_map == {}


def test_loading_empty_rows_keeps_selection() -> None:
    store = _loaded_store()
    store.set_learner_rows(())
    assert store.selected_units_map == {"Ada-0": frozenset({"U1"})}


def test_toggle_unit_adds_and_removes() -> None:
    store = SelectionStateStore()
    store.toggle_unit("Ada-0", "U1")
    store.toggle_unit("Ada-0", "U2")
    assert store.selected_units_map == {"Ada-0": frozenset({"U1", "U2"})}
    assert store.has_selected_units is True
    store.toggle_unit("Ada-0", "U1")
    store.toggle_unit("Ada-0", "U2")
    assert store.selected_units_map == {"Ada-0": frozenset()}
    assert store.has_selected_units is False


def test_selected_units_map_is_a_copy() -> None:
    store = _loaded_store()
    snapshot = store.selected_units_map
    snapshot["Ben-1"] = frozenset({"U9"})
    assert "Ben-1" not in store.selected_units_map


def test_selection_map_replacement_and_reset() -> None:
    store = _loaded_store()
    store.set_selected_units_map({"Ada-0": ["U2", "U3"]})
    assert store.selected_units_map == {"Ada-0": frozenset({"U2", "U3"})}
    store.reset_selected_units()
    assert store.selected_units_map == {}


def test_filter_setters_and_reset() -> None:
    store = _loaded_store()
    store.set_sample_type("Portfolio")
    store.set_search_text("ada")
    store.set_planned_sample_date("2025-05-01")
    store.set_selected_methods(["WO"])
    store.toggle_method("PW")
    store.toggle_method("WO")
    assert store.filter_state == FilterState(
        filter_applied=True,
        sample_type="Portfolio",
        search_text="ada",
        planned_sample_date="2025-05-01",
        selected_methods=("PW",),
    )

    store.reset_filters()
    assert store.filter_state == FilterState(planned_sample_date="2025-05-01")
    assert store.state.plan_summary is None
    assert store.selected_plan == "1"


def test_reduce_is_pure() -> None:
    before = QASamplePlanState()
    after = reduce(before, SelectCourse("7"))
    assert before.selected_course == ""
    assert after.selected_course == "7"
    toggled = reduce(after, ToggleUnit("Ada-0", "U1"))
    assert after.selected_units == {}
    assert toggled.selected_units == {"Ada-0": frozenset({"U1"})}


def test_state_snapshot_is_frozen() -> None:
    store = SelectionStateStore()
    with pytest.raises(AttributeError):
        store.state.selected_course = "x"  # type: ignore[misc]


def test_dispatch_notifies_once_per_batch() -> None:
    store = SelectionStateStore()
    seen: list[tuple[Phase, Phase]] = []
    unsubscribe = store.subscribe(lambda previous, current: seen.append((previous.phase, current.phase)))

    store.dispatch(SelectCourse("7"), SetPlans(PLANS))
    store.dispatch(SetLearnerRows(ROWS))
    unsubscribe()
    store.select_course("9")

    assert seen == [(Phase.IDLE, Phase.PLANS_READY), (Phase.PLANS_READY, Phase.PLANS_READY)]
