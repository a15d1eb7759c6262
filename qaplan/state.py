"""Selection state for one course/plan context.

The store holds an immutable :class:`QASamplePlanState` snapshot. Every change
is expressed as an event and applied through :func:`reduce`, which returns a
new snapshot; the store swaps it in whole, so readers never observe a
half-applied update.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .constants import default_selected_methods
from .learners import LearnerRow, PlanSummary
from .plans import Plan

SelectionMap = Mapping[str, FrozenSet[str]]


class Phase(str, Enum):
    IDLE = "idle"
    PLANS_LOADING = "plans_loading"
    PLANS_READY = "plans_ready"
    PLAN_SELECTED = "plan_selected"
    FILTER_APPLIED = "filter_applied"
    LEARNERS_LOADED = "learners_loaded"


@dataclass(frozen=True)
class FilterState:
    filter_applied: bool = False
    sample_type: Optional[str] = None
    search_text: str = ""
    planned_sample_date: str = ""
    selected_methods: Tuple[str, ...] = field(default_factory=lambda: tuple(default_selected_methods()))
    filter_error: str = ""


@dataclass(frozen=True)
class QASamplePlanState:
    selected_course: str = ""
    plans: Tuple[Plan, ...] = ()
    selected_plan: str = ""
    plans_loading: bool = False
    plans_error: Optional[str] = None
    learners_loading: bool = False
    learner_rows: Tuple[LearnerRow, ...] = ()
    plan_summary: Optional[PlanSummary] = None
    filters: FilterState = field(default_factory=FilterState)
    selected_units: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    @property
    def phase(self) -> Phase:
        if not self.selected_course:
            return Phase.IDLE
        if self.plans_loading:
            return Phase.PLANS_LOADING
        if not self.selected_plan:
            return Phase.PLANS_READY
        if not self.filters.filter_applied:
            return Phase.PLAN_SELECTED
        if not self.learner_rows:
            return Phase.FILTER_APPLIED
        return Phase.LEARNERS_LOADED

    @property
    def has_selected_units(self) -> bool:
        return any(units for units in self.selected_units.values())


# ---------------------------------------------------------------- events


class Event:
    """Base class for state transitions."""

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:  # pragma: no cover - abstract
        raise NotImplementedError


def _with_filters(state: QASamplePlanState, **changes) -> QASamplePlanState:
    return replace(state, filters=replace(state.filters, **changes))


@dataclass(frozen=True)
class SelectCourse(Event):
    course_id: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(
            state,
            selected_course=self.course_id,
            plans=(),
            selected_plan="",
            plans_loading=False,
            plans_error=None,
            learners_loading=False,
            learner_rows=(),
            plan_summary=None,
            selected_units={},
            filters=replace(state.filters, filter_applied=False, filter_error=""),
        )


@dataclass(frozen=True)
class SetPlansLoading(Event):
    loading: bool

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, plans_loading=self.loading)


@dataclass(frozen=True)
class SetPlans(Event):
    plans: Tuple[Plan, ...]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        next_state = replace(state, plans=tuple(self.plans))
        if state.selected_plan and not any(plan.id == state.selected_plan for plan in self.plans):
            next_state = replace(next_state, selected_plan="", learner_rows=(), selected_units={})
            next_state = _with_filters(next_state, filter_applied=False)
        return next_state


@dataclass(frozen=True)
class SetPlansError(Event):
    message: Optional[str]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, plans_error=self.message)


@dataclass(frozen=True)
class SelectPlan(Event):
    plan_id: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        next_state = replace(state, selected_plan=self.plan_id)
        if self.plan_id != state.selected_plan:
            next_state = replace(next_state, learner_rows=(), plan_summary=None, selected_units={})
        return _with_filters(next_state, filter_applied=False, filter_error="")


@dataclass(frozen=True)
class SetFilterApplied(Event):
    applied: bool

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, filter_applied=self.applied)


@dataclass(frozen=True)
class SetFilterError(Event):
    message: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, filter_error=self.message or "")


@dataclass(frozen=True)
class SetSampleType(Event):
    sample_type: Optional[str]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, sample_type=self.sample_type or None)


@dataclass(frozen=True)
class SetSearchText(Event):
    text: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, search_text=self.text)


@dataclass(frozen=True)
class SetPlannedSampleDate(Event):
    value: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, planned_sample_date=self.value)


@dataclass(frozen=True)
class SetSelectedMethods(Event):
    methods: Tuple[str, ...]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return _with_filters(state, selected_methods=tuple(self.methods))


@dataclass(frozen=True)
class ToggleMethod(Event):
    code: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        methods = state.filters.selected_methods
        if self.code in methods:
            updated = tuple(code for code in methods if code != self.code)
        else:
            updated = methods + (self.code,)
        return _with_filters(state, selected_methods=updated)


@dataclass(frozen=True)
class SetLearnersLoading(Event):
    loading: bool

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, learners_loading=self.loading)


@dataclass(frozen=True)
class SetLearnerRows(Event):
    """Replace the learner rows; a non-empty list always starts a fresh selection."""

    rows: Tuple[LearnerRow, ...]
    summary: Optional[PlanSummary] = None

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        next_state = replace(state, learner_rows=tuple(self.rows), plan_summary=self.summary)
        if self.rows:
            next_state = replace(next_state, selected_units={})
        return next_state


@dataclass(frozen=True)
class SetPlanSummary(Event):
    summary: Optional[PlanSummary]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, plan_summary=self.summary)


@dataclass(frozen=True)
class SetSelectedUnitsMap(Event):
    selection: Mapping[str, FrozenSet[str]]

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, selected_units={key: frozenset(units) for key, units in self.selection.items()})


@dataclass(frozen=True)
class ToggleUnit(Event):
    learner_key: str
    unit_key: str

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        current = state.selected_units.get(self.learner_key, frozenset())
        updated = current - {self.unit_key} if self.unit_key in current else current | {self.unit_key}
        return replace(state, selected_units={**state.selected_units, self.learner_key: updated})


@dataclass(frozen=True)
class ResetSelectedUnits(Event):
    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        return replace(state, selected_units={})


@dataclass(frozen=True)
class ResetFilters(Event):
    """Back to default filters; the planned sample date is kept."""

    def apply(self, state: QASamplePlanState) -> QASamplePlanState:
        filters = FilterState(planned_sample_date=state.filters.planned_sample_date)
        return replace(state, filters=filters, plan_summary=None)


def reduce(state: QASamplePlanState, event: Event) -> QASamplePlanState:
    """Pure transition: return the state that results from applying ``event``."""
    return event.apply(state)


# ----------------------------------------------------------------- store

Listener = Callable[[QASamplePlanState, QASamplePlanState], None]


class SelectionStateStore:
    """Single-writer holder of the current snapshot, with named mutators and selectors."""

    def __init__(self, initial: QASamplePlanState | None = None) -> None:
        self._state = initial or QASamplePlanState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> QASamplePlanState:
        return self._state

    def dispatch(self, *events: Event) -> QASamplePlanState:
        """Apply events in order and publish the final snapshot once."""
        previous = self._state
        state = previous
        for event in events:
            state = reduce(state, event)
        self._state = state
        for listener in list(self._listeners):
            listener(previous, state)
        return state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # selectors

    @property
    def plans(self) -> Tuple[Plan, ...]:
        return self._state.plans

    @property
    def selected_plan(self) -> str:
        return self._state.selected_plan

    @property
    def selected_course(self) -> str:
        return self._state.selected_course

    @property
    def filter_state(self) -> FilterState:
        return self._state.filters

    @property
    def selected_units_map(self) -> Dict[str, FrozenSet[str]]:
        return dict(self._state.selected_units)

    @property
    def learner_rows(self) -> Tuple[LearnerRow, ...]:
        return self._state.learner_rows

    @property
    def has_selected_units(self) -> bool:
        return self._state.has_selected_units

    @property
    def phase(self) -> Phase:
        return self._state.phase

    # mutators

    def select_course(self, course_id: str) -> QASamplePlanState:
        return self.dispatch(SelectCourse(course_id))

    def set_plans(self, plans: Sequence[Plan]) -> QASamplePlanState:
        return self.dispatch(SetPlans(tuple(plans)))

    def set_selected_plan(self, plan_id: str) -> QASamplePlanState:
        return self.dispatch(SelectPlan(plan_id))

    def set_filter_applied(self, applied: bool) -> QASamplePlanState:
        return self.dispatch(SetFilterApplied(applied))

    def set_filter_error(self, message: str) -> QASamplePlanState:
        return self.dispatch(SetFilterError(message))

    def set_sample_type(self, sample_type: str | None) -> QASamplePlanState:
        return self.dispatch(SetSampleType(sample_type))

    def set_search_text(self, text: str) -> QASamplePlanState:
        return self.dispatch(SetSearchText(text))

    def set_planned_sample_date(self, value: str) -> QASamplePlanState:
        return self.dispatch(SetPlannedSampleDate(value))

    def set_selected_methods(self, methods: Iterable[str]) -> QASamplePlanState:
        return self.dispatch(SetSelectedMethods(tuple(methods)))

    def toggle_method(self, code: str) -> QASamplePlanState:
        return self.dispatch(ToggleMethod(code))

    def set_learner_rows(self, rows: Sequence[LearnerRow], summary: PlanSummary | None = None) -> QASamplePlanState:
        return self.dispatch(SetLearnerRows(tuple(rows), summary))

    def set_selected_units_map(self, selection: Mapping[str, Iterable[str]]) -> QASamplePlanState:
        return self.dispatch(SetSelectedUnitsMap({key: frozenset(units) for key, units in selection.items()}))

    def toggle_unit(self, learner_key: str, unit_key: str) -> QASamplePlanState:
        return self.dispatch(ToggleUnit(learner_key, unit_key))

    def reset_selected_units(self) -> QASamplePlanState:
        return self.dispatch(ResetSelectedUnits())

    def reset_filters(self) -> QASamplePlanState:
        return self.dispatch(ResetFilters())


__all__ = [
    "Event",
    "FilterState",
    "Phase",
    "QASamplePlanState",
    "ResetFilters",
    "ResetSelectedUnits",
    "SelectCourse",
    "SelectPlan",
    "SelectionStateStore",
    "SetFilterApplied",
    "SetFilterError",
    "SetLearnerRows",
    "SetLearnersLoading",
    "SetPlanSummary",
    "SetPlannedSampleDate",
    "SetPlans",
    "SetPlansError",
    "SetPlansLoading",
    "SetSampleType",
    "SetSearchText",
    "SetSelectedMethods",
    "SetSelectedUnitsMap",
    "ToggleMethod",
    "ToggleUnit",
    "reduce",
]
