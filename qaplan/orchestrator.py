"""Apply-samples workflow: plan/learner loading, validation and submission."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional

import httpx

from .client import QASamplePlanAPI, course_options
from .core.config import UserConfig
from .core.errors import ApiError, SampleValidationError, extract_error_message
from .core.provenance import SubmissionEvent, SubmissionLogger
from .learners import LearnerRow, PlanSummary, filter_visible_rows, normalize_learner_rows
from .notifications import Notifier, RecordingNotifier
from .payload import ApplySamplesPayload, build_apply_samples_payload
from .plans import Plan, normalize_plans
from .sampler import sample_units
from .state import (
    Phase,
    SelectionStateStore,
    SetFilterApplied,
    SetFilterError,
    SetLearnerRows,
    SetLearnersLoading,
    SetPlanSummary,
    SetPlans,
    SetPlansError,
    SetPlansLoading,
)

LOGGER_NAME = "qaplan.orchestrator"

MSG_SELECT_PLAN = "Please select a plan before applying samples."
MSG_SELECT_SAMPLE_TYPE = "Please select a sample type before applying samples."
MSG_UNKNOWN_USER = "Unable to determine current user. Please re-login and try again."
MSG_PLANNED_DATE_REQUIRED = "Planned Sample Date is required"
MSG_NO_LEARNERS_RANDOM = "No learners available to apply random samples."
MSG_NO_UNITS_SELECTED = "Please select at least one unit before applying samples."
MSG_MANUAL_NOTHING_TO_SUBMIT = "Select at least one learner with sampled units before applying."
MSG_RANDOM_NOTHING_TO_SUBMIT = "No learners with units available to apply random samples."

MSG_MANUAL_SUCCESS = "Sampled learners added successfully."
MSG_RANDOM_SUCCESS = "Random sampled learners added successfully."
MSG_MANUAL_FAILURE = "Failed to apply sampled learners."
MSG_RANDOM_FAILURE = "Failed to apply random sampled learners."

MSG_PLANS_FAILED = "Failed to load plans"
MSG_LEARNERS_FAILED = "Failed to fetch learners for the selected plan."
MSG_SELECT_COURSE_FIRST = "Please select a course before filtering."
MSG_NO_PLANS_FOR_COURSE = "No QA plans are available for the selected course."
MSG_SELECT_COURSE_AND_PLAN = "Please select both a course and a plan before filtering."
MSG_INVALID_COURSE = "Invalid course."

OutcomeStatus = Literal["submitted", "invalid", "blocked", "failed"]
Mode = Literal["manual", "random"]


@dataclass(frozen=True)
class ApplyOutcome:
    """Result of one apply-samples invocation."""

    status: OutcomeStatus
    message: str = ""
    payload: Optional[ApplySamplesPayload] = None
    response: Optional[Dict[str, Any]] = None

    @property
    def submitted(self) -> bool:
        return self.status == "submitted"


class ApplySamplesOrchestrator:
    """Drives one QA user's sample-plan workflow against the LMS API.

    The orchestrator owns no selection state of its own: everything lives in
    the injected :class:`SelectionStateStore`. Network calls go through the
    injected API collaborator; stale responses (the course or plan changed
    while a request was in flight) are dropped.
    """

    def __init__(
        self,
        store: SelectionStateStore,
        api: QASamplePlanAPI,
        *,
        user: UserConfig,
        notifier: Notifier | None = None,
        audit_log: SubmissionLogger | None = None,
        rng: random.Random | None = None,
        course_ref: str | None = None,
        course_page_size: int = 500,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.api = api
        self.user = user
        self.notifier = notifier or RecordingNotifier()
        self.audit_log = audit_log
        self.rng = rng or random.Random()
        self.course_ref = (course_ref or "").strip() or None
        self.course_page_size = course_page_size
        self.logger = logger or logging.getLogger(LOGGER_NAME)

        self.courses: List[Dict[str, str]] = []
        self._courses_loaded = False
        self._rejected_course_ref: str | None = None
        self._plans_generation = 0
        self._learners_generation = 0
        self._submitting = False

    # ------------------------------------------------------------ courses

    async def load_courses(self) -> List[Dict[str, str]]:
        """Fetch the first page of courses used to validate deep links."""

        try:
            response = await self.api.list_courses(page=1, page_size=self.course_page_size)
        except (ApiError, httpx.HTTPError) as exc:
            self.logger.warning("Course lookup failed: %s", exc)
            self.courses = []
        else:
            self.courses = course_options(response)
        self._courses_loaded = True
        return self.courses

    async def select_course(self, course_id: str) -> List[Plan]:
        """Switch course context; plans are reloaded for the new course."""

        self.store.select_course(course_id or "")
        if not course_id:
            return []
        return await self.load_plans()

    # -------------------------------------------------------------- plans

    def _plan_lookup_params(self) -> Dict[str, str]:
        if self.user.is_eqa:
            return {"eqa_id": self.user.user_id}
        return {"iqa_id": self.user.user_id}

    async def load_plans(self) -> List[Plan]:
        course_id = self.store.selected_course
        if not course_id or not self.user.user_id:
            self.store.set_plans(())
            return []

        self._plans_generation += 1
        generation = self._plans_generation
        self.store.dispatch(SetPlansLoading(True), SetPlansError(None))
        try:
            response = await self.api.list_sample_plans(course_id, **self._plan_lookup_params())
        except (ApiError, httpx.HTTPError) as exc:
            if self._plans_stale(generation, course_id):
                return list(self.store.plans)
            message = extract_error_message(exc, MSG_PLANS_FAILED)
            self.logger.warning("Plan lookup failed for course %s: %s", course_id, message)
            self.store.dispatch(SetPlansLoading(False), SetPlansError(message), SetPlans(()))
            return []

        if self._plans_stale(generation, course_id):
            self.logger.debug("Discarding stale plan response for course %s", course_id)
            return list(self.store.plans)
        plans = normalize_plans(response)
        self.store.dispatch(SetPlansLoading(False), SetPlans(tuple(plans)))
        self.logger.info("Loaded %d plan(s) for course %s", len(plans), course_id)
        return plans

    def _plans_stale(self, generation: int, course_id: str) -> bool:
        return generation != self._plans_generation or self.store.selected_course != course_id

    def select_plan(self, plan_id: str) -> None:
        self.store.set_selected_plan(plan_id)

    # ----------------------------------------------------------- learners

    async def apply_filter(self) -> List[LearnerRow]:
        """Validate the course/plan choice, mark filters applied and load learners."""

        state = self.store.state
        if not state.selected_course:
            message = MSG_SELECT_COURSE_FIRST
        elif not state.plans:
            message = MSG_NO_PLANS_FOR_COURSE
        elif not state.selected_plan or not any(plan.id == state.selected_plan for plan in state.plans):
            message = MSG_SELECT_COURSE_AND_PLAN
        else:
            message = ""
        if message:
            self.store.dispatch(SetFilterError(message), SetFilterApplied(False))
            return []

        self.store.dispatch(SetFilterError(""), SetFilterApplied(True))
        return await self.fetch_learners(state.selected_plan)

    async def fetch_learners(self, plan_id: str | None = None) -> List[LearnerRow]:
        plan_id = plan_id or self.store.selected_plan
        if not plan_id:
            return []

        self._learners_generation += 1
        generation = self._learners_generation
        self.store.dispatch(SetLearnersLoading(True))
        try:
            response = await self.api.get_plan_learners(plan_id)
        except (ApiError, httpx.HTTPError) as exc:
            if self._learners_stale(generation, plan_id):
                return self._discard_learners(generation, plan_id)
            message = extract_error_message(exc, MSG_LEARNERS_FAILED)
            self.logger.warning("Learner lookup failed for plan %s: %s", plan_id, message)
            self.store.dispatch(
                SetLearnersLoading(False),
                SetFilterError(message),
                SetPlanSummary(PlanSummary(plan_id=plan_id)),
            )
            return []

        if self._learners_stale(generation, plan_id):
            return self._discard_learners(generation, plan_id)
        rows, summary = normalize_learner_rows(response, plan_id=plan_id)
        self.store.dispatch(SetLearnersLoading(False), SetLearnerRows(tuple(rows), summary))
        self.logger.info("Loaded %d learner(s) for plan %s", len(rows), plan_id)
        return rows

    def _learners_stale(self, generation: int, plan_id: str) -> bool:
        return generation != self._learners_generation or self.store.selected_plan != plan_id

    def _discard_learners(self, generation: int, plan_id: str) -> List[LearnerRow]:
        self.logger.debug("Discarding stale learner response for plan %s", plan_id)
        if generation == self._learners_generation:
            # Latest request; only the selected plan changed.
            self.store.dispatch(SetLearnersLoading(False))
        return list(self.store.learner_rows)

    def toggle_unit(self, learner_key: str, unit_key: str) -> None:
        self.store.toggle_unit(learner_key, unit_key)

    def visible_rows(self) -> List[tuple[int, LearnerRow]]:
        filters = self.store.filter_state
        return filter_visible_rows(self.store.learner_rows, filters.search_text, filters.filter_applied)

    # --------------------------------------------------------- auto-trigger

    def set_course_reference(self, course_ref: str | None) -> None:
        self.course_ref = (course_ref or "").strip() or None
        self._rejected_course_ref = None

    async def run_auto_trigger(self) -> Phase:
        """Advance the EQA deep-link flow as far as the loaded data allows.

        Each step only fires when the state has not yet moved past it, so
        calling this repeatedly is safe.
        """

        if not self.user.is_eqa or not self.course_ref:
            return self.store.phase
        while await self._auto_step():
            pass
        return self.store.phase

    async def _auto_step(self) -> bool:
        course_ref = self.course_ref
        if not self._courses_loaded:
            await self.load_courses()
        if not self.courses or self._rejected_course_ref == course_ref:
            return False
        if not any(course["id"] == course_ref for course in self.courses):
            self._rejected_course_ref = course_ref
            self.logger.warning("Rejected unknown course reference %s", course_ref)
            self.notifier.error(MSG_INVALID_COURSE)
            return False

        state = self.store.state
        if state.selected_course != course_ref:
            await self.select_course(course_ref)
            return True
        if state.plans_loading or not state.plans or state.filters.filter_applied:
            return False
        if not state.selected_plan:
            self.store.set_selected_plan(state.plans[0].id)
            return True
        if any(plan.id == state.selected_plan for plan in state.plans):
            self.store.dispatch(SetFilterError(""), SetFilterApplied(True))
            await self.fetch_learners(state.selected_plan)
        return False

    # --------------------------------------------------------------- apply

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def is_apply_samples_disabled(self) -> bool:
        state = self.store.state
        return (
            not state.filters.filter_applied
            or not state.selected_plan
            or not state.filters.sample_type
            or not state.learner_rows
            or state.plans_loading
            or state.learners_loading
            or self._submitting
        )

    def _validate_common(self) -> None:
        state = self.store.state
        if not state.selected_plan:
            raise SampleValidationError(MSG_SELECT_PLAN)
        if not state.filters.sample_type:
            raise SampleValidationError(MSG_SELECT_SAMPLE_TYPE)
        if not self.user.user_id:
            raise SampleValidationError(MSG_UNKNOWN_USER)

    def _reject(self, message: str) -> ApplyOutcome:
        self.store.set_filter_error(message)
        self.logger.info("Apply samples rejected: %s", message)
        return ApplyOutcome(status="invalid", message=message)

    def _blocked(self, mode: Mode) -> ApplyOutcome:
        self.logger.debug("Apply %s samples ignored while the action is disabled", mode)
        return ApplyOutcome(status="blocked")

    def _build_payload(self, selection: Mapping[str, Any]) -> ApplySamplesPayload | None:
        state = self.store.state
        return build_apply_samples_payload(
            plan_id=state.selected_plan,
            sample_type=state.filters.sample_type or "",
            assessor_id=self.user.user_id,
            learner_rows=state.learner_rows,
            selection_map=selection,
            date_from=state.filters.planned_sample_date,
            selected_methods=state.filters.selected_methods,
        )

    async def apply_manual_samples(self) -> ApplyOutcome:
        """Submit the units the user ticked by hand."""

        try:
            self._validate_common()
        except SampleValidationError as exc:
            return self._reject(str(exc))
        if self.is_apply_samples_disabled:
            return self._blocked("manual")
        if not self.store.has_selected_units:
            return self._reject(MSG_NO_UNITS_SELECTED)

        payload = self._build_payload(self.store.selected_units_map)
        if payload is None or not payload.request_learners():
            return self._reject(MSG_MANUAL_NOTHING_TO_SUBMIT)
        return await self._submit(payload, mode="manual")

    async def apply_random_samples(self) -> ApplyOutcome:
        """Draw a risk-weighted random sample for every learner and submit it."""

        try:
            self._validate_common()
        except SampleValidationError as exc:
            return self._reject(str(exc))
        if not self.store.filter_state.planned_sample_date.strip():
            return self._reject(MSG_PLANNED_DATE_REQUIRED)
        rows = self.store.learner_rows
        if not rows:
            return self._reject(MSG_NO_LEARNERS_RANDOM)
        if self.is_apply_samples_disabled:
            return self._blocked("random")

        selection = sample_units(rows, self.rng)
        self.store.set_selected_units_map(selection)
        payload = self._build_payload(selection)
        if payload is None or not payload.request_learners():
            return self._reject(MSG_RANDOM_NOTHING_TO_SUBMIT)
        return await self._submit(payload, mode="random")

    async def _submit(self, payload: ApplySamplesPayload, *, mode: Mode) -> ApplyOutcome:
        success_default = MSG_RANDOM_SUCCESS if mode == "random" else MSG_MANUAL_SUCCESS
        failure_default = MSG_RANDOM_FAILURE if mode == "random" else MSG_MANUAL_FAILURE

        self._submitting = True
        try:
            response = await self.api.apply_sampled_learners(payload.to_request_body())
        except (ApiError, httpx.HTTPError) as exc:
            message = extract_error_message(exc, failure_default)
            self.logger.warning("Apply %s samples failed for plan %s: %s", mode, payload.plan_id, message)
            self.store.set_filter_error(message)
            self.notifier.error(message)
            self._audit(mode, "failed", message, payload)
            return ApplyOutcome(status="failed", message=message, payload=payload)
        finally:
            self._submitting = False

        reply = response.get("message") if isinstance(response, Mapping) else None
        message = str(reply).strip() if reply else success_default
        self.notifier.success(message)
        self.store.set_filter_error("")
        self.logger.info(
            "Applied %s samples for %d learner(s) on plan %s",
            mode,
            len(payload.learners),
            payload.plan_id,
        )
        self._audit(mode, "submitted", message, payload)

        if self.store.selected_plan:
            await self.fetch_learners(self.store.selected_plan)
        return ApplyOutcome(
            status="submitted",
            message=message,
            payload=payload,
            response=dict(response) if isinstance(response, Mapping) else None,
        )

    def _audit(self, mode: Mode, status: str, message: str, payload: ApplySamplesPayload) -> None:
        if self.audit_log is None:
            return
        self.audit_log.log(
            SubmissionEvent(
                mode=mode,
                status=status,
                message=message,
                plan_id=payload.plan_id,
                assessor_id=payload.assessor_id,
                payload=payload.model_dump(mode="json"),
            )
        )


__all__ = ["ApplyOutcome", "ApplySamplesOrchestrator", "LOGGER_NAME"]
