"""Reference data shared by the filter state and the payload builder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class AssessmentMethod:
    code: str
    title: str
    assessment_method_id: Optional[str] = None

    @property
    def payload_id(self) -> str:
        return self.assessment_method_id or self.code


@dataclass(frozen=True)
class SampleType:
    value: str
    label: str


ASSESSMENT_METHODS: Tuple[AssessmentMethod, ...] = (
    AssessmentMethod("WO", "Workplace Observation", "WO"),
    AssessmentMethod("WP", "Workplace Projects/Projects away from Work", "WP"),
    AssessmentMethod("PW", "Portfolio of Work", "PW"),
    AssessmentMethod("VI", "Viva", "VI"),
    AssessmentMethod("LB", "Log Book/Assignments", "LB"),
    AssessmentMethod("PD", "Professional Discussions", "PD"),
    AssessmentMethod("PT", "Practical Test", "PT"),
    AssessmentMethod("TE", "Tests/Examinations", "TE"),
    AssessmentMethod("RJ", "Reflective Journal", "RJ"),
    AssessmentMethod("OT", "Other", "OT"),
    AssessmentMethod("RPL", "Recognised Prior Learning", "RPL"),
)

ASSESSMENT_METHOD_CODES: Tuple[str, ...] = tuple(method.code for method in ASSESSMENT_METHODS)
ASSESSMENT_METHOD_PAYLOAD_IDS: Tuple[str, ...] = tuple(method.payload_id for method in ASSESSMENT_METHODS)

SAMPLE_TYPES: Tuple[SampleType, ...] = (
    SampleType("Portfolio", "Sample Portfolio"),
    SampleType("ObserveAssessor", "Observe Assessor"),
    SampleType("LearnerInterview", "Learner Interview"),
    SampleType("EmployerInterview", "Employer Interview"),
    SampleType("Final", "Final Check"),
)

SAMPLE_TYPE_VALUES: Tuple[str, ...] = tuple(sample_type.value for sample_type in SAMPLE_TYPES)


def default_selected_methods() -> List[str]:
    """Every method is ticked until the user narrows the filter."""
    return list(ASSESSMENT_METHOD_CODES)


def get_assessment_method(code_or_id: str) -> AssessmentMethod | None:
    for method in ASSESSMENT_METHODS:
        if method.code == code_or_id or method.assessment_method_id == code_or_id:
            return method
    return None
