"""
Foundational configuration, error and audit utilities for qaplan.

Higher-level modules (orchestrator, CLI) depend on these without pulling in
the HTTP client.
"""

from .config import AppConfig, ApiConfig, SamplingConfig, UserConfig, load_app_config
from .errors import ApiError, QAPlanError, SampleValidationError, SubmissionError, extract_error_message
from .provenance import SubmissionEvent, SubmissionLogger

__all__ = [
    "ApiConfig",
    "ApiError",
    "AppConfig",
    "QAPlanError",
    "SampleValidationError",
    "SamplingConfig",
    "SubmissionError",
    "SubmissionEvent",
    "SubmissionLogger",
    "UserConfig",
    "extract_error_message",
    "load_app_config",
]
