"""Error types shared by the API client and the apply-samples orchestrator."""

from __future__ import annotations

from typing import Any, Dict, Mapping

DEFAULT_ERROR_MESSAGE = "Something went wrong while contacting the LMS API."


class QAPlanError(Exception):
    """Base class for errors raised by the qaplan package."""


class SampleValidationError(QAPlanError):
    """A precondition for applying samples is not met."""


class ApiError(QAPlanError):
    """Structured upstream failure.

    Mirrors the `{data: {message}}` / `{message}` error shape so callers can
    resolve a user-facing message with :func:`extract_error_message`.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        data: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or DEFAULT_ERROR_MESSAGE)
        self.message = message
        self.status_code = status_code
        self.data = data or {}

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ApiError(status_code={self.status_code!r}, message={self.message!r})"


class SubmissionError(ApiError):
    """The apply-samples mutation was rejected."""


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_error_message(error: Any, default: str) -> str:
    """Resolve `data.message`, then `message`, then the provided default."""

    if isinstance(error, ApiError):
        nested = error.data.get("message") if isinstance(error.data, Mapping) else None
        return _text(nested) or _text(error.message) or default
    if isinstance(error, Mapping):
        data = error.get("data")
        nested = data.get("message") if isinstance(data, Mapping) else None
        return _text(nested) or _text(error.get("message")) or default
    data = getattr(error, "data", None)
    if isinstance(data, Mapping):
        nested = _text(data.get("message"))
        if nested:
            return nested
    message = getattr(error, "message", None)
    if message is None and isinstance(error, BaseException) and error.args:
        message = error.args[0]
    return _text(message) or default


__all__ = [
    "ApiError",
    "DEFAULT_ERROR_MESSAGE",
    "QAPlanError",
    "SampleValidationError",
    "SubmissionError",
    "extract_error_message",
]
