"""Async HTTP client for the LMS sample-plan endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol
from urllib.parse import quote

import httpx

from .core.config import ApiConfig
from .core.errors import DEFAULT_ERROR_MESSAGE, ApiError, SubmissionError


class QASamplePlanAPI(Protocol):
    """Request/response contract the orchestrator depends on."""

    async def list_courses(self, *, page: int = 1, page_size: int = 500) -> Dict[str, Any]: ...

    async def list_sample_plans(
        self,
        course_id: str,
        *,
        iqa_id: str | None = None,
        eqa_id: str | None = None,
    ) -> Dict[str, Any]: ...

    async def get_plan_learners(self, plan_id: str) -> Dict[str, Any]: ...

    async def apply_sampled_learners(self, body: Dict[str, Any]) -> Dict[str, Any]: ...


def course_options(response: Any) -> List[Dict[str, str]]:
    """Flatten a course-list response into ``{"id", "name"}`` options."""

    data = response.get("data") if isinstance(response, dict) else response
    if not isinstance(data, list):
        return []
    options: List[Dict[str, str]] = []
    for course in data:
        if not isinstance(course, dict) or course.get("course_id") is None:
            continue
        options.append(
            {
                "id": str(course["course_id"]),
                "name": str(course.get("course_name") or "Untitled Course"),
            }
        )
    return options


class QASamplePlanClient:
    def __init__(
        self,
        config: ApiConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        if client is None:
            self._client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=config.timeout,
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    async def list_courses(self, *, page: int = 1, page_size: int = 500) -> Dict[str, Any]:
        """Return one page of courses."""

        response = await self._client.get(
            "/course/list",
            params={"page": page, "limit": page_size, "meta": "true"},
            headers=self._build_headers(),
        )
        return self._unwrap(response, require_status=True)

    async def list_sample_plans(
        self,
        course_id: str,
        *,
        iqa_id: str | None = None,
        eqa_id: str | None = None,
    ) -> Dict[str, Any]:
        """Return the sample plans of a course assigned to an IQA or EQA user."""

        params = {
            key: value
            for key, value in (("course_id", course_id), ("iqa_id", iqa_id), ("eqaId", eqa_id))
            if value not in (None, "")
        }
        response = await self._client.get(
            "/sample-plan/list",
            params=params,
            headers=self._build_headers(),
        )
        return self._unwrap(response)

    async def get_plan_learners(self, plan_id: str) -> Dict[str, Any]:
        """Return the learners (with their units) attached to a plan."""

        response = await self._client.get(
            f"/sample-plan/{quote(str(plan_id), safe='')}/learners",
            headers=self._build_headers(),
        )
        return self._unwrap(response)

    async def apply_sampled_learners(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Submit sampled learners for a plan."""

        response = await self._client.post(
            "/sample-plan/add-sampled-learners",
            json=body,
            headers=self._build_headers(),
        )
        return self._unwrap(response, require_status=True, error_cls=SubmissionError)

    async def aclose(self) -> None:
        if getattr(self, "_owns_client", False):
            await self._client.aclose()

    def _build_headers(self) -> Dict[str, str] | None:
        token = self._config.resolve_token()
        if not token:
            return None
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _unwrap(
        response: httpx.Response,
        *,
        require_status: bool = False,
        error_cls: type[ApiError] = ApiError,
    ) -> Dict[str, Any]:
        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise error_cls(
                "LMS API returned non-JSON payload",
                status_code=response.status_code,
            ) from exc
        envelope = data if isinstance(data, dict) else {"data": data}

        if response.is_error:
            raise error_cls(
                _envelope_message(envelope) or f"HTTP {response.status_code}",
                status_code=response.status_code,
                data=envelope,
            )
        status = envelope.get("status")
        if status is False or (require_status and not status):
            raise error_cls(
                _envelope_message(envelope) or DEFAULT_ERROR_MESSAGE,
                status_code=response.status_code,
            )
        return envelope

    async def __aenter__(self) -> "QASamplePlanClient":  # pragma: no cover - convenience
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - convenience
        await self.aclose()


def _envelope_message(envelope: Dict[str, Any]) -> str | None:
    for key in ("error", "message"):
        value = envelope.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


__all__ = ["QASamplePlanAPI", "QASamplePlanClient", "course_options"]
