"""
Typed configuration helpers for the QA sample-plan engine.

The models are loaded from a single YAML file and consumed by the `qaplan`
CLI. Library callers can also build them directly.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_TOKEN_ENV = "QAPLAN_API_TOKEN"

Role = Literal["IQA", "EQA"]


class ApiConfig(BaseModel):
    """Connection info for the upstream LMS API."""

    model_config = ConfigDict(extra="ignore")

    base_url: str
    auth_token: Optional[str] = None
    auth_token_env: str = Field(default=DEFAULT_TOKEN_ENV, description="Env var consulted when auth_token is unset.")
    timeout: float = Field(default=30.0, gt=0.0, le=300.0)

    @field_validator("base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    def resolve_token(self) -> str | None:
        if self.auth_token:
            return self.auth_token
        token = os.environ.get(self.auth_token_env, "").strip()
        return token or None


class UserConfig(BaseModel):
    """Identity of the quality assurer running the workflow."""

    user_id: Optional[str] = None
    role: Role = "IQA"

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, value: Any) -> Any:
        if value is None:
            return value
        text = str(value).strip()
        return text or None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def is_eqa(self) -> bool:
        return self.role == "EQA"


class SamplingConfig(BaseModel):
    """Knobs for course lookup, random sampling and submission auditing."""

    course_page_size: int = Field(default=500, ge=1, le=5000)
    random_seed: int | None = Field(default=None, description="Seed for reproducible random samples.")
    audit_log_path: Path | None = None

    @field_validator("audit_log_path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value).expanduser().resolve()


class AppConfig(BaseModel):
    """Top-level configuration for the qaplan CLI."""

    api: ApiConfig
    user: UserConfig = Field(default_factory=UserConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)

    @model_validator(mode="before")
    @classmethod
    def ensure_sections_present(cls, values: Any) -> Any:
        if isinstance(values, dict) and "api" not in values:
            raise ValueError("Missing config sections: api")
        return values


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_paths(data: Dict[str, Any], base_dir: Path) -> None:
    sampling = data.get("sampling")
    if isinstance(sampling, dict) and sampling.get("audit_log_path"):
        sampling["audit_log_path"] = _resolve_config_path(sampling["audit_log_path"], base_dir)


def load_app_config(path: Path, *, base_dir: Path | None = None) -> AppConfig:
    """Load the app config used by the qaplan CLI."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid qaplan config in {path}") from exc


def merge_user_overrides(base: AppConfig, overrides: Dict[str, Any]) -> AppConfig:
    """Return a new AppConfig with CLI-provided user overrides applied."""
    cleaned = {key: value for key, value in overrides.items() if value is not None}
    if not cleaned:
        return base
    payload = base.model_dump()
    payload["user"] = {**payload.get("user", {}), **cleaned}
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Invalid user overrides") from exc
