"""Append-only JSONL audit trail for apply-samples submissions."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field


class SubmissionEvent(BaseModel):
    """Structured record for one apply-samples attempt."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mode: str = Field(..., description="Entry point that produced the event, 'manual' or 'random'.")
    status: str = Field(..., description="Outcome status, e.g. 'submitted' or 'failed'.")
    message: str = Field(default="")
    plan_id: str | None = None
    assessor_id: str | None = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class SubmissionLogger:
    """Audit trail of apply-samples attempts, one JSON object per line."""

    def __init__(self, output_path: Path):
        self.path = Path(output_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: SubmissionEvent | Dict[str, Any]) -> SubmissionEvent:
        record = event if isinstance(event, SubmissionEvent) else SubmissionEvent.model_validate(event)
        with self.path.open("a", encoding="utf-8") as stream:
            stream.write(record.model_dump_json() + "\n")
        return record

    def extend(self, events: Iterable[SubmissionEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self, *, plan_id: str | None = None) -> List[SubmissionEvent]:
        """Replay the trail, optionally only for one plan."""
        if not self.path.exists():
            return []
        records = [
            SubmissionEvent.model_validate_json(line)
            for line in self.path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        if plan_id is None:
            return records
        return [record for record in records if record.plan_id == plan_id]


__all__ = ["SubmissionEvent", "SubmissionLogger"]
