"""Pydantic models for executions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, model_validator


class NodeResultOut(BaseModel):
    node_id: str
    status: str
    output: Any = None
    error: str | None = None
    error_type: str | None = None
    started_at: datetime
    finished_at: datetime


class ExecutionSummary(BaseModel):
    job_id: str
    workflow_id: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
    duration_seconds: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _compute_duration(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("started_at") and data.get("finished_at") and "duration_seconds" not in data:
            data = {**data, "duration_seconds": (data["finished_at"] - data["started_at"]).total_seconds()}
        return data


class ExecutionOut(ExecutionSummary):
    node_results: list[NodeResultOut] = []


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool
