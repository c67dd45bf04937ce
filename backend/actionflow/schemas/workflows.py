"""Pydantic models for workflows."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, model_validator


class WorkflowCreate(BaseModel):
    name: str
    description: str | None = None
    # Editor documents: {"id", "data": {"actionDefinitionId", "inputs", ...}, "position"}
    nodes: list[dict[str, Any]] = []
    # {"source", "target"}
    edges: list[dict[str, Any]] = []
    active: bool = True


class WorkflowActivePatch(BaseModel):
    active: bool


class WorkflowOut(BaseModel):
    workflow_id: str
    name: str
    description: str | None = None
    nodes: list[dict[str, Any]] = []
    edges: list[dict[str, Any]] = []
    active: bool
    execution_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _parse_json_columns(cls, data: Any) -> Any:
        if hasattr(data, "nodes_json"):
            return {
                "workflow_id": data.workflow_id,
                "name": data.name,
                "description": data.description,
                "nodes": json.loads(data.nodes_json or "[]"),
                "edges": json.loads(data.edges_json or "[]"),
                "active": data.active,
                "execution_count": data.execution_count,
                "created_at": data.created_at,
                "updated_at": data.updated_at,
            }
        return data


class RunWorkflowRequest(BaseModel):
    # The editor posts {"triggerData": {...}}.
    trigger_payload: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("triggerData", "trigger_payload"),
    )

    model_config = {"extra": "forbid"}


class RunWorkflowResponse(BaseModel):
    job_id: str
