"""Pydantic models for action definitions."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

InputType = Literal["text", "textarea", "number", "boolean", "select", "multiselect"]
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class InputField(BaseModel):
    key: str = Field(min_length=1)
    type: InputType = "text"
    label: str | None = None
    required: bool = False
    options: list[Any] = []
    default: Any = None


class ApiConfig(BaseModel):
    method: HttpMethod
    url: str = Field(min_length=1)
    headers: dict[str, str] = {}
    body: dict[str, Any] = {}
    requiresCredential: bool = False
    failOnHttpError: bool = False


class ActionCreate(BaseModel):
    name: str
    category: str | None = None
    logo: str | None = None
    inputSchema: list[InputField] = []
    apiConfig: ApiConfig


class ActionOut(BaseModel):
    action_id: str
    name: str
    category: str | None = None
    logo: str | None = None
    inputSchema: list[dict[str, Any]] = []
    apiConfig: dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _parse_json_columns(cls, data: Any) -> Any:
        if hasattr(data, "input_schema_json"):
            return {
                "action_id": data.action_id,
                "name": data.name,
                "category": data.category,
                "logo": data.logo,
                "inputSchema": json.loads(data.input_schema_json or "[]"),
                "apiConfig": json.loads(data.api_config_json or "{}"),
                "created_at": data.created_at,
            }
        return data
