"""Pydantic models for credentials.  No model here ever carries decrypted data outward."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, model_validator


class CredentialCreate(BaseModel):
    name: str
    type: Literal["api_key", "oauth2", "basic_auth", "custom"] = "custom"
    # Plaintext fields; encrypted before anything is stored.
    data: dict[str, Any]
    nodeTypes: list[str] = []


class CredentialUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged.  New data is re-encrypted."""

    name: str | None = None
    data: dict[str, Any] | None = None
    nodeTypes: list[str] | None = None
    isActive: bool | None = None

    model_config = {"extra": "forbid"}


class CredentialOut(BaseModel):
    credential_id: str
    name: str
    type: str
    nodeTypes: list[str] = []
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _parse_json_columns(cls, data: Any) -> Any:
        if hasattr(data, "node_types_json"):
            return {
                "credential_id": data.credential_id,
                "name": data.name,
                "type": data.type,
                "nodeTypes": json.loads(data.node_types_json or "[]"),
                "is_active": data.is_active,
                "created_at": data.created_at,
            }
        return data


class CredentialTestResult(BaseModel):
    credential_id: str
    ok: bool
    fields: list[str] = []
    error: str | None = None
