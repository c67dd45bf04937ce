"""Internal Representation (IR) dataclasses — output of workflow graph compilation."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any


# ── Action definition ───────────────────────────────────────────


@dataclass(frozen=True)
class IRInputField:
    key: str
    type: str = "text"  # text | textarea | number | boolean | select | multiselect
    label: str | None = None
    required: bool = False
    options: list[Any] = field(default_factory=list)
    default: Any = None


@dataclass(frozen=True)
class IRApiConfig:
    method: str | None
    url: str | None
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)
    requires_credential: bool = False
    fail_on_http_error: bool = False


@dataclass(frozen=True)
class IRActionDefinition:
    action_id: str
    name: str
    category: str | None
    input_schema: list[IRInputField]
    api_config: IRApiConfig


# ── Credential (still encrypted) ────────────────────────────────


@dataclass(frozen=True)
class IRCredential:
    credential_id: str
    type: str
    encrypted_data: str
    node_types: frozenset[str]
    is_active: bool = True

    def is_scoped_to(self, action: IRActionDefinition) -> bool:
        return action.action_id in self.node_types or (
            action.category is not None and action.category in self.node_types
        )


# ── Graph ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class IRNode:
    node_id: str
    action_definition_id: str | None
    inputs: dict[str, Any] = field(default_factory=dict)
    credential_id: str | None = None
    label: str | None = None


@dataclass(frozen=True)
class IREdge:
    source: str
    target: str


@dataclass
class IRWorkflow:
    workflow_id: str
    nodes: dict[str, IRNode]
    edges: list[IREdge]
    duplicate_node_ids: list[str] = field(default_factory=list)

    def predecessors(self) -> dict[str, set[str]]:
        """Map node id → ids of nodes it depends on (edge sources)."""
        preds: dict[str, set[str]] = {nid: set() for nid in self.nodes}
        for edge in self.edges:
            if edge.target in preds:
                preds[edge.target].add(edge.source)
        return preds

    def successors(self) -> dict[str, set[str]]:
        """Map node id → ids of nodes that depend on it (edge targets)."""
        succs: dict[str, set[str]] = defaultdict(set)
        for nid in self.nodes:
            succs[nid] = set()
        for edge in self.edges:
            if edge.source in succs:
                succs[edge.source].add(edge.target)
        return dict(succs)
