"""Workflow parser — converts stored node/edge/action JSON into IR structures.

Stored documents use the editor's camelCase keys (``actionDefinitionId``,
``inputSchema``, ``apiConfig``…).  Position and other editor-only metadata is
dropped here; the engine never sees it.
"""

from __future__ import annotations

from typing import Any

from actionflow.compiler.ir import (
    IRActionDefinition,
    IRApiConfig,
    IRCredential,
    IREdge,
    IRInputField,
    IRNode,
    IRWorkflow,
)


def parse_workflow(
    workflow_id: str,
    nodes_raw: list[dict[str, Any]],
    edges_raw: list[dict[str, Any]],
) -> IRWorkflow:
    """Parse editor nodes and edges into an IRWorkflow.

    Duplicate node ids are kept out of the node map and reported on the IR so
    the validator can reject the graph.
    """
    nodes: dict[str, IRNode] = {}
    duplicates: list[str] = []
    for ndata in nodes_raw or []:
        node = _parse_node(ndata)
        if node.node_id in nodes:
            duplicates.append(node.node_id)
            continue
        nodes[node.node_id] = node

    edges = [_parse_edge(e) for e in edges_raw or []]
    return IRWorkflow(
        workflow_id=workflow_id,
        nodes=nodes,
        edges=edges,
        duplicate_node_ids=duplicates,
    )


def parse_action_definition(action_id: str, d: dict[str, Any]) -> IRActionDefinition:
    return IRActionDefinition(
        action_id=action_id,
        name=d.get("name", ""),
        category=d.get("category"),
        input_schema=[_parse_input_field(f) for f in d.get("inputSchema") or []],
        api_config=_parse_api_config(d.get("apiConfig") or {}),
    )


def parse_credential(credential_id: str, d: dict[str, Any]) -> IRCredential:
    return IRCredential(
        credential_id=credential_id,
        type=d.get("type", "custom"),
        encrypted_data=d.get("encryptedData", ""),
        node_types=frozenset(d.get("nodeTypes") or []),
        is_active=bool(d.get("isActive", True)),
    )


# ── Internal helpers ────────────────────────────────────────────


def _parse_node(d: dict[str, Any]) -> IRNode:
    # The editor nests configuration under "data"; flat documents are accepted too.
    data = d.get("data") or {}
    return IRNode(
        node_id=str(d.get("id", "")),
        action_definition_id=d.get("actionDefinitionId") or data.get("actionDefinitionId"),
        inputs=dict(d.get("inputs") or data.get("inputs") or {}),
        credential_id=d.get("credentialId") or data.get("credentialId"),
        label=data.get("label"),
    )


def _parse_edge(d: dict[str, Any]) -> IREdge:
    return IREdge(source=str(d.get("source", "")), target=str(d.get("target", "")))


def _parse_input_field(d: dict[str, Any]) -> IRInputField:
    return IRInputField(
        key=d["key"],
        type=d.get("type", "text"),
        label=d.get("label"),
        required=bool(d.get("required", False)),
        options=list(d.get("options") or []),
        default=d.get("default", d.get("defaultValue")),
    )


def _parse_api_config(d: dict[str, Any]) -> IRApiConfig:
    method = d.get("method")
    return IRApiConfig(
        method=method.strip().upper() if isinstance(method, str) and method.strip() else None,
        url=d.get("url") or None,
        headers=dict(d.get("headers") or {}),
        body=dict(d.get("body") or d.get("bodyTemplate") or {}),
        requires_credential=bool(d.get("requiresCredential", False)),
        fail_on_http_error=bool(d.get("failOnHttpError", False)),
    )
