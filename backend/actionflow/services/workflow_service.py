"""Workflows business logic."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.compiler.ir import IRWorkflow
from actionflow.compiler.parser import parse_workflow
from actionflow.db.models import Workflow


async def create_workflow(
    db: AsyncSession,
    name: str,
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]],
    description: str | None = None,
    active: bool = True,
) -> Workflow:
    """Persist a workflow as drawn in the editor.

    The graph is not validated here; a broken graph is still saved and fails
    with a graph error when it is run.
    """
    wf = Workflow(
        name=name,
        description=description,
        nodes_json=json.dumps(nodes),
        edges_json=json.dumps(edges),
        active=active,
    )
    db.add(wf)
    await db.flush()
    await db.refresh(wf)
    return wf


async def get_workflow(db: AsyncSession, workflow_id: str) -> Workflow | None:
    return await db.get(Workflow, workflow_id)


async def list_workflows(db: AsyncSession, active: bool | None = None) -> list[Workflow]:
    stmt = select(Workflow).order_by(Workflow.created_at.desc())
    if active is not None:
        stmt = stmt.where(Workflow.active == active)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_active(db: AsyncSession, workflow_id: str, active: bool) -> Workflow | None:
    wf = await db.get(Workflow, workflow_id)
    if not wf:
        return None
    wf.active = active
    await db.flush()
    await db.refresh(wf)
    return wf


def to_ir(wf: Workflow) -> IRWorkflow:
    return parse_workflow(
        wf.workflow_id,
        json.loads(wf.nodes_json or "[]"),
        json.loads(wf.edges_json or "[]"),
    )
