"""Workflows API router — CRUD, trigger and execution history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.db.engine import get_db
from actionflow.schemas.executions import ExecutionSummary
from actionflow.schemas.workflows import (
    RunWorkflowRequest,
    RunWorkflowResponse,
    WorkflowActivePatch,
    WorkflowCreate,
    WorkflowOut,
)
from actionflow.services import workflow_service
from actionflow.services.execution_recorder import PersistenceError
from actionflow.services.execution_service import (
    ExecutionService,
    WorkflowInactiveError,
    WorkflowNotFoundError,
    get_execution_service,
)

router = APIRouter()


@router.post("", response_model=WorkflowOut, status_code=201)
async def create_workflow(body: WorkflowCreate, db: AsyncSession = Depends(get_db)):
    return await workflow_service.create_workflow(
        db,
        name=body.name,
        nodes=body.nodes,
        edges=body.edges,
        description=body.description,
        active=body.active,
    )


@router.get("", response_model=list[WorkflowOut])
async def list_workflows(active: bool | None = None, db: AsyncSession = Depends(get_db)):
    return await workflow_service.list_workflows(db, active)


@router.get("/{workflow_id}", response_model=WorkflowOut)
async def get_workflow(workflow_id: str, db: AsyncSession = Depends(get_db)):
    wf = await workflow_service.get_workflow(db, workflow_id)
    if not wf:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return wf


@router.patch("/{workflow_id}/active", response_model=WorkflowOut)
async def set_workflow_active(
    workflow_id: str, body: WorkflowActivePatch, db: AsyncSession = Depends(get_db)
):
    wf = await workflow_service.set_active(db, workflow_id, body.active)
    if not wf:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return wf


@router.post("/{workflow_id}/execute", response_model=RunWorkflowResponse, status_code=202)
async def execute_workflow(
    workflow_id: str,
    body: RunWorkflowRequest | None = None,
    service: ExecutionService = Depends(get_execution_service),
):
    """Start a run in the background; poll ``/api/executions/{job_id}`` for the outcome."""
    payload = body.trigger_payload if body else {}
    try:
        job_id = await service.run_workflow(workflow_id, payload)
    except WorkflowNotFoundError:
        raise HTTPException(status_code=404, detail="Workflow not found")
    except WorkflowInactiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return RunWorkflowResponse(job_id=job_id)


@router.get("/{workflow_id}/executions", response_model=list[ExecutionSummary])
async def list_workflow_executions(
    workflow_id: str,
    limit: int = Query(50, ge=1, le=500),
    service: ExecutionService = Depends(get_execution_service),
):
    return await service.list_executions(workflow_id, limit)
