"""Executions API router — status, per-node results, cancellation, metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from actionflow.schemas.executions import CancelResponse, ExecutionOut
from actionflow.services.execution_service import ExecutionService, get_execution_service
from actionflow.utils.metrics import get_metrics_summary

router = APIRouter()


@router.get("/metrics/summary")
async def metrics_summary():
    """In-process run and node counters."""
    return get_metrics_summary()


@router.get("/{job_id}", response_model=ExecutionOut)
async def get_execution(job_id: str, service: ExecutionService = Depends(get_execution_service)):
    execution = await service.get_execution(job_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution


@router.post("/{job_id}/cancel", response_model=CancelResponse)
async def cancel_execution(job_id: str, service: ExecutionService = Depends(get_execution_service)):
    if service.cancel(job_id):
        return CancelResponse(job_id=job_id, cancelled=True)
    execution = await service.get_execution(job_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    # Already terminal: nothing to signal.
    return CancelResponse(job_id=job_id, cancelled=False)
