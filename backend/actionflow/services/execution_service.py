"""Workflow execution engine — entry point for running a workflow in the background.

Pipeline for one ``run_workflow`` call:
  1. Load the workflow (404 / 409 when missing / inactive) and snapshot the
     action definitions and credentials it may need.
  2. Allocate the job id and create the Execution row (the workflow's
     execution count is bumped in the same transaction).
  3. Hand the job id back to the caller; the rest runs as an asyncio task:
     validate the graph, drive it with the GraphScheduler, let the recorder
     append every NodeResult, then finalise the status.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from actionflow.compiler.validator import validate_graph
from actionflow.connectors.http_dispatcher import HttpDispatcher
from actionflow.db.models import Execution, NodeResultRow
from actionflow.runtime.node_executor import ActionNodeExecutor
from actionflow.runtime.request_builder import RequestBuilder
from actionflow.runtime.scheduler import GraphScheduler
from actionflow.runtime.state import ErrorType, ExecutionRecord, ExecutionStatus, NodeStatus
from actionflow.services import action_service, credential_service, workflow_service
from actionflow.services.credential_vault import CredentialVault
from actionflow.services.execution_recorder import ExecutionRecorder
from actionflow.utils import run_cancel
from actionflow.utils.logger import ctx_job_id, ctx_workflow_id
from actionflow.utils.redaction import redact_sensitive_data

logger = logging.getLogger("actionflow.execution")


class WorkflowNotFoundError(Exception):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class WorkflowInactiveError(Exception):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' is inactive and cannot be executed")


class ExecutionService:
    def __init__(
        self,
        db_factory: async_sessionmaker[AsyncSession],
        vault: CredentialVault,
        dispatcher: HttpDispatcher,
        *,
        max_inflight: int = 4,
        run_timeout: float = 0.0,
    ):
        self._db_factory = db_factory
        self._builder = RequestBuilder(vault)
        self._dispatcher = dispatcher
        self.max_inflight = max_inflight
        self.run_timeout = run_timeout
        self._tasks: dict[str, asyncio.Task] = {}
        # Records of running executions, plus finished ones whose history
        # could not be persisted (the database cannot serve those).
        self._live: dict[str, ExecutionRecord] = {}

    async def run_workflow(self, workflow_id: str, trigger_payload: dict[str, Any] | None = None) -> str:
        """Start a run and return its job id immediately."""
        payload = dict(trigger_payload or {})

        async with self._db_factory() as db:
            wf = await workflow_service.get_workflow(db, workflow_id)
            if wf is None:
                raise WorkflowNotFoundError(workflow_id)
            if not wf.active:
                raise WorkflowInactiveError(workflow_id)
            ir = workflow_service.to_ir(wf)
            actions = await action_service.load_actions(
                db, (n.action_definition_id for n in ir.nodes.values())
            )
            credentials = await credential_service.load_credentials(db)

        recorder = ExecutionRecorder(self._db_factory, workflow_id, payload)
        job_id = await recorder.start()
        cancel_event = run_cancel.register(job_id)
        self._live[job_id] = recorder.record

        executor = ActionNodeExecutor(ir, actions, credentials, self._builder, self._dispatcher, payload)
        task = asyncio.create_task(
            self._drive(recorder, ir, executor, cancel_event), name=f"execution:{job_id}"
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, j=job_id: self._tasks.pop(j, None))
        return job_id

    async def _drive(self, recorder: ExecutionRecorder, ir, executor, cancel_event: asyncio.Event) -> None:
        job_id = recorder.job_id
        ctx_job_id.set(job_id)
        ctx_workflow_id.set(ir.workflow_id)
        try:
            errors = validate_graph(ir)
            if errors:
                logger.warning("Execution %s: graph validation failed: %s", job_id, errors)
                await recorder.finish(ExecutionStatus.FAILED, f"{ErrorType.GRAPH}: " + "; ".join(errors))
                return

            scheduler = GraphScheduler(
                ir,
                executor,
                recorder.append,
                max_inflight=self.max_inflight,
                cancel_event=cancel_event,
                timeout=self.run_timeout,
            )
            outcome = await scheduler.run()

            if outcome.timed_out:
                await recorder.finish(ExecutionStatus.CANCELLED, f"run timed out after {self.run_timeout}s")
            elif outcome.cancelled:
                await recorder.finish(ExecutionStatus.CANCELLED, "run cancelled")
            elif outcome.any_failed:
                failed = [r.node_id for r in outcome.results if r.status == NodeStatus.FAILED]
                await recorder.finish(ExecutionStatus.FAILED, f"node(s) failed: {', '.join(failed)}")
            else:
                await recorder.finish(ExecutionStatus.SUCCEEDED)
        except asyncio.CancelledError:
            logger.warning("Execution %s: task cancelled", job_id)
            await recorder.finish(ExecutionStatus.CANCELLED, "engine shutting down")
            raise
        except Exception as exc:
            logger.exception("Execution %s: unexpected engine error", job_id)
            await recorder.finish(ExecutionStatus.FAILED, f"{ErrorType.INTERNAL}: {exc}")
        finally:
            run_cancel.deregister(job_id)
            if recorder.record.status != ExecutionStatus.PERSISTENCE_ERROR:
                self._live.pop(job_id, None)

    # ── Queries / control ───────────────────────────────────────

    async def wait(self, job_id: str, timeout: float | None = None) -> dict[str, Any] | None:
        """Wait for a background run to finish and return its execution view."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return await self.get_execution(job_id)

    def cancel(self, job_id: str) -> bool:
        """Signal cancellation; False when the run is unknown or already finished."""
        return run_cancel.mark_cancelled(job_id)

    async def get_execution(self, job_id: str) -> dict[str, Any] | None:
        live = self._live.get(job_id)
        if live is not None:
            view = live.to_dict()
            for result in view["node_results"]:
                result["output"] = redact_sensitive_data(result["output"])
            return view

        async with self._db_factory() as db:
            execution = await db.get(Execution, job_id)
            if execution is None:
                return None
            rows = await db.execute(
                select(NodeResultRow)
                .where(NodeResultRow.job_id == job_id)
                .order_by(NodeResultRow.sequence.asc())
            )
            return {
                **_execution_summary(execution),
                "node_results": [_node_result_view(r) for r in rows.scalars().all()],
            }

    async def list_executions(self, workflow_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async with self._db_factory() as db:
            result = await db.execute(
                select(Execution)
                .where(Execution.workflow_id == workflow_id)
                .order_by(Execution.started_at.desc())
                .limit(limit)
            )
            return [_execution_summary(e) for e in result.scalars().all()]

    async def shutdown(self) -> None:
        """Cancel every running execution and wait for them to record their outcome."""
        tasks = list(self._tasks.items())
        for job_id, _task in tasks:
            run_cancel.mark_cancelled(job_id)
        if tasks:
            logger.info("Waiting for %d running execution(s) to stop", len(tasks))
            await asyncio.gather(*(t for _j, t in tasks), return_exceptions=True)


def _execution_summary(execution: Execution) -> dict[str, Any]:
    return {
        "job_id": execution.job_id,
        "workflow_id": execution.workflow_id,
        "status": execution.status,
        "started_at": execution.started_at,
        "finished_at": execution.finished_at,
        "error": execution.error_message,
    }


def _node_result_view(row: NodeResultRow) -> dict[str, Any]:
    return {
        "node_id": row.node_id,
        "status": row.status,
        "output": json.loads(row.output_json) if row.output_json else None,
        "error": row.error,
        "error_type": row.error_type,
        "started_at": row.started_at,
        "finished_at": row.finished_at,
    }


# ── Global singleton ───────────────────────────────────────────


_execution_service: ExecutionService | None = None


def get_execution_service() -> ExecutionService:
    """Return the service configured at startup."""
    if _execution_service is None:
        raise RuntimeError("Execution service is not configured; call configure_execution_service() first")
    return _execution_service


def configure_execution_service(service: ExecutionService | None) -> None:
    """Replace the global service (used in tests and app startup)."""
    global _execution_service
    _execution_service = service


async def run_workflow(workflow_id: str, trigger_payload: dict[str, Any] | None = None) -> dict[str, str]:
    """Engine entry point: start *workflow_id* in the background, return ``{"job_id": ...}``."""
    job_id = await get_execution_service().run_workflow(workflow_id, trigger_payload)
    return {"job_id": job_id}
