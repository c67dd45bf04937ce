"""Execution recorder — allocates the job id and persists one run's history.

The recorder is owned by the task driving a single run; nothing else mutates
its ``ExecutionRecord``.  Every NodeResult is committed in its own
transaction, so a storage failure part-way through never touches rows that
were already written.  After the first failure the recorder stops writing
NodeResults, keeps accumulating them in memory and reports the run as
``persistence_error``.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from actionflow.db.models import Execution, NodeResultRow, Workflow
from actionflow.runtime.state import ExecutionRecord, ExecutionStatus, NodeResult, utcnow
from actionflow.utils.metrics import record_node_result, record_run_completed, record_run_started
from actionflow.utils.redaction import redact_sensitive_data

logger = logging.getLogger("actionflow.recorder")


class PersistenceError(Exception):
    """Raised when the execution history cannot be written."""

    def __init__(self, job_id: str, message: str):
        self.job_id = job_id
        super().__init__(f"Execution '{job_id}': {message}")


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(redact_sensitive_data(value), default=str)


class ExecutionRecorder:
    def __init__(
        self,
        db_factory: async_sessionmaker[AsyncSession],
        workflow_id: str,
        trigger_payload: dict[str, Any] | None = None,
    ):
        self._db_factory = db_factory
        self._trigger_payload = trigger_payload or {}
        self._sequence = 0
        self.persistence_error: str | None = None
        self.record = ExecutionRecord(job_id=str(uuid.uuid4()), workflow_id=workflow_id)

    @property
    def job_id(self) -> str:
        return self.record.job_id

    async def start(self) -> str:
        """Create the Execution row and bump the workflow's execution count.

        Both writes share one transaction.  Raises PersistenceError; there is
        no run to report on if this fails.
        """
        try:
            async with self._db_factory() as db:
                db.add(
                    Execution(
                        job_id=self.job_id,
                        workflow_id=self.record.workflow_id,
                        status=ExecutionStatus.RUNNING,
                        trigger_payload_json=_dump(self._trigger_payload),
                        started_at=self.record.started_at,
                    )
                )
                await db.execute(
                    update(Workflow)
                    .where(Workflow.workflow_id == self.record.workflow_id)
                    .values(execution_count=Workflow.execution_count + 1)
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(self.job_id, f"could not create execution: {exc}") from exc

        record_run_started()
        logger.info("Execution %s created for workflow %s", self.job_id, self.record.workflow_id)
        return self.job_id

    async def append(self, result: NodeResult) -> None:
        """Append one NodeResult.  Storage failures are recorded, not raised."""
        self.record.node_results.append(result)
        self._sequence += 1
        record_node_result(result.status, result.duration_seconds)

        if self.persistence_error is not None:
            return
        try:
            async with self._db_factory() as db:
                db.add(
                    NodeResultRow(
                        job_id=self.job_id,
                        sequence=self._sequence,
                        node_id=result.node_id,
                        status=result.status,
                        output_json=_dump(result.output),
                        error=result.error,
                        error_type=result.error_type,
                        started_at=result.started_at,
                        finished_at=result.finished_at,
                    )
                )
                await db.commit()
        except SQLAlchemyError as exc:
            self.persistence_error = f"could not store result of node '{result.node_id}': {exc}"
            logger.exception("Execution %s: NodeResult persistence failed", self.job_id)

    async def finish(self, status: str, error: str | None = None) -> ExecutionRecord:
        """Set the terminal status; ``persistence_error`` overrides it when bookkeeping failed."""
        if self.persistence_error is not None:
            status = ExecutionStatus.PERSISTENCE_ERROR
            error = "; ".join(e for e in (error, self.persistence_error) if e)

        self.record.finished_at = utcnow()
        self.record.status = status
        self.record.error = error

        try:
            async with self._db_factory() as db:
                await db.execute(
                    update(Execution)
                    .where(Execution.job_id == self.job_id)
                    .values(status=status, error_message=error, finished_at=self.record.finished_at)
                )
                await db.commit()
        except SQLAlchemyError as exc:
            self.persistence_error = f"could not finalise execution: {exc}"
            self.record.status = ExecutionStatus.PERSISTENCE_ERROR
            self.record.error = "; ".join(e for e in (error, self.persistence_error) if e)
            logger.exception("Execution %s: final status could not be persisted", self.job_id)

        duration = (self.record.finished_at - self.record.started_at).total_seconds()
        record_run_completed(duration, self.record.status)
        logger.info(
            "Execution %s finished: status=%s nodes=%d duration=%.3fs",
            self.job_id,
            self.record.status,
            len(self.record.node_results),
            duration,
        )
        return self.record
