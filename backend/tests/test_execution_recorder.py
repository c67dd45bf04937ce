"""Tests for the execution recorder's bookkeeping and failure handling."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from actionflow.db.models import Execution, NodeResultRow, Workflow
from actionflow.runtime.state import ExecutionStatus, NodeResult, NodeStatus, utcnow
from actionflow.services.execution_recorder import ExecutionRecorder, PersistenceError


class FlakyFactory:
    """Session factory that starts failing after ``ok_calls`` sessions."""

    def __init__(self, real, ok_calls: int):
        self.real = real
        self.ok_calls = ok_calls
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls > self.ok_calls:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return self.real()


async def _workflow(db_factory) -> str:
    async with db_factory() as db:
        wf = Workflow(name="wf", nodes_json="[]", edges_json="[]")
        db.add(wf)
        await db.commit()
        return wf.workflow_id


def _result(node_id, status=NodeStatus.SUCCEEDED, output=None):
    now = utcnow()
    return NodeResult(node_id, status, now, now, output=output)


class TestExecutionRecorder:
    @pytest.mark.asyncio
    async def test_start_creates_row_and_counts_run(self, db_factory):
        wf_id = await _workflow(db_factory)
        recorder = ExecutionRecorder(db_factory, wf_id, {"api_key": "k", "q": "x"})
        job_id = await recorder.start()

        async with db_factory() as db:
            row = await db.get(Execution, job_id)
            wf = await db.get(Workflow, wf_id)
        assert row.status == ExecutionStatus.RUNNING
        assert json.loads(row.trigger_payload_json) == {"api_key": "***REDACTED***", "q": "x"}
        assert wf.execution_count == 1

    @pytest.mark.asyncio
    async def test_job_ids_unique(self, db_factory):
        wf_id = await _workflow(db_factory)
        ids = {ExecutionRecorder(db_factory, wf_id).job_id for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_results_appended_in_order(self, db_factory):
        wf_id = await _workflow(db_factory)
        recorder = ExecutionRecorder(db_factory, wf_id)
        job_id = await recorder.start()
        for nid in ("a", "b", "c"):
            await recorder.append(_result(nid, output={"secret": "s", "n": nid}))
        record = await recorder.finish(ExecutionStatus.SUCCEEDED)

        async with db_factory() as db:
            rows = (
                await db.execute(
                    select(NodeResultRow).where(NodeResultRow.job_id == job_id).order_by(NodeResultRow.sequence)
                )
            ).scalars().all()
            execution = await db.get(Execution, job_id)
        assert [(r.sequence, r.node_id) for r in rows] == [(1, "a"), (2, "b"), (3, "c")]
        assert json.loads(rows[0].output_json) == {"secret": "***REDACTED***", "n": "a"}
        assert execution.status == ExecutionStatus.SUCCEEDED
        assert execution.finished_at is not None
        assert record.finished_at is not None
        # In-memory outputs stay raw.
        assert record.node_results[0].output["secret"] == "s"

    @pytest.mark.asyncio
    async def test_start_failure_raises(self, db_factory):
        recorder = ExecutionRecorder(FlakyFactory(db_factory, ok_calls=0), "wf")
        with pytest.raises(PersistenceError):
            await recorder.start()

    @pytest.mark.asyncio
    async def test_append_failure_becomes_persistence_error(self, db_factory):
        wf_id = await _workflow(db_factory)
        # start + first append succeed, everything after fails.
        recorder = ExecutionRecorder(FlakyFactory(db_factory, ok_calls=2), wf_id)
        job_id = await recorder.start()
        await recorder.append(_result("a"))
        await recorder.append(_result("b", NodeStatus.FAILED))
        await recorder.append(_result("c", NodeStatus.SKIPPED))
        record = await recorder.finish(ExecutionStatus.FAILED, "node(s) failed: b")

        assert record.status == ExecutionStatus.PERSISTENCE_ERROR
        assert "node 'b'" in record.error
        assert [r.node_id for r in record.node_results] == ["a", "b", "c"]

        async with db_factory() as db:
            rows = (await db.execute(select(NodeResultRow).where(NodeResultRow.job_id == job_id))).scalars().all()
        # What was written before the failure is untouched.
        assert [r.node_id for r in rows] == ["a"]

    @pytest.mark.asyncio
    async def test_finish_failure_becomes_persistence_error(self, db_factory):
        wf_id = await _workflow(db_factory)
        recorder = ExecutionRecorder(FlakyFactory(db_factory, ok_calls=2), wf_id)
        await recorder.start()
        await recorder.append(_result("a"))
        record = await recorder.finish(ExecutionStatus.SUCCEEDED)
        assert record.status == ExecutionStatus.PERSISTENCE_ERROR
        assert "finalise" in record.error
