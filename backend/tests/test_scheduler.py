"""Tests for the dependency-driven graph scheduler."""

from __future__ import annotations

import asyncio

import pytest

from actionflow.compiler.parser import parse_workflow
from actionflow.compiler.validator import GraphError
from actionflow.runtime.scheduler import GraphScheduler
from actionflow.runtime.state import ErrorType, NodeResult, NodeStatus, utcnow


def _wf(node_ids, edges):
    nodes = [{"id": n, "data": {"actionDefinitionId": "act"}} for n in node_ids]
    return parse_workflow("wf", nodes, [{"source": s, "target": t} for s, t in edges])


class FakeRunner:
    """Stands in for the node executor; records what each node was given."""

    def __init__(self, fail=(), raise_on=(), delays=None, gates=None):
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.delays = delays or {}
        self.gates: dict[str, asyncio.Event] = gates or {}
        self.calls: list[tuple[str, dict]] = []
        self.active = 0
        self.max_active = 0

    def prior_for(self, node_id: str) -> dict:
        return next(prior for nid, prior in self.calls if nid == node_id)

    async def __call__(self, node_id, prior):
        self.calls.append((node_id, dict(prior)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        started = utcnow()
        try:
            if node_id in self.gates:
                await self.gates[node_id].wait()
            else:
                await asyncio.sleep(self.delays.get(node_id, 0))
            if node_id in self.raise_on:
                raise RuntimeError(f"boom in {node_id}")
        finally:
            self.active -= 1
        if node_id in self.fail:
            return NodeResult(node_id, NodeStatus.FAILED, started, utcnow(), error="bad", error_type=ErrorType.BUILD)
        return NodeResult(node_id, NodeStatus.SUCCEEDED, started, utcnow(), output={"from": node_id})


def _by_node(outcome):
    return {r.node_id: r for r in outcome.results}


async def _wait_until_called(runner: FakeRunner, node_id: str) -> None:
    for _ in range(200):
        if any(nid == node_id for nid, _ in runner.calls):
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"node {node_id} never started")


class TestOrdering:
    @pytest.mark.asyncio
    async def test_chain_runs_in_dependency_order(self):
        runner = FakeRunner()
        outcome = await GraphScheduler(_wf(["c", "b", "a"], [("a", "b"), ("b", "c")]), runner).run()
        assert [nid for nid, _ in runner.calls] == ["a", "b", "c"]
        assert all(r.status == NodeStatus.SUCCEEDED for r in outcome.results)
        assert not outcome.any_failed

    @pytest.mark.asyncio
    async def test_node_waits_for_all_predecessors(self):
        runner = FakeRunner(delays={"slow": 0.05})
        await GraphScheduler(_wf(["fast", "slow", "join"], [("fast", "join"), ("slow", "join")]), runner).run()
        assert [nid for nid, _ in runner.calls][-1] == "join"
        assert set(runner.prior_for("join")) == {"fast", "slow"}

    @pytest.mark.asyncio
    async def test_prior_results_limited_to_ancestors(self):
        runner = FakeRunner()
        ir = _wf(["a", "b", "x", "y"], [("a", "b"), ("x", "y")])
        await GraphScheduler(ir, runner).run()
        assert runner.prior_for("b") == {"a": {"from": "a"}}
        assert runner.prior_for("y") == {"x": {"from": "x"}}

    @pytest.mark.asyncio
    async def test_transitive_ancestors_visible(self):
        runner = FakeRunner()
        await GraphScheduler(_wf(["a", "b", "c"], [("a", "b"), ("b", "c")]), runner).run()
        assert set(runner.prior_for("c")) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_every_node_recorded_once(self):
        recorded: list[NodeResult] = []

        async def on_result(result):
            recorded.append(result)

        ir = _wf(["a", "b", "c", "d"], [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")])
        outcome = await GraphScheduler(ir, FakeRunner(), on_result).run()
        assert sorted(r.node_id for r in recorded) == ["a", "b", "c", "d"]
        assert recorded == outcome.results


class TestFailurePropagation:
    @pytest.mark.asyncio
    async def test_downstream_of_failure_skipped(self):
        runner = FakeRunner(fail={"b"})
        outcome = await GraphScheduler(_wf(["a", "b", "c"], [("a", "b"), ("b", "c")]), runner).run()
        results = _by_node(outcome)
        assert results["a"].status == NodeStatus.SUCCEEDED
        assert results["b"].status == NodeStatus.FAILED
        assert results["c"].status == NodeStatus.SKIPPED
        assert results["c"].error_type == ErrorType.UPSTREAM
        assert "'b'" in results["c"].error
        assert "c" not in [nid for nid, _ in runner.calls]
        assert outcome.any_failed

    @pytest.mark.asyncio
    async def test_transitive_downstream_skipped(self):
        ir = _wf(["a", "b", "c", "d"], [("a", "b"), ("b", "c"), ("c", "d")])
        outcome = await GraphScheduler(ir, FakeRunner(fail={"a"})).run()
        results = _by_node(outcome)
        assert [results[n].status for n in "bcd"] == [NodeStatus.SKIPPED] * 3

    @pytest.mark.asyncio
    async def test_independent_branch_still_runs(self):
        ir = _wf(["a", "b", "x", "y"], [("a", "b"), ("x", "y")])
        outcome = await GraphScheduler(ir, FakeRunner(fail={"a"})).run()
        results = _by_node(outcome)
        assert results["b"].status == NodeStatus.SKIPPED
        assert results["x"].status == NodeStatus.SUCCEEDED
        assert results["y"].status == NodeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_join_skipped_when_one_parent_fails(self):
        ir = _wf(["a", "b", "join"], [("a", "join"), ("b", "join")])
        outcome = await GraphScheduler(ir, FakeRunner(fail={"a"}, delays={"b": 0.02})).run()
        results = _by_node(outcome)
        assert results["b"].status == NodeStatus.SUCCEEDED
        assert results["join"].status == NodeStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_internal_error(self):
        ir = _wf(["a", "b", "x"], [("a", "b")])
        outcome = await GraphScheduler(ir, FakeRunner(raise_on={"a"})).run()
        results = _by_node(outcome)
        assert results["a"].status == NodeStatus.FAILED
        assert results["a"].error_type == ErrorType.INTERNAL
        assert "boom in a" in results["a"].error
        assert results["b"].status == NodeStatus.SKIPPED
        assert results["x"].status == NodeStatus.SUCCEEDED


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_independent_nodes_run_in_parallel(self):
        runner = FakeRunner(delays={"a": 0.05, "b": 0.05})
        await GraphScheduler(_wf(["a", "b"], []), runner, max_inflight=4).run()
        assert runner.max_active == 2

    @pytest.mark.asyncio
    async def test_max_inflight_bound(self):
        ids = [f"n{i}" for i in range(6)]
        runner = FakeRunner(delays={n: 0.02 for n in ids})
        outcome = await GraphScheduler(_wf(ids, []), runner, max_inflight=2).run()
        assert runner.max_active == 2
        assert len(outcome.results) == 6

    def test_max_inflight_must_be_positive(self):
        with pytest.raises(ValueError):
            GraphScheduler(_wf(["a"], []), FakeRunner(), max_inflight=0)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_scheduling(self):
        gate = asyncio.Event()
        runner = FakeRunner(gates={"a": gate})
        cancel = asyncio.Event()
        scheduler = GraphScheduler(_wf(["a", "b", "c"], [("a", "b")]), runner, cancel_event=cancel, max_inflight=1)
        task = asyncio.create_task(scheduler.run())

        await _wait_until_called(runner, "a")
        cancel.set()
        await asyncio.sleep(0.01)
        gate.set()
        outcome = await task

        results = _by_node(outcome)
        assert outcome.cancelled
        assert not outcome.timed_out
        assert results["a"].status == NodeStatus.CANCELLED
        assert results["a"].error_type == ErrorType.CANCELLED
        for nid in ("b", "c"):
            assert results[nid].status == NodeStatus.SKIPPED
            assert results[nid].error_type == ErrorType.CANCELLED
        assert [nid for nid, _ in runner.calls] == ["a"]

    @pytest.mark.asyncio
    async def test_node_finishing_with_the_stop_keeps_its_result(self):
        cancel = asyncio.Event()

        async def run_node(node_id, prior):
            started = utcnow()
            if node_id == "a":
                # Completes in the same wakeup that delivers the cancel signal.
                cancel.set()
            return NodeResult(node_id, NodeStatus.SUCCEEDED, started, utcnow(), output={"from": node_id})

        outcome = await GraphScheduler(_wf(["a", "b"], [("a", "b")]), run_node, cancel_event=cancel).run()

        results = _by_node(outcome)
        assert outcome.cancelled
        assert results["a"].status == NodeStatus.SUCCEEDED
        assert results["a"].output == {"from": "a"}
        assert results["b"].status == NodeStatus.SKIPPED
        assert results["b"].error_type == ErrorType.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_before_start_runs_nothing(self):
        cancel = asyncio.Event()
        cancel.set()
        runner = FakeRunner()
        outcome = await GraphScheduler(_wf(["a", "b"], []), runner, cancel_event=cancel).run()
        assert runner.calls == []
        assert {r.status for r in outcome.results} == {NodeStatus.SKIPPED}

    @pytest.mark.asyncio
    async def test_run_timeout(self):
        runner = FakeRunner(delays={"a": 0.2})
        ir = _wf(["a", "b"], [("a", "b")])
        outcome = await GraphScheduler(ir, runner, timeout=0.05).run()
        results = _by_node(outcome)
        assert outcome.timed_out
        assert outcome.cancelled
        assert results["a"].status == NodeStatus.CANCELLED
        assert "timed out" in results["a"].error
        assert results["b"].status == NodeStatus.SKIPPED


class TestInvalidGraph:
    @pytest.mark.asyncio
    async def test_cycle_raises_before_any_node_runs(self):
        runner = FakeRunner()
        with pytest.raises(GraphError):
            await GraphScheduler(_wf(["a", "b"], [("a", "b"), ("b", "a")]), runner).run()
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_dangling_edge_raises(self):
        with pytest.raises(GraphError):
            await GraphScheduler(_wf(["a"], [("a", "ghost")]), FakeRunner()).run()
