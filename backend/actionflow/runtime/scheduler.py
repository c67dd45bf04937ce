"""Graph scheduler — drives one validated workflow graph to completion.

Reactive loop:
  - start every ready node (all predecessors succeeded) up to ``max_inflight``;
  - wait for the first node to finish, the cancel event, or the run deadline;
  - record the result, then either release its successors or, on failure,
    mark its whole downstream closure ``skipped``.

Each node only sees the outputs of its own ancestors, so the data handed to
a node never depends on how sibling branches happened to interleave.

Once the run is cancelled or times out nothing new is started.  Nodes already
in flight are allowed to finish but are recorded as ``cancelled``; a node that
completed in the same wakeup as the stop signal keeps its own result.  Nodes
that never started are recorded as ``skipped``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping

from actionflow.compiler.ir import IRWorkflow
from actionflow.compiler.validator import topological_order
from actionflow.runtime.state import ErrorType, NodeResult, NodeStatus, utcnow
from actionflow.utils.logger import ctx_node_id

logger = logging.getLogger("actionflow.scheduler")

RunNode = Callable[[str, Mapping[str, Any]], Awaitable[NodeResult]]
OnResult = Callable[[NodeResult], Awaitable[None]]


@dataclass
class SchedulerOutcome:
    results: list[NodeResult] = field(default_factory=list)
    cancelled: bool = False
    timed_out: bool = False

    @property
    def any_failed(self) -> bool:
        return any(r.status == NodeStatus.FAILED for r in self.results)


class GraphScheduler:
    def __init__(
        self,
        ir: IRWorkflow,
        run_node: RunNode,
        on_result: OnResult | None = None,
        *,
        max_inflight: int = 4,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ):
        if max_inflight < 1:
            raise ValueError("max_inflight must be >= 1")
        self.ir = ir
        self._run_node = run_node
        self._on_result = on_result
        self.max_inflight = max_inflight
        self.cancel_event = cancel_event or asyncio.Event()
        self.timeout = timeout if timeout and timeout > 0 else None

    async def run(self) -> SchedulerOutcome:
        """Execute the graph.  Raises GraphError before starting anything if it is invalid."""
        order = topological_order(self.ir)
        preds = self.ir.predecessors()
        succs = self.ir.successors()
        ancestors = _ancestors(order, preds)
        position = {nid: i for i, nid in enumerate(order)}

        outcome = SchedulerOutcome()
        pending: set[str] = set(order)
        finished: set[str] = set()
        outputs: dict[str, Any] = {}
        inflight: dict[asyncio.Task, str] = {}

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout is not None else None
        cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())
        stop_reason: str | None = None

        async def record(result: NodeResult) -> None:
            finished.add(result.node_id)
            outcome.results.append(result)
            if self._on_result is not None:
                await self._on_result(result)

        async def skip_downstream(failed: NodeResult) -> None:
            closure = _descendants(failed.node_id, succs)
            for nid in sorted(closure & pending, key=position.__getitem__):
                pending.discard(nid)
                await record(
                    NodeResult.skipped(nid, f"upstream node '{failed.node_id}' {failed.status}")
                )

        try:
            while True:
                if stop_reason is None and self.cancel_event.is_set():
                    stop_reason = "run cancelled"
                    outcome.cancelled = True

                if stop_reason is None:
                    for nid in order:
                        if len(inflight) >= self.max_inflight:
                            break
                        if nid in pending and preds[nid] <= finished:
                            pending.discard(nid)
                            prior = {a: outputs[a] for a in ancestors[nid] if a in outputs}
                            task = asyncio.create_task(self._guarded(nid, prior), name=f"node:{nid}")
                            inflight[task] = nid
                            logger.debug("Node %s started (%d in flight)", nid, len(inflight))

                if not inflight:
                    break

                # Only results that arrive after the stop was observed are relabelled.
                stopped_before_wait = stop_reason is not None
                waitables: set[asyncio.Future] = set(inflight)
                remaining = None
                if stop_reason is None:
                    waitables.add(cancel_waiter)
                    if deadline is not None:
                        remaining = max(0.0, deadline - loop.time())

                done, _ = await asyncio.wait(
                    waitables, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )

                if stop_reason is None:
                    if cancel_waiter in done:
                        stop_reason = "run cancelled"
                        outcome.cancelled = True
                    elif not done:
                        stop_reason = f"run timed out after {self.timeout}s"
                        outcome.cancelled = True
                        outcome.timed_out = True
                    if stop_reason:
                        logger.info("Scheduler stopping: %s (%d node(s) in flight)", stop_reason, len(inflight))

                for task in sorted(done & set(inflight), key=lambda t: position[inflight[t]]):
                    nid = inflight.pop(task)
                    result = task.result()
                    if stopped_before_wait:
                        result = replace(
                            result,
                            status=NodeStatus.CANCELLED,
                            error=f"{stop_reason} while node was in flight",
                            error_type=ErrorType.CANCELLED,
                        )
                    await record(result)
                    if result.status == NodeStatus.SUCCEEDED:
                        outputs[nid] = result.output
                    elif stop_reason is None:
                        await skip_downstream(result)

            if stop_reason is not None:
                for nid in sorted(pending, key=position.__getitem__):
                    await record(NodeResult.skipped(nid, stop_reason, error_type=ErrorType.CANCELLED))
                pending.clear()
        finally:
            cancel_waiter.cancel()
            for task in inflight:
                task.cancel()

        return outcome

    async def _guarded(self, node_id: str, prior: Mapping[str, Any]) -> NodeResult:
        ctx_node_id.set(node_id)
        started_at = utcnow()
        try:
            return await self._run_node(node_id, prior)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Node %s raised unexpectedly", node_id)
            return NodeResult(
                node_id=node_id,
                status=NodeStatus.FAILED,
                started_at=started_at,
                finished_at=utcnow(),
                error=f"{type(exc).__name__}: {exc}",
                error_type=ErrorType.INTERNAL,
            )


# ── Graph helpers ───────────────────────────────────────────────


def _ancestors(order: list[str], preds: dict[str, set[str]]) -> dict[str, frozenset[str]]:
    """Transitive predecessors of every node, computed along a topological order."""
    result: dict[str, frozenset[str]] = {}
    for nid in order:
        acc: set[str] = set()
        for p in preds[nid]:
            acc.add(p)
            acc |= result[p]
        result[nid] = frozenset(acc)
    return result


def _descendants(node_id: str, succs: dict[str, set[str]]) -> set[str]:
    seen: set[str] = set()
    stack = list(succs.get(node_id, ()))
    while stack:
        nid = stack.pop()
        if nid in seen:
            continue
        seen.add(nid)
        stack.extend(succs.get(nid, ()))
    return seen
