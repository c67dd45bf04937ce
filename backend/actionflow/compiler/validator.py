"""Workflow graph validator — checks IR integrity before any node executes."""

from __future__ import annotations

from collections import deque

from actionflow.compiler.ir import IRWorkflow


class GraphError(Exception):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Workflow graph validation failed: {errors}")


def validate_graph(ir: IRWorkflow) -> list[str]:
    """Return a list of error strings. Empty list means valid."""
    errors: list[str] = []

    for nid in ir.duplicate_node_ids:
        errors.append(f"Duplicate node id '{nid}'.")

    for nid in ir.nodes:
        if not nid:
            errors.append("Node with empty id.")

    dangling = False
    for edge in ir.edges:
        if edge.source not in ir.nodes:
            errors.append(f"Edge {edge.source!r} -> {edge.target!r}: source node not found.")
            dangling = True
        if edge.target not in ir.nodes:
            errors.append(f"Edge {edge.source!r} -> {edge.target!r}: target node not found.")
            dangling = True
        if edge.source == edge.target:
            errors.append(f"Edge {edge.source!r} -> {edge.target!r}: self-edge creates a cycle.")

    # Cycle detection only makes sense once every edge endpoint exists.
    if not dangling:
        order = _kahn_order(ir)
        if len(order) < len(ir.nodes):
            stuck = sorted(set(ir.nodes) - set(order))
            self_looped = {e.source for e in ir.edges if e.source == e.target}
            if set(stuck) - self_looped:
                errors.append(f"Cycle detected among nodes: {stuck}.")

    return errors


def topological_order(ir: IRWorkflow) -> list[str]:
    """Return node ids in a dependency-respecting order.

    Raises GraphError when the graph does not validate.
    """
    errors = validate_graph(ir)
    if errors:
        raise GraphError(errors)
    return _kahn_order(ir)


def _kahn_order(ir: IRWorkflow) -> list[str]:
    """Kahn's algorithm; ties broken by node declaration order for stable output.

    Nodes that sit on (or behind) a cycle never reach in-degree zero and are
    left out of the result.
    """
    position = {nid: i for i, nid in enumerate(ir.nodes)}
    preds = ir.predecessors()
    succs = ir.successors()
    in_degree = {nid: len(p) for nid, p in preds.items()}

    queue: deque[str] = deque(nid for nid in ir.nodes if in_degree[nid] == 0)
    order: list[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for nxt in sorted(succs.get(current, ()), key=position.__getitem__):
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                queue.append(nxt)
    return order
