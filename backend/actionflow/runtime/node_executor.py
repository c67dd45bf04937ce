"""Action node executor — build, dispatch and classify a single workflow node.

Every expected failure is turned into a ``failed`` NodeResult carrying an
``error_type``; only genuinely unexpected exceptions escape (the scheduler
records those as ``internal_error``).
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from actionflow.compiler.ir import IRActionDefinition, IRCredential, IRWorkflow
from actionflow.connectors.http_dispatcher import DispatchError, HttpDispatcher
from actionflow.runtime.request_builder import BuildError, RequestBuilder, select_credential
from actionflow.runtime.state import ErrorType, NodeResult, NodeStatus, utcnow

logger = logging.getLogger("actionflow.runtime")


class ActionNodeExecutor:
    """Callable bound to one run: ``await executor(node_id, prior_results)``."""

    def __init__(
        self,
        ir: IRWorkflow,
        actions: Mapping[str, IRActionDefinition],
        credentials: Mapping[str, IRCredential],
        builder: RequestBuilder,
        dispatcher: HttpDispatcher,
        user_inputs: Mapping[str, Any],
    ):
        self._ir = ir
        self._actions = actions
        self._credentials = credentials
        self._builder = builder
        self._dispatcher = dispatcher
        self._user_inputs = user_inputs

    async def __call__(self, node_id: str, prior_results: Mapping[str, Any]) -> NodeResult:
        node = self._ir.nodes[node_id]
        started_at = utcnow()

        try:
            action = self._actions.get(node.action_definition_id or "")
            if action is None:
                raise BuildError(node_id, f"action definition '{node.action_definition_id}' not found")
            credential = select_credential(action, node, self._credentials)
            request = self._builder.build(action, node, self._user_inputs, prior_results, credential)
            output = await self._dispatcher.execute(request)
        except BuildError as exc:
            logger.warning("Node %s build failed: %s", node_id, exc)
            return _failed(node_id, started_at, str(exc), exc.error_type)
        except DispatchError as exc:
            logger.warning("Node %s dispatch failed: %s", node_id, exc)
            return _failed(node_id, started_at, str(exc), ErrorType.DISPATCH)

        if action.api_config.fail_on_http_error and not output["ok"]:
            logger.warning("Node %s got HTTP %s", node_id, output["status"])
            return NodeResult(
                node_id=node_id,
                status=NodeStatus.FAILED,
                started_at=started_at,
                finished_at=utcnow(),
                output=output,
                error=f"HTTP {output['status']} from {request.method} {request.url}",
                error_type=ErrorType.HTTP,
            )

        return NodeResult(
            node_id=node_id,
            status=NodeStatus.SUCCEEDED,
            started_at=started_at,
            finished_at=utcnow(),
            output=output,
        )


def _failed(node_id: str, started_at, error: str, error_type: str) -> NodeResult:
    return NodeResult(
        node_id=node_id,
        status=NodeStatus.FAILED,
        started_at=started_at,
        finished_at=utcnow(),
        error=error,
        error_type=error_type,
    )
