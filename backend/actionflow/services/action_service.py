"""Action definitions business logic."""

from __future__ import annotations

import json
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.compiler.ir import IRActionDefinition
from actionflow.compiler.parser import parse_action_definition
from actionflow.db.models import ActionDefinition


async def create_action(
    db: AsyncSession,
    name: str,
    input_schema: list[dict[str, Any]],
    api_config: dict[str, Any],
    category: str | None = None,
    logo: str | None = None,
) -> ActionDefinition:
    action = ActionDefinition(
        name=name,
        category=category,
        logo=logo,
        input_schema_json=json.dumps(input_schema),
        api_config_json=json.dumps(api_config),
    )
    db.add(action)
    await db.flush()
    await db.refresh(action)
    return action


async def get_action(db: AsyncSession, action_id: str) -> ActionDefinition | None:
    return await db.get(ActionDefinition, action_id)


async def list_actions(db: AsyncSession, category: str | None = None) -> list[ActionDefinition]:
    stmt = select(ActionDefinition).order_by(ActionDefinition.created_at.desc())
    if category:
        stmt = stmt.where(ActionDefinition.category == category)
    result = await db.execute(stmt)
    return list(result.scalars().all())


def to_ir(action: ActionDefinition) -> IRActionDefinition:
    return parse_action_definition(
        action.action_id,
        {
            "name": action.name,
            "category": action.category,
            "inputSchema": json.loads(action.input_schema_json or "[]"),
            "apiConfig": json.loads(action.api_config_json or "{}"),
        },
    )


async def load_actions(db: AsyncSession, action_ids: Iterable[str]) -> dict[str, IRActionDefinition]:
    """Snapshot the referenced action definitions as IR, keyed by id.

    Ids that do not exist are simply absent; the node referencing them fails
    at build time.
    """
    ids = {a for a in action_ids if a}
    if not ids:
        return {}
    result = await db.execute(select(ActionDefinition).where(ActionDefinition.action_id.in_(ids)))
    return {row.action_id: to_ir(row) for row in result.scalars().all()}
