"""Action definitions API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.db.engine import get_db
from actionflow.schemas.actions import ActionCreate, ActionOut
from actionflow.services import action_service

router = APIRouter()


@router.post("", response_model=ActionOut, status_code=201)
async def create_action(body: ActionCreate, db: AsyncSession = Depends(get_db)):
    return await action_service.create_action(
        db,
        name=body.name,
        category=body.category,
        logo=body.logo,
        input_schema=[f.model_dump() for f in body.inputSchema],
        api_config=body.apiConfig.model_dump(),
    )


@router.get("", response_model=list[ActionOut])
async def list_actions(category: str | None = None, db: AsyncSession = Depends(get_db)):
    return await action_service.list_actions(db, category)


@router.get("/{action_id}", response_model=ActionOut)
async def get_action(action_id: str, db: AsyncSession = Depends(get_db)):
    action = await action_service.get_action(db, action_id)
    if not action:
        raise HTTPException(status_code=404, detail="Action definition not found")
    return action
