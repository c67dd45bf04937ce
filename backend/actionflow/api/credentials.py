"""Credentials REST API.

Credential data is encrypted at rest by the vault (AES-256-CBC, random IV).

Endpoints
---------
GET    /api/credentials             — list metadata (never data); ?type= &nodeType=
POST   /api/credentials             — create (encrypts the submitted fields)
GET    /api/credentials/{id}        — metadata only
PUT    /api/credentials/{id}        — rename, rescope, (re)activate, rotate data
DELETE /api/credentials/{id}        — soft delete (isActive=false)
POST   /api/credentials/{id}/test   — check the stored blob still decrypts
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.db.engine import get_db
from actionflow.schemas.credentials import CredentialCreate, CredentialOut, CredentialTestResult, CredentialUpdate
from actionflow.services import credential_service
from actionflow.services.credential_vault import CredentialVault, DecryptionError, get_vault

logger = logging.getLogger("actionflow.api.credentials")
router = APIRouter()


@router.get("", response_model=list[CredentialOut])
async def list_credentials(
    include_inactive: bool = False,
    type: str | None = None,
    node_type: str | None = Query(None, alias="nodeType"),
    db: AsyncSession = Depends(get_db),
):
    return await credential_service.list_credentials(db, include_inactive, type=type, node_type=node_type)


@router.post("", response_model=CredentialOut, status_code=201)
async def create_credential(
    body: CredentialCreate,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
):
    try:
        return await credential_service.create_credential(
            db, vault, name=body.name, type=body.type, data=body.data, node_types=body.nodeTypes
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.get("/{credential_id}", response_model=CredentialOut)
async def get_credential(credential_id: str, db: AsyncSession = Depends(get_db)):
    cred = await credential_service.get_credential(db, credential_id)
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    return cred


@router.put("/{credential_id}", response_model=CredentialOut)
async def update_credential(
    credential_id: str,
    body: CredentialUpdate,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
):
    cred = await credential_service.update_credential(
        db,
        vault,
        credential_id,
        name=body.name,
        data=body.data,
        node_types=body.nodeTypes,
        is_active=body.isActive,
    )
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    return cred


@router.delete("/{credential_id}", response_model=CredentialOut)
async def delete_credential(credential_id: str, db: AsyncSession = Depends(get_db)):
    cred = await credential_service.deactivate_credential(db, credential_id)
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    return cred


@router.post("/{credential_id}/test", response_model=CredentialTestResult)
async def test_credential(
    credential_id: str,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
):
    cred = await credential_service.get_credential(db, credential_id)
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    try:
        fields = credential_service.verify_credential(vault, cred)
    except DecryptionError as exc:
        logger.warning("Credential %s failed to decrypt: %s", credential_id, exc)
        return CredentialTestResult(credential_id=credential_id, ok=False, error=str(exc))
    return CredentialTestResult(credential_id=credential_id, ok=True, fields=fields)
