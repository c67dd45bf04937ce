"""Credentials business logic.

Plaintext only exists on the way in (``create_credential`` and
``update_credential`` encrypt before the row is written) and inside
``verify_credential`` (decrypted and discarded).
Credentials are never hard-deleted.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from actionflow.compiler.ir import IRCredential
from actionflow.compiler.parser import parse_credential
from actionflow.db.models import Credential
from actionflow.services.credential_vault import CredentialVault

logger = logging.getLogger("actionflow.credentials")

CREDENTIAL_TYPES = frozenset({"api_key", "oauth2", "basic_auth", "custom"})


async def create_credential(
    db: AsyncSession,
    vault: CredentialVault,
    name: str,
    type: str,
    data: dict[str, Any],
    node_types: list[str],
) -> Credential:
    if type not in CREDENTIAL_TYPES:
        raise ValueError(f"Unknown credential type '{type}'. Expected one of {sorted(CREDENTIAL_TYPES)}")
    cred = Credential(
        name=name,
        type=type,
        encrypted_data=vault.encrypt(data),
        node_types_json=json.dumps(sorted(set(node_types))),
        is_active=True,
    )
    db.add(cred)
    await db.flush()
    await db.refresh(cred)
    logger.info("Credential %s (%s) created", cred.credential_id, type)
    return cred


async def get_credential(db: AsyncSession, credential_id: str) -> Credential | None:
    return await db.get(Credential, credential_id)


async def list_credentials(
    db: AsyncSession,
    include_inactive: bool = False,
    type: str | None = None,
    node_type: str | None = None,
) -> list[Credential]:
    stmt = select(Credential).order_by(Credential.created_at.desc())
    if not include_inactive:
        stmt = stmt.where(Credential.is_active.is_(True))
    if type:
        stmt = stmt.where(Credential.type == type)
    result = await db.execute(stmt)
    creds = list(result.scalars().all())
    if node_type:
        # nodeTypes is a JSON list in a Text column; match on the decoded set.
        creds = [c for c in creds if node_type in json.loads(c.node_types_json or "[]")]
    return creds


async def update_credential(
    db: AsyncSession,
    vault: CredentialVault,
    credential_id: str,
    name: str | None = None,
    data: dict[str, Any] | None = None,
    node_types: list[str] | None = None,
    is_active: bool | None = None,
) -> Credential | None:
    """Partial update.  New *data* replaces the stored blob, re-encrypted with a fresh IV."""
    cred = await db.get(Credential, credential_id)
    if not cred:
        return None
    if name:
        cred.name = name
    if node_types is not None:
        cred.node_types_json = json.dumps(sorted(set(node_types)))
    if is_active is not None:
        cred.is_active = is_active
    if data:
        cred.encrypted_data = vault.encrypt(data)
    await db.flush()
    await db.refresh(cred)
    logger.info("Credential %s updated (data rotated: %s)", credential_id, bool(data))
    return cred


async def deactivate_credential(db: AsyncSession, credential_id: str) -> Credential | None:
    """Soft delete: the row stays for audit, but is never selected for a run again."""
    cred = await db.get(Credential, credential_id)
    if not cred:
        return None
    cred.is_active = False
    await db.flush()
    await db.refresh(cred)
    logger.info("Credential %s deactivated", credential_id)
    return cred


def verify_credential(vault: CredentialVault, cred: Credential) -> list[str]:
    """Decrypt *cred* and return its field names.  Raises DecryptionError."""
    return sorted(vault.decrypt(cred.encrypted_data))


def to_ir(cred: Credential) -> IRCredential:
    return parse_credential(
        cred.credential_id,
        {
            "type": cred.type,
            "encryptedData": cred.encrypted_data,
            "nodeTypes": json.loads(cred.node_types_json or "[]"),
            "isActive": cred.is_active,
        },
    )


async def load_credentials(db: AsyncSession) -> dict[str, IRCredential]:
    """Snapshot every credential (inactive ones too, so an explicit binding to one can be reported)."""
    result = await db.execute(select(Credential).order_by(Credential.created_at.asc()))
    return {row.credential_id: to_ir(row) for row in result.scalars().all()}
