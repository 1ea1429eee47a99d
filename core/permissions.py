"""
core/permissions.py — Permission Registry
===========================================
The security gate. Every grantee-originated read or write calls
has_access() / require_access() before touching a patient's data.

A permission is a single (subject, grantee) row. Granting inserts it,
revoking deletes it: there is no inactive state. The store's unique
(subject_id, grantee_id) constraint keeps it to one row per pair.
"""

import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DuplicateGrant, NoAccess
from db import store
from db.models import Permission, User, new_uuid, now_ms

logger = logging.getLogger("medchain.permissions")


async def grant(db: AsyncSession, subject_id: str, grantee_id: str) -> Permission:
    """Insert the grant row. A second grant for the same pair is refused."""
    if await store.get_permission(db, subject_id, grantee_id):
        logger.info(f"Duplicate grant refused: {grantee_id} → {subject_id}")
        raise DuplicateGrant(f"Access already granted to {grantee_id}")
    permission = Permission(
        id=new_uuid(),
        subject_id=subject_id,
        grantee_id=grantee_id,
        granted_at=now_ms(),
    )
    permission = await store.put_permission(db, permission)
    logger.info(f"Access granted: {grantee_id} → {subject_id}")
    return permission


async def revoke(db: AsyncSession, subject_id: str, grantee_id: str) -> Optional[Permission]:
    """Delete the grant row. Returns the removed row, or None if there was nothing to revoke."""
    permission = await store.get_permission(db, subject_id, grantee_id)
    if permission is None:
        return None
    await store.delete_permission(db, permission.id)
    logger.info(f"Access revoked: {grantee_id} → {subject_id}")
    return permission


async def has_access(db: AsyncSession, subject_id: str, grantee_id: str) -> bool:
    return await store.get_permission(db, subject_id, grantee_id) is not None


async def require_access(db: AsyncSession, subject_id: str, grantee_id: str):
    """
    Same as has_access but raises NoAccess instead of returning False.
    Use this as a guard in gateway functions:

        await require_access(db, subject_id, caller.id)
        # execution continues only if permitted
    """
    if not await has_access(db, subject_id, grantee_id):
        logger.warning(f"Access DENIED: {grantee_id} → {subject_id} (no live permission)")
        raise NoAccess()


async def list_grantees_for(db: AsyncSession, subject_id: str) -> List[User]:
    """Identities holding a grant on subject_id. Grants naming a vanished identity are skipped."""
    rows = await store.list_permissions_for_subject(db, subject_id)
    return await _resolve(db, [p.grantee_id for p in rows])


async def list_subjects_for(db: AsyncSession, grantee_id: str) -> List[User]:
    rows = await store.list_permissions_for_grantee(db, grantee_id)
    return await _resolve(db, [p.subject_id for p in rows])


async def _resolve(db: AsyncSession, user_ids: List[str]) -> List[User]:
    users = []
    for user_id in user_ids:
        user = await store.get_user(db, user_id)
        if user is not None:
            users.append(user)
    return users
