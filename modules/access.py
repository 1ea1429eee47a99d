"""
modules/access.py — Access Grant / Revoke Module
==================================================
A patient grants or revokes a doctor's access to their records.
Both actions are written to the patient's ledger.

Flow:
    API route → caller is the patient → registry write → write block → commit
"""

import logging
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession

from core import permissions
from core.errors import DuplicateGrant, InvalidInput, NotFound
from core.identity import Role
from core.ledger import AccessGrantedPayload, AccessRevokedPayload, ledger
from db import store
from db.models import Permission, User
from modules.common import require_role, unit_of_work

logger = logging.getLogger("medchain.modules.access")


async def grant_access(db: AsyncSession, caller: User, grantee_id: str) -> Permission:
    """
    Patient grants a doctor access. A pair that is already granted fails with
    DuplicateGrant and leaves the ledger untouched.
    """
    require_role(caller, Role.PATIENT, "Only a patient can grant access")
    grantee = await store.get_user(db, grantee_id)
    if grantee is None:
        raise NotFound("Doctor not found")
    if grantee.role != Role.DOCTOR.value:
        raise InvalidInput("Access can only be granted to a doctor")
    if await permissions.has_access(db, caller.id, grantee_id):
        raise DuplicateGrant(f"Access already granted to {grantee_id}")

    async with unit_of_work(db, caller.id):
        permission = await permissions.grant(db, caller.id, grantee_id)
        await ledger.append_block(db, caller.id, AccessGrantedPayload(permission.id), author_id=caller.id)
    return permission


async def revoke_access(db: AsyncSession, caller: User, grantee_id: str) -> bool:
    """
    Patient revokes a doctor's access. Revoking a pair that holds no grant is
    a no-op: nothing is deleted and no block is written. Returns whether a
    grant was removed.
    """
    require_role(caller, Role.PATIENT, "Only a patient can revoke access")
    async with unit_of_work(db, caller.id):
        removed = await permissions.revoke(db, caller.id, grantee_id)
        if removed is not None:
            await ledger.append_block(
                db, caller.id, AccessRevokedPayload(caller.id, grantee_id), author_id=caller.id,
            )
    return removed is not None


async def list_grantees(db: AsyncSession, caller: User) -> List[User]:
    """Doctors the calling patient has granted access to."""
    require_role(caller, Role.PATIENT)
    return await permissions.list_grantees_for(db, caller.id)


async def list_subjects(db: AsyncSession, caller: User) -> List[User]:
    """Patients who have granted the calling doctor access."""
    require_role(caller, Role.DOCTOR)
    return await permissions.list_subjects_for(db, caller.id)
