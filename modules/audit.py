"""
modules/audit.py — Ledger Read Module
======================================
Who may look at a patient's chain: the patient, and doctors holding live access.
"""

import logging
from typing import List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from core import permissions
from core.errors import NotAuthorized
from core.identity import Role
from core.ledger import VerificationResult, ledger, verify_chain
from db.models import Block, User

logger = logging.getLogger("medchain.modules.audit")


async def _require_reader(db: AsyncSession, caller: User, subject_id: str):
    if caller.role == Role.PATIENT.value:
        if caller.id != subject_id:
            raise NotAuthorized("A patient can only view their own ledger")
        return
    await permissions.require_access(db, subject_id, caller.id)


async def get_ledger(db: AsyncSession, caller: User, subject_id: str) -> List[Block]:
    await _require_reader(db, caller, subject_id)
    return await ledger.get_ledger(db, subject_id)


async def verify_ledger(db: AsyncSession, caller: User, subject_id: str) -> Tuple[List[Block], VerificationResult]:
    blocks = await get_ledger(db, caller, subject_id)
    result = verify_chain(blocks)
    logger.info(f"Ledger verified for {subject_id}: ok={result.ok} blocks={len(blocks)}")
    return blocks, result
