"""
modules/common.py — Shared Gateway Helpers
===========================================
Role checks and the per-subject unit of work every write path runs inside.

Flow of every gated write:
    resolve caller → check role / permission → domain write → ledger block → commit
"""

import logging
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotAuthorized
from core.identity import Role
from core.ledger import ledger
from db import store
from db.models import User

logger = logging.getLogger("medchain.modules")


def require_role(caller: User, role: Role, message: str = ""):
    if caller is None or caller.role != role.value:
        logger.warning(f"NOT AUTHORIZED: {getattr(caller, 'id', None)} is not a {role.value}")
        raise NotAuthorized(message or f"Only a {role.value} can do this")


def require_self(caller: User, subject_id: str, message: str = ""):
    """Caller must be the patient whose records these are."""
    require_role(caller, Role.PATIENT, message)
    if caller.id != subject_id:
        logger.warning(f"NOT AUTHORIZED: {caller.id} tried to act as {subject_id}")
        raise NotAuthorized(message or "A patient can only act on their own records")


@asynccontextmanager
async def unit_of_work(db: AsyncSession, subject_id: str):
    """
    Serialize writers for one subject's chain and commit the domain record
    together with its block. Nothing is committed if either write fails.
    """
    async with ledger.writer(subject_id):
        try:
            yield
            await store.commit(db)
        except Exception:
            await db.rollback()
            raise
