"""
api/routes_ledger.py — Ledger API Endpoints

Endpoints:
    GET /ledger/{subject_id}          → Blocks ordered by index
    GET /ledger/{subject_id}/verify   → Blocks plus the verification report
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from db.models import Block, User
from db.session import get_db
from modules import audit

router = APIRouter()


def _block(b: Block) -> dict:
    return {
        "id": b.id,
        "subject_id": b.subject_id,
        "index": b.index,
        "prev_hash": b.prev_hash,
        "hash": b.hash,
        "timestamp": b.timestamp,
        "payload_type": b.payload_type,
        "payload_ref": b.payload_ref,
        "author_id": b.author_id,
        "author_name": b.author_name,
    }


@router.get("/{subject_id}")
async def get_ledger(
    subject_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_block(b) for b in await audit.get_ledger(db, caller, subject_id)]


@router.get("/{subject_id}/verify")
async def verify_ledger(
    subject_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tampering is reported in the body, never as an error status."""
    blocks, result = await audit.verify_ledger(db, caller, subject_id)
    return {"blocks": [_block(b) for b in blocks], **result.to_dict()}
