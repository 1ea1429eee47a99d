"""
db/store.py — Keyed Store
==========================
Every read and write against the six record families goes through here.

Contract:
- put_* are upserts keyed by id (idempotent by id) and only flush: the
  caller owns the commit, so a domain write and its ledger block can land
  in the same transaction.
- list_* return every match for a secondary index. Ordering is applied here
  for the callers that need it (history ascending by created_at,
  prescriptions newest first, blocks by index).
- Any SQLAlchemy failure, including uniqueness violations, surfaces as
  StorageError.
"""

import functools
import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import StorageError
from db.models import Block, FileBlob, HistoryEntry, Permission, Prescription, User

logger = logging.getLogger("medchain.store")


def _storage_errors(fn):
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error(f"{fn.__name__} failed: {exc}")
            raise StorageError(f"{fn.__name__}: {exc.__class__.__name__}") from exc
    return wrapper


async def _upsert(db: AsyncSession, obj):
    merged = await db.merge(obj)
    await db.flush()
    return merged


@_storage_errors
async def commit(db: AsyncSession):
    """Commit the caller's unit of work; a failed commit is a StorageError too."""
    await db.commit()


# ── Users ─────────────────────────────────────────────────────────────────────
@_storage_errors
async def put_user(db: AsyncSession, user: User) -> User:
    return await _upsert(db, user)


@_storage_errors
async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


@_storage_errors
async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


@_storage_errors
async def list_users_by_role(db: AsyncSession, role: str) -> List[User]:
    result = await db.execute(select(User).where(User.role == role))
    return list(result.scalars().all())


# ── History entries ───────────────────────────────────────────────────────────
@_storage_errors
async def put_history_entry(db: AsyncSession, entry: HistoryEntry) -> HistoryEntry:
    return await _upsert(db, entry)


@_storage_errors
async def get_history_entry(db: AsyncSession, entry_id: str) -> Optional[HistoryEntry]:
    return await db.get(HistoryEntry, entry_id)


@_storage_errors
async def list_history_by_subject(db: AsyncSession, subject_id: str) -> List[HistoryEntry]:
    result = await db.execute(
        select(HistoryEntry)
        .where(HistoryEntry.subject_id == subject_id)
        .order_by(HistoryEntry.created_at)
    )
    return list(result.scalars().all())


# ── Permissions ───────────────────────────────────────────────────────────────
@_storage_errors
async def put_permission(db: AsyncSession, permission: Permission) -> Permission:
    return await _upsert(db, permission)


@_storage_errors
async def get_permission(db: AsyncSession, subject_id: str, grantee_id: str) -> Optional[Permission]:
    result = await db.execute(
        select(Permission).where(
            Permission.subject_id == subject_id,
            Permission.grantee_id == grantee_id,
        )
    )
    return result.scalars().first()


@_storage_errors
async def delete_permission(db: AsyncSession, permission_id: str) -> None:
    await db.execute(delete(Permission).where(Permission.id == permission_id))
    await db.flush()


@_storage_errors
async def list_permissions_for_subject(db: AsyncSession, subject_id: str) -> List[Permission]:
    result = await db.execute(select(Permission).where(Permission.subject_id == subject_id))
    return list(result.scalars().all())


@_storage_errors
async def list_permissions_for_grantee(db: AsyncSession, grantee_id: str) -> List[Permission]:
    result = await db.execute(select(Permission).where(Permission.grantee_id == grantee_id))
    return list(result.scalars().all())


# ── Prescriptions ─────────────────────────────────────────────────────────────
@_storage_errors
async def put_prescription(db: AsyncSession, prescription: Prescription) -> Prescription:
    return await _upsert(db, prescription)


@_storage_errors
async def get_prescription(db: AsyncSession, prescription_id: str) -> Optional[Prescription]:
    return await db.get(Prescription, prescription_id)


@_storage_errors
async def delete_prescription(db: AsyncSession, prescription_id: str) -> None:
    await db.execute(delete(Prescription).where(Prescription.id == prescription_id))
    await db.flush()


@_storage_errors
async def list_prescriptions_by_subject(db: AsyncSession, subject_id: str) -> List[Prescription]:
    result = await db.execute(
        select(Prescription)
        .where(Prescription.subject_id == subject_id)
        .order_by(Prescription.created_at.desc())
    )
    return list(result.scalars().all())


# ── Blocks ────────────────────────────────────────────────────────────────────
@_storage_errors
async def put_block(db: AsyncSession, block: Block) -> Block:
    return await _upsert(db, block)


@_storage_errors
async def list_blocks_by_subject(db: AsyncSession, subject_id: str) -> List[Block]:
    result = await db.execute(
        select(Block).where(Block.subject_id == subject_id).order_by(Block.index)
    )
    return list(result.scalars().all())


# ── File blobs ────────────────────────────────────────────────────────────────
@_storage_errors
async def put_file(db: AsyncSession, blob: FileBlob) -> FileBlob:
    return await _upsert(db, blob)


@_storage_errors
async def get_file(db: AsyncSession, file_id: str) -> Optional[FileBlob]:
    return await db.get(FileBlob, file_id)
