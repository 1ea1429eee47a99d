"""
modules/history.py — Medical History Module
=============================================
Business logic for patient reports and doctor notes.
Uploaded files are encrypted before DB storage; every entry is logged to
the patient's ledger.

Flow:
    API route → check caller / permission → encrypt file → save DB → write block → commit

Visibility:
    patient → every entry in their own history, including notes from doctors
              whose access has since been revoked
    doctor  → only entries the patient authored, and only while holding access
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core import permissions
from core.crypto import InvalidToken, crypto_engine, digest
from core.errors import InvalidInput, NoAccess, NotFound, StorageError
from core.identity import Role
from core.ledger import ReportPayload, UpdatePayload, ledger
from db import store
from db.models import FileBlob, HistoryEntry, User, new_uuid, now_ms
from modules.common import require_role, require_self, unit_of_work

logger = logging.getLogger("medchain.modules.history")


class EntryKind(str, Enum):
    REPORT = "report"
    UPDATE = "update"
    PRESCRIPTION = "prescription"    # marker kind, not written by this module


async def add_report(
    db: AsyncSession,
    caller: User,
    subject_id: str,
    title: Optional[str] = None,
    file_bytes: Optional[bytes] = None,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> HistoryEntry:
    """Patient uploads a report, optionally with an attached file."""
    require_self(caller, subject_id, "Only the patient can add their report")
    if file_bytes is not None and len(file_bytes) > settings.MAX_UPLOAD_BYTES:
        raise InvalidInput(f"File exceeds {settings.MAX_UPLOAD_BYTES} bytes")

    title = (title or "").strip() or None
    async with unit_of_work(db, subject_id):
        file_id = None
        if file_bytes is not None:
            blob = FileBlob(
                id=new_uuid(),
                filename=filename or title or "medical-report",
                content_type=content_type or "application/octet-stream",
                sha256=digest(file_bytes),
                size=len(file_bytes),
                data_encrypted=crypto_engine.encrypt_bytes(file_bytes),
                created_at=now_ms(),
            )
            file_id = (await store.put_file(db, blob)).id

        entry = await store.put_history_entry(db, HistoryEntry(
            id=new_uuid(),
            subject_id=subject_id,
            author_id=caller.id,
            author_name=caller.name,
            kind=EntryKind.REPORT.value,
            title=title,
            file_id=file_id,
            created_at=now_ms(),
        ))
        await ledger.append_block(db, subject_id, ReportPayload(entry.id), author_id=caller.id)

    logger.info(f"Report {entry.id} added for patient {subject_id}")
    return entry


async def add_note(db: AsyncSession, caller: User, subject_id: str, text: str) -> HistoryEntry:
    """Doctor adds a note (update) to a patient who granted them access."""
    require_role(caller, Role.DOCTOR, "Only the doctor can add updates")
    await permissions.require_access(db, subject_id, caller.id)
    text = (text or "").strip()
    if not text:
        raise InvalidInput("Note text is required")

    async with unit_of_work(db, subject_id):
        entry = await store.put_history_entry(db, HistoryEntry(
            id=new_uuid(),
            subject_id=subject_id,
            author_id=caller.id,
            author_name=caller.name,
            kind=EntryKind.UPDATE.value,
            title=text,
            created_at=now_ms(),
        ))
        await ledger.append_block(db, subject_id, UpdatePayload(entry.id), author_id=caller.id)

    logger.info(f"Update {entry.id} added for patient {subject_id} by {caller.id}")
    return entry


async def get_history(db: AsyncSession, caller: User, subject_id: str) -> List[HistoryEntry]:
    """Entries ordered by created_at, filtered by who is asking."""
    if caller.role == Role.PATIENT.value and caller.id == subject_id:
        return await store.list_history_by_subject(db, subject_id)

    if caller.role == Role.DOCTOR.value:
        if not await permissions.has_access(db, subject_id, caller.id):
            return []
        entries = await store.list_history_by_subject(db, subject_id)
        return [e for e in entries if e.author_id == subject_id]

    return []


async def download_report_file(db: AsyncSession, caller: User, entry_id: str) -> Tuple[str, str, bytes]:
    """Returns (filename, content_type, bytes) for a report's attached file."""
    entry = await store.get_history_entry(db, entry_id)
    if entry is None:
        raise NotFound("Record not found")

    if not (caller.role == Role.PATIENT.value and caller.id == entry.subject_id):
        if caller.role != Role.DOCTOR.value or entry.author_id != entry.subject_id:
            raise NoAccess()
        await permissions.require_access(db, entry.subject_id, caller.id)

    if not entry.file_id:
        raise NotFound("Record has no attached file")
    blob = await store.get_file(db, entry.file_id)
    if blob is None:
        raise NotFound("File not found")

    try:
        data = crypto_engine.decrypt_bytes(blob.data_encrypted)
    except InvalidToken as exc:
        raise StorageError("Stored file cannot be decrypted with the configured key") from exc
    if digest(data) != blob.sha256:
        logger.error(f"File {blob.id} failed its integrity check")
        raise StorageError("Stored file is corrupted")
    return blob.filename, blob.content_type, data
