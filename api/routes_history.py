"""
api/routes_history.py — Medical History API Endpoints

Endpoints:
    POST /history/{subject_id}/reports         → Patient uploads a report (multipart)
    POST /history/{subject_id}/notes           → Doctor adds a note
    GET  /history/{subject_id}                 → History visible to the caller
    GET  /history/entries/{entry_id}/file      → Download a report's attached file
"""

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from urllib.parse import quote

from api.deps import get_current_user
from config import settings
from db.models import HistoryEntry, User
from db.session import get_db
from modules import history

router = APIRouter()


class NoteRequest(BaseModel):
    text: str


def _content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename*=utf-8''{quoted}"


def _entry(e: HistoryEntry) -> dict:
    return {
        "id": e.id,
        "subject_id": e.subject_id,
        "author_id": e.author_id,
        "author_name": e.author_name,
        "kind": e.kind,
        "title": e.title,
        "has_file": e.file_id is not None,
        "created_at": e.created_at,
    }


@router.post("/{subject_id}/reports", status_code=201)
async def add_report(
    subject_id: str,
    title: str = Form(""),
    file: Optional[UploadFile] = File(None),
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    file_bytes = None
    if file is not None:
        # at most one byte past the cap; add_report refuses anything longer
        file_bytes = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    entry = await history.add_report(
        db, caller, subject_id,
        title=title,
        file_bytes=file_bytes,
        filename=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
    )
    return _entry(entry)


@router.post("/{subject_id}/notes", status_code=201)
async def add_note(
    subject_id: str,
    body: NoteRequest,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await history.add_note(db, caller, subject_id, body.text)
    return _entry(entry)


@router.get("/{subject_id}")
async def get_history(
    subject_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_entry(e) for e in await history.get_history(db, caller, subject_id)]


@router.get("/entries/{entry_id}/file")
async def download_file(
    entry_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filename, content_type, data = await history.download_report_file(db, caller, entry_id)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": _content_disposition(filename)},
    )
