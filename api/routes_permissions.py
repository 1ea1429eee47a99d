"""
api/routes_permissions.py — Access Management API Endpoints

Endpoints:
    POST /permissions/grant      → Patient grants a doctor access
    POST /permissions/revoke     → Patient revokes a doctor's access
    GET  /permissions/grantees   → Doctors the calling patient has granted
    GET  /permissions/subjects   → Patients who granted the calling doctor
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from db.models import User
from db.session import get_db
from modules import access

router = APIRouter()


class AccessRequest(BaseModel):
    grantee_id: str


def _user_row(u: User) -> dict:
    return {"id": u.id, "name": u.name, "email": u.email, "role": u.role}


@router.post("/grant", status_code=201)
async def grant(
    body: AccessRequest,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    permission = await access.grant_access(db, caller, body.grantee_id)
    return {
        "permission_id": permission.id,
        "subject_id": permission.subject_id,
        "grantee_id": permission.grantee_id,
        "granted_at": permission.granted_at,
        "status": "granted",
    }


@router.post("/revoke")
async def revoke(
    body: AccessRequest,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await access.revoke_access(db, caller, body.grantee_id)
    return {"status": "revoked" if removed else "not-granted"}


@router.get("/grantees")
async def grantees(caller: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return [_user_row(u) for u in await access.list_grantees(db, caller)]


@router.get("/subjects")
async def subjects(caller: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return [_user_row(u) for u in await access.list_subjects(db, caller)]
