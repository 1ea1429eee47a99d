"""
api/routes_identity.py — Identity API Endpoints
=================================================
Handles signup, login, profile edits and the user directory.

Endpoints:
    POST  /identity/signup            → Create a new patient or doctor
    POST  /identity/login             → Exchange credentials for a bearer token
    GET   /identity/me                → The calling identity
    PATCH /identity/me/profile        → Edit own profile attributes
    GET   /identity/directory/{role}  → List patients or doctors
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from api.deps import get_current_user
from core.identity import public_view
from db.models import User
from db.session import get_db
from modules import accounts

router = APIRouter()


# ── Request / Response schemas ────────────────────────────────────────────────
class SignupRequest(BaseModel):
    name: str
    email: str
    role: str                               # patient | doctor
    password: Optional[str] = None          # exactly one of password / wallet_address
    wallet_address: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: Optional[str] = None
    wallet_address: Optional[str] = None    # already verified by the wallet collaborator


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


class ProfileUpdate(BaseModel):
    profile: dict = Field(default_factory=dict)


# ── Endpoints ─────────────────────────────────────────────────────────────────
@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)):
    user = await accounts.create_identity(
        db,
        name=body.name,
        email=body.email,
        role=body.role,
        password=body.password,
        wallet_address=body.wallet_address,
    )
    return public_view(user)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user, token = await accounts.login(db, body.email, body.password, body.wallet_address)
    return LoginResponse(access_token=token, user=public_view(user))


@router.get("/me")
async def me(caller: User = Depends(get_current_user)):
    return public_view(caller)


@router.patch("/me/profile")
async def update_profile(
    body: ProfileUpdate,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.update_profile(db, caller, body.profile)
    return public_view(user)


@router.get("/directory/{role}")
async def directory(
    role: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Name/email listing used to pick whom to grant access to."""
    users = await accounts.list_by_role(db, role)
    return [{"id": u.id, "name": u.name, "email": u.email, "role": u.role} for u in users]
