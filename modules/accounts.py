"""
modules/accounts.py — Identity Module
======================================
Signup, login, profile edits and the patient / doctor directory.

Creating a patient also opens their ledger with the genesis block,
in the same transaction as the identity row.
"""

import logging
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from core.crypto import crypto_engine
from core.errors import AuthenticationFailed, DuplicateEmail, InvalidInput, NotFound
from core.identity import (
    Role, build_auth_descriptor, check_credentials, clean_profile, normalize_email, parse_role,
)
from core.ledger import GenesisPayload, ledger
from db import store
from db.models import User, new_uuid, now_ms
from modules.common import unit_of_work

logger = logging.getLogger("medchain.modules.accounts")


async def create_identity(
    db: AsyncSession,
    name: str,
    email: str,
    role: str,
    password: Optional[str] = None,
    wallet_address: Optional[str] = None,
) -> User:
    """Register a new identity. Fails with DuplicateEmail / InvalidCredentials."""
    email = normalize_email(email)
    role = parse_role(role)
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Name is required")

    auth = build_auth_descriptor(password, wallet_address)
    if await store.get_user_by_email(db, email):
        raise DuplicateEmail()

    user = User(
        id=new_uuid(),
        name=name,
        email=email,
        role=role.value,
        profile={},
        created_at=now_ms(),
        **auth,
    )
    async with unit_of_work(db, user.id):
        user = await store.put_user(db, user)
        if role is Role.PATIENT:
            await ledger.append_block(db, user.id, GenesisPayload(), author_id=user.id)

    logger.info(f"Identity created: {user.id} ({role.value}, {auth['auth_method']})")
    return user


async def authenticate(
    db: AsyncSession,
    email: str,
    password: Optional[str] = None,
    wallet_address: Optional[str] = None,
) -> User:
    user = await store.get_user_by_email(db, (email or "").strip().lower())
    if user is None or not check_credentials(user, password, wallet_address):
        logger.warning(f"Authentication failed for {email!r}")
        raise AuthenticationFailed()
    return user


async def login(
    db: AsyncSession,
    email: str,
    password: Optional[str] = None,
    wallet_address: Optional[str] = None,
) -> Tuple[User, str]:
    """Authenticate and issue the bearer token the HTTP layer resolves back to a caller."""
    user = await authenticate(db, email, password, wallet_address)
    token = crypto_engine.create_access_token(user.id, {"role": user.role})
    logger.info(f"Login: {user.id}")
    return user, token


async def get_identity(db: AsyncSession, user_id: str) -> User:
    user = await store.get_user(db, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def list_by_role(db: AsyncSession, role: str) -> List[User]:
    return await store.list_users_by_role(db, parse_role(role).value)


async def update_profile(db: AsyncSession, caller: User, fields: dict) -> User:
    """Owner-only edit of free-form profile attributes. Not recorded on the ledger."""
    cleaned = clean_profile(fields)
    caller.profile = {**(caller.profile or {}), **cleaned}
    caller = await store.put_user(db, caller)
    await store.commit(db)
    return caller
