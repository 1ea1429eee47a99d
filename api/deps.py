"""
api/deps.py — Request Dependencies
====================================
Resolves the bearer token on a request to the calling User.
Gateway functions take that User explicitly: nothing reads ambient session state.
"""

import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from core.crypto import crypto_engine
from db import store
from db.models import User
from db.session import get_db

logger = logging.getLogger("medchain.api")

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    try:
        claims = crypto_engine.verify_token(credentials.credentials)
    except JWTError:
        logger.warning("Rejected invalid or expired token")
        raise unauthorized
    user = await store.get_user(db, claims.get("sub", ""))
    if user is None:
        raise unauthorized
    return user
