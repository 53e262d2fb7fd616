"""API dependencies."""

import logging
from collections.abc import Callable
from typing import Annotated
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.redis import get_redis
from app.core.security import verify_token
from app.models.profile import Profile, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer()

DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]


def _subject_id(payload: dict) -> UUID | None:
    try:
        return UUID(str(payload.get("sub")))
    except ValueError:
        return None


async def _load_profile(db: AsyncSession, user_id: UUID) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DbSession,
) -> Profile:
    """Resolve the bearer token to a profile or fail with 401."""
    payload = verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = _subject_id(payload)
    user = await _load_profile(db, user_id) if user_id else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


CurrentUser = Annotated[Profile, Depends(get_current_user)]


def require_roles(*roles: UserRole) -> Callable:
    """Dependency allowing only the given roles."""
    allowed = {r.value for r in roles}

    async def _dependency(user: CurrentUser) -> Profile:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _dependency


AdminUser = Annotated[Profile, Depends(require_roles(UserRole.ADMIN))]
StaffUser = Annotated[
    Profile,
    Depends(require_roles(UserRole.ADMIN, UserRole.PARISH_COORDINATOR)),
]


async def get_ws_user(websocket: WebSocket, token: str | None, db: AsyncSession) -> Profile | None:
    """Authenticate a chat socket from its ``token`` query parameter.

    Closes the socket with 1008 (policy violation) and returns None on failure.
    """
    payload = verify_token(token, expected_type="access") if token else None
    user_id = _subject_id(payload) if payload else None
    user = await _load_profile(db, user_id) if user_id else None
    if user is None:
        logger.info("Rejected chat socket with invalid credentials")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    return user
