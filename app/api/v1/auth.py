"""Authentication endpoints."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select

from app.api.deps import DbSession
from app.core.config import settings
from app.core.rate_limit import ip_rate_limit
from app.core.security import (
    create_access_token,
    get_password_hash,
    is_acceptable_password,
    issue_token_pair,
    verify_password,
    verify_token,
)
from app.models.profile import Profile, UserRole, VerificationStatus
from app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenRefresh,
    UserInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_response(profile: Profile) -> AuthResponse:
    tokens = issue_token_pair(str(profile.id), role=profile.role)
    return AuthResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user=UserInfo.model_validate(profile),
    )


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(ip_rate_limit("auth:signup", settings.login_rate_limit_per_minute))],
)
async def signup(request: SignupRequest, db: DbSession) -> AuthResponse:
    """Register a new observer; documents are reviewed later."""
    if not is_acceptable_password(request.password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters and contain a letter and a digit",
        )

    email = request.email.lower()
    existing = await db.execute(select(Profile.id).where(func.lower(Profile.email) == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    profile = Profile(
        email=email,
        name=request.name.strip(),
        hashed_password=get_password_hash(request.password),
        role=UserRole.OBSERVER.value,
        verification_status=VerificationStatus.PENDING.value,
        phone_number=request.phone_number,
        parish=request.parish,
        last_login=datetime.now(UTC),
    )
    db.add(profile)
    await db.flush()
    await db.refresh(profile)
    logger.info(f"New observer signed up: {profile.id}")
    return _auth_response(profile)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(ip_rate_limit("auth:login", settings.login_rate_limit_per_minute))],
)
async def login(request: LoginRequest, db: DbSession) -> AuthResponse:
    result = await db.execute(select(Profile).where(func.lower(Profile.email) == request.email.lower()))
    profile = result.scalar_one_or_none()
    if profile is None or not verify_password(request.password, profile.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    profile.last_login = datetime.now(UTC)
    return _auth_response(profile)


@router.post("/refresh", response_model=TokenRefresh)
async def refresh_token(request: RefreshRequest, db: DbSession) -> TokenRefresh:
    """Exchange a refresh token for a new access token."""
    payload = verify_token(request.refresh_token, expected_type="refresh")
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        user_id = None
    profile = None
    if user_id is not None:
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one_or_none()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return TokenRefresh(
        access_token=create_access_token(str(profile.id), role=profile.role),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout() -> None:
    """Tokens are stateless; the client discards them."""
    return None
