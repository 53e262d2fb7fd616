"""User and role management endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, or_, select, update

from app.api.deps import AdminUser, CurrentUser, DbSession
from app.core.encryption import encrypt_token_or_none
from app.core.security import get_password_hash
from app.models.profile import Profile, UserRole, VerificationStatus
from app.models.station import PollingStation
from app.schemas.common import PaginatedResponse, PaginationMeta
from app.schemas.user import (
    AdminProfileUpdate,
    BulkAction,
    BulkActionResult,
    ProfileCreate,
    ProfileResponse,
    ProfileUpdate,
    UniqueIdRequest,
    UniqueIdResponse,
)
from app.services.unique_id import UniqueIdError, assign_unique_user_id, parse_date_of_birth

logger = logging.getLogger(__name__)

router = APIRouter()

_BULK_FIELDS = {
    "status": ("verification_status", {s.value for s in VerificationStatus}),
    "role": ("role", {r.value for r in UserRole}),
}


def _apply_profile_update(profile: Profile, update_data: dict) -> None:
    """Copy update fields onto a profile, encrypting bank details."""
    for secret_field in ("bank_account", "bank_routing"):
        if secret_field in update_data:
            setattr(profile, f"{secret_field}_encrypted", encrypt_token_or_none(update_data.pop(secret_field)))
    for field, value in update_data.items():
        setattr(profile, field, value)


async def _get_profile_or_404(db: DbSession, user_id: UUID) -> Profile:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return profile


@router.get("/me", response_model=ProfileResponse)
async def get_me(current_user: CurrentUser) -> ProfileResponse:
    """Get current authenticated user."""
    return ProfileResponse.model_validate(current_user)


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    update_request: ProfileUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> ProfileResponse:
    """Update own profile; role and review status are admin-only."""
    _apply_profile_update(current_user, update_request.model_dump(exclude_unset=True))
    db.add(current_user)
    await db.flush()
    return ProfileResponse.model_validate(current_user)


@router.get("", response_model=PaginatedResponse[ProfileResponse])
async def list_users(
    db: DbSession,
    admin: AdminUser,
    search: str | None = Query(None, max_length=255),
    role: str | None = None,
    verification_status: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[ProfileResponse]:
    query = select(Profile)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Profile.name.ilike(pattern), Profile.email.ilike(pattern)))
    if role:
        query = query.where(Profile.role == role)
    if verification_status:
        query = query.where(Profile.verification_status == verification_status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(Profile.created_at.desc()).limit(per_page).offset((page - 1) * per_page)
    )
    return PaginatedResponse[ProfileResponse](
        data=[ProfileResponse.model_validate(p) for p in result.scalars().all()],
        pagination=PaginationMeta.build(page, per_page, total),
    )


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_user(request: ProfileCreate, db: DbSession, admin: AdminUser) -> ProfileResponse:
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
        role=request.role,
        verification_status=request.verification_status,
        phone_number=request.phone_number,
        parish=request.parish,
    )
    db.add(profile)
    await db.flush()
    await db.refresh(profile)
    logger.info(f"Admin {admin.id} created user {profile.id} ({profile.role})")
    return ProfileResponse.model_validate(profile)


@router.post("/bulk", response_model=BulkActionResult)
async def bulk_action(request: BulkAction, db: DbSession, admin: AdminUser) -> BulkActionResult:
    """Set verification status or role on many users at once."""
    if request.action not in _BULK_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown bulk action: {request.action}",
        )
    field, allowed = _BULK_FIELDS[request.action]
    if request.value not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid value for {request.action}: {request.value}",
        )

    result = await db.execute(
        update(Profile)
        .where(Profile.id.in_(request.user_ids))
        .values({field: request.value})
        .returning(Profile.id)
    )
    updated = len(result.fetchall())
    logger.info(f"Admin {admin.id} bulk-set {field}={request.value} on {updated} users")
    return BulkActionResult(updated=updated)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_user(user_id: UUID, db: DbSession, admin: AdminUser) -> ProfileResponse:
    return ProfileResponse.model_validate(await _get_profile_or_404(db, user_id))


@router.patch("/{user_id}", response_model=ProfileResponse)
async def update_user(
    user_id: UUID,
    update_request: AdminProfileUpdate,
    db: DbSession,
    admin: AdminUser,
) -> ProfileResponse:
    profile = await _get_profile_or_404(db, user_id)
    update_data = update_request.model_dump(exclude_unset=True)

    station_id = update_data.get("assigned_station_id")
    if station_id is not None:
        station = await db.execute(select(PollingStation.id).where(PollingStation.id == station_id))
        if station.scalar_one_or_none() is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Polling station not found",
            )

    _apply_profile_update(profile, update_data)
    await db.flush()
    return ProfileResponse.model_validate(profile)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: UUID, db: DbSession, admin: AdminUser) -> None:
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )
    profile = await _get_profile_or_404(db, user_id)
    await db.delete(profile)
    logger.info(f"Admin {admin.id} deleted user {user_id}")


@router.post("/{user_id}/unique-id", response_model=UniqueIdResponse)
async def assign_unique_id(
    user_id: UUID,
    request: UniqueIdRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> UniqueIdResponse:
    """Assign the 6-digit participant id (owner or admin)."""
    if user_id != current_user.id and current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    try:
        date_of_birth = parse_date_of_birth(request.date_of_birth)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    profile = current_user if user_id == current_user.id else await _get_profile_or_404(db, user_id)
    try:
        unique_user_id = await assign_unique_user_id(db, profile, date_of_birth)
    except UniqueIdError as e:
        logger.error(f"Unique id assignment failed for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate a unique ID. Please try again.",
        ) from e

    await db.flush()
    return UniqueIdResponse(unique_user_id=unique_user_id, date_of_birth=date_of_birth)
