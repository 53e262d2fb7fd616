"""Profile schemas."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.models.profile import UserRole, VerificationStatus
from app.schemas.common import BaseSchema

RoleName = Literal["admin", "parish_coordinator", "roving_observer", "observer"]
StatusName = Literal["pending", "verified", "rejected"]


class ProfileResponse(BaseSchema):
    """Profile as returned to its owner and to admins."""

    id: UUID
    email: EmailStr
    name: str
    role: str
    verification_status: str
    phone_number: str | None = None
    parish: str | None = None
    deployment_parish: str | None = None
    address: str | None = None
    profile_image: str | None = None
    assigned_station_id: UUID | None = None
    trn: str | None = None
    bank_name: str | None = None
    date_of_birth: date | None = None
    unique_user_id: str | None = None
    identity_status: str | None = None
    last_login: datetime | None = None
    created_at: datetime


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone_number: str | None = None
    parish: str | None = None
    deployment_parish: str | None = None
    address: str | None = None
    profile_image: str | None = None
    trn: str | None = None
    bank_name: str | None = None
    bank_account: str | None = None
    bank_routing: str | None = None


class AdminProfileUpdate(ProfileUpdate):
    role: RoleName | None = None
    verification_status: StatusName | None = None
    assigned_station_id: UUID | None = None


class ProfileCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    role: RoleName = UserRole.OBSERVER.value
    verification_status: StatusName = VerificationStatus.PENDING.value
    phone_number: str | None = None
    parish: str | None = None


class BulkAction(BaseModel):
    """Apply one change to many users."""

    action: str
    user_ids: list[UUID] = Field(min_length=1)
    value: str


class BulkActionResult(BaseModel):
    updated: int


class UniqueIdRequest(BaseModel):
    date_of_birth: str


class UniqueIdResponse(BaseModel):
    unique_user_id: str
    date_of_birth: date
