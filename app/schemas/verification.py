"""Verification schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from app.schemas.common import BaseSchema


class DocumentResponse(BaseSchema):
    id: UUID
    observer_id: UUID
    observer_name: str | None = None
    observer_email: str | None = None
    observer_status: str | None = None
    document_type: str
    storage_key: str
    verification_notes: str | None = None
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    created_at: datetime


class DocumentReview(BaseModel):
    approved: bool
    notes: str | None = None


class IdentityStart(BaseModel):
    verification_method: str = "document"
    document_type: str | None = None


class IdentitySessionResponse(BaseSchema):
    session_id: str
    session_url: str | None = None
    status: str
    verification_method: str
    confidence_score: float | None = None
    error_message: str | None = None
    expires_at: datetime | None = None
    verified_at: datetime | None = None
