"""Verification models: reviewed documents and identity-provider sessions."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, enum_column

if TYPE_CHECKING:
    from app.models.profile import Profile


class DocumentType(str, enum.Enum):
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"
    NATIONAL_ID = "national_id"
    VOTERS_ID = "voters_id"
    BIRTH_CERTIFICATE = "birth_certificate"
    UTILITY_BILL = "utility_bill"
    BANK_STATEMENT = "bank_statement"


class IdentityStatus(str, enum.Enum):
    """Identity-provider session outcome."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class VerificationMethod(str, enum.Enum):
    DOCUMENT = "document"
    BIOMETRIC = "biometric"
    LIVENESS = "liveness"
    ADDRESS = "address"
    PHONE = "phone"
    EMAIL = "email"


class VerificationDocument(BaseModel):
    """An uploaded identity document awaiting admin review."""

    __tablename__ = "verification_documents"

    observer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type: Mapped[str] = mapped_column(String(32), nullable=False)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    observer: Mapped["Profile"] = relationship("Profile", foreign_keys=[observer_id])

    def __repr__(self) -> str:
        return f"<VerificationDocument {self.document_type} for {self.observer_id}>"


class IdentityVerification(BaseModel):
    """An identity check session with the external provider."""

    __tablename__ = "identity_verifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    session_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = enum_column(IdentityStatus, IdentityStatus.PENDING, index=True)
    verification_method: Mapped[str] = enum_column(
        VerificationMethod, VerificationMethod.DOCUMENT
    )
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    provider_response_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped["Profile"] = relationship("Profile")

    def __repr__(self) -> str:
        return f"<IdentityVerification {self.session_id} {self.status}>"
