"""Profile (user) model."""

import enum
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, enum_column

if TYPE_CHECKING:
    from app.models.report import ObservationReport
    from app.models.station import PollingStation


class UserRole(str, enum.Enum):
    """Program roles, highest privilege first."""

    ADMIN = "admin"
    PARISH_COORDINATOR = "parish_coordinator"
    ROVING_OBSERVER = "roving_observer"
    OBSERVER = "observer"


class VerificationStatus(str, enum.Enum):
    """Document review status of a profile."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class Profile(BaseModel):
    """A program participant: admin, coordinator or field observer."""

    __tablename__ = "profiles"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[str] = enum_column(UserRole, UserRole.OBSERVER, index=True)
    verification_status: Mapped[str] = enum_column(
        VerificationStatus, VerificationStatus.PENDING, index=True
    )

    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    parish: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deployment_parish: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_station_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("polling_stations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Payroll fields; account numbers are encrypted at rest
    trn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bank_account_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_routing_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    unique_user_id: Mapped[str | None] = mapped_column(
        String(6),
        unique=True,
        nullable=True,
    )

    # Latest identity-provider outcome, mirrored from IdentityVerification
    identity_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    identity_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    identity_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    profile_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Relationships
    assigned_station: Mapped["PollingStation | None"] = relationship(
        "PollingStation",
        back_populates="observers",
        foreign_keys=[assigned_station_id],
    )
    reports: Mapped[list["ObservationReport"]] = relationship(
        "ObservationReport",
        back_populates="observer",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Profile {self.email} ({self.role})>"
