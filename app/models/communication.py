"""Campaign (communication) models."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, BaseModelNoUpdate, enum_column

if TYPE_CHECKING:
    from app.models.profile import Profile


class CommunicationType(str, enum.Enum):
    """Broadcast channel."""

    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class CommunicationStatus(str, enum.Enum):
    """Campaign lifecycle."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class TargetAudience(str, enum.Enum):
    """Observer audience selector."""

    ALL = "all"
    VERIFIED = "verified"
    PENDING = "pending"


class Communication(BaseModel):
    """A broadcast campaign sent to a filtered observer audience."""

    __tablename__ = "communications"

    campaign_name: Mapped[str] = mapped_column(String(255), nullable=False)
    message_content: Mapped[str] = mapped_column(Text, nullable=False)
    communication_type: Mapped[str] = enum_column(CommunicationType, CommunicationType.SMS)
    target_audience: Mapped[str] = enum_column(TargetAudience, TargetAudience.ALL)
    # Optional narrowing: {"parish": str, "role": str}
    target_filter: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = enum_column(
        CommunicationStatus, CommunicationStatus.PENDING, index=True
    )
    sent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivered_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    sender: Mapped["Profile | None"] = relationship("Profile")
    logs: Mapped[list["CommunicationLog"]] = relationship(
        "CommunicationLog",
        back_populates="communication",
        cascade="all, delete-orphan",
        order_by="CommunicationLog.created_at",
    )

    def __repr__(self) -> str:
        return f"<Communication {self.campaign_name} {self.status}>"


class CommunicationLog(BaseModelNoUpdate):
    """One delivery attempt to one recipient."""

    __tablename__ = "communication_logs"

    communication_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("communications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    recipient_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message_content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = enum_column(CommunicationStatus, CommunicationStatus.PENDING)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    communication: Mapped["Communication"] = relationship(
        "Communication",
        back_populates="logs",
    )

    def __repr__(self) -> str:
        return f"<CommunicationLog {self.communication_id} -> {self.recipient_address}>"
