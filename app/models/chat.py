"""Chat message model."""

import enum
import uuid

from sqlalchemy import BigInteger, Boolean, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, enum_column


class MessageType(str, enum.Enum):
    TEXT = "text"
    FILE = "file"


class MessageStatus(str, enum.Enum):
    """Delivery status; only ever moves forward (except to FAILED client-side)."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class ChatMessage(BaseModel):
    """A chat message in a room.

    ``content`` holds the ciphertext produced by ChatCipher; the server never
    needs the plaintext.
    """

    __tablename__ = "chat_messages"

    # Sender-generated id; unique so resends from a retry queue are idempotent
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        unique=True,
        nullable=False,
        index=True,
    )
    room: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receiver_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    receiver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = enum_column(MessageType, MessageType.TEXT)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = enum_column(MessageStatus, MessageStatus.SENT)
    edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Client clock, milliseconds since epoch; history is ordered by it
    sent_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ChatMessage {self.client_id} in {self.room}>"
