"""Chat socket frames.

Every frame is a JSON object tagged by ``type``. Message payloads keep the
camelCase field names browser clients already speak.
"""

import json
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.models.chat import ChatMessage, MessageStatus, MessageType

# Forward-only ordering of delivery states. FAILED is a client-side terminal
# state and is never accepted from the wire.
STATUS_RANK: dict[str, int] = {
    MessageStatus.SENDING.value: 0,
    MessageStatus.SENT.value: 1,
    MessageStatus.DELIVERED.value: 2,
    MessageStatus.READ.value: 3,
}

RECEIPT_STATUSES = (MessageStatus.DELIVERED.value, MessageStatus.READ.value)


class FrameError(Exception):
    """A frame could not be parsed or is not acceptable."""

    def __init__(self, code: str, detail: str):
        super().__init__(detail)
        self.code = code
        self.detail = detail


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MessagePayload(_Frame):
    """A chat message as carried on the wire."""

    id: UUID
    room: str = Field(min_length=1, max_length=255)
    sender_id: UUID | None = Field(default=None, alias="senderId")
    sender_name: str | None = Field(default=None, alias="senderName")
    sender_role: str | None = Field(default=None, alias="senderRole")
    receiver_id: UUID | None = Field(default=None, alias="receiverId")
    receiver_name: str | None = Field(default=None, alias="receiverName")
    content: str = ""
    type: Literal["text", "file"] = MessageType.TEXT.value
    file_url: str | None = Field(default=None, alias="fileUrl")
    file_name: str | None = Field(default=None, alias="fileName")
    timestamp: int
    status: Literal["sending", "sent", "delivered", "read", "failed"] = MessageStatus.SENDING.value
    edited: bool = False
    deleted: bool = False

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AuthFrame(_Frame):
    type: Literal["auth"]
    token: str


class JoinFrame(_Frame):
    type: Literal["join"]
    room: str = Field(min_length=1, max_length=255)


class LeaveFrame(_Frame):
    type: Literal["leave"]
    room: str = Field(min_length=1, max_length=255)


class MessageFrame(_Frame):
    type: Literal["message"]
    message: MessagePayload


class EditFrame(_Frame):
    type: Literal["edit"]
    msg_id: UUID = Field(alias="msgId")
    new_content: str = Field(alias="newContent")


class DeleteFrame(_Frame):
    type: Literal["delete"]
    msg_id: UUID = Field(alias="msgId")


class StatusFrame(_Frame):
    type: Literal["status"]
    msg_id: UUID = Field(alias="msgId")
    status: Literal["delivered", "read"]


class PingFrame(_Frame):
    type: Literal["ping"]


ClientFrame = Annotated[
    AuthFrame | JoinFrame | LeaveFrame | MessageFrame | EditFrame | DeleteFrame | StatusFrame | PingFrame,
    Field(discriminator="type"),
]

_client_frame_adapter: TypeAdapter = TypeAdapter(ClientFrame)

CLIENT_FRAME_TYPES = ("auth", "join", "leave", "message", "edit", "delete", "status", "ping")


def parse_frame(raw: str | bytes | dict) -> Any:
    """Validate one inbound frame.

    Raises:
        FrameError: malformed JSON, unknown type, or missing/invalid fields.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FrameError("bad_json", f"Frame is not valid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise FrameError("bad_frame", "Frame must be a JSON object")

    frame_type = data.get("type")
    if frame_type not in CLIENT_FRAME_TYPES:
        raise FrameError("unknown_type", f"Unknown frame type: {frame_type!r}")

    try:
        return _client_frame_adapter.validate_python(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "frame" for err in e.errors())
        raise FrameError("invalid_frame", f"Invalid {frame_type} frame: {fields}") from e


def status_advances(current: str, new: str) -> bool:
    """True when ``new`` is strictly later than ``current`` in delivery order."""
    if new not in STATUS_RANK:
        return False
    return STATUS_RANK[new] > STATUS_RANK.get(current, -1)


# Server -> client frame builders


def message_frame(payload: dict[str, Any]) -> dict[str, Any]:
    return {"type": "message", "message": payload}


def status_frame(msg_id: UUID | str, status: str) -> dict[str, Any]:
    return {"type": "status", "msgId": str(msg_id), "status": status}


def online_frame(room: str, users: dict[str, str]) -> dict[str, Any]:
    return {"type": "online", "room": room, "users": users}


def edit_frame(msg_id: UUID | str, new_content: str) -> dict[str, Any]:
    return {"type": "edit", "msgId": str(msg_id), "newContent": new_content}


def delete_frame(msg_id: UUID | str) -> dict[str, Any]:
    return {"type": "delete", "msgId": str(msg_id)}


def error_frame(code: str, detail: str) -> dict[str, Any]:
    return {"type": "error", "code": code, "detail": detail}


def pong_frame() -> dict[str, Any]:
    return {"type": "pong"}


def message_to_payload(message: ChatMessage, sender_role: str | None = None) -> dict[str, Any]:
    """Serialize a stored message to its wire payload.

    ``senderRole`` lets clients run the delete rule on other people's messages
    before asking the server.
    """
    sender_role = getattr(sender_role, "value", sender_role)
    return {
        "id": str(message.client_id),
        "room": message.room,
        "senderId": str(message.sender_id),
        "senderName": message.sender_name,
        "senderRole": sender_role,
        "receiverId": str(message.receiver_id) if message.receiver_id else None,
        "receiverName": message.receiver_name,
        "content": "" if message.deleted else message.content,
        "type": message.type,
        "fileUrl": message.file_url,
        "fileName": message.file_name,
        "timestamp": message.sent_at,
        "status": message.status,
        "edited": message.edited,
        "deleted": message.deleted,
    }
