"""Chat REST schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import BaseSchema


class RoomList(BaseModel):
    rooms: list[str]


class ChatHistory(BaseModel):
    """Room history, oldest first; ``content`` stays encrypted."""

    room: str
    messages: list[dict]
    has_more: bool
    next_before: int | None = None
    next_before_id: UUID | None = None


class ChatUserResult(BaseSchema):
    id: UUID
    name: str
    email: str
    role: str
    room: str | None = Field(default=None, description="DM room id with the caller")


class UploadedFile(BaseModel):
    url: str
    name: str
