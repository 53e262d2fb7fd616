"""Notification schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from app.schemas.common import BaseSchema


class NotificationResponse(BaseSchema):
    id: UUID
    type: str
    title: str
    message: str
    data: dict | None = None
    read: bool
    created_at: datetime


class NotificationList(BaseModel):
    data: list[NotificationResponse]
    unread_count: int
