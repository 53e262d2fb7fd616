"""Campaign schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import BaseSchema


class TargetFilter(BaseModel):
    parish: str | None = None
    role: str | None = None


class CommunicationCreate(BaseModel):
    campaign_name: str = Field(min_length=1, max_length=255)
    message_content: str = Field(min_length=1)
    communication_type: Literal["sms", "whatsapp", "email"]
    target_audience: Literal["all", "verified", "pending"] = "all"
    target_filter: TargetFilter | None = None
    scheduled_at: datetime | None = None


class CommunicationLogResponse(BaseSchema):
    id: UUID
    recipient_id: UUID | None = None
    recipient_address: str | None = None
    status: str
    external_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None


class CommunicationResponse(BaseSchema):
    id: UUID
    campaign_name: str
    message_content: str
    communication_type: str
    target_audience: str
    target_filter: dict | None = None
    status: str
    sent_count: int
    delivered_count: int
    failed_count: int
    sent_by: UUID | None = None
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    created_at: datetime


class CommunicationDetail(CommunicationResponse):
    logs: list[CommunicationLogResponse] = []


class CommunicationAnalytics(BaseModel):
    total_campaigns: int
    by_channel: dict[str, int]
    by_status: dict[str, int]
    messages_sent: int
    messages_failed: int
    delivery_rate: float
