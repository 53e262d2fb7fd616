"""Observation report schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import BaseSchema


class ReportCreate(BaseModel):
    report_text: str = Field(min_length=1)
    station_id: UUID | None = None
    location_data: dict | None = None
    attachments: list[str] | None = None


class ReportStatusUpdate(BaseModel):
    status: Literal["submitted", "under_review", "resolved", "flagged"]


class ReportResponse(BaseSchema):
    id: UUID
    observer_id: UUID
    observer_name: str | None = None
    station_id: UUID | None = None
    station_code: str | None = None
    report_text: str
    status: str
    location_data: dict | None = None
    attachments: list[str] | None = None
    created_at: datetime
    updated_at: datetime
