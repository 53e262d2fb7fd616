"""Polling station schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.common import BaseSchema


class StationCreate(BaseModel):
    station_code: str = Field(min_length=1, max_length=50)
    station_name: str = Field(min_length=1, max_length=255)
    constituency: str = Field(min_length=1, max_length=255)
    parish: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1)
    coordinates: dict | None = None


class StationUpdate(BaseModel):
    station_name: str | None = Field(default=None, min_length=1, max_length=255)
    constituency: str | None = Field(default=None, min_length=1, max_length=255)
    parish: str | None = Field(default=None, min_length=1, max_length=100)
    address: str | None = Field(default=None, min_length=1)
    coordinates: dict | None = None


class StationResponse(BaseSchema):
    id: UUID
    station_code: str
    station_name: str
    constituency: str
    parish: str
    address: str
    coordinates: dict | None = None
    created_at: datetime


class StationObservers(BaseModel):
    """Full list of observers assigned to a station."""

    observer_ids: list[UUID]


class StationObserversResult(BaseModel):
    assigned: int
    unassigned: int
