"""Admin dashboard schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_observers: int
    verified_observers: int
    pending_verification: int
    flagged_observers: int
    total_reports: int


class ActivityItem(BaseModel):
    kind: Literal["report", "profile"]
    id: str
    title: str
    status: str
    timestamp: datetime
