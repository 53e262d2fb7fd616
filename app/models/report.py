"""Observation report model."""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, enum_column

if TYPE_CHECKING:
    from app.models.profile import Profile
    from app.models.station import PollingStation


class ReportStatus(str, enum.Enum):
    """Review status of an observation report."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    FLAGGED = "flagged"


class ObservationReport(BaseModel):
    """A field observation submitted by an observer."""

    __tablename__ = "observation_reports"

    observer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    station_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("polling_stations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    report_text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = enum_column(ReportStatus, ReportStatus.SUBMITTED, index=True)
    location_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attachments: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Relationships
    observer: Mapped["Profile"] = relationship(
        "Profile",
        back_populates="reports",
    )
    station: Mapped["PollingStation | None"] = relationship(
        "PollingStation",
        back_populates="reports",
    )

    def __repr__(self) -> str:
        return f"<ObservationReport {self.id} {self.status}>"
