"""Polling station model."""

from typing import TYPE_CHECKING

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.profile import Profile
    from app.models.report import ObservationReport


class PollingStation(BaseModel):
    """A polling station observers are deployed to."""

    __tablename__ = "polling_stations"

    station_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    station_name: Mapped[str] = mapped_column(String(255), nullable=False)
    constituency: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    parish: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    # {"lat": float, "lng": float}
    coordinates: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Relationships
    observers: Mapped[list["Profile"]] = relationship(
        "Profile",
        back_populates="assigned_station",
    )
    reports: Mapped[list["ObservationReport"]] = relationship(
        "ObservationReport",
        back_populates="station",
    )

    def __repr__(self) -> str:
        return f"<PollingStation {self.station_code}>"
