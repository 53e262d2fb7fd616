"""Polling station endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select, update

from app.api.deps import AdminUser, CurrentUser, DbSession
from app.models.profile import Profile
from app.models.station import PollingStation
from app.schemas.station import (
    StationCreate,
    StationObservers,
    StationObserversResult,
    StationResponse,
    StationUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_station_or_404(db: DbSession, station_id: UUID) -> PollingStation:
    result = await db.execute(select(PollingStation).where(PollingStation.id == station_id))
    station = result.scalar_one_or_none()
    if station is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Polling station not found",
        )
    return station


@router.get("", response_model=list[StationResponse])
async def list_stations(
    db: DbSession,
    user: CurrentUser,
    parish: str | None = None,
    constituency: str | None = None,
) -> list[StationResponse]:
    query = select(PollingStation)
    if parish:
        query = query.where(PollingStation.parish == parish)
    if constituency:
        query = query.where(PollingStation.constituency == constituency)
    result = await db.execute(query.order_by(PollingStation.station_code))
    return [StationResponse.model_validate(s) for s in result.scalars().all()]


@router.post("", response_model=StationResponse, status_code=status.HTTP_201_CREATED)
async def create_station(request: StationCreate, db: DbSession, admin: AdminUser) -> StationResponse:
    existing = await db.execute(
        select(PollingStation.id).where(PollingStation.station_code == request.station_code)
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Station code {request.station_code} already exists",
        )

    station = PollingStation(**request.model_dump())
    db.add(station)
    await db.flush()
    await db.refresh(station)
    return StationResponse.model_validate(station)


@router.get("/{station_id}", response_model=StationResponse)
async def get_station(station_id: UUID, db: DbSession, user: CurrentUser) -> StationResponse:
    return StationResponse.model_validate(await _get_station_or_404(db, station_id))


@router.patch("/{station_id}", response_model=StationResponse)
async def update_station(
    station_id: UUID,
    request: StationUpdate,
    db: DbSession,
    admin: AdminUser,
) -> StationResponse:
    station = await _get_station_or_404(db, station_id)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(station, field, value)
    await db.flush()
    return StationResponse.model_validate(station)


@router.delete("/{station_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_station(station_id: UUID, db: DbSession, admin: AdminUser) -> None:
    station = await _get_station_or_404(db, station_id)
    await db.delete(station)
    logger.info(f"Admin {admin.id} deleted station {station.station_code}")


@router.put("/{station_id}/observers", response_model=StationObserversResult)
async def set_station_observers(
    station_id: UUID,
    request: StationObservers,
    db: DbSession,
    admin: AdminUser,
) -> StationObserversResult:
    """Replace the station's observer list."""
    await _get_station_or_404(db, station_id)
    wanted = set(request.observer_ids)

    unassign = update(Profile).where(Profile.assigned_station_id == station_id)
    if wanted:
        unassign = unassign.where(Profile.id.not_in(wanted))
    unassigned = await db.execute(unassign.values(assigned_station_id=None).returning(Profile.id))

    assigned_count = 0
    if wanted:
        assigned = await db.execute(
            update(Profile)
            .where(Profile.id.in_(wanted))
            .values(assigned_station_id=station_id)
            .returning(Profile.id)
        )
        assigned_count = len(assigned.fetchall())

    return StationObserversResult(assigned=assigned_count, unassigned=len(unassigned.fetchall()))
