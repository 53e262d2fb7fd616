"""Observation report endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from app.api.deps import CurrentUser, DbSession, StaffUser
from app.models.profile import Profile, UserRole
from app.models.report import ObservationReport, ReportStatus
from app.models.station import PollingStation
from app.schemas.report import ReportCreate, ReportResponse, ReportStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

# Roles that see every report rather than only their own
_REVIEWER_ROLES = {UserRole.ADMIN.value, UserRole.PARISH_COORDINATOR.value}


def _to_response(report: ObservationReport) -> ReportResponse:
    response = ReportResponse.model_validate(report)
    response.observer_name = report.observer.name if report.observer else None
    response.station_code = report.station.station_code if report.station else None
    return response


def _visible_reports(user: Profile):
    query = select(ObservationReport).options(
        selectinload(ObservationReport.observer),
        selectinload(ObservationReport.station),
    )
    if user.role not in _REVIEWER_ROLES:
        query = query.where(ObservationReport.observer_id == user.id)
    return query


async def _get_visible_report_or_404(db: DbSession, user: Profile, report_id: UUID) -> ObservationReport:
    result = await db.execute(_visible_reports(user).where(ObservationReport.id == report_id))
    report = result.scalar_one_or_none()
    if report is None:
        # Same answer whether the report is missing or belongs to someone else
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Report not found",
        )
    return report


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(request: ReportCreate, db: DbSession, user: CurrentUser) -> ReportResponse:
    if request.station_id is not None:
        station = await db.execute(select(PollingStation.id).where(PollingStation.id == request.station_id))
        if station.scalar_one_or_none() is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Polling station not found",
            )

    report = ObservationReport(
        observer_id=user.id,
        station_id=request.station_id,
        report_text=request.report_text,
        status=ReportStatus.SUBMITTED.value,
        location_data=request.location_data,
        attachments=request.attachments,
    )
    db.add(report)
    await db.flush()
    logger.info(f"Report {report.id} submitted by {user.id}")
    return _to_response(await _get_visible_report_or_404(db, user, report.id))


@router.get("", response_model=list[ReportResponse])
async def list_reports(
    db: DbSession,
    user: CurrentUser,
    report_status: str | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=255),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[ReportResponse]:
    query = _visible_reports(user)
    if report_status:
        query = query.where(ObservationReport.status == report_status)
    if search:
        pattern = f"%{search.strip()}%"
        query = (
            query.join(Profile, ObservationReport.observer_id == Profile.id)
            .outerjoin(PollingStation, ObservationReport.station_id == PollingStation.id)
            .where(
                or_(
                    Profile.name.ilike(pattern),
                    ObservationReport.report_text.ilike(pattern),
                    PollingStation.station_code.ilike(pattern),
                )
            )
        )
    result = await db.execute(
        query.order_by(ObservationReport.created_at.desc()).limit(limit).offset(offset)
    )
    return [_to_response(r) for r in result.scalars().all()]


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(report_id: UUID, db: DbSession, user: CurrentUser) -> ReportResponse:
    return _to_response(await _get_visible_report_or_404(db, user, report_id))


@router.patch("/{report_id}/status", response_model=ReportResponse)
async def update_report_status(
    report_id: UUID,
    request: ReportStatusUpdate,
    db: DbSession,
    reviewer: StaffUser,
) -> ReportResponse:
    report = await _get_visible_report_or_404(db, reviewer, report_id)
    report.status = request.status
    await db.flush()
    logger.info(f"Report {report_id} marked {request.status} by {reviewer.id}")
    return _to_response(report)
