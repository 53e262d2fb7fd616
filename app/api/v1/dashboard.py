"""Admin dashboard endpoints."""

from fastapi import APIRouter
from sqlalchemy import func, select

from app.api.deps import AdminUser, DbSession
from app.models.profile import Profile, UserRole, VerificationStatus
from app.models.report import ObservationReport
from app.schemas.dashboard import ActivityItem, DashboardStats

router = APIRouter()

RECENT_ITEMS = 5


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(db: DbSession, admin: AdminUser) -> DashboardStats:
    """Observer counts by review status plus total reports."""
    rows = await db.execute(
        select(Profile.verification_status, func.count(Profile.id))
        .where(Profile.role == UserRole.OBSERVER.value)
        .group_by(Profile.verification_status)
    )
    by_status = {state: count for state, count in rows.all()}
    total_reports = (await db.execute(select(func.count(ObservationReport.id)))).scalar() or 0

    return DashboardStats(
        total_observers=sum(by_status.values()),
        verified_observers=by_status.get(VerificationStatus.VERIFIED.value, 0),
        pending_verification=by_status.get(VerificationStatus.PENDING.value, 0),
        flagged_observers=by_status.get(VerificationStatus.REJECTED.value, 0),
        total_reports=total_reports,
    )


@router.get("/activity", response_model=list[ActivityItem])
async def recent_activity(db: DbSession, admin: AdminUser) -> list[ActivityItem]:
    """Latest reports and sign-ups, newest first."""
    reports = await db.execute(
        select(ObservationReport).order_by(ObservationReport.created_at.desc()).limit(RECENT_ITEMS)
    )
    profiles = await db.execute(select(Profile).order_by(Profile.created_at.desc()).limit(RECENT_ITEMS))

    items = [
        ActivityItem(
            kind="report",
            id=str(r.id),
            title=r.report_text[:80],
            status=r.status,
            timestamp=r.created_at,
        )
        for r in reports.scalars().all()
    ]
    items.extend(
        ActivityItem(
            kind="profile",
            id=str(p.id),
            title=f"{p.name} joined as {p.role}",
            status=p.verification_status,
            timestamp=p.created_at,
        )
        for p in profiles.scalars().all()
    )
    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items
