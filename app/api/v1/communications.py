"""Campaign (communications) endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from app.api.deps import AdminUser, DbSession
from app.models.communication import Communication, CommunicationStatus
from app.schemas.communication import (
    CommunicationAnalytics,
    CommunicationCreate,
    CommunicationDetail,
    CommunicationResponse,
)
from app.services.campaigns import MESSAGE_TEMPLATES

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/templates")
async def list_templates(admin: AdminUser) -> dict[str, list[str]]:
    return MESSAGE_TEMPLATES


@router.post("", response_model=CommunicationResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_campaign(
    request: CommunicationCreate,
    db: DbSession,
    admin: AdminUser,
) -> CommunicationResponse:
    """Create a campaign and queue it for dispatch."""
    from app.workers.communications import dispatch_campaign

    communication = Communication(
        campaign_name=request.campaign_name,
        message_content=request.message_content,
        communication_type=request.communication_type,
        target_audience=request.target_audience,
        target_filter=request.target_filter.model_dump(exclude_none=True) if request.target_filter else None,
        status=CommunicationStatus.PENDING.value,
        sent_by=admin.id,
        scheduled_at=request.scheduled_at,
    )
    db.add(communication)
    await db.flush()
    await db.refresh(communication)
    # The worker reads the row, so it must be visible before the task runs
    await db.commit()

    if request.scheduled_at is not None:
        dispatch_campaign.apply_async(args=[str(communication.id)], eta=request.scheduled_at)
    else:
        dispatch_campaign.delay(str(communication.id))
    logger.info(f"Queued campaign {communication.id} ({communication.communication_type})")
    return CommunicationResponse.model_validate(communication)


@router.get("", response_model=list[CommunicationResponse])
async def list_campaigns(
    db: DbSession,
    admin: AdminUser,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[CommunicationResponse]:
    result = await db.execute(
        select(Communication).order_by(Communication.created_at.desc()).limit(limit).offset(offset)
    )
    return [CommunicationResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/analytics", response_model=CommunicationAnalytics)
async def campaign_analytics(db: DbSession, admin: AdminUser) -> CommunicationAnalytics:
    by_channel_rows = await db.execute(
        select(Communication.communication_type, func.count(Communication.id)).group_by(
            Communication.communication_type
        )
    )
    by_status_rows = await db.execute(
        select(Communication.status, func.count(Communication.id)).group_by(Communication.status)
    )
    totals = await db.execute(
        select(
            func.count(Communication.id),
            func.coalesce(func.sum(Communication.sent_count), 0),
            func.coalesce(func.sum(Communication.failed_count), 0),
        )
    )
    total_campaigns, messages_sent, messages_failed = totals.one()
    attempted = messages_sent + messages_failed

    return CommunicationAnalytics(
        total_campaigns=total_campaigns,
        by_channel={channel: count for channel, count in by_channel_rows.all()},
        by_status={state: count for state, count in by_status_rows.all()},
        messages_sent=messages_sent,
        messages_failed=messages_failed,
        delivery_rate=round(messages_sent / attempted * 100, 1) if attempted else 0.0,
    )


@router.get("/{communication_id}", response_model=CommunicationDetail)
async def get_campaign(communication_id: UUID, db: DbSession, admin: AdminUser) -> CommunicationDetail:
    result = await db.execute(
        select(Communication)
        .options(selectinload(Communication.logs))
        .where(Communication.id == communication_id)
    )
    communication = result.scalar_one_or_none()
    if communication is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Campaign not found",
        )
    return CommunicationDetail.model_validate(communication)
