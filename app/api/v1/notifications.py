"""In-app notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select, update

from app.api.deps import CurrentUser, DbSession
from app.models.notification import Notification
from app.schemas.common import SuccessResponse
from app.schemas.notification import NotificationList, NotificationResponse

router = APIRouter()


@router.get("", response_model=NotificationList)
async def list_notifications(
    db: DbSession,
    user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
) -> NotificationList:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    unread = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user.id,
            Notification.read.is_(False),
        )
    )
    return NotificationList(
        data=[NotificationResponse.model_validate(n) for n in result.scalars().all()],
        unread_count=unread.scalar() or 0,
    )


@router.post("/read-all", response_model=SuccessResponse)
async def mark_all_read(db: DbSession, user: CurrentUser) -> SuccessResponse:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.read.is_(False))
        .values(read=True)
        .returning(Notification.id)
    )
    return SuccessResponse(message=f"{len(result.fetchall())} notifications marked read")


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: UUID, db: DbSession, user: CurrentUser) -> NotificationResponse:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user.id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    notification.read = True
    await db.flush()
    return NotificationResponse.model_validate(notification)
