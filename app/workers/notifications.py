"""Notification tasks."""

import logging
import uuid

from app.core.celery import celery_app

logger = logging.getLogger(__name__)

CHAT_EVENT_TITLES = {
    "chat_message_sent": "Message sent",
    "chat_direct_message": "New direct message",
    "chat_file_uploaded": "File uploaded",
    "chat_message_edited": "Message edited",
    "chat_message_deleted": "Message deleted",
}


def describe_chat_event(event_type: str, data: dict) -> str:
    """Human-readable notification text for a chat event."""
    room = data.get("room", "chat")
    if event_type == "chat_direct_message":
        return f"Direct message from {data.get('senderName') or 'a user'}"
    if event_type == "chat_file_uploaded":
        return f"File uploaded in {room}: {data.get('fileName') or 'file'}"
    if event_type == "chat_message_edited":
        return f"Message edited in {room}"
    if event_type == "chat_message_deleted":
        return f"Message deleted in {room}"
    return f"Message sent in {room}"


@celery_app.task(name="app.workers.notifications.send_notification")
def send_notification(
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    data: dict | None = None,
) -> dict:
    """
    Store an in-app notification for a user.

    Args:
        user_id: UUID of the recipient profile
        notification_type: chat_direct_message, campaign_sent, etc.
        title: Notification title
        message: Notification body
        data: Extra payload (room, message id, ...)

    Returns:
        dict with notification status
    """
    from app.core.database import get_sync_session
    from app.models.notification import Notification

    logger.info(f"Storing {notification_type} notification for user {user_id}")

    with get_sync_session() as db:
        notification = Notification(
            user_id=uuid.UUID(user_id),
            type=notification_type,
            title=title,
            message=message,
            data=data,
        )
        db.add(notification)
        db.flush()
        notification_id = str(notification.id)

    return {
        "id": notification_id,
        "user_id": user_id,
        "notification_type": notification_type,
        "status": "stored",
    }


@celery_app.task(name="app.workers.notifications.notify_chat_event")
def notify_chat_event(event_type: str, user_id: str, data: dict | None = None) -> dict:
    """Record a chat event (sent, DM, upload, edit, delete) as a notification."""
    if event_type not in CHAT_EVENT_TITLES:
        logger.warning(f"Ignoring unknown chat event {event_type}")
        return {"status": "ignored", "notification_type": event_type}

    data = data or {}
    return send_notification(
        user_id=user_id,
        notification_type=event_type,
        title=CHAT_EVENT_TITLES[event_type],
        message=describe_chat_event(event_type, data),
        data=data,
    )
