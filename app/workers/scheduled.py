"""Scheduled tasks for periodic maintenance."""

import logging
from datetime import UTC, datetime

from sqlalchemy import update

from app.core.celery import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.workers.scheduled.expire_identity_sessions")
def expire_identity_sessions() -> dict:
    """
    Mark identity sessions still pending past ``expires_at`` as expired.

    Runs every 15 minutes via Celery Beat.

    Returns:
        dict with cleanup statistics.
    """
    from app.core.database import get_sync_session
    from app.models.verification import IdentityStatus, IdentityVerification

    now = datetime.now(UTC)
    try:
        with get_sync_session() as db:
            result = db.execute(
                update(IdentityVerification)
                .where(
                    IdentityVerification.status == IdentityStatus.PENDING.value,
                    IdentityVerification.expires_at.is_not(None),
                    IdentityVerification.expires_at < now,
                )
                .values(
                    status=IdentityStatus.EXPIRED.value,
                    error_message="Session expired before completion",
                )
                .returning(IdentityVerification.session_id)
            )
            expired = [row[0] for row in result.fetchall()]
            db.commit()
    except Exception as e:
        logger.error(f"Failed to expire identity sessions: {e}")
        raise

    if expired:
        logger.info(f"Expired {len(expired)} identity sessions")

    return {
        "status": "completed",
        "expired_count": len(expired),
        "expired_sessions": expired,
        "timestamp": now.isoformat(),
    }


@celery_app.task(name="app.workers.scheduled.trim_chat_outboxes")
def trim_chat_outboxes() -> dict:
    """Cap every offline outbox at its newest frames. Runs hourly."""
    from app.core.config import settings
    from app.core.redis import trim_outboxes

    try:
        inspected = trim_outboxes(settings.chat_outbox_max_frames)
    except Exception as e:
        logger.error(f"Failed to trim chat outboxes: {e}")
        raise

    return {
        "status": "completed",
        "outboxes": inspected,
        "max_frames": settings.chat_outbox_max_frames,
    }
