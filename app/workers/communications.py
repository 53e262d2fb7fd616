"""Campaign dispatch task."""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select

from app.core.celery import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.workers.communications.dispatch_campaign")
def dispatch_campaign(communication_id: str) -> dict:
    """
    Send a campaign to every recipient in its audience.

    One CommunicationLog row is written per attempt. A failing recipient is
    recorded on its log row and never stops the rest of the campaign.

    Returns:
        dict with send statistics.
    """
    from app.core.database import get_sync_session
    from app.models.communication import Communication, CommunicationLog, CommunicationStatus
    from app.services.campaigns import recipient_address, recipients_query
    from app.services.messaging import MessagingError, get_sender

    with get_sync_session() as db:
        communication = db.execute(
            select(Communication).where(Communication.id == uuid.UUID(communication_id))
        ).scalar_one_or_none()
        if communication is None:
            logger.error(f"Campaign {communication_id} not found")
            return {"status": "not_found", "communication_id": communication_id}
        if communication.status != CommunicationStatus.PENDING.value:
            logger.warning(f"Campaign {communication_id} already {communication.status}, skipping")
            return {"status": "skipped", "communication_id": communication_id}

        communication.status = CommunicationStatus.SENDING.value
        db.commit()

        recipients = db.execute(
            recipients_query(communication.target_audience, communication.target_filter)
        ).scalars().all()
        logger.info(f"Dispatching campaign {communication_id} to {len(recipients)} recipients")

        sender = None
        sender_error: str | None = None
        try:
            sender = get_sender(communication.communication_type)
        except MessagingError as e:
            sender_error = e.message

        sent = failed = 0
        for recipient in recipients:
            address = recipient_address(recipient, communication.communication_type)
            log = CommunicationLog(
                communication_id=communication.id,
                recipient_id=recipient.id,
                recipient_address=address,
                message_content=communication.message_content,
            )
            if address is None:
                log.status = CommunicationStatus.FAILED.value
                log.error_message = f"No {communication.communication_type} address on profile"
            elif sender is None:
                log.status = CommunicationStatus.FAILED.value
                log.error_message = sender_error
            else:
                try:
                    log.external_id = sender.send(
                        address,
                        communication.message_content,
                        subject=communication.campaign_name,
                    )
                    log.status = CommunicationStatus.SENT.value
                    log.sent_at = datetime.now(UTC)
                except MessagingError as e:
                    log.status = CommunicationStatus.FAILED.value
                    log.error_message = e.message

            if log.status == CommunicationStatus.SENT.value:
                sent += 1
            else:
                failed += 1
            db.add(log)

        communication.sent_count = sent
        communication.failed_count = failed
        communication.status = (
            CommunicationStatus.SENT.value if sent > 0 else CommunicationStatus.FAILED.value
        )
        communication.sent_at = datetime.now(UTC)
        db.commit()

    logger.info(f"Campaign {communication_id} finished: {sent} sent, {failed} failed")
    return {
        "status": "completed",
        "communication_id": communication_id,
        "sent_count": sent,
        "failed_count": failed,
    }
