"""Celery configuration and app."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from app.core.config import settings

celery_app = Celery(
    "observer_crm",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,

    # Result settings
    result_expires=3600,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Task routing
    task_routes={
        "app.workers.communications.*": {"queue": "communications"},
        "app.workers.notifications.*": {"queue": "notifications"},
    },

    task_default_queue="default",

    # Task acknowledgement
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    beat_schedule={
        "expire-identity-sessions": {
            "task": "app.workers.scheduled.expire_identity_sessions",
            "schedule": crontab(minute="*/15"),
            "options": {"queue": "default"},
        },
        "trim-chat-outboxes": {
            "task": "app.workers.scheduled.trim_chat_outboxes",
            "schedule": crontab(minute=5),
            "options": {"queue": "default"},
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    from app.core.log import configure_logging

    configure_logging()


# Explicitly import each worker module to register tasks with Celery.
import app.workers.communications  # noqa: F401, E402
import app.workers.notifications  # noqa: F401, E402
import app.workers.scheduled  # noqa: F401, E402
