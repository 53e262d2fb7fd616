"""Logging setup shared by the API process and Celery workers."""

import logging

from app.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; later calls only adjust the level.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if not any(getattr(h, "_observer_crm", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._observer_crm = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # SQL echo is switched by settings.database_echo on the engines
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
