"""Health check endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from app.api.deps import DbSession, RedisClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check(db: DbSession, redis: RedisClient) -> dict[str, str]:
    """Readiness check - verifies the database and Redis answer."""
    try:
        await db.execute(text("SELECT 1"))
        await redis.ping()
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dependencies unavailable",
        ) from e
    return {"status": "ready"}
