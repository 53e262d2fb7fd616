"""API v1 module."""

from fastapi import APIRouter

from app.api.v1 import (
    auth,
    chat,
    communications,
    dashboard,
    health,
    notifications,
    reports,
    stations,
    users,
    verifications,
    webhooks,
)

router = APIRouter()

router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(stations.router, prefix="/stations", tags=["stations"])
router.include_router(reports.router, prefix="/reports", tags=["reports"])
router.include_router(communications.router, prefix="/communications", tags=["communications"])
router.include_router(verifications.router, prefix="/verifications", tags=["verifications"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
