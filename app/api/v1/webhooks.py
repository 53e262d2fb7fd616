"""Inbound webhooks from external providers."""

import json
import logging

from fastapi import APIRouter, Header, HTTPException, Request, status
from sqlalchemy import select

from app.api.deps import DbSession
from app.models.profile import Profile
from app.models.verification import IdentityVerification
from app.services.identity_provider import apply_session_result, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/identity")
async def identity_webhook(
    request: Request,
    db: DbSession,
    x_didit_signature_256: str | None = Header(None),
) -> dict:
    """Apply a verification decision pushed by the identity provider."""
    body = await request.body()
    if not verify_signature(body, x_didit_signature_256):
        logger.warning("Rejected identity webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from e

    session_id = payload.get("session_id")
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing session_id",
        )

    result = await db.execute(
        select(IdentityVerification).where(IdentityVerification.session_id == session_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Verification session not found",
        )

    profile = (await db.execute(select(Profile).where(Profile.id == record.user_id))).scalar_one_or_none()
    changed = apply_session_result(record, profile, payload)
    logger.info(f"Identity session {session_id} -> {record.status} (changed={changed})")
    return {"success": True, "status": record.status}
