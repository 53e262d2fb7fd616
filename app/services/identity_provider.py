"""Client for the Didit identity verification API."""

import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from app.core.config import settings
from app.core.encryption import encrypt_token
from app.models.verification import IdentityStatus

logger = logging.getLogger(__name__)

# Provider session status -> stored IdentityStatus
_STATUS_MAP = {
    "success": IdentityStatus.VERIFIED.value,
    "approved": IdentityStatus.VERIFIED.value,
    "verified": IdentityStatus.VERIFIED.value,
    "failed": IdentityStatus.FAILED.value,
    "declined": IdentityStatus.FAILED.value,
    "expired": IdentityStatus.EXPIRED.value,
    "cancelled": IdentityStatus.CANCELLED.value,
    "canceled": IdentityStatus.CANCELLED.value,
}


class IdentityProviderError(Exception):
    """The provider could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def map_provider_status(status: str | None) -> str:
    """Stored status for a provider status; unknown values stay pending."""
    return _STATUS_MAP.get((status or "").strip().lower(), IdentityStatus.PENDING.value)


def verify_signature(body: bytes, signature: str | None) -> bool:
    """Check the ``x-didit-signature-256`` header against the webhook secret."""
    if not settings.didit_webhook_secret:
        logger.warning("Identity webhook secret not configured, skipping verification")
        return True

    if not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[7:]

    expected = hmac.new(
        settings.didit_webhook_secret.encode(),
        body,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def confidence_from(payload: dict[str, Any]) -> float | None:
    data = payload.get("verification_data") or {}
    score = data.get("confidence_score", data.get("overall_score"))
    try:
        return float(score) if score is not None else None
    except (TypeError, ValueError):
        return None


def apply_session_result(record: Any, profile: Any, payload: dict[str, Any]) -> bool:
    """Copy a provider result onto the session record and the user's profile.

    Returns True when the stored status changed.
    """
    new_status = map_provider_status(payload.get("status"))
    changed = new_status != record.status
    confidence = confidence_from(payload)
    now = datetime.now(UTC)

    record.status = new_status
    record.provider_response_encrypted = encrypt_token(json.dumps(payload, default=str))
    if confidence is not None:
        record.confidence_score = confidence
    if new_status == IdentityStatus.VERIFIED.value:
        record.verified_at = now
        record.error_message = None
    elif new_status == IdentityStatus.FAILED.value:
        record.error_message = (payload.get("error") or {}).get("message")

    if profile is not None and new_status != IdentityStatus.PENDING.value:
        profile.identity_status = new_status
        if confidence is not None:
            profile.identity_confidence = confidence
        if new_status == IdentityStatus.VERIFIED.value:
            profile.identity_verified_at = now
    return changed


class DiditClient:
    """Thin async wrapper over the provider's session endpoints."""

    def __init__(self, api_key: str | None = None, base_url: str | None = None, timeout: float | None = None):
        self.api_key = api_key or settings.didit_api_key
        self.base_url = (base_url or settings.didit_api_base).rstrip("/")
        self.timeout = timeout or settings.provider_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key, "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self.configured:
            raise IdentityProviderError("Identity provider is not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Identity provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise IdentityProviderError(
                f"Identity provider error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json()

    async def create_session(
        self,
        user_id: str,
        callback_url: str,
        email: str | None = None,
        name: str | None = None,
        verification_method: str = "document",
        document_type: str | None = None,
    ) -> dict[str, Any]:
        """Start a session; the response carries ``session_id`` and ``url``."""
        first, _, last = (name or "").partition(" ")
        payload = {
            "vendor_data": user_id,
            "callback": callback_url,
            "user_data": {"email": email, "first_name": first, "last_name": last},
            "metadata": {
                "user_id": user_id,
                "verification_method": verification_method,
                "document_type": document_type,
            },
        }
        data = await self._request("POST", "/session/", json=payload)
        if not data.get("session_id"):
            raise IdentityProviderError("Identity provider returned no session id")
        data.setdefault("url", data.get("verification_url"))
        logger.info(f"Created identity session {data['session_id']} for user {user_id}")
        return data

    async def get_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/session/{session_id}/decision/")


def get_identity_client() -> DiditClient:
    return DiditClient()
