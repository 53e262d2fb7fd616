"""Tests for JWT handling, password hashing and the auth dependencies.

Expired or mismatched tokens must produce 401 so clients fall back to the
login screen; role-gated routes answer 403.
"""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.core.config import settings
from app.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    is_acceptable_password,
    issue_token_pair,
    verify_password,
    verify_token,
)
from app.models.profile import UserRole


def _db_returning(profile) -> AsyncMock:
    mock_db = AsyncMock()
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = profile
    mock_db.execute.return_value = mock_result
    return mock_db


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestTokens:
    def test_access_token_round_trip(self):
        user_id = str(uuid.uuid4())
        token = create_access_token(subject=user_id, role="observer")

        payload = verify_token(token)
        assert payload is not None
        assert payload["sub"] == user_id
        assert payload["type"] == "access"
        assert payload["role"] == "observer"

    def test_expired_token_returns_none(self):
        expired = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "exp": datetime.now(UTC) - timedelta(hours=1),
                "iat": datetime.now(UTC) - timedelta(hours=2),
                "type": "access",
            },
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert verify_token(expired) is None

    def test_tampered_token_returns_none(self):
        token = create_access_token(subject=str(uuid.uuid4()))
        parts = token.split(".")
        parts[1] = parts[1] + "tampered"
        assert verify_token(".".join(parts)) is None

    def test_expected_type_mismatch_returns_none(self):
        refresh = create_refresh_token(subject=str(uuid.uuid4()))
        assert verify_token(refresh, expected_type="access") is None
        assert verify_token(refresh, expected_type="refresh") is not None

    def test_token_pair_expiry_matches_settings(self):
        pair = issue_token_pair(str(uuid.uuid4()), role="admin")
        assert pair.expires_in == settings.jwt_access_token_expire_minutes * 60
        assert verify_token(pair.access_token)["type"] == "access"
        assert verify_token(pair.refresh_token)["type"] == "refresh"


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("observer2024")
        assert hashed != "observer2024"
        assert verify_password("observer2024", hashed)
        assert not verify_password("wrong-pass1", hashed)

    def test_empty_hash_never_verifies(self):
        assert verify_password("anything1", "") is False

    @pytest.mark.parametrize(
        "password,ok",
        [
            ("abcd1234", True),
            ("short1", False),
            ("lettersonly", False),
            ("12345678", False),
        ],
    )
    def test_password_policy(self, password, ok):
        assert is_acceptable_password(password) is ok


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_expired_token_raises_401(self):
        from app.api.deps import get_current_user

        token = create_access_token(subject=str(uuid.uuid4()), expires_delta=timedelta(seconds=-1))

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_bearer(token), db=_db_returning(None))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_refresh_token_rejected(self):
        from app.api.deps import get_current_user

        token = create_refresh_token(subject=str(uuid.uuid4()))

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_bearer(token), db=_db_returning(None))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token type"

    @pytest.mark.asyncio
    async def test_unknown_user_raises_401(self):
        from app.api.deps import get_current_user

        token = create_access_token(subject=str(uuid.uuid4()))

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_bearer(token), db=_db_returning(None))

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "User not found"

    @pytest.mark.asyncio
    async def test_non_uuid_subject_raises_401(self):
        from app.api.deps import get_current_user

        mock_db = _db_returning(None)
        token = create_access_token(subject="not-a-uuid")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=_bearer(token), db=mock_db)

        assert exc_info.value.status_code == 401
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_token_returns_profile(self, profile_factory):
        from app.api.deps import get_current_user

        profile = profile_factory()
        token = create_access_token(subject=str(profile.id))

        user = await get_current_user(credentials=_bearer(token), db=_db_returning(profile))

        assert user is profile


class TestRequireRoles:
    @pytest.mark.asyncio
    async def test_allowed_role_passes(self, profile_factory):
        from app.api.deps import require_roles

        dependency = require_roles(UserRole.ADMIN, UserRole.PARISH_COORDINATOR)
        coordinator = profile_factory(UserRole.PARISH_COORDINATOR)

        assert await dependency(user=coordinator) is coordinator

    @pytest.mark.asyncio
    async def test_other_role_gets_403(self, profile_factory):
        from app.api.deps import require_roles

        dependency = require_roles(UserRole.ADMIN)

        with pytest.raises(HTTPException) as exc_info:
            await dependency(user=profile_factory(UserRole.ROVING_OBSERVER))

        assert exc_info.value.status_code == 403


class TestWebSocketAuth:
    @pytest.mark.asyncio
    async def test_bad_token_closes_with_policy_violation(self):
        from app.api.deps import get_ws_user

        websocket = AsyncMock()

        user = await get_ws_user(websocket, "garbage", _db_returning(None))

        assert user is None
        websocket.close.assert_awaited_once_with(code=1008)

    @pytest.mark.asyncio
    async def test_missing_token_closes(self):
        from app.api.deps import get_ws_user

        websocket = AsyncMock()

        assert await get_ws_user(websocket, None, _db_returning(None)) is None
        websocket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_valid_token_returns_profile(self, profile_factory):
        from app.api.deps import get_ws_user

        profile = profile_factory()
        websocket = AsyncMock()
        token = create_access_token(subject=str(profile.id))

        assert await get_ws_user(websocket, token, _db_returning(profile)) is profile
        websocket.close.assert_not_called()
