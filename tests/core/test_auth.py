from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from jose import jwt

from src.core.auth.dependencies import get_current_principal
from src.core.auth.jwt import create_access_token, decode_token
from src.core.auth.models import Principal, UserRole
from src.core.config import settings
from src.core.exceptions import AuthenticationError


def _encode(payload: dict) -> str:
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class TestTokens:
    """Tests for access token verification."""

    def test_round_trip_claims(self):
        token = create_access_token(42, UserRole.VENDOR.value)
        payload = decode_token(token)
        assert payload["sub"] == "42"
        assert payload["role"] == "vendor"

    def test_wrong_token_type(self):
        token = _encode(
            {
                "sub": "1",
                "role": "consumer",
                "type": "refresh",
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            }
        )
        with pytest.raises(AuthenticationError):
            decode_token(token, token_type="access")

    def test_expired_token(self):
        token = _encode(
            {
                "sub": "1",
                "role": "consumer",
                "type": "access",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            }
        )
        with pytest.raises(AuthenticationError):
            decode_token(token)

    def test_garbage_token(self):
        with pytest.raises(AuthenticationError):
            decode_token("not-a-jwt")


class TestCurrentPrincipal:
    """Tests for get_current_principal dependency."""

    async def test_principal_from_bearer_token(self):
        token = create_access_token(7, UserRole.CHARITABLE_ORGANISATION.value)
        principal = await get_current_principal(authorization=f"Bearer {token}")
        assert principal == Principal(id=7, role=UserRole.CHARITABLE_ORGANISATION)
        assert principal.has_role(UserRole.CHARITABLE_ORGANISATION, UserRole.ADMIN)
        assert not principal.is_admin

    async def test_missing_header(self):
        with pytest.raises(AuthenticationError):
            await get_current_principal(authorization=None)

    async def test_not_bearer(self):
        with pytest.raises(AuthenticationError):
            await get_current_principal(authorization="Basic abc")

    async def test_unknown_role(self):
        token = _encode(
            {
                "sub": "7",
                "role": "wizard",
                "type": "access",
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            }
        )
        with pytest.raises(AuthenticationError):
            await get_current_principal(authorization=f"Bearer {token}")


class TestAuthAPI:
    """Auth failures through the HTTP surface."""

    async def test_missing_token_is_401(self, client: AsyncClient):
        response = await client.get("/api/v1/listings")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "AUTHENTICATION_ERROR"

    async def test_wrong_role_is_403(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/vendors/me/qr-code",
            headers=auth_headers(1, UserRole.CONSUMER),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "AUTHORIZATION_ERROR"

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
