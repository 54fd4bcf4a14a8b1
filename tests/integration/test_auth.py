"""Integration tests for platform JWT authentication.

Validates:
  - /health is public (AllowAny, plain Django view, no DRF).
  - Protected DRF endpoints return 401 without a token.
  - Protected DRF endpoints return 401 with an invalid or expired token.
  - Protected DRF endpoints return 401 with a malformed Authorization header.
  - A valid token resolves to the acting principal on /api/v1/me.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

pytestmark = pytest.mark.integration


def _token(settings, **claims):
    payload = {
        "sub": str(uuid4()),
        "kind": "buyer",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SIGNING_KEY, algorithm=settings.JWT_ALGORITHM)


class TestPublicEndpoints:
    """Health check must remain accessible without credentials."""

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"


class TestProtectedEndpoints:
    """All DRF endpoints require a valid JWT by default (Fail Closed)."""

    def test_no_token_returns_401(self, api_client):
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_empty_bearer_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer ")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401
        assert "Bearer" in response.get("WWW-Authenticate", "")

    def test_expired_token_returns_401(self, api_client, settings):
        token = _token(settings, exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_wrong_signing_key_returns_401(self, api_client, settings):
        token = jwt.encode(
            {"sub": str(uuid4()), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "not-the-platform-key-but-long-enough-for-hs256",
            algorithm="HS256",
        )
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_unknown_actor_kind_returns_401(self, api_client, settings):
        token = _token(settings, kind="system")
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401


class TestAuthenticatedPrincipal:
    def test_valid_token_resolves_actor(self, api_client, settings):
        seller_id = uuid4()
        token = _token(settings, sub=str(seller_id), kind="seller")
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = api_client.get("/api/v1/me")

        assert response.status_code == 200
        assert response.json() == {"actorId": str(seller_id), "actorKind": "seller"}

    def test_kind_defaults_to_buyer(self, api_client, settings):
        token = jwt.encode(
            {"sub": str(uuid4()), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            settings.JWT_SIGNING_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = api_client.get("/api/v1/me")

        assert response.json()["actorKind"] == "buyer"

    def test_issuer_is_enforced_when_configured(self, api_client, settings):
        settings.JWT_ISSUER = "https://id.marketplace.test/"
        token = _token(settings, iss="https://elsewhere.test/")
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = api_client.get("/api/v1/me")

        assert response.status_code == 401
