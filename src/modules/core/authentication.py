"""Platform JWT authentication backend for Django REST Framework.

Tokens are issued by the platform's identity service (outside this
project) and carry the acting principal::

    {"sub": "<uuid>", "kind": "buyer" | "seller" | "admin", "iss": ..., "exp": ...}

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to the configured value (default HS256),
  never derived from the incoming token.
* Issuer is validated when ``JWT_ISSUER`` is configured.
"""

from __future__ import annotations

from uuid import UUID

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from modules.core.context import ActorKind, RequestContext

logger = structlog.get_logger(__name__)

_TOKEN_KINDS = {ActorKind.BUYER, ActorKind.SELLER, ActorKind.ADMIN}


class ActorUser:
    """Lightweight principal for requests authenticated via platform JWT.

    The identity service is the source of truth; there is no local Django
    ``User`` row. Views build a ``RequestContext`` from ``request.user``.
    """

    is_authenticated = True
    is_active = True

    def __init__(self, actor_id: UUID, actor_kind: ActorKind) -> None:
        self.actor_id = actor_id
        self.actor_kind = actor_kind

    @property
    def pk(self) -> UUID:
        """Identity used by DRF's per-user throttles."""
        return self.actor_id

    @property
    def context(self) -> RequestContext:
        return RequestContext(actor_id=self.actor_id, actor_kind=self.actor_kind)

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.actor_kind}:{self.actor_id}"


class PlatformJWTAuthentication(BaseAuthentication):
    """DRF authentication class that validates platform JWT Bearer tokens."""

    keyword = "Bearer"

    # ------------------------------------------------------------------
    # Public API (DRF contract)
    # ------------------------------------------------------------------

    def authenticate(self, request):
        """Return ``(ActorUser, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)
        payload = self._decode_token(token)
        user = self._user_from_payload(payload)
        logger.info(
            "jwt_authenticated",
            actor_id=str(user.actor_id),
            actor_kind=str(user.actor_kind),
        )
        return (user, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        options = {"require": ["sub", "exp"]}
        kwargs = {}
        if settings.JWT_ISSUER:
            kwargs["issuer"] = settings.JWT_ISSUER
        try:
            return pyjwt.decode(
                token,
                settings.JWT_SIGNING_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options=options,
                **kwargs,
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc

    @staticmethod
    def _user_from_payload(payload: dict) -> ActorUser:
        try:
            actor_id = UUID(str(payload["sub"]))
            actor_kind = ActorKind(payload.get("kind", ActorKind.BUYER))
        except ValueError as exc:
            raise AuthenticationFailed("Token subject is not a valid actor.") from exc
        if actor_kind not in _TOKEN_KINDS:
            raise AuthenticationFailed("Token subject is not a valid actor.")
        return ActorUser(actor_id=actor_id, actor_kind=actor_kind)
