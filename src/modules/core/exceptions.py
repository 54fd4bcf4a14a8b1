"""Domain error taxonomy and the DRF exception handler.

Services raise subclasses of ``DomainError``; each carries a stable
``code`` (machine readable), a ``category`` and the HTTP status the API
layer should answer with.  drf-standardized-errors renders every error,
domain or DRF, in one shape::

    {"type": "<category>", "errors": [{"code": ..., "detail": ..., "attr": ...}]}

Unexpected exceptions are logged with their traceback and answered with a
generic 500 body; stack detail never reaches the caller.
"""

from __future__ import annotations

from typing import Optional

import structlog
from rest_framework import status

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for business-rule violations raised by the service layer."""

    category = "server_error"
    default_code = "error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self, message: str = "", *, code: Optional[str] = None, attr: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.attr = attr


class ValidationFailed(DomainError):
    """Malformed or missing input, rejected before any side effect."""

    category = "validation_error"
    default_code = "invalid"
    http_status = status.HTTP_400_BAD_REQUEST


class NotAuthorized(DomainError):
    """The caller does not own the referenced order, unit or return."""

    category = "authorization_error"
    default_code = "permission_denied"
    http_status = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    """The referenced entity does not exist."""

    category = "not_found"
    default_code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    """Duplicate resource or an already-existing dependent record."""

    category = "conflict"
    default_code = "conflict"
    http_status = status.HTTP_409_CONFLICT


class InvalidStateTransition(DomainError):
    """The requested status change is not in the machine's transition table."""

    category = "state_transition_error"
    default_code = "invalid_transition"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, current: str, target: str, *, code: Optional[str] = None) -> None:
        super().__init__(f"Cannot transition from {current} to {target}.", code=code)
        self.current = current
        self.target = target


class ConcurrentModification(Conflict):
    """The row changed status between read and guarded write."""

    default_code = "concurrent_modification"


class ExternalDependencyError(DomainError):
    """A payment or shipping provider call failed."""

    category = "external_dependency_error"
    default_code = "provider_error"
    http_status = status.HTTP_502_BAD_GATEWAY
