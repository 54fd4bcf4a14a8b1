"""DRF exception handler and formatter for drf-standardized-errors.

Kept apart from ``modules.core.exceptions`` so that importing the domain
error taxonomy does not load DRF views (which would import the
authentication backend and close an import cycle).
"""

from __future__ import annotations

from typing import Any

import structlog
from drf_standardized_errors.formatter import ExceptionFormatter
from drf_standardized_errors.handler import ExceptionHandler
from pydantic import ValidationError as PydanticValidationError
from rest_framework import exceptions
from rest_framework.exceptions import ErrorDetail
from rest_framework.settings import api_settings

from modules.core.exceptions import DomainError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# DRF handler (drf-standardized-errors)
# ---------------------------------------------------------------------------

_DRF_TYPES = {
    exceptions.ParseError: "validation_error",
    exceptions.NotAuthenticated: "authentication_error",
    exceptions.AuthenticationFailed: "authentication_error",
    exceptions.PermissionDenied: "authorization_error",
    exceptions.NotFound: "not_found",
}


class DomainAPIException(exceptions.APIException):
    """A ``DomainError`` carried through the DRF exception pipeline."""

    def __init__(self, error: DomainError) -> None:
        self.status_code = error.http_status
        detail = ErrorDetail(error.message, code=error.code)
        super().__init__(detail={error.attr: [detail]} if error.attr else detail)


class DomainExceptionHandler(ExceptionHandler):
    """Converts domain and pydantic errors before the standard formatting."""

    def convert_known_exceptions(self, exc: Exception) -> Exception:
        if isinstance(exc, DomainError):
            logger.info(
                "api.domain_error",
                error_type=type(exc).__name__,
                code=exc.code,
                detail=exc.message,
            )
            return DomainAPIException(exc)
        if isinstance(exc, PydanticValidationError):
            detail: dict[str, list[ErrorDetail]] = {}
            for err in exc.errors():
                attr = ".".join(str(part) for part in err["loc"])
                attr = attr or api_settings.NON_FIELD_ERRORS_KEY
                detail.setdefault(attr, []).append(ErrorDetail(err["msg"], code="invalid"))
            return exceptions.ValidationError(detail)
        return super().convert_known_exceptions(exc)

    def convert_unhandled_exceptions(self, exc: Exception) -> exceptions.APIException:
        if not isinstance(exc, exceptions.APIException):
            logger.error("api.unhandled_error", error_type=type(exc).__name__, exc_info=exc)
            return exceptions.APIException()
        return exc


class DomainExceptionFormatter(ExceptionFormatter):
    """Uses the domain category as the envelope ``type``."""

    def get_error_type(self) -> Any:
        if isinstance(self.original_exc, DomainError):
            return self.original_exc.category
        for exc_class, name in _DRF_TYPES.items():
            if isinstance(self.exc, exc_class):
                return name
        return super().get_error_type()
