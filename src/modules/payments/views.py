"""Payment gateway webhook endpoint.

Always answers 200 so the gateway does not retry deliveries that can never
succeed; rejected and unprocessable deliveries are logged and recorded.
"""

from __future__ import annotations

import json

import structlog
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.views import build_fulfillment_service
from modules.payments.constants import SIGNATURE_HEADER
from modules.payments.dtos import PaymentWebhookDTO
from modules.payments.services import PaymentService
from modules.payments.signature import verify_signature

logger = structlog.get_logger(__name__)


class PaymentWebhookView(APIView):
    """POST /api/v1/webhooks/payments/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "webhooks"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = PaymentService(
            order_repository=OrderDjangoRepository(),
            fulfillment_service=build_fulfillment_service(),
        )

    def post(self, request: Request) -> Response:
        body = request.body
        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER)):
            self._service.record_rejected("invalid_signature", payload)
            return Response({"received": True}, status=status.HTTP_200_OK)

        try:
            dto = PaymentWebhookDTO(**payload)
        except PydanticValidationError as exc:
            logger.warning("payment.webhook_invalid_payload", errors=exc.error_count())
            self._service.record_rejected("invalid_payload", payload)
            return Response({"received": True}, status=status.HTTP_200_OK)

        try:
            event = self._service.handle_event(dto, payload)
        except Exception:
            logger.exception("payment.webhook_processing_error", event_id=dto.event_id)
            return Response({"received": True}, status=status.HTTP_200_OK)
        return Response(
            {"received": True, "processing_status": event.processing_status},
            status=status.HTTP_200_OK,
        )
