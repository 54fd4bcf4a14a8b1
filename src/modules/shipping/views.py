"""Carrier tracking webhook endpoint.

Always answers 200: unmatched waybills and updates the unit cannot take
are logged and acknowledged so the carrier stops redelivering them.
"""

from __future__ import annotations

import structlog
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.exceptions import DomainError
from modules.shipping.serializers import TrackingWebhookSerializer
from modules.shipping.tasks import build_shipment_service

logger = structlog.get_logger(__name__)


class TrackingWebhookView(APIView):
    """POST /api/v1/webhooks/shipping/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "webhooks"

    def post(self, request: Request) -> Response:
        serializer = TrackingWebhookSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning("shipment.webhook_invalid_payload", errors=serializer.errors)
            return Response({"received": True, "matched": False}, status=status.HTTP_200_OK)

        data = serializer.validated_data
        try:
            unit = build_shipment_service().apply_tracking_event(
                awb_number=data["awb_number"],
                status=data["status"],
                location=data["location"],
                timestamp=data["timestamp"],
                remarks=data["remarks"],
            )
        except DomainError as exc:
            logger.warning(
                "shipment.webhook_not_applied",
                awb_number=data["awb_number"],
                error_code=exc.code,
                error=exc.message,
            )
            return Response({"received": True, "matched": True}, status=status.HTTP_200_OK)

        body = {"received": True, "matched": unit is not None}
        if unit is not None:
            body["unit_status"] = unit.status
        return Response(body, status=status.HTTP_200_OK)
