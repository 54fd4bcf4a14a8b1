"""Return and refund API views.

Domain exceptions propagate to the shared exception handler.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.context import context_from_request
from modules.inventory.providers import DjangoInventoryProvider
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.views import build_fulfillment_service
from modules.returns.dtos import (
    CreateRefundDTO,
    CreateReturnDTO,
    RefundStatusUpdateDTO,
    ReturnItemDTO,
    ReturnStatusUpdateDTO,
)
from modules.returns.repositories.django_repository import ReturnDjangoRepository
from modules.returns.serializers import (
    CreateRefundSerializer,
    CreateReturnSerializer,
    RefundSerializer,
    RefundStatusUpdateSerializer,
    ReturnRequestSerializer,
    ReturnStatusUpdateSerializer,
)
from modules.returns.services import RefundService, ReturnService


class ReturnViewSet(GenericViewSet):
    """Return requests and the refund opened for them."""

    serializer_class = ReturnRequestSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = ReturnDjangoRepository()
        self._returns = ReturnService(
            return_repository=repository,
            order_repository=OrderDjangoRepository(),
            fulfillment_service=build_fulfillment_service(),
        )
        self._refunds = RefundService(
            return_repository=repository,
            inventory_provider=DjangoInventoryProvider(),
        )

    def create(self, request: Request) -> Response:
        """POST /api/v1/returns/"""
        serializer = CreateReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        dto = CreateReturnDTO(
            unit_id=data["unit_id"],
            reason=data["reason"],
            description=data["description"],
            items=[ReturnItemDTO(**item) for item in data["items"]],
            pickup_address=data.get("pickup_address"),
        )
        return_request = self._returns.create_return(context_from_request(request), dto)
        return Response(
            ReturnRequestSerializer(return_request).data, status=status.HTTP_201_CREATED
        )

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/returns/{pk}/"""
        return_request = self._returns.get_return(context_from_request(request), pk)
        return Response(ReturnRequestSerializer(return_request).data)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/returns/{pk}/status/"""
        serializer = ReturnStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ctx = context_from_request(request)
        dto = ReturnStatusUpdateDTO(return_id=pk, **serializer.validated_data)
        return_request = self._returns.update_status(ctx, dto)
        return_request = self._returns.get_return(ctx, return_request.id)
        return Response(ReturnRequestSerializer(return_request).data)

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/returns/{pk}/refund/"""
        serializer = CreateRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = CreateRefundDTO(return_id=pk, **serializer.validated_data)
        refund = self._refunds.create_refund(context_from_request(request), dto)
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


class RefundViewSet(GenericViewSet):
    serializer_class = RefundSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._refunds = RefundService(
            return_repository=ReturnDjangoRepository(),
            inventory_provider=DjangoInventoryProvider(),
        )

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/refunds/{pk}/"""
        refund = self._refunds.get_refund(context_from_request(request), pk)
        return Response(RefundSerializer(refund).data)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/refunds/{pk}/status/"""
        serializer = RefundStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = RefundStatusUpdateDTO(refund_id=pk, **serializer.validated_data)
        refund = self._refunds.update_status(context_from_request(request), dto)
        return Response(RefundSerializer(refund).data)
