"""Order API views.

Exposes ``CheckoutService`` and ``FulfillmentService`` via HTTP using DRF
ViewSets.  Domain exceptions propagate to the shared exception handler;
the views never catch them.
"""

from __future__ import annotations

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.carts.providers import DjangoCartProvider
from modules.core.context import ActorKind, context_from_request
from modules.core.exceptions import ValidationFailed
from modules.coupons.services import CouponEngine
from modules.inventory.providers import DjangoInventoryProvider
from modules.orders.dtos import PlaceOrderDTO, UnitStatusUpdateDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AggregateOrderSerializer,
    CancelSerializer,
    FulfillmentUnitSerializer,
    PlaceOrderSerializer,
    SellerStatsQuerySerializer,
    SellerStatsSerializer,
    UnitStatusUpdateSerializer,
)
from modules.orders.services import CheckoutService, FulfillmentService


def build_fulfillment_service() -> FulfillmentService:
    return FulfillmentService(
        order_repository=OrderDjangoRepository(),
        inventory_provider=DjangoInventoryProvider(),
        coupon_engine=CouponEngine(),
    )


class OrderViewSet(GenericViewSet):
    """Checkout, order detail and whole-order cancellation.

    Does **not** extend ``ModelViewSet``; all ORM access goes through the
    service/repository layer.
    """

    serializer_class = AggregateOrderSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = OrderDjangoRepository()
        self._checkout = CheckoutService(
            order_repository=repository,
            cart_provider=DjangoCartProvider(),
            inventory_provider=DjangoInventoryProvider(),
            coupon_engine=CouponEngine(),
        )
        self._fulfillment = build_fulfillment_service()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "checkout" if self.action == "create" else None
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header: a replay
        answers 200 with the original order, a new order answers 201.
        """
        ctx = context_from_request(request)
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        buyer_id = data.get("buyer_id") if ctx.is_privileged else None
        dto = PlaceOrderDTO(
            buyer_id=buyer_id or ctx.actor_id,
            cart_id=data.get("cart_id"),
            shipping_address=data.get("shipping_address"),
            payment_method=data["payment_method"],
            coupon_code=data.get("coupon_code"),
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        started_at = timezone.now()
        order = self._checkout.place_order(ctx, dto)

        replayed = order.created_at < started_at
        return Response(
            AggregateOrderSerializer(order).data,
            status=status.HTTP_200_OK if replayed else status.HTTP_201_CREATED,
        )

    # ------------------------------------------------------------------
    # Retrieve / Cancel
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._fulfillment.get_order(context_from_request(request), pk)
        return Response(AggregateOrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels every unit, restocks and releases the coupon.
        """
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._fulfillment.cancel_order(
            context_from_request(request), pk, serializer.validated_data["reason"]
        )
        return Response(AggregateOrderSerializer(order).data)


class FulfillmentUnitViewSet(GenericViewSet):
    """Per-seller unit detail, status updates and cancellation."""

    serializer_class = FulfillmentUnitSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._fulfillment = build_fulfillment_service()

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/units/{pk}/"""
        unit = self._fulfillment.get_unit(context_from_request(request), pk)
        return Response(FulfillmentUnitSerializer(unit).data)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/units/{pk}/status/

        Seller-driven transition.  ``RETURNED`` is rejected here; returns go
        through ``/api/v1/returns/``.
        """
        serializer = UnitStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = UnitStatusUpdateDTO(unit_id=pk, **serializer.validated_data)
        unit = self._fulfillment.update_unit_status(context_from_request(request), dto)
        unit = self._fulfillment.get_unit(context_from_request(request), unit.id)
        return Response(FulfillmentUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/units/{pk}/cancel/"""
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ctx = context_from_request(request)
        unit = self._fulfillment.cancel_unit(
            ctx, pk, serializer.validated_data["reason"]
        )
        unit = self._fulfillment.get_unit(ctx, unit.id)
        return Response(FulfillmentUnitSerializer(unit).data)

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request: Request) -> Response:
        """GET /api/v1/units/stats/?seller_id=<uuid>

        Sellers may omit ``seller_id`` to read their own figures.
        """
        serializer = SellerStatsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        ctx = context_from_request(request)
        seller_id = serializer.validated_data.get("seller_id")
        if seller_id is None:
            if ctx.actor_kind != ActorKind.SELLER:
                raise ValidationFailed(
                    "seller_id is required.", code="seller_id_required", attr="seller_id"
                )
            seller_id = ctx.actor_id
        stats = self._fulfillment.seller_stats(ctx, seller_id)
        return Response(SellerStatsSerializer(stats).data)
