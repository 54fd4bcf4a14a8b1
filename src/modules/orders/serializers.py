"""Order DRF serializers for API input/output.

The serializers operate at the Interface layer.  Business logic lives in
the Service Layer, which receives Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import FulfillmentStatus, PaymentMethod
from modules.orders.models import (
    AggregateOrder,
    FulfillmentItem,
    FulfillmentStatusHistory,
    FulfillmentUnit,
)

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class PlaceOrderSerializer(serializers.Serializer):
    """Validates the checkout payload.

    ``buyer_id`` is only honoured for admins; buyers always check out their
    own cart.
    """

    buyer_id = serializers.UUIDField(required=False)
    cart_id = serializers.UUIDField(required=False)
    shipping_address = serializers.DictField(required=False)
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, default=PaymentMethod.ONLINE
    )
    coupon_code = serializers.CharField(
        required=False, allow_blank=True, max_length=50
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class UnitStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=FulfillmentStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    tracking_number = serializers.CharField(required=False, max_length=100)
    courier_name = serializers.CharField(required=False, max_length=100)
    tracking_url = serializers.URLField(required=False)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class SellerStatsQuerySerializer(serializers.Serializer):
    seller_id = serializers.UUIDField(required=False)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class FulfillmentItemSerializer(serializers.ModelSerializer):
    """Read serializer for the item price snapshot."""

    class Meta:
        model = FulfillmentItem
        fields = [
            "id",
            "product_id",
            "variant_id",
            "sku",
            "product_name",
            "quantity",
            "unit_price",
            "discount",
            "tax_amount",
            "line_total",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = FulfillmentStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "changed_by",
            "actor_kind",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class FulfillmentUnitSerializer(serializers.ModelSerializer):
    """Read serializer for a unit with its items and history."""

    order_id = serializers.UUIDField(read_only=True)
    items = FulfillmentItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = FulfillmentUnit
        fields = [
            "id",
            "order_id",
            "unit_number",
            "seller_id",
            "status",
            "subtotal",
            "shipping_fee",
            "tax_amount",
            "platform_fee",
            "seller_payout",
            "tracking_number",
            "courier_name",
            "tracking_url",
            "confirmed_at",
            "shipped_at",
            "delivered_at",
            "cancelled_at",
            "returned_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class AggregateOrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested units."""

    units = FulfillmentUnitSerializer(many=True, read_only=True)

    class Meta:
        model = AggregateOrder
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "status",
            "total_amount",
            "discount_amount",
            "shipping_amount",
            "tax_amount",
            "final_amount",
            "payment_method",
            "payment_status",
            "coupon_code",
            "shipping_address",
            "notes",
            "cancelled_at",
            "created_at",
            "updated_at",
            "units",
        ]
        read_only_fields = fields


class SellerStatsSerializer(serializers.Serializer):
    """Read serializer for a seller's dashboard counts."""

    seller_id = serializers.UUIDField(read_only=True)
    total_units = serializers.IntegerField(read_only=True)
    pending_units = serializers.IntegerField(read_only=True)
    processing_units = serializers.IntegerField(read_only=True)
    in_transit_units = serializers.IntegerField(read_only=True)
    delivered_units = serializers.IntegerField(read_only=True)
    delivered_payout = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    delivered_platform_fees = serializers.DecimalField(
        max_digits=14, decimal_places=2, read_only=True
    )
