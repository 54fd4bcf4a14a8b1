"""Return and refund DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.returns.constants import (
    REASON_MIN_LENGTH,
    RefundMethod,
    RefundStatus,
    ReturnStatus,
)
from modules.returns.models import Refund, ReturnItem, ReturnRequest

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class ReturnItemInputSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0
    )


class CreateReturnSerializer(serializers.Serializer):
    unit_id = serializers.UUIDField()
    reason = serializers.CharField(min_length=REASON_MIN_LENGTH)
    description = serializers.CharField(required=False, default="", allow_blank=True)
    items = ReturnItemInputSerializer(many=True, allow_empty=False)
    pickup_address = serializers.DictField(required=False)


class ReturnStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ReturnStatus.choices)
    rejection_reason = serializers.CharField(required=False, default="", allow_blank=True)
    tracking_number = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CreateRefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(
        choices=RefundMethod.choices, default=RefundMethod.ORIGINAL_PAYMENT_METHOD
    )
    transaction_id = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Refund amount must be positive.")
        return value


class RefundStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RefundStatus.choices)
    transaction_id = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )
    failure_reason = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class ReturnItemSerializer(serializers.ModelSerializer):
    item_id = serializers.UUIDField(source="fulfillment_item_id", read_only=True)
    sku = serializers.CharField(source="fulfillment_item.sku", read_only=True)

    class Meta:
        model = ReturnItem
        fields = ["id", "item_id", "sku", "quantity", "refund_amount"]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    return_id = serializers.UUIDField(source="return_request_id", read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "refund_number",
            "return_id",
            "amount",
            "method",
            "status",
            "transaction_id",
            "failure_reason",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ReturnRequestSerializer(serializers.ModelSerializer):
    unit_id = serializers.UUIDField(read_only=True)
    items = ReturnItemSerializer(many=True, read_only=True)

    class Meta:
        model = ReturnRequest
        fields = [
            "id",
            "return_number",
            "unit_id",
            "buyer_id",
            "reason",
            "description",
            "status",
            "pickup_address",
            "tracking_number",
            "rejection_reason",
            "items",
            "approved_at",
            "rejected_at",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
