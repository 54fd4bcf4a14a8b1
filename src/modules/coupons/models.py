"""Promotion and CouponRedemption models.

Invariants:
- ``code`` is unique and stored uppercase.
- ``usage_count <= usage_limit`` is a database check; the engine only
  increments it with a conditional ``UPDATE``.
- One redemption per order.  Redemption rows, not a counter, are the
  source of truth for per-customer usage.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.coupons.constants import CouponType


class Promotion(BaseModel):
    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")
    coupon_type = models.CharField(max_length=20, choices=CouponType.choices)
    value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    min_order_value = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    max_discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    usage_limit = models.PositiveIntegerField(default=1)
    per_customer_limit = models.PositiveIntegerField(default=1)
    usage_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField()

    class Meta:
        db_table = "promotions"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(usage_count__lte=models.F("usage_limit")),
                name="promotions_usage_within_limit",
            ),
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="promotions_window_ordered",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.code} ({self.usage_count}/{self.usage_limit})"


class CouponRedemption(BaseModel):
    promotion = models.ForeignKey(
        Promotion, on_delete=models.PROTECT, related_name="redemptions"
    )
    buyer_id = models.UUIDField(db_index=True)
    order = models.OneToOneField(
        "orders.AggregateOrder",
        on_delete=models.CASCADE,
        related_name="coupon_redemption",
    )
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "coupon_redemptions"
        indexes = [
            models.Index(
                fields=["promotion", "buyer_id"], name="coupon_redemption_buyer_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.promotion_id} -> {self.order_id}"
