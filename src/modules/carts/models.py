"""Buyer carts as seen by checkout.

Cart editing (add/remove, price refresh) belongs to the storefront; the
engine reads the active cart snapshot and marks it consumed once an order
has been placed from it.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel


class CartStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    CONSUMED = "CONSUMED", "Consumed"
    ABANDONED = "ABANDONED", "Abandoned"


class Cart(BaseModel):
    buyer_id = models.UUIDField(db_index=True)
    status = models.CharField(
        max_length=20, choices=CartStatus.choices, default=CartStatus.ACTIVE
    )
    shipping_address = models.JSONField(default=dict, blank=True)
    consumed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "carts"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["buyer_id"],
                condition=models.Q(status="ACTIVE"),
                name="carts_one_active_per_buyer",
            ),
        ]

    def __str__(self) -> str:
        return f"Cart {self.id} ({self.status})"


class CartItem(BaseModel):
    """A cart line.  ``unit_price`` already has the catalog discount applied."""

    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    variant_id = models.UUIDField()
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    discount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    class Meta:
        db_table = "cart_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "variant_id"], name="cart_items_cart_variant_uniq"
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="cart_items_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.variant_id} x{self.quantity}"
