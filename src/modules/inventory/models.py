"""Sellable stock per product variant.

The catalog itself is managed elsewhere; ``StockRecord`` mirrors the
fields the engine snapshots onto fulfillment items (seller, sku, name,
category) plus the mutable on-hand quantity.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class StockRecord(BaseModel):
    """On-hand stock for one variant.

    ``variant_id`` is the natural key.  ``stock`` is only ever changed with
    conditional ``UPDATE`` statements so it can never go negative.
    """

    variant_id = models.UUIDField(unique=True)
    product_id = models.UUIDField(db_index=True)
    seller_id = models.UUIDField(db_index=True)
    category_id = models.UUIDField(null=True, blank=True)
    sku = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "stock_records"
        ordering = ["sku"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name="stock_records_stock_non_negative",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sku} - {self.product_name} ({self.stock})"
