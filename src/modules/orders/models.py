"""AggregateOrder, FulfillmentUnit, FulfillmentItem and status history.

Business rules implemented:
- One AggregateOrder per checkout; one FulfillmentUnit per seller in it.
- Unit money reconciles:
  ``subtotal + tax_amount + shipping_fee - platform_fee == seller_payout``.
- Items carry a price snapshot that never changes after creation.
- ``AggregateOrder.status`` is derived from unit statuses and never set
  directly by callers.
- Orders are never deleted, only status-transitioned.
- Every unit transition appends a FulfillmentStatusHistory row.
"""

from __future__ import annotations

import secrets
import string
import time
from decimal import Decimal
from typing import Any

import structlog
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AggregateStatus,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

_MONEY = {"max_digits": 12, "decimal_places": 2, "default": Decimal("0.00")}
_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class AggregateOrder(DomainEventMixin, BaseModel):
    """Buyer-facing order spanning every seller in one checkout.

    ``order_number`` is generated on first save as
    ``ORD-<unixMillis>-<6 uppercase alnum>``.  ``shipping_address`` is an
    immutable copy taken at checkout, never a live reference.

    ``idempotency_key`` and ``gateway_order_ref`` are nullable unique
    columns: NULLs never collide.
    """

    order_number: models.CharField = models.CharField(
        max_length=40, unique=True, editable=False
    )
    buyer_id: models.UUIDField = models.UUIDField(db_index=True)
    status: models.CharField = models.CharField(
        max_length=24,
        choices=AggregateStatus.choices,
        default=AggregateStatus.PENDING,
    )
    total_amount: models.DecimalField = models.DecimalField(**_MONEY)
    discount_amount: models.DecimalField = models.DecimalField(**_MONEY)
    shipping_amount: models.DecimalField = models.DecimalField(**_MONEY)
    tax_amount: models.DecimalField = models.DecimalField(**_MONEY)
    final_amount: models.DecimalField = models.DecimalField(**_MONEY)
    payment_method: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.ONLINE,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    gateway_order_ref: models.CharField = models.CharField(
        max_length=100, unique=True, null=True, blank=True
    )
    coupon_code: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )
    shipping_address: models.JSONField = models.JSONField(default=dict)
    notes: models.TextField = models.TextField(blank=True, default="")
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    cancelled_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "aggregate_orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["buyer_id", "-created_at"], name="orders_buyer_idx"),
        ]

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """``ORD-<unixMillis>-<6 uppercase alnum>``."""
        millis = int(time.time() * 1000)
        suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(6))
        return f"ORD-{millis}-{suffix}"

    @property
    def buyer_state(self) -> str:
        return (self.shipping_address or {}).get("state", "")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not AggregateOrder.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class FulfillmentUnit(DomainEventMixin, BaseModel):
    """One seller's share of an AggregateOrder, fulfilled independently.

    ``seller_id`` is fixed at creation.  ``status`` only changes through
    guarded updates in the repository (``UPDATE ... WHERE status=<expected>``).
    """

    order: models.ForeignKey = models.ForeignKey(
        AggregateOrder,
        on_delete=models.PROTECT,
        related_name="units",
    )
    seller_id: models.UUIDField = models.UUIDField(db_index=True, editable=False)
    unit_number: models.CharField = models.CharField(max_length=50, unique=True)
    sequence: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField()
    subtotal: models.DecimalField = models.DecimalField(**_MONEY)
    shipping_fee: models.DecimalField = models.DecimalField(**_MONEY)
    tax_amount: models.DecimalField = models.DecimalField(**_MONEY)
    platform_fee: models.DecimalField = models.DecimalField(**_MONEY)
    seller_payout: models.DecimalField = models.DecimalField(**_MONEY)
    commission_rate: models.DecimalField = models.DecimalField(
        max_digits=5, decimal_places=4, default=Decimal("0")
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.PENDING,
    )
    tracking_number: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    courier_name: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    tracking_url: models.URLField = models.URLField(blank=True, default="")
    confirmed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    shipped_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    cancelled_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    returned_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "fulfillment_units"
        ordering = ["order", "sequence"]
        indexes = [
            models.Index(fields=["seller_id", "status"], name="units_seller_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "seller_id"], name="units_one_per_seller"
            ),
            models.CheckConstraint(
                condition=models.Q(
                    seller_payout=models.F("subtotal")
                    + models.F("tax_amount")
                    + models.F("shipping_fee")
                    - models.F("platform_fee")
                ),
                name="units_payout_reconciles",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @property
    def gross_amount(self) -> Decimal:
        """What the buyer pays for this unit (COD collection amount)."""
        return self.subtotal + self.tax_amount + self.shipping_fee

    def __str__(self) -> str:
        return f"{self.unit_number} ({self.status})"


class FulfillmentItem(BaseModel):
    """Line item with a price snapshot.

    ``unit_price`` already has the per-unit catalog ``discount`` applied;
    ``line_total == unit_price * quantity``.  Product and variant are
    referenced by id only.
    """

    unit: models.ForeignKey = models.ForeignKey(
        FulfillmentUnit,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id: models.UUIDField = models.UUIDField()
    variant_id: models.UUIDField = models.UUIDField()
    category_id: models.UUIDField = models.UUIDField(null=True, blank=True)
    sku: models.CharField = models.CharField(max_length=64)
    product_name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)
    discount: models.DecimalField = models.DecimalField(**_MONEY)
    tax_amount: models.DecimalField = models.DecimalField(**_MONEY)
    line_total: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "fulfillment_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="fulfillment_items_quantity_positive",
            ),
        ]

    @property
    def paid_per_unit(self) -> Decimal:
        """Buyer-paid amount for one piece, tax included."""
        return (self.line_total + self.tax_amount) / self.quantity

    def __str__(self) -> str:
        return f"{self.sku} x{self.quantity} ({self.line_total})"


class FulfillmentStatusHistory(BaseModel):
    """Append-only audit trail for unit transitions.

    ``changed_by`` is ``None`` when the system (payment or carrier webhook,
    return workflow) drove the change.
    """

    unit: models.ForeignKey = models.ForeignKey(
        FulfillmentUnit,
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=FulfillmentStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=FulfillmentStatus.choices,
    )
    changed_by: models.UUIDField = models.UUIDField(null=True, blank=True)
    actor_kind: models.CharField = models.CharField(max_length=10, default="system")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "fulfillment_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["unit", "created_at"], name="fsh_unit_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.unit} : {self.old_status} -> {self.new_status}"
