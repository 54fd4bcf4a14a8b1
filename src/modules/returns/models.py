"""ReturnRequest, ReturnItem and Refund.

Business rules implemented:
- A unit has at most one open (non-terminal) return; a partial unique
  index backs the service check.
- Return and refund numbers are ``RET-<year>-<5 digits>`` and
  ``REF-<year>-<5 digits>`` taken from ``SequenceCounter``.
- A return has at most one refund.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SequenceCounter
from modules.core.money import money_sum
from modules.returns.constants import (
    REFUND_NUMBER_SEQUENCE,
    REFUND_TRANSITIONS,
    RETURN_NUMBER_SEQUENCE,
    RETURN_TERMINAL_STATES,
    RETURN_TRANSITIONS,
    RefundMethod,
    RefundStatus,
    ReturnStatus,
)
from shared.domain.events import DomainEventMixin

_MONEY = {"max_digits": 12, "decimal_places": 2, "default": Decimal("0.00")}


def _next_number(prefix: str, sequence: str, width: int) -> str:
    year = timezone.now().year
    value = SequenceCounter.next_value(sequence, year)
    return f"{prefix}-{year}-{value:0{width}d}"


class ReturnRequest(DomainEventMixin, BaseModel):
    """A buyer's request to send back (part of) a delivered unit."""

    return_number = models.CharField(max_length=20, unique=True, editable=False)
    unit = models.ForeignKey(
        "orders.FulfillmentUnit",
        on_delete=models.PROTECT,
        related_name="returns",
    )
    buyer_id = models.UUIDField(db_index=True)
    reason = models.TextField()
    description = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=ReturnStatus.choices,
        default=ReturnStatus.REQUESTED,
    )
    pickup_address = models.JSONField(default=dict)
    tracking_number = models.CharField(max_length=100, blank=True, default="")
    rejection_reason = models.TextField(blank=True, default="")
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "return_requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="returns_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["unit"],
                condition=~models.Q(status__in=sorted(RETURN_TERMINAL_STATES)),
                name="returns_one_open_per_unit",
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in RETURN_TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in RETURN_TRANSITIONS.get(self.status, set())

    @property
    def claimed_amount(self) -> Decimal:
        return money_sum(item.refund_amount for item in self.items.all())

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.return_number:
            self.return_number = _next_number("RET", RETURN_NUMBER_SEQUENCE, 5)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.return_number} ({self.status})"


class ReturnItem(BaseModel):
    """One returned line with the refund amount the buyer claims for it."""

    return_request = models.ForeignKey(
        ReturnRequest,
        on_delete=models.CASCADE,
        related_name="items",
    )
    fulfillment_item = models.ForeignKey(
        "orders.FulfillmentItem",
        on_delete=models.PROTECT,
        related_name="return_items",
    )
    quantity = models.PositiveIntegerField()
    refund_amount = models.DecimalField(**_MONEY)

    class Meta:
        db_table = "return_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="return_items_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["return_request", "fulfillment_item"],
                name="return_items_one_per_line",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.fulfillment_item_id} x{self.quantity}"


class Refund(DomainEventMixin, BaseModel):
    """Money going back to the buyer for an inspected return."""

    refund_number = models.CharField(max_length=20, unique=True, editable=False)
    return_request = models.OneToOneField(
        ReturnRequest,
        on_delete=models.PROTECT,
        related_name="refund",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(
        max_length=30,
        choices=RefundMethod.choices,
        default=RefundMethod.ORIGINAL_PAYMENT_METHOD,
    )
    status = models.CharField(
        max_length=20,
        choices=RefundStatus.choices,
        default=RefundStatus.PENDING,
    )
    transaction_id = models.CharField(max_length=100, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "refunds"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refunds_amount_positive",
            ),
        ]

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in REFUND_TRANSITIONS.get(self.status, set())

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.refund_number:
            self.refund_number = _next_number("REF", REFUND_NUMBER_SEQUENCE, 5)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.refund_number} ({self.status})"
