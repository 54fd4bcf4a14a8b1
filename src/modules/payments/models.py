"""Payment gateway event log.

Every webhook delivery is recorded once, keyed by the provider's event id.
The table doubles as the dedupe guard and the reconciliation log.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import ProcessingStatus


class PaymentEvent(BaseModel):
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=50)
    order = models.ForeignKey(
        "orders.AggregateOrder",
        on_delete=models.PROTECT,
        related_name="payment_events",
        null=True,
        blank=True,
    )
    gateway_order_ref = models.CharField(max_length=100, blank=True, default="")
    payment_ref = models.CharField(max_length=100, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True, default="")
    status = models.CharField(max_length=30, blank=True, default="")
    error_code = models.CharField(max_length=100, blank=True, default="")
    error_description = models.TextField(blank=True, default="")
    processing_status = models.CharField(
        max_length=20,
        choices=ProcessingStatus.choices,
        default=ProcessingStatus.PROCESSED,
    )
    error_message = models.TextField(blank=True, default="")
    payload = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "payment_events"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["gateway_order_ref"], name="payment_events_ref_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.event_id} {self.event_type} [{self.processing_status}]"
