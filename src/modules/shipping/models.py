"""Carrier shipment per fulfillment unit."""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.shipping.constants import PaymentMode, ShipmentStatus


class Shipment(BaseModel):
    """One shipment per unit; ``awb_number`` is the carrier's waybill.

    ``tracking_events`` is an append-only list of the carrier updates as
    received (``status``, ``location``, ``timestamp``, ``remarks``).
    """

    unit = models.OneToOneField(
        "orders.FulfillmentUnit",
        on_delete=models.PROTECT,
        related_name="shipment",
    )
    awb_number = models.CharField(max_length=64, unique=True)
    courier_name = models.CharField(max_length=100)
    tracking_url = models.URLField(blank=True, default="")
    label_url = models.URLField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=ShipmentStatus.choices,
        default=ShipmentStatus.LABEL_CREATED,
    )
    current_location = models.CharField(max_length=255, blank=True, default="")
    tracking_events = models.JSONField(default=list, blank=True)
    payment_mode = models.CharField(
        max_length=10, choices=PaymentMode.choices, default=PaymentMode.PREPAID
    )
    cod_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    picked_up_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "shipments"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.awb_number} ({self.courier_name}) [{self.status}]"
