"""Shipment statuses and the carrier status vocabulary."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from django.db import models

from modules.orders.constants import FulfillmentStatus


class ShipmentStatus(models.TextChoices):
    LABEL_CREATED = "LABEL_CREATED", "Label created"
    PICKED_UP = "PICKED_UP", "Picked up"
    IN_TRANSIT = "IN_TRANSIT", "In transit"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out for delivery"
    DELIVERED = "DELIVERED", "Delivered"
    EXCEPTION = "EXCEPTION", "Exception"


class PaymentMode(models.TextChoices):
    PREPAID = "prepaid", "Prepaid"
    COD = "cod", "Cash on delivery"


# carrier status -> (shipment status, unit status it implies)
CARRIER_STATUS_MAP: Dict[str, Tuple[str, Optional[str]]] = {
    "picked_up": (ShipmentStatus.PICKED_UP, FulfillmentStatus.SHIPPED),
    "in_transit": (ShipmentStatus.IN_TRANSIT, FulfillmentStatus.SHIPPED),
    "out_for_delivery": (
        ShipmentStatus.OUT_FOR_DELIVERY,
        FulfillmentStatus.OUT_FOR_DELIVERY,
    ),
    "delivered": (ShipmentStatus.DELIVERED, FulfillmentStatus.DELIVERED),
}


def map_carrier_status(raw: str) -> Tuple[str, Optional[str]]:
    """Unknown carrier statuses are kept on the shipment as EXCEPTION."""
    key = (raw or "").strip().lower().replace(" ", "_").replace("-", "_")
    return CARRIER_STATUS_MAP.get(key, (ShipmentStatus.EXCEPTION, None))
