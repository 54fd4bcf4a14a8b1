"""Order domain constants.

Fulfillment unit status choices, the unit state machine's transition table
and the pure function that derives the buyer-facing aggregate status from
the statuses of an order's units.
"""

from __future__ import annotations

from typing import Iterable

from django.db import models


class FulfillmentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    PROCESSING = "PROCESSING", "Processing"
    PACKED = "PACKED", "Packed"
    SHIPPED = "SHIPPED", "Shipped"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out for delivery"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    RETURNED = "RETURNED", "Returned"


class AggregateStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PARTIALLY_SHIPPED = "PARTIALLY_SHIPPED", "Partially shipped"
    SHIPPED = "SHIPPED", "Shipped"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED", "Partially delivered"
    DELIVERED = "DELIVERED", "Delivered"
    PARTIALLY_RETURNED = "PARTIALLY_RETURNED", "Partially returned"
    RETURNED = "RETURNED", "Returned"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentMethod(models.TextChoices):
    ONLINE = "ONLINE", "Online"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY", "Cash on delivery"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


VALID_TRANSITIONS: dict[str, set[str]] = {
    FulfillmentStatus.PENDING: {FulfillmentStatus.CONFIRMED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.CONFIRMED: {
        FulfillmentStatus.PROCESSING,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.PROCESSING: {FulfillmentStatus.PACKED},
    FulfillmentStatus.PACKED: {FulfillmentStatus.SHIPPED},
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.OUT_FOR_DELIVERY},
    FulfillmentStatus.OUT_FOR_DELIVERY: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: {FulfillmentStatus.RETURNED},
    FulfillmentStatus.CANCELLED: set(),
    FulfillmentStatus.RETURNED: set(),
}

TERMINAL_STATES: set[str] = {FulfillmentStatus.CANCELLED, FulfillmentStatus.RETURNED}

CANCELLABLE_STATES: set[str] = {FulfillmentStatus.PENDING, FulfillmentStatus.CONFIRMED}

# Forward path walked when a carrier reports a state the seller skipped.
FORWARD_PATH: list[str] = [
    FulfillmentStatus.PENDING,
    FulfillmentStatus.CONFIRMED,
    FulfillmentStatus.PROCESSING,
    FulfillmentStatus.PACKED,
    FulfillmentStatus.SHIPPED,
    FulfillmentStatus.OUT_FOR_DELIVERY,
    FulfillmentStatus.DELIVERED,
]

# Seller dashboard buckets.
STATS_PROCESSING_STATES: set[str] = {
    FulfillmentStatus.CONFIRMED,
    FulfillmentStatus.PROCESSING,
    FulfillmentStatus.PACKED,
}
STATS_IN_TRANSIT_STATES: set[str] = {
    FulfillmentStatus.SHIPPED,
    FulfillmentStatus.OUT_FOR_DELIVERY,
}

# Timestamp column stamped when a unit enters the state.
STATUS_TIMESTAMPS: dict[str, str] = {
    FulfillmentStatus.CONFIRMED: "confirmed_at",
    FulfillmentStatus.SHIPPED: "shipped_at",
    FulfillmentStatus.DELIVERED: "delivered_at",
    FulfillmentStatus.CANCELLED: "cancelled_at",
    FulfillmentStatus.RETURNED: "returned_at",
}

_IN_TRANSIT_OR_LATER = {
    FulfillmentStatus.SHIPPED,
    FulfillmentStatus.OUT_FOR_DELIVERY,
    FulfillmentStatus.DELIVERED,
    FulfillmentStatus.RETURNED,
}
_DELIVERED_OR_RETURNED = {FulfillmentStatus.DELIVERED, FulfillmentStatus.RETURNED}

ORDER_NUMBER_MAX_RETRIES = 5


def derive_aggregate_status(statuses: Iterable[str]) -> str:
    """Buyer-facing order status for a multiset of unit statuses.

    Rules are checked in order; the first match wins.  Returned units count
    as delivered for the delivery rules, so a return never regresses an
    order to PARTIALLY_DELIVERED.
    """
    unit_statuses = list(statuses)
    if not unit_statuses:
        return AggregateStatus.PENDING
    if all(s == FulfillmentStatus.CANCELLED for s in unit_statuses):
        return AggregateStatus.CANCELLED
    if all(s == FulfillmentStatus.RETURNED for s in unit_statuses):
        return AggregateStatus.RETURNED
    if any(s == FulfillmentStatus.RETURNED for s in unit_statuses) and all(
        s in _DELIVERED_OR_RETURNED for s in unit_statuses
    ):
        return AggregateStatus.PARTIALLY_RETURNED
    if all(s == FulfillmentStatus.DELIVERED for s in unit_statuses):
        return AggregateStatus.DELIVERED
    if any(s in _DELIVERED_OR_RETURNED for s in unit_statuses):
        return AggregateStatus.PARTIALLY_DELIVERED
    if all(s in _IN_TRANSIT_OR_LATER for s in unit_statuses):
        return AggregateStatus.SHIPPED
    if any(s in _IN_TRANSIT_OR_LATER for s in unit_statuses):
        return AggregateStatus.PARTIALLY_SHIPPED
    return AggregateStatus.PENDING
