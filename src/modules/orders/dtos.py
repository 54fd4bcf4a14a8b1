"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are the
contracts between the API layer (DRF serializers) and the services.  DTOs
are immutable (``frozen=True``).

- ``PlaceOrderDTO``: checkout request.
- ``UnitStatusUpdateDTO``: seller-driven fulfillment transition.
- ``TrackingUpdateDTO``: carrier-driven movement of a unit.
- ``SellerStats``: per-seller unit counts and delivered money.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import FulfillmentStatus, PaymentMethod


class PlaceOrderDTO(BaseModel):
    """Immutable checkout request.

    ``shipping_address`` overrides the one saved on the cart; either way
    the order stores a copy.
    """

    model_config = ConfigDict(frozen=True)

    buyer_id: UUID
    cart_id: Optional[UUID] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    coupon_code: Optional[str] = None
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class UnitStatusUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_id: UUID
    status: FulfillmentStatus
    notes: str = ""
    tracking_number: Optional[str] = None
    courier_name: Optional[str] = None
    tracking_url: Optional[str] = None


class TrackingUpdateDTO(BaseModel):
    """Normalized carrier update already mapped onto a unit status."""

    model_config = ConfigDict(frozen=True)

    unit_id: UUID
    status: FulfillmentStatus
    location: str = ""
    occurred_at: Optional[datetime] = None
    remarks: str = ""


class SellerStats(BaseModel):
    """Unit counts per dashboard bucket plus money of delivered units."""

    model_config = ConfigDict(frozen=True)

    seller_id: UUID
    total_units: int
    pending_units: int
    processing_units: int
    in_transit_units: int
    delivered_units: int
    delivered_payout: Decimal
    delivered_platform_fees: Decimal
