"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when checkout persists a new aggregate order."""

    order_number: str = ""
    buyer_id: Optional[UUID] = None
    unit_count: int = 0
    final_amount: str = "0.00"


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when every unit of an order was cancelled in one operation."""

    reason: str = ""


@dataclass(frozen=True)
class UnitStatusChanged(DomainEvent):
    """Raised on every fulfillment unit transition.

    ``aggregate_id`` is the unit id; ``order_id`` the owning order.
    """

    order_id: Optional[UUID] = None
    seller_id: Optional[UUID] = None
    old_status: str = ""
    new_status: str = ""
