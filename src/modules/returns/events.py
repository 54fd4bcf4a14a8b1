"""Domain events for returns and refunds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class ReturnStatusChanged(DomainEvent):
    """``aggregate_id`` is the return id."""

    unit_id: Optional[UUID] = None
    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class RefundStatusChanged(DomainEvent):
    """``aggregate_id`` is the refund id."""

    return_id: Optional[UUID] = None
    old_status: str = ""
    new_status: str = ""
    amount: str = "0.00"
