"""Cart snapshot DTOs handed to checkout."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    variant_id: UUID
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    discount: Decimal = Decimal("0.00")


class CartSnapshot(BaseModel):
    """Immutable view of a buyer's active cart at checkout time."""

    model_config = ConfigDict(frozen=True)

    cart_id: UUID
    buyer_id: UUID
    shipping_address: Dict[str, Any] = Field(default_factory=dict)
    lines: List[CartLine] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.lines
