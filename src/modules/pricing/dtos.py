"""Calculator inputs and results (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PricedLine(BaseModel):
    """One fulfillment line as priced at checkout."""

    model_config = ConfigDict(frozen=True)

    category_id: Optional[UUID] = None
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class UnitCharges(BaseModel):
    """Money breakdown of one fulfillment unit.

    ``subtotal + tax_amount + shipping_fee - platform_fee == seller_payout``.
    """

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    tax_amount: Decimal
    platform_fee: Decimal
    shipping_fee: Decimal
    seller_payout: Decimal
    commission_rate: Decimal
    line_taxes: List[Decimal]


class GstSplit(BaseModel):
    model_config = ConfigDict(frozen=True)

    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @property
    def total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def is_intra_state(self) -> bool:
        return self.igst == 0
