"""Inventory DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class VariantInfo(BaseModel):
    """Catalog facts about a variant, as needed to build a fulfillment item."""

    model_config = ConfigDict(frozen=True)

    variant_id: UUID
    product_id: UUID
    seller_id: UUID
    category_id: Optional[UUID] = None
    sku: str
    product_name: str
    available: int
    is_active: bool = True
