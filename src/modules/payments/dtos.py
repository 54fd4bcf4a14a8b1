"""Payment webhook payload (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentWebhookDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1, max_length=255)
    event: str = Field(min_length=1, max_length=50)
    gateway_order_ref: str = Field(min_length=1, max_length=100)
    payment_ref: str = ""
    amount: Optional[Decimal] = None
    currency: str = ""
    status: str = ""
    error_code: Optional[str] = None
    error_description: Optional[str] = None
