"""Return and refund DTOs for the Service Layer (Pydantic v2, frozen)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.returns.constants import (
    REASON_MIN_LENGTH,
    RefundMethod,
    RefundStatus,
    ReturnStatus,
)


class ReturnItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    quantity: int = Field(ge=1)
    refund_amount: Decimal = Field(ge=0)


class CreateReturnDTO(BaseModel):
    """A buyer's return request for one delivered unit."""

    model_config = ConfigDict(frozen=True)

    unit_id: UUID
    reason: str = Field(min_length=REASON_MIN_LENGTH)
    description: str = ""
    items: List[ReturnItemDTO] = Field(min_length=1)
    pickup_address: Optional[Dict[str, Any]] = None

    @field_validator("items")
    @classmethod
    def items_are_distinct(cls, v: List[ReturnItemDTO]) -> List[ReturnItemDTO]:
        ids = [item.item_id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each item may appear only once.")
        return v


class ReturnStatusUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    return_id: UUID
    status: ReturnStatus
    rejection_reason: str = ""
    tracking_number: str = ""
    notes: str = ""


class CreateRefundDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    return_id: UUID
    amount: Decimal = Field(gt=0)
    method: RefundMethod = RefundMethod.ORIGINAL_PAYMENT_METHOD
    transaction_id: str = ""


class RefundStatusUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    refund_id: UUID
    status: RefundStatus
    transaction_id: str = ""
    failure_reason: str = ""
