"""Domain events for invoicing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class InvoiceGenerated(DomainEvent):
    """``aggregate_id`` is the invoice id."""

    invoice_number: str = ""
    unit_id: Optional[UUID] = None
    total_amount: str = "0.00"
