"""Invoice numbering and eligibility."""

from __future__ import annotations

from modules.orders.constants import FulfillmentStatus

INVOICE_NUMBER_SEQUENCE = "invoice"
INVOICE_NUMBER_WIDTH = 6

# Units that were never confirmed, or were cancelled, get no invoice.
NON_INVOICEABLE_STATES: set[str] = {FulfillmentStatus.PENDING, FulfillmentStatus.CANCELLED}
