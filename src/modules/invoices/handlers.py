"""Event handlers for invoicing events."""

from __future__ import annotations

import structlog

from modules.invoices.events import InvoiceGenerated
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class InvoiceGeneratedHandler(IEventHandler[InvoiceGenerated]):
    def handle(self, event: InvoiceGenerated) -> None:
        logger.info(
            "invoice.generated_event",
            invoice_id=str(event.aggregate_id),
            invoice_number=event.invoice_number,
            unit_id=str(event.unit_id),
        )


invoice_generated_handler = InvoiceGeneratedHandler()
