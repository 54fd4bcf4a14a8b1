"""Invoice generation and rendering.

Business rules enforced:
- One invoice per fulfillment unit; generating again returns it.
- Numbers are ``INV-<year>-<6 digits>`` from the per-year sequence
  counter, so they are gap-free within committed transactions.
- GST is split from the unit's tax: CGST + SGST when the seller and the
  order's shipping state match, IGST otherwise.
- Only units past PENDING and not CANCELLED are invoiced.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

import structlog
from django.db import IntegrityError, transaction
from django.template.loader import render_to_string
from django.utils import timezone

from modules.core.context import RequestContext
from modules.core.models import SequenceCounter
from modules.invoices.constants import (
    INVOICE_NUMBER_SEQUENCE,
    INVOICE_NUMBER_WIDTH,
    NON_INVOICEABLE_STATES,
)
from modules.invoices.events import InvoiceGenerated
from modules.invoices.exceptions import InvoiceNotFound, UnitNotInvoiceable
from modules.invoices.models import Invoice
from modules.orders.exceptions import OrderNotFound, UnitNotFound
from modules.pricing.services import TaxCommissionCalculator
from modules.sellers.services import SellerDirectory
from shared.infrastructure.outbox import flush_domain_events

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class InvoiceService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        sellers: Optional[SellerDirectory] = None,
    ) -> None:
        self._order_repo = order_repository
        self._sellers = sellers or SellerDirectory()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_for_unit(self, ctx: RequestContext, unit_id: Any) -> Invoice:
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        ctx.require_party(unit.order.buyer_id, unit.seller_id)
        invoice = Invoice.objects.filter(unit_id=unit.id).first()
        if invoice is None:
            raise InvoiceNotFound(f"No invoice for unit {unit.unit_number}.")
        return invoice

    def render(self, invoice: Invoice) -> str:
        """HTML for *invoice* from its stored numbers and item snapshots."""
        unit = self._order_repo.get_unit(invoice.unit_id)
        order = unit.order
        return render_to_string(
            "invoices/invoice.html",
            {
                "invoice": invoice,
                "unit": unit,
                "order": order,
                "items": list(unit.items.all()),
                "seller": self._sellers.find(unit.seller_id),
                "shipping_address": order.shipping_address or {},
            },
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def generate_for_unit(self, unit_id: Any) -> Invoice:
        """Issue the invoice of one unit, or return the one already issued.

        Raises:
            UnitNotFound: unit does not exist.
            UnitNotInvoiceable: unit is PENDING or CANCELLED.
        """
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        log = logger.bind(unit_id=str(unit.id), unit_number=unit.unit_number)

        existing = Invoice.objects.filter(unit_id=unit.id).first()
        if existing is not None:
            return existing
        if unit.status in NON_INVOICEABLE_STATES:
            raise UnitNotInvoiceable(
                f"Unit {unit.unit_number} is {unit.status} and cannot be invoiced."
            )

        seller_state = self._sellers.state_of(unit.seller_id)
        buyer_state = unit.order.buyer_state
        split = TaxCommissionCalculator.split_gst(unit.tax_amount, seller_state, buyer_state)

        try:
            with transaction.atomic():
                now = timezone.now()
                sequence = SequenceCounter.next_value(INVOICE_NUMBER_SEQUENCE, now.year)
                invoice = Invoice(
                    invoice_number=f"INV-{now.year}-{sequence:0{INVOICE_NUMBER_WIDTH}d}",
                    unit=unit,
                    year=now.year,
                    sequence=sequence,
                    subtotal=unit.subtotal,
                    shipping_fee=unit.shipping_fee,
                    cgst=split.cgst,
                    sgst=split.sgst,
                    igst=split.igst,
                    total_tax=split.total,
                    total_amount=unit.subtotal + unit.shipping_fee + split.total,
                    seller_state=seller_state,
                    buyer_state=buyer_state,
                    generated_at=now,
                )
                invoice.add_domain_event(
                    InvoiceGenerated(
                        aggregate_id=invoice.id,
                        invoice_number=invoice.invoice_number,
                        unit_id=unit.id,
                        total_amount=str(invoice.total_amount),
                    )
                )
                invoice.save()
                flush_domain_events(invoice, topic="invoices")
        except IntegrityError:
            # Lost a race with a concurrent generation for the same unit.
            log.info("invoice.already_generated")
            return Invoice.objects.get(unit_id=unit.id)

        log.info(
            "invoice.generated",
            invoice_number=invoice.invoice_number,
            intra_state=split.is_intra_state,
            total_amount=str(invoice.total_amount),
        )
        return invoice

    @transaction.atomic
    def generate_for_order(self, order_id: Any) -> List[Invoice]:
        """Invoice every eligible unit of an order; others are skipped."""
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        invoices = [
            self.generate_for_unit(unit.id)
            for unit in order.units.all()
            if unit.status not in NON_INVOICEABLE_STATES
        ]
        logger.info(
            "invoice.order_invoiced", order_id=str(order.id), invoice_count=len(invoices)
        )
        return invoices
