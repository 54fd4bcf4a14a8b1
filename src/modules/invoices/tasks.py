"""Asynchronous invoice generation."""

from __future__ import annotations

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


def build_invoice_service():
    from modules.invoices.services import InvoiceService
    from modules.orders.repositories.django_repository import OrderDjangoRepository

    return InvoiceService(order_repository=OrderDjangoRepository())


@shared_task(name="invoices.generate_order_invoices")
def generate_order_invoices(order_id: str) -> dict:
    """Invoice every confirmed unit of an order."""
    invoices = build_invoice_service().generate_for_order(order_id)
    numbers = [invoice.invoice_number for invoice in invoices]
    logger.info("invoice.task_completed", order_id=order_id, invoice_numbers=numbers)
    return {"order_id": order_id, "invoice_numbers": numbers}
