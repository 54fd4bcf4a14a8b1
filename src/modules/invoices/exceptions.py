"""Invoice domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import NotFound, ValidationFailed


class InvoiceNotFound(NotFound):
    default_code = "invoice_not_found"


class UnitNotInvoiceable(ValidationFailed):
    """The unit is still PENDING or was cancelled."""

    default_code = "unit_not_invoiceable"
