"""Tax invoice issued per fulfillment unit.

Invoices are immutable once generated: the numbers are computed from the
unit's money breakdown at generation time and never recomputed.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from shared.domain.events import DomainEventMixin

_MONEY = {"max_digits": 12, "decimal_places": 2, "default": Decimal("0.00")}


class Invoice(DomainEventMixin, BaseModel):
    invoice_number = models.CharField(max_length=20, unique=True, editable=False)
    unit = models.OneToOneField(
        "orders.FulfillmentUnit",
        on_delete=models.PROTECT,
        related_name="invoice",
    )
    year = models.PositiveIntegerField()
    sequence = models.PositiveIntegerField()
    subtotal = models.DecimalField(**_MONEY)
    shipping_fee = models.DecimalField(**_MONEY)
    cgst = models.DecimalField(**_MONEY)
    sgst = models.DecimalField(**_MONEY)
    igst = models.DecimalField(**_MONEY)
    total_tax = models.DecimalField(**_MONEY)
    total_amount = models.DecimalField(**_MONEY)
    seller_state = models.CharField(max_length=100, blank=True, default="")
    buyer_state = models.CharField(max_length=100, blank=True, default="")
    generated_at = models.DateTimeField()

    class Meta:
        db_table = "invoices"
        ordering = ["year", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["year", "sequence"], name="invoices_year_sequence_uniq"
            ),
            models.CheckConstraint(
                condition=models.Q(total_tax=models.F("cgst") + models.F("sgst") + models.F("igst")),
                name="invoices_tax_split_reconciles",
            ),
        ]

    @property
    def is_intra_state(self) -> bool:
        return self.igst == Decimal("0.00") and self.total_tax > 0

    def __str__(self) -> str:
        return self.invoice_number
