"""Tax rates and commission rules."""

from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel

_RATE_VALIDATORS = [MinValueValidator(0), MaxValueValidator(1)]


class TaxRate(BaseModel):
    """GST rate for a product category (natural key ``category_id``)."""

    category_id = models.UUIDField(unique=True)
    rate = models.DecimalField(max_digits=5, decimal_places=4, validators=_RATE_VALIDATORS)
    hsn_code = models.CharField(max_length=8, blank=True, default="")

    class Meta:
        db_table = "tax_rates"

    def __str__(self) -> str:
        return f"{self.category_id}: {self.rate}"


class CommissionRule(BaseModel):
    """Platform commission for a seller, a category or a seller+category pair.

    At least one of ``seller_id`` / ``category_id`` is set; the calculator
    picks the most specific active rule.
    """

    seller_id = models.UUIDField(null=True, blank=True, db_index=True)
    category_id = models.UUIDField(null=True, blank=True)
    rate = models.DecimalField(max_digits=5, decimal_places=4, validators=_RATE_VALIDATORS)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "commission_rules"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(seller_id__isnull=False)
                | models.Q(category_id__isnull=False),
                name="commission_rules_scope_required",
            ),
            models.UniqueConstraint(
                fields=["seller_id", "category_id"],
                name="commission_rules_scope_uniq",
            ),
        ]

    def __str__(self) -> str:
        return f"seller={self.seller_id} category={self.category_id}: {self.rate}"
