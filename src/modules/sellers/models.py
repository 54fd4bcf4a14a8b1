"""Seller profile consumed by the fulfillment engine.

Onboarding (documents, bank details, KYC) lives outside this project; the
engine only needs the seller's registered state for the GST split, a pickup
address for shipments and an optional commission override.
"""

from __future__ import annotations

import re

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel

GSTIN_PATTERN = re.compile(r"^\d{2}[A-Z]{5}\d{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")


class SellerProfile(BaseModel):
    """Fulfillment-relevant view of a seller, keyed by the external seller id.

    ``seller_id`` is the natural key (unique); writers upsert on it.
    """

    seller_id = models.UUIDField(unique=True)
    display_name = models.CharField(max_length=255)
    gstin = models.CharField(max_length=15, blank=True, default="")
    state = models.CharField(max_length=100)
    pickup_address = models.JSONField(default=dict, blank=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(1)],
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "seller_profiles"
        ordering = ["display_name"]

    def clean(self) -> None:
        super().clean()
        if self.gstin:
            self.gstin = self.gstin.strip().upper()
            if not GSTIN_PATTERN.match(self.gstin):
                raise ValidationError({"gstin": "Invalid GSTIN."})

    def save(self, *args, **kwargs) -> None:
        if self.gstin:
            self.gstin = self.gstin.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.state})"
