"""Tax & Commission Calculator.

Per-unit money is computed on the unit's own subtotal:

- tax          = sum(round(line_subtotal * category_rate))
- platform fee = round(subtotal * commission_rate)
- payout       = subtotal + tax + shipping - platform fee

For invoicing the stored unit tax is re-split into CGST/SGST halves when
the seller and buyer are in the same state, IGST otherwise.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import Q

from modules.core.money import ZERO, allocate, to_money
from modules.pricing.dtos import GstSplit, PricedLine, UnitCharges
from modules.pricing.models import CommissionRule, TaxRate
from modules.sellers.models import SellerProfile

logger = structlog.get_logger(__name__)


def normalize_state(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class TaxCommissionCalculator:
    """Rate look-ups and money arithmetic for fulfillment units.

    Rates are cached per instance; create one calculator per checkout.
    """

    def __init__(self) -> None:
        self._tax_rates: Dict[Optional[UUID], Decimal] = {}
        self._commission_rates: Dict[tuple, Decimal] = {}

    # ------------------------------------------------------------------
    # Rate resolution
    # ------------------------------------------------------------------

    def tax_rate_for(self, category_id: Optional[UUID]) -> Decimal:
        if category_id not in self._tax_rates:
            rate = None
            if category_id is not None:
                rate = (
                    TaxRate.objects.filter(category_id=category_id)
                    .values_list("rate", flat=True)
                    .first()
                )
            self._tax_rates[category_id] = (
                Decimal(rate) if rate is not None else Decimal(settings.DEFAULT_TAX_RATE)
            )
        return self._tax_rates[category_id]

    def commission_rate_for(
        self, seller_id: UUID, category_id: Optional[UUID] = None
    ) -> Decimal:
        """Most specific rule wins: seller+category, seller, category.

        Falls back to the seller profile override, then the platform default.
        """
        key = (seller_id, category_id)
        if key in self._commission_rates:
            return self._commission_rates[key]

        rules = CommissionRule.objects.filter(is_active=True).filter(
            Q(seller_id=seller_id, category_id=category_id)
            | Q(seller_id=seller_id, category_id__isnull=True)
            | Q(seller_id__isnull=True, category_id=category_id)
        )
        by_scope = {}
        for rule in rules:
            if rule.seller_id and rule.category_id:
                by_scope[0] = rule.rate
            elif rule.seller_id:
                by_scope[1] = rule.rate
            elif category_id is not None:
                by_scope[2] = rule.rate

        if by_scope:
            rate = by_scope[min(by_scope)]
        else:
            override = (
                SellerProfile.objects.filter(seller_id=seller_id)
                .values_list("commission_rate", flat=True)
                .first()
            )
            rate = override if override is not None else settings.DEFAULT_COMMISSION_RATE

        self._commission_rates[key] = Decimal(rate)
        return self._commission_rates[key]

    # ------------------------------------------------------------------
    # Unit and order money
    # ------------------------------------------------------------------

    def line_tax(self, line: PricedLine, base: Optional[Decimal] = None) -> Decimal:
        taxable = line.subtotal if base is None else base
        return to_money(taxable * self.tax_rate_for(line.category_id))

    def compute_unit(
        self,
        seller_id: UUID,
        lines: Sequence[PricedLine],
        shipping_fee: Decimal = ZERO,
    ) -> UnitCharges:
        """Money breakdown for one seller's lines.

        Commission is resolved by the first line's category when the lines
        mix categories.
        """
        subtotal = to_money(sum((line.subtotal for line in lines), ZERO))
        line_taxes = [self.line_tax(line) for line in lines]
        tax_amount = to_money(sum(line_taxes, ZERO))
        category_id = lines[0].category_id if lines else None
        commission_rate = self.commission_rate_for(seller_id, category_id)
        platform_fee = to_money(subtotal * commission_rate)
        shipping_fee = to_money(shipping_fee)
        seller_payout = subtotal + tax_amount + shipping_fee - platform_fee
        return UnitCharges(
            subtotal=subtotal,
            tax_amount=tax_amount,
            platform_fee=platform_fee,
            shipping_fee=shipping_fee,
            seller_payout=seller_payout,
            commission_rate=commission_rate,
            line_taxes=line_taxes,
        )

    def order_tax(self, lines: Sequence[PricedLine], discount: Decimal = ZERO) -> Decimal:
        """Tax on the discounted taxable amount of a whole order.

        The discount is spread over the lines in proportion to their
        subtotals and every line is taxed on what remains.
        """
        if not lines:
            return ZERO
        shares = allocate(discount, [line.subtotal for line in lines])
        return to_money(
            sum(
                (
                    self.line_tax(line, base=line.subtotal - share)
                    for line, share in zip(lines, shares)
                ),
                ZERO,
            )
        )

    @staticmethod
    def shipping_fee_for(subtotal: Decimal) -> Decimal:
        """Flat per-unit fee, waived at or above the free-shipping threshold."""
        fee = to_money(settings.UNIT_SHIPPING_FEE)
        threshold = to_money(settings.FREE_SHIPPING_THRESHOLD)
        if threshold > ZERO and subtotal >= threshold:
            return ZERO
        return fee

    # ------------------------------------------------------------------
    # GST split
    # ------------------------------------------------------------------

    @staticmethod
    def split_gst(
        total_tax: Decimal, seller_state: Optional[str], buyer_state: Optional[str]
    ) -> GstSplit:
        total_tax = to_money(total_tax)
        seller = normalize_state(seller_state)
        if seller and seller == normalize_state(buyer_state):
            cgst = to_money(total_tax / 2)
            return GstSplit(cgst=cgst, sgst=total_tax - cgst, igst=ZERO)
        return GstSplit(cgst=ZERO, sgst=ZERO, igst=total_tax)
