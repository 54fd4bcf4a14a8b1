"""Unit tests for TaxCommissionCalculator.

Covers:
- Tax and commission rate resolution with fallbacks.
- Unit money breakdown and payout reconciliation.
- Order tax on the discounted taxable amount.
- Shipping fee and free-shipping threshold.
- CGST/SGST versus IGST split.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.money import ZERO
from modules.pricing.dtos import PricedLine
from modules.pricing.models import CommissionRule, TaxRate
from modules.pricing.services import TaxCommissionCalculator

pytestmark = pytest.mark.unit


def _line(price, quantity=1, category_id=None) -> PricedLine:
    return PricedLine(category_id=category_id, quantity=quantity, unit_price=Decimal(price))


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------


class TestRateResolution:
    def test_default_tax_rate(self):
        assert TaxCommissionCalculator().tax_rate_for(None) == Decimal("0.18")

    def test_category_tax_rate(self):
        category = uuid4()
        TaxRate.objects.create(category_id=category, rate=Decimal("0.05"))
        assert TaxCommissionCalculator().tax_rate_for(category) == Decimal("0.05")

    def test_default_commission_rate(self):
        assert TaxCommissionCalculator().commission_rate_for(uuid4()) == Decimal("0.15")

    def test_seller_profile_override(self, make_seller):
        seller = make_seller(commission_rate=Decimal("0.08"))
        assert TaxCommissionCalculator().commission_rate_for(seller) == Decimal("0.08")

    def test_most_specific_rule_wins(self):
        seller, category = uuid4(), uuid4()
        CommissionRule.objects.create(category_id=category, rate=Decimal("0.20"))
        CommissionRule.objects.create(seller_id=seller, rate=Decimal("0.12"))
        CommissionRule.objects.create(
            seller_id=seller, category_id=category, rate=Decimal("0.10")
        )
        calculator = TaxCommissionCalculator()
        assert calculator.commission_rate_for(seller, category) == Decimal("0.10")
        assert calculator.commission_rate_for(seller, uuid4()) == Decimal("0.12")
        assert calculator.commission_rate_for(uuid4(), category) == Decimal("0.20")

    def test_inactive_rules_are_ignored(self):
        seller = uuid4()
        CommissionRule.objects.create(seller_id=seller, rate=Decimal("0.01"), is_active=False)
        assert TaxCommissionCalculator().commission_rate_for(seller) == Decimal("0.15")


# ---------------------------------------------------------------------------
# Unit and order money
# ---------------------------------------------------------------------------


class TestComputeUnit:
    def test_single_seller_breakdown(self):
        charges = TaxCommissionCalculator().compute_unit(uuid4(), [_line("500.00")])
        assert charges.subtotal == Decimal("500.00")
        assert charges.tax_amount == Decimal("90.00")
        assert charges.platform_fee == Decimal("75.00")
        assert charges.shipping_fee == ZERO
        assert charges.seller_payout == Decimal("515.00")

    def test_payout_reconciles_with_shipping(self):
        charges = TaxCommissionCalculator().compute_unit(
            uuid4(), [_line("300.00", 2), _line("99.99")], Decimal("40")
        )
        assert charges.seller_payout == (
            charges.subtotal + charges.tax_amount + charges.shipping_fee - charges.platform_fee
        )
        assert charges.line_taxes == [Decimal("108.00"), Decimal("18.00")]

    def test_tax_uses_each_line_category(self):
        books = uuid4()
        TaxRate.objects.create(category_id=books, rate=Decimal("0.00"))
        charges = TaxCommissionCalculator().compute_unit(
            uuid4(), [_line("100.00", category_id=books), _line("100.00")]
        )
        assert charges.line_taxes == [ZERO, Decimal("18.00")]
        assert charges.tax_amount == Decimal("18.00")


class TestOrderTax:
    def test_tax_on_discounted_amount(self):
        lines = [_line("500.00"), _line("300.00", 2)]
        tax = TaxCommissionCalculator().order_tax(lines, Decimal("100.00"))
        assert tax == Decimal("180.00")

    def test_no_discount(self):
        tax = TaxCommissionCalculator().order_tax([_line("1100.00")])
        assert tax == Decimal("198.00")

    def test_no_lines(self):
        assert TaxCommissionCalculator().order_tax([], Decimal("10")) == ZERO


class TestShippingFee:
    def test_default_is_free(self):
        assert TaxCommissionCalculator.shipping_fee_for(Decimal("100")) == ZERO

    def test_flat_fee_below_threshold(self, settings):
        settings.UNIT_SHIPPING_FEE = Decimal("40.00")
        settings.FREE_SHIPPING_THRESHOLD = Decimal("499.00")
        assert TaxCommissionCalculator.shipping_fee_for(Decimal("300")) == Decimal("40.00")

    def test_waived_at_threshold(self, settings):
        settings.UNIT_SHIPPING_FEE = Decimal("40.00")
        settings.FREE_SHIPPING_THRESHOLD = Decimal("499.00")
        assert TaxCommissionCalculator.shipping_fee_for(Decimal("499.00")) == ZERO


# ---------------------------------------------------------------------------
# GST split
# ---------------------------------------------------------------------------


class TestSplitGst:
    def test_intra_state_halves(self):
        split = TaxCommissionCalculator.split_gst(Decimal("90.00"), "Maharashtra", "maharashtra ")
        assert (split.cgst, split.sgst, split.igst) == (
            Decimal("45.00"),
            Decimal("45.00"),
            ZERO,
        )
        assert split.is_intra_state

    def test_odd_paise_split_sums_to_total(self):
        split = TaxCommissionCalculator.split_gst(Decimal("0.05"), "Goa", "Goa")
        assert split.cgst + split.sgst == Decimal("0.05")
        assert split.total == Decimal("0.05")

    def test_inter_state_is_igst(self):
        split = TaxCommissionCalculator.split_gst(Decimal("108.00"), "Karnataka", "Maharashtra")
        assert (split.cgst, split.sgst, split.igst) == (ZERO, ZERO, Decimal("108.00"))
        assert not split.is_intra_state

    def test_unknown_seller_state_is_igst(self):
        split = TaxCommissionCalculator.split_gst(Decimal("18.00"), "", "")
        assert split.igst == Decimal("18.00")
