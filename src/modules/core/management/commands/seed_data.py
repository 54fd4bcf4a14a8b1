from __future__ import annotations

import random
import uuid
from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone

from modules.carts.models import Cart, CartItem, CartStatus
from modules.coupons.constants import CouponType
from modules.coupons.models import Promotion
from modules.inventory.models import StockRecord
from modules.pricing.models import TaxRate
from modules.sellers.services import SellerDirectory

# Stable ids so repeated runs and local JWTs line up.
_NS = uuid.UUID("6f1d3c52-8f4e-4c0a-9a55-3d2f7b0e9a10")
DEMO_BUYER_ID = uuid.uuid5(_NS, "buyer:demo")
ELECTRONICS = uuid.uuid5(_NS, "category:electronics")
HOME = uuid.uuid5(_NS, "category:home")


class Command(BaseCommand):
    help = "Seed database with sellers, stock, a promotion and a demo cart."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        self._seed_tax_rates()
        sellers = self._seed_sellers()
        stock = self._seed_stock(sellers)
        self._seed_promotions()
        lines = self._seed_cart(stock)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"sellers={len(sellers)}, "
                f"variants={len(stock)}, "
                f"cart_lines={lines}, "
                f"demo_buyer={DEMO_BUYER_ID}"
            )
        )

    def _seed_tax_rates(self) -> None:
        TaxRate.objects.get_or_create(
            category_id=ELECTRONICS, defaults={"rate": Decimal("0.18"), "hsn_code": "8471"}
        )
        TaxRate.objects.get_or_create(
            category_id=HOME, defaults={"rate": Decimal("0.12"), "hsn_code": "9403"}
        )

    def _seed_sellers(self) -> list[uuid.UUID]:
        self.stdout.write("Creating sellers...")
        directory = SellerDirectory()
        seed_sellers = [
            ("Lakshmi Electronics", "Maharashtra", "Mumbai", "400001"),
            ("Kaveri Home Studio", "Karnataka", "Bengaluru", "560001"),
            ("Ganga Gadgets", "Uttar Pradesh", "Lucknow", "226001"),
        ]
        sellers: list[uuid.UUID] = []
        for name, state, city, pin in seed_sellers:
            seller_id = uuid.uuid5(_NS, f"seller:{name}")
            directory.upsert(
                seller_id,
                display_name=name,
                state=state,
                pickup_address={
                    "name": name,
                    "line1": "1 Warehouse Road",
                    "city": city,
                    "state": state,
                    "postal_code": pin,
                },
            )
            sellers.append(seller_id)
        self.stdout.write(self.style.SUCCESS("Creating sellers... Done!"))
        return sellers

    def _seed_stock(self, sellers: list[uuid.UUID]) -> list[tuple[StockRecord, Decimal]]:
        self.stdout.write("Creating stock...")
        catalog = [
            ("ELEC-001", "27in Monitor", ELECTRONICS, Decimal("14999.00")),
            ("ELEC-002", "Mechanical Keyboard", ELECTRONICS, Decimal("3499.00")),
            ("ELEC-003", "Wireless Mouse", ELECTRONICS, Decimal("899.00")),
            ("HOME-001", "Study Table", HOME, Decimal("7999.00")),
            ("HOME-002", "Ergonomic Chair", HOME, Decimal("11999.00")),
            ("HOME-003", "Bookshelf", HOME, Decimal("5499.00")),
        ]
        records: list[tuple[StockRecord, Decimal]] = []
        for index, (sku, name, category, price) in enumerate(catalog):
            record, _ = StockRecord.objects.get_or_create(
                variant_id=uuid.uuid5(_NS, f"variant:{sku}"),
                defaults={
                    "product_id": uuid.uuid5(_NS, f"product:{sku}"),
                    "seller_id": sellers[index % len(sellers)],
                    "category_id": category,
                    "sku": sku,
                    "product_name": name,
                    "stock": random.randint(10, 200),
                },
            )
            records.append((record, price))
        self.stdout.write(self.style.SUCCESS("Creating stock... Done!"))
        return records

    def _seed_promotions(self) -> None:
        now = timezone.now()
        Promotion.objects.get_or_create(
            code="WELCOME10",
            defaults={
                "description": "10% off, up to 500",
                "coupon_type": CouponType.PERCENTAGE,
                "value": Decimal("10"),
                "max_discount_amount": Decimal("500.00"),
                "min_order_value": Decimal("1000.00"),
                "usage_limit": 1000,
                "per_customer_limit": 1,
                "start_date": now,
                "end_date": now + timedelta(days=90),
            },
        )

    def _seed_cart(self, stock: list[tuple[StockRecord, Decimal]]) -> int:
        cart, _ = Cart.objects.get_or_create(
            buyer_id=DEMO_BUYER_ID,
            status=CartStatus.ACTIVE,
            defaults={
                "shipping_address": {
                    "name": "Demo Buyer",
                    "line1": "42 MG Road",
                    "city": "Pune",
                    "state": "Maharashtra",
                    "postal_code": "411001",
                }
            },
        )
        created = 0
        for record, price in random.sample(stock, k=3):
            _, was_created = CartItem.objects.get_or_create(
                cart=cart,
                variant_id=record.variant_id,
                defaults={"quantity": 1, "unit_price": price},
            )
            created += int(was_created)
        return created
