from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from django.core.cache import cache
from django.utils import timezone

from rest_framework.test import APIClient

from modules.carts.models import Cart, CartItem
from modules.carts.providers import DjangoCartProvider
from modules.core.authentication import ActorUser
from modules.core.context import ActorKind, RequestContext
from modules.coupons.constants import CouponType
from modules.coupons.models import Promotion
from modules.coupons.services import CouponEngine
from modules.inventory.models import StockRecord
from modules.inventory.providers import DjangoInventoryProvider
from modules.invoices.services import InvoiceService
from modules.orders.constants import FORWARD_PATH, FulfillmentStatus, PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, UnitStatusUpdateDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import CheckoutService, FulfillmentService
from modules.payments.services import PaymentService
from modules.returns.repositories.django_repository import ReturnDjangoRepository
from modules.returns.services import RefundService, ReturnService
from modules.sellers.services import SellerDirectory
from modules.shipping.carriers import SandboxCarrier
from modules.shipping.services import ShipmentService

BUYER_ADDRESS = {
    "name": "Asha Rao",
    "line1": "42 MG Road",
    "city": "Pune",
    "state": "Maharashtra",
    "postal_code": "411001",
}


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _isolated_environment(settings):
    """Fresh throttle counters and a carrier that books locally."""
    cache.clear()
    settings.CARRIER_CLIENT = "modules.shipping.carriers.SandboxCarrier"


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def client_for():
    """Build an APIClient authenticated as a platform actor."""

    def _make(actor_id, kind=ActorKind.BUYER) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=ActorUser(actor_id=actor_id, actor_kind=ActorKind(kind)))
        return client

    return _make


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def buyer_id():
    return uuid4()


@pytest.fixture()
def admin_id():
    return uuid4()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_seller():
    def _make(seller_id=None, state="Maharashtra", display_name="Test Seller", **fields):
        seller_id = seller_id or uuid4()
        SellerDirectory().upsert(
            seller_id,
            display_name=display_name,
            state=state,
            pickup_address={
                "name": display_name,
                "line1": "1 Warehouse Road",
                "city": "Mumbai",
                "state": state,
                "postal_code": "400001",
            },
            **fields,
        )
        return seller_id

    return _make


@pytest.fixture()
def make_stock():
    def _make(seller_id, sku="SKU-001", stock=10, category_id=None, product_name=None):
        return StockRecord.objects.create(
            variant_id=uuid4(),
            product_id=uuid4(),
            seller_id=seller_id,
            category_id=category_id,
            sku=sku,
            product_name=product_name or f"Product {sku}",
            stock=stock,
        )

    return _make


@pytest.fixture()
def make_cart():
    """``lines`` is a list of ``(stock_record, unit_price, quantity)``."""

    def _make(buyer_id, lines, shipping_address=None):
        cart = Cart.objects.create(
            buyer_id=buyer_id,
            shipping_address=BUYER_ADDRESS if shipping_address is None else shipping_address,
        )
        for record, price, quantity in lines:
            CartItem.objects.create(
                cart=cart,
                variant_id=record.variant_id,
                quantity=quantity,
                unit_price=Decimal(price),
            )
        return cart

    return _make


@pytest.fixture()
def make_promotion():
    def _make(code="SAVE10", **overrides):
        now = timezone.now()
        fields = {
            "coupon_type": CouponType.PERCENTAGE,
            "value": Decimal("10"),
            "max_discount_amount": Decimal("100.00"),
            "min_order_value": Decimal("500.00"),
            "usage_limit": 100,
            "per_customer_limit": 1,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
        }
        fields.update(overrides)
        return Promotion.objects.create(code=code, **fields)

    return _make


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_repository():
    return OrderDjangoRepository()


@pytest.fixture()
def checkout_service(order_repository):
    return CheckoutService(
        order_repository=order_repository,
        cart_provider=DjangoCartProvider(),
        inventory_provider=DjangoInventoryProvider(),
        coupon_engine=CouponEngine(),
    )


@pytest.fixture()
def fulfillment_service(order_repository):
    return FulfillmentService(
        order_repository=order_repository,
        inventory_provider=DjangoInventoryProvider(),
        coupon_engine=CouponEngine(),
    )


@pytest.fixture()
def return_service(order_repository, fulfillment_service):
    return ReturnService(
        return_repository=ReturnDjangoRepository(),
        order_repository=order_repository,
        fulfillment_service=fulfillment_service,
    )


@pytest.fixture()
def refund_service():
    return RefundService(
        return_repository=ReturnDjangoRepository(),
        inventory_provider=DjangoInventoryProvider(),
    )


@pytest.fixture()
def payment_service(order_repository, fulfillment_service):
    return PaymentService(
        order_repository=order_repository,
        fulfillment_service=fulfillment_service,
    )


@pytest.fixture()
def shipment_service(order_repository, fulfillment_service):
    return ShipmentService(
        order_repository=order_repository,
        fulfillment_service=fulfillment_service,
        carrier=SandboxCarrier(),
    )


@pytest.fixture()
def invoice_service(order_repository):
    return InvoiceService(order_repository=order_repository)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def marketplace(make_seller, make_stock):
    """Seller X in the buyer's state, seller Y in another, 10 of each item."""
    seller_x = make_seller(state="Maharashtra", display_name="Seller X")
    seller_y = make_seller(state="Karnataka", display_name="Seller Y")
    return SimpleNamespace(
        seller_x=seller_x,
        seller_y=seller_y,
        stock_x=make_stock(seller_x, sku="X-LAMP"),
        stock_y=make_stock(seller_y, sku="Y-MUG"),
    )


@pytest.fixture()
def place_order(checkout_service, buyer_id):
    def _place(buyer=None, **fields):
        buyer = buyer or buyer_id
        fields.setdefault("payment_method", PaymentMethod.CASH_ON_DELIVERY)
        dto = PlaceOrderDTO(buyer_id=buyer, **fields)
        return checkout_service.place_order(RequestContext.buyer(buyer), dto)

    return _place


@pytest.fixture()
def scenario_cart(make_cart, marketplace, buyer_id):
    """X sells 500 x 1, Y sells 300 x 2."""
    return make_cart(
        buyer_id,
        [(marketplace.stock_x, "500.00", 1), (marketplace.stock_y, "300.00", 2)],
    )


@pytest.fixture()
def scenario_a(marketplace, scenario_cart, make_promotion, place_order, buyer_id):
    """Cash-on-delivery order from the scenario cart with SAVE10 applied."""
    make_promotion("SAVE10")
    order = place_order(coupon_code="SAVE10")
    unit_x, unit_y = order.units.order_by("sequence")
    return SimpleNamespace(
        order=order,
        unit_x=unit_x,
        unit_y=unit_y,
        buyer_id=buyer_id,
        **vars(marketplace),
    )


@pytest.fixture()
def advance_unit(fulfillment_service):
    """Walk a unit forward as its seller up to *target*."""

    def _advance(unit, target=FulfillmentStatus.DELIVERED):
        unit.refresh_from_db()
        ctx = RequestContext.seller(unit.seller_id)
        start = FORWARD_PATH.index(unit.status)
        for status in FORWARD_PATH[start + 1 : FORWARD_PATH.index(target) + 1]:
            fulfillment_service.update_unit_status(
                ctx, UnitStatusUpdateDTO(unit_id=unit.id, status=status)
            )
        unit.refresh_from_db()
        return unit

    return _advance
