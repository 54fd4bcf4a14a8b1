"""Integration tests for POST /api/v1/orders/ and order reads.

Covers:
- Checkout answers 201 with the order split into seller units.
- Idempotency-Key replays answer 200 with the original order.
- Domain errors come back in the standard error envelope.
- Admins may check out on a buyer's behalf; buyers may not.
- Order detail is scoped to the buyer, its sellers and admins.
- The checkout scope is throttled per actor.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.core.context import ActorKind
from modules.orders.constants import FulfillmentStatus
from modules.orders.models import AggregateOrder

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


@pytest.fixture()
def buyer_client(client_for, buyer_id):
    return client_for(buyer_id)


@pytest.fixture()
def cod_payload():
    return {"payment_method": "CASH_ON_DELIVERY", "coupon_code": "SAVE10"}


class TestCheckoutEndpoint:
    def test_creates_split_order(self, buyer_client, scenario_cart, make_promotion, cod_payload):
        make_promotion("SAVE10")

        response = buyer_client.post(URL, cod_payload, format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["total_amount"] == "1100.00"
        assert data["discount_amount"] == "100.00"
        assert data["tax_amount"] == "180.00"
        assert data["final_amount"] == "1180.00"
        assert data["coupon_code"] == "SAVE10"
        assert data["shipping_address"]["city"] == "Pune"
        units = sorted(data["units"], key=lambda unit: unit["unit_number"])
        assert [unit["seller_payout"] for unit in units] == ["515.00", "618.00"]
        assert [len(unit["items"]) for unit in units] == [1, 1]
        assert all(unit["status_history"] for unit in units)

    def test_replay_returns_original_order(self, buyer_client, scenario_cart, cod_payload, make_promotion):
        make_promotion("SAVE10")

        first = buyer_client.post(URL, cod_payload, format="json", HTTP_IDEMPOTENCY_KEY="chk-1")
        second = buyer_client.post(URL, cod_payload, format="json", HTTP_IDEMPOTENCY_KEY="chk-1")

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert AggregateOrder.objects.count() == 1

    def test_empty_cart_envelope(self, buyer_client):
        response = buyer_client.post(URL, {"payment_method": "ONLINE"}, format="json")

        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "validation_error"
        assert data["errors"][0]["code"] == "empty_cart"

    def test_rejected_coupon_envelope(self, buyer_client, scenario_cart):
        response = buyer_client.post(
            URL, {"payment_method": "ONLINE", "coupon_code": "NOPE"}, format="json"
        )

        assert response.status_code == 400
        error = response.json()["errors"][0]
        assert error["code"] == "not_found"
        assert error["attr"] == "coupon_code"
        assert not AggregateOrder.objects.exists()

    def test_insufficient_stock_names_the_product(
        self, buyer_client, make_cart, marketplace, buyer_id
    ):
        make_cart(buyer_id, [(marketplace.stock_y, "300.00", 11)])

        response = buyer_client.post(URL, {"payment_method": "ONLINE"}, format="json")

        assert response.status_code == 400
        error = response.json()["errors"][0]
        assert error["code"] == "insufficient_stock"
        assert "Product Y-MUG" in error["detail"]

    def test_invalid_payment_method(self, buyer_client, scenario_cart):
        response = buyer_client.post(URL, {"payment_method": "CHEQUE"}, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "payment_method"

    def test_admin_checks_out_for_buyer(self, client_for, admin_id, buyer_id, scenario_cart):
        client = client_for(admin_id, ActorKind.ADMIN)

        response = client.post(
            URL, {"buyer_id": str(buyer_id), "payment_method": "ONLINE"}, format="json"
        )

        assert response.status_code == 201
        assert response.json()["buyer_id"] == str(buyer_id)

    def test_buyer_id_ignored_for_buyers(self, client_for, buyer_id, scenario_cart):
        other = uuid4()
        client = client_for(other)

        response = client.post(
            URL, {"buyer_id": str(buyer_id), "payment_method": "ONLINE"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "empty_cart"

    def test_sellers_cannot_check_out(self, client_for, scenario_cart):
        client = client_for(uuid4(), ActorKind.SELLER)

        response = client.post(URL, {"payment_method": "ONLINE"}, format="json")

        assert response.status_code == 403
        assert response.json()["type"] == "authorization_error"

    def test_unauthenticated(self, api_client):
        response = api_client.post(URL, {"payment_method": "ONLINE"}, format="json")
        assert response.status_code == 401


class TestOrderDetail:
    def test_buyer_reads_own_order(self, buyer_client, scenario_a):
        response = buyer_client.get(f"{URL}{scenario_a.order.id}/")

        assert response.status_code == 200
        assert response.json()["order_number"] == scenario_a.order.order_number
        assert len(response.json()["units"]) == 2

    def test_seller_reads_order(self, client_for, scenario_a):
        client = client_for(scenario_a.seller_y, ActorKind.SELLER)

        response = client.get(f"{URL}{scenario_a.order.id}/")

        assert response.status_code == 200

    def test_stranger_is_refused(self, client_for, scenario_a):
        response = client_for(uuid4()).get(f"{URL}{scenario_a.order.id}/")
        assert response.status_code == 403

    def test_unknown_order(self, buyer_client):
        response = buyer_client.get(f"{URL}{uuid4()}/")

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "order_not_found"


class TestOrderCancellation:
    def test_buyer_cancels_whole_order(self, buyer_client, scenario_a):
        response = buyer_client.post(
            f"{URL}{scenario_a.order.id}/cancel/", {"reason": "Changed my mind"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["cancelled_at"] is not None
        assert {unit["status"] for unit in data["units"]} == {"CANCELLED"}
        scenario_a.stock_x.refresh_from_db()
        scenario_a.stock_y.refresh_from_db()
        assert (scenario_a.stock_x.stock, scenario_a.stock_y.stock) == (10, 10)

    def test_shipped_unit_blocks_cancellation(self, buyer_client, scenario_a, advance_unit):
        advance_unit(scenario_a.unit_x, FulfillmentStatus.SHIPPED)

        response = buyer_client.post(f"{URL}{scenario_a.order.id}/cancel/", {}, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "order_not_cancellable"


class TestCheckoutThrottle:
    def test_checkout_scope_is_limited(self, buyer_client):
        statuses = [
            buyer_client.post(URL, {"payment_method": "ONLINE"}, format="json").status_code
            for _ in range(11)
        ]

        assert statuses == [400] * 10 + [429]
        assert buyer_client.get(f"{URL}{uuid4()}/").status_code == 404

    def test_reads_are_not_checkout_scoped(self, buyer_client, scenario_a):
        for _ in range(5):
            response = buyer_client.get(f"{URL}{scenario_a.order.id}/")
            assert response.status_code == 200
