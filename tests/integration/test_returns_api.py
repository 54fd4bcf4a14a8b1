"""Integration tests for the return and refund endpoints.

Covers:
- Buyer opens a return; the seller walks it to INSPECTED.
- Refund creation, completion and the restock that follows.
- Window, claim and reason validation in the error envelope.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from freezegun import freeze_time

from modules.core.context import ActorKind

pytestmark = pytest.mark.integration

RETURNS = "/api/v1/returns/"
REFUNDS = "/api/v1/refunds/"


@pytest.fixture()
def delivered_y(scenario_a, advance_unit):
    return advance_unit(scenario_a.unit_y)


@pytest.fixture()
def buyer_client(client_for, scenario_a):
    return client_for(scenario_a.buyer_id)


@pytest.fixture()
def seller_client(client_for, scenario_a):
    return client_for(scenario_a.seller_y, ActorKind.SELLER)


def _return_payload(unit, quantity=1, amount="354.00"):
    return {
        "unit_id": str(unit.id),
        "reason": "The mug arrived with a cracked handle.",
        "items": [
            {
                "item_id": str(unit.items.get().id),
                "quantity": quantity,
                "refund_amount": amount,
            }
        ],
    }


def _walk(client, return_id, *statuses):
    response = None
    for status in statuses:
        response = client.post(f"{RETURNS}{return_id}/status/", {"status": status}, format="json")
        assert response.status_code == 200, response.json()
    return response


class TestCreateReturn:
    def test_buyer_opens_return(self, buyer_client, delivered_y):
        response = buyer_client.post(RETURNS, _return_payload(delivered_y), format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "REQUESTED"
        assert data["return_number"].startswith("RET-")
        assert data["unit_id"] == str(delivered_y.id)
        assert data["items"][0]["sku"] == "Y-MUG"
        assert data["items"][0]["refund_amount"] == "354.00"

    def test_window_expired(self, buyer_client, delivered_y):
        with freeze_time(delivered_y.delivered_at + timedelta(days=8)):
            response = buyer_client.post(RETURNS, _return_payload(delivered_y), format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "return_window_expired"

    def test_claim_above_paid(self, buyer_client, delivered_y):
        response = buyer_client.post(
            RETURNS, _return_payload(delivered_y, amount="354.01"), format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "refund_amount_exceeded"

    def test_short_reason(self, buyer_client, delivered_y):
        payload = {**_return_payload(delivered_y), "reason": "Broken"}

        response = buyer_client.post(RETURNS, payload, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "reason"

    def test_undelivered_unit(self, buyer_client, scenario_a):
        response = buyer_client.post(
            RETURNS, _return_payload(scenario_a.unit_x, amount="590.00"), format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "unit_not_delivered"

    def test_second_open_return(self, buyer_client, delivered_y):
        buyer_client.post(RETURNS, _return_payload(delivered_y), format="json")

        response = buyer_client.post(RETURNS, _return_payload(delivered_y), format="json")

        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "return_already_exists"


class TestReturnLifecycle:
    @pytest.fixture()
    def opened(self, buyer_client, delivered_y):
        response = buyer_client.post(RETURNS, _return_payload(delivered_y), format="json")
        return response.json()

    def test_seller_inspects_and_refunds(self, seller_client, buyer_client, opened, scenario_a):
        _walk(
            seller_client,
            opened["id"],
            "APPROVED",
            "PICKED_UP",
            "IN_TRANSIT",
            "RECEIVED",
            "INSPECTED",
        )

        created = seller_client.post(
            f"{RETURNS}{opened['id']}/refund/", {"amount": "354.00"}, format="json"
        )
        assert created.status_code == 201
        refund = created.json()
        assert refund["status"] == "INITIATED"
        assert refund["return_id"] == opened["id"]
        assert refund["refund_number"].startswith("REF-")

        for status in ("PROCESSING", "COMPLETED"):
            response = seller_client.post(
                f"{REFUNDS}{refund['id']}/status/",
                {"status": status, "transaction_id": "rfnd_9"},
                format="json",
            )
            assert response.status_code == 200

        completed = buyer_client.get(f"{REFUNDS}{refund['id']}/").json()
        assert completed["status"] == "COMPLETED"
        assert completed["processed_at"] is not None
        scenario_a.stock_y.refresh_from_db()
        assert scenario_a.stock_y.stock == 9

    def test_completed_return_marks_unit_returned(self, seller_client, opened, scenario_a):
        response = _walk(
            seller_client,
            opened["id"],
            "APPROVED",
            "PICKED_UP",
            "IN_TRANSIT",
            "RECEIVED",
            "INSPECTED",
            "COMPLETED",
        )

        assert response.json()["completed_at"] is not None
        scenario_a.unit_y.refresh_from_db()
        assert scenario_a.unit_y.status == "RETURNED"

    def test_refund_before_inspection(self, seller_client, opened):
        response = seller_client.post(
            f"{RETURNS}{opened['id']}/refund/", {"amount": "100.00"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "return_not_inspected"

    def test_rejection_needs_reason(self, seller_client, opened):
        response = seller_client.post(
            f"{RETURNS}{opened['id']}/status/", {"status": "REJECTED"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "rejection_reason_required"

    def test_buyer_withdraws(self, buyer_client, opened):
        response = buyer_client.post(
            f"{RETURNS}{opened['id']}/status/", {"status": "CANCELLED"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_stranger_cannot_read(self, client_for, opened):
        response = client_for(uuid4()).get(f"{RETURNS}{opened['id']}/")
        assert response.status_code == 403

    def test_unknown_refund(self, buyer_client):
        response = buyer_client.get(f"{REFUNDS}{uuid4()}/")

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "refund_not_found"
