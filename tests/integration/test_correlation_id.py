import logging
import uuid

import pytest

pytestmark = pytest.mark.integration


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in record.getMessage() for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.getMessage() for r in caplog.records]}"
        )

    def test_error_responses_carry_the_id(self, api_client_with_correlation):
        client, cid = api_client_with_correlation
        response = client.get(f"/api/v1/orders/{uuid.uuid4()}/")
        assert response.status_code == 401
        assert response["X-Request-ID"] == cid

    def test_webhook_logs_carry_the_id(self, api_client, caplog, settings):
        settings.PAYMENT_WEBHOOK_SECRET = "whsec_cid"
        cid = "gateway-delivery-789"
        with caplog.at_level(logging.INFO):
            response = api_client.post(
                "/api/v1/webhooks/payments/",
                data=b'{"event_id": "evt_cid"}',
                content_type="application/json",
                HTTP_X_REQUEST_ID=cid,
            )
        assert response["X-Request-ID"] == cid
        rejected = [r for r in caplog.records if "payment.webhook_rejected" in r.getMessage()]
        assert rejected
        assert all(cid in record.getMessage() for record in rejected)
