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

    def test_api_responses_carry_request_id(self, api_client_with_correlation):
        client, cid = api_client_with_correlation
        response = client.get("/api/v1/products/")
        assert response["X-Request-ID"] == cid

    def test_correlation_id_in_checkout_logs(self, auth_client, product, caplog):
        custom_id = "checkout-correlation-456"
        payload = {
            "items": [{"product_id": str(product.id), "quantity": 99}],
            "shipping_address": {
                "first_name": "Ana",
                "last_name": "Souza",
                "address": "12 Baker Street",
                "city": "London",
                "postal_code": "NW1 6XE",
                "country": "United Kingdom",
                "phone": "+44 20 7946 0000",
            },
            "payment": "credit_card",
        }
        with caplog.at_level(logging.INFO):
            auth_client.post(
                "/api/v1/orders/", payload, format="json", HTTP_X_REQUEST_ID=custom_id
            )
        rejected = [r for r in caplog.records if "order.rejected" in r.getMessage()]
        assert rejected
        assert all(custom_id in r.getMessage() for r in rejected)
