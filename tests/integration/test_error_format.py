"""Integration tests for standardized error responses."""

from uuid import uuid4

import pytest

pytestmark = pytest.mark.integration


class TestStandardizedErrors:
    def test_auth_error_has_standard_format(self, api_client):
        response = api_client.get("/api/v1/orders/")
        assert response.status_code == 401
        data = response.json()
        assert data["type"] == "client_error"
        assert isinstance(data["errors"], list)
        assert data["errors"]
        assert "code" in data["errors"][0]
        assert "detail" in data["errors"][0]

    def test_validation_error_has_standard_format(self, api_client):
        response = api_client.post("/api/v1/orders/", data="{", content_type="application/json")
        assert response.status_code == 400
        data = response.json()
        assert "type" in data
        assert "errors" in data
        assert isinstance(data["errors"], list)

    def test_field_errors_carry_attr(self, api_client):
        response = api_client.post("/api/v1/orders/", {"customer_name": "Maria"}, format="json")
        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "validation_error"
        assert "customer_email" in {error["attr"] for error in data["errors"]}

    def test_domain_error_has_code_and_meta(self, staff_client):
        order_id = str(uuid4())
        response = staff_client.get(f"/api/v1/orders/{order_id}/")
        assert response.status_code == 404
        error = response.json()["errors"][0]
        assert error["code"] == "order_not_found"
        assert error["meta"] == {"order_id": order_id}

    def test_gateway_failure_is_server_error(self, api_client, fake_gateway, checkout_body, product):
        fake_gateway.unavailable = True
        response = api_client.post(
            "/api/v1/orders/draft/", checkout_body([(product, 1)]), format="json"
        )
        assert response.status_code == 503
        assert response.json()["type"] == "server_error"
