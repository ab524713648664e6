"""Integration tests for Order and payment API endpoints via TestClient."""

import inspect

import pytest
from fastapi import FastAPI
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient
from ordering.api import maintenance_router, order_router, register_checkout_exception_handlers


@pytest.fixture()
def client(stock, gateway):
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(maintenance_router)
    register_checkout_exception_handlers(app)
    return TestClient(app)


ORDER_BODY = {
    "user_id": "user-api-001",
    "shipping_address": {
        "recipient_name": "Kim Minji",
        "recipient_phone": "010-1234-5678",
        "zip_code": "06236",
        "address": "123 Teheran-ro, Gangnam-gu, Seoul",
    },
    "items": [
        {"product_id": "prod-A", "product_title": "Product A", "quantity": 2, "unit_price": 1000},
        {"product_id": "prod-B", "product_title": "Product B", "quantity": 1, "unit_price": 500},
    ],
}


def _create_order(client):
    response = client.post("/orders", json=ORDER_BODY)
    assert response.status_code == 201
    return response.json()["order_id"]


class TestCreateOrderEndpoint:
    def test_create_order(self, client):
        response = client.post("/orders", json=ORDER_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Pending"
        assert data["total_amount"] == 2500
        assert data["order_number"].startswith("ORD-")
        assert [item["subtotal"] for item in data["items"]] == [2000, 500]
        assert data["payment"]["status"] == "Ready"
        assert data["payment"]["amount"] == 2500

    def test_insufficient_stock_is_409(self, client, stock):
        stock.set_stock("prod-B", 0)

        response = client.post("/orders", json=ORDER_BODY)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "STOCK_UNAVAILABLE"
        assert stock.available("prod-A") == 10

    def test_empty_items_is_422(self, client):
        response = client.post("/orders", json={**ORDER_BODY, "items": []})
        assert response.status_code == 422

    def test_zero_quantity_is_422(self, client):
        items = [{"product_id": "prod-A", "quantity": 0, "unit_price": 1000}]
        response = client.post("/orders", json={**ORDER_BODY, "items": items})
        assert response.status_code == 422

    def test_free_order_is_400(self, client):
        items = [{"product_id": "prod-A", "quantity": 1, "unit_price": 0}]
        response = client.post("/orders", json={**ORDER_BODY, "items": items})
        assert response.status_code == 400


class TestGetOrderEndpoint:
    def test_get_order(self, client):
        order_id = _create_order(client)

        response = client.get(f"/orders/{order_id}")

        assert response.status_code == 200
        assert response.json()["order_id"] == order_id

    def test_unknown_order_is_404(self, client):
        response = client.get("/orders/does-not-exist")
        assert response.status_code == 404


class TestPaymentEndpoints:
    def test_prepare_payment(self, client):
        order_id = _create_order(client)

        response = client.post(f"/orders/{order_id}/payment/ready", json={"amount": 2500})

        assert response.status_code == 200
        data = response.json()
        assert data["amount"] == 2500
        assert data["order_name"] == "Product A and 1 more"
        assert data["customer_name"] == "Kim Minji"

    def test_prepare_with_wrong_amount_is_422(self, client):
        order_id = _create_order(client)
        response = client.post(f"/orders/{order_id}/payment/ready", json={"amount": 100})
        assert response.status_code == 422

    def test_confirm_payment(self, client):
        order_id = _create_order(client)

        response = client.post(
            f"/orders/{order_id}/payment/confirm",
            json={"payment_key": "pk-api-001", "amount": 2500},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Confirmed"
        assert data["payment"]["status"] == "Paid"
        assert data["payment"]["payment_key"] == "pk-api-001"

    def test_confirm_with_mismatched_amount_is_422(self, client):
        order_id = _create_order(client)

        response = client.post(
            f"/orders/{order_id}/payment/confirm",
            json={"payment_key": "pk-api-001", "amount": 9999},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INTEGRITY_ERROR"

    def test_gateway_rejection_is_502(self, client, gateway):
        order_id = _create_order(client)
        gateway.configure(should_succeed=False)

        response = client.post(f"/orders/{order_id}/payment/confirm", json={"payment_key": "pk-api-001"})

        assert response.status_code == 502
        assert client.get(f"/orders/{order_id}").json()["payment"]["status"] == "Ready"

    def test_confirm_cancelled_order_is_409(self, client):
        order_id = _create_order(client)
        client.post(f"/orders/{order_id}/cancel", json={"reason": "changed mind"})

        response = client.post(f"/orders/{order_id}/payment/confirm", json={"payment_key": "pk-api-001"})

        assert response.status_code == 409

    def test_fail_payment(self, client, stock):
        order_id = _create_order(client)

        response = client.post(
            f"/orders/{order_id}/payment/fail",
            json={"code": "REJECT_CARD_PAYMENT", "message": "Card declined"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Cancelled"
        assert data["payment"]["status"] == "Failed"
        assert stock.held_for(order_id) == []


class TestCancelOrderEndpoint:
    def test_cancel_order(self, client):
        order_id = _create_order(client)

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "changed mind"})

        assert response.status_code == 200
        assert response.json()["status"] == "Cancelled"
        assert response.json()["cancellation_reason"] == "changed mind"

    def test_cancel_paid_order_refunds(self, client):
        order_id = _create_order(client)
        client.post(f"/orders/{order_id}/payment/confirm", json={"payment_key": "pk-api-001"})

        response = client.post(f"/orders/{order_id}/cancel", json={})

        payment = response.json()["payment"]
        assert response.status_code == 200
        assert payment["status"] == "Cancelled"
        assert payment["cancelled_amount"] == 2500
        assert payment["reconciliation_pending"] is False


class TestCancelOrderItemsEndpoint:
    def _confirmed(self, client):
        order_id = _create_order(client)
        client.post(f"/orders/{order_id}/payment/confirm", json={"payment_key": "pk-001"})
        return order_id, client.get(f"/orders/{order_id}").json()

    def test_cancel_one_item_refunds_its_subtotal(self, client, gateway):
        order_id, data = self._confirmed(client)
        item_b = data["items"][1]["item_id"]

        response = client.post(f"/orders/{order_id}/items/cancel", json={"item_ids": [item_b], "reason": "too late"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Confirmed"
        assert [item["item_status"] for item in data["items"]] == ["Confirmed", "Cancelled"]
        assert data["payment"]["status"] == "Paid"
        assert data["payment"]["refund_requested"] == 500
        assert data["payment"]["cancelled_amount"] == 500
        assert data["payment"]["reconciliation_pending"] is False
        assert gateway.calls_to("cancel_payment")[0]["order_item_ids"] == [item_b]

    def test_cancel_items_of_pending_order_is_409(self, client):
        order_id = _create_order(client)
        item_a = client.get(f"/orders/{order_id}").json()["items"][0]["item_id"]

        response = client.post(f"/orders/{order_id}/items/cancel", json={"item_ids": [item_a]})

        assert response.status_code == 409

    def test_unknown_item_is_400(self, client):
        order_id, _ = self._confirmed(client)

        response = client.post(f"/orders/{order_id}/items/cancel", json={"item_ids": ["not-an-item"]})

        assert response.status_code == 400

    def test_empty_selection_is_422(self, client):
        order_id, _ = self._confirmed(client)

        response = client.post(f"/orders/{order_id}/items/cancel", json={"item_ids": []})

        assert response.status_code == 422


class TestOrderListingEndpoints:
    def test_list_orders_for_user(self, client):
        first = _create_order(client)
        second = _create_order(client)
        client.post("/orders", json={**ORDER_BODY, "user_id": "someone-else"})

        response = client.get("/orders", params={"user_id": "user-api-001", "per_page": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["per_page"] == 1
        assert [order["order_id"] for order in data["items"]] == [second]

        page_two = client.get("/orders", params={"user_id": "user-api-001", "per_page": 1, "page": 2}).json()
        assert [order["order_id"] for order in page_two["items"]] == [first]

    def test_list_orders_requires_user(self, client):
        assert client.get("/orders").status_code == 422

    def test_list_orders_by_product(self, client):
        with_b = _create_order(client)
        client.post("/orders", json={**ORDER_BODY, "items": [ORDER_BODY["items"][0]]})

        response = client.get("/orders/by-product/prod-B")

        assert response.status_code == 200
        assert [order["order_id"] for order in response.json()] == [with_b]

    def test_unknown_product_has_no_orders(self, client):
        assert client.get("/orders/by-product/prod-Z").json() == []


class TestEndpointsRunInThreadpool:
    """Orchestrator calls block on locks, retries and HTTP, so endpoints must not run on the event loop."""

    def test_order_endpoints_are_plain_functions(self):
        endpoints = [route.endpoint for route in order_router.routes if isinstance(route, APIRoute)]

        assert endpoints
        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)

    def test_maintenance_endpoints_are_plain_functions(self):
        endpoints = [route.endpoint for route in maintenance_router.routes if isinstance(route, APIRoute)]

        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)


class TestMaintenanceEndpoints:
    def test_expire_with_nothing_stale(self, client):
        _create_order(client)

        response = client.post("/maintenance/payments/expire")

        assert response.status_code == 200
        assert response.json() == {"processed": 0}

    def test_reconcile(self, client, gateway):
        order_id = _create_order(client)
        client.post(f"/orders/{order_id}/payment/confirm", json={"payment_key": "pk-api-001"})
        gateway.cancel_failures = 1
        client.post(f"/orders/{order_id}/cancel", json={})

        response = client.post("/maintenance/payments/reconcile")

        assert response.status_code == 200
        assert response.json() == {"processed": 1}
