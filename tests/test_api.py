"""
HTTP and WebSocket tests running the full application on the in-memory backend.
"""
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.core.dependency_injection import container
from app.core.exceptions import PersistenceError
from app.database.order_gateway import OrderGateway
from app.main import app
from app.services.payment_service import sign_notification

from tests.conftest import SESSION_ID, TENANT_ID


WEBHOOK_SECRET = "test-webhook-secret"
TENANT_URL = f"/api/v1/tenants/{TENANT_ID}"
CART_URL = f"{TENANT_URL}/carts/{SESSION_ID}"


@pytest.fixture
def client(settings, cache_service, repository_manager, payment_service):
    container.register_instance("settings", settings)
    container.register_instance("cache_service", cache_service)
    container.register_instance("repository_manager", repository_manager)
    container.register_instance("payment_service", payment_service)
    with TestClient(app) as test_client:
        yield test_client
    container.reset()


def checkout(client, **overrides):
    payload = {
        "session_id": SESSION_ID,
        "name": "Ana Perez",
        "phone": "+54 11 5555-0000",
        "email": "ana@example.com",
        "delivery_type": "pickup",
        "payment_method": "cash",
    }
    payload.update(overrides)
    return client.post(f"{TENANT_URL}/orders/checkout", json=payload)


def place_order(client, **overrides):
    client.post(f"{CART_URL}/items", json={"item_id": "burger"})
    response = checkout(client, **overrides)
    assert response.status_code == 201
    return response.json()


def signed_headers(data_id, request_id="req-1"):
    ts = str(int(time.time()))
    return {
        "x-signature": f"ts={ts},v1={sign_notification(WEBHOOK_SECRET, data_id, request_id, ts)}",
        "x-request-id": request_id,
    }


def receive_until(websocket, message_type, limit=20):
    seen = []
    for _ in range(limit):
        message = websocket.receive_json()
        seen.append(message["type"])
        if message["type"] == message_type:
            return message
    raise AssertionError(f"{message_type} not received, got {seen}")


class TestHealth:

    def test_root_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["persistence_backend"] == "memory"

    def test_ping(self, client):
        assert client.get("/api/v1/health/ping").json()["message"] == "pong"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/v1/health/ping", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestCartRoutes:

    def test_add_and_update_lines(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "burger"})
        client.post(f"{CART_URL}/items", json={"item_id": "ham", "weight": 0.5})

        response = client.put(f"{CART_URL}/items/burger/quantity", json={"quantity": 3})

        cart = response.json()["data"]
        assert cart["total"] == 32.5
        assert {line["item_id"]: line["subtotal"] for line in cart["lines"]} == {"burger": 30.0, "ham": 2.5}

    def test_weight_update_and_removal(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "ham", "weight": 0.5})

        cart = client.put(f"{CART_URL}/items/ham/weight", json={"weight": 2}).json()["data"]
        assert cart["total"] == 10.0

        cart = client.delete(f"{CART_URL}/items/ham").json()["data"]
        assert cart["lines"] == []

    def test_weight_item_without_weight(self, client):
        response = client.post(f"{CART_URL}/items", json={"item_id": "ham"})

        assert response.status_code == 422
        assert response.json()["details"]["field_errors"][0]["field"] == "weight"

    def test_non_finite_weight_is_rejected(self, client):
        response = client.post(
            f"{CART_URL}/items",
            content='{"item_id": "ham", "weight": NaN}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["details"]["field_errors"][0]["field"] == "weight"
        assert client.get(CART_URL).json()["data"]["lines"] == []

    def test_infinite_weight_update_is_rejected(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "ham", "weight": 0.5})

        response = client.put(
            f"{CART_URL}/items/ham/weight",
            content='{"weight": Infinity}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert client.get(CART_URL).json()["data"]["total"] == 2.5

    def test_quantity_update_leaves_weight_line_alone(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "ham", "weight": 0.5})

        cart = client.put(f"{CART_URL}/items/ham/quantity", json={"quantity": 4}).json()["data"]

        assert cart["lines"][0]["quantity"] == 1
        assert cart["total"] == 2.5

    def test_unknown_item(self, client):
        response = client.post(f"{CART_URL}/items", json={"item_id": "caviar"})
        assert response.status_code == 404

    def test_clear_cart(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "burger"})

        client.delete(CART_URL)

        assert client.get(CART_URL).json()["data"]["total"] == 0


class TestCheckoutRoutes:

    def test_cash_checkout(self, client):
        result = place_order(client)

        assert result["success"] is True
        assert result["order_number"] == 1
        assert client.get(CART_URL).json()["data"]["lines"] == []

    def test_all_invalid_fields_are_reported(self, client):
        client.post(f"{CART_URL}/items", json={"item_id": "burger"})

        response = checkout(client, name="", phone="call me", delivery_type="delivery")

        assert response.status_code == 422
        fields = {error["field"] for error in response.json()["details"]["field_errors"]}
        assert {"name", "phone", "address"} <= fields

    def test_failed_order_write_returns_error_status(self, client, monkeypatch):
        monkeypatch.setattr(OrderGateway, "create_order",
                            AsyncMock(side_effect=PersistenceError("create_order", RuntimeError("store offline"))))
        client.post(f"{CART_URL}/items", json={"item_id": "burger"})

        response = checkout(client)

        assert response.status_code == 502
        assert response.json()["success"] is False
        assert client.get(CART_URL).json()["data"]["total"] == 10.0

    def test_online_checkout_returns_link(self, client, mercadopago):
        result = place_order(client, payment_method="mercadopago")

        assert result["checkout_url"] == mercadopago.preference_body["init_point"]
        order = client.get(f"{TENANT_URL}/orders/{result['order_id']}").json()
        assert order["payment_status"] == "processing"


class TestOrderRoutes:

    def test_status_flow_and_illegal_move(self, client):
        order_id = place_order(client)["order_id"]

        response = client.patch(f"{TENANT_URL}/orders/{order_id}/status", json={"status": "ready"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "ready"

        response = client.patch(f"{TENANT_URL}/orders/{order_id}/status", json={"status": "pending"})
        assert response.status_code == 409
        assert response.json()["error_code"] == "ILLEGAL_TRANSITION"

    def test_unknown_order(self, client):
        response = client.get(f"{TENANT_URL}/orders/missing")
        assert response.status_code == 404

    def test_kitchen_and_awaiting_payment(self, client):
        cash_id = place_order(client)["order_id"]
        online_id = place_order(client, payment_method="mercadopago")["order_id"]

        kitchen = client.get(f"{TENANT_URL}/orders/kitchen").json()
        awaiting = client.get(f"{TENANT_URL}/orders/awaiting-payment").json()

        assert [ticket["order"]["id"] for ticket in kitchen["pending"]] == [cash_id]
        assert [order["id"] for order in awaiting] == [online_id]

    def test_snooze_and_cancel(self, client):
        order_id = place_order(client)["order_id"]

        response = client.post(f"{TENANT_URL}/orders/{order_id}/snooze", json={"minutes": 5})
        assert response.json()["data"]["snoozed_until"] is not None

        response = client.post(f"{TENANT_URL}/orders/{order_id}/cancel")
        assert response.json()["data"]["status"] == "cancelled"

    def test_stats_count_dispatched_cash_orders(self, client):
        order_id = place_order(client)["order_id"]
        place_order(client)
        client.patch(f"{TENANT_URL}/orders/{order_id}/status", json={"status": "dispatched"})

        stats = client.get(f"{TENANT_URL}/orders/stats", params={"period": "today"}).json()

        assert stats["revenue"] == 10.0
        assert stats["paid_order_count"] == 1
        assert stats["order_count"] == 2

    def test_stats_window_without_offset_is_utc(self, client):
        place_order(client)

        response = client.get(f"{TENANT_URL}/orders/stats", params={
            "start": "2000-01-01T00:00:00", "end": "2999-01-01T00:00:00",
        })

        assert response.status_code == 200
        assert response.json()["order_count"] == 1

    def test_stats_rejects_bad_window(self, client):
        response = client.get(f"{TENANT_URL}/orders/stats", params={
            "start": "2024-05-10T12:00:00Z", "end": "2024-05-10T11:00:00Z",
        })
        assert response.status_code == 400

    def test_stats_rejects_unknown_period(self, client):
        response = client.get(f"{TENANT_URL}/orders/stats", params={"period": "decade"})
        assert response.status_code == 400


class TestPaymentWebhook:

    def test_bad_signature(self, client):
        response = client.post(
            "/api/v1/payments/mercadopago/webhook",
            params={"data.id": "PAY-1", "orderId": "order-1"},
            headers={"x-signature": "ts=1,v1=deadbeef", "x-request-id": "req-1"},
            json={"data": {"id": "PAY-1"}},
        )
        assert response.status_code == 401

    def test_missing_secret(self, client, settings):
        settings.MERCADOPAGO_WEBHOOK_SECRET = None

        response = client.post("/api/v1/payments/mercadopago/webhook", json={})

        assert response.status_code == 500

    def test_approved_payment_marks_order_paid(self, client, mercadopago):
        order_id = place_order(client, payment_method="mercadopago")["order_id"]
        mercadopago.payments["PAY-1"] = {"id": "PAY-1", "status": "approved", "external_reference": order_id}

        response = client.post(
            "/api/v1/payments/mercadopago/webhook",
            params={"data.id": "PAY-1", "orderId": order_id},
            headers=signed_headers("PAY-1"),
            json={"type": "payment", "data": {"id": "PAY-1"}},
        )

        assert response.status_code == 200
        assert response.text == "OK"
        order = client.get(f"{TENANT_URL}/orders/{order_id}").json()
        assert order["payment_status"] == "paid"
        assert order["ready_to_cook"] is True

    def test_unknown_order_is_acknowledged(self, client):
        response = client.post(
            "/api/v1/payments/mercadopago/webhook",
            params={"data.id": "PAY-9", "orderId": "missing"},
            headers=signed_headers("PAY-9"),
            json={"data": {"id": "PAY-9"}},
        )
        assert response.status_code == 200


class TestOrderWebSocket:

    def test_connection_and_ping(self, client):
        with client.websocket_connect(f"/api/v1/ws/tenants/{TENANT_ID}") as websocket:
            assert websocket.receive_json()["type"] == "connection_established"

            websocket.send_json({"type": "ping"})

            receive_until(websocket, "pong")

    def test_new_order_is_signalled(self, client):
        with client.websocket_connect(f"/api/v1/ws/tenants/{TENANT_ID}") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "refresh"})
            receive_until(websocket, "orders_changed")

            place_order(client)

            message = receive_until(websocket, "orders_changed")
            assert message["data"]["tenant_id"] == TENANT_ID
