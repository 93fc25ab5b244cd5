"""Integration tests for storefront checkout and payment endpoints."""

from unittest.mock import MagicMock

import pytest
import stripe
from fastapi.testclient import TestClient

from tests.fakes import (
    FakeSupabase,
    encode_event,
    make_session,
    seed_catalog,
    seed_discount,
    seed_order,
    session_event,
    sign_payload,
)

CHECKOUT_PAYLOAD = {
    "customerName": "Ada Lovelace",
    "customerEmail": "ada@example.com",
    "items": [{"productId": 1, "quantity": 1, "selectedSize": "M", "selectedColor": "Black"}],
    "discountCode": "MAGIC10",
    "shipping": {"address1": "1 Analytical St", "city": "London", "zip": "N1", "country": "GB"},
}


@pytest.fixture(autouse=True)
def catalog(fake_db: FakeSupabase) -> None:
    seed_catalog(fake_db)
    seed_discount(fake_db)


class TestCreateCheckoutIntent:
    """Tests for POST /api/checkout/intent."""

    def test_returns_order_and_redirect(
        self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock
    ) -> None:
        response = client.post("/api/checkout/intent", json=CHECKOUT_PAYLOAD)

        assert response.status_code == 201
        data = response.json()
        assert data["redirectUrl"] == "https://checkout.stripe.com/c/pay/cs_test_session_1"
        order = fake_db.row("orders", data["orderId"])
        assert order["total"] == "18.00"
        assert order["discount_code"] == "MAGIC10"

    def test_ignores_client_supplied_prices(
        self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock
    ) -> None:
        payload = {**CHECKOUT_PAYLOAD, "discountCode": None}
        payload["items"] = [{**payload["items"][0], "price": 0.01, "unitPrice": 0.01}]

        response = client.post("/api/checkout/intent", json=payload)

        assert fake_db.row("orders", response.json()["orderId"])["total"] == "20.00"

    def test_missing_fields_return_400_with_details(self, client: TestClient, mock_stripe: MagicMock) -> None:
        response = client.post("/api/checkout/intent", json={"items": []})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        locs = [".".join(d["loc"]) for d in data["details"]]
        assert "customerName" in locs
        assert "shipping.city" in locs

    def test_unknown_product_returns_404(self, client: TestClient, mock_stripe: MagicMock) -> None:
        payload = {**CHECKOUT_PAYLOAD, "items": [{"productId": 404, "quantity": 1}]}

        response = client.post("/api/checkout/intent", json=payload)

        assert response.status_code == 404

    def test_gateway_failure_returns_502(
        self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock
    ) -> None:
        mock_stripe.checkout.Session.create.side_effect = stripe.APIConnectionError("network down")

        response = client.post("/api/checkout/intent", json=CHECKOUT_PAYLOAD)

        assert response.status_code == 502
        assert response.json()["error"] == "gateway_error"
        [order] = fake_db.rows("orders")
        assert order["status"] == "PENDING"
        assert response.json()["details"][0]["msg"] == order["id"]


class TestPay:
    """Tests for POST /api/pay."""

    def test_returns_fresh_session(self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock) -> None:
        order = seed_order(fake_db)

        response = client.post("/api/pay", json={"orderId": order["id"]})

        assert response.status_code == 200
        assert response.json() == {
            "url": "https://checkout.stripe.com/c/pay/cs_test_session_1",
            "sessionId": "cs_test_session_1",
        }

    def test_paid_order_returns_409(self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock) -> None:
        order = seed_order(fake_db, status="PROCESSING", payment_status="PAID")

        response = client.post("/api/pay", json={"orderId": order["id"]})

        assert response.status_code == 409
        assert response.json()["message"] == "Order already paid"

    def test_missing_order_id_returns_400(self, client: TestClient, mock_stripe: MagicMock) -> None:
        response = client.post("/api/pay", json={})

        assert response.status_code == 400

    def test_unknown_order_returns_404(self, client: TestClient, mock_stripe: MagicMock) -> None:
        response = client.post("/api/pay", json={"orderId": "7d9f9f5e-1111-4c1a-9d7e-000000000000"})

        assert response.status_code == 404


class TestConfirmPayment:
    """Tests for GET /api/pay/confirm."""

    def test_paid_session_returns_order_status(
        self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock
    ) -> None:
        order = seed_order(fake_db, discount_code="MAGIC10", total="18.00", stripe_session_id="cs_test_session_1")
        mock_stripe.checkout.Session.retrieve.return_value = make_session(order_id=order["id"])

        response = client.get("/api/pay/confirm", params={"session_id": "cs_test_session_1"})

        assert response.status_code == 200
        data = response.json()
        assert data["paid"] is True
        assert data["order"]["paymentStatus"] == "PAID"
        assert data["order"]["total"] == 18.0
        assert "paymentStatus" not in data
        assert fake_db.rows("discounts")[0]["usage_count"] == 1

    def test_unpaid_session(self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock) -> None:
        order = seed_order(fake_db)
        mock_stripe.checkout.Session.retrieve.return_value = make_session(
            order_id=order["id"], payment_status="unpaid", status="open"
        )

        response = client.get("/api/pay/confirm", params={"session_id": "cs_test_session_1"})

        assert response.json() == {"paid": False, "paymentStatus": "unpaid", "orderId": order["id"]}

    def test_missing_session_id_returns_400(self, client: TestClient, mock_stripe: MagicMock) -> None:
        response = client.get("/api/pay/confirm")

        assert response.status_code == 400


class TestOrderMinimal:
    """Tests for GET /api/orders/{id}/min."""

    def test_returns_only_status_fields(self, client: TestClient, fake_db: FakeSupabase) -> None:
        order = seed_order(fake_db)

        response = client.get(f"/api/orders/{order['id']}/min")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"id", "total", "currency", "status", "paymentStatus", "createdAt"}
        assert data["total"] == 20.0
        assert "ada@example.com" not in response.text

    @pytest.mark.parametrize("order_id", ["not-a-uuid", "7d9f9f5e-1111-4c1a-9d7e-000000000000"])
    def test_unknown_order_returns_404(self, client: TestClient, order_id: str) -> None:
        response = client.get(f"/api/orders/{order_id}/min")

        assert response.status_code == 404


class TestDiscountLifecycle:
    """A single-use code from preview through payment."""

    def test_single_use_code_is_spent_by_payment(
        self, client: TestClient, fake_db: FakeSupabase, mock_stripe: MagicMock
    ) -> None:
        fake_db.rows("discounts")[0]["usage_limit"] = 1
        mock_stripe.Webhook.construct_event.side_effect = stripe.Webhook.construct_event

        preview = client.post("/api/discounts/preview", json={"subtotal": 100, "discountCode": "MAGIC10"})

        assert preview.json() == {
            "valid": True,
            "appliedCode": "MAGIC10",
            "discountAmount": 10.0,
            "total": 90.0,
            "reason": None,
        }

        payload = {**CHECKOUT_PAYLOAD, "items": [{**CHECKOUT_PAYLOAD["items"][0], "quantity": 5}]}
        order_id = client.post("/api/checkout/intent", json=payload).json()["orderId"]
        order = fake_db.row("orders", order_id)
        assert (order["original_total"], order["discount_amount"], order["total"]) == ("100.00", "10.00", "90.00")
        assert fake_db.rows("discounts")[0]["usage_count"] == 0

        body = encode_event(session_event("checkout.session.completed", "cs_test_session_1", order_id))
        webhook = client.post(
            "/api/stripe/webhook",
            content=body,
            headers={"stripe-signature": sign_payload(body, "whsec_test_webhook_secret")},
        )

        assert webhook.json() == {"received": True, "status": "processed"}
        assert fake_db.row("orders", order_id)["payment_status"] == "PAID"
        assert fake_db.rows("discounts")[0]["usage_count"] == 1

        again = client.post("/api/discounts/preview", json={"subtotal": 100, "discountCode": "MAGIC10"})

        assert again.json()["valid"] is False
        assert again.json()["reason"] == "LIMIT_REACHED"
        assert again.json()["total"] == 100.0
