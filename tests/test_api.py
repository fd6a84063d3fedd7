"""HTTP surface of the orders service, exercised through FastAPI's TestClient."""

from conftest import GADGET_ID, WIDGET_ID, auth_headers, order_payload, stock

CUSTOMER = auth_headers(7)
OTHER_CUSTOMER = auth_headers(8)
ADMIN = auth_headers(1, role="admin")
SELLER = auth_headers(2, role="seller")

def _create(client, *lines, headers=CUSTOMER):
    response = client.post("/orders/", json=order_payload(*lines), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()

class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "orders-service"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "pass"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

class TestAuthentication:
    def test_missing_token(self, client):
        response = client.post("/orders/", json=order_payload((WIDGET_ID, 1)))
        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_garbage_token(self, client):
        response = client.get("/orders/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_customer_cannot_list_all_orders(self, client):
        assert client.get("/orders/", headers=CUSTOMER).status_code == 403

class TestOrderEndpoints:
    def test_create_order(self, client, db, publisher):
        body = _create(client, (WIDGET_ID, 2))

        assert body["status"] == "pending"
        assert body["user_id"] == 7
        assert body["total_amount"] == 27.59
        assert body["items"][0]["sku"] == "WID-001"
        assert stock(db, WIDGET_ID).quantity == 8
        assert publisher.names == ["order.created"]

    def test_create_with_missing_fields(self, client):
        response = client.post("/orders/", json={"cart_items": []}, headers=CUSTOMER)
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"] == ["shipping_address", "payment_method", "cart_items"]

    def test_create_with_insufficient_stock(self, client):
        response = client.post("/orders/", json=order_payload((GADGET_ID, 5)), headers=CUSTOMER)
        assert response.status_code == 400
        assert response.json()["message"] == "Insufficient inventory for Gadget"

    def test_owner_and_staff_can_view(self, client):
        order = _create(client, (WIDGET_ID, 1))
        for headers in (CUSTOMER, SELLER, ADMIN):
            response = client.get(f"/orders/{order['id']}", headers=headers)
            assert response.status_code == 200
            assert [h["comment"] for h in response.json()["history"]] == ["Order created"]

    def test_other_customer_cannot_view(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.get(f"/orders/{order['id']}", headers=OTHER_CUSTOMER)
        assert response.status_code == 403

    def test_unknown_order(self, client):
        response = client.get("/orders/9999", headers=ADMIN)
        assert response.status_code == 404
        assert response.json() == {
            "status": "error", "code": "NOT_FOUND", "message": "Order not found", "resource": "order:9999"
        }

    def test_my_orders(self, client):
        _create(client, (WIDGET_ID, 1))
        _create(client, (WIDGET_ID, 1), headers=OTHER_CUSTOMER)

        body = client.get("/orders/me", headers=CUSTOMER).json()
        assert [o["user_id"] for o in body["data"]] == [7]
        assert body["pagination"]["total_items"] == 1

    def test_staff_listing_with_filters(self, client):
        _create(client, (WIDGET_ID, 1))
        _create(client, (GADGET_ID, 1), headers=OTHER_CUSTOMER)

        body = client.get("/orders/", params={"customerId": 8, "sortBy": "total_amount"}, headers=SELLER).json()
        assert [o["user_id"] for o in body["data"]] == [8]

        response = client.get("/orders/", params={"sortBy": "user_password"}, headers=SELLER)
        assert response.status_code == 400

class TestStatusEndpoints:
    def test_illegal_transition(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.put(f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot transition from pending to shipped"

    def test_unknown_status_value(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.put(f"/orders/{order['id']}/status", json={"status": "lost"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid order status: lost"

    def test_customer_cannot_change_status(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.put(f"/orders/{order['id']}/status", json={"status": "processing"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_seller_moves_order_along(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.put(
            f"/orders/{order['id']}/status",
            json={"status": "on_hold", "comment": "Awaiting stock check"},
            headers=SELLER,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "on_hold"

        history = client.get(f"/orders/{order['id']}/history", headers=CUSTOMER).json()
        assert history[-1]["status"] == "on_hold"
        assert history[-1]["comment"] == "Awaiting stock check"
        assert history[-1]["created_by"] == 2

    def test_customer_cancel(self, client, db):
        order = _create(client, (WIDGET_ID, 3))
        response = client.post(f"/orders/{order['id']}/cancel", json={}, headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert stock(db, WIDGET_ID).quantity == 10

    def test_history_note(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.post(f"/orders/{order['id']}/history", json={"comment": "Gift wrap"}, headers=SELLER)
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

class TestPaymentEndpoints:
    def test_pay_and_refund(self, client):
        order = _create(client, (WIDGET_ID, 2))

        response = client.post(
            f"/orders/{order['id']}/payment",
            json={"payment_method": "credit_card", "payment_details": {"card_number": "4242424242424242"}},
            headers=CUSTOMER,
        )
        assert response.status_code == 200
        paid = response.json()
        assert paid["success"] is True
        assert paid["status"] == "completed"
        assert paid["amount"] == 27.59
        assert paid["order"]["status"] == "processing"
        assert paid["order"]["payment_status"] == "paid"

        for status in ("shipped", "delivered"):
            client.put(f"/orders/{order['id']}/status", json={"status": status}, headers=ADMIN)

        response = client.post(
            f"/orders/{order['id']}/refund", json={"amount": 10, "reason": "Scratched"}, headers=ADMIN
        )
        assert response.status_code == 200
        refund = response.json()
        assert refund["full_refund"] is False
        assert refund["new_status"] == "partially_refunded"
        assert refund["order"]["status"] == "delivered"
        assert refund["order"]["payment_status"] == "partially_refunded"

        details = client.get(f"/orders/{order['id']}/payment", headers=CUSTOMER).json()
        assert details["payment_status"] == "partially_refunded"
        assert [t["amount"] for t in details["transactions"]] == [-10.0, 27.59]

    def test_declined_card(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.post(
            f"/orders/{order['id']}/payment",
            json={"payment_method": "credit_card", "payment_details": {"card_number": "4111111111111111"}},
            headers=CUSTOMER,
        )
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["order"]["status"] == "pending"

    def test_other_customer_cannot_pay(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.post(
            f"/orders/{order['id']}/payment", json={"payment_method": "credit_card"}, headers=OTHER_CUSTOMER
        )
        assert response.status_code == 403

    def test_refund_amount_must_be_finite_and_positive(self, client):
        """NaN and non-positive amounts are rejected before any refund runs"""
        order = _create(client, (WIDGET_ID, 1))
        response = client.post(
            f"/orders/{order['id']}/refund",
            content='{"amount": NaN}',
            headers={**ADMIN, "Content-Type": "application/json"},
        )
        assert response.status_code == 422

        response = client.post(f"/orders/{order['id']}/refund", json={"amount": 0}, headers=ADMIN)
        assert response.status_code == 422

    def test_refund_requires_admin(self, client):
        order = _create(client, (WIDGET_ID, 1))
        response = client.post(f"/orders/{order['id']}/refund", json={"amount": 1}, headers=SELLER)
        assert response.status_code == 403

class TestAdminEndpoints:
    def test_export(self, client):
        _create(client, (WIDGET_ID, 1))
        response = client.get("/orders/export", headers=ADMIN)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=orders-export-" in response.headers["content-disposition"]
        assert response.text.startswith("Order Number,Date,Status,Payment Status,Customer,Customer ID")

    def test_export_with_no_orders(self, client):
        assert client.get("/orders/export", headers=ADMIN).status_code == 404

    def test_update_item(self, client, db):
        order = _create(client, (WIDGET_ID, 2))
        item_id = order["items"][0]["id"]
        response = client.put(f"/orders/{order['id']}/items/{item_id}", json={"quantity": 3}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["subtotal"] == 30.0
        assert stock(db, WIDGET_ID).quantity == 7
