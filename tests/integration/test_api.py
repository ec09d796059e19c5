"""
End-to-end tests through the JSON API (Flask test client).
"""
import warnings

import pytest

HEADERS = {"X-Actor": "api-user"}


def _create_supplier(client, code="ACME"):
    response = client.post("/api/suppliers", json={"code": code, "name": f"{code} Ltd"}, headers=HEADERS)
    assert response.status_code == 201
    return response.get_json()["data"]


def _create_order(client, supplier_id, quantity=100):
    response = client.post(
        "/api/purchase-orders",
        json={
            "supplier_id": supplier_id,
            "tax_rate": "0",
            "lines": [{"item_code": "WIDGET", "quantity": quantity, "unit_price": "2,50"}],
        },
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.get_json()["data"]


def _approve(client, po_id):
    assert client.put(f"/api/purchase-orders/{po_id}/submit", headers=HEADERS).status_code == 200
    response = client.put(f"/api/purchase-orders/{po_id}/approve", json={"notes": "ok"}, headers=HEADERS)
    assert response.status_code == 200
    return response.get_json()["data"]


def _receive(client, po_id, quantity):
    return client.post(
        "/api/goods-receipts",
        json={"purchase_order_id": po_id, "lines": [{"item_code": "WIDGET", "quantity": quantity}]},
        headers=HEADERS,
    )


def _create_invoice(client, supplier_id, total="1000.00", number="S-1"):
    response = client.post(
        "/api/invoices",
        json={
            "supplier_id": supplier_id,
            "supplier_invoice_number": number,
            "invoice_date": "2024-01-01",
            "lines": [{"description": "Goods", "quantity": 1, "unit_price": total}],
        },
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.get_json()["data"]


@pytest.mark.integration
class TestPurchaseOrderApi:
    def test_order_lifecycle_partial_then_full_receipt(self, client):
        supplier = _create_supplier(client)
        order = _create_order(client, supplier["id"])
        assert order["status"] == "draft"
        assert order["total_amount"] == "250.00"
        assert order["allowed_actions"] == ["submit", "cancel"]

        approved = _approve(client, order["id"])
        assert approved["status"] == "approved"
        assert approved["approved_by"] == "api-user"

        first = _receive(client, order["id"], 40)
        assert first.status_code == 201
        body = first.get_json()["data"]
        assert body["purchase_order"]["status"] == "partially_received"
        assert body["purchase_order"]["lines"][0]["quantity_remaining"] == "60.00"
        assert body["fully_received"] is False

        second = _receive(client, order["id"], 60).get_json()["data"]
        assert second["purchase_order"]["status"] == "received"
        assert second["purchase_order"]["lines"][0]["quantity_remaining"] == "0.00"
        assert second["fully_received"] is True
        assert second["receipt"]["received_by"] == "api-user"

    def test_approve_on_draft_is_a_conflict(self, client):
        supplier = _create_supplier(client)
        order = _create_order(client, supplier["id"])

        response = client.put(f"/api/purchase-orders/{order['id']}/approve", headers=HEADERS)

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["current_state"] == "draft"
        assert error["action"] == "approve"
        assert error["retryable"] is False

    def test_stale_version_is_retryable_conflict(self, client):
        supplier = _create_supplier(client)
        order = _create_order(client, supplier["id"])

        response = client.put(
            f"/api/purchase-orders/{order['id']}/submit", json={"version": order["version"] + 1}, headers=HEADERS
        )

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "CONCURRENT_MODIFICATION"
        assert error["retryable"] is True

    def test_legacy_status_filter(self, client):
        supplier = _create_supplier(client)
        received = _create_order(client, supplier["id"], quantity=5)
        _approve(client, received["id"])
        _receive(client, received["id"], 5)
        _create_order(client, supplier["id"])

        response = client.get("/api/purchase-orders?status=completed")

        data = response.get_json()["data"]
        assert [o["id"] for o in data] == [received["id"]]

    def test_unknown_status_filter(self, client):
        response = client.get("/api/purchase-orders?status=shipped")

        assert response.status_code == 422
        assert response.get_json()["error"]["field"] == "status"

    def test_missing_order(self, client):
        response = client.get("/api/purchase-orders/999")

        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "PURCHASE_ORDER_NOT_FOUND"

    def test_actor_is_required(self, client):
        supplier = _create_supplier(client)

        response = client.post(
            "/api/purchase-orders",
            json={"supplier_id": supplier["id"], "lines": [{"item_code": "A", "quantity": 1, "unit_price": 1}]},
        )

        assert response.status_code == 422
        assert response.get_json()["error"]["field"] == "actor"

    def test_bad_number_is_a_validation_error(self, client):
        supplier = _create_supplier(client)

        response = client.post(
            "/api/purchase-orders",
            json={"supplier_id": supplier["id"], "lines": [{"item_code": "A", "quantity": "lots", "unit_price": 1}]},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.get_json()["error"]["field"] == "lines[0].quantity"

    def test_infinite_receipt_quantity_is_rejected(self, client):
        supplier = _create_supplier(client)
        order = _create_order(client, supplier["id"])
        _approve(client, order["id"])

        response = _receive(client, order["id"], "Infinity")

        assert response.status_code == 422
        assert response.get_json()["error"]["field"] == "lines[0].quantity"
        detail = client.get(f"/api/purchase-orders/{order['id']}").get_json()["data"]
        assert detail["status"] == "approved"
        assert detail["lines"][0]["quantity_received"] == "0.00"
        receipts = client.get(f"/api/goods-receipts?purchase_order_id={order['id']}").get_json()["data"]
        assert receipts == []

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/suppliers", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.integration
class TestInvoiceApi:
    def test_partial_then_full_payment(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"])
        assert invoice["status"] == "unpaid"
        assert invoice["due_date"] == "2024-01-31"

        response = client.put(
            f"/api/invoices/{invoice['id']}/payment", json={"amount": "400", "paid_on": "2024-01-10"}, headers=HEADERS
        )
        data = response.get_json()["data"]
        assert data["status"] == "partially_paid"
        assert data["paid_amount"] == "400.00"
        assert data["payment_status"] == "partial"

        response = client.put(
            f"/api/invoices/{invoice['id']}/payment",
            json={"payment_amount": "600", "method": "cheque", "payment_date": "2024-01-20"},
            headers=HEADERS,
        )
        data = response.get_json()["data"]
        assert data["status"] == "paid"
        assert data["paid_amount"] == "1000.00"
        assert data["payment_date"] == "2024-01-20"
        assert [p["method"] for p in data["payments"]] == ["bank_transfer", "check"]

    def test_nan_payment_is_rejected(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"])

        response = client.put(f"/api/invoices/{invoice['id']}/payment", json={"amount": "NaN"}, headers=HEADERS)

        assert response.status_code == 422
        assert response.get_json()["error"]["field"] == "amount"
        assert client.get(f"/api/invoices/{invoice['id']}").get_json()["data"]["payments"] == []

    def test_update_invoice_recomputes_totals(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"], total="100.00")

        response = client.put(
            f"/api/invoices/{invoice['id']}",
            json={"tax_amount": "24,00", "due_date": "2024-02-29", "version": invoice["version"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["total_amount"] == "124.00"
        assert data["due_date"] == "2024-02-29"
        assert data["version"] == invoice["version"] + 1

    def test_update_paid_invoice_is_a_conflict(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"])
        client.put(f"/api/invoices/{invoice['id']}/payment", json={"amount": "1"}, headers=HEADERS)

        response = client.put(f"/api/invoices/{invoice['id']}", json={"notes": "late fix"}, headers=HEADERS)

        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "INVALID_STATE"

    def test_payment_on_cancelled_invoice(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"])
        client.put(f"/api/invoices/{invoice['id']}/cancel", json={"reason": "duplicate"}, headers=HEADERS)

        response = client.put(f"/api/invoices/{invoice['id']}/payment", json={"amount": "10"}, headers=HEADERS)

        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "INVALID_STATE"

    def test_duplicate_invoice_number(self, client):
        supplier = _create_supplier(client)
        _create_invoice(client, supplier["id"], number="DUP-1")

        response = client.post(
            "/api/invoices",
            json={
                "supplier_id": supplier["id"],
                "supplier_invoice_number": "DUP-1",
                "invoice_date": "2024-01-02",
                "lines": [{"description": "Again", "unit_price": "5"}],
            },
            headers=HEADERS,
        )

        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "DUPLICATE_INVOICE_NUMBER"

    def test_mark_paid_is_deprecated_but_ledger_backed(self, client):
        supplier = _create_supplier(client)
        invoice = _create_invoice(client, supplier["id"], total="300.00")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            response = client.put(f"/api/invoices/{invoice['id']}/mark-paid", headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["Deprecation"] == "true"
        data = response.get_json()["data"]
        assert data["status"] == "paid"
        assert len(data["payments"]) == 1
        assert data["payments"][0]["amount"] == "300.00"
        assert not [w for w in caught if "mark_invoice_paid" in str(w.message) or "mark_as_paid" in str(w.message)]


@pytest.mark.integration
class TestSupplierApi:
    def test_delete_referenced_supplier_deactivates(self, client):
        supplier = _create_supplier(client)
        _create_order(client, supplier["id"])

        response = client.delete(f"/api/suppliers/{supplier['id']}", headers=HEADERS)

        assert response.get_json()["data"]["outcome"] == "deactivated"
        detail = client.get(f"/api/suppliers/{supplier['id']}").get_json()["data"]
        assert detail["status"] == "inactive"

    def test_status_change_and_filter(self, client):
        active = _create_supplier(client, "ACTIVE1")
        suspended = _create_supplier(client, "SUSP1")
        client.put(f"/api/suppliers/{suspended['id']}/status", json={"status": "Suspended"}, headers=HEADERS)

        data = client.get("/api/suppliers?status=active").get_json()["data"]

        assert [s["id"] for s in data] == [active["id"]]
