"""
HTTP-level tests: status code mapping, permission hook and response shapes.
"""

import pytest

from orderdesk.models import OrderStatusHistory
from orderdesk.services import catalog_service, payment_service


@pytest.fixture
def deny_payments(app):
    """Permission checker that only refuses MANAGE_PAYMENTS to employee 7."""
    calls = []

    def checker(actor_id, permission_code):
        calls.append((actor_id, permission_code))
        return not (actor_id == 7 and permission_code == "MANAGE_PAYMENTS")

    app.config["PERMISSION_CHECKER"] = checker
    yield calls
    app.config["PERMISSION_CHECKER"] = None


def test_health(client, db_session):
    response = client.get("/api/system/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"


# =============================================================================
# INVENTORY
# =============================================================================

def test_output_route_insufficient_stock_is_400(client, db_session, stocked_fabric):
    response = client.post("/api/inventory/outputs", json={
        "inventory_item_id": stocked_fabric.id,
        "quantity": "11",
        "reason": "Corte",
    })
    assert response.status_code == 400
    assert response.get_json()["available"] == "10.00"


def test_output_route_records_and_stock_query(client, db_session, stocked_fabric):
    response = client.post("/api/inventory/outputs", json={
        "inventory_item_id": stocked_fabric.id,
        "location": "main_warehouse",
        "quantity": "4",
        "reason": "Corte",
    })
    assert response.status_code == 201

    response = client.get(f"/api/inventory/stock?inventory_item_id={stocked_fabric.id}")
    assert response.status_code == 200
    assert response.get_json()["stock"] == "6.00"


def test_output_route_unknown_item_is_404(client, db_session):
    response = client.post("/api/inventory/outputs", json={
        "inventory_item_id": 999, "quantity": "1", "reason": "Corte",
    })
    assert response.status_code == 404


def test_output_route_requires_item(client, db_session):
    response = client.post("/api/inventory/outputs", json={"quantity": "1", "reason": "Corte"})
    assert response.status_code == 400


def test_stock_route_rejects_unknown_location(client, db_session, fabric):
    response = client.get(f"/api/inventory/stock?inventory_item_id={fabric.id}&location=ATTIC")
    assert response.status_code == 400


def test_stock_route_unknown_item_is_404(client, db_session):
    response = client.get("/api/inventory/stock?inventory_item_id=999")
    assert response.status_code == 404


def test_create_item_route_rejects_unknown_field(client, db_session):
    response = client.post("/api/inventory/items", json={"name": "Hilo", "available_qty": "50"})
    assert response.status_code == 400


def test_delete_consumed_entry_is_409(client, db_session, stocked_fabric):
    client.post("/api/inventory/outputs", json={
        "inventory_item_id": stocked_fabric.id, "quantity": "8", "reason": "Corte",
    })
    entry_id = stocked_fabric.entries[0].id

    response = client.delete(f"/api/inventory/entries/{entry_id}")
    assert response.status_code == 409


# =============================================================================
# PAYMENTS AND ORDERS
# =============================================================================

def test_payment_route_returns_summary(client, db_session, make_order):
    order = make_order("1000.00")

    response = client.post(
        f"/api/orders/{order.id}/payments",
        json={"amount": "500", "method": "transfer", "status": "PAID"},
        headers={"X-Employee-Id": "3"},
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["payment"]["created_by"] == 3
    assert body["summary"]["order_status"] == "PRODUCTION"
    assert body["summary"]["prefactura_status"] == "SCHEDULING"


def test_payment_route_validation_and_missing_order(client, db_session, make_order):
    order = make_order()

    response = client.post(f"/api/orders/{order.id}/payments", json={"amount": "0", "method": "CASH"})
    assert response.status_code == 400

    response = client.post("/api/orders/999/payments", json={"amount": "10", "method": "CASH"})
    assert response.status_code == 404


def test_void_twice_is_409(client, db_session, make_order):
    order = make_order()
    payment = payment_service.create_payment(order_id=order.id, amount="10", method="CASH")

    first = client.post(f"/api/orders/{order.id}/payments/{payment.id}/void", json={"reason": "Duplicado"})
    second = client.post(f"/api/orders/{order.id}/payments/{payment.id}/void", json={})

    assert first.status_code == 200
    assert second.status_code == 409


def test_patch_payment_rejects_reserved_keys(client, db_session, make_order):
    order = make_order()
    payment = payment_service.create_payment(order_id=order.id, amount="10", method="CASH")

    response = client.patch(f"/api/orders/{order.id}/payments/{payment.id}", json={"order_id": 12})
    assert response.status_code == 400


def test_reconcile_route(client, db_session, make_order):
    order = make_order("1000.00")

    response = client.post(f"/api/orders/{order.id}/reconcile")
    assert response.status_code == 200
    assert response.get_json()["changed"] is False

    response = client.post("/api/orders/424242/reconcile")
    assert response.status_code == 404


def test_status_route_records_actor(client, db_session, make_order):
    order = make_order()

    response = client.post(
        f"/api/orders/{order.id}/status", json={"status": "REVIEW"}, headers={"X-Employee-Id": "12"}
    )

    assert response.status_code == 200
    assert response.get_json()["history"][-1]["changed_by"] == 12
    assert db_session.query(OrderStatusHistory).filter_by(order_id=order.id).count() == 1


def test_delete_order_route_conflict(client, db_session, make_order):
    order = make_order()
    payment_service.create_payment(order_id=order.id, amount="10", method="CASH")

    response = client.delete(f"/api/orders/{order.id}")
    assert response.status_code == 409


# =============================================================================
# CATALOG / QUOTATIONS
# =============================================================================

def test_product_route_and_code_preview(client, db_session):
    category = catalog_service.create_category("Telas Especiales")

    preview = client.post("/api/catalog/codes/PRODUCT", json={"category_name": "Telas Especiales"})
    assert preview.status_code == 200
    assert preview.get_json()["code"] == "TEL01"

    response = client.post("/api/catalog/products", json={"name": "Lino", "category_id": category.id})
    assert response.status_code == 201
    assert response.get_json()["product_code"] == "TEL01"


def test_code_preview_unknown_kind_is_400(client, db_session):
    response = client.post("/api/catalog/codes/INVOICE", json={})
    assert response.status_code == 400


def test_quotation_to_prefactura_routes(client, db_session, customer):
    response = client.post("/api/quotations/", json={
        "client_id": customer.id,
        "currency": "USD",
        "items": [{"name": "Chaqueta", "quantity": 2, "unit_price": "40.00"}],
    })
    assert response.status_code == 201
    quotation_id = response.get_json()["id"]

    response = client.post(f"/api/quotations/{quotation_id}/prefactura", json={})
    assert response.status_code == 201
    body = response.get_json()
    assert body["prefactura"]["status"] == "PENDING_ACCOUNTING"
    assert body["order"]["order_code"] == "VI-0001"


# =============================================================================
# PERMISSIONS
# =============================================================================

def test_permission_checker_denies_with_403(client, db_session, make_order, deny_payments):
    order = make_order()

    response = client.post(
        f"/api/orders/{order.id}/payments",
        json={"amount": "10", "method": "CASH"},
        headers={"X-Employee-Id": "7"},
    )

    assert response.status_code == 403
    assert response.get_json()["required_permission"] == "MANAGE_PAYMENTS"
    assert deny_payments == [(7, "MANAGE_PAYMENTS")]


def test_permission_checker_allows_other_actors(client, db_session, make_order, deny_payments):
    order = make_order()

    response = client.post(
        f"/api/orders/{order.id}/payments",
        json={"amount": "10", "method": "CASH"},
        headers={"X-Employee-Id": "8"},
    )
    assert response.status_code == 201

    response = client.get(f"/api/orders/{order.id}/payments", headers={"X-Employee-Id": "7"})
    assert response.status_code == 200


def test_malformed_actor_header_is_anonymous(client, db_session, make_order, deny_payments):
    order = make_order()

    client.get(f"/api/orders/{order.id}/payments", headers={"X-Employee-Id": "abc"})

    assert deny_payments[-1] == (None, "VIEW_PAYMENTS")
