import itertools

import pytest

from clinic_orders.models import OrderStatus, WebhookLog
from clinic_orders.schemas import OrderCreate, OrderItemInput
from clinic_orders.services import OrderService

from conftest import NOW, TENANT

HEADERS = {"X-Tenant-Id": TENANT}
WEBHOOK_HEADERS = {"x-api-key": "test-webhook-key"}


@pytest.fixture
def platform_order(db_session, notifier, make_product, make_supplier, link_supplier):
    supplier = make_supplier("Platform Pharma", linked=True)
    botox = make_product("Botox 100U", "Allergan", purchase_price="200.00")
    link_supplier(botox, supplier)
    service = OrderService(db_session, notifier, suffix_source=itertools.count(1).__next__, clock=lambda: NOW)
    return service.create_order(TENANT, OrderCreate(items=[OrderItemInput(product_id=botox.id, quantity=3)]))[0]


# ========== Webhooks ==========

def test_webhook_requires_api_key(client, platform_order):
    body = {"orderNo": platform_order.order_no, "clinicTenantId": TENANT, "status": "supplier_confirmed"}

    assert client.post("/api/order/supplier-confirmed", json=body).status_code == 401
    assert client.post("/api/order/supplier-confirmed", json=body, headers={"x-api-key": "wrong"}).status_code == 401


def test_webhook_rejected_when_server_key_missing(client, monkeypatch, platform_order):
    from clinic_orders.core import settings

    monkeypatch.setattr(settings, "SUPPLIER_WEBHOOK_API_KEY", None)
    body = {"orderNo": platform_order.order_no, "clinicTenantId": TENANT, "status": "supplier_confirmed"}

    assert client.post("/api/order/supplier-confirmed", json=body, headers=WEBHOOK_HEADERS).status_code == 401


def test_supplier_confirmation_is_applied_and_logged(client, db_session, platform_order):
    item = platform_order.items[0]
    body = {
        "orderNo": platform_order.order_no,
        "clinicTenantId": TENANT,
        "status": "supplier_confirmed",
        "adjustments": [{"itemId": str(item.id), "actualQuantity": 2}],
    }

    response = client.post("/api/order/supplier-confirmed", json=body, headers=WEBHOOK_HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == OrderStatus.SUPPLIER_CONFIRMED.value
    log = db_session.query(WebhookLog).one()
    assert log.event_type == "supplier_confirmed"
    assert log.reference == platform_order.order_no
    assert log.process_result == "SUCCESS"


def test_unknown_order_is_a_soft_failure(client, db_session):
    body = {"orderNo": "NOPE-20260101-000000", "clinicTenantId": TENANT, "status": "supplier_confirmed"}

    response = client.post("/api/order/supplier-confirmed", json=body, headers=WEBHOOK_HEADERS)

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert db_session.query(WebhookLog).one().process_result == "NOT_FOUND"


def test_invalid_status_is_a_client_error_and_logged(client, db_session, platform_order):
    body = {"orderNo": platform_order.order_no, "clinicTenantId": TENANT, "status": "teleported"}

    response = client.post("/api/order/supplier-confirmed", json=body, headers=WEBHOOK_HEADERS)

    assert response.status_code == 400
    assert "teleported" in response.json()["detail"]
    assert db_session.query(WebhookLog).one().process_result == "FAILED"


def test_callback_for_cancelled_order_is_logged_as_ignored(client, db_session, notifier, platform_order):
    OrderService(db_session, notifier).cancel_order(TENANT, platform_order.id)
    body = {"orderNo": platform_order.order_no, "clinicTenantId": TENANT, "status": "rejected"}

    response = client.post("/api/order/supplier-confirmed", json=body, headers=WEBHOOK_HEADERS)

    assert response.status_code == 200
    assert response.json()["ignored"] is True
    assert db_session.query(WebhookLog).one().process_result == "IGNORED"


def test_order_split_webhook(client, platform_order):
    item = platform_order.items[0]
    body = {
        "type": "order_split",
        "original_order_no": platform_order.order_no,
        "clinic_tenant_id": TENANT,
        "orders": [
            {"order_no": "SUP-1", "status": "confirmed", "items": [{"itemId": str(item.id), "quantity": 2, "unitPrice": "200"}]},
            {"order_no": "SUP-2", "status": "pending", "items": [{"itemId": str(item.id), "quantity": 1, "unitPrice": "200"}]},
        ],
    }

    response = client.post("/api/order/order-split", json=body, headers=WEBHOOK_HEADERS)

    assert response.status_code == 200
    assert len(response.json()["orderIds"]) == 2
    assert client.get(f"/api/order/{platform_order.id}", headers=HEADERS).json()["status"] == "archived"


def test_split_needs_exactly_two_parts(client, platform_order):
    body = {
        "type": "order_split",
        "original_order_no": platform_order.order_no,
        "clinic_tenant_id": TENANT,
        "orders": [{"order_no": "SUP-1", "status": "confirmed", "items": []}],
    }

    assert client.post("/api/order/order-split", json=body, headers=WEBHOOK_HEADERS).status_code == 422


# ========== Orders ==========

def test_missing_tenant_header_is_rejected(client):
    response = client.get("/api/order")

    assert response.status_code == 400
    assert response.json() == {"detail": "Tenant ID is required"}


def test_draft_to_order_flow(client, notifier, make_product, make_supplier, link_supplier):
    gauze = make_product("Gauze", "3M", purchase_price="1.50")
    link_supplier(gauze, make_supplier("Corner Supply"))
    headers = dict(HEADERS, **{"X-Session-Id": "browser-1"})

    draft = client.post("/api/order/draft/items", json={"product_id": str(gauze.id), "quantity": 4}, headers=headers).json()
    assert draft["total_amount"] == 6.0
    assert draft["grouped_by_supplier"][0]["supplier_name"] == "Corner Supply"

    created = client.post("/api/order", json={}, headers=headers)
    assert created.status_code == 200
    orders = created.json()["orders"]
    assert len(orders) == 1
    assert orders[0]["status"] == "supplier_confirmed"
    assert created.json()["notifications"] == {orders[0]["order_no"]: "sent"}

    assert client.get("/api/order/draft", headers=headers).json()["items"] == []


def test_cancel_twice_is_a_conflict(client, platform_order):
    url = f"/api/order/{platform_order.id}/cancel"

    assert client.post(url, headers=HEADERS).status_code == 200
    response = client.post(url, headers=HEADERS)
    assert response.status_code == 409


def test_order_of_other_tenant_is_not_found(client, platform_order):
    response = client.get(f"/api/order/{platform_order.id}", headers={"X-Tenant-Id": "clinic-b"})

    assert response.status_code == 404


def test_pending_inbound_view(client, make_product, make_supplier, link_supplier):
    gauze = make_product("Gauze", "3M", purchase_price="1.50")
    supplier = make_supplier("Corner Supply")
    link_supplier(gauze, supplier)
    client.post("/api/order", json={"items": [{"product_id": str(gauze.id), "quantity": 2}]}, headers=HEADERS)

    groups = client.get("/api/order/pending-inbound", headers=HEADERS).json()

    assert [g["supplier_id"] for g in groups] == [str(supplier.id)]
    assert groups[0]["total_amount"] == 3.0


# ========== Outbound & returns ==========

def test_outbound_validation_error_is_400(client, make_product, make_batch):
    product = make_product()
    batch = make_batch(product, qty=1)
    body = {"product_id": str(product.id), "batch_id": str(batch.id), "outbound_qty": 2, "manager_name": "Choi"}

    response = client.post("/api/outbound", json=body, headers=HEADERS)

    assert response.status_code == 400
    assert "Insufficient" in response.json()["detail"]


def test_return_webhook_completes_return(client, db_session, make_product, make_batch):
    product = make_product()
    batch = make_batch(product, qty=5, order_no="CLIN-20261001-000009")
    body = {"product_id": str(product.id), "batch_id": str(batch.id), "outbound_qty": 1,
            "manager_name": "Choi", "is_defective": True}
    assert client.post("/api/outbound", json=body, headers=HEADERS).status_code == 200

    returns = client.get("/api/order-returns", headers=HEADERS).json()
    assert [r["return_no"] for r in returns] == ["CLIN-20261001-000009-R"]

    response = client.post(
        "/api/order-returns/webhook/complete",
        json={"returnNo": "CLIN-20261001-000009-R", "status": "completed"},
        headers=WEBHOOK_HEADERS,
    )
    assert response.json() == {"success": True, "updated": 1}
    assert client.get("/api/order-returns", params={"status": "completed"}, headers=HEADERS).json()[0]["status"] == "completed"
