import itertools

import pytest

from clinic_orders.core.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_orders.models import OrderReturn, ReturnStatus
from clinic_orders.schemas import (
    OrderCreate, OrderItemInput, ReturnCompletionPayload, ReturnFromInbound, ReturnFromInboundItem, ReturnProcess,
)
from clinic_orders.services import OrderService, ReturnService, format_return

from conftest import NOW, TENANT


@pytest.fixture
def received_order(db_session, notifier, make_product, make_supplier, link_supplier):
    supplier = make_supplier("Corner Supply")
    gauze = make_product("Gauze", "3M", purchase_price="1.50")
    link_supplier(gauze, supplier)
    service = OrderService(db_session, notifier, suffix_source=itertools.count(1).__next__, clock=lambda: NOW)
    order = service.create_order(TENANT, OrderCreate(items=[OrderItemInput(product_id=gauze.id, quantity=10)]))[0]
    return service.complete_order(TENANT, order.id)


@pytest.fixture
def returns(db_session):
    return ReturnService(db_session, clock=lambda: NOW)


def _shortage(order, qty=3):
    return ReturnFromInbound(
        order_id=order.id,
        items=[ReturnFromInboundItem(item_id=order.items[0].id, return_quantity=qty, memo="box crushed")],
    )


def test_shortage_return_uses_order_number(returns, received_order):
    rows = returns.create_from_inbound(TENANT, _shortage(received_order))

    assert len(rows) == 1
    row = rows[0]
    assert row.return_no == f"{received_order.order_no}-R"
    assert row.return_type == "SHORTAGE"
    assert row.return_quantity == 3
    assert row.total_quantity == 10
    assert row.supplier_contact_id == received_order.supplier_contact_id
    assert format_return(row)["supplier_name"] == "Corner Supply"


def test_cannot_return_more_than_ordered(db_session, returns, received_order):
    with pytest.raises(ValidationError):
        returns.create_from_inbound(TENANT, _shortage(received_order, qty=11))

    assert db_session.query(OrderReturn).count() == 0


def test_process_return_completes_once(returns, received_order):
    row = returns.create_from_inbound(TENANT, _shortage(received_order))[0]

    processed = returns.process_return(TENANT, row.id, ReturnProcess(return_manager="Lee", images=["a.jpg"]))
    assert processed.status == ReturnStatus.COMPLETED.value
    assert processed.images == ["a.jpg"]

    with pytest.raises(ConflictError):
        returns.process_return(TENANT, row.id, ReturnProcess())


def test_process_unknown_return(returns, received_order):
    with pytest.raises(NotFoundError):
        returns.process_return("clinic-b", received_order.id, ReturnProcess())


def test_list_returns_filters_by_status(returns, received_order):
    row = returns.create_from_inbound(TENANT, _shortage(received_order))[0]
    returns.process_return(TENANT, row.id, ReturnProcess())
    returns.create_from_inbound(TENANT, _shortage(received_order, qty=1))

    assert len(returns.list_returns(TENANT)) == 2
    assert len(returns.list_returns(TENANT, status="pending")) == 1
    assert returns.list_returns("clinic-b") == []


def test_webhook_completion_is_idempotent(returns, received_order):
    row = returns.create_from_inbound(TENANT, _shortage(received_order))[0]
    payload = ReturnCompletionPayload.model_validate(
        {"returnNo": row.return_no, "clinicTenantId": TENANT, "status": "COMPLETED"}
    )

    assert returns.complete_from_webhook(payload) == {"success": True, "updated": 1}
    assert returns.complete_from_webhook(payload) == {"success": True, "updated": 0}


def test_webhook_with_other_status_changes_nothing(db_session, returns, received_order):
    row = returns.create_from_inbound(TENANT, _shortage(received_order))[0]
    payload = ReturnCompletionPayload(return_no=row.return_no, status="processing")

    result = returns.complete_from_webhook(payload)

    assert result["updated"] == 0
    db_session.refresh(row)
    assert row.status == ReturnStatus.PENDING.value


def test_webhook_with_malformed_item_id_updates_nothing(returns, received_order):
    row = returns.create_from_inbound(TENANT, _shortage(received_order))[0]
    payload = ReturnCompletionPayload(return_no=row.return_no, item_id="not-a-uuid", status="done")

    assert returns.complete_from_webhook(payload)["updated"] == 0
