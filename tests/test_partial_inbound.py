import itertools
from decimal import Decimal

import pytest

from clinic_orders.core.exceptions import ConflictError, ValidationError
from clinic_orders.models import Batch, Order, OrderStatus
from clinic_orders.schemas import InboundItem, OrderCreate, OrderItemInput, PartialInboundRequest
from clinic_orders.services import OrderService, PartialInboundService

from conftest import NOW, TENANT


@pytest.fixture
def products(make_product, make_supplier, link_supplier):
    supplier = make_supplier("Corner Supply")
    gauze = make_product("Gauze", "3M", purchase_price="1.50")
    tape = make_product("Tape", "3M", purchase_price="3.00")
    link_supplier(gauze, supplier)
    link_supplier(tape, supplier)
    return gauze, tape


@pytest.fixture
def confirmed_order(db_session, notifier, products):
    """Manual supplier, so the order starts supplier_confirmed: Gauze x10, Tape x4"""
    gauze, tape = products
    service = OrderService(db_session, notifier, suffix_source=itertools.count(1).__next__, clock=lambda: NOW)
    return service.create_order(TENANT, OrderCreate(items=[
        OrderItemInput(product_id=gauze.id, quantity=10),
        OrderItemInput(product_id=tape.id, quantity=4),
    ]))[0]


def _request(order, *quantities, **extra):
    return PartialInboundRequest(
        order_id=order.id,
        inbounded_items=[
            InboundItem(item_id=item.id, inbound_qty=qty, batch_no=f"LOT-{n}")
            for n, (item, qty) in enumerate(zip(order.items, quantities))
        ],
        **extra,
    )


def test_partial_receipt_splits_into_completed_and_remaining(db_session, notifier, products, confirmed_order):
    gauze, tape = products
    base_no = confirmed_order.order_no

    result = PartialInboundService(db_session, notifier, clock=lambda: NOW).process(
        TENANT, _request(confirmed_order, 6, 4, inbound_manager="Lee"),
    )

    completed = result["completed_order"]
    remaining = result["remaining_order"]
    assert completed["order_no"] == f"{base_no}-C"
    assert completed["status"] == OrderStatus.COMPLETED.value
    assert [(i["product_id"], i["quantity"]) for i in completed["items"]] == [(str(gauze.id), 6), (str(tape.id), 4)]
    assert completed["total_amount"] == 21.0
    assert completed["inbound_manager"] == "Lee"

    assert remaining["order_no"] == f"{base_no}-P"
    assert remaining["status"] == OrderStatus.SUPPLIER_CONFIRMED.value
    assert [(i["product_id"], i["quantity"]) for i in remaining["items"]] == [(str(gauze.id), 4)]

    original = OrderService.get_order(db_session, TENANT, confirmed_order.id)
    assert original.status == OrderStatus.ARCHIVED.value
    assert original.memo == f"Partial inbound: {base_no}-C, {base_no}-P"


def test_received_quantities_become_batches(db_session, notifier, products, confirmed_order):
    gauze, _ = products

    PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 6, 0))

    batch = db_session.query(Batch).filter(Batch.product_id == gauze.id).one()
    assert batch.qty == 6
    assert batch.batch_no == "LOT-0"
    assert batch.order_no == f"{confirmed_order.order_no}-C"
    assert batch.purchase_price == Decimal("1.50")
    db_session.refresh(gauze)
    assert gauze.current_stock == 6


def test_remaining_order_can_be_received_again(db_session, notifier, confirmed_order):
    service = PartialInboundService(db_session, notifier)
    first = service.process(TENANT, _request(confirmed_order, 6, 4))
    remaining = OrderService.get_order_by_no(db_session, TENANT, first["remaining_order"]["order_no"])

    second = service.process(TENANT, _request(remaining, 4))

    assert second["completed_order"]["order_no"] == f"{confirmed_order.order_no}-P-C"
    assert second["remaining_order"] is None
    assert OrderService.get_order(db_session, TENANT, remaining.id).status == OrderStatus.ARCHIVED.value


def test_full_receipt_has_no_remaining_order(db_session, notifier, confirmed_order):
    result = PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 10, 4))

    assert result["remaining_order"] is None
    assert db_session.query(Order).count() == 2


def test_over_receipt_is_capped(db_session, notifier, products, confirmed_order):
    gauze, _ = products

    result = PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 15, 0))

    assert result["completed_order"]["items"][0]["quantity"] == 10
    assert db_session.query(Batch).filter(Batch.product_id == gauze.id).one().qty == 10


def test_nothing_received_is_rejected(db_session, notifier, confirmed_order):
    with pytest.raises(ValidationError):
        PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 0, 0))

    assert OrderService.get_order(db_session, TENANT, confirmed_order.id).status == OrderStatus.SUPPLIER_CONFIRMED.value


def test_only_confirmed_orders_can_be_received(db_session, notifier, confirmed_order):
    OrderService(db_session, notifier).cancel_order(TENANT, confirmed_order.id)

    with pytest.raises(ConflictError):
        PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 1, 1))


def test_partial_receipt_notifies_with_received_quantities(db_session, notifier, confirmed_order):
    gauze_item = confirmed_order.items[0]

    PartialInboundService(db_session, notifier).process(TENANT, _request(confirmed_order, 6, 0))

    event, order_no, extra = notifier.events[-1]
    assert event == "completed"
    assert order_no == confirmed_order.order_no
    assert extra == {"received": {str(gauze_item.id): 6}, "partial": True}
