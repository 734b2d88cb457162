from datetime import date, timedelta

import pytest

from clinic_orders.core.exceptions import NotFoundError, ValidationError
from clinic_orders.models import Batch, OrderReturn, Outbound, OutboundType
from clinic_orders.schemas import (
    BulkOutboundCreate, OutboundCancel, OutboundCreate, OutboundLine, PackageOutboundCreate, UnifiedOutboundCreate,
)
from clinic_orders.services import CacheView, OutboundService

from conftest import NOW, TENANT


@pytest.fixture
def outbounds(db_session, view_cache):
    return OutboundService(db_session, cache=view_cache, clock=lambda: NOW)


@pytest.fixture
def stocked(make_product, make_batch):
    product = make_product("Lidocaine 2%", "Huons")
    batch = make_batch(product, qty=5, batch_no="LIDO-1", expiry_date=date(2027, 1, 1))
    return product, batch


def _create(product, batch, qty, **extra):
    extra.setdefault("manager_name", "Choi")
    return OutboundCreate(product_id=product.id, batch_id=batch.id, outbound_qty=qty, **extra)


def _qty(db_session, batch):
    return db_session.query(Batch).filter(Batch.id == batch.id).one().qty


def test_outbound_decrements_batch_and_product(db_session, outbounds, stocked):
    product, batch = stocked

    record = outbounds.create_outbound(TENANT, _create(product, batch, 2, patient_name="Hong"))

    assert record.outbound_qty == 2
    assert record.batch_no == "LIDO-1"
    assert record.outbound_date == NOW
    assert _qty(db_session, batch) == 3
    db_session.refresh(product)
    assert product.current_stock == 3


def test_insufficient_stock_is_rejected(db_session, outbounds, stocked):
    product, batch = stocked

    with pytest.raises(ValidationError, match="Insufficient"):
        outbounds.create_outbound(TENANT, _create(product, batch, 6))

    assert _qty(db_session, batch) == 5
    assert db_session.query(Outbound).count() == 0


def test_expired_batch_is_rejected(outbounds, make_product, make_batch):
    product = make_product()
    batch = make_batch(product, qty=5, expiry_date=NOW.date() - timedelta(days=1))

    with pytest.raises(ValidationError, match="expired"):
        outbounds.create_outbound(TENANT, _create(product, batch, 1))


def test_batch_expiring_today_cannot_be_dispensed(db_session, outbounds, make_product, make_batch):
    product = make_product()
    batch = make_batch(product, qty=5, expiry_date=NOW.date())

    with pytest.raises(ValidationError, match="expired"):
        outbounds.create_outbound(TENANT, _create(product, batch, 1))

    assert _qty(db_session, batch) == 5
    assert db_session.query(Outbound).count() == 0


def test_batch_of_other_tenant_is_not_found(outbounds, make_product, make_batch):
    foreign = make_product(tenant_id="clinic-b")
    batch = make_batch(foreign, qty=5)

    with pytest.raises(NotFoundError):
        outbounds.create_outbound(TENANT, _create(foreign, batch, 1))


def test_bulk_counts_lines_on_the_same_batch_together(db_session, outbounds, stocked):
    product, batch = stocked

    with pytest.raises(ValidationError):
        outbounds.create_bulk_outbound(TENANT, BulkOutboundCreate(items=[
            _create(product, batch, 3),
            _create(product, batch, 3),
        ]))

    assert _qty(db_session, batch) == 5
    assert db_session.query(Outbound).count() == 0


def test_bulk_writes_every_line(db_session, outbounds, stocked, make_product, make_batch):
    product, batch = stocked
    other = make_product("Gauze", "3M")
    other_batch = make_batch(other, qty=20, batch_no="GZ-1")

    records = outbounds.create_bulk_outbound(TENANT, BulkOutboundCreate(items=[
        _create(product, batch, 2),
        _create(other, other_batch, 7),
        _create(product, batch, 3),
    ]))

    assert len(records) == 3
    assert _qty(db_session, batch) == 0
    assert _qty(db_session, other_batch) == 13


def test_package_outbound_is_all_or_nothing(db_session, outbounds, stocked, make_product, make_batch, make_package):
    product, batch = stocked
    needle = make_product("Needle 30G", "BD")
    needle_batch = make_batch(needle, qty=1, batch_no="NDL-1")
    package = make_package([product, needle])

    with pytest.raises(ValidationError):
        outbounds.create_package_outbound(TENANT, PackageOutboundCreate(
            package_id=package.id,
            manager_name="Choi",
            items=[
                OutboundLine(product_id=product.id, batch_id=batch.id, outbound_qty=2),
                OutboundLine(product_id=needle.id, batch_id=needle_batch.id, outbound_qty=2),
            ],
        ))

    assert _qty(db_session, batch) == 5
    assert _qty(db_session, needle_batch) == 1


def test_package_outbound_rejects_foreign_products(outbounds, stocked, make_product, make_batch, make_package):
    product, batch = stocked
    stray = make_product("Stray", None)
    stray_batch = make_batch(stray, qty=5)
    package = make_package([product])

    with pytest.raises(ValidationError, match="not part of package"):
        outbounds.create_package_outbound(TENANT, PackageOutboundCreate(
            package_id=package.id,
            manager_name="Choi",
            items=[OutboundLine(product_id=stray.id, batch_id=stray_batch.id, outbound_qty=1)],
        ))


def test_package_outbound_records_package(db_session, outbounds, stocked, make_package):
    product, batch = stocked
    package = make_package([product])

    records = outbounds.create_package_outbound(TENANT, PackageOutboundCreate(
        package_id=package.id,
        manager_name="Choi",
        items=[OutboundLine(product_id=product.id, batch_id=batch.id, outbound_qty=1)],
    ))

    assert records[0].outbound_type == OutboundType.PACKAGE.value
    assert records[0].package_id == package.id


def test_unified_outbound_reports_failed_lines(db_session, outbounds, stocked, make_product, make_batch):
    product, batch = stocked
    expired = make_batch(make_product("Old vial", None), qty=5, batch_no="OLD", expiry_date=date(2020, 1, 1))

    result = outbounds.create_unified_outbound(TENANT, UnifiedOutboundCreate(
        outbound_type=OutboundType.BARCODE,
        manager_name="Choi",
        items=[
            OutboundLine(product_id=product.id, batch_id=batch.id, outbound_qty=4),
            OutboundLine(product_id=expired.product_id, batch_id=expired.id, outbound_qty=1),
            OutboundLine(product_id=product.id, batch_id=batch.id, outbound_qty=2),
        ],
    ))

    assert result["success"] is True
    assert len(result["outbound_ids"]) == 1
    assert len(result["failed_items"]) == 2
    assert "expired" in result["failed_items"][0]["error"]
    assert "Insufficient" in result["failed_items"][1]["error"]
    assert _qty(db_session, batch) == 1
    assert _qty(db_session, expired) == 5


def test_unified_outbound_with_every_line_failing(outbounds, stocked):
    product, batch = stocked

    result = outbounds.create_unified_outbound(TENANT, UnifiedOutboundCreate(
        outbound_type=OutboundType.PRODUCT,
        manager_name="Choi",
        items=[OutboundLine(product_id=product.id, batch_id=batch.id, outbound_qty=50)],
    ))

    assert result["success"] is False
    assert result["outbound_ids"] == []


def test_cancel_by_timestamp_restores_stock(db_session, outbounds, stocked):
    product, batch = stocked
    outbounds.create_bulk_outbound(TENANT, BulkOutboundCreate(items=[
        _create(product, batch, 2),
        _create(product, batch, 1),
    ]))

    result = outbounds.cancel_by_timestamp(TENANT, OutboundCancel(
        outbound_timestamp=NOW + timedelta(seconds=1), manager_name="Choi",
    ))

    assert result == {"cancelled": 2, "restored": {"LIDO-1": 3}}
    assert _qty(db_session, batch) == 5
    assert db_session.query(Outbound).count() == 0
    db_session.refresh(product)
    assert product.current_stock == 5


def test_cancel_outside_window_or_other_manager_finds_nothing(outbounds, stocked):
    product, batch = stocked
    outbounds.create_outbound(TENANT, _create(product, batch, 1))

    with pytest.raises(NotFoundError):
        outbounds.cancel_by_timestamp(TENANT, OutboundCancel(outbound_timestamp=NOW + timedelta(seconds=3), manager_name="Choi"))
    with pytest.raises(NotFoundError):
        outbounds.cancel_by_timestamp(TENANT, OutboundCancel(outbound_timestamp=NOW, manager_name="Someone else"))


def test_defective_outbound_raises_a_return(db_session, outbounds, make_product, make_batch):
    product = make_product("Filler 1cc", "Galderma", purchase_price="80.00")
    batch = make_batch(product, qty=3, batch_no="FL-9", order_no="CLIN-20261001-000123-C", purchase_price="75.00")

    record = outbounds.create_outbound(TENANT, _create(product, batch, 1, is_defective=True, memo="cracked syringe"))

    row = db_session.query(OrderReturn).one()
    assert row.return_no == "CLIN-20261001-000123-C-R"
    assert row.outbound_id == record.id
    assert row.return_type == "DEFECTIVE"
    assert row.status == "pending"
    assert row.return_quantity == 1
    assert row.memo == "cracked syringe"


def test_cancelling_defective_outbound_voids_its_return(db_session, outbounds, stocked):
    product, batch = stocked
    outbounds.create_outbound(TENANT, _create(product, batch, 1, is_defective=True))
    assert db_session.query(OrderReturn).count() == 1

    outbounds.cancel_by_timestamp(TENANT, OutboundCancel(outbound_timestamp=NOW, manager_name="Choi"))

    assert db_session.query(OrderReturn).count() == 0


def test_outbound_invalidates_product_view(outbounds, view_cache, stocked):
    product, batch = stocked
    loads = []
    view_cache.get(TENANT, CacheView.ORDER_PRODUCTS, lambda: loads.append(1) or "v1")

    outbounds.create_outbound(TENANT, _create(product, batch, 1))
    view_cache.get(TENANT, CacheView.ORDER_PRODUCTS, lambda: loads.append(1) or "v2")

    assert len(loads) == 2


def test_history_filters(outbounds, stocked, make_product, make_batch):
    product, batch = stocked
    gauze = make_product("Gauze", "3M")
    gauze_batch = make_batch(gauze, qty=10, batch_no="GZ-1")
    outbounds.create_outbound(TENANT, _create(product, batch, 1, patient_name="Hong"))
    outbounds.create_outbound(TENANT, _create(gauze, gauze_batch, 1, manager_name="Yoon"))

    by_search, total = outbounds.get_history(TENANT, search="lido")
    assert total == 1 and by_search[0].product_id == product.id

    by_manager, total = outbounds.get_history(TENANT, manager_name="Yoon")
    assert total == 1 and by_manager[0].product_id == gauze.id

    assert outbounds.get_history("clinic-b")[1] == 0
