import os

# Must be set before clinic_orders.core reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULER"] = "false"

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_orders.core import Base, get_db, settings
from clinic_orders.models import (
    Batch, Package, PackageItem, Product, ProductSupplier, SupplierContact, SupplierManager,
)
from clinic_orders.services import NotificationPort, Sent, ViewCache

TENANT = "clinic-a"
NOW = datetime(2026, 10, 16, 9, 30, 0)


class InlineExecutor:
    """Runs submitted work immediately, on the calling thread"""

    def submit(self, fn, *args, **kwargs):
        fn(*args, **kwargs)

    def shutdown(self, wait=False):
        pass


class DeferredExecutor:
    """Keeps submitted work until the test runs it"""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        self.pending.append((fn, args, kwargs))

    def run_all(self):
        pending, self.pending = self.pending, []
        for fn, args, kwargs in pending:
            fn(*args, **kwargs)

    def shutdown(self, wait=False):
        pass


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingNotifier(NotificationPort):
    """Captures every event instead of sending it"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events = []

    def _record(self, event, order, **extra):
        if self.fail:
            raise RuntimeError("supplier unreachable")
        self.events.append((event, order.order_no, extra))
        return Sent("test")

    def order_created(self, order):
        return self._record("created", order)

    def order_cancelled(self, order):
        return self._record("cancelled", order)

    def order_completed(self, order, received, partial=False):
        return self._record("completed", order, received=dict(received), partial=partial)


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test, one shared connection"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def view_cache():
    return ViewCache(ttl_seconds=30, executor=InlineExecutor(), clock=FakeClock())


# ========== Factories ==========

@pytest.fixture
def make_product(db_session):
    def _make(name="Lidocaine 2%", brand="Huons", purchase_price="10.00", min_stock=0, current_stock=0, tenant_id=TENANT):
        product = Product(
            tenant_id=tenant_id,
            name=name,
            brand=brand,
            purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
            min_stock=min_stock,
            current_stock=current_stock,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_batch(db_session):
    def _make(product, qty=10, batch_no="B-001", expiry_date=None, manufacture_date=None, order_no=None, purchase_price=None):
        batch = Batch(
            tenant_id=product.tenant_id,
            product_id=product.id,
            batch_no=batch_no,
            qty=qty,
            expiry_date=expiry_date,
            manufacture_date=manufacture_date,
            order_no=order_no,
            purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
        )
        db_session.add(batch)
        db_session.commit()
        return batch
    return _make


@pytest.fixture
def make_supplier(db_session):
    def _make(company_name="Seoul Medical", linked=False, phone="010-1234-5678", email=None, tenant_id=TENANT):
        manager = None
        if linked:
            manager = SupplierManager(supplier_tenant_id=f"sup-{company_name.lower().replace(' ', '-')}", name="Kim")
            db_session.add(manager)
            db_session.flush()
        contact = SupplierContact(
            tenant_id=tenant_id,
            company_name=company_name,
            manager_name="Kim",
            phone=phone,
            email=email,
            linked_manager_id=manager.id if manager else None,
        )
        db_session.add(contact)
        db_session.commit()
        return contact
    return _make


@pytest.fixture
def link_supplier(db_session):
    def _link(product, contact, purchase_price=None):
        link = ProductSupplier(
            tenant_id=product.tenant_id,
            product_id=product.id,
            supplier_contact_id=contact.id,
            purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
        )
        db_session.add(link)
        db_session.commit()
        return link
    return _link


@pytest.fixture
def make_package(db_session):
    def _make(products, name="Filler kit"):
        package = Package(tenant_id=TENANT, name=name)
        for product in products:
            package.items.append(PackageItem(product_id=product.id, quantity=1))
        db_session.add(package)
        db_session.commit()
        return package
    return _make


# ========== HTTP ==========

@pytest.fixture
def client(db_session, notifier, view_cache, session_factory, monkeypatch):
    from fastapi.testclient import TestClient

    from clinic_orders.api.deps import get_notifier, get_session_factory, get_view_cache
    from main import app

    monkeypatch.setattr(settings, "SUPPLIER_WEBHOOK_API_KEY", "test-webhook-key")

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_view_cache] = lambda: view_cache
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def today():
    return date(2026, 10, 16)
