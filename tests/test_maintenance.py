from datetime import timedelta

from clinic_orders.jobs import purge_expired_drafts
from clinic_orders.jobs.maintenance import prune_view_cache
from clinic_orders.models import OrderDraft, utcnow
from clinic_orders.services import CacheView, ViewCache

from conftest import FakeClock, InlineExecutor, TENANT


def test_purge_expired_drafts_job(db_session, session_factory):
    now = utcnow()
    db_session.add_all([
        OrderDraft(tenant_id=TENANT, session_id="old", items=[], expires_at=now - timedelta(hours=1)),
        OrderDraft(tenant_id=TENANT, session_id="live", items=[], expires_at=now + timedelta(hours=1)),
    ])
    db_session.commit()

    assert purge_expired_drafts(session_factory) == 1
    assert [d.session_id for d in db_session.query(OrderDraft).all()] == ["live"]


def test_prune_view_cache_job():
    clock = FakeClock()
    cache = ViewCache(ttl_seconds=1, executor=InlineExecutor(), clock=clock)
    cache.get(TENANT, CacheView.ORDER_PRODUCTS, lambda: [])
    clock.advance(60)

    assert prune_view_cache(cache) == 1
