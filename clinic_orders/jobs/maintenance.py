"""
Maintenance Scheduler - periodic housekeeping
  - purge expired order drafts
  - prune long-stale view cache entries
"""
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clinic_orders.core.config import settings
from clinic_orders.core.database import SessionLocal
from clinic_orders.services import DraftService, ViewCache

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None


def purge_expired_drafts(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        count = DraftService(db).purge_expired()
        if count:
            logger.info(f"[OK] Purged {count} expired draft(s)")
        return count
    except Exception as e:
        db.rollback()
        logger.error(f"[FAIL] Draft purge: {e}")
        return 0
    finally:
        db.close()


def prune_view_cache(cache: ViewCache) -> int:
    count = cache.prune()
    if count:
        logger.info(f"[OK] Pruned {count} stale view(s)")
    return count


class MaintenanceScheduler:
    """
    Runs the housekeeping jobs on an interval
    """

    def __init__(self, cache: Optional[ViewCache] = None):
        self.scheduler = AsyncIOScheduler()
        self.cache = cache
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            return

        interval = IntervalTrigger(minutes=settings.DRAFT_CLEANUP_INTERVAL_MINUTES)
        self.scheduler.add_job(
            func=purge_expired_drafts,
            trigger=interval,
            id="purge_expired_drafts",
            name="Purge expired drafts",
            replace_existing=True,
        )
        if self.cache is not None:
            self.scheduler.add_job(
                func=prune_view_cache,
                args=[self.cache],
                trigger=IntervalTrigger(minutes=settings.DRAFT_CLEANUP_INTERVAL_MINUTES),
                id="prune_view_cache",
                name="Prune view cache",
                replace_existing=True,
            )

        self.scheduler.start()
        self.is_running = True
        logger.info("Maintenance scheduler started")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Maintenance scheduler stopped")


def get_scheduler(cache: Optional[ViewCache] = None) -> "MaintenanceScheduler":
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = MaintenanceScheduler(cache)
    return _scheduler


def start_scheduler(cache: Optional[ViewCache] = None):
    """Start the global scheduler"""
    get_scheduler(cache).start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
