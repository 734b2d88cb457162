"""
View Cache - stale-while-revalidate cache for read-heavy order views

Entries are keyed by (tenant, view). A fresh hit is returned as is; a stale
hit is returned immediately and a refresh is scheduled on a worker thread
(at most one in flight per key); a miss loads synchronously. Loaders must
open their own database session, they run outside the request.
"""
import enum
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class CacheView(str, enum.Enum):
    PENDING_INBOUND = "pending_inbound"
    ORDER_PRODUCTS = "order_products"


CacheKey = Tuple[str, str]


@dataclass
class _Entry:
    value: Any
    loaded_at: float
    generation: int


class ViewCache:

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_size: int = 100,
        max_stale_factor: int = 10,
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        # Entries older than ttl * factor are dropped by prune()
        self.max_stale_seconds = ttl_seconds * max_stale_factor
        self.clock = clock
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="view-cache")
        self._entries: "OrderedDict[CacheKey, _Entry]" = OrderedDict()
        self._generations: Dict[CacheKey, int] = {}
        self._refreshing: set = set()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.stale_hits = 0

    @staticmethod
    def _key(tenant_id: str, view) -> CacheKey:
        return (tenant_id, view.value if isinstance(view, CacheView) else str(view))

    def get(self, tenant_id: str, view, loader: Callable[[], Any]) -> Any:
        key = self._key(tenant_id, view)
        now = self.clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                if now - entry.loaded_at < self.ttl_seconds:
                    self.hits += 1
                    return entry.value
                self.stale_hits += 1
                schedule = key not in self._refreshing
                if schedule:
                    self._refreshing.add(key)
                generation = self._generations.get(key, 0)
            else:
                self.misses += 1
                generation = self._generations.get(key, 0)

        if entry is not None:
            if schedule:
                self._executor.submit(self._refresh, key, loader, generation)
            return entry.value

        value = loader()
        self._store(key, value, generation)
        return value

    def _refresh(self, key: CacheKey, loader: Callable[[], Any], generation: int):
        try:
            value = loader()
            self._store(key, value, generation)
            logger.debug(f"[OK] Refreshed view {key[1]} for tenant {key[0]}")
        except Exception as e:
            logger.error(f"[FAIL] Background refresh of {key[1]} for tenant {key[0]}: {e}")
        finally:
            with self._lock:
                self._refreshing.discard(key)

    def _store(self, key: CacheKey, value: Any, generation: int):
        with self._lock:
            # Invalidated while loading: the value predates the change
            if self._generations.get(key, 0) != generation:
                return
            self._entries[key] = _Entry(value=value, loaded_at=self.clock(), generation=generation)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted view {evicted[1]} for tenant {evicted[0]}")

    def invalidate(self, tenant_id: str, view=None):
        """Drop one view, or every view of the tenant"""
        with self._lock:
            if view is not None:
                keys = [self._key(tenant_id, view)]
            else:
                keys = [self._key(tenant_id, v) for v in CacheView]
                keys += [k for k in self._entries if k[0] == tenant_id and k not in keys]
            for key in keys:
                self._entries.pop(key, None)
                self._generations[key] = self._generations.get(key, 0) + 1

    def prune(self) -> int:
        """Drop entries stale beyond max_stale_seconds"""
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.loaded_at >= self.max_stale_seconds]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "stale_hits": self.stale_hits,
                "refreshing": len(self._refreshing),
            }

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait)
