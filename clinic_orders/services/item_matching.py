"""
Item Matching - map a supplier-side item reference to a local order item

Tiers, tried in order, each yielding a unique match or nothing:
    1. local item id
    2. snapshot attributes (product name, brand, unit price)
    3. snapshot product id
An ambiguous tier counts as no match and is logged. A local item claimed by
one adjustment is not offered to the next.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Set
import logging

from clinic_orders.models import OrderItem
from clinic_orders.schemas import RemoteItemSnapshot

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    item: Optional[OrderItem] = None
    tier: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.item is not None


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _same_price(a, b) -> bool:
    if a is None or b is None:
        return False
    return Decimal(str(a)) == Decimal(str(b))


def by_item_id(candidates: List[OrderItem], remote_id: str, snapshot: Optional[RemoteItemSnapshot]) -> List[OrderItem]:
    return [item for item in candidates if str(item.id) == remote_id]


def by_attributes(candidates: List[OrderItem], remote_id: str, snapshot: Optional[RemoteItemSnapshot]) -> List[OrderItem]:
    if snapshot is None or not snapshot.product_name:
        return []
    return [
        item for item in candidates
        if item.product is not None
        and _norm(item.product.name) == _norm(snapshot.product_name)
        and _norm(item.product.brand) == _norm(snapshot.brand)
        and _same_price(item.unit_price, snapshot.unit_price)
    ]


def by_product_id(candidates: List[OrderItem], remote_id: str, snapshot: Optional[RemoteItemSnapshot]) -> List[OrderItem]:
    if snapshot is None or not snapshot.product_id:
        return []
    return [item for item in candidates if str(item.product_id) == snapshot.product_id]


MatchStrategy = Callable[[List[OrderItem], str, Optional[RemoteItemSnapshot]], List[OrderItem]]

DEFAULT_STRATEGIES: Dict[str, MatchStrategy] = {
    "item_id": by_item_id,
    "attributes": by_attributes,
    "product_id": by_product_id,
}


class ItemMatcher:

    def __init__(
        self,
        items: Iterable[OrderItem],
        snapshots: Iterable[RemoteItemSnapshot] = (),
        strategies: Optional[Dict[str, MatchStrategy]] = None,
    ):
        self.items = list(items)
        self.snapshots = {s.item_id: s for s in snapshots if s.item_id}
        self.strategies = strategies or DEFAULT_STRATEGIES
        self.claimed: Set[str] = set()

    def match(self, remote_id: str, snapshot: Optional[RemoteItemSnapshot] = None) -> MatchResult:
        """Find the local item for one remote reference and claim it"""
        snapshot = snapshot or self.snapshots.get(remote_id)
        candidates = [item for item in self.items if str(item.id) not in self.claimed]

        for tier, strategy in self.strategies.items():
            found = strategy(candidates, remote_id, snapshot)
            if len(found) == 1:
                self.claimed.add(str(found[0].id))
                return MatchResult(found[0], tier)
            if len(found) > 1:
                logger.warning(f"[SKIP] {len(found)} items match remote item {remote_id} by {tier}, ambiguous")

        logger.warning(f"[SKIP] No local item matches remote item {remote_id}")
        return MatchResult()
