"""
Order Number - base number plus typed derivative suffixes

    CLIN-20261016-482913        original
    CLIN-20261016-482913-C      completed part of a partial inbound
    CLIN-20261016-482913-P      remaining part of a partial inbound
    CLIN-20261016-482913-P-C    a remaining part that was itself split
"""
import enum
import re
import secrets
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Tuple


class OrderVariant(str, enum.Enum):
    COMPLETED = "C"
    PENDING = "P"
    RETURN = "R"


_VARIANT_VALUES = {v.value for v in OrderVariant}


def default_suffix_source() -> int:
    return secrets.randbelow(1_000_000)


def tenant_code(tenant_id: str) -> str:
    """First four alphanumerics of the tenant id, upper-cased"""
    code = re.sub(r"[^A-Za-z0-9]", "", tenant_id or "")[:4].upper()
    return code or "CLNC"


@dataclass(frozen=True)
class OrderNumber:
    base_number: str
    variants: Tuple[OrderVariant, ...] = ()

    @classmethod
    def generate(
        cls,
        tenant_id: str,
        today: Optional[date] = None,
        suffix_source: Callable[[], int] = default_suffix_source,
    ) -> "OrderNumber":
        today = today or date.today()
        suffix = suffix_source() % 1_000_000
        return cls(f"{tenant_code(tenant_id)}-{today:%Y%m%d}-{suffix:06d}")

    @classmethod
    def parse(cls, raw: str) -> "OrderNumber":
        """Split trailing -C / -P / -R suffixes off a stored order number"""
        parts = raw.strip().split("-")
        variants = []
        while len(parts) > 1 and parts[-1] in _VARIANT_VALUES:
            variants.insert(0, OrderVariant(parts.pop()))
        return cls("-".join(parts), tuple(variants))

    @property
    def variant(self) -> Optional[OrderVariant]:
        return self.variants[-1] if self.variants else None

    @property
    def is_derivative(self) -> bool:
        return bool(self.variants)

    @property
    def external(self) -> str:
        """The number the supplier platform knows the order by"""
        return self.base_number

    def derive(self, variant: OrderVariant) -> "OrderNumber":
        return OrderNumber(self.base_number, self.variants + (variant,))

    def __str__(self) -> str:
        return self.base_number + "".join(f"-{v.value}" for v in self.variants)
