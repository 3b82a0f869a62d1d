"""
Frozen snapshots of the catalogue records the engines read.

The settlement services load orders, lines and SKUs once per operation and
hand the engines these value objects, never live ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class OrderRef:
    id: UUID
    amazon_order_id: str
    total_cost: Decimal = Decimal("0")
    is_deleted: bool = False


@dataclass(frozen=True)
class SkuRef:
    id: UUID
    sku_code: str
    cost_price: Decimal | None = None


@dataclass(frozen=True)
class OrderLineRef:
    order_id: UUID
    sku_id: UUID | None
    quantity: int = 1
    unit_cost: Decimal | None = None


@dataclass(frozen=True)
class RowRef:
    """The two settlement-row fields matching depends on."""

    order_id: str
    sku: str | None = None
