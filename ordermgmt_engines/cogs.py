"""
ordermgmt_engines.cogs -- Cost of goods sold for one matched order.

Responsibility:
    ``compute_order_cogs`` is the single COGS formula.  Ingestion, the COGS
    recompute and the integrity audit all call it, so the three paths can
    never disagree about what an order cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Works on the frozen
    ``OrderRef`` / ``OrderLineRef`` / ``SkuRef`` snapshots.

Source priority:
    1. ``ORDER_TOTAL``: the order's own ``total_cost`` when > 0.
    2. ``ORDER_LINES_SKU_COST``: sum of ``quantity * unit_cost`` over the
       order's lines, using the SKU ``cost_price`` for a line without a
       unit cost, when that sum is > 0.
    3. ``MISSING`` with a reason:
       ``NO_ORDER_LINES`` (no lines at all), ``COST_MISSING_EVERYWHERE``
       (no line carries a cost from either source) or ``SKU_COST_MISSING``
       (some lines are costed but the total still comes to zero).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ordermgmt_engines.refs import OrderLineRef, OrderRef, SkuRef

ZERO = Decimal("0")


class CogsSource(str, Enum):
    """Where an order's COGS came from."""

    ORDER_TOTAL = "ORDER_TOTAL"
    ORDER_LINES_SKU_COST = "ORDER_LINES_SKU_COST"
    MISSING = "MISSING"


class CogsMissingReason(str, Enum):
    NO_ORDER_LINES = "NO_ORDER_LINES"
    SKU_COST_MISSING = "SKU_COST_MISSING"
    COST_MISSING_EVERYWHERE = "COST_MISSING_EVERYWHERE"


@dataclass(frozen=True)
class OrderCogs:
    """COGS outcome for one order.  ``cogs`` is None when MISSING."""

    order_id: UUID
    cogs: Decimal | None
    source: CogsSource
    reason: CogsMissingReason | None = None
    lines_count: int = 0
    lines_cogs_sum: Decimal = ZERO

    @property
    def is_missing(self) -> bool:
        return self.source == CogsSource.MISSING


def _line_unit_cost(line: OrderLineRef, skus_by_id: Mapping[UUID, SkuRef]) -> Decimal | None:
    if line.unit_cost is not None and line.unit_cost > 0:
        return line.unit_cost
    if line.sku_id is not None:
        sku = skus_by_id.get(line.sku_id)
        if sku is not None and sku.cost_price is not None and sku.cost_price > 0:
            return sku.cost_price
    return None


def compute_order_cogs(
    order: OrderRef,
    lines: Sequence[OrderLineRef],
    skus_by_id: Mapping[UUID, SkuRef],
) -> OrderCogs:
    """Apply the source priority to one order and its lines."""
    if order.total_cost is not None and order.total_cost > 0:
        return OrderCogs(
            order_id=order.id,
            cogs=order.total_cost,
            source=CogsSource.ORDER_TOTAL,
            lines_count=len(lines),
        )

    if not lines:
        return OrderCogs(
            order_id=order.id,
            cogs=None,
            source=CogsSource.MISSING,
            reason=CogsMissingReason.NO_ORDER_LINES,
        )

    total = ZERO
    costed = 0
    for line in lines:
        unit_cost = _line_unit_cost(line, skus_by_id)
        if unit_cost is None:
            continue
        costed += 1
        total += unit_cost * Decimal(line.quantity)

    if total > 0:
        return OrderCogs(
            order_id=order.id,
            cogs=total,
            source=CogsSource.ORDER_LINES_SKU_COST,
            lines_count=len(lines),
            lines_cogs_sum=total,
        )

    reason = (
        CogsMissingReason.COST_MISSING_EVERYWHERE
        if costed == 0
        else CogsMissingReason.SKU_COST_MISSING
    )
    return OrderCogs(
        order_id=order.id,
        cogs=None,
        source=CogsSource.MISSING,
        reason=reason,
        lines_count=len(lines),
    )


def lines_cost_total(
    lines: Sequence[OrderLineRef],
    skus_by_id: Mapping[UUID, SkuRef],
) -> Decimal:
    """Sum of line costs (unit cost or SKU cost).  Used to sync ``total_cost``."""
    total = ZERO
    for line in lines:
        unit_cost = _line_unit_cost(line, skus_by_id)
        if unit_cost is not None:
            total += unit_cost * Decimal(line.quantity)
    return total
