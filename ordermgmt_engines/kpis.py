"""
ordermgmt_engines.kpis -- Settlement aggregate KPIs.

Responsibility:
    ``compute_settlement_kpis`` is the one aggregation used to fill an
    import's ``totals_cached`` at finalisation, to rewrite it after a COGS
    recompute, and to recompute it during an audit.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Definitions (active rows only):
    revenue      = sum of row totals
    COGS         = sum of COGS over distinct, non-deleted matched orders;
                   each order counts once however many rows point at it
    profit       = revenue - COGS
    margin       = profit / revenue, 0 when revenue is 0
    orders_count = distinct normalized report order ids
    skus_count   = distinct normalized non-blank SKUs
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol
from uuid import UUID

from ordermgmt_engines.cogs import CogsSource, OrderCogs, compute_order_cogs
from ordermgmt_engines.matching import MatchIndex, MatchStatus
from ordermgmt_engines.normalization import normalize_order_id, normalize_sku_code
from ordermgmt_engines.tracer import traced_engine

ZERO = Decimal("0")
MONEY_QUANTUM = Decimal("0.01")
MARGIN_QUANTUM = Decimal("0.0001")

_COGS_STATUSES = frozenset({MatchStatus.MATCHED.value, MatchStatus.UNMATCHED_SKU.value})


class KpiRow(Protocol):
    """Settlement-row fields the aggregation reads."""

    order_id: str
    sku: str | None
    total: Decimal
    match_status: str
    matched_order_id: UUID | None
    is_deleted: bool


@dataclass(frozen=True)
class SettlementKpis:
    total_revenue: Decimal = ZERO
    total_cogs: Decimal = ZERO
    total_profit: Decimal = ZERO
    margin: Decimal = ZERO
    orders_count: int = 0
    skus_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON form stored in ``totals_cached``.  Decimals as strings."""
        return {
            "total_revenue": str(self.total_revenue),
            "total_cogs": str(self.total_cogs),
            "total_profit": str(self.total_profit),
            "margin": str(self.margin),
            "orders_count": self.orders_count,
            "skus_count": self.skus_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SettlementKpis | None:
        if not data:
            return None
        return cls(
            total_revenue=Decimal(str(data.get("total_revenue", "0"))),
            total_cogs=Decimal(str(data.get("total_cogs", "0"))),
            total_profit=Decimal(str(data.get("total_profit", "0"))),
            margin=Decimal(str(data.get("margin", "0"))),
            orders_count=int(data.get("orders_count", 0)),
            skus_count=int(data.get("skus_count", 0)),
        )


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, MatchStatus) else str(status)


def order_cogs_for_rows(rows: Iterable[KpiRow], index: MatchIndex) -> dict[UUID, OrderCogs]:
    """COGS per distinct, non-deleted matched order referenced by active rows."""
    result: dict[UUID, OrderCogs] = {}
    for row in rows:
        if row.is_deleted or row.matched_order_id is None:
            continue
        if _status_value(row.match_status) not in _COGS_STATUSES:
            continue
        if row.matched_order_id in result:
            continue
        order = index.order(row.matched_order_id)
        if order is None or order.is_deleted:
            continue
        result[order.id] = compute_order_cogs(
            order, index.lines_for(order.id), index.skus_by_id,
        )
    return result


@traced_engine("settlement_kpis", "1.0")
def compute_settlement_kpis(rows: Iterable[KpiRow], index: MatchIndex) -> SettlementKpis:
    active = [row for row in rows if not row.is_deleted]

    revenue = sum((row.total or ZERO for row in active), ZERO)
    per_order = order_cogs_for_rows(active, index)
    cogs = sum(
        (c.cogs for c in per_order.values() if c.source != CogsSource.MISSING and c.cogs),
        ZERO,
    )
    profit = revenue - cogs
    margin = (profit / revenue).quantize(MARGIN_QUANTUM, ROUND_HALF_UP) if revenue else ZERO

    order_keys = {normalize_order_id(row.order_id) for row in active}
    order_keys.discard("")
    sku_keys = {normalize_sku_code(row.sku) for row in active}
    sku_keys.discard("")

    return SettlementKpis(
        total_revenue=revenue.quantize(MONEY_QUANTUM, ROUND_HALF_UP),
        total_cogs=cogs.quantize(MONEY_QUANTUM, ROUND_HALF_UP),
        total_profit=profit.quantize(MONEY_QUANTUM, ROUND_HALF_UP),
        margin=margin,
        orders_count=len(order_keys),
        skus_count=len(sku_keys),
    )
