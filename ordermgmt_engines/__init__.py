"""
Module: ordermgmt_engines
Responsibility:
    Pure calculation layer for settlement reconciliation: key and value
    normalization, the order/SKU matching engine, the COGS formula and the
    KPI aggregation.

Architecture position:
    Engines -- zero I/O.  May import ``ordermgmt_kernel.logging_config``
    (for the tracer) and sibling engine modules only.  MUST NOT import
    ``ordermgmt_settlement``, ``ordermgmt_jobs`` or any ORM model.

Invariants enforced:
    - Engines never read the clock; timestamps are passed in.
    - Money is ``Decimal``; floats are never used for amounts.
    - Identical inputs always produce identical outputs.

Usage:
    from ordermgmt_engines import MatchIndex, match_row, compute_settlement_kpis
"""

from ordermgmt_engines.cogs import (
    CogsMissingReason,
    CogsSource,
    OrderCogs,
    compute_order_cogs,
    lines_cost_total,
)
from ordermgmt_engines.kpis import (
    SettlementKpis,
    compute_settlement_kpis,
    order_cogs_for_rows,
)
from ordermgmt_engines.matching import (
    MatchConfidence,
    MatchIndex,
    MatchResult,
    MatchStatus,
    MatchStrategy,
    NotFoundReason,
    match_row,
)
from ordermgmt_engines.normalization import (
    month_key,
    normalize_header,
    normalize_order_id,
    normalize_sku_code,
    parse_amount,
    parse_settlement_datetime,
)
from ordermgmt_engines.refs import OrderLineRef, OrderRef, RowRef, SkuRef

__all__ = [
    "CogsMissingReason",
    "CogsSource",
    "MatchConfidence",
    "MatchIndex",
    "MatchResult",
    "MatchStatus",
    "MatchStrategy",
    "NotFoundReason",
    "OrderCogs",
    "OrderLineRef",
    "OrderRef",
    "RowRef",
    "SettlementKpis",
    "SkuRef",
    "compute_order_cogs",
    "compute_settlement_kpis",
    "lines_cost_total",
    "match_row",
    "month_key",
    "normalize_header",
    "normalize_order_id",
    "normalize_sku_code",
    "order_cogs_for_rows",
    "parse_amount",
    "parse_settlement_datetime",
]
