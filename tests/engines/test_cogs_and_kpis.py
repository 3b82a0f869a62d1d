"""
Tests for ordermgmt_engines.cogs and ordermgmt_engines.kpis -- COGS source
priority and the settlement KPI aggregation.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from ordermgmt_engines.cogs import (
    CogsMissingReason,
    CogsSource,
    compute_order_cogs,
    lines_cost_total,
)
from ordermgmt_engines.kpis import SettlementKpis, compute_settlement_kpis
from ordermgmt_engines.matching import MatchIndex
from ordermgmt_engines.refs import OrderLineRef, OrderRef, SkuRef


@dataclass
class Row:
    order_id: str
    total: Decimal
    match_status: str = "unmatched_order"
    matched_order_id: UUID | None = None
    sku: str | None = "SKU-1"
    is_deleted: bool = False


def _order(total_cost="0", is_deleted=False, amazon_order_id="114-1234567-1234567"):
    return OrderRef(uuid4(), amazon_order_id, Decimal(total_cost), is_deleted)


class TestComputeOrderCogs:
    def test_order_total_wins_over_lines(self):
        order = _order("50")
        lines = [OrderLineRef(order.id, None, 3, Decimal("10"))]

        cogs = compute_order_cogs(order, lines, {})

        assert cogs.source == CogsSource.ORDER_TOTAL
        assert cogs.cogs == Decimal("50")

    def test_lines_used_when_order_total_is_zero(self):
        order = _order("0")
        lines = [OrderLineRef(order.id, None, 3, Decimal("10"))]

        cogs = compute_order_cogs(order, lines, {})

        assert cogs.source == CogsSource.ORDER_LINES_SKU_COST
        assert cogs.cogs == Decimal("30")
        assert cogs.lines_count == 1

    def test_sku_cost_fills_lines_without_unit_cost(self):
        order = _order("0")
        sku = SkuRef(uuid4(), "A", Decimal("2.50"))
        lines = [
            OrderLineRef(order.id, sku.id, 2, None),
            OrderLineRef(order.id, sku.id, 1, Decimal("4")),
        ]

        cogs = compute_order_cogs(order, lines, {sku.id: sku})

        assert cogs.cogs == Decimal("9.00")

    def test_no_lines(self):
        cogs = compute_order_cogs(_order("0"), [], {})

        assert cogs.is_missing
        assert cogs.cogs is None
        assert cogs.reason == CogsMissingReason.NO_ORDER_LINES

    def test_cost_missing_everywhere(self):
        order = _order("0")
        sku = SkuRef(uuid4(), "A", None)

        cogs = compute_order_cogs(order, [OrderLineRef(order.id, sku.id, 1)], {sku.id: sku})

        assert cogs.reason == CogsMissingReason.COST_MISSING_EVERYWHERE

    def test_costed_lines_with_zero_quantity(self):
        order = _order("0")

        cogs = compute_order_cogs(order, [OrderLineRef(order.id, None, 0, Decimal("5"))], {})

        assert cogs.reason == CogsMissingReason.SKU_COST_MISSING

    def test_lines_cost_total(self):
        order = _order("0")
        sku = SkuRef(uuid4(), "A", Decimal("1.5"))
        lines = [OrderLineRef(order.id, sku.id, 4), OrderLineRef(order.id, None, 2)]

        assert lines_cost_total(lines, {sku.id: sku}) == Decimal("6.0")


class TestSettlementKpis:
    def test_order_counted_once_across_rows(self):
        order = _order("40")
        index = MatchIndex.build([order], [])
        rows = [
            Row("114-1234567-1234567", Decimal("60"), "matched", order.id),
            Row("114-1234567-1234567", Decimal("40"), "unmatched_sku", order.id, sku="X"),
        ]

        kpis = compute_settlement_kpis(rows, index)

        assert kpis.total_revenue == Decimal("100.00")
        assert kpis.total_cogs == Decimal("40.00")
        assert kpis.total_profit == Decimal("60.00")
        assert kpis.margin == Decimal("0.6000")
        assert kpis.orders_count == 1
        assert kpis.skus_count == 2

    def test_deleted_rows_and_orders_are_excluded(self):
        live = _order("10")
        gone = _order("99", is_deleted=True, amazon_order_id="222-0000000-0000000")
        index = MatchIndex.build([live, gone], [])
        rows = [
            Row("114-1234567-1234567", Decimal("25"), "matched", live.id),
            Row("222-0000000-0000000", Decimal("50"), "matched", gone.id),
            Row("333-0000000-0000000", Decimal("1000"), "matched", live.id, is_deleted=True),
        ]

        kpis = compute_settlement_kpis(rows, index)

        assert kpis.total_revenue == Decimal("75.00")
        assert kpis.total_cogs == Decimal("10.00")
        assert kpis.orders_count == 2

    def test_unmatched_rows_contribute_revenue_only(self):
        index = MatchIndex.build([], [])
        kpis = compute_settlement_kpis([Row("X-1", Decimal("-5.555"))], index)

        assert kpis.total_revenue == Decimal("-5.56")
        assert kpis.total_cogs == Decimal("0.00")

    def test_zero_revenue_has_zero_margin(self):
        kpis = compute_settlement_kpis([], MatchIndex.build([], []))

        assert kpis.margin == Decimal("0")
        assert kpis.orders_count == 0

    def test_dict_form_uses_strings_for_money(self):
        kpis = SettlementKpis(total_revenue=Decimal("1.50"), orders_count=2)
        data = kpis.to_dict()

        assert data["total_revenue"] == "1.50"
        assert SettlementKpis.from_dict(data) == kpis
        assert SettlementKpis.from_dict(None) is None
