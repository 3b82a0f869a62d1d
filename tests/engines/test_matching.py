"""
Tests for ordermgmt_engines.matching -- strategy order, miss reasons and the
rule that an order match survives a SKU miss.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ordermgmt_engines.matching import (
    MatchConfidence,
    MatchIndex,
    MatchStatus,
    MatchStrategy,
    NotFoundReason,
    match_row,
)
from ordermgmt_engines.refs import OrderLineRef, OrderRef, RowRef, SkuRef


def _order(amazon_order_id, total_cost="10", is_deleted=False):
    return OrderRef(
        id=uuid4(),
        amazon_order_id=amazon_order_id,
        total_cost=Decimal(total_cost),
        is_deleted=is_deleted,
    )


@pytest.fixture
def sku():
    return SkuRef(id=uuid4(), sku_code="WIDGET-1", cost_price=Decimal("4"))


class TestOrderStrategies:
    def test_normalized_order_id_is_high_confidence(self, sku):
        order = _order("114-1234567-1234567")
        index = MatchIndex.build([order], [sku])

        result = match_row(RowRef(" 114 1234567-1234567 ", "WIDGET-1"), index)

        assert result.status == MatchStatus.MATCHED
        assert result.matched_order_id == order.id
        assert result.matched_sku_id == sku.id
        assert result.strategy == MatchStrategy.NORMALIZED_ORDER_ID
        assert result.confidence == MatchConfidence.HIGH
        assert result.reason is None

    def test_internal_id_match(self, sku):
        order = _order("")
        index = MatchIndex.build([order], [sku])

        result = match_row(RowRef(str(order.id), "WIDGET-1"), index)

        assert result.matched_order_id == order.id
        assert result.strategy == MatchStrategy.INTERNAL_ID

    def test_unique_partial_match_is_medium_confidence(self, sku):
        order = _order("114-1234567-1234567")
        index = MatchIndex.build([order], [sku])

        result = match_row(RowRef("1234567-1234567", "WIDGET-1"), index)

        assert result.matched_order_id == order.id
        assert result.strategy == MatchStrategy.PARTIAL_MATCH
        assert result.confidence == MatchConfidence.MEDIUM

    def test_ambiguous_partial_is_not_a_match(self, sku):
        index = MatchIndex.build(
            [_order("111-1234567-1234567"), _order("222-1234567-1234567")], [sku]
        )

        result = match_row(RowRef("1234567-1234567", "WIDGET-1"), index)

        assert result.status == MatchStatus.UNMATCHED_ORDER
        assert result.reason == NotFoundReason.NO_MATCH_AFTER_NORMALIZATION

    def test_short_keys_never_partially_match(self, sku):
        index = MatchIndex.build([_order("114-1234567-1234567")], [sku])

        result = match_row(RowRef("1234567", "WIDGET-1"), index)

        assert result.status == MatchStatus.UNMATCHED_ORDER

    def test_exact_beats_partial(self, sku):
        exact = _order("1234567-1234567")
        index = MatchIndex.build([_order("114-1234567-1234567"), exact], [sku])

        result = match_row(RowRef("1234567-1234567", "WIDGET-1"), index)

        assert result.matched_order_id == exact.id
        assert result.strategy == MatchStrategy.NORMALIZED_ORDER_ID


class TestMisses:
    def test_unknown_order(self, sku):
        index = MatchIndex.build([_order("114-1234567-1234567")], [sku])

        result = match_row(RowRef("999-0000000-0000000", "WIDGET-1"), index)

        assert result.status == MatchStatus.UNMATCHED_ORDER
        assert not result.has_order
        assert result.reason == "Order not found after normalization"

    def test_deleted_order_never_matches(self, sku):
        index = MatchIndex.build([_order("114-1234567-1234567", is_deleted=True)], [sku])

        result = match_row(RowRef("114-1234567-1234567", "WIDGET-1"), index)

        assert result.status == MatchStatus.UNMATCHED_ORDER
        assert result.reason == NotFoundReason.ORDER_DELETED

    def test_sku_miss_keeps_order(self, sku):
        order = _order("114-1234567-1234567")
        index = MatchIndex.build([order], [sku])

        result = match_row(RowRef("114-1234567-1234567", "UNKNOWN"), index)

        assert result.status == MatchStatus.UNMATCHED_SKU
        assert result.matched_order_id == order.id
        assert result.matched_sku_id is None
        assert result.reason == NotFoundReason.SKU_MISSING

    def test_blank_sku_is_a_sku_miss(self, sku):
        index = MatchIndex.build([_order("114-1234567-1234567")], [sku])

        assert match_row(RowRef("114-1234567-1234567", "  "), index).status == (
            MatchStatus.UNMATCHED_SKU
        )

    def test_missing_cogs_is_explained(self, sku):
        order = _order("114-1234567-1234567", total_cost="0")
        index = MatchIndex.build([order], [sku])

        result = match_row(RowRef("114-1234567-1234567", "WIDGET-1"), index)

        assert result.status == MatchStatus.MATCHED
        assert result.reason == NotFoundReason.ORDER_FOUND_COST_MISSING


class TestSkuLookup:
    def test_normalized_sku_fallback(self, sku):
        index = MatchIndex.build([], [sku])

        assert index.find_sku("widget 1") == sku
        assert index.find_sku(None) is None

    def test_first_ref_wins_on_duplicate_keys(self):
        first = _order("114-1234567-1234567")
        second = _order("114 1234567 1234567")
        index = MatchIndex.build([first, second], [])

        found, _, _ = index.find_order("114-1234567-1234567")
        assert found == first

    def test_lines_are_grouped_by_order(self, sku):
        order = _order("114-1234567-1234567")
        lines = [OrderLineRef(order.id, sku.id, 2), OrderLineRef(order.id, None, 1)]
        index = MatchIndex.build([order], [sku], lines)

        assert len(index.lines_for(order.id)) == 2
        assert index.lines_for(uuid4()) == ()
