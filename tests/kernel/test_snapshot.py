"""
Tests for ordermgmt_kernel.db.snapshot -- row snapshots used by the
backup, restore and clone jobs.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from ordermgmt_kernel.db.snapshot import (
    AUDIT_COLUMNS,
    dict_to_values,
    row_to_dict,
    to_json_safe,
)
from ordermgmt_kernel.models.catalog import OrderModel, SkuModel


class TestToJsonSafe:
    def test_converts_nested_values(self):
        moment = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)
        ident = uuid4()
        data = to_json_safe({"a": Decimal("1.10"), "b": [moment, ident], "c": (1, None)})

        assert data == {"a": "1.10", "b": [moment.isoformat(), str(ident)], "c": [1, None]}
        json.dumps(data)


class TestRowSnapshots:
    def test_row_to_dict_skips_audit_columns(self, db_session, make_sku):
        sku = make_sku("A-1", cost_price="3.25")

        data = row_to_dict(sku)

        assert not AUDIT_COLUMNS & set(data)
        assert data["id"] == str(sku.id)
        assert data["tenant_id"] == str(sku.tenant_id)
        assert Decimal(data["cost_price"]) == Decimal("3.25")
        json.dumps(data)

    def test_dict_to_values_restores_types(self, db_session, make_order):
        order = make_order("111-0000001-0000001", total_cost="19.99")
        order.order_date = datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)
        db_session.flush()

        values = dict_to_values(OrderModel, row_to_dict(order))

        assert values["id"] == order.id
        assert isinstance(values["id"], UUID)
        assert values["total_cost"] == Decimal("19.99")
        assert values["order_date"] == datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)
        assert values["is_deleted"] is False

    def test_dict_to_values_drops_unknown_keys(self):
        values = dict_to_values(SkuModel, {"sku_code": "A", "legacy_field": 1, "created_at": "x"})

        assert values == {"sku_code": "A"}

    def test_null_values_survive(self):
        values = dict_to_values(SkuModel, {"sku_code": "A", "cost_price": None})

        assert values["cost_price"] is None
