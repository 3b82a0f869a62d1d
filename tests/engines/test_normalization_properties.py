"""
Property-based tests for key and amount normalization.

Generated inputs check that:
- order and SKU keys are idempotent and alphanumeric-uppercase only
- header normalization is idempotent
- money strings in report form parse back to the same Decimal
- parse_amount never raises on report-like noise
"""

import re
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from ordermgmt_engines.normalization import (
    normalize_header,
    normalize_order_id,
    normalize_sku_code,
    parse_amount,
)

_KEY_RE = re.compile(r"[A-Z0-9]*")

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestKeyProperties:
    @given(st.text(max_size=40))
    def test_order_key_is_idempotent(self, raw):
        key = normalize_order_id(raw)

        assert normalize_order_id(key) == key
        assert _KEY_RE.fullmatch(key)

    @given(st.text(max_size=40))
    def test_sku_key_matches_order_key_rules(self, raw):
        assert normalize_sku_code(raw) == normalize_order_id(raw)

    @given(st.text(max_size=40))
    def test_header_is_idempotent(self, raw):
        header = normalize_header(raw)

        assert normalize_header(header) == header


class TestAmountProperties:
    @given(amounts)
    @settings(max_examples=200)
    def test_report_money_round_trips(self, amount):
        assert parse_amount(f"${amount:,.2f}") == amount
        assert parse_amount(f"(${amount:,.2f})") == -amount

    @given(st.text(alphabet="0123456789$,.()-% ", max_size=20))
    def test_never_raises_on_noise(self, raw):
        result = parse_amount(raw)

        assert isinstance(result, Decimal)
        assert result.is_finite()
