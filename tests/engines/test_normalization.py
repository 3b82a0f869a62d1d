"""Tests for ordermgmt_engines.normalization."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ordermgmt_engines.normalization import (
    month_key,
    normalize_header,
    normalize_order_id,
    normalize_sku_code,
    parse_amount,
    parse_settlement_datetime,
)


class TestKeys:
    @pytest.mark.parametrize(
        "raw",
        [
            "114-1234567-1234567",
            " 114-1234567-1234567 ",
            "114\u20131234567\u20141234567",
            "\ufeff114-1234567-1234567\u200b",
            "114 1234567 1234567",
            "114-1234567-1234567\u00a0",
        ],
    )
    def test_order_id_variants_share_one_key(self, raw):
        assert normalize_order_id(raw) == "11412345671234567"

    def test_order_id_is_uppercased(self):
        assert normalize_order_id("abc-12") == "ABC12"

    def test_none_and_blank_are_empty(self):
        assert normalize_order_id(None) == ""
        assert normalize_order_id(" \u200b ") == ""

    def test_sku_code_ignores_case_and_punctuation(self):
        assert normalize_sku_code("ab-12.x") == normalize_sku_code("AB12X")

    def test_header_normalization(self):
        assert normalize_header("\ufeffDate / Time ") == "date / time"
        assert normalize_header("Order\u00a0 ID") == "order id"
        assert normalize_header(None) == ""


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("12.50", Decimal("12.50")),
            ("$1,234.56", Decimal("1234.56")),
            ("(12.50)", Decimal("-12.50")),
            (" -3 ", Decimal("-3")),
            ("15%", Decimal("15")),
            (7, Decimal("7")),
            (0.1, Decimal("0.1")),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "--", True, float("nan"), "Infinity"])
    def test_unparsable_is_zero(self, raw):
        assert parse_amount(raw) == Decimal("0")


class TestParseDatetime:
    def test_iso_with_z_suffix(self):
        assert parse_settlement_datetime("2024-01-05T15:04:05Z") == datetime(
            2024, 1, 5, 15, 4, 5, tzinfo=timezone.utc
        )

    def test_iso_offset_converted_to_utc(self):
        assert parse_settlement_datetime("2024-01-05T10:00:00-05:00") == datetime(
            2024, 1, 5, 15, 0, tzinfo=timezone.utc
        )

    def test_marketplace_format_with_pst(self):
        assert parse_settlement_datetime("Jan 5, 2024 3:04:05 PM PST") == datetime(
            2024, 1, 5, 23, 4, 5, tzinfo=timezone.utc
        )

    def test_unknown_zone_fails_to_parse(self):
        assert parse_settlement_datetime("Jan 5, 2024 3:04:05 PM XYZ") is None

    def test_slash_format_is_utc(self):
        assert parse_settlement_datetime("01/31/2024 23:59:59") == datetime(
            2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc
        )

    def test_date_objects(self):
        assert parse_settlement_datetime(date(2024, 2, 1)) == datetime(
            2024, 2, 1, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("raw", [None, "", "not a date", "13/45/2024"])
    def test_unparsable_is_none(self, raw):
        assert parse_settlement_datetime(raw) is None

    def test_month_key(self):
        assert month_key(datetime(2024, 3, 9, 8, 0)) == "2024-03"
