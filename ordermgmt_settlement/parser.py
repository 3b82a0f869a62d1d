"""
Settlement report parser (Phase A, pure).

Contract:
    parse_report(lines, ...) -> ParseResult.  ``lines`` are raw cell lists
    from a ReportAdapter.  The header row is found by heuristic within the
    first ``header_scan_lines`` lines, columns are mapped through the alias
    table, and every following line becomes either a ``ParsedRow`` or a
    ``RowParseError``.  One bad line never aborts the report.

Failure modes:
    - HeaderNotFoundError: no line qualifies as a header, or a required
      column (date/time, order id, total) has no alias match.
    - SettlementParseError: a header was found but no data line parsed.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ordermgmt_engines.normalization import (
    month_key,
    normalize_header,
    parse_amount,
    parse_settlement_datetime,
)
from ordermgmt_kernel.exceptions import HeaderNotFoundError, SettlementParseError

from ordermgmt_settlement.domain.types import (
    MONEY_FIELDS,
    ParsedRow,
    ParseResult,
    RowParseError,
)

# Canonical field -> header aliases (normalized).  Order matters for the
# substring pass: earlier canonicals claim a header first.
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "datetime": ("date/time", "datetime", "date", "time", "transaction date", "posted date"),
    "settlement_id": ("settlement id", "settlementid", "settlement-id"),
    "transaction_type": ("type", "transaction type"),
    "order_id": ("order id", "orderid", "order-id", "amazon order id"),
    "sku": ("sku", "product sku", "asin"),
    "quantity": ("quantity", "qty"),
    "marketplace": ("marketplace", "market place"),
    "fulfillment": ("fulfillment", "fulfillment channel"),
    "product_sales": ("product sales", "product sale"),
    "shipping_credits": ("shipping credits",),
    "promotional_rebates": ("promotional rebates", "promotional discount"),
    "selling_fees": ("selling fees", "selling fee"),
    "fba_fees": ("fba fees", "fulfillment fees"),
    "other_transaction_fees": ("other transaction fees", "transaction fees"),
    "other": ("other",),
    "total": ("total", "total amount", "net"),
    "description": ("description",),
    "order_city": ("order city", "city"),
    "order_state": ("order state", "state"),
    "order_postal": ("order postal", "postal", "zip"),
}

REQUIRED_FIELDS = ("datetime", "order_id", "total")

# Display names used in row errors and header diagnostics.
COLUMN_LABELS = {
    "datetime": "date/time",
    "order_id": "order id",
    "sku": "sku",
    "total": "total",
}


def _header_indicators(cells: Sequence[str]) -> dict[str, bool]:
    has_date = any("date" in c for c in cells)
    has_time = any("time" in c for c in cells) or any("/" in c for c in cells if "date" in c)
    return {
        "date/time": has_date and has_time,
        "order id": any("order" in c for c in cells),
        "sku": any("sku" in c for c in cells),
        "total": any("total" in c for c in cells),
    }


def find_header_line(lines: Sequence[Sequence[Any]], scan_lines: int) -> int:
    """
    Return the index of the first header-like line.

    A line qualifies when its normalized cells name a date plus a time (or a
    combined date/time column), an order, a SKU and a total.
    """
    best_missing: list[str] = list(COLUMN_LABELS.values())
    for i, line in enumerate(lines[:scan_lines]):
        cells = [normalize_header(c) for c in line]
        indicators = _header_indicators(cells)
        if all(indicators.values()):
            return i
        missing = [name for name, ok in indicators.items() if not ok]
        if len(missing) < len(best_missing):
            best_missing = missing
    raise HeaderNotFoundError(min(scan_lines, len(lines)), best_missing)


def map_columns(header: Sequence[Any]) -> dict[str, int]:
    """
    Map canonical fields to column positions.

    Exact alias matches are assigned first, then substring matches for the
    still-unmapped fields.  The first column wins for each field and each
    column maps to at most one field.
    """
    cells = [normalize_header(c) for c in header]
    mapping: dict[str, int] = {}
    used: set[int] = set()

    for idx, cell in enumerate(cells):
        for canonical, aliases in HEADER_ALIASES.items():
            if canonical not in mapping and cell in aliases:
                mapping[canonical] = idx
                used.add(idx)
                break

    for idx, cell in enumerate(cells):
        if idx in used or not cell:
            continue
        for canonical, aliases in HEADER_ALIASES.items():
            if canonical in mapping:
                continue
            if any(alias in cell for alias in aliases):
                mapping[canonical] = idx
                used.add(idx)
                break
    return mapping


def _value(line: Sequence[Any], column_map: dict[str, int], name: str) -> Any:
    idx = column_map.get(name)
    if idx is None or idx >= len(line):
        return ""
    value = line[idx]
    return value.strip() if isinstance(value, str) else value


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_line(
    line: Sequence[Any],
    column_map: dict[str, int],
    row_index: int,
    source_line: int,
) -> ParsedRow | RowParseError:
    """Parse one data line into a typed row, or explain why not."""
    raw_dt = _value(line, column_map, "datetime")
    raw_order = _value(line, column_map, "order_id")
    raw_total = _value(line, column_map, "total")

    for name, raw in (("datetime", raw_dt), ("order_id", raw_order), ("total", raw_total)):
        if _is_blank(raw):
            return RowParseError(source_line, COLUMN_LABELS[name], "Missing required value")

    posted_at = parse_settlement_datetime(raw_dt)
    if posted_at is None:
        return RowParseError(source_line, "date/time", f'Invalid format: "{raw_dt}"')

    total = parse_amount(raw_total)
    transaction_type = _text(_value(line, column_map, "transaction_type"))
    is_refund = "refund" in transaction_type.lower() or total < 0
    quantity = int(abs(parse_amount(_value(line, column_map, "quantity"))))

    money = {
        name: parse_amount(_value(line, column_map, name))
        for name in MONEY_FIELDS
        if name != "total"
    }
    return ParsedRow(
        row_index=row_index,
        source_line=source_line,
        posted_at=posted_at,
        order_id=_text(raw_order),
        total=total,
        settlement_id=_text(_value(line, column_map, "settlement_id")),
        transaction_type=transaction_type,
        sku=_text(_value(line, column_map, "sku")),
        description=_text(_value(line, column_map, "description")),
        quantity=quantity,
        signed_qty=-quantity if is_refund else quantity,
        is_refund=is_refund,
        marketplace=_text(_value(line, column_map, "marketplace")),
        fulfillment=_text(_value(line, column_map, "fulfillment")),
        order_city=_text(_value(line, column_map, "order_city")),
        order_state=_text(_value(line, column_map, "order_state")),
        order_postal=_text(_value(line, column_map, "order_postal")),
        **money,
    )


def parse_report(
    lines: Sequence[Sequence[Any]],
    file_name: str,
    header_scan_lines: int = 20,
) -> ParseResult:
    """Detect the header, map columns and parse every data line."""
    header_idx = find_header_line(lines, header_scan_lines)
    column_map = map_columns(lines[header_idx])
    missing = [COLUMN_LABELS[f] for f in REQUIRED_FIELDS if f not in column_map]
    if missing:
        raise HeaderNotFoundError(header_idx + 1, missing)

    rows: list[ParsedRow] = []
    errors: list[RowParseError] = []
    for offset, line in enumerate(lines[header_idx + 1:]):
        source_line = header_idx + offset + 2
        outcome = parse_line(line, column_map, len(rows), source_line)
        if isinstance(outcome, RowParseError):
            errors.append(outcome)
        else:
            rows.append(outcome)

    if not rows:
        raise SettlementParseError(
            file_name,
            f"No valid data rows could be parsed ({len(errors)} rejected)",
        )

    return ParseResult(
        rows=tuple(rows),
        errors=tuple(errors),
        header_line=header_idx + 1,
        column_map=column_map,
        month_key=month_key(rows[0].posted_at),
    )
