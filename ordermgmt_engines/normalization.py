"""
ordermgmt_engines.normalization -- Canonical key and value normalization.

Responsibility:
    Turn raw settlement-report values into comparable keys and typed values:
    order ids, SKU codes and header names become canonical strings; amounts
    become ``Decimal``; report timestamps become timezone-aware UTC datetimes.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Determinism: every function is a pure mapping of its input.  The same
      raw value always yields the same key, on every call path (ingestion,
      rematch, rebuild, audit).
    - Money is never float: ``parse_amount`` returns ``Decimal``.

Failure modes:
    - ``parse_amount`` never raises; unparsable input is ``Decimal("0")``.
    - ``parse_settlement_datetime`` returns None for unparsable input; the
      caller records the row-level parse error.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

_INVISIBLE_RE = re.compile("[\u200b-\u200d\ufeff\u00a0]")
_WHITESPACE_RE = re.compile(r"\s+")
_DASH_RE = re.compile("[\u2010-\u2015\u2212]")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")

ZERO = Decimal("0")


# =============================================================================
# Keys
# =============================================================================


def _clean_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip().upper()
    text = _INVISIBLE_RE.sub("", text)
    text = _WHITESPACE_RE.sub("", text)
    text = _DASH_RE.sub("-", text)
    return _NON_ALNUM_RE.sub("", text)


def normalize_order_id(value: Any) -> str:
    """
    Canonical order key.

    Uppercases, strips zero-width/BOM/NBSP characters and all whitespace,
    folds unicode dashes, then drops every non-alphanumeric character.

    >>> normalize_order_id(" 114-1234567-\u20131234567 ")
    '11412345671234567'
    """
    return _clean_key(value)


def normalize_sku_code(value: Any) -> str:
    """Canonical SKU key.  Case-insensitive, punctuation-insensitive."""
    return _clean_key(value)


def normalize_header(value: Any) -> str:
    """Lowercased, trimmed, BOM-free header name with single inner spaces."""
    if value is None:
        return ""
    text = str(value).replace("\ufeff", "").replace("\u00a0", " ")
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


# =============================================================================
# Values
# =============================================================================


def parse_amount(value: Any) -> Decimal:
    """
    Tolerant decimal parser for report money and quantity cells.

    ``$``, ``,``, ``%`` and whitespace are stripped; ``(12.50)`` is -12.50.
    Anything that still does not parse is zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if value == value and abs(value) != float("inf") else ZERO

    text = _WHITESPACE_RE.sub("", str(value))
    text = text.replace("$", "").replace(",", "").replace("%", "")
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if not text:
        return ZERO
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not amount.is_finite():
        return ZERO
    return -amount if negative else amount


# Offsets (hours) for the zone abbreviations marketplace reports print.
_TZ_ABBREVIATIONS = {
    "UTC": 0, "GMT": 0, "Z": 0,
    "PST": -8, "PDT": -7,
    "MST": -7, "MDT": -6,
    "CST": -6, "CDT": -5,
    "EST": -5, "EDT": -4,
    "BST": 1, "CET": 1, "CEST": 2,
    "JST": 9, "AEST": 10, "AEDT": 11,
}

_REPORT_FORMATS = (
    "%b %d, %Y %I:%M:%S %p",
    "%B %d, %Y %I:%M:%S %p",
    "%b %d, %Y %H:%M:%S",
    "%b %d, %Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_settlement_datetime(value: Any) -> datetime | None:
    """
    Parse a report timestamp into an aware UTC datetime.

    Accepts ISO-8601 (with or without offset, ``Z`` suffix allowed) and the
    marketplace form ``Jan 5, 2024 3:04:05 PM PST``.  A trailing zone
    abbreviation is applied when known; an unknown one fails the parse.
    Naive values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    text = _WHITESPACE_RE.sub(" ", str(value).replace("\ufeff", "")).strip()
    if not text:
        return None

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _as_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    offset_hours: int | None = None
    head, _, tail = text.rpartition(" ")
    if head and tail.upper() in _TZ_ABBREVIATIONS:
        offset_hours = _TZ_ABBREVIATIONS[tail.upper()]
        text = head

    for fmt in _REPORT_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        tz = timezone(timedelta(hours=offset_hours or 0))
        return parsed.replace(tzinfo=tz).astimezone(timezone.utc)
    return None


def month_key(moment: datetime) -> str:
    """``YYYY-MM`` of a UTC moment."""
    return _as_utc(moment).strftime("%Y-%m")
