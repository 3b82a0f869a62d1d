"""
CSV report adapter.

Uses csv.reader so quoted fields with embedded commas and doubled quotes
are handled.  Decodes as UTF-8 (BOM stripped via utf-8-sig), falling back
to cp1252 for reports exported from spreadsheet tools.  Tab-separated
input is detected from the first line.
"""

from __future__ import annotations

import csv
import io
from typing import Any

from ordermgmt_kernel.exceptions import SettlementParseError

from ordermgmt_settlement.adapters.base import CSV, is_blank_line

_ENCODINGS = ("utf-8-sig", "cp1252")


def _decode(content: bytes) -> str:
    for encoding in _ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise SettlementParseError("<upload>", "report is not valid UTF-8 or cp1252 text")


class CsvReportAdapter:
    """Read CSV (or TSV) text into raw cell lists."""

    format_name = CSV

    def read_lines(self, content: bytes) -> list[list[Any]]:
        text = _decode(content).lstrip("\ufeff")
        first_line = text.split("\n", 1)[0]
        delimiter = "\t" if first_line.count("\t") > first_line.count(",") else ","
        try:
            reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
            return [
                [cell.strip() for cell in row]
                for row in reader
                if row and not is_blank_line(row)
            ]
        except csv.Error as exc:
            raise SettlementParseError("<upload>", f"malformed CSV: {exc}") from exc
