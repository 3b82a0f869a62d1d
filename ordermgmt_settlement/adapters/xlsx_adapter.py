"""
XLSX report adapter (input only).

Reads the active sheet (or a named one) with openpyxl in read-only,
data-only mode.  Cell values keep their Python types: datetimes stay
datetimes and numbers stay numbers; the parser's tolerant converters accept
both.  Whole floats are narrowed to int so "3.0" quantities read as 3.
"""

from __future__ import annotations

import io
from typing import Any

from ordermgmt_kernel.exceptions import SettlementParseError

from ordermgmt_settlement.adapters.base import XLSX, is_blank_line


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


class XlsxReportAdapter:
    """Read one worksheet of an .xlsx workbook into raw cell lists."""

    format_name = XLSX

    def __init__(self, sheet: str | int | None = None):
        self._sheet = sheet

    def read_lines(self, content: bytes) -> list[list[Any]]:
        try:
            import openpyxl
        except ImportError as e:
            raise ImportError("XLSX support requires openpyxl. Install with: pip install openpyxl") from e

        try:
            wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as exc:  # openpyxl raises several unrelated types for bad archives
            raise SettlementParseError("<upload>", f"unreadable workbook: {exc}") from exc
        try:
            ws = self._get_sheet(wb)
            lines: list[list[Any]] = []
            for row in ws.iter_rows(values_only=True):
                cells = [_cell(v) for v in row]
                while cells and cells[-1] == "":
                    cells.pop()
                if cells and not is_blank_line(cells):
                    lines.append(cells)
            return lines
        finally:
            wb.close()

    def _get_sheet(self, wb: Any) -> Any:
        if self._sheet is None:
            return wb.active
        if isinstance(self._sheet, int):
            return wb.worksheets[self._sheet]
        return wb[self._sheet]
