"""
Report adapter protocol and format detection.

Contract:
    ReportAdapter.read_lines() turns uploaded report bytes into a list of
    raw cell lists, one per non-blank line, in file order.  Header
    detection and column mapping happen later, in the parser.

Architecture: ordermgmt_settlement/adapters.  Byte decoding only, no DB.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Any, Protocol, runtime_checkable

from ordermgmt_kernel.exceptions import UnsupportedFormatError

CSV = "csv"
XLSX = "xlsx"

_CSV_SUFFIXES = frozenset({".csv", ".txt", ".tsv"})
_XLSX_SUFFIXES = frozenset({".xlsx", ".xlsm"})
_ZIP_MAGIC = b"PK\x03\x04"


@runtime_checkable
class ReportAdapter(Protocol):
    """Reads one settlement report format."""

    format_name: str

    def read_lines(self, content: bytes) -> list[list[Any]]:
        """Return the report's non-blank lines as lists of cell values."""
        ...


def detect_format(file_name: str, content: bytes) -> str:
    """
    Choose the adapter format by extension, then by content.

    Raises:
        UnsupportedFormatError: neither CSV/text nor XLSX.
    """
    suffix = PurePath(file_name or "").suffix.lower()
    if suffix in _XLSX_SUFFIXES:
        return XLSX
    if suffix in _CSV_SUFFIXES:
        return CSV
    if content.startswith(_ZIP_MAGIC):
        return XLSX
    if suffix in ("", ".dat", ".report") and b"\x00" not in content[:4096]:
        return CSV
    raise UnsupportedFormatError(file_name)


def is_blank_line(cells: list[Any]) -> bool:
    return all(cell is None or str(cell).strip() == "" for cell in cells)
