"""Settlement report adapters (byte decoding only, no DB)."""

from ordermgmt_settlement.adapters.base import ReportAdapter, detect_format
from ordermgmt_settlement.adapters.csv_adapter import CsvReportAdapter
from ordermgmt_settlement.adapters.xlsx_adapter import XlsxReportAdapter

__all__ = [
    "CsvReportAdapter",
    "ReportAdapter",
    "XlsxReportAdapter",
    "default_adapters",
    "detect_format",
]


def default_adapters() -> dict[str, ReportAdapter]:
    return {
        "csv": CsvReportAdapter(),
        "xlsx": XlsxReportAdapter(),
    }
