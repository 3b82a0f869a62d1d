"""
ordermgmt_settlement.domain.types -- Pure frozen dataclasses for settlement
reconciliation.

ZERO I/O.  ``ParsedRow`` is the typed Phase A output persisted (as JSON) on
the import and replayed by Phase B and by rebuilds; the result DTOs are what
the services return and the HTTP layer serializes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ordermgmt_kernel.db.snapshot import to_json_safe

ZERO = Decimal("0")


# =============================================================================
# Status enums
# =============================================================================


class ImportStatus(str, Enum):
    """Settlement import lifecycle."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_IMPORT_STATUSES

    @property
    def is_completed(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.COMPLETED_WITH_ERRORS)


_TERMINAL_IMPORT_STATUSES = frozenset({
    ImportStatus.COMPLETED,
    ImportStatus.COMPLETED_WITH_ERRORS,
    ImportStatus.FAILED,
})


class ChunkStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditStatus(str, Enum):
    HEALTHY = "HEALTHY"
    ISSUES_FOUND = "ISSUES_FOUND"
    NO_DATA = "NO_DATA"


class IssueSeverity(str, Enum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IssueType(str, Enum):
    ROWS_MISMATCH = "ROWS_MISMATCH"
    KPI_MISMATCH = "KPI_MISMATCH"
    ZERO_KPIS_WITH_DATA = "ZERO_KPIS_WITH_DATA"


class Remediation(str, Enum):
    REBUILD_ROWS = "rebuild_rows"
    RECOMPUTE_COGS = "recompute_cogs"


# =============================================================================
# Import snapshot
# =============================================================================


@dataclass(frozen=True)
class SettlementImport:
    """Immutable view of a settlement import record."""

    import_id: UUID
    tenant_id: UUID
    file_name: str
    status: ImportStatus
    month_key: str | None
    total_rows: int
    processed_rows: int
    rows_count: int
    cursor: int
    chunk_size: int
    matched_rows_count: int = 0
    unmatched_rows_count: int = 0
    total_parse_errors: int = 0
    totals_cached: dict[str, Any] | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


# =============================================================================
# Phase A
# =============================================================================


MONEY_FIELDS = (
    "product_sales",
    "shipping_credits",
    "promotional_rebates",
    "selling_fees",
    "fba_fees",
    "other_transaction_fees",
    "other",
    "total",
)

TEXT_FIELDS = (
    "settlement_id",
    "transaction_type",
    "order_id",
    "sku",
    "description",
    "marketplace",
    "fulfillment",
    "order_city",
    "order_state",
    "order_postal",
)


@dataclass(frozen=True)
class ParsedRow:
    """One accepted report line.  ``row_index`` is its 0-based position."""

    row_index: int
    source_line: int
    posted_at: datetime
    order_id: str
    total: Decimal
    settlement_id: str = ""
    transaction_type: str = ""
    sku: str = ""
    description: str = ""
    quantity: int = 0
    signed_qty: int = 0
    is_refund: bool = False
    marketplace: str = ""
    fulfillment: str = ""
    order_city: str = ""
    order_state: str = ""
    order_postal: str = ""
    product_sales: Decimal = ZERO
    shipping_credits: Decimal = ZERO
    promotional_rebates: Decimal = ZERO
    selling_fees: Decimal = ZERO
    fba_fees: Decimal = ZERO
    other_transaction_fees: Decimal = ZERO
    other: Decimal = ZERO

    def to_json(self) -> dict[str, Any]:
        return to_json_safe(asdict(self))

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ParsedRow:
        values = dict(data)
        values["posted_at"] = datetime.fromisoformat(values["posted_at"])
        for name in MONEY_FIELDS:
            if name in values:
                values[name] = Decimal(str(values[name]))
        return cls(**values)


@dataclass(frozen=True)
class RowParseError:
    """Row-level rejection.  ``row`` is the 1-based line in the report."""

    row: int
    column: str
    reason: str

    def to_json(self) -> dict[str, Any]:
        return {"row": self.row, "column": self.column, "reason": self.reason}


@dataclass(frozen=True)
class ParseResult:
    rows: tuple[ParsedRow, ...]
    errors: tuple[RowParseError, ...]
    header_line: int
    column_map: dict[str, int]
    month_key: str | None


@dataclass(frozen=True)
class PhaseAResult:
    import_id: UUID
    total_rows: int
    chunk_size: int
    parse_errors: tuple[RowParseError, ...] = ()
    total_parse_errors: int = 0
    month_key: str | None = None


# =============================================================================
# Phase B and repair
# =============================================================================


@dataclass(frozen=True)
class ChunkResult:
    import_id: UUID
    status: ImportStatus
    processed_rows: int
    total_rows: int
    cursor: int
    chunk_index: int | None = None
    rows_created: int = 0
    rows_skipped: int = 0
    rows_matched: int = 0
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class RebuildResult:
    import_id: UUID
    rows_created: int
    rows_skipped: int
    expected_rows: int


@dataclass(frozen=True)
class RematchResult:
    total_rows: int
    newly_matched: int
    already_matched: int
    still_unmatched: int
    rows_updated: int
    match_strategies: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RecomputeCogsResult:
    total_rows_scanned: int
    matched_order_rows_scanned: int
    rows_with_cogs: int
    rows_missing_cogs: int
    rows_skipped_deleted_order: int
    cogs_by_source: dict[str, int]
    orders_synced: int
    imports_updated: int
    proof: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class OrderRowsResult:
    order_ids: tuple[str, ...]
    affected_settlement_rows: int


# =============================================================================
# Audit
# =============================================================================


@dataclass(frozen=True)
class AuditIssue:
    type: IssueType
    severity: IssueSeverity
    message: str
    remediation: Remediation
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditSummary:
    total_rows: int = 0
    active_rows: int = 0
    deleted_rows: int = 0
    expected_rows: int = 0


@dataclass(frozen=True)
class AuditReport:
    status: AuditStatus
    import_id: UUID | None = None
    issues: tuple[AuditIssue, ...] = ()
    recommendations: tuple[str, ...] = ()
    summary: AuditSummary = field(default_factory=AuditSummary)
    kpis_cached: dict[str, Any] | None = None
    kpis_calculated: dict[str, Any] | None = None
    kpi_mismatch: dict[str, str] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == AuditStatus.HEALTHY
