"""Pure settlement domain types (zero I/O)."""

from ordermgmt_settlement.domain.types import (
    AuditIssue,
    AuditReport,
    AuditStatus,
    AuditSummary,
    ChunkResult,
    ChunkStatus,
    ImportStatus,
    IssueSeverity,
    IssueType,
    OrderRowsResult,
    ParsedRow,
    ParseResult,
    PhaseAResult,
    RebuildResult,
    RecomputeCogsResult,
    RematchResult,
    Remediation,
    RowParseError,
    SettlementImport,
)

__all__ = [
    "AuditIssue",
    "AuditReport",
    "AuditStatus",
    "AuditSummary",
    "ChunkResult",
    "ChunkStatus",
    "ImportStatus",
    "IssueSeverity",
    "IssueType",
    "OrderRowsResult",
    "ParsedRow",
    "ParseResult",
    "PhaseAResult",
    "RebuildResult",
    "RecomputeCogsResult",
    "RematchResult",
    "Remediation",
    "RowParseError",
    "SettlementImport",
]
