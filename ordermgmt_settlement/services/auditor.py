"""
Integrity Auditor -- read-only consistency check of a settlement import.

Contract:
    audit(tenant_id, import_id=None) -> AuditReport

    Recomputes KPIs purely from active settlement rows and the shared COGS
    formula and diffs them against the import's ``totals_cached``.  Targets
    the given import, or the latest completed import of the tenant.

Findings:
    ROWS_MISMATCH        HIGH      active rows != rows_count (rows processed
                                   less rows soft-deleted with their order)
    KPI_MISMATCH         HIGH      |cached - recomputed| > kpi_tolerance
                                   for revenue or COGS
    ZERO_KPIS_WITH_DATA  CRITICAL  cached totals missing, or revenue and
                                   COGS both zero, while active rows exist
                                   and recomputed revenue is non-zero

Invariants:
    - Never mutates state.  No flush, no attribute writes.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_config.schema import SettlementPolicy
from ordermgmt_engines.kpis import SettlementKpis, compute_settlement_kpis
from ordermgmt_kernel.logging_config import get_logger

from ordermgmt_settlement.domain.types import (
    AuditIssue,
    AuditReport,
    AuditStatus,
    AuditSummary,
    IssueSeverity,
    IssueType,
    Remediation,
)
from ordermgmt_settlement.repositories import (
    SettlementImportRepository,
    SettlementRowRepository,
    load_match_index,
)

logger = get_logger("settlement.auditor")

_RECOMMENDATIONS = {
    Remediation.REBUILD_ROWS: "Run rebuild_rows to restore missing settlement rows",
    Remediation.RECOMPUTE_COGS: "Run recompute_cogs to recalculate and cache KPIs from active rows",
}


class IntegrityAuditor:
    """Compares cached import aggregates with a fresh recomputation."""

    def __init__(self, session: Session, policy: SettlementPolicy | None = None):
        self._session = session
        self._policy = policy or SettlementPolicy()
        self._imports = SettlementImportRepository(session)
        self._rows = SettlementRowRepository(session)

    def audit(self, tenant_id: UUID, import_id: UUID | None = None) -> AuditReport:
        if import_id is not None:
            record = self._imports.require(tenant_id, import_id)
        else:
            record = self._imports.latest_completed(tenant_id)
        if record is None:
            logger.info("settlement_audit_completed", extra={"tenant_id": str(tenant_id), "status": "NO_DATA"})
            return AuditReport(status=AuditStatus.NO_DATA)

        rows = self._rows.for_import(tenant_id, record.id)
        active = [r for r in rows if not r.is_deleted]
        summary = AuditSummary(
            total_rows=len(rows),
            active_rows=len(active),
            deleted_rows=len(rows) - len(active),
            expected_rows=record.rows_count,
        )

        index = load_match_index(self._session, tenant_id, self._policy.partial_match_min_length)
        calculated = compute_settlement_kpis(active, index)
        cached = SettlementKpis.from_dict(record.totals_cached)

        issues: list[AuditIssue] = []
        if summary.active_rows != summary.expected_rows:
            issues.append(AuditIssue(
                type=IssueType.ROWS_MISMATCH,
                severity=IssueSeverity.HIGH,
                message=f"Expected {summary.expected_rows} rows, found {summary.active_rows}",
                remediation=Remediation.REBUILD_ROWS,
                details={"expected": summary.expected_rows, "actual": summary.active_rows},
            ))

        mismatch = self._kpi_mismatch(cached, calculated)
        if mismatch:
            issues.append(AuditIssue(
                type=IssueType.KPI_MISMATCH,
                severity=IssueSeverity.HIGH,
                message="Cached KPIs do not match calculated values",
                remediation=Remediation.RECOMPUTE_COGS,
                details=mismatch,
            ))

        if self._zero_kpis_with_data(cached, calculated, len(active)):
            issues.append(AuditIssue(
                type=IssueType.ZERO_KPIS_WITH_DATA,
                severity=IssueSeverity.CRITICAL,
                message="KPIs are zero but settlement rows exist",
                remediation=Remediation.RECOMPUTE_COGS,
                details={"active_rows": len(active)},
            ))

        remediations = []
        for issue in issues:
            if issue.remediation not in remediations:
                remediations.append(issue.remediation)

        report = AuditReport(
            status=AuditStatus.ISSUES_FOUND if issues else AuditStatus.HEALTHY,
            import_id=record.id,
            issues=tuple(issues),
            recommendations=tuple(_RECOMMENDATIONS[r] for r in remediations),
            summary=summary,
            kpis_cached=cached.to_dict() if cached else None,
            kpis_calculated=calculated.to_dict(),
            kpi_mismatch=mismatch,
        )
        logger.info(
            "settlement_audit_completed",
            extra={
                "tenant_id": str(tenant_id),
                "import_id": str(record.id),
                "status": report.status.value,
                "issues": [i.type.value for i in issues],
            },
        )
        return report

    def _kpi_mismatch(
        self,
        cached: SettlementKpis | None,
        calculated: SettlementKpis,
    ) -> dict[str, str]:
        """Per-field absolute differences beyond tolerance."""
        base = cached or SettlementKpis()
        tolerance = self._policy.kpi_tolerance
        diffs: dict[str, str] = {}
        for name in ("total_revenue", "total_cogs"):
            delta = abs(getattr(base, name) - getattr(calculated, name))
            if delta > tolerance:
                diffs[name] = str(delta)
        return diffs

    @staticmethod
    def _zero_kpis_with_data(
        cached: SettlementKpis | None,
        calculated: SettlementKpis,
        active_rows: int,
    ) -> bool:
        if active_rows == 0 or calculated.total_revenue == Decimal("0"):
            return False
        if cached is None:
            return True
        return cached.total_revenue == 0 and cached.total_cogs == 0
