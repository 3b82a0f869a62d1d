"""
Request and response models for the HTTP surface.

Responses are built from the domain DTOs with ``from_attributes`` so the
routers never hand-copy fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ordermgmt_jobs.domain.types import JobStatus
from ordermgmt_settlement.domain.types import (
    AuditReport,
    AuditStatus,
    ImportStatus,
    IssueSeverity,
    IssueType,
    Remediation,
)


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Jobs
# =============================================================================


class TenantRequest(BaseModel):
    tenant_id: UUID


class StartJobRequest(BaseModel):
    tenant_id: UUID
    job_type: str = Field(min_length=1)
    op_params: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0


class JobStatusResponse(BaseModel):
    job_id: UUID
    status: JobStatus


class JobProgressView(_FromDomain):
    phase: str | None = None
    message: str = ""
    current: int = 0
    total: int = 0
    percent: int = 0


class JobErrorView(_FromDomain):
    phase: str | None = None
    message: str
    retryable: bool = False
    item_key: str | None = None
    at: str | None = None


class JobView(_FromDomain):
    job_id: UUID
    job_type: str
    status: JobStatus
    resource: str
    priority: int
    total_count: int
    processed_count: int
    succeeded_count: int
    failed_count: int
    skipped_count: int
    progress_percent: int
    progress: JobProgressView
    cursor: int
    can_resume: bool
    error_log: list[JobErrorView]
    error_message: str | None = None
    result: dict[str, Any] | None = None
    retry_of_id: UUID | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    last_heartbeat_at: datetime | None = None
    completed_at: datetime | None = None
    cancel_requested_at: datetime | None = None


class JobListResponse(BaseModel):
    jobs: list[JobView]


# =============================================================================
# Settlement
# =============================================================================


class ImportRequest(BaseModel):
    tenant_id: UUID
    import_id: UUID


class OptionalImportRequest(BaseModel):
    tenant_id: UUID
    import_id: UUID | None = None


class OrderIdsRequest(BaseModel):
    tenant_id: UUID
    order_ids: list[str] = Field(min_length=1)


class ParseErrorView(_FromDomain):
    row: int
    column: str
    reason: str


class PhaseAResponse(_FromDomain):
    import_id: UUID
    total_rows: int
    chunk_size: int
    parse_errors: list[ParseErrorView]
    total_parse_errors: int
    month_key: str | None = None


class PhaseBResponse(_FromDomain):
    import_id: UUID
    status: ImportStatus
    processed_rows: int
    total_rows: int
    cursor: int
    chunk_index: int | None = None
    rows_created: int = 0
    rows_skipped: int = 0
    error_message: str | None = None


class RebuildResponse(_FromDomain):
    import_id: UUID
    rows_created: int
    rows_skipped: int
    expected_rows: int


class RematchResponse(_FromDomain):
    total_rows: int
    newly_matched: int
    already_matched: int
    still_unmatched: int
    rows_updated: int
    match_strategies: dict[str, int]


class RecomputeCogsResponse(_FromDomain):
    total_rows_scanned: int
    matched_order_rows_scanned: int
    rows_with_cogs: int
    rows_missing_cogs: int
    rows_skipped_deleted_order: int
    cogs_by_source: dict[str, int]
    orders_synced: int
    imports_updated: int
    proof: list[dict[str, Any]]


class OrderRowsResponse(_FromDomain):
    order_ids: list[str]
    affected_settlement_rows: int


class AuditIssueView(_FromDomain):
    type: IssueType
    severity: IssueSeverity
    message: str
    remediation: Remediation
    details: dict[str, Any] = Field(default_factory=dict)


class AuditSummaryView(_FromDomain):
    total_rows: int
    active_rows: int
    deleted_rows: int
    expected_rows: int


class AuditKpisView(BaseModel):
    cached: dict[str, Any] | None = None
    calculated: dict[str, Any] | None = None
    mismatch: dict[str, str] = Field(default_factory=dict)


class AuditResponse(BaseModel):
    status: AuditStatus
    import_id: UUID | None = None
    issues: list[AuditIssueView]
    recommendations: list[str]
    summary: AuditSummaryView
    kpis: AuditKpisView

    @classmethod
    def from_report(cls, report: AuditReport) -> AuditResponse:
        return cls(
            status=report.status,
            import_id=report.import_id,
            issues=[AuditIssueView.model_validate(i) for i in report.issues],
            recommendations=list(report.recommendations),
            summary=AuditSummaryView.model_validate(report.summary),
            kpis=AuditKpisView(
                cached=report.kpis_cached,
                calculated=report.kpis_calculated,
                mismatch=dict(report.kpi_mismatch),
            ),
        )
