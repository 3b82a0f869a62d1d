"""
ORM model for the Job Record (table ``background_jobs``).

Contract:
    One row per long-running operation.  Records are never physically
    deleted; a resumed failed job is a new row pointing back through
    ``retry_of_id``.  JSON columns are always reassigned, never mutated in
    place, so SQLAlchemy sees the change.

Architecture: ordermgmt_jobs/models.  Imports from ordermgmt_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from ordermgmt_jobs.domain.types import Job


class JobModel(TenantScopedBase):
    """Persistent Job Record."""

    __tablename__ = "background_jobs"

    __table_args__ = (
        Index("ix_background_jobs_tenant_status", "tenant_id", "status"),
        Index("ix_background_jobs_tenant_resource", "tenant_id", "resource", "status"),
        Index("ix_background_jobs_tenant_type", "tenant_id", "job_type"),
    )

    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    resource: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[int] = mapped_column(default=0, nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    total_count: Mapped[int] = mapped_column(default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(default=0, nullable=False)
    succeeded_count: Mapped[int] = mapped_column(default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(default=0, nullable=False)
    progress_percent: Mapped[int] = mapped_column(default=0, nullable=False)
    progress: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    checkpoint: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    cursor: Mapped[int] = mapped_column(default=0, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_heartbeat_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    can_resume: Mapped[bool] = mapped_column(default=True, nullable=False)

    error_log: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    retry_of_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self) -> Job:
        from ordermgmt_jobs.domain.types import (
            Job,
            JobErrorEntry,
            JobProgress,
            JobStatus,
        )

        return Job(
            job_id=self.id,
            tenant_id=self.tenant_id,
            job_type=self.job_type,
            status=JobStatus(self.status),
            resource=self.resource,
            priority=self.priority,
            parameters=dict(self.parameters or {}),
            total_count=self.total_count,
            processed_count=self.processed_count,
            succeeded_count=self.succeeded_count,
            failed_count=self.failed_count,
            skipped_count=self.skipped_count,
            progress_percent=self.progress_percent,
            progress=JobProgress.from_dict(self.progress),
            checkpoint=dict(self.checkpoint or {}),
            cursor=self.cursor,
            can_resume=self.can_resume,
            error_log=tuple(JobErrorEntry(**entry) for entry in (self.error_log or [])),
            error_message=self.error_message,
            result=dict(self.result) if self.result is not None else None,
            retry_of_id=self.retry_of_id,
            created_at=self.created_at,
            started_at=self.started_at,
            last_heartbeat_at=self.last_heartbeat_at,
            completed_at=self.completed_at,
            cancel_requested_at=self.cancel_requested_at,
            created_by=self.created_by_id,
        )
