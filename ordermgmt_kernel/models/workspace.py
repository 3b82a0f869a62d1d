"""Workspace (tenant) records and stored workspace backups."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, TrackedBase, UUIDString


class WorkspaceModel(TrackedBase):
    """A tenant.  The workspace id is the tenant_id of everything it owns."""

    __tablename__ = "workspaces"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    source_workspace_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


class WorkspaceBackupModel(TenantScopedBase):
    """JSON snapshot of a tenant's owned entities, written by the backup job."""

    __tablename__ = "workspace_backups"

    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    stats: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    size_bytes: Mapped[int] = mapped_column(default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
