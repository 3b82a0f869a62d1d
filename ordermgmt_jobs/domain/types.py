"""
ordermgmt_jobs.domain.types -- Pure frozen dataclasses for the job engine.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.  ``Job`` is the read-side view of a Job Record; the
runner and the control verbs mutate the ORM model, never these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    """Job Record lifecycle status."""

    QUEUED = "queued"  # Admitted, waiting for its tenant/resource slot
    RUNNING = "running"
    THROTTLED = "throttled"  # Running with the widened inter-batch delay
    PAUSING = "pausing"  # Pause requested, runner stops at the next boundary
    PAUSED = "paused"
    RESUMING = "resuming"
    CANCELLING = "cancelling"  # Cancel requested, runner stops at the next boundary
    CANCELLED = "cancelled"
    FORCE_TERMINATED = "force_terminated"  # Sweep: cancelling past the guard window
    TIMEOUT_CANCELLED = "timeout_cancelled"  # Ceiling exceeded or stale heartbeat
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        from ordermgmt_jobs.domain.transitions import TERMINAL

        return self in TERMINAL


class JobType(str, Enum):
    """Built-in job types.  Tasks register by string, so the set is open."""

    BULK_DELETE_SKUS = "bulk_delete_skus"
    STOCK_RESET = "stock_reset"
    SETTLEMENT_IMPORT = "settlement_import"
    BACKUP = "backup"
    RESTORE = "restore"
    CLONE = "clone"
    NOTIFICATION_EXPORT = "notification_export"


class ItemStatus(str, Enum):
    """Outcome of one item within a batch."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"  # Already applied (replay) or nothing to do
    FAILED = "failed"


# =============================================================================
# Job Record view
# =============================================================================


@dataclass(frozen=True)
class JobProgress:
    phase: str | None = None
    message: str = ""
    current: int = 0
    total: int = 0
    percent: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobProgress:
        if not data:
            return cls()
        return cls(
            phase=data.get("phase"),
            message=data.get("message", ""),
            current=int(data.get("current", 0)),
            total=int(data.get("total", 0)),
            percent=int(data.get("percent", 0)),
        )


@dataclass(frozen=True)
class JobErrorEntry:
    """One entry of a job's error log."""

    phase: str | None
    message: str
    retryable: bool = False
    item_key: str | None = None
    at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "message": self.message,
            "retryable": self.retryable,
            "item_key": self.item_key,
            "at": self.at,
        }


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a Job Record.

    ``checkpoint`` carries ``phase``, ``position`` and ``last_key`` plus any
    per-task resume state (``completed_entities``, ``id_map``, ...).
    """

    job_id: UUID
    tenant_id: UUID
    job_type: str
    status: JobStatus
    resource: str
    priority: int = 0
    parameters: dict[str, Any] = field(default_factory=dict)
    total_count: int = 0
    processed_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    progress_percent: int = 0
    progress: JobProgress = field(default_factory=JobProgress)
    checkpoint: dict[str, Any] = field(default_factory=dict)
    cursor: int = 0
    can_resume: bool = True
    error_log: tuple[JobErrorEntry, ...] = ()
    error_message: str | None = None
    result: dict[str, Any] | None = None
    retry_of_id: UUID | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    last_heartbeat_at: datetime | None = None
    completed_at: datetime | None = None
    cancel_requested_at: datetime | None = None
    created_by: UUID | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# =============================================================================
# Runner and supervisor results
# =============================================================================


@dataclass(frozen=True)
class JobRunResult:
    """Outcome of one ``JobRunner.run()`` invocation."""

    job_id: UUID
    status: JobStatus
    batches: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    phase: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class SweepFix:
    job_id: UUID
    job_type: str
    previous_status: JobStatus
    new_status: JobStatus
    reason: str


@dataclass(frozen=True)
class SweepReport:
    checked: int = 0
    fixed: int = 0
    fixes: tuple[SweepFix, ...] = ()


@dataclass(frozen=True)
class TickReport:
    """What one supervisor pass did."""

    sweep: SweepReport = field(default_factory=SweepReport)
    promoted: tuple[UUID, ...] = ()
    runs: tuple[JobRunResult, ...] = ()

    @property
    def is_idle(self) -> bool:
        return not self.promoted and not self.runs
