"""
JobTask protocol, supporting types, and TaskRegistry.

Contract:
    ``JobTask`` defines the interface every job type must implement.
    ``TaskRegistry`` stores registered tasks keyed by ``job_type``.
    ``RetriesFailedItems`` is optional; tasks that implement it support the
    ``retry_failed_items`` control verb.

    A task declares ordered ``phases``.  For each phase the runner asks for
    bounded batches through ``fetch_batch(ctx, phase, cursor, limit)``; an
    empty batch exhausts the phase.  ``execute_item`` runs inside a
    SAVEPOINT owned by the runner and must check item identity before
    writing, so a replayed batch writes nothing twice.

Architecture:
    ordermgmt_jobs/tasks.  Imports only ordermgmt_jobs.domain, the kernel
    clock and config schema.  Task modules import the stores they act on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.domain.clock import Clock

from ordermgmt_jobs.domain.types import ItemStatus

# Checkpoint keys owned by the runner.  Everything else belongs to the task.
CURSOR_KEYS = frozenset({"phase", "position", "last_key"})


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchCursor:
    """Where the next batch of a phase starts.

    ``position`` counts items already handed out in the phase.  ``last_key``
    is the key of the last one, for keyset pagination.
    """

    position: int = 0
    last_key: str | None = None

    def advance(self, items: tuple[JobItem, ...]) -> BatchCursor:
        if not items:
            return self
        return BatchCursor(self.position + len(items), items[-1].item_key)


@dataclass(frozen=True)
class JobItem:
    """One unit of work returned by ``fetch_batch``."""

    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ItemOutcome:
    """Result of ``JobTask.execute_item``."""

    status: ItemStatus
    error_message: str | None = None
    result_data: dict[str, Any] | None = None

    @classmethod
    def succeeded(cls, **result_data: Any) -> ItemOutcome:
        return cls(ItemStatus.SUCCEEDED, result_data=result_data or None)

    @classmethod
    def skipped(cls, reason: str | None = None) -> ItemOutcome:
        return cls(ItemStatus.SKIPPED, result_data={"reason": reason} if reason else None)

    @classmethod
    def failed(cls, message: str) -> ItemOutcome:
        return cls(ItemStatus.FAILED, error_message=message)


@dataclass
class TaskContext:
    """Everything a task sees while one job runs.

    ``state`` is the task's own slice of the checkpoint.  Tasks update it
    only after an item's writes are flushed; the runner persists it with
    the cursor after every batch.
    """

    session: Session
    job_id: UUID
    tenant_id: UUID
    parameters: dict[str, Any]
    clock: Clock
    config: RuntimeConfig
    state: dict[str, Any] = field(default_factory=dict)
    actor_id: UUID | None = None


# =============================================================================
# JobTask Protocol
# =============================================================================


@runtime_checkable
class JobTask(Protocol):
    """Protocol for job type implementations.

    Non-goals:
        - Does NOT manage transactions; the runner owns the SAVEPOINTs.
        - Does NOT retry; the runner retries ``RateLimitedError``.
        - Does NOT sleep or check cancellation.
    """

    @property
    def job_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def resource(self) -> str:
        """Exclusive resource class; one job per (tenant, resource) runs at a time."""
        ...

    @property
    def phases(self) -> tuple[str, ...]: ...

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        """Return normalized parameters or raise InvalidRequestError."""
        ...

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        """Best-effort item count for progress reporting."""
        ...

    def fetch_batch(
        self,
        ctx: TaskContext,
        phase: str,
        cursor: BatchCursor,
        limit: int,
    ) -> tuple[JobItem, ...]:
        """Next ``limit`` items at ``cursor``.  Empty when the phase is exhausted."""
        ...

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        ...

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        """Final result payload, or raise to fail the job."""
        ...


@runtime_checkable
class RetriesFailedItems(Protocol):
    """Optional capability: re-run only the items an earlier job failed."""

    def retry_parameters(
        self,
        session: Session,
        tenant_id: UUID,
        job_id: UUID,
        parameters: dict[str, Any],
    ) -> dict[str, Any]:
        """Parameters for a new job covering the failed items of ``job_id``.

        Raises InvalidRequestError when the job left nothing to retry.
        """
        ...


# =============================================================================
# TaskRegistry
# =============================================================================


class TaskRegistry:
    """Registry mapping job_type strings to JobTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by job_type; raises KeyError if missing.
        - ``list_tasks()`` returns all registered job_type strings.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, JobTask] = {}

    def register(self, task: JobTask) -> None:
        if task.job_type in self._tasks:
            raise ValueError(f"Task type '{task.job_type}' is already registered")
        self._tasks[task.job_type] = task

    def get(self, job_type: str) -> JobTask:
        try:
            return self._tasks[job_type]
        except KeyError:
            raise KeyError(
                f"No task registered for type '{job_type}'. "
                f"Available: {sorted(self._tasks.keys())}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._tasks


def split_checkpoint(checkpoint: dict[str, Any] | None) -> tuple[str | None, BatchCursor, dict[str, Any]]:
    """Split a stored checkpoint into (phase, cursor, task state)."""
    data = dict(checkpoint or {})
    phase = data.get("phase")
    cursor = BatchCursor(int(data.get("position") or 0), data.get("last_key"))
    state = {k: v for k, v in data.items() if k not in CURSOR_KEYS}
    return phase, cursor, state


def build_checkpoint(phase: str, cursor: BatchCursor, state: dict[str, Any]) -> dict[str, Any]:
    return {
        **state,
        "phase": phase,
        "position": cursor.position,
        "last_key": cursor.last_key,
    }
