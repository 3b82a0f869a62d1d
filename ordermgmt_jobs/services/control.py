"""
JobControlService -- admission and the user-facing control verbs.

Contract:
    start_job   validate type and parameters, refuse a second active job of
                the same type for the tenant, create the record in ``queued``.
    pause       running | throttled -> pausing
    resume      paused -> resuming, or -> queued when the tenant/resource
                slot is occupied; failed -> NEW queued record that inherits
                the checkpoint (``retry_of_id`` links them)
    retry_failed_items
                completed job with failed items -> NEW queued record whose
                parameters cover only those items (task must implement
                RetriesFailedItems)
    cancel      queued -> cancelled; other live statuses -> cancelling with
                ``cancel_requested_at``; terminal -> InvalidJobTransitionError
    force_stop  terminal -> unchanged; queued -> cancelled; others ->
                cancelling with ``can_resume=False`` and an error-log entry
    list_jobs / get_job

    Control verbs write only intent: status, cancel_requested_at,
    can_resume (and force_stop's error-log entry).  The runner observes the
    intent at its next batch boundary.

Architecture: ordermgmt_jobs/services.  Never commits.
"""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.exceptions import (
    InvalidJobTransitionError,
    InvalidRequestError,
    JobConflictError,
    JobNotFoundError,
    TaskNotRegisteredError,
)
from ordermgmt_kernel.logging_config import LogContext, get_logger

from ordermgmt_jobs.domain.transitions import ACTIVE, OCCUPYING, TERMINAL
from ordermgmt_jobs.domain.types import Job, JobErrorEntry, JobStatus
from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.services.runner import append_error
from ordermgmt_jobs.tasks.base import RetriesFailedItems, TaskRegistry

logger = get_logger("jobs.control")


class JobControlService:
    """Admission and control verbs for one request's session."""

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        config: RuntimeConfig | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._policy = (config or RuntimeConfig()).jobs

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def start_job(
        self,
        tenant_id: UUID,
        job_type: str,
        parameters: dict[str, Any] | None = None,
        priority: int = 0,
        actor_id: UUID | None = None,
    ) -> Job:
        """Admit a new job in ``queued``.

        Raises:
            TaskNotRegisteredError: If job_type is unknown.
            InvalidRequestError: If the parameters are invalid.
            JobConflictError: If a job of this type is already active.
        """
        if not job_type or job_type not in self._task_registry:
            raise TaskNotRegisteredError(job_type or "", self._task_registry.list_tasks())
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise InvalidRequestError("priority must be an integer", field="priority")
        task = self._task_registry.get(job_type)
        validated = task.validate_parameters(dict(parameters or {}))

        self._ensure_no_active(tenant_id, job_type)

        now = self._clock.now()
        job = JobModel(
            tenant_id=tenant_id,
            job_type=job_type,
            status=JobStatus.QUEUED.value,
            resource=task.resource,
            priority=priority,
            parameters=validated,
            checkpoint={},
            error_log=[],
            progress={"phase": None, "message": "Queued", "current": 0, "total": 0, "percent": 0},
            can_resume=True,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self._session.add(job)
        self._session.flush()

        logger.info(
            "job_admitted",
            extra={
                "job_id": str(job.id),
                "tenant_id": str(tenant_id),
                "job_type": job_type,
                "resource": task.resource,
                "priority": priority,
            },
        )
        return job.to_dto()

    # -------------------------------------------------------------------------
    # Control verbs
    # -------------------------------------------------------------------------

    def pause(self, tenant_id: UUID, job_id: UUID) -> Job:
        job = self._locked(tenant_id, job_id)
        if job.status not in (JobStatus.RUNNING.value, JobStatus.THROTTLED.value):
            raise InvalidJobTransitionError(str(job_id), job.status, "pause")
        job.status = JobStatus.PAUSING.value
        job.updated_at = self._clock.now()
        self._session.flush()
        self._log("job_pause_requested", job)
        return job.to_dto()

    def resume(self, tenant_id: UUID, job_id: UUID, actor_id: UUID | None = None) -> Job:
        """Resume a paused job in place, or a failed one as a new record."""
        job = self._locked(tenant_id, job_id)
        status = JobStatus(job.status)
        if status not in (JobStatus.PAUSED, JobStatus.FAILED) or not job.can_resume:
            raise InvalidJobTransitionError(str(job_id), job.status, "resume")

        now = self._clock.now()
        if status == JobStatus.FAILED:
            return self._resume_failed(job, actor_id)

        occupied = self._slot_occupied(tenant_id, job.resource, exclude=job.id)
        job.status = (JobStatus.QUEUED if occupied else JobStatus.RESUMING).value
        # Resume counts as liveness so the heartbeat sweep waits for the runner.
        job.last_heartbeat_at = now
        job.updated_at = now
        self._session.flush()
        self._log("job_resume_requested", job, slot_occupied=occupied)
        return job.to_dto()

    def _resume_failed(self, failed: JobModel, actor_id: UUID | None) -> Job:
        self._ensure_no_active(failed.tenant_id, failed.job_type)
        now = self._clock.now()
        retry = JobModel(
            tenant_id=failed.tenant_id,
            job_type=failed.job_type,
            status=JobStatus.QUEUED.value,
            resource=failed.resource,
            priority=failed.priority,
            parameters=dict(failed.parameters or {}),
            checkpoint=dict(failed.checkpoint or {}),
            cursor=failed.cursor,
            total_count=failed.total_count,
            processed_count=failed.processed_count,
            succeeded_count=failed.succeeded_count,
            failed_count=failed.failed_count,
            skipped_count=failed.skipped_count,
            progress_percent=failed.progress_percent,
            progress={**(failed.progress or {}), "message": "Queued (resumed)"},
            error_log=[],
            can_resume=True,
            retry_of_id=failed.id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id or failed.created_by_id,
        )
        self._session.add(retry)
        self._session.flush()
        self._log("job_retry_created", retry, retry_of_id=str(failed.id))
        return retry.to_dto()

    def retry_failed_items(self, tenant_id: UUID, job_id: UUID, actor_id: UUID | None = None) -> Job:
        """Queue a new job that re-runs only the items a completed job failed.

        Raises:
            InvalidJobTransitionError: If the job is not completed, failed no
                items, or its type cannot re-run single items.
            InvalidRequestError: If the task finds nothing left to retry.
            JobConflictError: If a job of this type is already active.
        """
        source = self._locked(tenant_id, job_id)
        task = self._task_registry.get(source.job_type)
        if (
            source.status != JobStatus.COMPLETED.value
            or not source.failed_count
            or not isinstance(task, RetriesFailedItems)
        ):
            raise InvalidJobTransitionError(str(job_id), source.status, "retry_failed_items")

        parameters = task.validate_parameters(
            task.retry_parameters(self._session, tenant_id, source.id, dict(source.parameters or {}))
        )
        self._ensure_no_active(tenant_id, source.job_type)

        now = self._clock.now()
        retry = JobModel(
            tenant_id=tenant_id,
            job_type=source.job_type,
            status=JobStatus.QUEUED.value,
            resource=source.resource,
            priority=source.priority,
            parameters=parameters,
            checkpoint={},
            error_log=[],
            progress={"phase": None, "message": "Queued (failed items)", "current": 0, "total": 0, "percent": 0},
            can_resume=True,
            retry_of_id=source.id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id or source.created_by_id,
        )
        self._session.add(retry)
        self._session.flush()
        self._log("job_failed_items_requeued", retry, retry_of_id=str(source.id), failed_count=source.failed_count)
        return retry.to_dto()

    def cancel(self, tenant_id: UUID, job_id: UUID) -> Job:
        job = self._locked(tenant_id, job_id)
        status = JobStatus(job.status)
        if status in TERMINAL:
            raise InvalidJobTransitionError(str(job_id), job.status, "cancel")

        now = self._clock.now()
        if status == JobStatus.QUEUED:
            job.status = JobStatus.CANCELLED.value
            job.completed_at = now
        elif status != JobStatus.CANCELLING:
            job.status = JobStatus.CANCELLING.value
            job.cancel_requested_at = now
        job.updated_at = now
        self._session.flush()
        self._log("job_cancel_requested", job)
        return job.to_dto()

    def force_stop(self, tenant_id: UUID, job_id: UUID) -> Job:
        """Cancel without resume.  Idempotent on terminal jobs."""
        job = self._locked(tenant_id, job_id)
        status = JobStatus(job.status)
        if status in TERMINAL:
            return job.to_dto()

        now = self._clock.now()
        if status == JobStatus.QUEUED:
            job.status = JobStatus.CANCELLED.value
            job.completed_at = now
        else:
            job.status = JobStatus.CANCELLING.value
            if job.cancel_requested_at is None:
                job.cancel_requested_at = now
        job.can_resume = False
        append_error(
            job,
            JobErrorEntry(
                phase=(job.checkpoint or {}).get("phase"),
                message=f"Force stopped from status '{status.value}'",
                retryable=False,
                at=now.isoformat(),
            ),
            self._policy.max_error_log_entries,
        )
        job.updated_at = now
        self._session.flush()
        self._log("job_force_stopped", job, previous_status=status.value)
        return job.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, tenant_id: UUID, job_id: UUID) -> Job:
        job = self._session.get(JobModel, job_id)
        if job is None or job.tenant_id != tenant_id:
            raise JobNotFoundError(str(job_id))
        return job.to_dto()

    def list_jobs(
        self,
        tenant_id: UUID,
        statuses: Iterable[JobStatus | str] | None = None,
        limit: int | None = None,
    ) -> tuple[Job, ...]:
        """Tenant jobs, newest first.  Defaults to every non-terminal status."""
        wanted = (
            [JobStatus(s).value for s in statuses]
            if statuses is not None
            else [s.value for s in ACTIVE]
        )
        rows = self._session.execute(
            select(JobModel)
            .where(JobModel.tenant_id == tenant_id, JobModel.status.in_(wanted))
            .order_by(JobModel.created_at.desc(), JobModel.id.desc())
            .limit(limit or self._policy.list_limit)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _locked(self, tenant_id: UUID, job_id: UUID) -> JobModel:
        job = self._session.execute(
            select(JobModel)
            .where(JobModel.id == job_id, JobModel.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def _ensure_no_active(self, tenant_id: UUID, job_type: str) -> None:
        active = self._session.execute(
            select(JobModel.id)
            .where(
                JobModel.tenant_id == tenant_id,
                JobModel.job_type == job_type,
                JobModel.status.in_([s.value for s in ACTIVE]),
            )
            .limit(1)
        ).scalar_one_or_none()
        if active is not None:
            raise JobConflictError(str(tenant_id), job_type, str(active))

    def _slot_occupied(self, tenant_id: UUID, resource: str, exclude: UUID | None = None) -> bool:
        stmt = select(func.count()).select_from(JobModel).where(
            JobModel.tenant_id == tenant_id,
            JobModel.resource == resource,
            JobModel.status.in_([s.value for s in OCCUPYING]),
        )
        if exclude is not None:
            stmt = stmt.where(JobModel.id != exclude)
        return int(self._session.execute(stmt).scalar_one()) > 0

    @staticmethod
    def _log(event: str, job: JobModel, **fields: Any) -> None:
        with LogContext.bind(job_id=str(job.id), tenant_id=str(job.tenant_id)):
            logger.info(event, extra={"job_type": job.job_type, "status": job.status, **fields})
