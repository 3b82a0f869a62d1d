"""
JobRunner -- cooperative, checkpointed batch execution of one Job Record.

Contract:
    run(job_id, max_batches=None) -> JobRunResult

    Each iteration: re-read the record's control fields, check the cancel /
    pause / timeout signals, fetch the next bounded batch from the task's
    cursor, apply it with a SAVEPOINT per item, write counters, progress and
    checkpoint, call ``on_checkpoint`` and sleep the inter-batch delay.
    Phases run in the order the task declares; the job completes only
    after the last one is exhausted.

Architecture: ordermgmt_jobs/services.  Imports ordermgmt_jobs domain,
    models and tasks, plus kernel clock, logging and exceptions.

Invariants:
    - Suspension happens only at batch boundaries.
    - Only the runner writes counters and checkpoints, and only the runner
      moves pausing -> paused and cancelling -> cancelled.
    - An item failure is counted and logged; the batch continues.
    - ``RateLimitedError`` is retried with exponential backoff, the job in
      ``throttled``; exhaustion fails the job.
    - A fatal error fails the job and keeps the partial counters.
    - All timestamps come from the injected Clock; sleeping goes through the
      injected sleeper.

Non-goals:
    - Does NOT commit.  The caller passes ``on_checkpoint`` (the supervisor
      binds it to ``session.commit``) to make each batch durable.
"""

from __future__ import annotations

import time
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.db.snapshot import to_json_safe
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.exceptions import (
    JobNotFoundError,
    RateLimitedError,
    RetryExhaustedError,
    TaskNotRegisteredError,
)
from ordermgmt_kernel.logging_config import LogContext, get_logger

from ordermgmt_jobs.domain.transitions import EXECUTABLE, require_transition
from ordermgmt_jobs.domain.types import (
    ItemStatus,
    JobErrorEntry,
    JobRunResult,
    JobStatus,
)
from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.tasks.base import (
    BatchCursor,
    ItemOutcome,
    JobItem,
    JobTask,
    TaskContext,
    TaskRegistry,
    build_checkpoint,
    split_checkpoint,
)

logger = get_logger("jobs.runner")

# Re-read between batches so control verbs from other sessions are seen.
_CONTROL_FIELDS = ["status", "cancel_requested_at", "can_resume", "error_log"]


def append_error(
    job: JobModel,
    entry: JobErrorEntry,
    limit: int,
) -> None:
    """Append to the job's error log, keeping the newest ``limit`` entries."""
    entries = list(job.error_log or [])
    entries.append(entry.to_dict())
    job.error_log = entries[-limit:]


class JobRunner:
    """Drives one Job Record through its task's phases."""

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        config: RuntimeConfig | None = None,
        on_checkpoint: Callable[[], None] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._config = config or RuntimeConfig()
        self._policy = self._config.jobs
        self._on_checkpoint = on_checkpoint
        self._sleep = sleep if sleep is not None else time.sleep

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def run(self, job_id: UUID, max_batches: int | None = None) -> JobRunResult:
        """Run ``job_id`` until it completes, suspends, fails or times out.

        ``max_batches`` bounds this invocation; the job stays ``running``
        and continues on the next call.

        Raises:
            JobNotFoundError: If job_id does not exist.
        """
        job = self._session.get(JobModel, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))

        with LogContext.bind(job_id=str(job.id), tenant_id=str(job.tenant_id)):
            return self._run(job, max_batches)

    def _run(self, job: JobModel, max_batches: int | None) -> JobRunResult:
        status = JobStatus(job.status)
        if status == JobStatus.CANCELLING:
            self._finish_cancel(job)
            return self._result(job)
        if status == JobStatus.PAUSING:
            self._finish_pause(job)
            return self._result(job)
        if status not in EXECUTABLE:
            logger.info("job_run_skipped", extra={"status": job.status})
            return self._result(job)

        phase, cursor, state = split_checkpoint(job.checkpoint)
        if job.job_type not in self._task_registry:
            exc = TaskNotRegisteredError(job.job_type, self._task_registry.list_tasks())
            self._fail(job, str(exc), phase)
            return self._result(job, phase=phase)
        task = self._task_registry.get(job.job_type)
        if phase not in task.phases:
            phase, cursor = task.phases[0], BatchCursor()

        invocation_started = self._clock.now()
        if status != JobStatus.THROTTLED:
            self._move(job, JobStatus.RUNNING)
        if job.started_at is None:
            job.started_at = invocation_started
        job.last_heartbeat_at = invocation_started

        ctx = TaskContext(
            session=self._session,
            job_id=job.id,
            tenant_id=job.tenant_id,
            parameters=dict(job.parameters or {}),
            clock=self._clock,
            config=self._config,
            state=state,
            actor_id=job.created_by_id,
        )

        try:
            if job.total_count == 0 and job.processed_count == 0:
                job.total_count = sum(task.count_items(ctx, p) for p in task.phases)
            job.checkpoint = build_checkpoint(phase, cursor, ctx.state)
            self._session.flush()
        except Exception as exc:
            logger.exception("job_setup_failed", extra={"job_type": job.job_type})
            self._fail(job, f"Setup failed: {exc}", phase)
            return self._result(job, phase=phase)

        logger.info(
            "job_run_started",
            extra={
                "job_type": job.job_type,
                "phase": phase,
                "position": cursor.position,
                "total_count": job.total_count,
            },
        )

        batches = 0
        tally = {ItemStatus.SUCCEEDED: 0, ItemStatus.SKIPPED: 0, ItemStatus.FAILED: 0}
        try:
            while max_batches is None or batches < max_batches:
                elapsed = self._clock.seconds_since(invocation_started) or 0.0
                if elapsed > self._policy.timeout_seconds:
                    self._timeout(job, phase, elapsed)
                    break

                self._session.flush()
                self._session.refresh(job, _CONTROL_FIELDS)
                status = JobStatus(job.status)
                if status == JobStatus.CANCELLING:
                    self._finish_cancel(job)
                    break
                if status == JobStatus.PAUSING:
                    self._finish_pause(job)
                    break
                if status not in (JobStatus.RUNNING, JobStatus.THROTTLED):
                    logger.info("job_run_interrupted", extra={"status": job.status})
                    break

                items = task.fetch_batch(ctx, phase, cursor, self._policy.batch_size)
                if not items:
                    next_phase = self._next_phase(task, phase)
                    if next_phase is None:
                        self._complete(job, task, ctx, phase, cursor)
                        break
                    logger.info("job_phase_completed", extra={"phase": phase, "next_phase": next_phase})
                    phase, cursor = next_phase, BatchCursor()
                    job.checkpoint = build_checkpoint(phase, cursor, ctx.state)
                    job.cursor = 0
                    continue

                # A write before the first SAVEPOINT opens the outer transaction.
                job.last_heartbeat_at = self._clock.now()
                self._session.flush()

                throttled = self._apply_batch(job, task, ctx, phase, items, tally)
                cursor = cursor.advance(items)
                batches += 1
                self._checkpoint(job, phase, cursor, ctx, throttled)

                logger.info(
                    "job_batch_processed",
                    extra={
                        "phase": phase,
                        "batch_items": len(items),
                        "position": cursor.position,
                        "processed_count": job.processed_count,
                        "failed_count": job.failed_count,
                        "throttled": throttled,
                    },
                )
                if self._on_checkpoint is not None:
                    self._on_checkpoint()

                delay_ms = (
                    self._policy.throttled_delay_ms
                    if throttled or job.status == JobStatus.THROTTLED.value
                    else self._policy.base_delay_ms
                )
                self._sleep(delay_ms / 1000)

        except RetryExhaustedError as exc:
            logger.error(
                "job_retry_exhausted",
                extra={"item_key": exc.item_key, "attempts": exc.attempts},
            )
            self._fail(job, str(exc), phase, item_key=exc.item_key, retryable=True)
        except Exception as exc:
            logger.exception("job_run_failed", extra={"phase": phase})
            self._fail(job, str(exc) or type(exc).__name__, phase)

        self._session.flush()
        return self._result(job, batches=batches, tally=tally, phase=phase)

    # -------------------------------------------------------------------------
    # Batch application
    # -------------------------------------------------------------------------

    def _apply_batch(
        self,
        job: JobModel,
        task: JobTask,
        ctx: TaskContext,
        phase: str,
        items: tuple[JobItem, ...],
        tally: dict[ItemStatus, int],
    ) -> bool:
        """Run every item of one batch.  Returns True if any write was rate-limited."""
        throttled = False
        for item in items:
            outcome, was_throttled = self._execute_item(job, task, ctx, phase, item)
            throttled = throttled or was_throttled
            tally[outcome.status] += 1

            job.processed_count += 1
            if outcome.status == ItemStatus.SUCCEEDED:
                job.succeeded_count += 1
            elif outcome.status == ItemStatus.SKIPPED:
                job.skipped_count += 1
            else:
                job.failed_count += 1
                append_error(
                    job,
                    JobErrorEntry(
                        phase=phase,
                        message=outcome.error_message or "Item failed",
                        retryable=False,
                        item_key=item.item_key,
                        at=self._clock.now().isoformat(),
                    ),
                    self._policy.max_error_log_entries,
                )
                logger.warning(
                    "job_item_failed",
                    extra={"phase": phase, "item_key": item.item_key, "error": outcome.error_message},
                )
        return throttled

    def _execute_item(
        self,
        job: JobModel,
        task: JobTask,
        ctx: TaskContext,
        phase: str,
        item: JobItem,
    ) -> tuple[ItemOutcome, bool]:
        """One item in its own SAVEPOINT, retrying rate-limited writes."""
        attempt = 0
        throttled = False
        while True:
            attempt += 1
            savepoint = self._session.begin_nested()
            try:
                outcome = task.execute_item(ctx, phase, item)
            except RateLimitedError as exc:
                savepoint.rollback()
                if attempt >= self._policy.max_transient_retries:
                    raise RetryExhaustedError(item.item_key, attempt, str(exc)) from exc
                throttled = True
                self._enter_throttled(job)
                delay_ms = self._policy.retry_base_delay_ms * 2 ** (attempt - 1)
                logger.warning(
                    "job_item_rate_limited",
                    extra={"item_key": item.item_key, "attempt": attempt, "delay_ms": delay_ms},
                )
                self._sleep(delay_ms / 1000)
                continue
            except Exception as exc:
                savepoint.rollback()
                return ItemOutcome.failed(str(exc) or type(exc).__name__), throttled

            if outcome.status == ItemStatus.FAILED:
                savepoint.rollback()
            else:
                savepoint.commit()
            return outcome, throttled

    def _enter_throttled(self, job: JobModel) -> None:
        self._session.flush()
        self._session.refresh(job, ["status"])
        if job.status == JobStatus.RUNNING.value:
            job.status = JobStatus.THROTTLED.value
            self._session.flush()
            logger.warning("job_throttled", extra={"job_type": job.job_type})

    # -------------------------------------------------------------------------
    # Checkpoint and outcomes
    # -------------------------------------------------------------------------

    def _checkpoint(
        self,
        job: JobModel,
        phase: str,
        cursor: BatchCursor,
        ctx: TaskContext,
        throttled: bool,
    ) -> None:
        if job.processed_count > job.total_count:
            job.total_count = job.processed_count
        job.progress_percent = (
            min(100, int(job.processed_count * 100 / job.total_count)) if job.total_count else 0
        )
        job.progress = {
            "phase": phase,
            "message": f"{phase}: {job.processed_count}/{job.total_count}",
            "current": job.processed_count,
            "total": job.total_count,
            "percent": job.progress_percent,
        }
        job.checkpoint = build_checkpoint(phase, cursor, ctx.state)
        job.cursor = cursor.position
        job.last_heartbeat_at = self._clock.now()

        self._session.flush()
        self._session.refresh(job, ["status"])
        if not throttled and job.status == JobStatus.THROTTLED.value:
            job.status = JobStatus.RUNNING.value
            logger.info("job_throttle_cleared")
        self._session.flush()

    @staticmethod
    def _next_phase(task: JobTask, phase: str) -> str | None:
        phases = task.phases
        index = phases.index(phase)
        return phases[index + 1] if index + 1 < len(phases) else None

    def _move(self, job: JobModel, target: JobStatus) -> None:
        require_transition(job.id, job.status, target)
        job.status = target.value

    def _complete(
        self,
        job: JobModel,
        task: JobTask,
        ctx: TaskContext,
        phase: str,
        cursor: BatchCursor,
    ) -> None:
        result = task.summarize(ctx)
        now = self._clock.now()
        self._move(job, JobStatus.COMPLETED)
        job.result = to_json_safe(result)
        job.checkpoint = build_checkpoint(phase, cursor, ctx.state)
        job.completed_at = now
        job.last_heartbeat_at = now
        if job.total_count < job.processed_count:
            job.total_count = job.processed_count
        job.progress_percent = 100
        job.progress = {
            "phase": phase,
            "message": "Completed",
            "current": job.processed_count,
            "total": job.total_count,
            "percent": 100,
        }
        self._session.flush()
        logger.info(
            "job_completed",
            extra={
                "job_type": job.job_type,
                "processed_count": job.processed_count,
                "succeeded_count": job.succeeded_count,
                "failed_count": job.failed_count,
                "skipped_count": job.skipped_count,
            },
        )

    def _finish_cancel(self, job: JobModel) -> None:
        self._move(job, JobStatus.CANCELLED)
        job.completed_at = self._clock.now()
        job.progress = {**(job.progress or {}), "message": "Cancelled"}
        self._session.flush()
        logger.info("job_cancelled", extra={"processed_count": job.processed_count})

    def _finish_pause(self, job: JobModel) -> None:
        self._move(job, JobStatus.PAUSED)
        job.progress = {**(job.progress or {}), "message": "Paused"}
        self._session.flush()
        logger.info("job_paused", extra={"processed_count": job.processed_count})

    def _timeout(self, job: JobModel, phase: str, elapsed: float) -> None:
        message = (
            f"Invocation exceeded the {self._policy.timeout_seconds}s ceiling "
            f"after {elapsed:.0f}s"
        )
        self._move(job, JobStatus.TIMEOUT_CANCELLED)
        job.completed_at = self._clock.now()
        job.error_message = message
        append_error(
            job,
            JobErrorEntry(phase=phase, message=message, retryable=True, at=job.completed_at.isoformat()),
            self._policy.max_error_log_entries,
        )
        self._session.flush()
        logger.warning("job_timeout_cancelled", extra={"elapsed_seconds": round(elapsed, 1)})

    def _fail(
        self,
        job: JobModel,
        message: str,
        phase: str | None,
        item_key: str | None = None,
        retryable: bool = False,
    ) -> None:
        now = self._clock.now()
        # A cancel that raced the failure still ends as cancelled.
        if job.status == JobStatus.CANCELLING.value:
            self._move(job, JobStatus.CANCELLED)
        else:
            self._move(job, JobStatus.FAILED)
        job.error_message = message
        job.completed_at = now
        append_error(
            job,
            JobErrorEntry(
                phase=phase, message=message, retryable=retryable,
                item_key=item_key, at=now.isoformat(),
            ),
            self._policy.max_error_log_entries,
        )
        job.progress = {**(job.progress or {}), "message": f"Failed: {message}"}
        self._session.flush()
        logger.error("job_failed", extra={"job_type": job.job_type, "error": message})

    def _result(
        self,
        job: JobModel,
        batches: int = 0,
        tally: dict[ItemStatus, int] | None = None,
        phase: str | None = None,
    ) -> JobRunResult:
        tally = tally or {}
        return JobRunResult(
            job_id=job.id,
            status=JobStatus(job.status),
            batches=batches,
            processed=sum(tally.values()),
            succeeded=tally.get(ItemStatus.SUCCEEDED, 0),
            failed=tally.get(ItemStatus.FAILED, 0),
            skipped=tally.get(ItemStatus.SKIPPED, 0),
            phase=phase,
            error_message=job.error_message,
        )
