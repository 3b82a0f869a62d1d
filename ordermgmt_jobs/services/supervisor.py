"""
JobSupervisor -- promotion, auto-chaining and the failsafe sweeps.

Contract:
    tick() -> TickReport
        1. sweep: force-terminate stale cancels, timeout-cancel stale
           heartbeats;
        2. promote: per (tenant, resource) with no occupying job, the
           highest-priority, oldest queued job moves to ``running``;
        3. drive every runnable job for one bounded runner invocation.
    sweep() -> SweepReport
    run_until_idle(max_ticks) -> number of ticks that did work
    start() / stop() run ``tick()`` on a daemon thread.

Architecture: ordermgmt_jobs/services.  Each tick opens its own session from
    the factory and commits after every phase; runners receive
    ``on_checkpoint=session.commit`` through the runner factory.

Invariants:
    - At most one occupying job per (tenant, resource).
    - The sweep writes only the failsafe outcomes (force_terminated,
      timeout_cancelled).
    - All staleness is measured on the injected Clock.
    - A stop signal is honoured between jobs, never inside one.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.logging_config import LogContext, get_logger

from ordermgmt_jobs.domain.transitions import (
    HEARTBEAT_WATCHED,
    OCCUPYING,
    RUNNABLE,
    require_transition,
)
from ordermgmt_jobs.domain.types import (
    JobErrorEntry,
    JobRunResult,
    JobStatus,
    SweepFix,
    SweepReport,
    TickReport,
)
from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.services.runner import JobRunner, append_error

logger = get_logger("jobs.supervisor")


class JobSupervisor:
    """Explicit scheduler loop over persisted Job Records.

    Non-goals:
        - NOT distributed: one supervisor per database.
        - Does NOT pre-empt a runner; suspension stays cooperative.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        runner_factory: Callable[[Session], JobRunner],
        clock: Clock | None = None,
        config: RuntimeConfig | None = None,
        tick_interval_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._runner_factory = runner_factory
        self._clock = clock or SystemClock()
        self._config = config or RuntimeConfig()
        self._policy = self._config.jobs
        self._tick_interval = (
            tick_interval_seconds
            if tick_interval_seconds is not None
            else self._config.supervisor_tick_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Sweep, promote and drive runnable jobs once (public for testing)."""
        session = self._session_factory()
        try:
            sweep = self._sweep(session)
            session.commit()
            promoted = self._promote(session)
            session.commit()
            runs = self._drive(session)
            return TickReport(sweep=sweep, promoted=promoted, runs=runs)
        except Exception:
            session.rollback()
            logger.exception("supervisor_tick_failed")
            return TickReport()
        finally:
            session.close()

    def sweep(self) -> SweepReport:
        """Run only the failsafe sweep in its own session."""
        session = self._session_factory()
        try:
            report = self._sweep(session)
            session.commit()
            return report
        except Exception:
            session.rollback()
            logger.exception("supervisor_sweep_failed")
            return SweepReport()
        finally:
            session.close()

    def run_until_idle(self, max_ticks: int = 100) -> int:
        """Tick until a pass promotes and runs nothing.  Returns busy ticks."""
        busy = 0
        for _ in range(max_ticks):
            report = self.tick()
            if report.is_idle:
                break
            busy += 1
        else:
            logger.warning("supervisor_max_ticks_reached", extra={"max_ticks": max_ticks})
        return busy

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="job-supervisor",
            daemon=True,
        )
        self._thread.start()
        logger.info("supervisor_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current job to reach a boundary."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("supervisor_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("supervisor_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _sweep(self, session: Session) -> SweepReport:
        watched = {JobStatus.CANCELLING.value} | {s.value for s in HEARTBEAT_WATCHED}
        jobs = session.execute(
            select(JobModel).where(JobModel.status.in_(watched))
        ).scalars().all()

        fixes: list[SweepFix] = []
        for job in jobs:
            verdict = self._stale_verdict(job)
            if verdict is None:
                continue
            new_status, reason = verdict
            fixes.append(self._apply_fix(job, new_status, reason))
        session.flush()

        report = SweepReport(checked=len(jobs), fixed=len(fixes), fixes=tuple(fixes))
        if fixes:
            logger.info("job_sweep_completed", extra={"checked": report.checked, "fixed": report.fixed})
        return report

    def _stale_verdict(self, job: JobModel) -> tuple[JobStatus, str] | None:
        if job.status == JobStatus.CANCELLING.value:
            age = self._clock.seconds_since(job.cancel_requested_at)
            if age is None:
                return JobStatus.FORCE_TERMINATED, "Cancelling without cancel_requested_at"
            if age > self._policy.guard_window_seconds:
                return (
                    JobStatus.FORCE_TERMINATED,
                    f"Cancelling for {age:.0f}s, past the "
                    f"{self._policy.guard_window_seconds}s guard window",
                )
            return None

        reference = job.last_heartbeat_at or job.started_at or job.created_at
        age = self._clock.seconds_since(reference)
        if age is not None and age > self._policy.timeout_seconds:
            return (
                JobStatus.TIMEOUT_CANCELLED,
                f"No heartbeat for {age:.0f}s, past the "
                f"{self._policy.timeout_seconds}s timeout",
            )
        return None

    def _apply_fix(self, job: JobModel, new_status: JobStatus, reason: str) -> SweepFix:
        previous = JobStatus(job.status)
        require_transition(job.id, previous, new_status)
        now = self._clock.now()
        job.status = new_status.value
        job.completed_at = now
        job.updated_at = now
        job.error_message = reason
        job.can_resume = False
        append_error(
            job,
            JobErrorEntry(
                phase=(job.checkpoint or {}).get("phase"),
                message=reason,
                retryable=False,
                at=now.isoformat(),
            ),
            self._policy.max_error_log_entries,
        )
        logger.warning(
            "job_sweep_fixed",
            extra={
                "job_id": str(job.id),
                "tenant_id": str(job.tenant_id),
                "job_type": job.job_type,
                "previous_status": previous.value,
                "new_status": new_status.value,
                "reason": reason,
            },
        )
        return SweepFix(
            job_id=job.id,
            job_type=job.job_type,
            previous_status=previous,
            new_status=new_status,
            reason=reason,
        )

    def _promote(self, session: Session) -> tuple[UUID, ...]:
        occupied = {
            (tenant_id, resource)
            for tenant_id, resource in session.execute(
                select(JobModel.tenant_id, JobModel.resource).where(
                    JobModel.status.in_([s.value for s in OCCUPYING])
                )
            ).all()
        }
        queued = session.execute(
            select(JobModel)
            .where(JobModel.status == JobStatus.QUEUED.value)
            .order_by(JobModel.priority.desc(), JobModel.created_at.asc(), JobModel.id.asc())
        ).scalars().all()

        now = self._clock.now()
        promoted: list[UUID] = []
        for job in queued:
            slot = (job.tenant_id, job.resource)
            if slot in occupied:
                continue
            require_transition(job.id, job.status, JobStatus.RUNNING)
            job.status = JobStatus.RUNNING.value
            if job.started_at is None:
                job.started_at = now
            job.last_heartbeat_at = now
            job.updated_at = now
            occupied.add(slot)
            promoted.append(job.id)
            with LogContext.bind(job_id=str(job.id), tenant_id=str(job.tenant_id)):
                logger.info(
                    "job_promoted",
                    extra={"job_type": job.job_type, "resource": job.resource, "priority": job.priority},
                )
        session.flush()
        return tuple(promoted)

    def _drive(self, session: Session) -> tuple[JobRunResult, ...]:
        job_ids = session.execute(
            select(JobModel.id)
            .where(JobModel.status.in_([s.value for s in RUNNABLE]))
            .order_by(JobModel.priority.desc(), JobModel.created_at.asc(), JobModel.id.asc())
        ).scalars().all()

        results: list[JobRunResult] = []
        for job_id in job_ids:
            if self._stop_event.is_set():
                break
            try:
                runner = self._runner_factory(session)
                results.append(runner.run(job_id, max_batches=self._policy.batches_per_invocation))
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("supervisor_run_failed", extra={"job_id": str(job_id)})
        return tuple(results)
