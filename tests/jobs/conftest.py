"""
Fixtures for job engine tests.

``ListTask`` is an in-memory task driven entirely by its job parameters:

    keys          items of the single phase
    phase_keys    {phase: [keys]} for multi-phase tasks
    fail          keys whose outcome is ItemOutcome.failed
    raise         keys whose execute_item raises
    explode_on_count / fail_summary   fail setup or completion

It records every executed (phase, key) pair so replays can be detected.
"""

from typing import Any, Callable

import pytest
from sqlalchemy.orm import Session

from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.services.control import JobControlService
from ordermgmt_jobs.services.runner import JobRunner
from ordermgmt_jobs.tasks.base import (
    BatchCursor,
    ItemOutcome,
    JobItem,
    TaskContext,
    TaskRegistry,
)
from ordermgmt_kernel.exceptions import RateLimitedError


class ListTask:
    def __init__(
        self,
        job_type: str = "fake_list",
        resource: str = "fake",
        phases: tuple[str, ...] = ("only",),
    ):
        self._job_type = job_type
        self._resource = resource
        self._phases = phases
        self.executed: list[tuple[str, str]] = []
        # key -> number of rate-limited attempts still to raise
        self.rate_limits: dict[str, int] = {}
        self.on_item: Callable[[TaskContext, str], None] | None = None

    @property
    def job_type(self) -> str:
        return self._job_type

    @property
    def description(self) -> str:
        return "In-memory list task"

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def phases(self) -> tuple[str, ...]:
        return self._phases

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        return dict(parameters)

    def _keys(self, ctx: TaskContext, phase: str) -> list[str]:
        if "phase_keys" in ctx.parameters:
            return list(ctx.parameters["phase_keys"].get(phase, []))
        return list(ctx.parameters.get("keys", []))

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        if ctx.parameters.get("explode_on_count"):
            raise RuntimeError("boom")
        return len(self._keys(ctx, phase))

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        keys = self._keys(ctx, phase)
        return tuple(JobItem(k) for k in keys[cursor.position:cursor.position + limit])

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        key = item.item_key
        if self.rate_limits.get(key, 0) > 0:
            self.rate_limits[key] -= 1
            raise RateLimitedError("write", "429 Too Many Requests")
        if self.on_item is not None:
            self.on_item(ctx, key)
        self.executed.append((phase, key))
        if key in ctx.parameters.get("raise", []):
            raise ValueError(f"kaboom {key}")
        if key in ctx.parameters.get("fail", []):
            return ItemOutcome.failed(f"bad item {key}")
        ctx.state["done"] = int(ctx.state.get("done", 0)) + 1
        return ItemOutcome.succeeded()

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        if ctx.parameters.get("fail_summary"):
            raise RuntimeError("summary failed")
        return {"done": int(ctx.state.get("done", 0))}


@pytest.fixture
def list_task():
    return ListTask()


@pytest.fixture
def other_task():
    """Second job type sharing the ``fake`` resource."""
    return ListTask(job_type="fake_other")


@pytest.fixture
def alt_task():
    """Job type on its own resource."""
    return ListTask(job_type="fake_alt", resource="fake_alt")


@pytest.fixture
def phased_task():
    return ListTask(job_type="fake_phased", resource="fake_phased", phases=("first", "second"))


@pytest.fixture
def registry(list_task, other_task, alt_task, phased_task):
    registry = TaskRegistry()
    for task in (list_task, other_task, alt_task, phased_task):
        registry.register(task)
    return registry


@pytest.fixture
def control(db_session, registry, clock, config):
    return JobControlService(db_session, registry, clock, config)


@pytest.fixture
def make_runner(db_session, registry, clock, config, sleep):
    def _make(on_checkpoint=None, session: Session | None = None, task_registry=None) -> JobRunner:
        return JobRunner(
            session or db_session,
            task_registry if task_registry is not None else registry,
            clock=clock,
            config=config,
            on_checkpoint=on_checkpoint,
            sleep=sleep,
        )

    return _make


@pytest.fixture
def set_status(db_session):
    """Force a Job Record into a status, bypassing the control verbs."""

    def _set(job_id, status: str, **fields) -> JobModel:
        job = db_session.get(JobModel, job_id)
        job.status = status
        for name, value in fields.items():
            setattr(job, name, value)
        db_session.flush()
        return job

    return _set


@pytest.fixture
def reload_job(db_session):
    """Re-read a Job Record after another session committed changes."""

    def _reload(job_id) -> JobModel:
        db_session.expire_all()
        return db_session.get(JobModel, job_id)

    return _reload
