"""
Tests for JobRunner -- batch loop, checkpoints, item failures, retries and
cooperative pause / cancel / timeout.

Uses in-memory SQLite for fast unit tests.
"""

from uuid import uuid4

import pytest

from ordermgmt_config.schema import JobPolicy, RuntimeConfig, SettlementPolicy
from ordermgmt_jobs.domain.types import JobStatus
from ordermgmt_jobs.services.control import JobControlService
from ordermgmt_jobs.services.runner import JobRunner
from ordermgmt_jobs.tasks.base import TaskRegistry
from ordermgmt_kernel.exceptions import JobNotFoundError


class TestHappyPath:
    def test_runs_to_completion(self, control, make_runner, list_task, tenant_id, reload_job):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c"]})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.COMPLETED
        assert result.batches == 2
        assert result.succeeded == 3
        assert [k for _, k in list_task.executed] == ["a", "b", "c"]

        record = reload_job(job.job_id).to_dto()
        assert record.processed_count == 3
        assert record.total_count == 3
        assert record.progress_percent == 100
        assert record.progress.message == "Completed"
        assert record.result == {"done": 3}
        assert record.started_at is not None
        assert record.completed_at is not None

    def test_empty_job_completes(self, control, make_runner, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": []})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.COMPLETED
        assert result.batches == 0

    def test_phases_run_in_order(self, control, make_runner, phased_task, tenant_id):
        job = control.start_job(
            tenant_id,
            "fake_phased",
            {"phase_keys": {"first": ["a", "b", "c"], "second": ["x"]}},
        )

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.COMPLETED
        assert phased_task.executed == [
            ("first", "a"), ("first", "b"), ("first", "c"), ("second", "x"),
        ]
        assert result.phase == "second"

    def test_checkpoint_callback_after_every_batch(self, control, make_runner, tenant_id):
        calls = []
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d", "e"]})

        make_runner(on_checkpoint=lambda: calls.append(1)).run(job.job_id)

        assert len(calls) == 3

    def test_unknown_job_id(self, make_runner):
        with pytest.raises(JobNotFoundError):
            make_runner().run(uuid4())


class TestCheckpointResume:
    def test_max_batches_leaves_job_running(self, control, make_runner, tenant_id, reload_job):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d", "e"]})

        result = make_runner().run(job.job_id, max_batches=1)

        assert result.status == JobStatus.RUNNING
        record = reload_job(job.job_id)
        assert record.processed_count == 2
        assert record.cursor == 2
        assert record.checkpoint["phase"] == "only"
        assert record.checkpoint["last_key"] == "b"
        assert record.checkpoint["done"] == 2
        assert record.progress_percent == 40

    def test_next_invocation_continues_from_cursor(self, control, make_runner, list_task, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d", "e"]})
        runner = make_runner()

        runner.run(job.job_id, max_batches=1)
        result = runner.run(job.job_id)

        assert result.status == JobStatus.COMPLETED
        assert [k for _, k in list_task.executed] == ["a", "b", "c", "d", "e"]
        assert control.get_job(tenant_id, job.job_id).result == {"done": 5}


class TestItemFailures:
    def test_failed_and_raising_items_do_not_stop_the_batch(
        self, control, make_runner, tenant_id, reload_job,
    ):
        job = control.start_job(
            tenant_id, "fake_list",
            {"keys": ["a", "b", "c", "d"], "fail": ["b"], "raise": ["c"]},
        )

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.COMPLETED
        assert result.succeeded == 2
        assert result.failed == 2
        record = reload_job(job.job_id).to_dto()
        assert record.failed_count == 2
        assert [e.item_key for e in record.error_log] == ["b", "c"]
        assert record.error_log[0].message == "bad item b"
        assert record.error_log[1].message == "kaboom c"
        assert record.error_log[0].phase == "only"
        assert record.result == {"done": 2}

    def test_error_log_keeps_newest_entries(self, db_session, registry, clock, sleep, tenant_id):
        config = RuntimeConfig(
            jobs=JobPolicy(batch_size=10, max_error_log_entries=2),
            settlement=SettlementPolicy(),
        )
        control = JobControlService(db_session, registry, clock, config)
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c"], "fail": ["a", "b", "c"]})

        JobRunner(db_session, registry, clock, config, sleep=sleep).run(job.job_id)

        record = control.get_job(tenant_id, job.job_id)
        assert [e.item_key for e in record.error_log] == ["b", "c"]
        assert record.failed_count == 3


class TestFatalErrors:
    def test_setup_failure_fails_the_job(self, control, make_runner, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a"], "explode_on_count": True})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.FAILED
        assert result.error_message == "Setup failed: boom"

    def test_summary_failure_fails_with_counters_kept(self, control, make_runner, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b"], "fail_summary": True})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.FAILED
        record = control.get_job(tenant_id, job.job_id)
        assert record.error_message == "summary failed"
        assert record.processed_count == 2
        assert record.can_resume is True

    def test_unregistered_type_fails_the_job(self, control, make_runner, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})

        result = make_runner(task_registry=TaskRegistry()).run(job.job_id)

        assert result.status == JobStatus.FAILED
        assert "No task registered" in result.error_message


class TestRateLimits:
    def test_rate_limited_item_is_retried_while_throttled(
        self, control, make_runner, list_task, tenant_id, clock,
    ):
        list_task.rate_limits["a"] = 2
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c"]})
        before = clock.now()

        result = make_runner().run(job.job_id, max_batches=1)

        assert result.status == JobStatus.THROTTLED
        assert result.succeeded == 2
        # 2s then 4s of backoff, plus the widened inter-batch delay.
        assert clock.seconds_since(before) >= 6

        final = make_runner().run(job.job_id)
        assert final.status == JobStatus.COMPLETED
        assert [k for _, k in list_task.executed] == ["a", "b", "c"]

    def test_clean_batch_clears_throttle(self, control, make_runner, list_task, tenant_id):
        list_task.rate_limits["a"] = 1
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d"]})
        runner = make_runner()

        assert runner.run(job.job_id, max_batches=1).status == JobStatus.THROTTLED
        assert runner.run(job.job_id, max_batches=1).status == JobStatus.RUNNING

    def test_exhausted_retries_fail_the_job(self, control, make_runner, list_task, tenant_id, config):
        list_task.rate_limits["a"] = 100
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b"]})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.FAILED
        record = control.get_job(tenant_id, job.job_id)
        last = record.error_log[-1]
        assert last.item_key == "a"
        assert last.retryable is True
        assert f"after {config.jobs.max_transient_retries} attempts" in last.message
        assert list_task.rate_limits["a"] == 100 - config.jobs.max_transient_retries


class TestCooperativeSignals:
    def test_cancel_observed_at_batch_boundary(
        self, db_session, registry, clock, config, make_runner, list_task, tenant_id,
    ):
        verbs = JobControlService(db_session, registry, clock, config)
        job = verbs.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d", "e"]})

        result = make_runner(on_checkpoint=lambda: verbs.cancel(tenant_id, job.job_id)).run(job.job_id)

        assert result.status == JobStatus.CANCELLED
        assert result.batches == 1
        assert len(list_task.executed) == 2
        record = verbs.get_job(tenant_id, job.job_id)
        assert record.cancel_requested_at is not None
        assert record.completed_at is not None
        assert record.progress.message == "Cancelled"

    def test_pause_then_resume_replays_nothing(
        self, db_session, registry, clock, config, make_runner, list_task, tenant_id,
    ):
        verbs = JobControlService(db_session, registry, clock, config)
        job = verbs.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d", "e"]})
        paused = []

        def pause_once():
            if not paused:
                paused.append(verbs.pause(tenant_id, job.job_id))

        result = make_runner(on_checkpoint=pause_once).run(job.job_id)
        assert result.status == JobStatus.PAUSED
        assert verbs.get_job(tenant_id, job.job_id).processed_count == 2

        assert verbs.resume(tenant_id, job.job_id).status == JobStatus.RESUMING
        final = make_runner().run(job.job_id)

        assert final.status == JobStatus.COMPLETED
        assert [k for _, k in list_task.executed] == ["a", "b", "c", "d", "e"]
        assert verbs.get_job(tenant_id, job.job_id).result == {"done": 5}

    def test_pending_cancel_finishes_without_work(self, control, make_runner, list_task, tenant_id, set_status):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        set_status(job.job_id, "cancelling")

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.CANCELLED
        assert list_task.executed == []

    def test_terminal_job_is_left_alone(self, control, make_runner, tenant_id):
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        control.cancel(tenant_id, job.job_id)

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.CANCELLED
        assert result.batches == 0

    def test_invocation_ceiling_times_out(self, control, make_runner, list_task, tenant_id, config):
        def slow(ctx, key):
            ctx.clock.advance(config.jobs.timeout_seconds / 2 + 1)

        list_task.on_item = slow
        job = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c", "d"]})

        result = make_runner().run(job.job_id)

        assert result.status == JobStatus.TIMEOUT_CANCELLED
        assert len(list_task.executed) == 2
        record = control.get_job(tenant_id, job.job_id)
        assert "ceiling" in record.error_message
        assert record.error_log[-1].retryable is True
