"""
Tests for JobSupervisor -- promotion per (tenant, resource) slot, chaining,
and the force-terminate / timeout sweeps.

The supervisor opens its own sessions, so each test commits its setup first
and re-reads records afterwards.
"""

from uuid import uuid4

import pytest

from ordermgmt_jobs.domain.types import JobStatus
from ordermgmt_jobs.orchestrator import JobOrchestrator


@pytest.fixture
def supervisor(db_session, session_factory, registry, clock, config, sleep):
    orchestrator = JobOrchestrator.from_session(
        db_session, clock=clock, config=config, task_registry=registry, sleep=sleep,
    )
    return orchestrator.create_supervisor(session_factory, tick_interval_seconds=0.01)


class TestPromotion:
    def test_one_job_per_slot(self, control, supervisor, db_session, tenant_id, clock, reload_job):
        first = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        clock.advance(1)
        second = control.start_job(tenant_id, "fake_other", {"keys": ["b"]})
        db_session.commit()

        report = supervisor.tick()

        assert report.promoted == (first.job_id,)
        assert reload_job(first.job_id).status == JobStatus.COMPLETED.value
        assert reload_job(second.job_id).status == JobStatus.QUEUED.value

    def test_separate_resources_run_in_the_same_pass(
        self, control, supervisor, db_session, tenant_id,
    ):
        a = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        b = control.start_job(tenant_id, "fake_alt", {"keys": ["b"]})
        db_session.commit()

        report = supervisor.tick()

        assert set(report.promoted) == {a.job_id, b.job_id}
        assert {r.status for r in report.runs} == {JobStatus.COMPLETED}

    def test_priority_beats_age(self, control, supervisor, db_session, tenant_id, clock):
        control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        clock.advance(1)
        urgent = control.start_job(tenant_id, "fake_other", {"keys": ["b"]}, priority=5)
        db_session.commit()

        assert supervisor.tick().promoted == (urgent.job_id,)

    def test_occupied_slot_blocks_promotion(
        self, control, supervisor, db_session, tenant_id, set_status, clock,
    ):
        busy = control.start_job(tenant_id, "fake_list", {"keys": []})
        set_status(busy.job_id, "cancelling", cancel_requested_at=clock.now())
        waiting = control.start_job(tenant_id, "fake_other", {"keys": ["b"]})
        db_session.commit()

        report = supervisor.tick()

        # The cancelling job is driven to cancelled; the slot frees next pass.
        assert report.promoted == ()
        assert [r.status for r in report.runs] == [JobStatus.CANCELLED]
        assert supervisor.tick().promoted == (waiting.job_id,)

    def test_paused_job_does_not_hold_the_slot(
        self, control, supervisor, db_session, tenant_id, set_status,
    ):
        paused = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        set_status(paused.job_id, "paused")
        waiting = control.start_job(tenant_id, "fake_other", {"keys": ["b"]})
        db_session.commit()

        assert supervisor.tick().promoted == (waiting.job_id,)

    def test_tenants_have_separate_slots(self, control, supervisor, db_session, tenant_id):
        a = control.start_job(tenant_id, "fake_list", {"keys": ["a"]})
        b = control.start_job(uuid4(), "fake_list", {"keys": ["b"]})
        db_session.commit()

        assert set(supervisor.tick().promoted) == {a.job_id, b.job_id}


class TestChaining:
    def test_run_until_idle_drains_the_queue(
        self, control, supervisor, db_session, tenant_id, clock, reload_job, list_task, other_task,
    ):
        first = control.start_job(tenant_id, "fake_list", {"keys": ["a", "b", "c"]})
        clock.advance(1)
        second = control.start_job(tenant_id, "fake_other", {"keys": ["x"]})
        db_session.commit()

        busy = supervisor.run_until_idle()

        assert busy == 2
        assert reload_job(first.job_id).status == JobStatus.COMPLETED.value
        assert reload_job(second.job_id).status == JobStatus.COMPLETED.value
        assert len(list_task.executed) == 3
        assert len(other_task.executed) == 1

    def test_idle_tick(self, supervisor):
        report = supervisor.tick()

        assert report.is_idle
        assert report.sweep.checked == 0


class TestSweep:
    def test_stale_cancel_is_force_terminated(
        self, control, supervisor, db_session, tenant_id, set_status, clock, reload_job,
    ):
        job = control.start_job(tenant_id, "fake_list")
        set_status(job.job_id, "cancelling", cancel_requested_at=clock.now())
        db_session.commit()
        clock.advance(31)

        report = supervisor.sweep()

        assert report.fixed == 1
        fix = report.fixes[0]
        assert fix.previous_status == JobStatus.CANCELLING
        assert fix.new_status == JobStatus.FORCE_TERMINATED
        record = reload_job(job.job_id)
        assert record.status == JobStatus.FORCE_TERMINATED.value
        assert record.can_resume is False
        assert "guard window" in record.error_message

    def test_recent_cancel_is_left_alone(
        self, control, supervisor, db_session, tenant_id, set_status, clock,
    ):
        job = control.start_job(tenant_id, "fake_list")
        set_status(job.job_id, "cancelling", cancel_requested_at=clock.now())
        db_session.commit()
        clock.advance(10)

        report = supervisor.sweep()

        assert report.checked == 1
        assert report.fixed == 0

    @pytest.mark.parametrize("status", ["running", "throttled", "resuming", "pausing"])
    def test_stale_heartbeat_is_timeout_cancelled(
        self, control, supervisor, db_session, tenant_id, set_status, clock, config, reload_job, status,
    ):
        job = control.start_job(tenant_id, "fake_list")
        set_status(job.job_id, status, last_heartbeat_at=clock.now())
        db_session.commit()
        clock.advance(config.jobs.timeout_seconds + 1)

        report = supervisor.sweep()

        assert [f.new_status for f in report.fixes] == [JobStatus.TIMEOUT_CANCELLED]
        assert reload_job(job.job_id).status == JobStatus.TIMEOUT_CANCELLED.value

    def test_missing_heartbeat_falls_back_to_created_at(
        self, control, supervisor, db_session, tenant_id, set_status, clock, config,
    ):
        job = control.start_job(tenant_id, "fake_list")
        set_status(job.job_id, "running")
        db_session.commit()
        clock.advance(config.jobs.timeout_seconds + 1)

        assert supervisor.sweep().fixed == 1

    @pytest.mark.parametrize("status", ["queued", "paused"])
    def test_waiting_jobs_are_not_swept(
        self, control, supervisor, db_session, tenant_id, set_status, clock, status,
    ):
        job = control.start_job(tenant_id, "fake_list")
        set_status(job.job_id, status)
        db_session.commit()
        clock.advance(10_000)

        assert supervisor.sweep().checked == 0


class TestBackgroundLoop:
    def test_start_and_stop(self, supervisor):
        supervisor.start()
        assert supervisor.is_running

        supervisor.stop(timeout=5)

        assert not supervisor.is_running
