"""
Tests for JobOrchestrator wiring and the default task registry.
"""

import pytest

from ordermgmt_jobs.domain.types import JobType
from ordermgmt_jobs.orchestrator import JobOrchestrator, default_task_registry
from ordermgmt_jobs.services.supervisor import JobSupervisor
from ordermgmt_kernel.exceptions import JobConflictError


class TestDefaultRegistry:
    def test_registers_every_builtin_type(self):
        registry = default_task_registry()

        assert registry.list_tasks() == tuple(sorted(t.value for t in JobType))

    @pytest.mark.parametrize("job_type,resource", [
        ("bulk_delete_skus", "inventory"),
        ("stock_reset", "inventory"),
        ("settlement_import", "settlement"),
        ("backup", "workspace"),
        ("restore", "workspace"),
        ("clone", "workspace"),
        ("notification_export", "notifications"),
    ])
    def test_resources(self, job_type, resource):
        assert default_task_registry().get(job_type).resource == resource

    def test_duplicate_registration_rejected(self):
        registry = default_task_registry()

        with pytest.raises(ValueError):
            registry.register(registry.get("backup"))


class TestOrchestrator:
    def test_services_share_clock_and_config(self, db_session, clock, config):
        jobs = JobOrchestrator.from_session(db_session, clock=clock, config=config)

        assert jobs.clock is clock
        assert jobs.config is config
        assert jobs.session is db_session
        assert "backup" in jobs.task_registry

    def test_admission_is_per_job_type(self, db_session, clock, config, tenant_id):
        control = JobOrchestrator.from_session(db_session, clock=clock, config=config).create_control_service()
        control.start_job(tenant_id, "bulk_delete_skus")
        control.start_job(tenant_id, "stock_reset")

        with pytest.raises(JobConflictError):
            control.start_job(tenant_id, "stock_reset")

    def test_create_supervisor(self, db_session, session_factory, clock, config):
        jobs = JobOrchestrator.from_session(db_session, clock=clock, config=config)

        assert isinstance(jobs.create_supervisor(session_factory), JobSupervisor)
