"""
Tests for the inventory job tasks -- bulk SKU delete and stock reset --
run end to end through JobControlService and JobRunner.

Uses in-memory SQLite for fast unit tests.
"""

from uuid import uuid4

import pytest

from ordermgmt_jobs.domain.types import JobStatus
from ordermgmt_jobs.models.job import JobModel
from ordermgmt_jobs.orchestrator import JobOrchestrator
from ordermgmt_jobs.tasks.inventory_tasks import RESET_BASELINE
from ordermgmt_kernel.exceptions import InvalidRequestError
from ordermgmt_kernel.models.inventory import StockMovementModel
from ordermgmt_kernel.store import (
    CurrentStockRepository,
    SkuRepository,
    StockMovementRepository,
)


@pytest.fixture
def jobs(db_session, clock, config, sleep):
    return JobOrchestrator.from_session(db_session, clock=clock, config=config, sleep=sleep)


def _run(jobs, tenant_id, job_type, parameters=None, max_batches=None):
    job = jobs.create_control_service().start_job(tenant_id, job_type, parameters)
    result = jobs.create_runner().run(job.job_id, max_batches=max_batches)
    return job.job_id, result


def _rewind(db_session, job_id):
    """Simulate a crash before the last checkpoint was committed."""
    job = db_session.get(JobModel, job_id)
    job.checkpoint = {**job.checkpoint, "position": 0, "last_key": None}
    db_session.flush()


class TestBulkDeleteSkus:
    def test_deletes_skus_then_orphaned_stock(
        self, jobs, db_session, tenant_id, make_sku, make_stock,
    ):
        skus = [make_sku(f"SKU-{i}") for i in range(3)]
        make_stock(skus[0].id)
        make_stock(skus[1].id)
        make_stock(uuid4(), movements=1)
        other_tenant = uuid4()
        survivor = make_sku("KEEP", tenant=other_tenant)
        make_stock(survivor.id, tenant=other_tenant)

        job_id, result = _run(jobs, tenant_id, "bulk_delete_skus")

        assert result.status == JobStatus.COMPLETED
        assert SkuRepository(db_session).count(tenant_id) == 0
        assert CurrentStockRepository(db_session).count(tenant_id) == 0
        assert StockMovementRepository(db_session).count(tenant_id) == 0
        assert SkuRepository(db_session).count(other_tenant) == 1
        assert CurrentStockRepository(db_session).count(other_tenant) == 1
        summary = jobs.create_control_service().get_job(tenant_id, job_id).result
        assert summary == {"skus_deleted": 3, "stock_rows_deleted": 3, "movements_deleted": 5}

    def test_only_named_skus(self, jobs, db_session, tenant_id, make_sku, make_stock):
        doomed = make_sku("GONE")
        kept = make_sku("KEPT")
        make_stock(doomed.id)
        make_stock(kept.id)

        _, result = _run(jobs, tenant_id, "bulk_delete_skus", {"sku_ids": [str(doomed.id)]})

        assert result.status == JobStatus.COMPLETED
        assert [s.sku_code for s in SkuRepository(db_session).filter(tenant_id)] == ["KEPT"]
        assert len(CurrentStockRepository(db_session).for_sku(tenant_id, kept.id)) == 1
        assert CurrentStockRepository(db_session).for_sku(tenant_id, doomed.id) == []

    @pytest.mark.parametrize("sku_ids", ["not-a-list", ["nope"]])
    def test_invalid_sku_ids_rejected(self, jobs, tenant_id, sku_ids):
        with pytest.raises(InvalidRequestError):
            jobs.create_control_service().start_job(tenant_id, "bulk_delete_skus", {"sku_ids": sku_ids})


class TestStockReset:
    def test_archives_movements_and_writes_baseline(
        self, jobs, db_session, tenant_id, make_sku, make_stock,
    ):
        stocked = make_sku("A")
        make_stock(stocked.id, quantity=10, movements=2)
        bare = make_sku("B")

        job_id, result = _run(jobs, tenant_id, "stock_reset")

        assert result.status == JobStatus.COMPLETED
        stock_repo = CurrentStockRepository(db_session)
        assert [s.quantity_available for s in stock_repo.for_sku(tenant_id, stocked.id)] == [0]
        assert [s.quantity_available for s in stock_repo.for_sku(tenant_id, bare.id)] == [0]

        movements = StockMovementRepository(db_session).for_sku(tenant_id, stocked.id)
        receipts = [m for m in movements if m.movement_type == "receipt"]
        baselines = [m for m in movements if m.movement_type == RESET_BASELINE]
        assert all(m.is_archived for m in receipts)
        assert len(baselines) == 1
        assert baselines[0].job_id == job_id
        assert baselines[0].is_archived is False

        summary = jobs.create_control_service().get_job(tenant_id, job_id).result
        assert summary == {"skus_reset": 2, "movements_archived": 2}

    def test_replayed_batch_writes_nothing_twice(
        self, jobs, db_session, tenant_id, make_sku, make_stock,
    ):
        for code in ("A", "B"):
            make_stock(make_sku(code).id)

        job_id, first = _run(jobs, tenant_id, "stock_reset", max_batches=1)
        assert first.status == JobStatus.RUNNING
        _rewind(db_session, job_id)

        result = jobs.create_runner().run(job_id)

        assert result.status == JobStatus.COMPLETED
        assert result.skipped == 2
        baselines = StockMovementRepository(db_session).filter(
            tenant_id, StockMovementModel.movement_type == RESET_BASELINE,
        )
        assert len(baselines) == 2
        assert jobs.create_control_service().get_job(tenant_id, job_id).result["skus_reset"] == 2
