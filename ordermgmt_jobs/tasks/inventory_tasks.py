"""
Inventory job tasks: bulk SKU delete and stock reset.

Both hold the ``inventory`` resource, so at most one of them runs per tenant
at a time.

BulkDeleteSkusTask
    Phase ``delete_skus`` deletes the tenant's SKUs (all, or the ids given in
    ``sku_ids``) in keyset pages.  Phase ``cleanup_stock`` then removes the
    CurrentStock and StockMovement rows left pointing at SKUs that no longer
    exist.  A SKU already gone when its item runs counts as skipped.

StockResetTask
    One item per SKU: archive its live movements, zero its CurrentStock and
    write a ``reset_baseline`` movement tagged with the job id.  An item
    whose baseline from this job already exists is skipped, which is what
    makes a replayed batch harmless.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select, union, update

from ordermgmt_kernel.models.catalog import SkuModel
from ordermgmt_kernel.models.inventory import CurrentStockModel, StockMovementModel
from ordermgmt_kernel.store import (
    CurrentStockRepository,
    SkuRepository,
    StockMovementRepository,
)

from ordermgmt_jobs.domain.types import JobType
from ordermgmt_jobs.tasks._params import optional_uuid_list
from ordermgmt_jobs.tasks.base import BatchCursor, ItemOutcome, JobItem, TaskContext

RESET_BASELINE = "reset_baseline"


def _sku_criteria(ctx: TaskContext) -> list:
    sku_ids = ctx.parameters.get("sku_ids")
    if sku_ids is None:
        return []
    return [SkuModel.id.in_([UUID(s) for s in sku_ids])]


def _bump(ctx: TaskContext, key: str, amount: int = 1) -> None:
    ctx.state[key] = int(ctx.state.get(key, 0)) + amount


class BulkDeleteSkusTask:
    """Delete SKUs, then their orphaned stock rows."""

    @property
    def job_type(self) -> str:
        return JobType.BULK_DELETE_SKUS.value

    @property
    def description(self) -> str:
        return "Delete SKUs and their stock records"

    @property
    def resource(self) -> str:
        return "inventory"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("delete_skus", "cleanup_stock")

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        sku_ids = optional_uuid_list(parameters, "sku_ids")
        return {"sku_ids": sku_ids} if sku_ids is not None else {}

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        if phase == "delete_skus":
            return SkuRepository(ctx.session).count(ctx.tenant_id, *_sku_criteria(ctx))
        orphans = self._stock_sku_ids(ctx).subquery()
        return int(ctx.session.execute(select(func.count()).select_from(orphans)).scalar_one())

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        if phase == "delete_skus":
            skus = SkuRepository(ctx.session).page_after(
                ctx.tenant_id, cursor.last_key, limit, *_sku_criteria(ctx),
            )
            return tuple(JobItem(str(sku.id), {"sku_code": sku.sku_code}) for sku in skus)

        ids = self._stock_sku_ids(ctx).subquery()
        stmt = select(ids.c.sku_id).where(
            ids.c.sku_id.not_in(
                select(SkuModel.id).where(SkuModel.tenant_id == ctx.tenant_id)
            )
        )
        if cursor.last_key is not None:
            stmt = stmt.where(ids.c.sku_id > UUID(cursor.last_key))
        rows = ctx.session.execute(stmt.order_by(ids.c.sku_id).limit(limit)).scalars().all()
        return tuple(JobItem(str(sku_id)) for sku_id in rows)

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        sku_id = UUID(item.item_key)
        if phase == "delete_skus":
            repo = SkuRepository(ctx.session)
            sku = repo.get(ctx.tenant_id, sku_id)
            if sku is None:
                return ItemOutcome.skipped("already deleted")
            repo.delete(sku)
            _bump(ctx, "skus_deleted")
            return ItemOutcome.succeeded()

        stock = CurrentStockRepository(ctx.session).delete_where(
            ctx.tenant_id, CurrentStockModel.sku_id == sku_id,
        )
        movements = StockMovementRepository(ctx.session).delete_where(
            ctx.tenant_id, StockMovementModel.sku_id == sku_id,
        )
        if stock == 0 and movements == 0:
            return ItemOutcome.skipped("no stock rows")
        _bump(ctx, "stock_rows_deleted", stock)
        _bump(ctx, "movements_deleted", movements)
        return ItemOutcome.succeeded(stock_rows=stock, movements=movements)

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        return {
            "skus_deleted": int(ctx.state.get("skus_deleted", 0)),
            "stock_rows_deleted": int(ctx.state.get("stock_rows_deleted", 0)),
            "movements_deleted": int(ctx.state.get("movements_deleted", 0)),
        }

    @staticmethod
    def _stock_sku_ids(ctx: TaskContext):
        """Distinct SKU ids referenced by stock or movement rows."""
        stock = select(CurrentStockModel.sku_id.label("sku_id")).where(
            CurrentStockModel.tenant_id == ctx.tenant_id,
        )
        movements = select(StockMovementModel.sku_id.label("sku_id")).where(
            StockMovementModel.tenant_id == ctx.tenant_id,
        )
        sku_ids = ctx.parameters.get("sku_ids")
        if sku_ids is not None:
            wanted = [UUID(s) for s in sku_ids]
            stock = stock.where(CurrentStockModel.sku_id.in_(wanted))
            movements = movements.where(StockMovementModel.sku_id.in_(wanted))
        return union(stock, movements)


class StockResetTask:
    """Zero every SKU's stock behind a fresh baseline movement."""

    @property
    def job_type(self) -> str:
        return JobType.STOCK_RESET.value

    @property
    def description(self) -> str:
        return "Archive stock movements and reset on-hand quantities to zero"

    @property
    def resource(self) -> str:
        return "inventory"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("reset_stock",)

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        sku_ids = optional_uuid_list(parameters, "sku_ids")
        return {"sku_ids": sku_ids} if sku_ids is not None else {}

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        return SkuRepository(ctx.session).count(ctx.tenant_id, *_sku_criteria(ctx))

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        skus = SkuRepository(ctx.session).page_after(
            ctx.tenant_id, cursor.last_key, limit, *_sku_criteria(ctx),
        )
        return tuple(JobItem(str(sku.id)) for sku in skus)

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        sku_id = UUID(item.item_key)
        movements = StockMovementRepository(ctx.session)
        baseline = movements.filter(
            ctx.tenant_id,
            StockMovementModel.sku_id == sku_id,
            StockMovementModel.movement_type == RESET_BASELINE,
            StockMovementModel.job_id == ctx.job_id,
            limit=1,
        )
        if baseline:
            return ItemOutcome.skipped("baseline already written")

        archived = ctx.session.execute(
            update(StockMovementModel)
            .where(
                StockMovementModel.tenant_id == ctx.tenant_id,
                StockMovementModel.sku_id == sku_id,
                StockMovementModel.is_archived.is_(False),
            )
            .values(is_archived=True)
            .execution_options(synchronize_session="fetch")
        ).rowcount or 0

        now = ctx.clock.now()
        stock_repo = CurrentStockRepository(ctx.session)
        stock_rows = stock_repo.for_sku(ctx.tenant_id, sku_id)
        if stock_rows:
            for stock in stock_rows:
                stock_repo.update(stock, quantity_available=0, updated_at=now)
        else:
            stock_repo.create(
                ctx.tenant_id, sku_id=sku_id, quantity_available=0,
                created_at=now, updated_at=now,
            )

        movements.create(
            ctx.tenant_id,
            sku_id=sku_id,
            movement_type=RESET_BASELINE,
            quantity=0,
            reference=f"job:{ctx.job_id}",
            is_archived=False,
            job_id=ctx.job_id,
            created_at=now,
            updated_at=now,
            created_by_id=ctx.actor_id,
        )
        _bump(ctx, "skus_reset")
        _bump(ctx, "movements_archived", int(archived))
        return ItemOutcome.succeeded(movements_archived=int(archived))

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        return {
            "skus_reset": int(ctx.state.get("skus_reset", 0)),
            "movements_archived": int(ctx.state.get("movements_archived", 0)),
        }
