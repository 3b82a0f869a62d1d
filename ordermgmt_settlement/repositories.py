"""
Settlement repositories over the generic tenant-scoped ``SqlRepository``.

Repositories flush, never commit.  Every query takes ``tenant_id``.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from ordermgmt_engines.matching import MatchIndex
from ordermgmt_engines.refs import OrderLineRef, OrderRef, SkuRef
from ordermgmt_kernel.exceptions import SettlementImportNotFoundError
from ordermgmt_kernel.store import (
    OrderLineRepository,
    OrderRepository,
    SkuRepository,
    SqlRepository,
)

from ordermgmt_settlement.domain.types import ImportStatus
from ordermgmt_settlement.models.settlement import (
    SettlementChunkModel,
    SettlementImportModel,
    SettlementRowModel,
)


class SettlementImportRepository(SqlRepository[SettlementImportModel]):
    model = SettlementImportModel

    def require(self, tenant_id: UUID, import_id: UUID) -> SettlementImportModel:
        record = self.get(tenant_id, import_id)
        if record is None:
            raise SettlementImportNotFoundError(str(import_id))
        return record

    def latest_completed(self, tenant_id: UUID) -> SettlementImportModel | None:
        completed = (ImportStatus.COMPLETED.value, ImportStatus.COMPLETED_WITH_ERRORS.value)
        found = self.filter(
            tenant_id,
            SettlementImportModel.status.in_(completed),
            order_by=(
                SettlementImportModel.completed_at.desc(),
                SettlementImportModel.created_at.desc(),
            ),
            limit=1,
        )
        return found[0] if found else None


class SettlementChunkRepository(SqlRepository[SettlementChunkModel]):
    model = SettlementChunkModel

    def find(self, tenant_id: UUID, import_id: UUID, chunk_index: int) -> SettlementChunkModel | None:
        found = self.filter(
            tenant_id,
            SettlementChunkModel.import_id == import_id,
            SettlementChunkModel.chunk_index == chunk_index,
        )
        return found[0] if found else None


class SettlementRowRepository(SqlRepository[SettlementRowModel]):
    model = SettlementRowModel

    def for_import(
        self, tenant_id: UUID, import_id: UUID, *, include_deleted: bool = True,
    ) -> list[SettlementRowModel]:
        criteria = [SettlementRowModel.import_id == import_id]
        if not include_deleted:
            criteria.append(SettlementRowModel.is_deleted.is_(False))
        return self.filter(tenant_id, *criteria, order_by=(SettlementRowModel.row_index,))

    def active(self, tenant_id: UUID, import_id: UUID | None = None) -> list[SettlementRowModel]:
        criteria = [SettlementRowModel.is_deleted.is_(False)]
        if import_id is not None:
            criteria.append(SettlementRowModel.import_id == import_id)
        return self.filter(
            tenant_id,
            *criteria,
            order_by=(SettlementRowModel.import_id, SettlementRowModel.row_index),
        )

    def existing_indexes(self, tenant_id: UUID, import_id: UUID) -> set[int]:
        stmt = select(SettlementRowModel.row_index).where(
            SettlementRowModel.tenant_id == tenant_id,
            SettlementRowModel.import_id == import_id,
        )
        return set(self.session.execute(stmt).scalars().all())


def load_match_index(session, tenant_id: UUID, min_partial_length: int = 8) -> MatchIndex:
    """Load the tenant's catalogue once and build the match index."""
    orders = OrderRepository(session).all_including_deleted(tenant_id)
    skus = SkuRepository(session).filter(tenant_id)
    lines = OrderLineRepository(session).filter(tenant_id)
    return MatchIndex.build(
        [
            OrderRef(
                id=o.id,
                amazon_order_id=o.amazon_order_id,
                total_cost=o.total_cost,
                is_deleted=o.is_deleted,
            )
            for o in orders
        ],
        [SkuRef(id=s.id, sku_code=s.sku_code, cost_price=s.cost_price) for s in skus],
        [
            OrderLineRef(
                order_id=line.order_id,
                sku_id=line.sku_id,
                quantity=line.quantity,
                unit_cost=line.unit_cost,
            )
            for line in lines
        ],
        min_partial_length=min_partial_length,
    )
