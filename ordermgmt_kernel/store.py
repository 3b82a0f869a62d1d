"""
Tenant-scoped Entity Store.

Contract:
    ``SqlRepository[ModelT]`` is the one generic implementation of typed
    get / filter / count / create / bulk_create / update / delete over a
    tenant-owned ORM model.  Every method takes ``tenant_id`` explicitly;
    a record belonging to another tenant is indistinguishable from a missing
    one.  Concrete repositories subclass it once per entity and add named
    queries.

Architecture:
    Kernel.  Imports kernel models only.  Repositories never commit; they
    flush so generated ids are visible to the caller's transaction.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, Protocol, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.orm import Session

from ordermgmt_kernel.db.base import TenantScopedBase
from ordermgmt_kernel.models.catalog import OrderLineModel, OrderModel, SkuModel
from ordermgmt_kernel.models.inventory import CurrentStockModel, StockMovementModel

ModelT = TypeVar("ModelT", bound=TenantScopedBase)


class EntityStore(Protocol[ModelT]):
    """Typed CRUD surface the job tasks and settlement services depend on."""

    def get(self, tenant_id: UUID, entity_id: UUID) -> ModelT | None: ...

    def filter(self, tenant_id: UUID, *criteria: ColumnElement[bool], **kwargs: Any) -> list[ModelT]: ...

    def create(self, tenant_id: UUID, **values: Any) -> ModelT: ...

    def bulk_create(self, tenant_id: UUID, rows: Iterable[dict[str, Any]]) -> list[ModelT]: ...

    def update(self, entity: ModelT, **values: Any) -> ModelT: ...

    def delete(self, entity: ModelT) -> None: ...


class SqlRepository(Generic[ModelT]):
    """SQLAlchemy implementation of ``EntityStore`` for one model class."""

    model: type[ModelT]

    def __init__(self, session: Session, model: type[ModelT] | None = None):
        self._session = session
        if model is not None:
            self.model = model

    @property
    def session(self) -> Session:
        return self._session

    def get(self, tenant_id: UUID, entity_id: UUID) -> ModelT | None:
        entity = self._session.get(self.model, entity_id)
        if entity is None or entity.tenant_id != tenant_id:
            return None
        return entity

    def filter(
        self,
        tenant_id: UUID,
        *criteria: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: int | None = None,
    ) -> list[ModelT]:
        stmt = select(self.model).where(self.model.tenant_id == tenant_id, *criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        else:
            stmt = stmt.order_by(self.model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def count(self, tenant_id: UUID, *criteria: ColumnElement[bool]) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.tenant_id == tenant_id, *criteria)
        )
        return int(self._session.execute(stmt).scalar_one())

    def page_after(
        self,
        tenant_id: UUID,
        last_id: str | None,
        limit: int,
        *criteria: ColumnElement[bool],
    ) -> list[ModelT]:
        """Keyset page ordered by id.  Stable under concurrent deletes."""
        stmt = select(self.model).where(self.model.tenant_id == tenant_id, *criteria)
        if last_id is not None:
            stmt = stmt.where(self.model.id > UUID(last_id))
        stmt = stmt.order_by(self.model.id).limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def create(self, tenant_id: UUID, **values: Any) -> ModelT:
        entity = self.model(tenant_id=tenant_id, **values)
        self._session.add(entity)
        self._session.flush()
        return entity

    def bulk_create(self, tenant_id: UUID, rows: Iterable[dict[str, Any]]) -> list[ModelT]:
        entities = [self.model(**{**row, "tenant_id": tenant_id}) for row in rows]
        self._session.add_all(entities)
        self._session.flush()
        return entities

    def update(self, entity: ModelT, **values: Any) -> ModelT:
        for key, value in values.items():
            setattr(entity, key, value)
        self._session.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self._session.delete(entity)
        self._session.flush()

    def delete_where(self, tenant_id: UUID, *criteria: ColumnElement[bool]) -> int:
        result = self._session.execute(
            delete(self.model).where(self.model.tenant_id == tenant_id, *criteria)
        )
        self._session.flush()
        return int(result.rowcount or 0)


# =============================================================================
# Concrete repositories
# =============================================================================


class OrderRepository(SqlRepository[OrderModel]):
    model = OrderModel

    def active(self, tenant_id: UUID) -> list[OrderModel]:
        return self.filter(tenant_id, OrderModel.is_deleted.is_(False))

    def all_including_deleted(self, tenant_id: UUID) -> list[OrderModel]:
        return self.filter(tenant_id)

    def by_ids(self, tenant_id: UUID, order_ids: Iterable[UUID]) -> list[OrderModel]:
        ids = list(order_ids)
        if not ids:
            return []
        return self.filter(tenant_id, OrderModel.id.in_(ids))


class OrderLineRepository(SqlRepository[OrderLineModel]):
    model = OrderLineModel

    def for_orders(self, tenant_id: UUID, order_ids: Iterable[UUID]) -> list[OrderLineModel]:
        ids = list(order_ids)
        if not ids:
            return []
        return self.filter(tenant_id, OrderLineModel.order_id.in_(ids))


class SkuRepository(SqlRepository[SkuModel]):
    model = SkuModel


class CurrentStockRepository(SqlRepository[CurrentStockModel]):
    model = CurrentStockModel

    def for_sku(self, tenant_id: UUID, sku_id: UUID) -> list[CurrentStockModel]:
        return self.filter(tenant_id, CurrentStockModel.sku_id == sku_id)


class StockMovementRepository(SqlRepository[StockMovementModel]):
    model = StockMovementModel

    def for_sku(self, tenant_id: UUID, sku_id: UUID) -> list[StockMovementModel]:
        return self.filter(tenant_id, StockMovementModel.sku_id == sku_id)
