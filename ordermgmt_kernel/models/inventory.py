"""Inventory models mutated by the bulk-delete and stock-reset jobs."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, UUIDString


class CurrentStockModel(TenantScopedBase):
    """On-hand quantity per SKU."""

    __tablename__ = "current_stock"

    __table_args__ = (
        Index("ix_current_stock_tenant_sku", "tenant_id", "sku_id"),
    )

    sku_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity_available: Mapped[int] = mapped_column(default=0, nullable=False)


class StockMovementModel(TenantScopedBase):
    """Ledger of stock changes.  Archived movements are kept, not deleted."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("ix_stock_movements_tenant_sku", "tenant_id", "sku_id"),
    )

    sku_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(default=0, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_archived: Mapped[bool] = mapped_column(default=False, nullable=False)
    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
