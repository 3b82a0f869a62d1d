"""
Catalogue models: orders, order lines and SKUs.

Owned by the surrounding application.  The settlement pipeline reads them to
build match indices and compute COGS; bulk jobs delete or clone them.  The
only write this core performs on an order is the COGS sync of
``total_cost`` from its lines.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, UUIDString


class SkuModel(TenantScopedBase):
    """Stock keeping unit with its standard cost."""

    __tablename__ = "skus"

    __table_args__ = (
        Index("ix_skus_tenant_code", "tenant_id", "sku_code"),
    )

    sku_code: Mapped[str] = mapped_column(String(200), nullable=False)
    product_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cost_price: Mapped[Decimal | None] = mapped_column(nullable=True)


class OrderModel(TenantScopedBase):
    """Marketplace order.  ``total_cost`` is the order-level COGS when known."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("ix_orders_tenant_amazon_id", "tenant_id", "amazon_order_id"),
    )

    amazon_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_date: Mapped[datetime | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    net_revenue: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(default=False, nullable=False)


class OrderLineModel(TenantScopedBase):
    """One SKU line of an order."""

    __tablename__ = "order_lines"

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quantity: Mapped[int] = mapped_column(default=1, nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
