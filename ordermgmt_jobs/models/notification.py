"""Delivery plan rows for the notification export job."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, UUIDString


class NotificationPlanItemModel(TenantScopedBase):
    """One planned message: a supplier header or one of its products.

    ``sequence`` is the delivery order within the job and doubles as the
    runner's cursor position.
    """

    __tablename__ = "notification_plan_items"

    __table_args__ = (
        UniqueConstraint("job_id", "sequence", name="uq_notification_plan_sequence"),
    )

    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sku_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
