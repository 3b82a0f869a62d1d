"""
Settlement ORM models: imports, chunks and rows.

Contract:
    SettlementImportModel holds the Phase A output (typed parsed rows as
    JSON) and the Phase B cursor.  SettlementChunkModel records each Phase B
    slice, unique per (import_id, chunk_index).  SettlementRowModel is the
    materialized row and the only authoritative source of match state,
    unique per (import_id, row_index).

Architecture: ordermgmt_settlement/models.  Imports ordermgmt_kernel.db.base
only.  Rows are soft-deleted (``is_deleted``), never removed by this core.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ordermgmt_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from ordermgmt_settlement.domain.types import ParsedRow, SettlementImport


class SettlementImportModel(TenantScopedBase):
    """One uploaded settlement report and its processing state."""

    __tablename__ = "settlement_imports"

    __table_args__ = (
        Index("ix_settlement_imports_tenant_status", "tenant_id", "status"),
    )

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    month_key: Mapped[str | None] = mapped_column(String(7), nullable=True)
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    processed_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_count: Mapped[int] = mapped_column(default=0, nullable=False)
    cursor: Mapped[int] = mapped_column(default=0, nullable=False)
    chunk_size: Mapped[int] = mapped_column(default=400, nullable=False)
    matched_rows_count: Mapped[int] = mapped_column(default=0, nullable=False)
    unmatched_rows_count: Mapped[int] = mapped_column(default=0, nullable=False)
    totals_cached: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    parse_errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_parse_errors: Mapped[int] = mapped_column(default=0, nullable=False)
    parsed_rows: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    header_map: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self) -> SettlementImport:
        from ordermgmt_settlement.domain.types import ImportStatus, SettlementImport

        return SettlementImport(
            import_id=self.id,
            tenant_id=self.tenant_id,
            file_name=self.file_name,
            status=ImportStatus(self.status),
            month_key=self.month_key,
            total_rows=self.total_rows,
            processed_rows=self.processed_rows,
            rows_count=self.rows_count,
            cursor=self.cursor,
            chunk_size=self.chunk_size,
            matched_rows_count=self.matched_rows_count,
            unmatched_rows_count=self.unmatched_rows_count,
            total_parse_errors=self.total_parse_errors,
            totals_cached=dict(self.totals_cached) if self.totals_cached else None,
            error_message=self.error_message,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )

    def typed_rows(self) -> list[ParsedRow]:
        from ordermgmt_settlement.domain.types import ParsedRow

        return [ParsedRow.from_json(item) for item in (self.parsed_rows or [])]


class SettlementChunkModel(TenantScopedBase):
    """Record of one Phase B slice.  Re-processing updates it in place."""

    __tablename__ = "settlement_import_chunks"

    __table_args__ = (
        UniqueConstraint("import_id", "chunk_index", name="uq_settlement_chunk_index"),
    )

    import_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_imports.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(nullable=False)
    start_row: Mapped[int] = mapped_column(nullable=False)
    end_row: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    rows_created: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_skipped: Mapped[int] = mapped_column(default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


class SettlementRowModel(TenantScopedBase):
    """One materialized settlement transaction line."""

    __tablename__ = "settlement_rows"

    __table_args__ = (
        UniqueConstraint("import_id", "row_index", name="uq_settlement_row_index"),
        Index("ix_settlement_rows_tenant_order", "tenant_id", "normalized_order_id"),
        Index("ix_settlement_rows_tenant_status", "tenant_id", "match_status"),
    )

    import_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_imports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    row_index: Mapped[int] = mapped_column(nullable=False)
    source_line: Mapped[int] = mapped_column(default=0, nullable=False)

    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    normalized_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    settlement_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    quantity: Mapped[int] = mapped_column(default=0, nullable=False)
    signed_qty: Mapped[int] = mapped_column(default=0, nullable=False)
    is_refund: Mapped[bool] = mapped_column(default=False, nullable=False)

    product_sales: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    shipping_credits: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    promotional_rebates: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    selling_fees: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    fba_fees: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    other_transaction_fees: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    other: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    marketplace: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fulfillment: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_city: Mapped[str | None] = mapped_column(String(200), nullable=True)
    order_state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_postal: Mapped[str | None] = mapped_column(String(50), nullable=True)

    match_status: Mapped[str] = mapped_column(String(30), nullable=False, default="unmatched_order")
    matched_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    matched_sku_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    match_strategy: Mapped[str | None] = mapped_column(String(50), nullable=True)
    match_confidence: Mapped[str | None] = mapped_column(String(20), nullable=True)
    not_found_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(default=False, nullable=False)

    @classmethod
    def from_parsed(cls, tenant_id: UUID, import_id: UUID, row: ParsedRow) -> SettlementRowModel:
        from ordermgmt_engines.normalization import normalize_order_id

        return cls(
            tenant_id=tenant_id,
            import_id=import_id,
            row_index=row.row_index,
            source_line=row.source_line,
            order_id=row.order_id,
            normalized_order_id=normalize_order_id(row.order_id),
            sku=row.sku or None,
            description=row.description or None,
            settlement_id=row.settlement_id or None,
            transaction_type=row.transaction_type or None,
            posted_at=row.posted_at,
            quantity=row.quantity,
            signed_qty=row.signed_qty,
            is_refund=row.is_refund,
            product_sales=row.product_sales,
            shipping_credits=row.shipping_credits,
            promotional_rebates=row.promotional_rebates,
            selling_fees=row.selling_fees,
            fba_fees=row.fba_fees,
            other_transaction_fees=row.other_transaction_fees,
            other=row.other,
            total=row.total,
            marketplace=row.marketplace or None,
            fulfillment=row.fulfillment or None,
            order_city=row.order_city or None,
            order_state=row.order_state or None,
            order_postal=row.order_postal or None,
            match_status="unmatched_order",
            is_deleted=False,
        )

    def match_state(self) -> dict[str, Any]:
        """Current match fields, for change detection during rematch."""
        return {
            "match_status": self.match_status,
            "matched_order_id": self.matched_order_id,
            "matched_sku_id": self.matched_sku_id,
            "match_strategy": self.match_strategy,
            "match_confidence": self.match_confidence,
            "not_found_reason": self.not_found_reason,
        }
