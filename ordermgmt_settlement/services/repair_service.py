"""
Settlement repair operations: rebuild, rematch, COGS recompute, order
soft-delete and restore.

Contract:
    rebuild_rows(tenant_id, import_id) -> RebuildResult
        Creates only the (import_id, row_index) rows that are missing.  A
        second run creates nothing.
    rematch(tenant_id, import_id=None) -> RematchResult
        Re-runs the matching engine over active rows and writes only rows
        whose match state changed.  An existing ``matched_order_id`` is kept
        while that order is still present and active.
    recompute_cogs(tenant_id, import_id=None) -> RecomputeCogsResult
        Classifies the COGS source of every eligible row, syncs
        ``Order.total_cost`` from costed lines where it is zero, and rewrites
        ``totals_cached`` of the affected completed imports.
    delete_orders / restore_orders(tenant_id, order_ids) -> OrderRowsResult

Invariants:
    - ``matched_order_id`` is never cleared by recompute.
    - Every aggregate written here comes from ``compute_settlement_kpis``.

Architecture: ordermgmt_settlement/services.  Never commits.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_config.schema import SettlementPolicy
from ordermgmt_engines.cogs import OrderCogs, compute_order_cogs, lines_cost_total
from ordermgmt_engines.kpis import compute_settlement_kpis
from ordermgmt_engines.matching import MatchIndex, MatchStatus, NotFoundReason, match_row
from ordermgmt_engines.normalization import normalize_order_id
from ordermgmt_engines.refs import RowRef
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.exceptions import NoActiveOrdersError, NoEligibleRowsError
from ordermgmt_kernel.logging_config import get_logger
from ordermgmt_kernel.store import OrderRepository

from ordermgmt_settlement.domain.types import (
    ImportStatus,
    OrderRowsResult,
    RebuildResult,
    RecomputeCogsResult,
    RematchResult,
)
from ordermgmt_settlement.models.settlement import SettlementImportModel, SettlementRowModel
from ordermgmt_settlement.repositories import (
    SettlementImportRepository,
    SettlementRowRepository,
    load_match_index,
)
from ordermgmt_settlement.services.import_service import apply_match, finalize_counts

logger = get_logger("settlement.repair_service")

_COGS_ELIGIBLE = frozenset({MatchStatus.MATCHED.value, MatchStatus.UNMATCHED_SKU.value})
_PROOF_SAMPLE_SIZE = 10


class SettlementRepairService:
    """Idempotent maintenance operations over materialized settlement rows."""

    def __init__(
        self,
        session: Session,
        policy: SettlementPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._policy = policy or SettlementPolicy()
        self._clock = clock or SystemClock()
        self._imports = SettlementImportRepository(session)
        self._rows = SettlementRowRepository(session)

    def _index(self, tenant_id: UUID) -> MatchIndex:
        return load_match_index(self._session, tenant_id, self._policy.partial_match_min_length)

    # -------------------------------------------------------------------------
    # Shared aggregate refresh
    # -------------------------------------------------------------------------

    def refresh_import_aggregates(
        self,
        record: SettlementImportModel,
        index: MatchIndex,
    ) -> bool:
        """
        Recompute counts and ``totals_cached`` of a completed import.

        Imports that are still processing or failed are left alone.  Returns
        True when the import was updated.
        """
        if not ImportStatus(record.status).is_completed:
            return False
        rows = self._rows.for_import(record.tenant_id, record.id)
        finalize_counts(record, rows)
        record.totals_cached = compute_settlement_kpis(rows, index).to_dict()
        record.updated_at = self._clock.now()
        return True

    def _refresh_imports(self, tenant_id: UUID, import_ids: Iterable[UUID], index: MatchIndex) -> int:
        updated = 0
        for import_id in sorted(set(import_ids), key=str):
            record = self._imports.get(tenant_id, import_id)
            if record is not None and self.refresh_import_aggregates(record, index):
                updated += 1
        self._session.flush()
        return updated

    # -------------------------------------------------------------------------
    # Rebuild
    # -------------------------------------------------------------------------

    def rebuild_rows(self, tenant_id: UUID, import_id: UUID) -> RebuildResult:
        """Materialize any parsed rows missing from the row table."""
        record = self._imports.require(tenant_id, import_id)
        parsed_rows = record.typed_rows()
        existing = self._rows.existing_indexes(tenant_id, import_id)
        index = self._index(tenant_id)

        created: list[SettlementRowModel] = []
        skipped = 0
        for parsed in parsed_rows:
            if parsed.row_index in existing:
                skipped += 1
                continue
            row = SettlementRowModel.from_parsed(tenant_id, import_id, parsed)
            apply_match(row, index)
            created.append(row)
        self._session.add_all(created)
        self._session.flush()

        if created:
            self.refresh_import_aggregates(record, index)
            self._session.flush()

        logger.info(
            "settlement_rows_rebuilt",
            extra={
                "tenant_id": str(tenant_id),
                "import_id": str(import_id),
                "rows_created": len(created),
                "rows_skipped": skipped,
            },
        )
        return RebuildResult(
            import_id=import_id,
            rows_created=len(created),
            rows_skipped=skipped,
            expected_rows=len(parsed_rows),
        )

    # -------------------------------------------------------------------------
    # Rematch
    # -------------------------------------------------------------------------

    def rematch(self, tenant_id: UUID, import_id: UUID | None = None) -> RematchResult:
        """Re-run matching over active rows; write only changed rows."""
        if import_id is not None:
            self._imports.require(tenant_id, import_id)
        rows = self._rows.active(tenant_id, import_id)
        index = self._index(tenant_id)

        newly_matched = already_matched = still_unmatched = rows_updated = 0
        strategies: Counter[str] = Counter()
        touched_imports: set[UUID] = set()

        for row in rows:
            before = row.match_state()
            was_matched = row.matched_order_id is not None
            result = match_row(RowRef(order_id=row.order_id, sku=row.sku), index)

            if result.has_order:
                apply_match(row, index)
                strategies[result.strategy.value] += 1
                if was_matched:
                    already_matched += 1
                else:
                    newly_matched += 1
            elif was_matched and self._order_still_active(row.matched_order_id, index):
                already_matched += 1
            else:
                row.match_status = MatchStatus.UNMATCHED_ORDER.value
                row.matched_order_id = None
                row.matched_sku_id = None
                row.match_strategy = None
                row.match_confidence = None
                row.not_found_reason = result.reason or NotFoundReason.NO_MATCH_AFTER_NORMALIZATION
                still_unmatched += 1

            if row.match_state() != before:
                rows_updated += 1
                touched_imports.add(row.import_id)

        self._session.flush()
        self._refresh_imports(tenant_id, touched_imports, index)

        logger.info(
            "settlement_rematched",
            extra={
                "tenant_id": str(tenant_id),
                "import_id": str(import_id) if import_id else None,
                "total_rows": len(rows),
                "newly_matched": newly_matched,
                "rows_updated": rows_updated,
            },
        )
        return RematchResult(
            total_rows=len(rows),
            newly_matched=newly_matched,
            already_matched=already_matched,
            still_unmatched=still_unmatched,
            rows_updated=rows_updated,
            match_strategies=dict(strategies),
        )

    @staticmethod
    def _order_still_active(order_id: UUID | None, index: MatchIndex) -> bool:
        order = index.order(order_id) if order_id is not None else None
        return order is not None and not order.is_deleted

    # -------------------------------------------------------------------------
    # COGS recompute
    # -------------------------------------------------------------------------

    def recompute_cogs(self, tenant_id: UUID, import_id: UUID | None = None) -> RecomputeCogsResult:
        """Classify, sync and re-aggregate COGS for matched settlement rows."""
        orders = OrderRepository(self._session)
        active_orders = orders.active(tenant_id)
        if not active_orders:
            raise NoActiveOrdersError(str(tenant_id))

        if import_id is not None:
            self._imports.require(tenant_id, import_id)
        rows = self._rows.active(tenant_id, import_id)
        eligible = [
            r for r in rows
            if r.matched_order_id is not None and r.match_status in _COGS_ELIGIBLE
        ]
        if not eligible:
            raise NoEligibleRowsError(str(tenant_id), str(import_id) if import_id else None)

        index = self._index(tenant_id)
        per_order: dict[UUID, OrderCogs] = {}
        by_source: Counter[str] = Counter()
        with_cogs = missing_cogs = skipped_deleted = 0

        for row in eligible:
            order = index.order(row.matched_order_id)
            if order is None or order.is_deleted:
                skipped_deleted += 1
                continue
            cogs = per_order.get(order.id)
            if cogs is None:
                cogs = compute_order_cogs(order, index.lines_for(order.id), index.skus_by_id)
                per_order[order.id] = cogs
            by_source[cogs.source.value] += 1
            if cogs.is_missing:
                missing_cogs += 1
            else:
                with_cogs += 1

        orders_synced = self._sync_order_costs(tenant_id, per_order.keys(), index)
        if orders_synced:
            index = self._index(tenant_id)

        imports_updated = self._refresh_imports(
            tenant_id, (r.import_id for r in rows), index,
        )

        proof = tuple(
            {
                "order_id": str(c.order_id),
                "amazon_order_id": index.order(c.order_id).amazon_order_id,
                "cogs": str(c.cogs) if c.cogs is not None else None,
                "source": c.source.value,
                "reason": c.reason.value if c.reason else None,
            }
            for c in list(per_order.values())[:_PROOF_SAMPLE_SIZE]
        )

        logger.info(
            "settlement_cogs_recomputed",
            extra={
                "tenant_id": str(tenant_id),
                "import_id": str(import_id) if import_id else None,
                "rows_with_cogs": with_cogs,
                "rows_missing_cogs": missing_cogs,
                "orders_synced": orders_synced,
                "imports_updated": imports_updated,
            },
        )
        return RecomputeCogsResult(
            total_rows_scanned=len(rows),
            matched_order_rows_scanned=len(eligible),
            rows_with_cogs=with_cogs,
            rows_missing_cogs=missing_cogs,
            rows_skipped_deleted_order=skipped_deleted,
            cogs_by_source=dict(by_source),
            orders_synced=orders_synced,
            imports_updated=imports_updated,
            proof=proof,
        )

    def _sync_order_costs(
        self,
        tenant_id: UUID,
        order_ids: Iterable[UUID],
        index: MatchIndex,
    ) -> int:
        """Copy costed line totals onto orders whose ``total_cost`` is zero."""
        synced = 0
        for order in OrderRepository(self._session).by_ids(tenant_id, order_ids):
            if order.is_deleted or (order.total_cost or Decimal("0")) > 0:
                continue
            total = lines_cost_total(index.lines_for(order.id), index.skus_by_id)
            if total > 0:
                order.total_cost = total
                order.updated_at = self._clock.now()
                synced += 1
        self._session.flush()
        return synced

    # -------------------------------------------------------------------------
    # Order soft-delete / restore
    # -------------------------------------------------------------------------

    def delete_orders(self, tenant_id: UUID, order_ids: Sequence[str]) -> OrderRowsResult:
        """Soft-delete the settlement rows of the given report order ids."""
        return self._set_deleted(tenant_id, order_ids, deleted=True)

    def restore_orders(self, tenant_id: UUID, order_ids: Sequence[str]) -> OrderRowsResult:
        """Undo ``delete_orders`` for the given report order ids."""
        return self._set_deleted(tenant_id, order_ids, deleted=False)

    def _set_deleted(self, tenant_id: UUID, order_ids: Sequence[str], *, deleted: bool) -> OrderRowsResult:
        keys = {normalize_order_id(o) for o in order_ids}
        keys.discard("")
        affected: list[SettlementRowModel] = []
        if keys:
            candidates = self._rows.filter(
                tenant_id, SettlementRowModel.normalized_order_id.in_(sorted(keys)),
            )
            for row in candidates:
                if row.is_deleted != deleted:
                    row.is_deleted = deleted
                    affected.append(row)
        self._session.flush()

        if affected:
            self._refresh_imports(tenant_id, (r.import_id for r in affected), self._index(tenant_id))

        logger.info(
            "settlement_orders_deleted" if deleted else "settlement_orders_restored",
            extra={
                "tenant_id": str(tenant_id),
                "order_ids": len(order_ids),
                "affected_settlement_rows": len(affected),
            },
        )
        return OrderRowsResult(
            order_ids=tuple(order_ids),
            affected_settlement_rows=len(affected),
        )
