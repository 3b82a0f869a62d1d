"""
Settlement import service: Phase A (parse) and Phase B (chunked process).

Contract:
    start_phase_a(tenant_id, file_name, content) -> PhaseAResult
        Detects the format, parses the report and persists the typed rows on
        a new SettlementImportModel in ``queued``.  No settlement rows yet.
    process_next_chunk(tenant_id, import_id) -> ChunkResult
        Materializes and matches the next ``chunk_size`` rows.  Idempotent:
        row indexes that already exist are skipped, and the chunk record is
        updated in place, so replaying a chunk after a crash writes nothing
        twice.  The last chunk finalises the import.
    run_to_completion(tenant_id, import_id) -> ChunkResult

Invariants:
    - (import_id, row_index) is unique; the DB constraint backs the skip.
    - The import fails with an INTEGRITY_VIOLATION message when fewer than
      ``total_rows * row_tolerance`` active rows materialized.
    - ``totals_cached`` comes from the shared KPI aggregation.

Architecture: ordermgmt_settlement/services.  Never commits; the caller (job
runner, HTTP request scope) owns the transaction.
"""

from __future__ import annotations

import math
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_config.schema import SettlementPolicy
from ordermgmt_engines.kpis import compute_settlement_kpis
from ordermgmt_engines.matching import MatchIndex, MatchStatus, match_row
from ordermgmt_engines.refs import RowRef
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.exceptions import IntegrityViolationError, SettlementParseError
from ordermgmt_kernel.logging_config import LogContext, get_logger

from ordermgmt_settlement.adapters import ReportAdapter, default_adapters, detect_format
from ordermgmt_settlement.domain.types import (
    ChunkResult,
    ChunkStatus,
    ImportStatus,
    PhaseAResult,
)
from ordermgmt_settlement.models.settlement import SettlementImportModel, SettlementRowModel
from ordermgmt_settlement.parser import parse_report
from ordermgmt_settlement.repositories import (
    SettlementChunkRepository,
    SettlementImportRepository,
    SettlementRowRepository,
    load_match_index,
)

logger = get_logger("settlement.import_service")


def apply_match(row: SettlementRowModel, index: MatchIndex) -> bool:
    """Match one row in place.  Returns True when the row is ``matched``."""
    result = match_row(RowRef(order_id=row.order_id, sku=row.sku), index)
    row.match_status = result.status.value
    row.matched_order_id = result.matched_order_id
    row.matched_sku_id = result.matched_sku_id
    row.match_strategy = result.strategy.value if result.strategy else None
    row.match_confidence = result.confidence.value if result.confidence else None
    row.not_found_reason = result.reason
    return result.status == MatchStatus.MATCHED


def finalize_counts(record: SettlementImportModel, rows: list[SettlementRowModel]) -> int:
    """
    Write rows_count and matched/unmatched counts.  Returns the active rows.

    ``rows_count`` is what should be active: every processed row less the
    ones soft-deleted through order deletion.  Rows lost between processing
    and finalisation still count, so the auditor sees them as missing.
    """
    active = [r for r in rows if not r.is_deleted]
    deleted = len(rows) - len(active)
    record.rows_count = max(record.processed_rows - deleted, 0)
    record.matched_rows_count = sum(
        1 for r in active if r.match_status == MatchStatus.MATCHED.value
    )
    record.unmatched_rows_count = len(active) - record.matched_rows_count
    return len(active)


class SettlementImportService:
    """Runs the two ingestion phases for one tenant at a time."""

    def __init__(
        self,
        session: Session,
        policy: SettlementPolicy | None = None,
        clock: Clock | None = None,
        adapters: dict[str, ReportAdapter] | None = None,
    ):
        self._session = session
        self._policy = policy or SettlementPolicy()
        self._clock = clock or SystemClock()
        self._adapters = adapters if adapters is not None else default_adapters()
        self._imports = SettlementImportRepository(session)
        self._chunks = SettlementChunkRepository(session)
        self._rows = SettlementRowRepository(session)

    # -------------------------------------------------------------------------
    # Phase A
    # -------------------------------------------------------------------------

    def start_phase_a(
        self,
        tenant_id: UUID,
        file_name: str,
        content: bytes,
        actor_id: UUID | None = None,
    ) -> PhaseAResult:
        """Parse a report and persist it as a queued import."""
        if not content or not content.strip():
            raise SettlementParseError(file_name, "File is empty")

        fmt = detect_format(file_name, content)
        adapter = self._adapters.get(fmt)
        if adapter is None:
            raise SettlementParseError(file_name, f"No adapter for format {fmt!r}")

        lines = adapter.read_lines(content)
        if not lines:
            raise SettlementParseError(file_name, "File contains no data rows")

        parsed = parse_report(lines, file_name, self._policy.header_scan_lines)
        now = self._clock.now()
        stored_errors = [e.to_json() for e in parsed.errors[: self._policy.max_stored_parse_errors]]

        record = self._imports.create(
            tenant_id,
            file_name=file_name,
            status=ImportStatus.QUEUED.value,
            month_key=parsed.month_key or now.strftime("%Y-%m"),
            total_rows=len(parsed.rows),
            processed_rows=0,
            rows_count=0,
            cursor=0,
            chunk_size=self._policy.chunk_size,
            parse_errors=stored_errors,
            total_parse_errors=len(parsed.errors),
            parsed_rows=[row.to_json() for row in parsed.rows],
            header_map=dict(parsed.column_map),
            started_at=now,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )

        logger.info(
            "settlement_phase_a_parsed",
            extra={
                "tenant_id": str(tenant_id),
                "import_id": str(record.id),
                "file_name": file_name,
                "format": fmt,
                "total_rows": record.total_rows,
                "parse_errors": record.total_parse_errors,
                "header_line": parsed.header_line,
            },
        )
        return PhaseAResult(
            import_id=record.id,
            total_rows=record.total_rows,
            chunk_size=record.chunk_size,
            parse_errors=parsed.errors[: self._policy.max_stored_parse_errors],
            total_parse_errors=len(parsed.errors),
            month_key=record.month_key,
        )

    # -------------------------------------------------------------------------
    # Phase B
    # -------------------------------------------------------------------------

    def chunk_count(self, tenant_id: UUID, import_id: UUID) -> int:
        record = self._imports.require(tenant_id, import_id)
        if record.chunk_size <= 0:
            return 0
        return math.ceil(record.total_rows / record.chunk_size)

    def process_next_chunk(self, tenant_id: UUID, import_id: UUID) -> ChunkResult:
        """Materialize, match and checkpoint the next slice of parsed rows."""
        record = self._imports.require(tenant_id, import_id)
        status = ImportStatus(record.status)
        if status.is_terminal:
            return self._result(record)

        with LogContext.bind(tenant_id=str(tenant_id), import_id=str(import_id)):
            if status == ImportStatus.QUEUED:
                record.status = ImportStatus.PROCESSING.value

            parsed_rows = record.typed_rows()
            start = record.cursor
            chunk_size = record.chunk_size or self._policy.chunk_size
            end = min(start + chunk_size, len(parsed_rows))
            chunk_index = start // chunk_size

            rows_created = rows_skipped = rows_matched = 0
            if start < end:
                chunk = self._chunks.find(tenant_id, import_id, chunk_index)
                if chunk is None:
                    chunk = self._chunks.create(
                        tenant_id,
                        import_id=import_id,
                        chunk_index=chunk_index,
                        start_row=start,
                        end_row=end,
                        status=ChunkStatus.PROCESSING.value,
                    )
                chunk.attempts += 1
                chunk.status = ChunkStatus.PROCESSING.value

                existing = self._rows.existing_indexes(tenant_id, import_id)
                index = load_match_index(
                    self._session, tenant_id, self._policy.partial_match_min_length,
                )
                new_rows: list[SettlementRowModel] = []
                for parsed in parsed_rows[start:end]:
                    if parsed.row_index in existing:
                        rows_skipped += 1
                        continue
                    row = SettlementRowModel.from_parsed(tenant_id, import_id, parsed)
                    if apply_match(row, index):
                        rows_matched += 1
                    new_rows.append(row)
                self._session.add_all(new_rows)
                rows_created = len(new_rows)

                chunk.rows_created = rows_created
                chunk.rows_skipped = rows_skipped
                chunk.status = ChunkStatus.COMPLETED.value
                chunk.error = None

            record.cursor = end
            record.processed_rows = end
            record.updated_at = self._clock.now()
            self._session.flush()

            logger.info(
                "settlement_chunk_processed",
                extra={
                    "chunk_index": chunk_index,
                    "start_row": start,
                    "end_row": end,
                    "rows_created": rows_created,
                    "rows_skipped": rows_skipped,
                    "rows_matched": rows_matched,
                },
            )

            if end >= len(parsed_rows):
                self._finalize(record)

        return self._result(
            record,
            chunk_index=chunk_index,
            rows_created=rows_created,
            rows_skipped=rows_skipped,
            rows_matched=rows_matched,
        )

    def run_to_completion(self, tenant_id: UUID, import_id: UUID) -> ChunkResult:
        """Process chunks until the import reaches a terminal status."""
        result = self.process_next_chunk(tenant_id, import_id)
        while not result.is_terminal:
            result = self.process_next_chunk(tenant_id, import_id)
        return result

    # -------------------------------------------------------------------------
    # Finalisation
    # -------------------------------------------------------------------------

    def _finalize(self, record: SettlementImportModel) -> None:
        tenant_id = record.tenant_id
        rows = self._rows.for_import(tenant_id, record.id)
        active_rows = finalize_counts(record, rows)

        try:
            self.check_row_integrity(record, active_rows)
        except IntegrityViolationError as exc:
            record.status = ImportStatus.FAILED.value
            record.error_message = f"{exc.code}: {exc}"
            record.completed_at = self._clock.now()
            self._session.flush()
            logger.warning(
                "settlement_import_integrity_failed",
                extra={
                    "expected": exc.expected,
                    "actual": exc.actual,
                    "tolerance": exc.tolerance,
                },
            )
            return

        index = load_match_index(self._session, tenant_id, self._policy.partial_match_min_length)
        kpis = compute_settlement_kpis(rows, index)
        record.totals_cached = kpis.to_dict()
        record.status = (
            ImportStatus.COMPLETED_WITH_ERRORS.value
            if record.total_parse_errors > 0
            else ImportStatus.COMPLETED.value
        )
        record.error_message = None
        record.completed_at = self._clock.now()
        self._session.flush()

        logger.info(
            "settlement_import_completed",
            extra={
                "status": record.status,
                "rows_count": record.rows_count,
                "matched_rows": record.matched_rows_count,
                "unmatched_rows": record.unmatched_rows_count,
                "total_revenue": str(kpis.total_revenue),
                "total_cogs": str(kpis.total_cogs),
            },
        )

    def check_row_integrity(self, record: SettlementImportModel, active_rows: int) -> None:
        """Raise IntegrityViolationError when too few rows are active."""
        tolerance = self._policy.row_tolerance
        threshold = record.total_rows * tolerance
        if active_rows < threshold:
            raise IntegrityViolationError(
                str(record.id), record.total_rows, active_rows, tolerance,
            )

    def _result(self, record: SettlementImportModel, **extra) -> ChunkResult:
        return ChunkResult(
            import_id=record.id,
            status=ImportStatus(record.status),
            processed_rows=record.processed_rows,
            total_rows=record.total_rows,
            cursor=record.cursor,
            error_message=record.error_message,
            **extra,
        )
