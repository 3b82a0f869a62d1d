"""
Settlement import job task.

Each item is one Phase B chunk of the import named by ``import_id``.  The
import record's own cursor decides which rows a chunk covers, so the job
cursor is informational; replaying an item re-enters
``process_next_chunk`` which skips rows already materialized.
"""

from __future__ import annotations

from typing import Any

from ordermgmt_kernel.exceptions import SettlementError
from ordermgmt_settlement.domain.types import ImportStatus
from ordermgmt_settlement.repositories import SettlementImportRepository
from ordermgmt_settlement.services.import_service import SettlementImportService

from ordermgmt_jobs.domain.types import JobType
from ordermgmt_jobs.tasks._params import require_uuid
from ordermgmt_jobs.tasks.base import BatchCursor, ItemOutcome, JobItem, TaskContext


class SettlementImportTask:
    """Drive Phase B of a parsed settlement import to completion."""

    @property
    def job_type(self) -> str:
        return JobType.SETTLEMENT_IMPORT.value

    @property
    def description(self) -> str:
        return "Materialize and match a parsed settlement report"

    @property
    def resource(self) -> str:
        return "settlement"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("process_chunks",)

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        return {"import_id": str(require_uuid(parameters, "import_id"))}

    def _service(self, ctx: TaskContext) -> SettlementImportService:
        return SettlementImportService(ctx.session, ctx.config.settlement, ctx.clock)

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        import_id = require_uuid(ctx.parameters, "import_id")
        record = SettlementImportRepository(ctx.session).require(ctx.tenant_id, import_id)
        if record.job_id is None:
            record.job_id = ctx.job_id
        return self._service(ctx).chunk_count(ctx.tenant_id, import_id)

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        import_id = require_uuid(ctx.parameters, "import_id")
        record = SettlementImportRepository(ctx.session).require(ctx.tenant_id, import_id)
        if ImportStatus(record.status).is_terminal or record.chunk_size <= 0:
            return ()
        # One chunk per batch: a chunk already holds chunk_size rows, so control
        # signals are seen between chunks.  An import with zero rows still
        # needs one pass to finalise.
        first = record.cursor // record.chunk_size
        return (JobItem(str(first), {"chunk_index": first}),)

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        import_id = require_uuid(ctx.parameters, "import_id")
        result = self._service(ctx).process_next_chunk(ctx.tenant_id, import_id)
        if result.chunk_index is None:
            return ItemOutcome.skipped("import already finalised")
        ctx.state["rows_created"] = int(ctx.state.get("rows_created", 0)) + result.rows_created
        ctx.state["rows_matched"] = int(ctx.state.get("rows_matched", 0)) + result.rows_matched
        if result.rows_created == 0 and result.rows_skipped > 0:
            return ItemOutcome.skipped("chunk already materialized")
        return ItemOutcome.succeeded(
            rows_created=result.rows_created,
            rows_skipped=result.rows_skipped,
            rows_matched=result.rows_matched,
        )

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        import_id = require_uuid(ctx.parameters, "import_id")
        record = SettlementImportRepository(ctx.session).require(ctx.tenant_id, import_id)
        if record.status == ImportStatus.FAILED.value:
            raise SettlementError(record.error_message or f"Import {import_id} failed")
        return {
            "import_id": str(import_id),
            "status": record.status,
            "rows_count": record.rows_count,
            "matched_rows_count": record.matched_rows_count,
            "unmatched_rows_count": record.unmatched_rows_count,
            "total_parse_errors": record.total_parse_errors,
        }
