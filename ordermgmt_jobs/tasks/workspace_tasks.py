"""
Workspace job tasks: backup, restore and clone.

All three hold the ``workspace`` resource and work one entity type per item,
in dependency order (``ENTITY_ORDER``).  Row payloads go through
``ordermgmt_kernel.db.snapshot`` so a backup taken on one backend restores
on another.

BackupTask (phase ``snapshot``)
    Writes one WorkspaceBackupModel per job.  Payload::

        {"manifest": {...}, "entities": {name: [row, ...]}, "warnings": [...]}

    Fails with EmptyBackupError when the workspace holds rows but the
    snapshot captured none.

RestoreTask (phases ``purge``, ``restore``)
    Purges the tenant's owned entities in reverse dependency order, then
    re-inserts them from a backup preserving ids.  ``completed_entities`` in
    the checkpoint lets a resumed job skip finished entity types.

CloneTask (phase ``clone``)
    Creates a new WorkspaceModel and copies the source tenant's entities
    under fresh ids.  ``id_map`` (old id -> new id) is checkpointed so that
    ``order_id`` and ``sku_id`` references are remapped across items and
    across resumes.
"""

from __future__ import annotations

import json
import re
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select

from ordermgmt_kernel.db.base import TenantScopedBase
from ordermgmt_kernel.db.snapshot import dict_to_values, row_to_dict
from ordermgmt_kernel.exceptions import EmptyBackupError, EntityNotFoundError
from ordermgmt_kernel.logging_config import get_logger
from ordermgmt_kernel.models.catalog import OrderLineModel, OrderModel, SkuModel
from ordermgmt_kernel.models.inventory import CurrentStockModel, StockMovementModel
from ordermgmt_kernel.models.workspace import WorkspaceBackupModel, WorkspaceModel
from ordermgmt_kernel.store import SqlRepository

from ordermgmt_jobs.domain.types import JobType
from ordermgmt_jobs.tasks._params import require_text, require_uuid
from ordermgmt_jobs.tasks.base import BatchCursor, ItemOutcome, JobItem, TaskContext

logger = get_logger("jobs.tasks.workspace")

BACKUP_FORMAT_VERSION = 1

# Parents before children.
ENTITY_ORDER: tuple[tuple[str, type[TenantScopedBase]], ...] = (
    ("skus", SkuModel),
    ("current_stock", CurrentStockModel),
    ("stock_movements", StockMovementModel),
    ("orders", OrderModel),
    ("order_lines", OrderLineModel),
)

ENTITY_MODELS = dict(ENTITY_ORDER)

# Foreign-key columns rewritten through the clone id map.
_REMAP_COLUMNS = ("sku_id", "order_id")


def _entity_batch(names: tuple[str, ...], cursor: BatchCursor, limit: int) -> tuple[JobItem, ...]:
    return tuple(JobItem(name) for name in names[cursor.position: cursor.position + limit])


def _tenant_rows(ctx: TaskContext, model: type[TenantScopedBase], tenant_id: UUID) -> list:
    return SqlRepository(ctx.session, model).filter(tenant_id)


def _live_row_count(ctx: TaskContext, tenant_id: UUID) -> int:
    total = 0
    for _, model in ENTITY_ORDER:
        total += int(ctx.session.execute(
            select(func.count()).select_from(model).where(model.tenant_id == tenant_id)
        ).scalar_one())
    return total


# =============================================================================
# Backup
# =============================================================================


class BackupTask:
    """Snapshot a workspace's owned entities into a stored backup."""

    @property
    def job_type(self) -> str:
        return JobType.BACKUP.value

    @property
    def description(self) -> str:
        return "Back up workspace data"

    @property
    def resource(self) -> str:
        return "workspace"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("snapshot",)

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        label = parameters.get("label")
        return {"label": str(label)} if label else {}

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        return len(ENTITY_ORDER)

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        return _entity_batch(tuple(ENTITY_MODELS), cursor, limit)

    def _backup(self, ctx: TaskContext) -> WorkspaceBackupModel:
        repo = SqlRepository(ctx.session, WorkspaceBackupModel)
        found = repo.filter(ctx.tenant_id, WorkspaceBackupModel.job_id == ctx.job_id, limit=1)
        if found:
            return found[0]
        now = ctx.clock.now()
        return repo.create(
            ctx.tenant_id,
            job_id=ctx.job_id,
            payload={
                "manifest": {
                    "format_version": BACKUP_FORMAT_VERSION,
                    "tenant_id": str(ctx.tenant_id),
                    "label": ctx.parameters.get("label"),
                    "entities": [name for name, _ in ENTITY_ORDER],
                    "created_at": now.isoformat(),
                },
                "entities": {},
                "warnings": [],
            },
            stats={},
            created_at=now,
            updated_at=now,
            created_by_id=ctx.actor_id,
        )

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        name = item.item_key
        backup = self._backup(ctx)
        payload = dict(backup.payload or {})
        entities = dict(payload.get("entities") or {})
        if name in entities:
            return ItemOutcome.skipped("entity already captured")

        rows = [row_to_dict(row) for row in _tenant_rows(ctx, ENTITY_MODELS[name], ctx.tenant_id)]
        entities[name] = rows
        warnings = list(payload.get("warnings") or [])
        if not rows:
            warnings.append(f"No {name} records found")
        payload["entities"] = entities
        payload["warnings"] = warnings
        backup.payload = payload
        backup.stats = {**(backup.stats or {}), name: len(rows)}
        ctx.session.flush()

        ctx.state["backup_id"] = str(backup.id)
        return ItemOutcome.succeeded(rows=len(rows))

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        backup = self._backup(ctx)
        stats = dict(backup.stats or {})
        captured = sum(stats.values())
        if captured == 0:
            live = _live_row_count(ctx, ctx.tenant_id)
            if live > 0:
                raise EmptyBackupError(str(ctx.tenant_id), live)

        backup.size_bytes = len(json.dumps(backup.payload, default=str).encode("utf-8"))
        backup.completed_at = ctx.clock.now()
        ctx.session.flush()
        logger.info(
            "workspace_backup_completed",
            extra={"backup_id": str(backup.id), "rows": captured, "size_bytes": backup.size_bytes},
        )
        return {
            "backup_id": str(backup.id),
            "stats": stats,
            "total_rows": captured,
            "size_bytes": backup.size_bytes,
            "warnings": list((backup.payload or {}).get("warnings") or []),
        }


# =============================================================================
# Restore
# =============================================================================


class RestoreTask:
    """Replace a workspace's owned entities with the content of a backup."""

    @property
    def job_type(self) -> str:
        return JobType.RESTORE.value

    @property
    def description(self) -> str:
        return "Restore workspace data from a backup"

    @property
    def resource(self) -> str:
        return "workspace"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("purge", "restore")

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        return {"backup_id": str(require_uuid(parameters, "backup_id"))}

    def _backup(self, ctx: TaskContext) -> WorkspaceBackupModel:
        backup_id = require_uuid(ctx.parameters, "backup_id")
        backup = SqlRepository(ctx.session, WorkspaceBackupModel).get(ctx.tenant_id, backup_id)
        if backup is None:
            raise EntityNotFoundError("WorkspaceBackup", str(backup_id))
        return backup

    def _names(self, phase: str) -> tuple[str, ...]:
        names = tuple(ENTITY_MODELS)
        return tuple(reversed(names)) if phase == "purge" else names

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        self._backup(ctx)
        return len(ENTITY_ORDER)

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        return _entity_batch(self._names(phase), cursor, limit)

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        name = item.item_key
        model = ENTITY_MODELS[name]
        completed = list(ctx.state.get("completed_entities") or [])

        if phase == "purge":
            removed = SqlRepository(ctx.session, model).delete_where(ctx.tenant_id)
            return ItemOutcome.succeeded(rows_removed=removed)

        if name in completed:
            return ItemOutcome.skipped("entity already restored")
        rows = ((self._backup(ctx).payload or {}).get("entities") or {}).get(name) or []
        restored = 0
        for data in rows:
            values = dict_to_values(model, data)
            if values.get("id") is not None and ctx.session.get(model, values["id"]) is not None:
                continue
            values["tenant_id"] = ctx.tenant_id
            ctx.session.add(model(**values))
            restored += 1
        ctx.session.flush()

        ctx.state["completed_entities"] = completed + [name]
        ctx.state["rows_restored"] = int(ctx.state.get("rows_restored", 0)) + restored
        return ItemOutcome.succeeded(rows_restored=restored)

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        return {
            "backup_id": ctx.parameters["backup_id"],
            "completed_entities": list(ctx.state.get("completed_entities") or []),
            "rows_restored": int(ctx.state.get("rows_restored", 0)),
        }


# =============================================================================
# Clone
# =============================================================================


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "workspace"


class CloneTask:
    """Copy a workspace's entities into a new workspace under fresh ids."""

    @property
    def job_type(self) -> str:
        return JobType.CLONE.value

    @property
    def description(self) -> str:
        return "Clone workspace data into a new workspace"

    @property
    def resource(self) -> str:
        return "workspace"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("clone",)

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        validated = {"target_name": require_text(parameters, "target_name")}
        if parameters.get("target_slug"):
            validated["target_slug"] = _slugify(str(parameters["target_slug"]))
        return validated

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        return len(ENTITY_ORDER)

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        return _entity_batch(tuple(ENTITY_MODELS), cursor, limit)

    def _target(self, ctx: TaskContext) -> WorkspaceModel:
        known = ctx.state.get("target_workspace_id")
        if known:
            target = ctx.session.get(WorkspaceModel, UUID(known))
            if target is not None:
                return target
        now = ctx.clock.now()
        slug = ctx.parameters.get("target_slug") or (
            f"{_slugify(ctx.parameters['target_name'])}-{str(ctx.job_id)[:8]}"
        )
        target = WorkspaceModel(
            name=ctx.parameters["target_name"],
            slug=slug,
            source_workspace_id=ctx.tenant_id,
            created_at=now,
            updated_at=now,
            created_by_id=ctx.actor_id,
        )
        ctx.session.add(target)
        ctx.session.flush()
        return target

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        name = item.item_key
        completed = list(ctx.state.get("completed_entities") or [])
        if name in completed:
            return ItemOutcome.skipped("entity already cloned")

        target = self._target(ctx)
        model = ENTITY_MODELS[name]
        id_map = dict(ctx.state.get("id_map") or {})
        copies = []
        for row in _tenant_rows(ctx, model, ctx.tenant_id):
            data = row_to_dict(row)
            new_id = str(uuid4())
            id_map[data["id"]] = new_id
            data["id"] = new_id
            for column in _REMAP_COLUMNS:
                if data.get(column) is not None:
                    data[column] = id_map.get(data[column], data[column])
            if "job_id" in data:
                data["job_id"] = None
            values = dict_to_values(model, data)
            values["tenant_id"] = target.id
            copies.append(model(**values))
        ctx.session.add_all(copies)
        ctx.session.flush()

        ctx.state["target_workspace_id"] = str(target.id)
        ctx.state["id_map"] = id_map
        ctx.state["completed_entities"] = completed + [name]
        counts = dict(ctx.state.get("entity_counts") or {})
        counts[name] = len(copies)
        ctx.state["entity_counts"] = counts
        return ItemOutcome.succeeded(rows=len(copies))

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        counts = dict(ctx.state.get("entity_counts") or {})
        target_id = ctx.state.get("target_workspace_id")
        if target_id is None:
            target_id = str(self._target(ctx).id)
        return {
            "target_workspace_id": target_id,
            "entity_counts": counts,
            "rows_cloned": sum(counts.values()),
        }
