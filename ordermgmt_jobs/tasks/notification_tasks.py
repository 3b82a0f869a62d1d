"""
Notification export job task.

The job carries the rows to announce (``rows``: one dict per product with
``sku``, ``supplier``, ``quantity``, ``unit_cost``, ``product_name``).  On
setup it writes a delivery plan: for every supplier, in name order, one
``supplier_header`` item followed by its ``product`` items; products without
a supplier go last under an ``Unassigned`` header.  Items are then delivered
in plan order through the injected ``NotificationSender``.  Items already
marked ``sent`` are skipped, so a resumed export never sends twice.

A failed send rolls its item back to ``pending``, so once an export has
completed every item not ``sent`` is a failed one.  ``retry_parameters``
builds a follow-up export (``retry_of_job_id``) whose plan is a copy of
those items, in their original order.

Rendering and the delivery channel are the sender's concern.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from ordermgmt_kernel.db.snapshot import to_json_safe
from ordermgmt_kernel.exceptions import InvalidRequestError
from ordermgmt_kernel.logging_config import get_logger
from ordermgmt_kernel.store import SqlRepository

from ordermgmt_jobs.domain.types import JobType
from ordermgmt_jobs.models.notification import NotificationPlanItemModel
from ordermgmt_jobs.tasks._params import coerce_uuid
from ordermgmt_jobs.tasks.base import BatchCursor, ItemOutcome, JobItem, TaskContext

logger = get_logger("jobs.tasks.notification")

UNASSIGNED = "Unassigned"
SUPPLIER_HEADER = "supplier_header"
PRODUCT = "product"


@dataclass(frozen=True)
class NotificationMessage:
    """One rendered-ready plan item handed to the sender."""

    tenant_id: UUID
    job_id: UUID
    sequence: int
    kind: str
    supplier_name: str
    channel: str
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationSender(Protocol):
    """Delivers one message.  Raises RateLimitedError to ask for a retry."""

    def send(self, message: NotificationMessage) -> None: ...


class LoggingNotificationSender:
    """Sender that records deliveries in the log.  Used when none is wired."""

    def send(self, message: NotificationMessage) -> None:
        logger.info(
            "notification_sent",
            extra={
                "job_id": str(message.job_id),
                "sequence": message.sequence,
                "kind": message.kind,
                "supplier": message.supplier_name,
                "channel": message.channel,
            },
        )


def _decimal(value: Any, name: str) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequestError(f"Row field '{name}' is not a number: {value!r}", field=name) from None


def build_plan(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order rows into header + products groups; suppliers sorted, unassigned last."""
    groups: dict[str, list[dict[str, Any]]] = {}
    unassigned: list[dict[str, Any]] = []
    for row in rows:
        supplier = (row.get("supplier") or "").strip()
        if supplier:
            groups.setdefault(supplier, []).append(row)
        else:
            unassigned.append(row)

    ordered = [(name, groups[name]) for name in sorted(groups, key=str.casefold)]
    if unassigned:
        ordered.append((UNASSIGNED, unassigned))

    plan: list[dict[str, Any]] = []
    for supplier, products in ordered:
        total_qty = sum(int(p.get("quantity") or 0) for p in products)
        total_cost = sum(
            (int(p.get("quantity") or 0) * _decimal(p.get("unit_cost"), "unit_cost") for p in products),
            Decimal("0"),
        )
        plan.append({
            "kind": SUPPLIER_HEADER,
            "supplier_name": supplier,
            "payload": {
                "supplier": supplier,
                "total_skus": len(products),
                "total_quantity": total_qty,
                "total_cost": str(total_cost.quantize(Decimal("0.01"))),
            },
        })
        for product in products:
            plan.append({
                "kind": PRODUCT,
                "supplier_name": supplier,
                "payload": to_json_safe(dict(product)),
            })
    return plan


def unsent_items(session: Session, tenant_id: UUID, job_id: UUID) -> list[NotificationPlanItemModel]:
    return SqlRepository(session, NotificationPlanItemModel).filter(
        tenant_id,
        NotificationPlanItemModel.job_id == job_id,
        NotificationPlanItemModel.status != "sent",
        order_by=(NotificationPlanItemModel.sequence,),
    )


class NotificationExportTask:
    """Fan a supplier-grouped product list out through a NotificationSender."""

    def __init__(self, sender: NotificationSender | None = None):
        self._sender = sender or LoggingNotificationSender()

    @property
    def job_type(self) -> str:
        return JobType.NOTIFICATION_EXPORT.value

    @property
    def description(self) -> str:
        return "Send supplier-grouped product notifications"

    @property
    def resource(self) -> str:
        return "notifications"

    @property
    def phases(self) -> tuple[str, ...]:
        return ("deliver",)

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        rows = parameters.get("rows")
        if not isinstance(rows, list) or not rows:
            raise InvalidRequestError("Parameter 'rows' must be a non-empty list", field="rows")
        cleaned = []
        for row in rows:
            if not isinstance(row, dict) or not str(row.get("sku") or "").strip():
                raise InvalidRequestError("Every row needs a 'sku'", field="rows")
            cleaned.append({
                "sku": str(row["sku"]).strip(),
                "product_name": row.get("product_name"),
                "supplier": row.get("supplier"),
                "quantity": int(row.get("quantity") or 0),
                "unit_cost": str(_decimal(row.get("unit_cost"), "unit_cost")),
            })
        validated = {"rows": cleaned, "channel": str(parameters.get("channel") or "default")}
        if parameters.get("retry_of_job_id"):
            validated["retry_of_job_id"] = str(coerce_uuid(parameters["retry_of_job_id"], "retry_of_job_id"))
        return validated

    def retry_parameters(
        self,
        session: Session,
        tenant_id: UUID,
        job_id: UUID,
        parameters: dict[str, Any],
    ) -> dict[str, Any]:
        if not unsent_items(session, tenant_id, job_id):
            raise InvalidRequestError(f"Job {job_id} has no failed notifications to retry")
        return {**parameters, "retry_of_job_id": str(job_id)}

    def _repo(self, ctx: TaskContext) -> SqlRepository[NotificationPlanItemModel]:
        return SqlRepository(ctx.session, NotificationPlanItemModel)

    def _ensure_plan(self, ctx: TaskContext) -> int:
        repo = self._repo(ctx)
        existing = repo.count(ctx.tenant_id, NotificationPlanItemModel.job_id == ctx.job_id)
        if existing:
            return existing
        source_id = ctx.parameters.get("retry_of_job_id")
        if source_id:
            plan = [
                {"kind": item.kind, "supplier_name": item.supplier_name, "payload": item.payload}
                for item in unsent_items(ctx.session, ctx.tenant_id, UUID(source_id))
            ]
        else:
            plan = build_plan(list(ctx.parameters.get("rows") or []))
        now = ctx.clock.now()
        repo.bulk_create(ctx.tenant_id, (
            {
                "job_id": ctx.job_id,
                "sequence": sequence,
                "kind": entry["kind"],
                "supplier_name": entry["supplier_name"],
                "payload": entry["payload"],
                "status": "pending",
                "created_at": now,
                "updated_at": now,
            }
            for sequence, entry in enumerate(plan)
        ))
        return len(plan)

    def count_items(self, ctx: TaskContext, phase: str) -> int:
        return self._ensure_plan(ctx)

    def fetch_batch(
        self, ctx: TaskContext, phase: str, cursor: BatchCursor, limit: int,
    ) -> tuple[JobItem, ...]:
        self._ensure_plan(ctx)
        items = self._repo(ctx).filter(
            ctx.tenant_id,
            NotificationPlanItemModel.job_id == ctx.job_id,
            NotificationPlanItemModel.sequence >= cursor.position,
            order_by=(NotificationPlanItemModel.sequence,),
            limit=limit,
        )
        return tuple(JobItem(str(item.sequence), {"plan_item_id": str(item.id)}) for item in items)

    def execute_item(self, ctx: TaskContext, phase: str, item: JobItem) -> ItemOutcome:
        plan_item = self._repo(ctx).get(ctx.tenant_id, UUID(item.payload["plan_item_id"]))
        if plan_item is None:
            return ItemOutcome.failed(f"Plan item {item.item_key} disappeared")
        if plan_item.status == "sent":
            return ItemOutcome.skipped("already sent")

        self._sender.send(NotificationMessage(
            tenant_id=ctx.tenant_id,
            job_id=ctx.job_id,
            sequence=plan_item.sequence,
            kind=plan_item.kind,
            supplier_name=plan_item.supplier_name or UNASSIGNED,
            channel=ctx.parameters.get("channel", "default"),
            payload=dict(plan_item.payload or {}),
        ))
        plan_item.status = "sent"
        plan_item.attempts += 1
        plan_item.sent_at = ctx.clock.now()
        ctx.session.flush()
        return ItemOutcome.succeeded()

    def summarize(self, ctx: TaskContext) -> dict[str, Any]:
        items = self._repo(ctx).filter(ctx.tenant_id, NotificationPlanItemModel.job_id == ctx.job_id)
        return {
            "planned": len(items),
            "sent": sum(1 for i in items if i.status == "sent"),
            "suppliers": sum(1 for i in items if i.kind == SUPPLIER_HEADER),
        }
