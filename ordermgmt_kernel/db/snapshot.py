"""
Row snapshots: ORM instance <-> JSON-safe dict.

Used by the backup, restore and clone jobs.  Values are converted by column
type so a snapshot taken on one backend restores on another:
UUIDString <-> str, Numeric <-> str (exact Decimal), UTCDateTime <-> ISO-8601.
Audit columns (created/updated at/by) are not carried over.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import Numeric

from ordermgmt_kernel.db.base import Base, UTCDateTime, UUIDString

ModelT = TypeVar("ModelT", bound=Base)

AUDIT_COLUMNS = frozenset({"created_at", "updated_at", "created_by_id", "updated_by_id"})


def to_json_safe(obj: Any) -> Any:
    """Convert values to JSON-serializable form (Decimal -> str, etc.)."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_safe(v) for v in obj]
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return obj


def row_to_dict(instance: Base) -> dict[str, Any]:
    """Snapshot one ORM instance's data columns."""
    data: dict[str, Any] = {}
    for column in instance.__table__.columns:
        if column.key in AUDIT_COLUMNS:
            continue
        data[column.key] = to_json_safe(getattr(instance, column.key))
    return data


def dict_to_values(model: type[ModelT], data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a snapshot dict back to constructor kwargs for ``model``.

    Unknown keys are dropped, so snapshots taken by an older schema restore
    into a newer one.
    """
    values: dict[str, Any] = {}
    for column in model.__table__.columns:
        if column.key in AUDIT_COLUMNS or column.key not in data:
            continue
        raw = data[column.key]
        if raw is None:
            values[column.key] = None
        elif isinstance(column.type, UUIDString):
            values[column.key] = raw if isinstance(raw, UUID) else UUID(str(raw))
        elif isinstance(column.type, UTCDateTime):
            values[column.key] = raw if isinstance(raw, datetime) else datetime.fromisoformat(raw)
        elif isinstance(column.type, Numeric):
            values[column.key] = Decimal(str(raw))
        else:
            values[column.key] = raw
    return values
