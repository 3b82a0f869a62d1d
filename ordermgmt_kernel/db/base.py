"""
Module: ordermgmt_kernel.db.base
Responsibility: Declarative base classes for every ORM model in the system.
    Provides the UUID primary key convention, the type annotation map, the
    TrackedBase audit mixin and the TenantScopedBase tenant column.
Architecture position: Kernel > DB.  Lowest-level import target.  This module
    MUST NOT import from models/, store.py, or any outer package.

Invariants enforced:
    - UUID primary keys: uuid4-generated, stored as String(36) so the same
      schema runs on PostgreSQL and SQLite.
    - Decimal precision: Decimal maps to Numeric(38, 9).  Money is never float.
    - Timezone-aware timestamps: UTCDateTime always hands back aware UTC
      datetimes, even on backends (SQLite) that drop the offset on storage.
    - Tenant isolation: every tenant-owned record carries an indexed,
      non-null tenant_id.  There is no ambient "current tenant".

Failure modes:
    - IntegrityError on a duplicate UUID (protected by the PK constraint).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(str(value))
        return None


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that is always timezone-aware UTC in Python.

    Contract:
        Aware values are converted to UTC before binding; naive values are
        assumed to already be UTC.  Values read back without an offset
        (SQLite) are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    Contract:
        created_at / updated_at are server-defaulted, but services set them
        from the injected Clock so ordering is deterministic under test.
        created_by_id is nullable: system jobs (sweeps, chained runs) act
        without a human actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


class TenantScopedBase(TrackedBase):
    """Abstract base for records owned by exactly one tenant (workspace)."""

    __abstract__ = True

    tenant_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
        index=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
