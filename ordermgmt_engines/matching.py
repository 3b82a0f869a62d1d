"""
ordermgmt_engines.matching -- Settlement row to order/SKU matching engine.

Responsibility:
    Resolve one settlement row to an internal order and SKU using a fixed
    strategy order, and explain every miss.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``MatchIndex`` is built
    once per operation or chunk from frozen refs; ``match_row`` is then a
    dictionary lookup per row.

Strategy order:
    1. ``normalized_order_id`` (high): normalized report id equals a
       normalized ``amazon_order_id``.
    2. ``internal_id`` (high): normalized report id equals a normalized
       internal order id.
    3. ``partial_match`` (medium): exactly one order key contains, or is
       contained in, the report key, both at least ``min_partial_length``
       characters long.  Ambiguous containment is not a match.

Invariants enforced:
    - An order match is never discarded because the SKU failed to resolve:
      ``unmatched_sku`` results carry ``matched_order_id``.
    - Deleted orders never match; they only change the miss reason.
    - Determinism: with duplicate keys the first ref in input order wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from ordermgmt_engines.cogs import compute_order_cogs
from ordermgmt_engines.normalization import normalize_order_id, normalize_sku_code
from ordermgmt_engines.refs import OrderLineRef, OrderRef, RowRef, SkuRef
from ordermgmt_engines.tracer import traced_engine

DEFAULT_MIN_PARTIAL_LENGTH = 8


class MatchStatus(str, Enum):
    MATCHED = "matched"
    UNMATCHED_SKU = "unmatched_sku"
    UNMATCHED_ORDER = "unmatched_order"


class MatchStrategy(str, Enum):
    NORMALIZED_ORDER_ID = "normalized_order_id"
    INTERNAL_ID = "internal_id"
    PARTIAL_MATCH = "partial_match"


class MatchConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class NotFoundReason:
    """Human-readable miss reasons stored on the settlement row."""

    NO_MATCH_AFTER_NORMALIZATION = "Order not found after normalization"
    ORDER_DELETED = "Order found but marked as deleted"
    SKU_MISSING = "Order matched, SKU not found"
    ORDER_FOUND_COST_MISSING = "Order matched but COGS missing"


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    matched_order_id: UUID | None = None
    matched_sku_id: UUID | None = None
    strategy: MatchStrategy | None = None
    confidence: MatchConfidence | None = None
    reason: str | None = None

    @property
    def has_order(self) -> bool:
        return self.matched_order_id is not None


@dataclass(frozen=True)
class MatchIndex:
    """Precomputed lookup tables for one tenant's catalogue."""

    active_by_key: Mapping[str, OrderRef]
    deleted_by_key: Mapping[str, OrderRef]
    active_by_internal_key: Mapping[str, OrderRef]
    orders_by_id: Mapping[UUID, OrderRef]
    skus_by_code: Mapping[str, SkuRef]
    skus_by_key: Mapping[str, SkuRef]
    skus_by_id: Mapping[UUID, SkuRef]
    lines_by_order: Mapping[UUID, tuple[OrderLineRef, ...]]
    min_partial_length: int = DEFAULT_MIN_PARTIAL_LENGTH
    _long_active_keys: tuple[tuple[str, OrderRef], ...] = field(default=(), repr=False)
    _long_deleted_keys: tuple[tuple[str, OrderRef], ...] = field(default=(), repr=False)

    @classmethod
    @traced_engine("match_index", "1.0")
    def build(
        cls,
        orders: Iterable[OrderRef],
        skus: Iterable[SkuRef],
        order_lines: Iterable[OrderLineRef] = (),
        min_partial_length: int = DEFAULT_MIN_PARTIAL_LENGTH,
    ) -> MatchIndex:
        active: dict[str, OrderRef] = {}
        deleted: dict[str, OrderRef] = {}
        internal: dict[str, OrderRef] = {}
        by_id: dict[UUID, OrderRef] = {}
        for order in orders:
            by_id[order.id] = order
            key = normalize_order_id(order.amazon_order_id)
            if order.is_deleted:
                if key:
                    deleted.setdefault(key, order)
                continue
            if key:
                active.setdefault(key, order)
            internal.setdefault(normalize_order_id(str(order.id)), order)

        by_code: dict[str, SkuRef] = {}
        by_key: dict[str, SkuRef] = {}
        skus_by_id: dict[UUID, SkuRef] = {}
        for sku in skus:
            skus_by_id[sku.id] = sku
            by_code.setdefault(sku.sku_code, sku)
            key = normalize_sku_code(sku.sku_code)
            if key:
                by_key.setdefault(key, sku)

        lines: dict[UUID, list[OrderLineRef]] = {}
        for line in order_lines:
            lines.setdefault(line.order_id, []).append(line)

        return cls(
            active_by_key=active,
            deleted_by_key=deleted,
            active_by_internal_key=internal,
            orders_by_id=by_id,
            skus_by_code=by_code,
            skus_by_key=by_key,
            skus_by_id=skus_by_id,
            lines_by_order={k: tuple(v) for k, v in lines.items()},
            min_partial_length=min_partial_length,
            _long_active_keys=tuple(
                (k, o) for k, o in active.items() if len(k) >= min_partial_length
            ),
            _long_deleted_keys=tuple(
                (k, o) for k, o in deleted.items() if len(k) >= min_partial_length
            ),
        )

    def lines_for(self, order_id: UUID) -> tuple[OrderLineRef, ...]:
        return self.lines_by_order.get(order_id, ())

    def order(self, order_id: UUID) -> OrderRef | None:
        return self.orders_by_id.get(order_id)

    def partial(self, key: str, *, deleted: bool = False) -> OrderRef | None:
        """Unique containment match, or None when absent or ambiguous."""
        if len(key) < self.min_partial_length:
            return None
        pool = self._long_deleted_keys if deleted else self._long_active_keys
        found = {o.id: o for k, o in pool if key in k or k in key}
        if len(found) != 1:
            return None
        return next(iter(found.values()))

    def find_order(self, raw_order_id: str) -> tuple[OrderRef, MatchStrategy, MatchConfidence] | None:
        key = normalize_order_id(raw_order_id)
        if not key:
            return None
        order = self.active_by_key.get(key)
        if order is not None:
            return order, MatchStrategy.NORMALIZED_ORDER_ID, MatchConfidence.HIGH
        order = self.active_by_internal_key.get(key)
        if order is not None:
            return order, MatchStrategy.INTERNAL_ID, MatchConfidence.HIGH
        order = self.partial(key)
        if order is not None:
            return order, MatchStrategy.PARTIAL_MATCH, MatchConfidence.MEDIUM
        return None

    def is_deleted_order(self, raw_order_id: str) -> bool:
        key = normalize_order_id(raw_order_id)
        if not key:
            return False
        return key in self.deleted_by_key or self.partial(key, deleted=True) is not None

    def find_sku(self, sku_code: str | None) -> SkuRef | None:
        if not sku_code or not sku_code.strip():
            return None
        sku = self.skus_by_code.get(sku_code.strip())
        if sku is not None:
            return sku
        key = normalize_sku_code(sku_code)
        return self.skus_by_key.get(key) if key else None


def match_row(row: RowRef, index: MatchIndex) -> MatchResult:
    """Resolve one row.  Pure; the caller persists the result."""
    found = index.find_order(row.order_id)
    if found is None:
        reason = (
            NotFoundReason.ORDER_DELETED
            if index.is_deleted_order(row.order_id)
            else NotFoundReason.NO_MATCH_AFTER_NORMALIZATION
        )
        return MatchResult(status=MatchStatus.UNMATCHED_ORDER, reason=reason)

    order, strategy, confidence = found
    sku = index.find_sku(row.sku)
    if sku is None:
        return MatchResult(
            status=MatchStatus.UNMATCHED_SKU,
            matched_order_id=order.id,
            strategy=strategy,
            confidence=confidence,
            reason=NotFoundReason.SKU_MISSING,
        )

    cogs = compute_order_cogs(order, index.lines_for(order.id), index.skus_by_id)
    return MatchResult(
        status=MatchStatus.MATCHED,
        matched_order_id=order.id,
        matched_sku_id=sku.id,
        strategy=strategy,
        confidence=confidence,
        reason=NotFoundReason.ORDER_FOUND_COST_MISSING if cogs.is_missing else None,
    )
