"""
Pytest fixtures for the order-management test suite.

Provides:
- Structured logging configured once per session, plus a log capture helper
- A fresh in-memory SQLite database per test (shared StaticPool connection,
  so the supervisor's sessions and the test session see the same data)
- A DeterministicClock and a sleeper that advances it instead of blocking
- Small catalogue builders for SKUs, orders and stock
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from ordermgmt_config.schema import JobPolicy, RuntimeConfig, SettlementPolicy
from ordermgmt_jobs._orm_registry import import_all_orm_models
from ordermgmt_kernel.db.base import Base
from ordermgmt_kernel.db.engine import build_engine
from ordermgmt_kernel.domain.clock import DeterministicClock
from ordermgmt_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ordermgmt_kernel.models.catalog import OrderLineModel, OrderModel, SkuModel
from ordermgmt_kernel.models.inventory import CurrentStockModel, StockMovementModel


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ordermgmt logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, runner):
            runner.run(job_id)
            logs = captured_logs()
            assert any(r["message"] == "job_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ordermgmt")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    eng = build_engine("sqlite:///:memory:")
    import_all_orm_models()
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# Time and policy
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(
        fixed_time=datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sleep(clock):
    """Sleeper that moves the deterministic clock forward instead of blocking."""

    def _sleep(seconds: float) -> None:
        clock.advance(seconds)

    return _sleep


@pytest.fixture
def config():
    """Small batches and chunks so multi-batch paths run on tiny fixtures."""
    return RuntimeConfig(
        jobs=JobPolicy(batch_size=2, base_delay_ms=100, throttled_delay_ms=200),
        settlement=SettlementPolicy(chunk_size=2),
    )


@pytest.fixture
def tenant_id():
    return uuid4()


# =============================================================================
# Catalogue builders
# =============================================================================


@pytest.fixture
def make_sku(db_session, tenant_id):
    def _make(sku_code: str, cost_price=None, supplier_name=None, tenant=None) -> SkuModel:
        sku = SkuModel(
            tenant_id=tenant or tenant_id,
            sku_code=sku_code,
            product_name=f"Product {sku_code}",
            supplier_name=supplier_name,
            cost_price=Decimal(str(cost_price)) if cost_price is not None else None,
        )
        db_session.add(sku)
        db_session.flush()
        return sku

    return _make


@pytest.fixture
def make_order(db_session, tenant_id):
    def _make(
        amazon_order_id: str,
        total_cost="0",
        lines=(),
        is_deleted: bool = False,
        tenant=None,
    ) -> OrderModel:
        """``lines`` is a sequence of (sku, quantity, unit_cost) tuples."""
        owner = tenant or tenant_id
        order = OrderModel(
            tenant_id=owner,
            amazon_order_id=amazon_order_id,
            total_cost=Decimal(str(total_cost)),
            is_deleted=is_deleted,
        )
        db_session.add(order)
        db_session.flush()
        for sku, quantity, unit_cost in lines:
            db_session.add(OrderLineModel(
                tenant_id=owner,
                order_id=order.id,
                sku_id=sku.id if sku is not None else None,
                quantity=quantity,
                unit_cost=Decimal(str(unit_cost)) if unit_cost is not None else None,
            ))
        db_session.flush()
        return order

    return _make


@pytest.fixture
def make_stock(db_session, tenant_id):
    def _make(sku_id, quantity: int = 10, movements: int = 2, tenant=None) -> CurrentStockModel:
        owner = tenant or tenant_id
        stock = CurrentStockModel(tenant_id=owner, sku_id=sku_id, quantity_available=quantity)
        db_session.add(stock)
        for i in range(movements):
            db_session.add(StockMovementModel(
                tenant_id=owner,
                sku_id=sku_id,
                movement_type="receipt",
                quantity=quantity,
                reference=f"po-{i}",
            ))
        db_session.flush()
        return stock

    return _make
