"""
Runtime policy schema (``ordermgmt_config.schema``).

Frozen dataclasses for every tunable the job engine and settlement pipeline
read.  Defaults mirror ``defaults.yaml``; the loader overlays YAML and
overrides on top and validates the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class JobPolicy:
    """Job runner and supervisor timing and batching policy."""

    batch_size: int = 50
    base_delay_ms: int = 500
    throttled_delay_ms: int = 2000
    guard_window_seconds: int = 30
    timeout_seconds: int = 300
    max_transient_retries: int = 5
    retry_base_delay_ms: int = 2000
    max_error_log_entries: int = 100
    list_limit: int = 50
    batches_per_invocation: int | None = None


@dataclass(frozen=True)
class SettlementPolicy:
    """Settlement ingestion, matching and audit policy."""

    chunk_size: int = 400
    header_scan_lines: int = 20
    max_stored_parse_errors: int = 100
    # Minimum share of declared rows that must materialize before an import
    # may complete.  Policy value; see DESIGN.md.
    row_tolerance: float = 0.95
    kpi_tolerance: Decimal = Decimal("0.01")
    partial_match_min_length: int = 8


@dataclass(frozen=True)
class RuntimeConfig:
    """Effective configuration for one process."""

    jobs: JobPolicy = field(default_factory=JobPolicy)
    settlement: SettlementPolicy = field(default_factory=SettlementPolicy)
    database_url: str = "sqlite:///ordermgmt.db"
    log_level: str = "INFO"
    supervisor_tick_seconds: int = 5
    checksum: str = ""
