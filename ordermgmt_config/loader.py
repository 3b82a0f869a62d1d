"""
Configuration Loader (``ordermgmt_config.loader``).

Responsibility
--------------
Loads YAML policy files and parses them into the frozen dataclasses of
``ordermgmt_config.schema``.  The packaged ``defaults.yaml`` is always the
base layer; an optional file and an optional override mapping are merged on
top, key by key.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or out-of-range values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from ordermgmt_config.schema import JobPolicy, RuntimeConfig, SettlementPolicy
from ordermgmt_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_TOP_LEVEL_SCALARS = ("database_url", "log_level", "supervisor_tick_seconds")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML must be a mapping")
    return data


def merge_layers(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; overlay wins on scalar conflicts."""
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_layers(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(raw: Mapping[str, Any], name: str, cls: type) -> Any:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(name, "must be a mapping")
    allowed = {f.name for f in fields(cls)}
    unknown = set(section) - allowed
    if unknown:
        raise ConfigurationError(name, f"unknown keys {sorted(unknown)}")
    return cls(**section)


def parse_config(raw: Mapping[str, Any]) -> RuntimeConfig:
    """Build and validate a ``RuntimeConfig`` from a merged mapping."""
    unknown = set(raw) - set(_TOP_LEVEL_SCALARS) - {"jobs", "settlement"}
    if unknown:
        raise ConfigurationError("<root>", f"unknown keys {sorted(unknown)}")

    jobs = _section(raw, "jobs", JobPolicy)
    settlement_raw = dict(raw.get("settlement") or {})
    if "kpi_tolerance" in settlement_raw:
        try:
            settlement_raw["kpi_tolerance"] = Decimal(str(settlement_raw["kpi_tolerance"]))
        except InvalidOperation as exc:
            raise ConfigurationError("settlement.kpi_tolerance", "not a decimal") from exc
    settlement = _section({"settlement": settlement_raw}, "settlement", SettlementPolicy)

    _validate(jobs, settlement)

    scalars = {k: raw[k] for k in _TOP_LEVEL_SCALARS if k in raw}
    config = RuntimeConfig(jobs=jobs, settlement=settlement, **scalars)
    return replace(config, checksum=config_checksum(config))


def _validate(jobs: JobPolicy, settlement: SettlementPolicy) -> None:
    for name in ("batch_size", "guard_window_seconds", "timeout_seconds", "list_limit"):
        if getattr(jobs, name) <= 0:
            raise ConfigurationError(f"jobs.{name}", "must be positive")
    if jobs.max_transient_retries < 1:
        raise ConfigurationError("jobs.max_transient_retries", "must be at least 1")
    if jobs.throttled_delay_ms < jobs.base_delay_ms:
        raise ConfigurationError(
            "jobs.throttled_delay_ms", "must not be below base_delay_ms",
        )
    if settlement.chunk_size <= 0:
        raise ConfigurationError("settlement.chunk_size", "must be positive")
    if settlement.header_scan_lines <= 0:
        raise ConfigurationError("settlement.header_scan_lines", "must be positive")
    if not 0 < settlement.row_tolerance <= 1:
        raise ConfigurationError("settlement.row_tolerance", "must be in (0, 1]")
    if settlement.kpi_tolerance < 0:
        raise ConfigurationError("settlement.kpi_tolerance", "must not be negative")


def load_config(
    path: Path | str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RuntimeConfig:
    """
    Load the packaged defaults, then ``path`` (if any), then ``overrides``.

    Example:
        config = load_config(overrides={"settlement": {"chunk_size": 2}})
    """
    raw = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        raw = merge_layers(raw, load_yaml_file(Path(path)))
    if overrides:
        raw = merge_layers(raw, overrides)
    return parse_config(raw)


def config_checksum(config: RuntimeConfig) -> str:
    """Deterministic SHA-256 of an already-built ``RuntimeConfig``."""
    data = asdict(config)
    data.pop("checksum", None)
    return compute_checksum(data)
