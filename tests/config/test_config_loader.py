"""
Tests for ordermgmt_config -- YAML loading, layering, validation and the
deterministic configuration checksum.
"""

from decimal import Decimal

import pytest
import yaml

from ordermgmt_config import get_active_config, reset_active_config
from ordermgmt_config.loader import (
    compute_checksum,
    config_checksum,
    load_config,
    load_yaml_file,
    merge_layers,
)
from ordermgmt_config.schema import JobPolicy, RuntimeConfig, SettlementPolicy
from ordermgmt_kernel.exceptions import ConfigurationError


class TestDefaults:
    def test_packaged_defaults_match_dataclass_defaults(self):
        config = load_config()

        assert config.jobs == JobPolicy()
        assert config.settlement == SettlementPolicy()
        assert config.supervisor_tick_seconds == 5

    def test_documented_policy_values(self):
        config = load_config()

        assert config.jobs.guard_window_seconds == 30
        assert config.jobs.timeout_seconds == 300
        assert config.jobs.max_transient_retries == 5
        assert config.settlement.chunk_size == 400
        assert config.settlement.header_scan_lines == 20
        assert config.settlement.kpi_tolerance == Decimal("0.01")


class TestLayering:
    def test_overrides_win(self):
        config = load_config(overrides={"settlement": {"chunk_size": 2}, "log_level": "DEBUG"})

        assert config.settlement.chunk_size == 2
        assert config.settlement.header_scan_lines == 20
        assert config.log_level == "DEBUG"

    def test_yaml_file_layer(self, tmp_path):
        path = tmp_path / "site.yaml"
        path.write_text(yaml.safe_dump({"jobs": {"batch_size": 10}}))

        config = load_config(path)

        assert config.jobs.batch_size == 10
        assert config.jobs.timeout_seconds == 300

    def test_merge_layers_is_recursive(self):
        merged = merge_layers({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}

    def test_empty_yaml_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_missing_file_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"jobs": {"batch_size": 0}},
            {"jobs": {"max_transient_retries": 0}},
            {"jobs": {"base_delay_ms": 5000, "throttled_delay_ms": 100}},
            {"settlement": {"row_tolerance": 1.5}},
            {"settlement": {"kpi_tolerance": "-1"}},
            {"settlement": {"chunk_size": -4}},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            load_config(overrides=overrides)

    def test_unknown_section_key_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown keys"):
            load_config(overrides={"jobs": {"bogus": 1}})

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config(overrides={"extra": True})

    def test_non_mapping_document_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_yaml_file(path)


class TestChecksum:
    def test_checksum_is_deterministic(self):
        assert load_config().checksum == load_config().checksum

    def test_checksum_changes_with_policy(self):
        base = load_config()
        changed = load_config(overrides={"jobs": {"batch_size": 7}})
        assert base.checksum != changed.checksum

    def test_checksum_matches_rebuilt_config(self):
        config = load_config()
        assert config.checksum == config_checksum(RuntimeConfig(
            jobs=config.jobs,
            settlement=config.settlement,
            database_url=config.database_url,
            log_level=config.log_level,
            supervisor_tick_seconds=config.supervisor_tick_seconds,
        ))

    def test_compute_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestActiveConfig:
    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text(yaml.safe_dump({"supervisor_tick_seconds": 1}))
        monkeypatch.setenv("ORDERMGMT_CONFIG", str(path))
        reset_active_config()
        try:
            config = get_active_config()
            assert config.supervisor_tick_seconds == 1
            assert get_active_config() is config
        finally:
            reset_active_config()
