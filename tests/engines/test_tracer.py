"""
Tests for the engine tracer -- ENGINE_TRACE records and input fingerprints.
"""

from ordermgmt_engines.kpis import compute_settlement_kpis
from ordermgmt_engines.matching import MatchIndex
from ordermgmt_engines.tracer import compute_input_fingerprint, traced_engine


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        a = compute_input_fingerprint(("params",), {"params": {"b": 1, "a": 2}})
        b = compute_input_fingerprint(("params",), {"params": {"a": 2, "b": 1}})

        assert a == b
        assert len(a) == 16

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

    def test_values_change_the_fingerprint(self):
        assert compute_input_fingerprint(("x",), {"x": 1}) != compute_input_fingerprint(("x",), {"x": 2})


class TestTracedEngine:
    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=21) == 42

        [trace] = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("value",), {"value": 21})
        assert trace["duration_ms"] >= 0

    def test_kpi_engine_is_traced(self, captured_logs):
        compute_settlement_kpis([], MatchIndex.build([], [], []))

        names = [r.get("engine_name") for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert "settlement_kpis" in names
