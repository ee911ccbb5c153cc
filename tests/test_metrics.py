# -*- coding: utf-8 -*-
"""Tests for credit engine Prometheus metrics."""

import pytest
from prometheus_client import REGISTRY

from carbon_credits.exceptions import UnsupportedMethodologyError
from carbon_credits.metrics import MetricsCollector


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    """Tests for MetricsCollector recording."""

    def test_calculation_counters(self, engine, soil_request):
        """A completed calculation increments counters and buffered tons."""
        labels = {"methodology": "VM0033", "status": "completed"}
        before = _sample("gl_cc_calculations_total", labels)
        tons_before = _sample("gl_cc_buffered_tons_total", {"methodology": "VM0033"})

        engine.calculate_credits(soil_request, "analyst-1")

        assert _sample("gl_cc_calculations_total", labels) == before + 1
        assert _sample(
            "gl_cc_buffered_tons_total", {"methodology": "VM0033"},
        ) == pytest.approx(tons_before + 10.8)

    def test_rejection_counters(self, engine, soil_request):
        """A rejected request records its failure kind."""
        labels = {"kind": "unsupported_methodology"}
        before = _sample("gl_cc_validation_failures_total", labels)
        request = soil_request.model_copy(update={"methodology_code": "VM0001"})

        with pytest.raises(UnsupportedMethodologyError):
            engine.calculate_credits(request, "analyst-1")

        assert _sample("gl_cc_validation_failures_total", labels) == before + 1

    def test_recalculation_outcome(self, engine, soil_request):
        """Supersession records a superseded outcome."""
        labels = {"outcome": "superseded"}
        before = _sample("gl_cc_recalculations_total", labels)

        original = engine.calculate_credits(soil_request, "analyst-1")
        engine.recalculate_credits(original.id, dict(soil_request.monitoring_data), "analyst-1")

        assert _sample("gl_cc_recalculations_total", labels) == before + 1

    def test_duration_observed(self, engine, forest_request):
        """Operation durations are observed per operation."""
        labels = {"operation": "validate_calculation"}
        before = _sample("gl_cc_operation_duration_seconds_count", labels)
        engine.validate_calculation(forest_request)
        assert _sample("gl_cc_operation_duration_seconds_count", labels) == before + 1

    def test_non_positive_tons_ignored(self):
        """Counters never receive non-positive increments."""
        before = _sample("gl_cc_buffered_tons_total", {"methodology": "VM0007"})
        metrics = MetricsCollector(enabled=True)
        metrics.record_buffered_tons("VM0007", 0.0)
        metrics.record_buffered_tons("VM0007", -3.0)
        assert _sample("gl_cc_buffered_tons_total", {"methodology": "VM0007"}) == before

    def test_disabled_is_noop(self):
        """Nothing is recorded by a disabled collector."""
        labels = {"outcome": "partial"}
        before = _sample("gl_cc_recalculations_total", labels)
        MetricsCollector(enabled=False).record_recalculation("partial")
        assert _sample("gl_cc_recalculations_total", labels) == before

    def test_explicit_flag_overrides_active_config(self, engine_config):
        """An explicit flag ignores enable_metrics of the active config."""
        engine_config.enable_metrics = False
        labels = {"outcome": "failed"}
        before = _sample("gl_cc_recalculations_total", labels)
        MetricsCollector(enabled=True).record_recalculation("failed")
        assert _sample("gl_cc_recalculations_total", labels) == before + 1

    def test_unset_flag_follows_active_config(self, engine_config):
        """Without a flag the collector reads the active config per call."""
        metrics = MetricsCollector()
        assert metrics.enabled is True
        engine_config.enable_metrics = False
        assert metrics.enabled is False

    def test_active_gauge_balanced(self, engine, forest_request):
        """The active gauge returns to its prior value after a call."""
        before = _sample("gl_cc_active_calculations")
        engine.calculate_credits(forest_request, "analyst-1")
        assert _sample("gl_cc_active_calculations") == before
