# -*- coding: utf-8 -*-
"""Tests for monitoring data-quality assessment and estimation.

Covers:
- Weighted completeness with presence heuristics
- Consistency penalties for out-of-range values and bad timestamps
- Temporal coverage bands and measurement-frequency bonus
- Warning and invalid thresholds
- The single-number estimator

Author: GreenLang Platform Team
Status: Production Ready
"""

import pytest

from carbon_credits.config import CreditEngineConfig
from carbon_credits.data_quality import (
    assess_data_quality,
    completeness_score,
    consistency_score,
    estimate_data_quality,
    temporal_score,
)
from conftest import iso_period


def _measurements(count, value=10.0):
    return [
        {"value": value, "timestamp": "2024-03-01T00:00:00Z"}
        for _ in range(count)
    ]


class TestCompleteness:
    """Tests for completeness_score."""

    def test_presence_only_sources(self):
        """Two present non-mapping sources score 0.7."""
        monitoring = {"satellite_data": ["scene-1"], "ground_measurements": ["plot-1"]}
        assert completeness_score(monitoring) == 0.7

    def test_mapping_sources(self):
        """Mappings contribute their completeness, 0.8 when absent."""
        monitoring = {
            "satellite_data": {"completeness": 0.9},
            "ground_measurements": {},
        }
        assert completeness_score(monitoring) == pytest.approx(0.85)

    def test_completeness_is_clamped(self):
        """Out-of-range completeness values are clamped to [0, 1]."""
        assert completeness_score({"iot_sensor_data": {"completeness": 4}}) == 1.0

    def test_no_sources(self):
        """No known source scores 0.3."""
        assert completeness_score({"notes": "none"}) == 0.3


class TestConsistency:
    """Tests for consistency_score."""

    def test_clean_measurements(self):
        """In-range values with valid timestamps score 1.0."""
        assert consistency_score({"measurements": _measurements(5)}) == 1.0

    def test_penalties(self):
        """-0.1 per out-of-range value and -0.05 per bad timestamp."""
        monitoring = {"measurements": [
            {"value": -5.0},
            {"value": 20000.0},
            {"value": 50.0, "timestamp": "not-a-date"},
        ]}
        assert consistency_score(monitoring) == pytest.approx(0.75)

    def test_floor_at_zero(self):
        """The score never drops below zero."""
        assert consistency_score({"measurements": _measurements(20, value=-1.0)}) == 0.0


class TestTemporal:
    """Tests for temporal_score."""

    @pytest.mark.parametrize("days,expected", [
        (730, 1.0),
        (365, 0.8),
        (200, 0.6),
        (40, 0.4),
        (10, 0.2),
    ])
    def test_bands(self, days, expected):
        """Period length selects the coverage band."""
        assert temporal_score({"monitoring_period": iso_period(days)}) == expected

    def test_no_period(self):
        """No parsable period scores 0."""
        assert temporal_score({}) == 0.0

    @pytest.mark.parametrize("count,expected", [(5, 0.8), (6, 0.85), (12, 0.9)])
    def test_frequency_bonus(self, count, expected):
        """Six or twelve measurements add a bonus."""
        monitoring = {
            "monitoring_period": iso_period(365),
            "measurements": _measurements(count),
        }
        assert temporal_score(monitoring) == pytest.approx(expected)

    def test_capped_at_one(self):
        """The bonus cannot push the score above 1.0."""
        monitoring = {
            "monitoring_period": iso_period(800),
            "measurements": _measurements(12),
        }
        assert temporal_score(monitoring) == 1.0


class TestAssessDataQuality:
    """Tests for assess_data_quality."""

    def test_scenario_c(self):
        """A single presence-only source yields completeness 0.7."""
        results = assess_data_quality({
            "ground_measurements": ["plot-1"],
            "monitoring_period": iso_period(730),
        })
        assert results.completeness_score == 0.7
        assert results.consistency_score == 1.0
        assert results.temporal_score == 1.0
        assert results.quality_score == pytest.approx(0.9)
        assert results.is_valid is True
        assert results.warnings == []

    def test_poor_data(self):
        """Low sub-scores add warnings and a low mean is invalid."""
        results = assess_data_quality({"notes": "none"})
        codes = [w.code for w in results.warnings]
        assert "LOW_COMPLETENESS" in codes
        assert "LOW_TEMPORAL_COVERAGE" in codes
        assert "LOW_CONSISTENCY" not in codes
        assert results.is_valid is False
        assert [e.code for e in results.errors] == ["LOW_QUALITY"]

    def test_inconsistent_measurements_warn(self):
        """Consistency below the warning threshold is flagged."""
        results = assess_data_quality({
            "satellite_data": ["scene-1"],
            "monitoring_period": iso_period(730),
            "measurements": _measurements(4, value=-1.0),
        })
        assert [w.code for w in results.warnings] == ["LOW_CONSISTENCY"]

    def test_mean_at_invalid_threshold_is_valid_with_warnings(self):
        """A mean of exactly 0.5 is valid but carries warnings."""
        results = assess_data_quality({"monitoring_period": iso_period(10)})
        assert results.completeness_score == 0.3
        assert results.consistency_score == 1.0
        assert results.temporal_score == 0.2
        assert results.quality_score == 0.5
        assert results.is_valid is True
        assert results.errors == []
        assert [w.code for w in results.warnings] == [
            "LOW_COMPLETENESS",
            "LOW_TEMPORAL_COVERAGE",
        ]

    def test_mean_between_thresholds_is_valid_with_warnings(self):
        """A mean in [0.5, 0.7) is valid and flags the weak sub-score."""
        results = assess_data_quality({
            "satellite_data": ["scene-1"],
            "monitoring_period": iso_period(10),
        })
        assert results.quality_score == pytest.approx(0.6333)
        assert results.is_valid is True
        assert results.errors == []
        assert [w.code for w in results.warnings] == ["LOW_TEMPORAL_COVERAGE"]

    def test_thresholds_from_config(self):
        """Thresholds come from the supplied configuration."""
        config = CreditEngineConfig(
            data_quality_invalid_threshold=0.0,
            data_quality_warning_threshold=0.0,
        )
        results = assess_data_quality({}, config)
        assert results.is_valid is True
        assert results.warnings == []

    def test_never_raises_on_junk(self):
        """Malformed sections are scored, not raised."""
        results = assess_data_quality({
            "measurements": "lots",
            "monitoring_period": "last year",
        })
        assert results.temporal_score == 0.0
        assert results.consistency_score == 1.0


class TestEstimateDataQuality:
    """Tests for estimate_data_quality."""

    def test_no_sources(self):
        """Without known sources the estimate is 0.5."""
        assert estimate_data_quality({"forest_inventory": {}}) == 0.5

    def test_weighted_sources(self):
        """Sources are weighted and the result rounded to 2 places."""
        monitoring = {
            "satellite_data": {"completeness": 0.9},
            "iot_sensor_data": ["sensor-1"],
        }
        assert estimate_data_quality(monitoring) == 0.82

    def test_all_sources_complete(self):
        """All sources fully complete estimate 1.0."""
        monitoring = {
            source: {"completeness": 1.0}
            for source in (
                "satellite_data",
                "ground_measurements",
                "iot_sensor_data",
                "third_party_verification",
                "historical_baseline",
            )
        }
        assert estimate_data_quality(monitoring) == 1.0
