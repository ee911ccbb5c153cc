# -*- coding: utf-8 -*-
"""Tests for the credit calculation engine.

Covers:
- Methodology registry lookups
- calculate_credits persistence, snapshot and provenance
- Validation failures never reaching the ledger
- Recalculation with supersession and lifecycle guards
- Partial recalculation reporting
- validate_calculation reporting
- Calculation history ordering and limits

Author: GreenLang Platform Team
Status: Production Ready
"""

import pytest
from prometheus_client import REGISTRY

from carbon_credits.config import CreditEngineConfig, set_config
from carbon_credits.engine import SCORE_ESTIMATED, SCORE_SUPPLIED, CreditCalculationEngine
from carbon_credits.exceptions import (
    CreditNotFoundError,
    IllegalStateTransitionError,
    InvalidRequestError,
    LedgerError,
    MethodologyValidationError,
    PartialRecalculationError,
    UnsupportedMethodologyError,
)
from carbon_credits.ledger import InMemoryCreditLedger
from carbon_credits.methodologies import METHODOLOGIES
from carbon_credits.models import CreditRecord, CreditStatus
from conftest import soil_measurement


class FailingUpdateLedger(InMemoryCreditLedger):
    """Ledger whose update always fails."""

    def update(self, record: CreditRecord) -> CreditRecord:
        raise LedgerError("ledger unavailable", operation="update", credit_id=record.id)


def _advance(ledger, credit_id, *statuses):
    record = ledger.get_by_id(credit_id)
    for status in statuses:
        record.transition_to(status)
    return ledger.update(record)


def _calculations(methodology, status="completed"):
    return REGISTRY.get_sample_value(
        "gl_cc_calculations_total",
        {"methodology": methodology, "status": status},
    ) or 0.0


# ==============================================================================
# Registry
# ==============================================================================


class TestRegistry:
    """Tests for methodology lookup."""

    def test_supported_methodologies_sorted(self, engine):
        """All three methodologies are registered, sorted by code."""
        codes = [m.code for m in engine.get_supported_methodologies()]
        assert codes == ["VM0007", "VM0015", "VM0033"]

    def test_get_methodology(self, engine):
        """Lookup by code returns the matching implementation."""
        assert engine.get_methodology("VM0033").code == "VM0033"

    def test_unknown_methodology(self, engine):
        """Unknown codes list the supported ones."""
        with pytest.raises(UnsupportedMethodologyError) as exc_info:
            engine.get_methodology("VM9999")
        assert exc_info.value.supported == ["VM0007", "VM0015", "VM0033"]

    def test_registry_is_read_only(self, engine):
        """The registry mapping cannot be mutated."""
        with pytest.raises(TypeError):
            engine.methodologies["VM0001"] = engine.get_methodology("VM0007")

    def test_registry_is_shared(self, ledger, engine):
        """Every engine and the validation gates use the one registry."""
        other = CreditCalculationEngine(ledger)
        assert engine.methodologies is METHODOLOGIES
        assert other.methodologies is METHODOLOGIES
        for code in ("VM0007", "VM0015", "VM0033"):
            assert engine.get_methodology(code) is METHODOLOGIES[code]


# ==============================================================================
# calculate_credits
# ==============================================================================


class TestCalculateCredits:
    """Tests for calculate_credits."""

    def test_persists_calculated_record(self, engine, ledger, forest_request):
        """A successful calculation writes one record in status calculated."""
        record = engine.calculate_credits(forest_request, "analyst-1")

        assert len(ledger) == 1
        assert record.status == CreditStatus.CALCULATED
        assert record.id.startswith("cc_")
        assert record.created_by == "analyst-1"
        assert record.supersedes_id is None
        assert record.calculated_tons == pytest.approx(2470.0)
        assert record.buffered_tons == pytest.approx(2223.0)
        assert record.data_quality_score == 0.95
        assert len(record.provenance_hash) == 64
        assert [s.step_number for s in record.calculation_steps] == [1, 2, 3, 4]

        stored = ledger.get_by_id(record.id)
        assert stored.buffered_tons == record.buffered_tons

    def test_record_period_and_vintage(self, engine, forest_request):
        """Period and vintage are copied from the request."""
        record = engine.calculate_credits(forest_request, "analyst-1")
        assert record.vintage_year == 2024
        assert record.calculation_period_start == forest_request.calculation_period.start
        assert record.calculation_period_end == forest_request.calculation_period.end

    def test_input_snapshot(self, engine, forest_request):
        """The record keeps a snapshot of inputs and derived values."""
        record = engine.calculate_credits(forest_request, "analyst-1")
        snapshot = record.calculation_inputs

        assert snapshot["monitoring_data"] == forest_request.monitoring_data
        assert snapshot["baseline_data"] == forest_request.baseline_data
        assert snapshot["data_quality_score_source"] == SCORE_SUPPLIED
        assert snapshot["buffer_rate"] == 0.10
        assert snapshot["uncertainty_buffer"] == pytest.approx(247.0)
        assert snapshot["derived"]["leakage"] == pytest.approx(130.0)
        assert snapshot["metadata"]["methodology_version"] == "1.2"
        assert record.baseline_scenario == forest_request.baseline_data

    def test_snapshot_isolated_from_caller(self, engine, forest_request):
        """Mutating the caller's document does not change the stored record."""
        record = engine.calculate_credits(forest_request, "analyst-1")
        forest_request.monitoring_data["forest_inventory"]["strata"][0]["area"] = 1.0

        stored = engine.get_calculation_history("proj-forest-001")[0]
        strata = stored.calculation_inputs["monitoring_data"]["forest_inventory"]["strata"]
        assert strata[0]["area"] == 100.0
        assert stored.id == record.id

    def test_estimated_score(self, engine, grassland_request):
        """Absent data_quality_score is estimated from the monitoring data."""
        request = grassland_request.model_copy(update={"data_quality_score": None})
        record = engine.calculate_credits(request, "analyst-1")

        # No data sources or measurements: base score only.
        assert record.data_quality_score == 0.5
        assert record.calculation_inputs["data_quality_score_source"] == SCORE_ESTIMATED
        assert record.calculation_inputs["buffer_rate"] == 0.25

    def test_provenance_entries(self, engine, provenance, forest_request):
        """Calculation and credit creation are chained in provenance."""
        record = engine.calculate_credits(forest_request, "analyst-1")

        entries = [e for e in provenance.get_entries() if e.entity_id == record.id]
        assert [(e.entity_type, e.action) for e in entries] == [
            ("calculation", "calculate"),
            ("credit", "create"),
        ]
        assert provenance.verify_chain() is True

    def test_invalid_request_writes_nothing(self, engine, ledger, forest_request):
        """Structural failures precede any ledger write."""
        request = forest_request.model_copy(update={"project_id": ""})
        with pytest.raises(InvalidRequestError) as exc_info:
            engine.calculate_credits(request, "analyst-1")
        assert exc_info.value.field == "project_id"
        assert len(ledger) == 0

    def test_unsupported_methodology_writes_nothing(self, engine, ledger, forest_request):
        """An unknown code fails before any ledger write."""
        request = forest_request.model_copy(update={"methodology_code": "VM9999"})
        with pytest.raises(UnsupportedMethodologyError):
            engine.calculate_credits(request, "analyst-1")
        assert len(ledger) == 0

    def test_short_period_writes_nothing(self, engine, ledger, soil_request):
        """A too-short monitoring period fails before any ledger write."""
        monitoring = dict(
            soil_request.monitoring_data,
            monitoring_period={"start": "2024-01-01T00:00:00Z", "end": "2024-12-31T00:00:00Z"},
        )
        request = soil_request.model_copy(update={"monitoring_data": monitoring})
        with pytest.raises(MethodologyValidationError) as exc_info:
            engine.calculate_credits(request, "analyst-1")
        assert exc_info.value.methodology_code == "VM0033"
        assert len(ledger) == 0

    def test_no_provenance_when_disabled(self, ledger, engine_config, forest_request):
        """Disabling provenance leaves the engine without a tracker."""
        engine_config.enable_provenance = False
        engine = CreditCalculationEngine(ledger, config=engine_config)
        assert engine.provenance is None
        engine.calculate_credits(forest_request, "analyst-1")
        assert len(ledger) == 1

    def test_injected_config_drives_rounding_and_metrics(self, ledger, soil_request):
        """The engine's own config wins over the active global one."""
        config = CreditEngineConfig(decimal_precision=0, enable_metrics=False)
        engine = CreditCalculationEngine(ledger, config=config)
        before = _calculations("VM0033")

        record = engine.calculate_credits(soil_request, "analyst-1")

        assert record.calculation_inputs["uncertainty_buffer"] == 7.0
        assert record.buffered_tons == 11.0
        assert _calculations("VM0033") == before

    def test_injected_config_enables_metrics(self, ledger, soil_request):
        """Metrics follow the injected config when the global one disables them."""
        set_config(CreditEngineConfig(enable_metrics=False))
        engine = CreditCalculationEngine(
            ledger, config=CreditEngineConfig(enable_metrics=True),
        )
        before = _calculations("VM0033")

        record = engine.calculate_credits(soil_request, "analyst-1")

        assert record.buffered_tons == pytest.approx(10.8)
        assert _calculations("VM0033") == before + 1


# ==============================================================================
# recalculate_credits
# ==============================================================================


class TestRecalculateCredits:
    """Tests for recalculation with supersession."""

    def test_supersedes_original(self, engine, ledger, soil_request):
        """The new record supersedes the original, which is cancelled."""
        original = engine.calculate_credits(soil_request, "analyst-1")

        new_monitoring = dict(soil_request.monitoring_data)
        new_monitoring["soil_carbon_measurements"] = [soil_measurement(3.0)]
        replacement = engine.recalculate_credits(original.id, new_monitoring, "analyst-2")

        assert replacement.id != original.id
        assert replacement.supersedes_id == original.id
        assert replacement.status == CreditStatus.CALCULATED
        assert replacement.created_by == "analyst-2"
        assert replacement.calculated_tons == pytest.approx(108.0 - 72.0)
        assert ledger.get_by_id(original.id).status == CreditStatus.CANCELLED

        history = engine.get_calculation_history("proj-soil-001")
        assert [r.id for r in history] == [replacement.id, original.id]

    def test_keeps_period_baseline_and_vintage(self, engine, soil_request):
        """Recalculation reuses everything but the monitoring data."""
        original = engine.calculate_credits(soil_request, "analyst-1")
        replacement = engine.recalculate_credits(
            original.id, dict(soil_request.monitoring_data), "analyst-1",
        )
        assert replacement.vintage_year == original.vintage_year
        assert replacement.calculation_period_start == original.calculation_period_start
        assert replacement.calculation_period_end == original.calculation_period_end
        assert replacement.baseline_scenario == original.baseline_scenario
        assert replacement.buffered_tons == original.buffered_tons

    def test_verified_record_can_be_recalculated(self, engine, ledger, soil_request):
        """Verified records may also be superseded."""
        original = engine.calculate_credits(soil_request, "analyst-1")
        _advance(ledger, original.id, CreditStatus.VERIFIED)

        engine.recalculate_credits(original.id, dict(soil_request.monitoring_data), "analyst-1")
        assert ledger.get_by_id(original.id).status == CreditStatus.CANCELLED

    def test_supplied_score_is_reused(self, engine, soil_request):
        """A supplied data-quality score carries over to the new record."""
        original = engine.calculate_credits(soil_request, "analyst-1")
        replacement = engine.recalculate_credits(
            original.id, dict(soil_request.monitoring_data), "analyst-1",
        )
        assert replacement.data_quality_score == 0.4
        assert replacement.calculation_inputs["data_quality_score_source"] == SCORE_SUPPLIED

    def test_estimated_score_is_re_estimated(self, engine, soil_request):
        """An estimated score is re-estimated from the new monitoring data."""
        request = soil_request.model_copy(update={"data_quality_score": None})
        original = engine.calculate_credits(request, "analyst-1")
        assert original.data_quality_score == 0.5

        new_monitoring = dict(
            soil_request.monitoring_data,
            satellite_data=["scene-1"],
            ground_measurements=["plot-1"],
        )
        replacement = engine.recalculate_credits(original.id, new_monitoring, "analyst-1")
        assert replacement.data_quality_score == 0.7
        assert replacement.calculation_inputs["data_quality_score_source"] == SCORE_ESTIMATED

    @pytest.mark.parametrize("statuses", [
        (CreditStatus.VERIFIED, CreditStatus.MINTING),
        (CreditStatus.VERIFIED, CreditStatus.MINTING, CreditStatus.MINTED),
        (CreditStatus.VERIFIED, CreditStatus.MINTING, CreditStatus.MINTED, CreditStatus.RETIRED),
        (CreditStatus.CANCELLED,),
    ])
    def test_illegal_status_writes_nothing(self, engine, ledger, soil_request, statuses):
        """Records past verification cannot be recalculated."""
        original = engine.calculate_credits(soil_request, "analyst-1")
        _advance(ledger, original.id, *statuses)

        with pytest.raises(IllegalStateTransitionError) as exc_info:
            engine.recalculate_credits(
                original.id, dict(soil_request.monitoring_data), "analyst-1",
            )
        assert exc_info.value.current_status == statuses[-1].value
        assert exc_info.value.target_status == "cancelled"
        assert len(ledger) == 1
        assert ledger.get_by_id(original.id).status == statuses[-1]

    def test_unknown_credit(self, engine):
        """Recalculating a missing record raises CreditNotFoundError."""
        with pytest.raises(CreditNotFoundError) as exc_info:
            engine.recalculate_credits("cc_missing", {}, "analyst-1")
        assert exc_info.value.credit_id == "cc_missing"

    def test_invalid_new_data_leaves_original(self, engine, ledger, soil_request):
        """A failed recalculation leaves the original active."""
        original = engine.calculate_credits(soil_request, "analyst-1")

        with pytest.raises(MethodologyValidationError):
            engine.recalculate_credits(
                original.id, {"land_management_practices": []}, "analyst-1",
            )
        assert len(ledger) == 1
        assert ledger.get_by_id(original.id).status == CreditStatus.CALCULATED

    def test_partial_recalculation(self, engine_config, soil_request):
        """A failed cancel names both records for reconciliation."""
        ledger = FailingUpdateLedger()
        engine = CreditCalculationEngine(ledger, config=engine_config)
        original = engine.calculate_credits(soil_request, "analyst-1")

        with pytest.raises(PartialRecalculationError) as exc_info:
            engine.recalculate_credits(
                original.id, dict(soil_request.monitoring_data), "analyst-1",
            )
        err = exc_info.value
        assert err.original_credit_id == original.id
        assert isinstance(err.__cause__, LedgerError)

        assert len(ledger) == 2
        replacement = ledger.get_by_id(err.new_credit_id)
        assert replacement.supersedes_id == original.id
        assert ledger.get_by_id(original.id).status == CreditStatus.CALCULATED

    def test_provenance_records_supersession(self, engine, provenance, soil_request):
        """Cancel and recalculate entries extend the chain."""
        original = engine.calculate_credits(soil_request, "analyst-1")
        replacement = engine.recalculate_credits(
            original.id, dict(soil_request.monitoring_data), "analyst-1",
        )

        cancels = provenance.get_entries(entity_type="credit", action="cancel")
        assert [e.entity_id for e in cancels] == [original.id]
        recalcs = provenance.get_entries(entity_type="recalculation")
        assert recalcs[0].entity_id == replacement.id
        assert provenance.verify_chain() is True


# ==============================================================================
# validate_calculation
# ==============================================================================


class TestValidateCalculation:
    """Tests for validate_calculation."""

    def test_valid_request(self, engine, ledger, forest_request):
        """A valid request reports sub-scores and writes nothing."""
        results = engine.validate_calculation(forest_request)

        assert results.is_valid is True
        assert results.errors == []
        assert results.quality_score == 0.95
        assert results.completeness_score is not None
        assert results.temporal_score is not None
        assert len(ledger) == 0

    def test_quality_findings_are_warnings(self, engine, forest_request):
        """Low data quality is reported as warnings, not errors."""
        results = engine.validate_calculation(forest_request)
        codes = {w.code for w in results.warnings}
        assert "LOW_COMPLETENESS" in codes
        assert results.is_valid is True

    def test_estimated_quality_score(self, engine, forest_request):
        """Without a supplied score the estimate is reported."""
        request = forest_request.model_copy(update={"data_quality_score": None})
        assert engine.validate_calculation(request).quality_score == 0.5

    def test_structural_error(self, engine, forest_request):
        """Structural failures carry the VALIDATION_ERROR code."""
        request = forest_request.model_copy(update={"vintage_year": -1})
        results = engine.validate_calculation(request)

        assert results.is_valid is False
        assert results.quality_score == 0.0
        assert len(results.errors) == 1
        assert results.errors[0].code == "VALIDATION_ERROR"
        assert results.errors[0].field == "vintage_year"
        assert results.missing_fields == []

    def test_missing_field(self, engine, forest_request):
        """Absent required fields are listed in missing_fields."""
        request = forest_request.model_copy(update={"monitoring_data": {}})
        results = engine.validate_calculation(request)
        assert results.missing_fields == ["monitoring_data"]

    def test_unsupported_methodology(self, engine, forest_request):
        """Unknown codes are reported with UNSUPPORTED_METHODOLOGY."""
        request = forest_request.model_copy(update={"methodology_code": "VM9999"})
        results = engine.validate_calculation(request)
        assert results.errors[0].code == "UNSUPPORTED_METHODOLOGY"
        assert results.errors[0].field == "methodology_code"

    def test_methodology_error(self, engine, forest_request):
        """Methodology field failures report the dotted field path."""
        request = forest_request.model_copy(update={
            "monitoring_data": {"management_activities": {}},
        })
        results = engine.validate_calculation(request)

        assert results.errors[0].code == "METHODOLOGY_VALIDATION_ERROR"
        assert results.errors[0].field == "monitoring_data.forest_inventory"
        assert results.missing_fields == ["monitoring_data.forest_inventory"]

    def test_records_provenance(self, engine, provenance, forest_request):
        """Each validation is recorded against the project id."""
        engine.validate_calculation(forest_request)
        entries = provenance.get_entries(entity_type="validation")
        assert [e.entity_id for e in entries] == ["proj-forest-001"]


# ==============================================================================
# get_calculation_history
# ==============================================================================


class TestCalculationHistory:
    """Tests for get_calculation_history."""

    def test_newest_first(self, engine, forest_request):
        """Records are listed newest first."""
        ids = [engine.calculate_credits(forest_request, "analyst-1").id for _ in range(3)]
        history = engine.get_calculation_history("proj-forest-001")
        assert [r.id for r in history] == list(reversed(ids))

    def test_other_projects_excluded(self, engine, forest_request, grassland_request):
        """Only the requested project's records are returned."""
        engine.calculate_credits(forest_request, "analyst-1")
        engine.calculate_credits(grassland_request, "analyst-1")
        history = engine.get_calculation_history("proj-grass-001")
        assert [r.methodology_code for r in history] == ["VM0015"]

    def test_unknown_project(self, engine):
        """An unknown project has an empty history."""
        assert engine.get_calculation_history("proj-none") == []

    def test_explicit_limit(self, engine, forest_request):
        """A positive limit truncates the history."""
        for _ in range(3):
            engine.calculate_credits(forest_request, "analyst-1")
        assert len(engine.get_calculation_history("proj-forest-001", limit=2)) == 2

    def test_default_limit(self, engine, engine_config, forest_request):
        """A non-positive limit falls back to the configured default."""
        engine_config.default_history_limit = 2
        for _ in range(3):
            engine.calculate_credits(forest_request, "analyst-1")
        assert len(engine.get_calculation_history("proj-forest-001")) == 2
        assert len(engine.get_calculation_history("proj-forest-001", limit=-5)) == 2

    def test_limit_is_capped(self, engine, engine_config, forest_request):
        """Limits above max_history_limit are capped."""
        engine_config.max_history_limit = 2
        for _ in range(3):
            engine.calculate_credits(forest_request, "analyst-1")
        assert len(engine.get_calculation_history("proj-forest-001", limit=100)) == 2
