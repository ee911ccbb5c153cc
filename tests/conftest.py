# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures for the carbon credit engine."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest

from carbon_credits.config import CreditEngineConfig, reset_config, set_config
from carbon_credits.engine import CreditCalculationEngine
from carbon_credits.ledger import InMemoryCreditLedger
from carbon_credits.models import CalculationPeriod, CalculationRequest
from carbon_credits.provenance import ProvenanceTracker

PERIOD_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_period(days: float, start: datetime = PERIOD_START) -> CalculationPeriod:
    """Calculation period of ``days`` length starting at ``start``."""
    return CalculationPeriod(start=start, end=start + timedelta(days=days))


def iso_period(days: float, start: datetime = PERIOD_START) -> Dict[str, str]:
    """Embedded monitoring_period document of ``days`` length."""
    end = start + timedelta(days=days)
    return {
        "start": start.isoformat().replace("+00:00", "Z"),
        "end": end.isoformat().replace("+00:00", "Z"),
    }


@pytest.fixture(autouse=True)
def engine_config():
    """Install a default configuration for each test and reset afterwards."""
    config = CreditEngineConfig()
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def ledger():
    return InMemoryCreditLedger()


@pytest.fixture
def provenance(engine_config):
    return ProvenanceTracker(genesis_hash=engine_config.genesis_hash)


@pytest.fixture
def engine(ledger, engine_config, provenance):
    return CreditCalculationEngine(ledger, config=engine_config, provenance=provenance)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@pytest.fixture
def forest_monitoring() -> Dict[str, Any]:
    """One 100 ha stratum at 160/40/110/25 tC/ha."""
    return {
        "forest_inventory": {
            "strata": [
                {
                    "area": 100.0,
                    "above_ground_carbon": 160.0,
                    "below_ground_carbon": 40.0,
                    "soil_carbon": 110.0,
                    "dead_wood_carbon": 25.0,
                },
            ],
        },
        "management_activities": {"selective_logging": False},
    }


@pytest.fixture
def forest_baseline() -> Dict[str, Any]:
    """100 ha baseline forest with default densities."""
    return {"forest_area": 100.0}


@pytest.fixture
def forest_request(forest_monitoring, forest_baseline) -> CalculationRequest:
    return CalculationRequest(
        project_id="proj-forest-001",
        vintage_year=2024,
        methodology_code="VM0007",
        calculation_period=make_period(365),
        monitoring_data=forest_monitoring,
        baseline_data=forest_baseline,
        data_quality_score=0.95,
    )


@pytest.fixture
def grassland_request() -> CalculationRequest:
    return CalculationRequest(
        project_id="proj-grass-001",
        vintage_year=2024,
        methodology_code="VM0015",
        calculation_period=make_period(365),
        monitoring_data={
            "grassland_area": 500.0,
            "carbon_stock_density": 80.0,
            "project_activities": {"grazing_management": "rotational"},
        },
        baseline_data={"baseline_conversion_rate": 0.1},
        data_quality_score=0.8,
    )


def soil_measurement(soc: float) -> Dict[str, float]:
    return {
        "area": 10.0,
        "bulk_density": 1.2,
        "soc_concentration": soc,
        "depth": 30.0,
    }


@pytest.fixture
def soil_request() -> CalculationRequest:
    """72 t baseline stock, 90 t monitored stock, q = 0.4."""
    return CalculationRequest(
        project_id="proj-soil-001",
        vintage_year=2024,
        methodology_code="VM0033",
        calculation_period=make_period(730),
        monitoring_data={
            "soil_carbon_measurements": [soil_measurement(2.5)],
            "land_management_practices": ["cover_cropping", "no_till"],
        },
        baseline_data={
            "soil_carbon_measurements": [soil_measurement(2.0)],
        },
        data_quality_score=0.4,
    )
