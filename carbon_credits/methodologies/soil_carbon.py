# -*- coding: utf-8 -*-
"""
VM0033 Soil Carbon Sequestration

Credits the increase in soil organic carbon under improved land
management practices.

Calculation stages:
    1. Baseline soil carbon  C_b = sum(A * BD * SOC * D * 0.1) over baseline plots
    2. Current soil carbon   C_c = same sum over monitoring plots
    3. Sequestration         dC  = C_c - C_b
    4. Uncertainty buffer (shared, see base)

Units: A in ha, BD in g/cm3, SOC in percent, D in cm; the 0.1 factor
converts the product to tC. Leakage is covered by the buffer tiers.

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from carbon_credits.methodologies.base import (
    BufferTiers,
    Methodology,
    NetQuantity,
    StepLog,
)
from carbon_credits.methodologies.inputs import (
    SoilCarbonInputs,
    SoilMeasurement,
    parse_soil_inputs,
)
from carbon_credits.models import METHODOLOGY_VM0033, MethodologyMetadata

logger = logging.getLogger(__name__)

UNIT_CONVERSION_FACTOR: float = 0.1
SOIL_DEPTH_CONSIDERED: str = "0-30cm"

_BUFFER_TIERS = BufferTiers(
    high_quality=0.20,
    moderate=0.25,
    conservative=0.30,
    low_quality=0.40,
)

_STOCK_FORMULA = "C = sum(A * BD * SOC * D * 0.1)"


def soil_carbon_stock(measurements: Iterable[SoilMeasurement]) -> float:
    """Total soil organic carbon stock (tC) over sample plots."""
    return sum(
        m.area * m.bulk_density * m.soc_concentration * m.depth
        * UNIT_CONVERSION_FACTOR
        for m in measurements
    )


class SoilCarbonSequestration(Methodology):
    """VM0033 Soil Carbon Sequestration."""

    BUFFER_TIERS = _BUFFER_TIERS
    METADATA = MethodologyMetadata(
        code=METHODOLOGY_VM0033,
        name="Soil Carbon Sequestration",
        description=(
            "Methodology for measuring soil organic carbon sequestration "
            "through improved land management"
        ),
        version="1.0",
        sector="Agriculture/Soil",
        min_monitoring_period_days=730,
        required_data_fields=[
            "soil_carbon_measurements",
            "land_management_practices",
            "baseline_soil_carbon",
            "soil_bulk_density",
            "monitoring_period",
        ],
        default_buffer_rates=_BUFFER_TIERS.as_metadata(),
        co_benefits=[
            "soil_health",
            "water_retention",
            "crop_yield",
            "biodiversity",
        ],
        certification_body="Verra VM0033",
    )

    def parse_inputs(
        self,
        monitoring_data: Mapping[str, Any],
        baseline_data: Mapping[str, Any],
    ) -> SoilCarbonInputs:
        return parse_soil_inputs(monitoring_data, baseline_data, self.code)

    def compute_net(self, inputs: SoilCarbonInputs, log: StepLog) -> NetQuantity:
        baseline_carbon = soil_carbon_stock(inputs.baseline_measurements)
        log.add(
            name="baseline_soil_carbon",
            description="Soil organic carbon stock at baseline",
            formula=_STOCK_FORMULA,
            inputs={"measurement_count": len(inputs.baseline_measurements)},
            outputs={"baseline_soil_carbon_tons": baseline_carbon},
        )

        current_carbon = soil_carbon_stock(inputs.measurements)
        log.add(
            name="current_soil_carbon",
            description="Soil organic carbon stock from monitoring",
            formula=_STOCK_FORMULA,
            inputs={"measurement_count": len(inputs.measurements)},
            outputs={"current_soil_carbon_tons": current_carbon},
        )

        sequestration = current_carbon - baseline_carbon
        log.add(
            name="soil_carbon_sequestration",
            description="Change in soil carbon stock over the period",
            formula="dC = C_current - C_baseline",
            inputs={
                "current_soil_carbon": current_carbon,
                "baseline_soil_carbon": baseline_carbon,
            },
            outputs={"sequestration_tons": sequestration},
        )

        return NetQuantity(
            net_tons=sequestration,
            net_label="sequestration",
            derived={
                "baseline_soil_carbon": baseline_carbon,
                "current_soil_carbon": current_carbon,
                "sequestration": sequestration,
            },
            metadata={"soil_depth_considered": SOIL_DEPTH_CONSIDERED},
        )
