# -*- coding: utf-8 -*-
"""
VM0015 Avoided Grassland Conversion

Credits the emissions avoided by keeping grassland out of conversion.

Calculation stages:
    1. Baseline emissions  E_b = A * C * R_conversion
    2. Project emissions   E_p = A * C * R_project   (R_project default 0.01)
    3. Emission reductions ER = E_b - E_p
    4. Uncertainty buffer (shared, see base)

Leakage is not subtracted explicitly; it is covered by the buffer tiers.

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from carbon_credits.methodologies.base import (
    BufferTiers,
    Methodology,
    NetQuantity,
    StepLog,
)
from carbon_credits.methodologies.inputs import (
    GrasslandInputs,
    parse_grassland_inputs,
)
from carbon_credits.models import METHODOLOGY_VM0015, MethodologyMetadata

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_EMISSION_RATE: float = 0.01

_BUFFER_TIERS = BufferTiers(
    high_quality=0.15,
    moderate=0.20,
    conservative=0.25,
    low_quality=0.35,
)


class AvoidedGrasslandConversion(Methodology):
    """VM0015 Avoided Grassland Conversion."""

    BUFFER_TIERS = _BUFFER_TIERS
    METADATA = MethodologyMetadata(
        code=METHODOLOGY_VM0015,
        name="Avoided Grassland Conversion",
        description=(
            "Methodology for avoiding conversion of grasslands to croplands "
            "or other uses"
        ),
        version="1.1",
        sector="Grassland",
        min_monitoring_period_days=365,
        required_data_fields=[
            "grassland_area",
            "carbon_stock_density",
            "baseline_conversion_rate",
            "project_activities",
            "monitoring_period",
        ],
        default_buffer_rates=_BUFFER_TIERS.as_metadata(),
        co_benefits=[
            "biodiversity_habitat",
            "soil_conservation",
            "water_quality",
            "cultural_values",
        ],
        certification_body="Verra VM0015",
    )

    def parse_inputs(
        self,
        monitoring_data: Mapping[str, Any],
        baseline_data: Mapping[str, Any],
    ) -> GrasslandInputs:
        return parse_grassland_inputs(
            monitoring_data, baseline_data, self.code,
        )

    def compute_net(self, inputs: GrasslandInputs, log: StepLog) -> NetQuantity:
        area = inputs.grassland_area
        density = inputs.carbon_stock_density
        conversion_rate = inputs.baseline_conversion_rate

        baseline_emissions = area * density * conversion_rate
        log.add(
            name="baseline_emissions",
            description="Emissions expected from grassland conversion",
            formula="E_baseline = A * C * R_conversion",
            inputs={
                "grassland_area": area,
                "carbon_stock_density": density,
                "baseline_conversion_rate": conversion_rate,
            },
            outputs={"baseline_emissions_tons": baseline_emissions},
        )

        project_rate = inputs.project_emission_rate
        if project_rate is None:
            project_rate = DEFAULT_PROJECT_EMISSION_RATE
        project_emissions = area * density * project_rate
        log.add(
            name="project_emissions",
            description="Residual emissions under the project scenario",
            formula="E_project = A * C * R_project",
            inputs={
                "grassland_area": area,
                "carbon_stock_density": density,
                "project_emission_rate": project_rate,
            },
            outputs={"project_emissions_tons": project_emissions},
        )

        reductions = baseline_emissions - project_emissions
        log.add(
            name="emission_reductions",
            description="Avoided emissions relative to the baseline",
            formula="ER = E_baseline - E_project",
            inputs={
                "baseline_emissions": baseline_emissions,
                "project_emissions": project_emissions,
            },
            outputs={"emission_reductions_tons": reductions},
        )

        return NetQuantity(
            net_tons=reductions,
            net_label="emission_reductions",
            derived={
                "baseline_emissions": baseline_emissions,
                "project_emissions": project_emissions,
                "emission_reductions": reductions,
            },
            metadata={"conversion_prevented": True},
        )
