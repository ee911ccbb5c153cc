# -*- coding: utf-8 -*-
"""
Typed Methodology Inputs

The single conversion boundary between the semi-structured monitoring and
baseline documents carried by a CalculationRequest and the strongly-typed
inputs each methodology computes from. Methodologies never read the raw
documents directly.

Each ``parse_*`` function checks field presence in a fixed order, then
validates the shape through a frozen Pydantic model. The first failure is
raised as MethodologyValidationError with a dotted field path such as
``monitoring_data.forest_inventory.strata.0.area``.

Missing optional numeric fields are not errors: they default to the
methodology's documented constants (see the individual methodologies).

Input schema version: 1

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from carbon_credits.exceptions import MethodologyValidationError

logger = logging.getLogger(__name__)

#: Version of the document-to-input mapping implemented here.
INPUT_SCHEMA_VERSION: int = 1

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_INPUT_CONFIG = ConfigDict(frozen=True, allow_inf_nan=False, extra="ignore")


# ---------------------------------------------------------------------------
# VM0007 Improved Forest Management
# ---------------------------------------------------------------------------


class ForestStratum(BaseModel):
    """One forest inventory stratum; carbon pools in tC/ha."""

    model_config = _INPUT_CONFIG

    area: float = Field(..., gt=0, description="Stratum area (ha)")
    above_ground_carbon: float = Field(default=0.0, ge=0)
    below_ground_carbon: float = Field(default=0.0, ge=0)
    soil_carbon: float = Field(default=0.0, ge=0)
    dead_wood_carbon: float = Field(default=0.0, ge=0)


class ForestInventory(BaseModel):
    model_config = _INPUT_CONFIG

    strata: List[ForestStratum] = Field(..., description="Inventory strata")


class ForestBaseline(BaseModel):
    """Baseline forest area and optional carbon densities (tC/ha).

    ``None`` or zero densities fall back to the methodology defaults.
    """

    model_config = _INPUT_CONFIG

    forest_area: float = Field(..., gt=0, description="Forest area (ha)")
    above_ground_carbon_density: Optional[float] = Field(default=None, ge=0)
    below_ground_carbon_density: Optional[float] = Field(default=None, ge=0)
    soil_carbon_density: Optional[float] = Field(default=None, ge=0)
    dead_wood_carbon_density: Optional[float] = Field(default=None, ge=0)


class ForestInputs(BaseModel):
    """Typed VM0007 inputs."""

    model_config = _INPUT_CONFIG

    inventory: ForestInventory
    baseline: ForestBaseline
    management_activities: Dict[str, Any] = Field(default_factory=dict)
    leakage_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @property
    def management_intensity(self) -> Optional[str]:
        value = self.management_activities.get("management_intensity")
        return value if isinstance(value, str) else None


# ---------------------------------------------------------------------------
# VM0015 Avoided Grassland Conversion
# ---------------------------------------------------------------------------


class GrasslandInputs(BaseModel):
    """Typed VM0015 inputs."""

    model_config = _INPUT_CONFIG

    grassland_area: float = Field(..., gt=0, description="Grassland area (ha)")
    carbon_stock_density: float = Field(
        ..., gt=0, description="Carbon stock density (tCO2e/ha)",
    )
    baseline_conversion_rate: float = Field(
        ..., ge=0.0, le=1.0, description="Baseline conversion rate",
    )
    project_activities: Dict[str, Any] = Field(default_factory=dict)
    project_emission_rate: Optional[float] = Field(
        default=None, ge=0.0, le=1.0,
    )


# ---------------------------------------------------------------------------
# VM0033 Soil Carbon Sequestration
# ---------------------------------------------------------------------------


class SoilMeasurement(BaseModel):
    """One soil organic carbon sample plot."""

    model_config = _INPUT_CONFIG

    area: float = Field(..., gt=0, description="Area (ha)")
    bulk_density: float = Field(..., gt=0, description="Bulk density (g/cm3)")
    soc_concentration: float = Field(
        ..., gt=0, description="Soil organic carbon (%)",
    )
    depth: float = Field(..., gt=0, description="Sampling depth (cm)")


class SoilCarbonInputs(BaseModel):
    """Typed VM0033 inputs."""

    model_config = _INPUT_CONFIG

    measurements: List[SoilMeasurement] = Field(..., min_length=1)
    baseline_measurements: List[SoilMeasurement] = Field(..., min_length=1)
    land_management_practices: Any = None


# ---------------------------------------------------------------------------
# Parse helpers
# ---------------------------------------------------------------------------


def _require(
    document: Mapping[str, Any],
    key: str,
    code: str,
    prefix: str,
) -> Any:
    value = document.get(key)
    if value is None:
        raise MethodologyValidationError(
            message=f"{key} is required for {code}",
            methodology_code=code,
            field=f"{prefix}.{key}",
            context={"missing": True},
        )
    return value


def _require_mapping(
    document: Mapping[str, Any],
    key: str,
    code: str,
    prefix: str,
) -> Mapping[str, Any]:
    value = _require(document, key, code, prefix)
    if not isinstance(value, Mapping):
        raise MethodologyValidationError(
            message=f"{key} must be an object for {code}",
            methodology_code=code,
            field=f"{prefix}.{key}",
        )
    return value


def _require_list(
    document: Mapping[str, Any],
    key: str,
    code: str,
    prefix: str,
) -> List[Any]:
    value = _require(document, key, code, prefix)
    if not isinstance(value, list) or not value:
        raise MethodologyValidationError(
            message=f"{key} must be a non-empty list for {code}",
            methodology_code=code,
            field=f"{prefix}.{key}",
        )
    return value


def _build(
    model: Type[_ModelT],
    data: Dict[str, Any],
    code: str,
    field_map: Dict[str, str],
) -> _ModelT:
    """Validate ``data`` into ``model``, translating the first error.

    ``field_map`` maps the model's top-level field names to the dotted
    document path they were read from.
    """
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = [str(part) for part in first.get("loc", ())]
        head = field_map.get(loc[0], loc[0]) if loc else ""
        path = ".".join([head] + loc[1:]) if head else ".".join(loc)
        logger.debug(
            "Input validation failed for %s at %s: %s",
            code, path, first.get("msg"),
        )
        raise MethodologyValidationError(
            message=f"invalid {path} for {code}: {first.get('msg')}",
            methodology_code=code,
            field=path,
        ) from exc


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


# ---------------------------------------------------------------------------
# Public parse functions
# ---------------------------------------------------------------------------


def parse_forest_inputs(
    monitoring_data: Mapping[str, Any],
    baseline_data: Mapping[str, Any],
    code: str = "VM0007",
) -> ForestInputs:
    """Convert VM0007 documents to :class:`ForestInputs`.

    Raises:
        MethodologyValidationError: On the first missing or invalid field.
    """
    inventory = _require_mapping(
        monitoring_data, "forest_inventory", code, "monitoring_data",
    )
    strata = inventory.get("strata")
    if not isinstance(strata, list):
        raise MethodologyValidationError(
            message=f"forest_inventory.strata must be a list for {code}",
            methodology_code=code,
            field="monitoring_data.forest_inventory.strata",
        )
    activities = _require(
        monitoring_data, "management_activities", code, "monitoring_data",
    )
    _require(baseline_data, "forest_area", code, "baseline_data")

    return _build(
        ForestInputs,
        {
            "inventory": dict(inventory),
            "baseline": dict(baseline_data),
            "management_activities": _as_dict(activities),
            "leakage_rate": monitoring_data.get("leakage_rate"),
        },
        code,
        {
            "inventory": "monitoring_data.forest_inventory",
            "baseline": "baseline_data",
            "management_activities": "monitoring_data.management_activities",
            "leakage_rate": "monitoring_data.leakage_rate",
        },
    )


def parse_grassland_inputs(
    monitoring_data: Mapping[str, Any],
    baseline_data: Mapping[str, Any],
    code: str = "VM0015",
) -> GrasslandInputs:
    """Convert VM0015 documents to :class:`GrasslandInputs`.

    ``baseline_conversion_rate`` is read from the baseline document and
    falls back to the monitoring document.

    Raises:
        MethodologyValidationError: On the first missing or invalid field.
    """
    area = _require(monitoring_data, "grassland_area", code, "monitoring_data")
    density = _require(
        monitoring_data, "carbon_stock_density", code, "monitoring_data",
    )
    activities = _require(
        monitoring_data, "project_activities", code, "monitoring_data",
    )

    rate_source = "baseline_data"
    conversion_rate = baseline_data.get("baseline_conversion_rate")
    if conversion_rate is None:
        rate_source = "monitoring_data"
        conversion_rate = monitoring_data.get("baseline_conversion_rate")
    if conversion_rate is None:
        raise MethodologyValidationError(
            message=f"baseline_conversion_rate is required for {code}",
            methodology_code=code,
            field="baseline_data.baseline_conversion_rate",
            context={"missing": True},
        )

    activities_dict = _as_dict(activities)
    return _build(
        GrasslandInputs,
        {
            "grassland_area": area,
            "carbon_stock_density": density,
            "baseline_conversion_rate": conversion_rate,
            "project_activities": activities_dict,
            "project_emission_rate": activities_dict.get("emission_rate"),
        },
        code,
        {
            "grassland_area": "monitoring_data.grassland_area",
            "carbon_stock_density": "monitoring_data.carbon_stock_density",
            "baseline_conversion_rate": (
                f"{rate_source}.baseline_conversion_rate"
            ),
            "project_activities": "monitoring_data.project_activities",
            "project_emission_rate": (
                "monitoring_data.project_activities.emission_rate"
            ),
        },
    )


def parse_soil_inputs(
    monitoring_data: Mapping[str, Any],
    baseline_data: Mapping[str, Any],
    code: str = "VM0033",
) -> SoilCarbonInputs:
    """Convert VM0033 documents to :class:`SoilCarbonInputs`.

    Raises:
        MethodologyValidationError: On the first missing or invalid field.
    """
    measurements = _require_list(
        monitoring_data, "soil_carbon_measurements", code, "monitoring_data",
    )
    practices = _require(
        monitoring_data, "land_management_practices", code, "monitoring_data",
    )
    baseline_measurements = _require_list(
        baseline_data, "soil_carbon_measurements", code, "baseline_data",
    )

    return _build(
        SoilCarbonInputs,
        {
            "measurements": measurements,
            "baseline_measurements": baseline_measurements,
            "land_management_practices": practices,
        },
        code,
        {
            "measurements": "monitoring_data.soil_carbon_measurements",
            "baseline_measurements": "baseline_data.soil_carbon_measurements",
        },
    )

