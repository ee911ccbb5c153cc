# -*- coding: utf-8 -*-
"""
Crediting methodologies.

The supported set is closed: adding a methodology means adding a module
here and listing its class in ``METHODOLOGY_CLASSES``.
"""

from types import MappingProxyType
from typing import Mapping

from carbon_credits.methodologies.base import (
    BufferTiers,
    Methodology,
    NetQuantity,
    StepLog,
)
from carbon_credits.methodologies.grassland import AvoidedGrasslandConversion
from carbon_credits.methodologies.improved_forest import ImprovedForestManagement
from carbon_credits.methodologies.soil_carbon import SoilCarbonSequestration

#: Methodologies registered by the engine, in code order.
METHODOLOGY_CLASSES = (
    ImprovedForestManagement,
    AvoidedGrasslandConversion,
    SoilCarbonSequestration,
)

#: The one immutable registry, code -> instance, shared by the engine and
#: the validation gates.
METHODOLOGIES: Mapping[str, Methodology] = MappingProxyType({
    cls.METADATA.code: cls() for cls in METHODOLOGY_CLASSES
})

__all__ = [
    "BufferTiers",
    "Methodology",
    "NetQuantity",
    "StepLog",
    "ImprovedForestManagement",
    "AvoidedGrasslandConversion",
    "SoilCarbonSequestration",
    "METHODOLOGY_CLASSES",
    "METHODOLOGIES",
]
