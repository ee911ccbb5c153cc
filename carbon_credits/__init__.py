# -*- coding: utf-8 -*-
"""
GreenLang Carbon Credit Calculation Engine

Computes verified greenhouse-gas credit quantities for land-management
projects from monitoring and baseline data under three Verra
methodologies:

    VM0007  Improved Forest Management
    VM0015  Avoided Grassland Conversion
    VM0033  Soil Carbon Sequestration

Components:
    - methodologies: pluggable methodology implementations and typed inputs
    - validator: structural, methodology-specific and baseline checks
    - data_quality: completeness / consistency / temporal scoring
    - engine: registry, calculation, recalculation with supersession
    - ledger: credit ledger protocol and in-memory implementation
    - config, exceptions, metrics, provenance: ambient services

Example:
    >>> from carbon_credits import CreditCalculationEngine, InMemoryCreditLedger
    >>> engine = CreditCalculationEngine(InMemoryCreditLedger())

Author: GreenLang Platform Team
Status: Production Ready
"""

from carbon_credits.config import (
    CreditEngineConfig,
    get_config,
    reset_config,
    set_config,
)
from carbon_credits.engine import CreditCalculationEngine
from carbon_credits.exceptions import (
    CalculationError,
    CreditEngineError,
    CreditNotFoundError,
    IllegalStateTransitionError,
    InvalidRequestError,
    LedgerError,
    MethodologyValidationError,
    PartialRecalculationError,
    UnsupportedMethodologyError,
)
from carbon_credits.ledger import CreditLedger, InMemoryCreditLedger
from carbon_credits.models import (
    CalculationPeriod,
    CalculationRequest,
    CalculationResult,
    CalculationStep,
    CreditRecord,
    CreditStatus,
    MethodologyMetadata,
    ValidationIssue,
    ValidationResults,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Config
    "CreditEngineConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Engine
    "CreditCalculationEngine",
    # Ledger
    "CreditLedger",
    "InMemoryCreditLedger",
    # Models
    "CalculationPeriod",
    "CalculationRequest",
    "CalculationResult",
    "CalculationStep",
    "CreditRecord",
    "CreditStatus",
    "MethodologyMetadata",
    "ValidationIssue",
    "ValidationResults",
    # Exceptions
    "CreditEngineError",
    "InvalidRequestError",
    "UnsupportedMethodologyError",
    "MethodologyValidationError",
    "CalculationError",
    "IllegalStateTransitionError",
    "LedgerError",
    "CreditNotFoundError",
    "PartialRecalculationError",
]
