# -*- coding: utf-8 -*-
"""
Carbon Credit Engine Data Models

Pydantic v2 data models for the carbon credit calculation engine covering
land-management crediting under three Verra methodologies. Includes:

- Calculation requests with optional data-quality score and uncertainty
  factors
- Append-only, immutable calculation step log
- Calculation results with a deterministic SHA-256 provenance hash
- Static methodology metadata (buffer tiers, co-benefits, certifier)
- Validation results shared by request validation and data-quality
  assessment
- Credit record lifecycle with an enforced transition table

Enumerations (1):
    CreditStatus

Data Models (9):
    CalculationPeriod, CalculationRequest, CalculationStep,
    CalculationResult, MethodologyMetadata, ValidationIssue,
    ValidationResults, CreditRecord

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carbon_credits.exceptions import IllegalStateTransitionError


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Stable wire codes of the supported methodologies.
METHODOLOGY_VM0007: str = "VM0007"
METHODOLOGY_VM0015: str = "VM0015"
METHODOLOGY_VM0033: str = "VM0033"

#: Accepted keys of CalculationRequest.uncertainty_factors.
UNCERTAINTY_FACTOR_KEYS: FrozenSet[str] = frozenset({
    "measurement_error",
    "spatial_variability",
    "temporal_variability",
    "model_uncertainty",
    "sampling_error",
})


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CreditStatus(str, Enum):
    """Lifecycle status of a credit record.

    CALCULATED: Written by the engine after a successful calculation.
    VERIFIED: Confirmed by an external verifier.
    MINTING: Tokenization requested.
    MINTED: Tokenization confirmed.
    RETIRED: Credits retired by their holder.
    CANCELLED: Superseded by recalculation or cancelled manually.
    """

    CALCULATED = "calculated"
    VERIFIED = "verified"
    MINTING = "minting"
    MINTED = "minted"
    RETIRED = "retired"
    CANCELLED = "cancelled"


#: Legal lifecycle edges. ``cancelled`` and ``retired`` are terminal.
ALLOWED_TRANSITIONS: Dict[CreditStatus, FrozenSet[CreditStatus]] = {
    CreditStatus.CALCULATED: frozenset({
        CreditStatus.VERIFIED, CreditStatus.CANCELLED,
    }),
    CreditStatus.VERIFIED: frozenset({
        CreditStatus.MINTING, CreditStatus.CANCELLED,
    }),
    CreditStatus.MINTING: frozenset({CreditStatus.MINTED}),
    CreditStatus.MINTED: frozenset({CreditStatus.RETIRED}),
    CreditStatus.RETIRED: frozenset(),
    CreditStatus.CANCELLED: frozenset(),
}

#: Statuses from which a record may be recalculated.
RECALCULABLE_STATUSES: FrozenSet[CreditStatus] = frozenset({
    CreditStatus.CALCULATED, CreditStatus.VERIFIED,
})


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CalculationPeriod(BaseModel):
    """Crediting period a calculation covers.

    Both bounds are optional at the type level so that a missing bound is
    reported by the request validator as a structured error instead of a
    Pydantic parse failure. Naive datetimes are taken to be UTC.

    Attributes:
        start: Inclusive period start.
        end: Period end; must be after start.
    """

    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = Field(
        default=None,
        description="Period start (timezone-aware)",
    )
    end: Optional[datetime] = Field(
        default=None,
        description="Period end (timezone-aware)",
    )

    @field_validator("start", "end")
    @classmethod
    def _ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CalculationRequest(BaseModel):
    """Input to one calculation attempt.

    Performs no range or presence checks; those belong to
    ``carbon_credits.validator.validate_calculation_request`` so that they
    fail fast in a defined order.

    Attributes:
        project_id: Project the credits belong to.
        vintage_year: Calendar year the credits are attributed to.
        methodology_code: Registry key (VM0007, VM0015, VM0033).
        calculation_period: Crediting period.
        monitoring_data: Semi-structured monitoring document.
        baseline_data: Semi-structured baseline document.
        data_quality_score: Optional score in [0, 1]; estimated when absent.
        uncertainty_factors: Optional named uncertainty factors.
        project_parameters: Optional free-form project document.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str = Field(
        default="",
        description="Project identifier",
    )
    vintage_year: int = Field(
        default=0,
        description="Vintage year of the credits",
    )
    methodology_code: str = Field(
        default="",
        description="Methodology registry key",
    )
    calculation_period: CalculationPeriod = Field(
        default_factory=CalculationPeriod,
        description="Crediting period",
    )
    monitoring_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Monitoring measurements document",
    )
    baseline_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Baseline scenario document",
    )
    data_quality_score: Optional[float] = Field(
        default=None,
        description="Data-quality score in [0, 1]",
    )
    uncertainty_factors: Optional[Dict[str, float]] = Field(
        default=None,
        description="Named uncertainty factors, each in [0, 1]",
    )
    project_parameters: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Free-form project parameters",
    )


# ---------------------------------------------------------------------------
# Calculation output models
# ---------------------------------------------------------------------------


class CalculationStep(BaseModel):
    """One arithmetic stage of a calculation.

    Attributes:
        step_number: 1-based position in the step log.
        name: Short stage name.
        description: Human-readable description.
        formula: Human-readable formula.
        inputs: Named input values.
        outputs: Named output values.
        timestamp: UTC time the step was recorded.
    """

    model_config = ConfigDict(frozen=True)

    step_number: int = Field(..., ge=1, description="1-based step number")
    name: str = Field(..., min_length=1, description="Stage name")
    description: str = Field(default="", description="Stage description")
    formula: str = Field(default="", description="Human-readable formula")
    inputs: Dict[str, Any] = Field(
        default_factory=dict, description="Named inputs",
    )
    outputs: Dict[str, Any] = Field(
        default_factory=dict, description="Named outputs",
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp when the step was recorded",
    )


class CalculationResult(BaseModel):
    """Output of one methodology run.

    Attributes:
        methodology_code: Methodology that produced the result.
        calculated_tons: Raw net tCO2e before the uncertainty buffer.
        buffered_tons: ``max(0, calculated_tons - uncertainty_buffer)``.
        data_quality_score: Score used to select the buffer tier.
        uncertainty_buffer: Buffer amount withheld, tCO2e.
        buffer_rate: Buffer tier rate applied.
        calculation_steps: Ordered step log.
        input_data: Snapshot of inputs and derived quantities.
        validation_results: Snapshot of validation performed.
        metadata: Methodology version, calculation date and extras.
        provenance_hash: SHA-256 over inputs and step content.
    """

    model_config = ConfigDict(frozen=True)

    methodology_code: str = Field(..., description="Methodology code")
    calculated_tons: float = Field(..., description="Raw net tCO2e")
    buffered_tons: float = Field(..., ge=0, description="Buffered tCO2e")
    data_quality_score: float = Field(
        ..., ge=0.0, le=1.0, description="Data-quality score used",
    )
    uncertainty_buffer: float = Field(
        ..., ge=0, description="Uncertainty buffer withheld, tCO2e",
    )
    buffer_rate: float = Field(
        ..., ge=0.0, le=1.0, description="Buffer tier rate",
    )
    calculation_steps: List[CalculationStep] = Field(
        default_factory=list, description="Ordered step log",
    )
    input_data: Dict[str, Any] = Field(
        default_factory=dict, description="Input snapshot",
    )
    validation_results: Dict[str, Any] = Field(
        default_factory=dict, description="Validation snapshot",
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Result metadata",
    )
    provenance_hash: str = Field(
        default="", description="SHA-256 provenance hash",
    )


class MethodologyMetadata(BaseModel):
    """Static description of a crediting methodology.

    Attributes:
        code: Stable methodology code.
        name: Display name.
        description: One-sentence description.
        version: Methodology version implemented.
        sector: Sector the methodology applies to.
        min_monitoring_period_days: Shortest acceptable monitoring period.
        required_data_fields: Monitoring fields the methodology reads.
        default_buffer_rates: Buffer tiers keyed conservative / moderate /
            high_quality.
        co_benefits: Co-benefit tags.
        certification_body: Standard body issuing the credits.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1, description="Methodology code")
    name: str = Field(..., min_length=1, description="Display name")
    description: str = Field(default="", description="Description")
    version: str = Field(..., description="Methodology version")
    sector: str = Field(..., description="Sector")
    min_monitoring_period_days: int = Field(
        ..., gt=0, description="Minimum monitoring period in days",
    )
    required_data_fields: List[str] = Field(
        default_factory=list, description="Required monitoring fields",
    )
    default_buffer_rates: Dict[str, float] = Field(
        default_factory=dict, description="Default buffer tiers",
    )
    co_benefits: List[str] = Field(
        default_factory=list, description="Co-benefit tags",
    )
    certification_body: str = Field(
        default="", description="Certification body",
    )


# ---------------------------------------------------------------------------
# Validation models
# ---------------------------------------------------------------------------


class ValidationIssue(BaseModel):
    """A single validation error or warning."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Field the issue refers to")
    message: str = Field(..., description="Human-readable message")
    code: str = Field(..., description="Machine-readable issue code")


class ValidationResults(BaseModel):
    """Outcome of request validation or data-quality assessment.

    Attributes:
        is_valid: Overall validity.
        errors: Ordered errors.
        warnings: Ordered warnings.
        missing_fields: Required fields that were absent.
        quality_score: Overall quality score in [0, 1].
        completeness_score: Data-source completeness sub-score.
        consistency_score: Measurement consistency sub-score.
        temporal_score: Temporal coverage sub-score.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool = Field(..., description="Overall validity")
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    completeness_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    consistency_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    temporal_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Credit record
# ---------------------------------------------------------------------------


class CreditRecord(BaseModel):
    """Ledger row for one calculated credit batch.

    Records are never deleted. Status changes go through
    :meth:`transition_to`, which enforces ``ALLOWED_TRANSITIONS``.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(
        default_factory=lambda: f"cc_{uuid.uuid4().hex}",
        description="Credit record identifier",
    )
    project_id: str = Field(..., min_length=1)
    vintage_year: int = Field(..., gt=0)
    calculation_period_start: datetime
    calculation_period_end: datetime
    methodology_code: str = Field(..., min_length=1)
    calculated_tons: float
    buffered_tons: float = Field(..., ge=0)
    issued_tons: Optional[float] = Field(default=None, ge=0)
    data_quality_score: float = Field(..., ge=0.0, le=1.0)
    calculation_steps: List[CalculationStep] = Field(default_factory=list)
    calculation_inputs: Dict[str, Any] = Field(default_factory=dict)
    uncertainty_factors: Dict[str, float] = Field(default_factory=dict)
    baseline_scenario: Dict[str, Any] = Field(default_factory=dict)
    status: CreditStatus = Field(default=CreditStatus.CALCULATED)
    created_by: str = Field(default="")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    provenance_hash: str = Field(default="")
    supersedes_id: Optional[str] = Field(
        default=None,
        description="Record this one replaced during recalculation",
    )

    def can_transition_to(self, target: CreditStatus) -> bool:
        """Return True if ``target`` is a legal next status."""
        return CreditStatus(target) in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: CreditStatus) -> None:
        """Move the record to ``target`` and stamp ``updated_at``.

        Raises:
            IllegalStateTransitionError: If the edge is not allowed.
        """
        target = CreditStatus(target)
        allowed = ALLOWED_TRANSITIONS[self.status]
        if target not in allowed:
            raise IllegalStateTransitionError(
                credit_id=self.id,
                current_status=self.status.value,
                target_status=target.value,
                allowed=[s.value for s in allowed],
            )
        self.status = target
        self.updated_at = _utcnow()
