# -*- coding: utf-8 -*-
"""
Methodology Base Class

Defines the contract every crediting methodology implements and the
machinery they share:

- Tiered uncertainty buffer lookup by data-quality score
- Round-half-up quantization of the buffer and buffered tonnage
- Append-only, 1-based calculation step log
- Minimum monitoring period enforcement
- Deterministic SHA-256 provenance hash over inputs and step content

A concrete methodology supplies its metadata, its buffer tiers, a typed
input parser and the three tonnage stages (baseline, project, net). The
fourth stage, the uncertainty buffer, is applied here so that every
methodology buffers identically.

Buffer tier selection (q = data-quality score):
    q >= 0.9         -> high_quality rate
    0.7 <= q < 0.9   -> moderate rate
    0.5 <= q < 0.7   -> conservative (base) rate
    q < 0.5          -> low_quality rate

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import copy
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from carbon_credits.data_quality import estimate_data_quality
from carbon_credits.exceptions import (
    CalculationError,
    MethodologyValidationError,
)
from carbon_credits.methodologies.inputs import INPUT_SCHEMA_VERSION
from carbon_credits.models import (
    CalculationRequest,
    CalculationResult,
    CalculationStep,
    MethodologyMetadata,
)
from carbon_credits.provenance import hash_payload
from carbon_credits.utils import parse_timestamp, round_half_up, utcnow

logger = logging.getLogger(__name__)

HIGH_QUALITY_THRESHOLD: float = 0.9
MODERATE_QUALITY_THRESHOLD: float = 0.7
LOW_QUALITY_THRESHOLD: float = 0.5


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BufferTiers:
    """Buffer rates by data-quality band."""

    high_quality: float
    moderate: float
    conservative: float
    low_quality: float

    def rate_for(self, data_quality_score: float) -> float:
        if data_quality_score >= HIGH_QUALITY_THRESHOLD:
            return self.high_quality
        if data_quality_score >= MODERATE_QUALITY_THRESHOLD:
            return self.moderate
        if data_quality_score < LOW_QUALITY_THRESHOLD:
            return self.low_quality
        return self.conservative

    def as_metadata(self) -> Dict[str, float]:
        return {
            "conservative": self.conservative,
            "moderate": self.moderate,
            "high_quality": self.high_quality,
        }


class StepLog:
    """Append-only calculation step log numbered from 1.

    Step inputs and outputs are deep-copied on append, so later changes to
    the caller's dicts never reach a recorded step.
    """

    def __init__(self) -> None:
        self._steps: List[CalculationStep] = []

    def add(
        self,
        name: str,
        description: str,
        formula: str,
        inputs: Dict[str, Any],
        outputs: Dict[str, Any],
    ) -> CalculationStep:
        step = CalculationStep(
            step_number=len(self._steps) + 1,
            name=name,
            description=description,
            formula=formula,
            inputs=copy.deepcopy(inputs),
            outputs=copy.deepcopy(outputs),
        )
        self._steps.append(step)
        logger.debug(
            "Step %d %s: %s", step.step_number, name, outputs,
        )
        return step

    @property
    def steps(self) -> List[CalculationStep]:
        return list(self._steps)


@dataclass(frozen=True)
class NetQuantity:
    """Outcome of the three tonnage stages of a methodology.

    Attributes:
        net_tons: Net tCO2e before the uncertainty buffer.
        net_label: Name of the net quantity in step outputs.
        derived: Derived values kept in the result's input snapshot.
        metadata: Methodology-specific result metadata.
    """

    net_tons: float
    net_label: str
    derived: Dict[str, Any]
    metadata: Dict[str, Any]


# ---------------------------------------------------------------------------
# Methodology contract
# ---------------------------------------------------------------------------


class Methodology(ABC):
    """Abstract crediting methodology.

    Subclasses are stateless; one instance is shared by every engine call.
    """

    METADATA: ClassVar[MethodologyMetadata]
    BUFFER_TIERS: ClassVar[BufferTiers]

    @property
    def code(self) -> str:
        return self.METADATA.code

    def get_metadata(self) -> MethodologyMetadata:
        """Return the methodology's static metadata."""
        return self.METADATA

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, request: CalculationRequest) -> None:
        """Run methodology-specific field checks and the period check.

        Raises:
            MethodologyValidationError: With methodology code and field.
        """
        self.parse_inputs(request.monitoring_data, request.baseline_data)
        self.check_monitoring_period(request)

    def resolve_monitoring_period(
        self,
        request: CalculationRequest,
    ) -> Tuple[datetime, datetime, str]:
        """Return (start, end, source_field) of the monitoring period.

        The embedded ``monitoring_data.monitoring_period`` wins over the
        request's calculation period.
        """
        embedded = request.monitoring_data.get("monitoring_period")
        if embedded is not None:
            field = "monitoring_data.monitoring_period"
            if not isinstance(embedded, Mapping):
                raise MethodologyValidationError(
                    message="monitoring_period must be an object with "
                    "start and end",
                    methodology_code=self.code,
                    field=field,
                )
            start = parse_timestamp(embedded.get("start"))
            end = parse_timestamp(embedded.get("end"))
            for name, value in (("start", start), ("end", end)):
                if value is None:
                    raise MethodologyValidationError(
                        message=f"monitoring_period.{name} must be an "
                        "RFC 3339 timestamp",
                        methodology_code=self.code,
                        field=f"{field}.{name}",
                    )
            return start, end, field

        period = request.calculation_period
        if period.start is None or period.end is None:
            raise MethodologyValidationError(
                message="calculation period start and end are required",
                methodology_code=self.code,
                field="calculation_period",
            )
        return period.start, period.end, "calculation_period"

    def check_monitoring_period(self, request: CalculationRequest) -> float:
        """Enforce the minimum monitoring period; return its length in days.

        Raises:
            MethodologyValidationError: If the period is inverted or shorter
                than ``min_monitoring_period_days``.
        """
        start, end, field = self.resolve_monitoring_period(request)
        if end <= start:
            raise MethodologyValidationError(
                message="monitoring period end must be after start",
                methodology_code=self.code,
                field=field,
            )
        days = (end - start).total_seconds() / 86400.0
        minimum = self.METADATA.min_monitoring_period_days
        if days < minimum:
            raise MethodologyValidationError(
                message=(
                    f"{self.code} requires a monitoring period of at least "
                    f"{minimum} days, got {days:.1f}"
                ),
                methodology_code=self.code,
                field=field,
            )
        return days

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate(
        self,
        request: CalculationRequest,
        places: Optional[int] = None,
    ) -> CalculationResult:
        """Run the four calculation stages and build the result.

        Identical requests produce identical tonnage and provenance hash;
        only step and metadata timestamps vary.

        Args:
            request: Validated calculation request.
            places: Decimal places for the buffer and buffered tonnage;
                the active configuration's precision when None.

        Raises:
            MethodologyValidationError: If the documents fail to parse.
            CalculationError: On an arithmetic precondition violation.
        """
        inputs = self.parse_inputs(
            request.monitoring_data, request.baseline_data,
        )
        data_quality_score = request.data_quality_score
        if data_quality_score is None:
            data_quality_score = estimate_data_quality(request.monitoring_data)

        log = StepLog()
        net = self.compute_net(inputs, log)
        self._ensure_finite(net.net_tons, "net_quantity", net.net_label)

        rate = self.buffer_rate(data_quality_score)
        buffer_amount = self.apply_uncertainty_buffer(
            net.net_tons, data_quality_score, places,
        )
        buffered_tons = round_half_up(
            max(0.0, net.net_tons - buffer_amount), places,
        )
        log.add(
            name="uncertainty_buffer",
            description="Apply the uncertainty buffer for the data-quality tier",
            formula="Buffered = max(0, Net - Net * buffer_rate)",
            inputs={
                net.net_label: net.net_tons,
                "data_quality_score": data_quality_score,
                "buffer_rate": rate,
            },
            outputs={
                "uncertainty_buffer_tons": buffer_amount,
                "buffered_tons": buffered_tons,
            },
        )

        steps = log.steps
        input_data: Dict[str, Any] = {
            "monitoring_data": request.monitoring_data,
            "baseline_data": request.baseline_data,
        }
        input_data.update(net.derived)
        metadata: Dict[str, Any] = {
            "methodology_version": self.METADATA.version,
            "calculation_date": utcnow().isoformat(),
        }
        metadata.update(net.metadata)

        return CalculationResult(
            methodology_code=self.code,
            calculated_tons=net.net_tons,
            buffered_tons=buffered_tons,
            data_quality_score=data_quality_score,
            uncertainty_buffer=buffer_amount,
            buffer_rate=rate,
            calculation_steps=steps,
            input_data=input_data,
            validation_results={
                "methodology_validated": True,
                "input_schema_version": INPUT_SCHEMA_VERSION,
            },
            metadata=metadata,
            provenance_hash=self.provenance_hash(
                request, data_quality_score, steps,
            ),
        )

    def buffer_rate(self, data_quality_score: float) -> float:
        """Return the buffer tier rate for ``data_quality_score``."""
        return self.BUFFER_TIERS.rate_for(data_quality_score)

    def apply_uncertainty_buffer(
        self,
        tons: float,
        data_quality_score: float,
        places: Optional[int] = None,
    ) -> float:
        """Return the buffer amount withheld from ``tons``.

        The buffer is ``tons * rate`` rounded to ``places``, except that
        non-positive tonnage yields a zero buffer rather than the negative
        product. ``buffered_tons`` is floored at zero either way, so only
        the reported ``uncertainty_buffer`` differs from plain
        multiplication.
        """
        if tons <= 0:
            return 0.0
        return round_half_up(
            tons * self.buffer_rate(data_quality_score), places,
        )

    def provenance_hash(
        self,
        request: CalculationRequest,
        data_quality_score: float,
        steps: List[CalculationStep],
    ) -> str:
        """SHA-256 over request inputs and step content, timestamps excluded."""
        period = request.calculation_period
        return hash_payload({
            "methodology_code": self.code,
            "methodology_version": self.METADATA.version,
            "calculation_period": {
                "start": period.start.isoformat() if period.start else None,
                "end": period.end.isoformat() if period.end else None,
            },
            "monitoring_data": request.monitoring_data,
            "baseline_data": request.baseline_data,
            "data_quality_score": data_quality_score,
            "steps": [
                {
                    "name": s.name,
                    "formula": s.formula,
                    "inputs": s.inputs,
                    "outputs": s.outputs,
                }
                for s in steps
            ],
        })

    def _ensure_finite(self, value: float, step: str, field: str) -> None:
        if not math.isfinite(value):
            raise CalculationError(
                message=f"{field} is not a finite number",
                methodology_code=self.code,
                step=step,
                field=field,
            )

    # ------------------------------------------------------------------
    # Methodology-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def parse_inputs(
        self,
        monitoring_data: Mapping[str, Any],
        baseline_data: Mapping[str, Any],
    ) -> Any:
        """Convert raw documents to the methodology's typed inputs."""

    @abstractmethod
    def compute_net(self, inputs: Any, log: StepLog) -> NetQuantity:
        """Append the baseline, project and net steps; return the net."""
