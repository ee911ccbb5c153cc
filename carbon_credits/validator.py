# -*- coding: utf-8 -*-
"""
Calculation Request Validator

Structural, methodology-specific and statistical checks on calculation
inputs. All functions are side-effect free.

Two validation styles are used:

- **Fail-fast gates** (:func:`validate_calculation_request`,
  :func:`validate_methodology_data`, :func:`validate_monitoring_period`,
  :func:`validate_baseline_data`, :func:`validate_uncertainty_factors`)
  raise on the first problem and are used as preconditions before any
  calculation or ledger write.
- **Aggregate-and-report** (:func:`validate_data_quality`) scores the
  monitoring document and returns every warning at once; it informs
  calculation but never blocks it.

Request check order (first failure wins):
    1. project_id present
    2. 0 < vintage_year <= current year + max_vintage_year_offset
    3. methodology_code present
    4. calculation_period start and end present
    5. calculation_period end after start
    6. data_quality_score in [0, 1] when given
    7. monitoring_data non-empty
    8. uncertainty_factors keys and ranges

Example:
    >>> from carbon_credits.validator import validate_uncertainty_factors
    >>> validate_uncertainty_factors({"sampling_error": 0.1})

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Mapping, Optional

from carbon_credits.config import CreditEngineConfig, get_config
from carbon_credits.data_quality import assess_data_quality
from carbon_credits.exceptions import (
    InvalidRequestError,
    MethodologyValidationError,
    UnsupportedMethodologyError,
)
from carbon_credits.methodologies import METHODOLOGIES, Methodology
from carbon_credits.models import (
    UNCERTAINTY_FACTOR_KEYS,
    CalculationRequest,
    ValidationResults,
)
from carbon_credits.utils import parse_timestamp, utcnow

logger = logging.getLogger(__name__)


def _lookup(code: str) -> Methodology:
    methodology = METHODOLOGIES.get(code)
    if methodology is None:
        raise UnsupportedMethodologyError(
            methodology_code=code, supported=sorted(METHODOLOGIES),
        )
    return methodology


def _is_unit_interval(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and 0.0 <= value <= 1.0
    )


# ---------------------------------------------------------------------------
# Fail-fast gates
# ---------------------------------------------------------------------------


def validate_calculation_request(
    request: CalculationRequest,
    config: Optional[CreditEngineConfig] = None,
    now: Optional[datetime] = None,
) -> None:
    """Check a request's structure; raise on the first problem.

    Args:
        request: Request to check.
        config: Supplies the vintage year window; defaults to the active
            configuration.
        now: Reference time for the vintage year window.

    Raises:
        InvalidRequestError: With the offending field and accepted values.
    """
    cfg = config or get_config()
    current_year = (now or utcnow()).year

    if not request.project_id or not request.project_id.strip():
        raise InvalidRequestError(
            message="project_id is required",
            field="project_id",
            expected="non-empty string",
            context={"missing": True},
        )

    max_year = current_year + cfg.max_vintage_year_offset
    if request.vintage_year <= 0 or request.vintage_year > max_year:
        raise InvalidRequestError(
            message=f"vintage_year {request.vintage_year} is out of range",
            field="vintage_year",
            expected=f"0 < vintage_year <= {max_year}",
        )

    if not request.methodology_code or not request.methodology_code.strip():
        raise InvalidRequestError(
            message="methodology_code is required",
            field="methodology_code",
            expected="one of " + ", ".join(sorted(METHODOLOGIES)),
            context={"missing": True},
        )

    period = request.calculation_period
    if period.start is None:
        raise InvalidRequestError(
            message="calculation_period.start is required",
            field="calculation_period.start",
            expected="RFC 3339 timestamp",
            context={"missing": True},
        )
    if period.end is None:
        raise InvalidRequestError(
            message="calculation_period.end is required",
            field="calculation_period.end",
            expected="RFC 3339 timestamp",
            context={"missing": True},
        )
    if period.end <= period.start:
        raise InvalidRequestError(
            message="calculation_period end must be after start",
            field="calculation_period.end",
            expected=f"after {period.start.isoformat()}",
        )

    score = request.data_quality_score
    if score is not None and not _is_unit_interval(score):
        raise InvalidRequestError(
            message="data_quality_score must be between 0 and 1",
            field="data_quality_score",
            expected="0 <= value <= 1",
        )

    if not request.monitoring_data:
        raise InvalidRequestError(
            message="monitoring_data is required",
            field="monitoring_data",
            expected="non-empty object",
            context={"missing": True},
        )

    if request.uncertainty_factors:
        validate_uncertainty_factors(request.uncertainty_factors)


def validate_methodology_data(
    methodology_code: str,
    monitoring_data: Mapping[str, Any],
    baseline_data: Optional[Mapping[str, Any]] = None,
) -> None:
    """Run the methodology's field and shape checks.

    Raises:
        UnsupportedMethodologyError: For an unknown code.
        MethodologyValidationError: On the first missing or invalid field.
    """
    methodology = _lookup(methodology_code)
    methodology.parse_inputs(monitoring_data, baseline_data or {})


def validate_monitoring_period(
    methodology_code: str,
    period: Any,
) -> float:
    """Check an embedded ``{start, end}`` period; return its length in days.

    Raises:
        UnsupportedMethodologyError: For an unknown code.
        MethodologyValidationError: If the period is missing, malformed,
            inverted or shorter than the methodology minimum.
    """
    methodology = _lookup(methodology_code)
    if not isinstance(period, Mapping):
        raise MethodologyValidationError(
            message="monitoring_period must include start and end dates",
            methodology_code=methodology_code,
            field="monitoring_period",
        )
    for key in ("start", "end"):
        if period.get(key) is None:
            raise MethodologyValidationError(
                message="monitoring_period must include start and end dates",
                methodology_code=methodology_code,
                field=f"monitoring_period.{key}",
            )

    start = parse_timestamp(period.get("start"))
    if start is None:
        raise MethodologyValidationError(
            message="invalid start date format in monitoring_period",
            methodology_code=methodology_code,
            field="monitoring_period.start",
        )
    end = parse_timestamp(period.get("end"))
    if end is None:
        raise MethodologyValidationError(
            message="invalid end date format in monitoring_period",
            methodology_code=methodology_code,
            field="monitoring_period.end",
        )
    if end <= start:
        raise MethodologyValidationError(
            message="monitoring_period end date must be after start date",
            methodology_code=methodology_code,
            field="monitoring_period.end",
        )

    days = (end - start).total_seconds() / 86400.0
    minimum = methodology.get_metadata().min_monitoring_period_days
    if days < minimum:
        raise MethodologyValidationError(
            message=(
                f"{methodology_code} requires minimum {minimum} days "
                f"monitoring period"
            ),
            methodology_code=methodology_code,
            field="monitoring_period",
        )
    return days


def validate_baseline_data(baseline_data: Mapping[str, Any]) -> None:
    """Pre-flight check of a baseline document.

    Requires ``baseline_scenario`` and a ``reference_period`` with
    parsable, ordered ``start`` and ``end``.

    Raises:
        InvalidRequestError: On the first missing or invalid field.
    """
    for key in ("baseline_scenario", "reference_period"):
        if key not in baseline_data:
            raise InvalidRequestError(
                message=f"baseline_data.{key} is required",
                field=f"baseline_data.{key}",
            )

    ref_period = baseline_data["reference_period"]
    if not isinstance(ref_period, Mapping) or not (
        ref_period.get("start") and ref_period.get("end")
    ):
        raise InvalidRequestError(
            message="reference_period must include start and end dates",
            field="baseline_data.reference_period",
            expected="{start, end} RFC 3339 timestamps",
        )

    start = parse_timestamp(ref_period.get("start"))
    end = parse_timestamp(ref_period.get("end"))
    if start is None or end is None:
        raise InvalidRequestError(
            message="invalid reference period date format",
            field="baseline_data.reference_period",
            expected="RFC 3339 timestamps",
        )
    if end < start:
        raise InvalidRequestError(
            message="reference_period end date must be after start date",
            field="baseline_data.reference_period.end",
            expected=f"not before {start.isoformat()}",
        )


def validate_uncertainty_factors(factors: Mapping[str, Any]) -> None:
    """Check factor names against the vocabulary and values against [0, 1].

    Raises:
        InvalidRequestError: For an unknown factor or out-of-range value.
    """
    for name, value in factors.items():
        if name not in UNCERTAINTY_FACTOR_KEYS:
            raise InvalidRequestError(
                message=f"unknown uncertainty factor: {name}",
                field=f"uncertainty_factors.{name}",
                expected="one of " + ", ".join(sorted(UNCERTAINTY_FACTOR_KEYS)),
            )
        if not _is_unit_interval(value):
            raise InvalidRequestError(
                message=f"uncertainty factor {name} must be between 0 and 1",
                field=f"uncertainty_factors.{name}",
                expected="0 <= value <= 1",
            )


# ---------------------------------------------------------------------------
# Aggregate-and-report
# ---------------------------------------------------------------------------


def validate_data_quality(
    monitoring_data: Mapping[str, Any],
    config: Optional[CreditEngineConfig] = None,
) -> ValidationResults:
    """Score monitoring data completeness, consistency and coverage.

    See :mod:`carbon_credits.data_quality` for the scoring rules.
    """
    results = assess_data_quality(monitoring_data, config)
    if not results.is_valid:
        logger.warning(
            "Monitoring data quality %.4f is below the invalid threshold",
            results.quality_score,
        )
    return results
