# -*- coding: utf-8 -*-
"""
Carbon Credit Calculation Engine

Orchestrates validate -> calculate -> persist for credit calculations and
implements recalculation with append-only supersession.

Registry:
    The immutable ``carbon_credits.methodologies.METHODOLOGIES`` mapping
    from methodology code to instance, built once at import and shared
    with the validation gates.

Operations:
    calculate_credits        Validate, calculate, write one CreditRecord
    recalculate_credits      New record from fresh monitoring data, then
                             cancel the original
    validate_calculation     Same validation chain, no calculation, no write
    get_supported_methodologies / get_methodology
    get_calculation_history  Newest first

Write semantics:
    Validation and calculation errors precede any ledger write. A
    calculation performs exactly one ``create``. Recalculation performs a
    ``create`` followed by an ``update``; these are not atomic. If the
    ``update`` fails, PartialRecalculationError names both records and the
    original must be cancelled by the caller to reconcile.

Example:
    >>> from carbon_credits.engine import CreditCalculationEngine
    >>> from carbon_credits.ledger import InMemoryCreditLedger
    >>> engine = CreditCalculationEngine(InMemoryCreditLedger())
    >>> [m.code for m in engine.get_supported_methodologies()]
    ['VM0007', 'VM0015', 'VM0033']

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from carbon_credits.config import CreditEngineConfig, get_config
from carbon_credits.data_quality import assess_data_quality, estimate_data_quality
from carbon_credits.exceptions import (
    CalculationError,
    CreditEngineError,
    IllegalStateTransitionError,
    InvalidRequestError,
    MethodologyValidationError,
    PartialRecalculationError,
    UnsupportedMethodologyError,
)
from carbon_credits.ledger import CreditLedger
from carbon_credits.methodologies import METHODOLOGIES, Methodology
from carbon_credits.metrics import MetricsCollector
from carbon_credits.models import (
    ALLOWED_TRANSITIONS,
    RECALCULABLE_STATUSES,
    CalculationPeriod,
    CalculationRequest,
    CalculationResult,
    CreditRecord,
    CreditStatus,
    MethodologyMetadata,
    ValidationIssue,
    ValidationResults,
)
from carbon_credits.provenance import ProvenanceTracker
from carbon_credits.validator import validate_calculation_request

logger = logging.getLogger(__name__)

SCORE_SUPPLIED = "supplied"
SCORE_ESTIMATED = "estimated"

_FAILURE_KINDS = (
    (InvalidRequestError, "invalid_request", "VALIDATION_ERROR"),
    (UnsupportedMethodologyError, "unsupported_methodology", "UNSUPPORTED_METHODOLOGY"),
    (MethodologyValidationError, "methodology_validation", "METHODOLOGY_VALIDATION_ERROR"),
    (CalculationError, "calculation", "CALCULATION_ERROR"),
)


def _failure_kind(exc: Exception) -> Optional[str]:
    for exc_type, kind, _ in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return None


def _issue_code(exc: Exception) -> str:
    for exc_type, _, code in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return code
    return "VALIDATION_ERROR"


class CreditCalculationEngine:
    """Methodology registry and credit calculation orchestrator.

    Stateless per call apart from the injected ledger, the provenance
    tracker and Prometheus metrics, each of which is internally locked.

    Args:
        ledger: Store the engine writes credit records to.
        config: Engine configuration; defaults to the active singleton.
            Its ``decimal_precision`` drives result rounding and its
            ``enable_metrics`` switches this engine's metrics collector.
        provenance: Provenance tracker; created from ``config`` when
            omitted and provenance is enabled.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        config: Optional[CreditEngineConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self._config = config or get_config()
        self._ledger = ledger
        self._methodologies: Mapping[str, Methodology] = METHODOLOGIES
        self._metrics = MetricsCollector(enabled=self._config.enable_metrics)
        if provenance is None and self._config.enable_provenance:
            provenance = ProvenanceTracker(genesis_hash=self._config.genesis_hash)
        self._provenance = provenance
        logger.info(
            "CreditCalculationEngine initialized with methodologies: %s",
            ", ".join(sorted(self._methodologies)),
        )

    @property
    def methodologies(self) -> Mapping[str, Methodology]:
        """Read-only registry keyed by methodology code."""
        return self._methodologies

    @property
    def provenance(self) -> Optional[ProvenanceTracker]:
        return self._provenance

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get_methodology(self, methodology_code: str) -> Methodology:
        """Look up a methodology by code.

        Raises:
            UnsupportedMethodologyError: If the code is not registered.
        """
        methodology = self._methodologies.get(methodology_code)
        if methodology is None:
            raise UnsupportedMethodologyError(
                methodology_code=methodology_code,
                supported=sorted(self._methodologies),
            )
        return methodology

    def get_supported_methodologies(self) -> List[MethodologyMetadata]:
        """Return metadata of every registered methodology, sorted by code."""
        return [
            self._methodologies[code].get_metadata()
            for code in sorted(self._methodologies)
        ]

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_credits(
        self,
        request: CalculationRequest,
        actor_id: str,
        supersedes_id: Optional[str] = None,
    ) -> CreditRecord:
        """Validate and calculate a request, then write a new CreditRecord.

        Args:
            request: Calculation request.
            actor_id: User or service creating the record.
            supersedes_id: Id of the record this one replaces, when called
                from recalculation.

        Returns:
            The stored record in status ``calculated``.

        Raises:
            InvalidRequestError: On structural validation failure.
            UnsupportedMethodologyError: For an unknown methodology code.
            MethodologyValidationError: On methodology field failure.
            CalculationError: On an arithmetic precondition violation.
            LedgerError: If the record cannot be written.
        """
        start = time.perf_counter()
        methodology_label = request.methodology_code or "unknown"
        self._metrics.inc_active()
        try:
            methodology = self._validate(request)
            methodology_label = methodology.code

            score_source = SCORE_SUPPLIED
            if request.data_quality_score is None:
                score_source = SCORE_ESTIMATED
                request = request.model_copy(update={
                    "data_quality_score": estimate_data_quality(
                        request.monitoring_data,
                    ),
                })

            result = methodology.calculate(
                request, places=self._config.decimal_precision,
            )
            record = self._build_record(
                request, result, actor_id, score_source, supersedes_id,
            )
            stored = self._ledger.create(record)
        except CreditEngineError as exc:
            kind = _failure_kind(exc)
            if kind is not None:
                self._metrics.record_validation_failure(kind)
                logger.warning(
                    "Credit calculation rejected for project %s (%s): %s",
                    request.project_id, kind, exc.message,
                )
            self._metrics.record_calculation(methodology_label, "failed")
            raise
        finally:
            self._metrics.dec_active()
            self._metrics.observe_duration(
                "calculate_credits", time.perf_counter() - start,
            )

        if self._provenance is not None:
            self._provenance.record(
                "calculation", "calculate", stored.id,
                data={
                    "methodology_code": stored.methodology_code,
                    "provenance_hash": result.provenance_hash,
                },
            )
            self._provenance.record(
                "credit", "create", stored.id,
                data={
                    "project_id": stored.project_id,
                    "vintage_year": stored.vintage_year,
                    "buffered_tons": stored.buffered_tons,
                    "supersedes_id": stored.supersedes_id,
                },
                metadata={"actor_id": actor_id},
            )
        self._metrics.record_calculation(methodology_label, "completed")
        self._metrics.record_buffered_tons(
            methodology_label, stored.buffered_tons,
        )
        self._metrics.observe_data_quality(
            methodology_label, stored.data_quality_score,
        )
        logger.info(
            "Credits calculated: id=%s project=%s methodology=%s "
            "calculated=%.4f buffered=%.4f dq=%.2f (%s)",
            stored.id,
            stored.project_id,
            stored.methodology_code,
            stored.calculated_tons,
            stored.buffered_tons,
            stored.data_quality_score,
            score_source,
        )
        return stored

    def recalculate_credits(
        self,
        credit_id: str,
        new_monitoring_data: Dict[str, Any],
        actor_id: str,
    ) -> CreditRecord:
        """Supersede a credit record with one calculated from new data.

        The original must be ``calculated`` or ``verified``. A new record
        carrying ``supersedes_id`` is written first, then the original is
        cancelled.

        Raises:
            CreditNotFoundError: If ``credit_id`` does not exist.
            IllegalStateTransitionError: If the original's status does not
                allow recalculation. Nothing is written.
            PartialRecalculationError: If the new record was written but
                the original could not be cancelled.
        """
        start = time.perf_counter()
        try:
            original = self._ledger.get_by_id(credit_id)
            if original.status not in RECALCULABLE_STATUSES:
                self._metrics.record_recalculation("illegal_state")
                logger.warning(
                    "Recalculation refused for credit %s in status %s",
                    credit_id, original.status.value,
                )
                raise IllegalStateTransitionError(
                    credit_id=original.id,
                    current_status=original.status.value,
                    target_status=CreditStatus.CANCELLED.value,
                    allowed=[
                        s.value for s in ALLOWED_TRANSITIONS[original.status]
                    ],
                )

            request = self._rebuild_request(original, new_monitoring_data)
            try:
                replacement = self.calculate_credits(
                    request, actor_id, supersedes_id=original.id,
                )
            except CreditEngineError:
                self._metrics.record_recalculation("failed")
                raise

            try:
                original.transition_to(CreditStatus.CANCELLED)
                self._ledger.update(original)
            except CreditEngineError as exc:
                self._metrics.record_recalculation("partial")
                logger.warning(
                    "Partial recalculation: new credit %s stored but "
                    "original %s not cancelled: %s",
                    replacement.id, original.id, exc,
                )
                raise PartialRecalculationError(
                    original_credit_id=original.id,
                    new_credit_id=replacement.id,
                    cause=exc,
                ) from exc
        finally:
            self._metrics.observe_duration(
                "recalculate_credits", time.perf_counter() - start,
            )

        if self._provenance is not None:
            self._provenance.record(
                "credit", "cancel", original.id,
                data={"superseded_by": replacement.id},
                metadata={"actor_id": actor_id},
            )
            self._provenance.record(
                "recalculation", "recalculate", replacement.id,
                data={
                    "original_credit_id": original.id,
                    "new_credit_id": replacement.id,
                    "calculated_tons": replacement.calculated_tons,
                    "buffered_tons": replacement.buffered_tons,
                },
                metadata={"actor_id": actor_id},
            )
        self._metrics.record_recalculation("superseded")
        logger.info(
            "Credits recalculated: original=%s cancelled, replacement=%s "
            "buffered=%.4f",
            original.id, replacement.id, replacement.buffered_tons,
        )
        return replacement

    def validate_calculation(self, request: CalculationRequest) -> ValidationResults:
        """Run the calculation validation chain without calculating.

        Errors are reported, never raised. Data-quality findings are
        attached as warnings and sub-scores.
        """
        start = time.perf_counter()
        try:
            self._validate(request)
        except (
            InvalidRequestError,
            UnsupportedMethodologyError,
            MethodologyValidationError,
        ) as exc:
            field = exc.context.get("field", "request")
            self._metrics.record_validation_failure(_failure_kind(exc))
            results = ValidationResults(
                is_valid=False,
                errors=[ValidationIssue(
                    field=field,
                    message=exc.message,
                    code=_issue_code(exc),
                )],
                missing_fields=[field] if exc.context.get("missing") else [],
                quality_score=0.0,
            )
        else:
            assessment = assess_data_quality(request.monitoring_data, self._config)
            warnings = list(assessment.warnings)
            warnings.extend(assessment.errors)
            score = request.data_quality_score
            if score is None:
                score = estimate_data_quality(request.monitoring_data)
            results = ValidationResults(
                is_valid=True,
                warnings=warnings,
                quality_score=score,
                completeness_score=assessment.completeness_score,
                consistency_score=assessment.consistency_score,
                temporal_score=assessment.temporal_score,
            )
        finally:
            self._metrics.observe_duration(
                "validate_calculation", time.perf_counter() - start,
            )

        if self._provenance is not None:
            self._provenance.record(
                "validation", "validate", request.project_id or "unidentified",
                data=results.model_dump(mode="json"),
            )
        return results

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_calculation_history(
        self,
        project_id: str,
        limit: int = 0,
    ) -> List[CreditRecord]:
        """Return a project's credit records, newest first.

        A non-positive ``limit`` means the configured default; limits
        above ``max_history_limit`` are capped.
        """
        if limit <= 0:
            limit = self._config.default_history_limit
        limit = min(limit, self._config.max_history_limit)
        return self._ledger.list_by_project(project_id, limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate(self, request: CalculationRequest) -> Methodology:
        validate_calculation_request(request, self._config)
        methodology = self.get_methodology(request.methodology_code)
        methodology.validate(request)
        return methodology

    def _build_record(
        self,
        request: CalculationRequest,
        result: CalculationResult,
        actor_id: str,
        score_source: str,
        supersedes_id: Optional[str],
    ) -> CreditRecord:
        period = request.calculation_period
        derived = {
            key: value for key, value in result.input_data.items()
            if key not in ("monitoring_data", "baseline_data")
        }
        calculation_inputs: Dict[str, Any] = copy.deepcopy({
            "monitoring_data": request.monitoring_data,
            "baseline_data": request.baseline_data,
            "project_parameters": request.project_parameters,
            "data_quality_score_source": score_source,
            "derived": derived,
            "buffer_rate": result.buffer_rate,
            "uncertainty_buffer": result.uncertainty_buffer,
            "metadata": result.metadata,
            "validation_results": result.validation_results,
        })
        return CreditRecord(
            project_id=request.project_id,
            vintage_year=request.vintage_year,
            calculation_period_start=period.start,
            calculation_period_end=period.end,
            methodology_code=result.methodology_code,
            calculated_tons=result.calculated_tons,
            buffered_tons=result.buffered_tons,
            data_quality_score=result.data_quality_score,
            calculation_steps=list(result.calculation_steps),
            calculation_inputs=calculation_inputs,
            uncertainty_factors=dict(request.uncertainty_factors or {}),
            baseline_scenario=copy.deepcopy(request.baseline_data),
            status=CreditStatus.CALCULATED,
            created_by=actor_id,
            provenance_hash=result.provenance_hash,
            supersedes_id=supersedes_id,
        )

    @staticmethod
    def _rebuild_request(
        original: CreditRecord,
        new_monitoring_data: Dict[str, Any],
    ) -> CalculationRequest:
        snapshot = original.calculation_inputs
        score: Optional[float] = None
        if snapshot.get("data_quality_score_source") == SCORE_SUPPLIED:
            score = original.data_quality_score
        return CalculationRequest(
            project_id=original.project_id,
            vintage_year=original.vintage_year,
            methodology_code=original.methodology_code,
            calculation_period=CalculationPeriod(
                start=original.calculation_period_start,
                end=original.calculation_period_end,
            ),
            monitoring_data=copy.deepcopy(new_monitoring_data),
            baseline_data=copy.deepcopy(
                snapshot.get("baseline_data", original.baseline_scenario),
            ),
            data_quality_score=score,
            uncertainty_factors=dict(original.uncertainty_factors) or None,
            project_parameters=copy.deepcopy(snapshot.get("project_parameters")),
        )
