# -*- coding: utf-8 -*-
"""
Prometheus Metrics - Carbon Credit Calculation Engine

7 Prometheus metrics for credit engine monitoring. Each MetricsCollector
carries its own enable flag; the engine builds one from the
``enable_metrics`` setting of its injected CreditEngineConfig.

All metric names use the ``gl_cc_`` prefix (GreenLang Carbon Credits) for
consistent identification in Prometheus queries, Grafana dashboards,
and alerting rules across the GreenLang platform.

Metrics:
    1. gl_cc_calculations_total            (Counter,   labels: methodology, status)
    2. gl_cc_buffered_tons_total           (Counter,   labels: methodology)
    3. gl_cc_validation_failures_total     (Counter,   labels: kind)
    4. gl_cc_recalculations_total          (Counter,   labels: outcome)
    5. gl_cc_operation_duration_seconds    (Histogram, labels: operation)
    6. gl_cc_data_quality_score            (Histogram, labels: methodology)
    7. gl_cc_active_calculations           (Gauge)

Label Values Reference:
    methodology:
        VM0007, VM0015, VM0033, unknown.
    status:
        completed, failed.
    kind:
        invalid_request, unsupported_methodology, methodology_validation,
        calculation.
    outcome:
        superseded, illegal_state, partial, failed.
    operation:
        calculate_credits, recalculate_credits, validate_calculation.

Example:
    >>> from carbon_credits.metrics import MetricsCollector
    >>> metrics = MetricsCollector(enabled=True)
    >>> metrics.record_calculation("VM0007", "completed")
    >>> metrics.observe_duration("calculate_credits", 0.012)

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

from carbon_credits.config import get_config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Calculation events by methodology and completion status
cc_calculations_total = Counter(
    "gl_cc_calculations_total",
    "Total carbon credit calculations performed",
    labelnames=["methodology", "status"],
)

# 2. Cumulative buffered tonnage written to the ledger
cc_buffered_tons_total = Counter(
    "gl_cc_buffered_tons_total",
    "Cumulative buffered tCO2e written to the credit ledger by methodology",
    labelnames=["methodology"],
)

# 3. Rejected requests by error kind
cc_validation_failures_total = Counter(
    "gl_cc_validation_failures_total",
    "Total calculation requests rejected by validation or calculation",
    labelnames=["kind"],
)

# 4. Recalculation attempts by outcome
cc_recalculations_total = Counter(
    "gl_cc_recalculations_total",
    "Total credit recalculations by outcome",
    labelnames=["outcome"],
)

# 5. Duration of engine operations
cc_operation_duration_seconds = Histogram(
    "gl_cc_operation_duration_seconds",
    "Duration of carbon credit engine operations in seconds",
    labelnames=["operation"],
    buckets=(
        0.001, 0.005, 0.01, 0.025, 0.05, 0.1,
        0.25, 0.5, 1.0, 2.5, 5.0,
    ),
)

# 6. Distribution of data-quality scores used in calculations
cc_data_quality_score = Histogram(
    "gl_cc_data_quality_score",
    "Data-quality score applied to credit calculations",
    labelnames=["methodology"],
    buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
)

# 7. Calculations currently in progress
cc_active_calculations = Gauge(
    "gl_cc_active_calculations",
    "Number of carbon credit calculations currently in progress",
)


# ---------------------------------------------------------------------------
# MetricsCollector facade
# ---------------------------------------------------------------------------


class MetricsCollector:
    """Facade for recording credit engine Prometheus metrics.

    Every method is a no-op when the collector is disabled.

    Args:
        enabled: Recording switch. When None the collector follows
            ``enable_metrics`` of the active configuration at call time.

    Example:
        >>> metrics = MetricsCollector(enabled=False)
        >>> metrics.record_validation_failure("invalid_request")  # no-op
    """

    def __init__(self, enabled: Optional[bool] = None) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            return get_config().enable_metrics
        return self._enabled

    def record_calculation(self, methodology: str, status: str) -> None:
        """Record a credit calculation event.

        Args:
            methodology: Methodology code, or ``unknown``.
            status: ``completed`` or ``failed``.
        """
        if not self.enabled:
            return
        cc_calculations_total.labels(
            methodology=methodology,
            status=status,
        ).inc()

    def record_buffered_tons(self, methodology: str, tons: float) -> None:
        """Add buffered tonnage written to the ledger.

        Args:
            methodology: Methodology code.
            tons: Buffered tCO2e of the new record; non-positive values
                are ignored since counters only increase.
        """
        if not self.enabled or tons <= 0:
            return
        cc_buffered_tons_total.labels(methodology=methodology).inc(tons)

    def record_validation_failure(self, kind: str) -> None:
        """Record a rejected request.

        Args:
            kind: Error kind label.
        """
        if not self.enabled:
            return
        cc_validation_failures_total.labels(kind=kind).inc()

    def record_recalculation(self, outcome: str) -> None:
        """Record the outcome of a recalculation attempt."""
        if not self.enabled:
            return
        cc_recalculations_total.labels(outcome=outcome).inc()

    def observe_duration(self, operation: str, seconds: float) -> None:
        """Record the duration of an engine operation.

        Args:
            operation: Operation name.
            seconds: Wall-clock time in seconds.
        """
        if not self.enabled:
            return
        cc_operation_duration_seconds.labels(
            operation=operation,
        ).observe(seconds)

    def observe_data_quality(self, methodology: str, score: float) -> None:
        """Record the data-quality score applied to a calculation."""
        if not self.enabled:
            return
        cc_data_quality_score.labels(methodology=methodology).observe(score)

    def inc_active(self) -> None:
        if not self.enabled:
            return
        cc_active_calculations.inc()

    def dec_active(self) -> None:
        if not self.enabled:
            return
        cc_active_calculations.dec()


__all__ = [
    "cc_calculations_total",
    "cc_buffered_tons_total",
    "cc_validation_failures_total",
    "cc_recalculations_total",
    "cc_operation_duration_seconds",
    "cc_data_quality_score",
    "cc_active_calculations",
    "MetricsCollector",
]
