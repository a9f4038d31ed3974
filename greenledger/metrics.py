# -*- coding: utf-8 -*-
"""
Prometheus Metrics - GreenLedger Reporting Pipeline

14 Prometheus metrics for emissions calculation, reporting, signing and
audit monitoring.

Metrics:
    1.  gl_ledger_calculations_total (Counter)
    2.  gl_ledger_calculation_duration_seconds (Histogram)
    3.  gl_ledger_factor_resolutions_total (Counter)
    4.  gl_ledger_reports_generated_total (Counter)
    5.  gl_ledger_report_render_failures_total (Counter)
    6.  gl_ledger_validation_issues_total (Counter)
    7.  gl_ledger_signature_operations_total (Counter)
    8.  gl_ledger_audit_write_failures_total (Counter)
    9.  gl_ledger_audit_entries_deleted_total (Counter)
    10. gl_ledger_cache_hits_total (Counter)
    11. gl_ledger_cache_misses_total (Counter)
    12. gl_ledger_external_search_requests_total (Counter)
    13. gl_ledger_batch_progress_percent (Gauge)
    14. gl_ledger_aggregations_total (Counter)

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Calculations count
ledger_calculations_total = Counter(
    "gl_ledger_calculations_total",
    "Total activity emission calculations performed",
    labelnames=["scope", "result"],
)

# 2. Calculation duration
ledger_calculation_duration_seconds = Histogram(
    "gl_ledger_calculation_duration_seconds",
    "Activity calculation duration in seconds",
    labelnames=["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
)

# 3. Factor resolutions by source kind
ledger_factor_resolutions_total = Counter(
    "gl_ledger_factor_resolutions_total",
    "Emission factor resolutions by source kind",
    labelnames=["kind", "source"],
)

# 4. Reports generated
ledger_reports_generated_total = Counter(
    "gl_ledger_reports_generated_total",
    "Total reports generated by standard and status",
    labelnames=["standard", "status"],
)

# 5. Render failures
ledger_report_render_failures_total = Counter(
    "gl_ledger_report_render_failures_total",
    "Total report rendering failures",
    labelnames=["standard", "format"],
)

# 6. Validation issues
ledger_validation_issues_total = Counter(
    "gl_ledger_validation_issues_total",
    "Validation issues raised by standard and severity",
    labelnames=["standard", "severity"],
)

# 7. Signature operations
ledger_signature_operations_total = Counter(
    "gl_ledger_signature_operations_total",
    "Signature operations by kind and result",
    labelnames=["operation", "result"],
)

# 8. Audit write failures
ledger_audit_write_failures_total = Counter(
    "gl_ledger_audit_write_failures_total",
    "Audit log entries that could not be written",
    labelnames=["action"],
)

# 9. Audit entries deleted
ledger_audit_entries_deleted_total = Counter(
    "gl_ledger_audit_entries_deleted_total",
    "Audit log entries deleted by retention cleanup",
)

# 10. Cache hits
ledger_cache_hits_total = Counter(
    "gl_ledger_cache_hits_total",
    "Total GreenLedger cache hits",
    labelnames=["namespace"],
)

# 11. Cache misses
ledger_cache_misses_total = Counter(
    "gl_ledger_cache_misses_total",
    "Total GreenLedger cache misses",
    labelnames=["namespace"],
)

# 12. External search requests
ledger_external_search_requests_total = Counter(
    "gl_ledger_external_search_requests_total",
    "External emission factor search requests by kind and result",
    labelnames=["kind", "result"],
)

# 13. Batch progress
ledger_batch_progress_percent = Gauge(
    "gl_ledger_batch_progress_percent",
    "Progress of the most recent batch report generation",
    labelnames=["project_id"],
)

# 14. CFP/CFO aggregations
ledger_aggregations_total = Counter(
    "gl_ledger_aggregations_total",
    "CFP and CFO aggregations performed",
    labelnames=["kind"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def _namespace(key: str) -> str:
    return key.split(":", 1)[0] if key else "unknown"


def record_calculation(scope: str, result: str, duration_seconds: float) -> None:
    """Record an activity calculation.

    Args:
        scope: Activity scope (scope1, scope2, scope3).
        result: "success" or "error".
        duration_seconds: Calculation duration in seconds.
    """
    ledger_calculations_total.labels(scope=scope, result=result).inc()
    ledger_calculation_duration_seconds.labels(operation="calculate").observe(
        duration_seconds,
    )


def record_batch_duration(duration_seconds: float) -> None:
    """Record the duration of a batch calculation."""
    ledger_calculation_duration_seconds.labels(operation="calculate_all").observe(
        duration_seconds,
    )


def record_factor_resolution(kind: str, source: str) -> None:
    """Record where an emission factor was resolved from.

    Args:
        kind: "activity" or "grid".
        source: cache, database, default, external, estimate, ...
    """
    ledger_factor_resolutions_total.labels(kind=kind, source=source).inc()


def record_report_generated(standard: str, status: str) -> None:
    """Record a persisted report."""
    ledger_reports_generated_total.labels(standard=standard, status=status).inc()


def record_render_failure(standard: str, fmt: str) -> None:
    """Record a report rendering failure."""
    ledger_report_render_failures_total.labels(standard=standard, format=fmt).inc()


def record_validation_issues(standard: str, errors: int, warnings: int) -> None:
    """Record validation issue counts for one validation run.

    Args:
        standard: Standard key.
        errors: Number of errors raised.
        warnings: Number of warnings raised.
    """
    if errors:
        ledger_validation_issues_total.labels(
            standard=standard, severity="error",
        ).inc(errors)
    if warnings:
        ledger_validation_issues_total.labels(
            standard=standard, severity="warning",
        ).inc(warnings)


def record_signature_operation(operation: str, result: str) -> None:
    """Record a sign, verify or revoke operation."""
    ledger_signature_operations_total.labels(
        operation=operation, result=result,
    ).inc()


def record_audit_write_failure(action: str) -> None:
    """Record an audit entry that could not be persisted."""
    ledger_audit_write_failures_total.labels(action=action).inc()


def record_audit_deleted(count: int) -> None:
    """Record audit entries removed by retention cleanup."""
    if count > 0:
        ledger_audit_entries_deleted_total.inc(count)


def record_cache_hit(key: str) -> None:
    """Record a cache hit for the namespace of ``key``."""
    ledger_cache_hits_total.labels(namespace=_namespace(key)).inc()


def record_cache_miss(key: str) -> None:
    """Record a cache miss for the namespace of ``key``."""
    ledger_cache_misses_total.labels(namespace=_namespace(key)).inc()


def record_external_search(kind: str, result: str) -> None:
    """Record an external search request.

    Args:
        kind: "factor", "grid" or "precursor".
        result: "success", "error", "fallback", "rate_limited" or "cached".
    """
    ledger_external_search_requests_total.labels(kind=kind, result=result).inc()


def update_batch_progress(project_id: str, progress: int) -> None:
    """Set the batch progress gauge for a project."""
    ledger_batch_progress_percent.labels(project_id=project_id).set(progress)


def record_aggregation(kind: str) -> None:
    """Record a CFP or CFO aggregation."""
    ledger_aggregations_total.labels(kind=kind).inc()


__all__ = [
    "record_calculation",
    "record_batch_duration",
    "record_factor_resolution",
    "record_report_generated",
    "record_render_failure",
    "record_validation_issues",
    "record_signature_operation",
    "record_audit_write_failure",
    "record_audit_deleted",
    "record_cache_hit",
    "record_cache_miss",
    "record_external_search",
    "update_batch_progress",
    "record_aggregation",
]
