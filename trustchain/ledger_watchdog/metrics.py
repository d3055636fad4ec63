# -*- coding: utf-8 -*-
"""
Prometheus Metrics - Ledger Consistency Watchdog

12 Prometheus metrics for the ledger-consistency watchdog. Engines call
the helper functions below and never touch metric objects directly.

Metrics:
    1.  tc_lw_checks_performed_total (Counter, labels: status)
    2.  tc_lw_tampered_detected_total (Counter)
    3.  tc_lw_restorations_total (Counter, labels: result)
    4.  tc_lw_audit_runs_total (Counter, labels: outcome)
    5.  tc_lw_sync_runs_total (Counter, labels: outcome)
    6.  tc_lw_alerts_total (Counter, labels: kind, result)
    7.  tc_lw_ledger_query_errors_total (Counter, labels: error_type)
    8.  tc_lw_peer_discrepancies_total (Counter)
    9.  tc_lw_processing_duration_seconds (Histogram, labels: operation)
    10. tc_lw_last_audit_tampered (Gauge)
    11. tc_lw_run_in_progress (Gauge, labels: kind)
    12. tc_lw_processing_errors_total (Counter, labels: error_type)

Author: TrustChain Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Integrity checks performed by resulting status
lw_checks_performed_total = Counter(
    "tc_lw_checks_performed_total",
    "Total integrity checks performed",
    labelnames=["status"],
)

# 2. Tampered records detected
lw_tampered_detected_total = Counter(
    "tc_lw_tampered_detected_total",
    "Total records classified TAMPERED",
)

# 3. Restorations by result
lw_restorations_total = Counter(
    "tc_lw_restorations_total",
    "Total restorations from ledger truth",
    labelnames=["result"],
)

# 4. Forensic audit runs by outcome
lw_audit_runs_total = Counter(
    "tc_lw_audit_runs_total",
    "Total forensic audit runs",
    labelnames=["outcome"],
)

# 5. Full sync runs by outcome
lw_sync_runs_total = Counter(
    "tc_lw_sync_runs_total",
    "Total on-demand full sync runs",
    labelnames=["outcome"],
)

# 6. Alerts by kind and delivery result
lw_alerts_total = Counter(
    "tc_lw_alerts_total",
    "Total alerts handed to the alert sender",
    labelnames=["kind", "result"],
)

# 7. Ledger query failures by type
lw_ledger_query_errors_total = Counter(
    "tc_lw_ledger_query_errors_total",
    "Total ledger query failures",
    labelnames=["error_type"],
)

# 8. Inter-peer discrepancies
lw_peer_discrepancies_total = Counter(
    "tc_lw_peer_discrepancies_total",
    "Total checks where ledger peers disagreed with each other",
)

# 9. Processing duration histogram by operation
lw_processing_duration_seconds = Histogram(
    "tc_lw_processing_duration_seconds",
    "Ledger watchdog processing duration in seconds",
    labelnames=["operation"],
    buckets=(
        0.01, 0.05, 0.1, 0.5, 1.0,
        5.0, 10.0, 30.0, 60.0, 300.0,
    ),
)

# 10. Tampered count of the last audit
lw_last_audit_tampered = Gauge(
    "tc_lw_last_audit_tampered",
    "Number of tampered records found by the last audit",
)

# 11. Guarded run currently executing
lw_run_in_progress = Gauge(
    "tc_lw_run_in_progress",
    "1 while a guarded run is executing",
    labelnames=["kind"],
)

# 12. Processing errors by error type
lw_processing_errors_total = Counter(
    "tc_lw_processing_errors_total",
    "Total per-entity processing errors",
    labelnames=["error_type"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_check(status: str) -> None:
    """Record an integrity check.

    Args:
        status: Resulting IntegrityStatus value.
    """
    lw_checks_performed_total.labels(status=status).inc()
    if status == "TAMPERED":
        lw_tampered_detected_total.inc()


def record_restoration(result: str) -> None:
    """Record a restoration attempt.

    Args:
        result: ``success`` or ``failure``.
    """
    lw_restorations_total.labels(result=result).inc()


def record_audit_run(outcome: str) -> None:
    lw_audit_runs_total.labels(outcome=outcome).inc()


def record_sync_run(outcome: str) -> None:
    lw_sync_runs_total.labels(outcome=outcome).inc()


def record_alert(kind: str, result: str) -> None:
    """Record an alert delivery attempt.

    Args:
        kind: ``watchdog`` or ``sync``.
        result: ``sent`` or ``failed``.
    """
    lw_alerts_total.labels(kind=kind, result=result).inc()


def record_ledger_error(error_type: str) -> None:
    lw_ledger_query_errors_total.labels(error_type=error_type).inc()


def record_peer_discrepancy() -> None:
    lw_peer_discrepancies_total.inc()


def observe_duration(operation: str, duration: float) -> None:
    """Record processing duration for an operation.

    Args:
        operation: Operation name (integrity_check, forensic_audit,
            restoration, full_sync).
        duration: Duration in seconds.
    """
    lw_processing_duration_seconds.labels(operation=operation).observe(duration)


def set_last_audit_tampered(count: int) -> None:
    lw_last_audit_tampered.set(count)


def set_run_in_progress(kind: str, running: bool) -> None:
    lw_run_in_progress.labels(kind=kind).set(1 if running else 0)


def record_error(error_type: str) -> None:
    """Record a per-entity processing error.

    Args:
        error_type: Error classification (ledger_timeout, ledger_query,
            store_timeout, store, unexpected).
    """
    lw_processing_errors_total.labels(error_type=error_type).inc()


__all__ = [
    # Metric objects
    "lw_checks_performed_total",
    "lw_tampered_detected_total",
    "lw_restorations_total",
    "lw_audit_runs_total",
    "lw_sync_runs_total",
    "lw_alerts_total",
    "lw_ledger_query_errors_total",
    "lw_peer_discrepancies_total",
    "lw_processing_duration_seconds",
    "lw_last_audit_tampered",
    "lw_run_in_progress",
    "lw_processing_errors_total",
    # Helper functions
    "record_check",
    "record_restoration",
    "record_audit_run",
    "record_sync_run",
    "record_alert",
    "record_ledger_error",
    "record_peer_discrepancy",
    "observe_duration",
    "set_last_audit_tampered",
    "set_run_in_progress",
    "record_error",
]
