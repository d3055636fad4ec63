# -*- coding: utf-8 -*-
"""
Batch Sync Reporter - operator-triggered full sync check

Runs the integrity checker over every "active" relational record
(status not in ``inactive_statuses``) and produces a SyncReport for a
one-shot operator sync. It has its own single-run guard, independent of
the watchdog scheduler's guard.

Classification per record:
    - VERIFIED                                   -> matched
    - TAMPERED / MISMATCH                        -> mismatched (discrepancy)
    - NOT_REGISTERED / PENDING_BLOCKCHAIN with a
      ledger-eligible status                     -> not_on_ledger (discrepancy)
    - NOT_REGISTERED / PENDING_BLOCKCHAIN
      otherwise                                  -> pending
    - check failed or carries an error           -> errors

Detailed discrepancies are capped at ``sync_max_discrepancies`` (in
record order) to keep alert messages bounded; the aggregate counts always
cover every record.

Example:
    >>> reporter = BatchSyncReporter(store, checker, dispatcher, config)
    >>> result = reporter.run_full_sync()
    >>> result.report.total_discrepancies
    2

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.alerting import AlertDispatcher
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, get_config
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.models import (
    ALREADY_RUNNING,
    IntegrityStatus,
    IntegrityVerdict,
    RelationalRecord,
    RunOutcome,
    SyncDiscrepancy,
    SyncDiscrepancyStatus,
    SyncReport,
    SyncRunResult,
    SyncStatus,
)
from trustchain.ledger_watchdog.ports import RelationalStore
from trustchain.ledger_watchdog.provenance import ProvenanceTracker

logger = logging.getLogger(__name__)


class BatchSyncReporter:
    """On-demand full sync with its own in-progress guard."""

    def __init__(
        self,
        store: RelationalStore,
        checker: IntegrityCheckerEngine,
        dispatcher: AlertDispatcher,
        config: Optional[LedgerWatchdogConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._checker = checker
        self._dispatcher = dispatcher
        self._config = config or get_config()
        self._provenance = provenance
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._eligible = set(self._config.eligible_status_set)

        self._run_guard = threading.Lock()
        self._lock = threading.Lock()
        self._last_sync: Optional[SyncReport] = None
        self._last_sync_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._run_guard.locked()

    def run_full_sync(self, alert: bool = True) -> SyncRunResult:
        """Check every active record unless a sync is already running."""
        if not self._run_guard.acquire(blocking=False):
            logger.warning("Full sync requested while another sync is in progress")
            metrics.record_sync_run(RunOutcome.ALREADY_RUNNING.value)
            return SyncRunResult(
                success=False,
                outcome=RunOutcome.ALREADY_RUNNING,
                error=ALREADY_RUNNING,
            )

        metrics.set_run_in_progress("sync", True)
        try:
            try:
                report = self._sync()
            except Exception as e:
                logger.error("Full sync failed: %s", e, exc_info=True)
                metrics.record_sync_run(RunOutcome.FAILED.value)
                return SyncRunResult(success=False, outcome=RunOutcome.FAILED, error=str(e))

            metrics.record_sync_run(RunOutcome.COMPLETED.value)
            with self._lock:
                self._last_sync = report
                self._last_sync_at = report.completed_at
            alert_sent = self._dispatcher.alert_sync(report) if alert else False
            return SyncRunResult(
                success=True,
                outcome=RunOutcome.COMPLETED,
                report=report,
                alert_sent=alert_sent,
            )
        finally:
            metrics.set_run_in_progress("sync", False)
            self._run_guard.release()

    def get_sync_status(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                is_running=self.is_running,
                last_sync_at=self._last_sync_at,
                last_sync=self._last_sync,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _sync(self) -> SyncReport:
        start = time.monotonic()
        report = SyncReport(started_at=self._clock())
        records = self._store.list_active_records()
        logger.info("Full sync %s started: %d active records", report.run_id, len(records))

        workers = max(1, min(self._config.max_concurrent_checks, len(records)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="full-sync") as pool:
            futures = [(record, pool.submit(self._checker.check_record, record)) for record in records]
            for record, future in futures:
                report.total_records += 1
                try:
                    verdict = future.result()
                except Exception as e:
                    logger.error("Sync check of %s raised: %s", record.vin, e, exc_info=True)
                    metrics.record_error("unexpected")
                    report.errors += 1
                    continue
                self._tally(report, record, verdict)

        report.completed_at = self._clock()
        report.duration_seconds = round(time.monotonic() - start, 6)
        if self._provenance is not None:
            report.provenance_hash = self._provenance.record_operation(
                "full_sync",
                report.run_id,
                "sync",
                {
                    "total_records": report.total_records,
                    "matched": report.matched,
                    "mismatched": report.mismatched,
                    "not_on_ledger": report.not_on_ledger,
                    "pending": report.pending,
                    "errors": report.errors,
                },
            )
        metrics.observe_duration("full_sync", report.duration_seconds)
        logger.info(
            "Full sync %s completed in %.2fs: total=%d matched=%d mismatched=%d "
            "not_on_ledger=%d pending=%d errors=%d",
            report.run_id, report.duration_seconds, report.total_records, report.matched,
            report.mismatched, report.not_on_ledger, report.pending, report.errors,
        )
        return report

    def _tally(self, report: SyncReport, record: RelationalRecord, verdict: IntegrityVerdict) -> None:
        if verdict.has_error:
            report.errors += 1
            return

        status = verdict.status
        if status == IntegrityStatus.VERIFIED:
            report.matched += 1
            return
        if status in (IntegrityStatus.TAMPERED, IntegrityStatus.MISMATCH):
            report.mismatched += 1
            self._add_discrepancy(report, SyncDiscrepancy(
                vin=record.vin,
                vehicle_id=record.id,
                status=SyncDiscrepancyStatus(status.value),
                record_status=record.status,
                owner_email=record.owner_email,
                mismatched_fields=verdict.mismatched_labels,
                message=verdict.message,
            ))
            return
        if record.status.upper() in self._eligible:
            report.not_on_ledger += 1
            self._add_discrepancy(report, SyncDiscrepancy(
                vin=record.vin,
                vehicle_id=record.id,
                status=SyncDiscrepancyStatus.NOT_ON_LEDGER,
                record_status=record.status,
                owner_email=record.owner_email,
                message=verdict.message,
            ))
            return
        report.pending += 1

    def _add_discrepancy(self, report: SyncReport, discrepancy: SyncDiscrepancy) -> None:
        if len(report.discrepancies) < self._config.sync_max_discrepancies:
            report.discrepancies.append(discrepancy)
        else:
            report.discrepancies_truncated = True


__all__ = ["BatchSyncReporter"]
