# -*- coding: utf-8 -*-
"""
Forensic Auditor Engine - batch integrity audit with optional self-healing

Enumerates every relational record whose lifecycle status makes it
ledger-eligible, checks each one with the IntegrityCheckerEngine under
bounded concurrency (``max_concurrent_checks``) and aggregates an
AuditReport. With ``auto_heal`` enabled, every TAMPERED record is
restored from its ledger snapshot right after its check.

Failure isolation:
    - An exception while checking one record is counted under
      ``errors`` and never stops the remaining records.
    - A verdict carrying a soft error (ledger query failed) is counted
      under ``errors`` rather than under ``pending``.
    - A failed restoration is counted under ``restoration_failures``;
      the record stays in the tampered list with ``restored=False``.

The auditor never alerts. Alerting is decided by the scheduler, so ad-hoc
diagnostic audits stay silent.

Example:
    >>> auditor = ForensicAuditorEngine(store, checker, restorer, config)
    >>> report = auditor.run_audit(auto_heal=True)
    >>> report.restored
    1

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, get_config
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.models import (
    AuditReport,
    IntegrityStatus,
    IntegrityVerdict,
    RelationalRecord,
    TamperedSummary,
)
from trustchain.ledger_watchdog.ports import RelationalStore
from trustchain.ledger_watchdog.provenance import ProvenanceTracker
from trustchain.ledger_watchdog.restoration_engine import RestorationEngine

logger = logging.getLogger(__name__)


def _owner_name(verdict: IntegrityVerdict) -> Optional[str]:
    ledger = verdict.ledger_record
    if ledger is None or ledger.owner is None:
        return None
    name = " ".join(p for p in (ledger.owner.first_name, ledger.owner.last_name) if p)
    return name or None


class ForensicAuditorEngine:
    """Runs forensic audits over all ledger-eligible records."""

    def __init__(
        self,
        store: RelationalStore,
        checker: IntegrityCheckerEngine,
        restorer: RestorationEngine,
        config: Optional[LedgerWatchdogConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._checker = checker
        self._restorer = restorer
        self._config = config or get_config()
        self._provenance = provenance
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._statistics = {"audits": 0, "records_checked": 0, "tampered_found": 0, "restored": 0}

    def run_audit(self, auto_heal: bool = False) -> AuditReport:
        """Audit every ledger-eligible record.

        Args:
            auto_heal: Restore TAMPERED records from the ledger.

        Returns:
            AuditReport with aggregate counts and the tampered list.
        """
        start = time.monotonic()
        report = AuditReport(started_at=self._clock(), auto_heal=auto_heal)
        logger.info("Forensic audit %s started (auto_heal=%s)", report.run_id, auto_heal)

        try:
            records = self._store.list_eligible_records()
        except Exception as e:
            logger.error("Could not enumerate eligible records: %s", e, exc_info=True)
            metrics.record_error("store")
            report.errors += 1
            report.error_details.append(f"enumeration: {e}")
            return self._complete(report, start)

        workers = max(1, min(self._config.max_concurrent_checks, len(records)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="forensic-audit") as pool:
            futures = {
                pool.submit(self._audit_one, record, auto_heal): record for record in records
            }
            for future in as_completed(futures):
                record = futures[future]
                report.total_checked += 1
                try:
                    verdict, restored = future.result()
                except Exception as e:
                    logger.error("Audit of %s raised: %s", record.vin, e, exc_info=True)
                    metrics.record_error("unexpected")
                    report.errors += 1
                    report.error_details.append(f"{record.vin}: {e}")
                    continue
                self._tally(report, record, verdict, restored)

        return self._complete(report, start)

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._statistics)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _audit_one(
        self, record: RelationalRecord, auto_heal: bool,
    ) -> Tuple[IntegrityVerdict, Optional[bool]]:
        """Check one record and restore it when tampered and healing is on.

        Returns:
            (verdict, restored) where restored is None if no restoration
            was attempted.
        """
        verdict = self._checker.check_record(record)
        if not auto_heal or verdict.status != IntegrityStatus.TAMPERED:
            return verdict, None
        if verdict.ledger_record is None:
            return verdict, None
        consensus = verdict.consensus
        if consensus is not None and not all(f.has_majority for f in consensus.fields):
            logger.warning(
                "Skipping restoration of %s: ledger peers have no majority on %s",
                record.vin, consensus.discrepancies,
            )
            return verdict, None
        restored = self._restorer.restore(
            record.vin, verdict.ledger_record, transaction_id=verdict.transaction_id,
        )
        return verdict, restored

    def _tally(
        self,
        report: AuditReport,
        record: RelationalRecord,
        verdict: IntegrityVerdict,
        restored: Optional[bool],
    ) -> None:
        if verdict.has_error:
            report.errors += 1
            report.error_details.append(f"{record.vin}: {verdict.error}")
            return

        status = verdict.status
        if status == IntegrityStatus.VERIFIED:
            report.verified += 1
        elif status == IntegrityStatus.MISMATCH:
            report.mismatched += 1
        elif status in (IntegrityStatus.NOT_REGISTERED, IntegrityStatus.PENDING_BLOCKCHAIN):
            report.pending += 1
        elif status == IntegrityStatus.TAMPERED:
            report.tampered.append(TamperedSummary(
                vin=record.vin,
                vehicle_id=record.id,
                owner_email=record.owner_email,
                owner_name=_owner_name(verdict),
                mismatched_fields=verdict.mismatched_labels,
                transaction_id=verdict.transaction_id,
                restoration_attempted=restored is not None,
                restored=bool(restored),
            ))
            if restored:
                report.restored += 1
            elif restored is False:
                report.restoration_failures += 1

    def _complete(self, report: AuditReport, start: float) -> AuditReport:
        report.completed_at = self._clock()
        report.duration_seconds = round(time.monotonic() - start, 6)
        if self._provenance is not None:
            report.provenance_hash = self._provenance.record_operation(
                "forensic_audit",
                report.run_id,
                "audit",
                {
                    "total_checked": report.total_checked,
                    "verified": report.verified,
                    "mismatched": report.mismatched,
                    "pending": report.pending,
                    "tampered": [t.vin for t in report.tampered],
                    "restored": report.restored,
                    "restoration_failures": report.restoration_failures,
                    "errors": report.errors,
                },
            )
        with self._lock:
            self._statistics["audits"] += 1
            self._statistics["records_checked"] += report.total_checked
            self._statistics["tampered_found"] += report.tampered_count
            self._statistics["restored"] += report.restored
        metrics.record_audit_run("completed")
        metrics.set_last_audit_tampered(report.tampered_count)
        metrics.observe_duration("forensic_audit", report.duration_seconds)
        logger.info(
            "Forensic audit %s completed in %.2fs: checked=%d verified=%d mismatched=%d "
            "pending=%d tampered=%d restored=%d restoration_failures=%d errors=%d",
            report.run_id, report.duration_seconds, report.total_checked, report.verified,
            report.mismatched, report.pending, report.tampered_count, report.restored,
            report.restoration_failures, report.errors,
        )
        return report


__all__ = ["ForensicAuditorEngine"]
