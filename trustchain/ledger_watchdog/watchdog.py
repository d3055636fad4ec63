# -*- coding: utf-8 -*-
"""
Watchdog Scheduler - periodic forensic audits with a single-run guard

Drives the ForensicAuditorEngine from one background daemon thread:
``start()`` performs an immediate run and then one run per configured
interval until ``stop()``. A non-blocking lock guarantees at most one
audit at a time per scheduler; a run requested while another is
executing returns ``{"success": false, "error": "already running"}``
immediately instead of queueing, blocking or cancelling.

After each completed run the scheduler hands the report to the
AlertDispatcher, which alerts when tampered or errored records were
found. Alert delivery failures never fail the run.

The guard is process-local. Several processes need either independent
schedules or an external lock to avoid duplicate concurrent audits.

Example:
    >>> scheduler = WatchdogScheduler(auditor, dispatcher, config)
    >>> scheduler.start()
    True
    >>> scheduler.get_status().scheduled
    True
    >>> scheduler.stop()

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.alerting import AlertDispatcher
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, get_config
from trustchain.ledger_watchdog.forensic_auditor import ForensicAuditorEngine
from trustchain.ledger_watchdog.models import (
    ALREADY_RUNNING,
    AuditReport,
    RunOutcome,
    WatchdogRunResult,
    WatchdogStatus,
)

logger = logging.getLogger(__name__)


class WatchdogScheduler:
    """Periodic forensic audit runner."""

    def __init__(
        self,
        auditor: ForensicAuditorEngine,
        dispatcher: AlertDispatcher,
        config: Optional[LedgerWatchdogConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._auditor = auditor
        self._dispatcher = dispatcher
        self._config = config or get_config()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._run_guard = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.RLock()

        self._last_report: Optional[AuditReport] = None
        self._last_run_at: Optional[datetime] = None
        self._next_run_at: Optional[datetime] = None
        self._runs_completed = 0

    # ------------------------------------------------------------------
    # Schedule control
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start the schedule: one immediate run, then one per interval.

        Returns:
            False when the watchdog is disabled by configuration.
        """
        if not self._config.enabled:
            logger.info("Integrity watchdog disabled; not scheduling")
            return False
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return True
            # Each loop owns its event so a loop outliving stop() never resumes.
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(self._stop,),
                name="ledger-watchdog",
                daemon=True,
            )
            logger.info(
                "Integrity watchdog starting: interval=%dmin auto_heal=%s",
                self._config.interval_minutes, self._config.auto_heal,
            )
            self._thread.start()
        return True

    def stop(self, join: bool = True, timeout: Optional[float] = 5.0) -> None:
        """Cancel the schedule. A run already in progress completes."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop.set()
            self._next_run_at = None
        if join:
            thread.join(timeout=timeout)
        with self._lock:
            if self._thread is thread:
                self._thread = None
        logger.info("Integrity watchdog stopped")

    @property
    def is_scheduled(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def is_running(self) -> bool:
        """True while an audit run is executing."""
        return self._run_guard.locked()

    def _run_loop(self, stop: threading.Event) -> None:
        interval = self._config.interval_seconds
        while not stop.is_set():
            self.run_once()
            with self._lock:
                if stop.is_set():
                    break
                self._next_run_at = self._clock() + timedelta(seconds=interval)
            stop.wait(timeout=interval)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_once(
        self,
        auto_heal: Optional[bool] = None,
        alert: bool = True,
    ) -> WatchdogRunResult:
        """Run one audit unless another run is executing.

        Args:
            auto_heal: Override the configured auto-heal flag.
            alert: Hand the report to the alert dispatcher.

        Returns:
            WatchdogRunResult; ``success=False, error="already running"``
            when the guard is held.
        """
        if not self._run_guard.acquire(blocking=False):
            logger.warning("Watchdog run requested while another run is in progress")
            metrics.record_audit_run(RunOutcome.ALREADY_RUNNING.value)
            return WatchdogRunResult(
                success=False,
                outcome=RunOutcome.ALREADY_RUNNING,
                error=ALREADY_RUNNING,
            )

        heal = self._config.auto_heal if auto_heal is None else auto_heal
        metrics.set_run_in_progress("watchdog", True)
        try:
            try:
                report = self._auditor.run_audit(auto_heal=heal)
            except Exception as e:
                logger.error("Watchdog audit failed: %s", e, exc_info=True)
                metrics.record_audit_run(RunOutcome.FAILED.value)
                return WatchdogRunResult(
                    success=False, outcome=RunOutcome.FAILED, error=str(e),
                )

            alert_sent = self._dispatcher.alert_audit(report) if alert else False
            with self._lock:
                self._last_report = report
                self._last_run_at = report.completed_at or self._clock()
                self._runs_completed += 1
            return WatchdogRunResult(
                success=True,
                outcome=RunOutcome.COMPLETED,
                report=report,
                alert_sent=alert_sent,
            )
        finally:
            metrics.set_run_in_progress("watchdog", False)
            self._run_guard.release()

    def get_status(self) -> WatchdogStatus:
        with self._lock:
            return WatchdogStatus(
                enabled=self._config.enabled,
                scheduled=self._thread is not None and self._thread.is_alive(),
                run_in_progress=self.is_running,
                auto_heal=self._config.auto_heal,
                interval_minutes=self._config.interval_minutes,
                runs_completed=self._runs_completed,
                last_run_at=self._last_run_at,
                next_run_at=self._next_run_at,
                last_report=self._last_report,
            )

    @property
    def last_report(self) -> Optional[AuditReport]:
        with self._lock:
            return self._last_report


__all__ = ["WatchdogScheduler"]
