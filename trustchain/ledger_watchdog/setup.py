# -*- coding: utf-8 -*-
"""
Ledger Consistency Watchdog Service Setup

Provides the LedgerWatchdogService facade that wires the relational
store, the ledger client, the alert sender and the clock into the
engines (IntegrityChecker, RestorationEngine, ForensicAuditor,
WatchdogScheduler, BatchSyncReporter) behind a simple API suitable for
REST endpoint delegation and CLI use.

Collaborators are injected explicitly; anything not supplied is built
from LedgerWatchdogConfig:
    - store: SQLVehicleStore over ``database_url``
    - ledger: MultiPeerLedgerClient when multi-peer mode is enabled with
      ``ledger_peers``, HttpLedgerClient when ``ledger_gateway_url`` is
      set, otherwise an empty InMemoryLedgerClient
    - sender: LoggingAlertSender

Example:
    >>> from fastapi import FastAPI
    >>> from trustchain.ledger_watchdog.setup import configure_ledger_watchdog
    >>> app = FastAPI()
    >>> service = configure_ledger_watchdog(app)

Author: TrustChain Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from trustchain.database import ConnectionConfig, DatabaseConnection
from trustchain.ledger_watchdog.alerting import AlertDispatcher, LoggingAlertSender
from trustchain.ledger_watchdog.batch_sync import BatchSyncReporter
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, get_config
from trustchain.ledger_watchdog.consensus import MultiPeerLedgerClient
from trustchain.ledger_watchdog.forensic_auditor import ForensicAuditorEngine
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.ledger_client import HttpLedgerClient, InMemoryLedgerClient
from trustchain.ledger_watchdog.models import (
    BatchCheckResult,
    IntegrityVerdict,
    SyncRunResult,
    SyncStatus,
    WatchdogRunResult,
    WatchdogStatus,
)
from trustchain.ledger_watchdog.ports import AlertSender, LedgerClient, RelationalStore
from trustchain.ledger_watchdog.provenance import ProvenanceTracker
from trustchain.ledger_watchdog.relational_store import SQLVehicleStore
from trustchain.ledger_watchdog.restoration_engine import RestorationEngine
from trustchain.ledger_watchdog.watchdog import WatchdogScheduler

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def build_ledger_client(config: LedgerWatchdogConfig) -> LedgerClient:
    """Ledger client for the configured access mode."""
    if config.multi_peer_enabled and config.peer_urls:
        logger.info("Ledger access: multi-peer consensus over %d peers", len(config.peer_urls))
        return MultiPeerLedgerClient.from_urls(
            config.peer_urls, timeout=config.ledger_timeout_seconds,
        )
    if config.ledger_gateway_url:
        logger.info("Ledger access: gateway %s", config.ledger_gateway_url)
        return HttpLedgerClient(config.ledger_gateway_url, timeout=config.ledger_timeout_seconds)
    logger.warning("No ledger gateway configured; using an empty in-memory ledger")
    return InMemoryLedgerClient()


def build_store(config: LedgerWatchdogConfig) -> SQLVehicleStore:
    database = DatabaseConnection(ConnectionConfig(
        database=config.database_url,
        timeout=config.database_timeout_seconds,
    ))
    return SQLVehicleStore(
        database,
        eligible_statuses=config.eligible_status_set,
        inactive_statuses=config.inactive_status_set,
    )


class LedgerWatchdogService:
    """Facade service for the ledger-consistency watchdog.

    Attributes:
        config: LedgerWatchdogConfig in effect.
        store: Relational store port.
        ledger: Ledger client port.
        checker: IntegrityCheckerEngine instance.
        restorer: RestorationEngine instance.
        auditor: ForensicAuditorEngine instance.
        dispatcher: AlertDispatcher instance.
        scheduler: WatchdogScheduler instance.
        sync_reporter: BatchSyncReporter instance.
    """

    def __init__(
        self,
        config: Optional[LedgerWatchdogConfig] = None,
        store: Optional[RelationalStore] = None,
        ledger: Optional[LedgerClient] = None,
        sender: Optional[AlertSender] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or get_config()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.store = store if store is not None else build_store(self.config)
        self.ledger = ledger if ledger is not None else build_ledger_client(self.config)
        self.sender = sender if sender is not None else LoggingAlertSender()

        self.provenance: Optional[ProvenanceTracker] = (
            ProvenanceTracker(genesis=self.config.genesis_hash)
            if self.config.enable_provenance else None
        )
        self.checker = IntegrityCheckerEngine(
            self.store, self.ledger, self.config, provenance=self.provenance,
        )
        self.restorer = RestorationEngine(self.store, provenance=self.provenance)
        self.auditor = ForensicAuditorEngine(
            self.store, self.checker, self.restorer, self.config,
            provenance=self.provenance, clock=self._clock,
        )
        self.dispatcher = AlertDispatcher(
            self.sender,
            alert_email=self.config.alert_email,
            sync_alert_email=self.config.effective_sync_alert_email,
        )
        self.scheduler = WatchdogScheduler(
            self.auditor, self.dispatcher, self.config, clock=self._clock,
        )
        self.sync_reporter = BatchSyncReporter(
            self.store, self.checker, self.dispatcher, self.config,
            provenance=self.provenance, clock=self._clock,
        )

        self._started = False
        logger.info("LedgerWatchdogService created")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self, schedule: bool = True) -> None:
        """Mark the service started and schedule the watchdog if enabled.

        Args:
            schedule: False for one-shot callers (the CLI) that must not
                leave a background audit running.
        """
        self._started = True
        if schedule:
            self.scheduler.start()
        logger.info("LedgerWatchdogService started")

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.checker.shutdown()
        self._started = False
        logger.info("LedgerWatchdogService shutdown")

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_by_key(self, vin: str) -> IntegrityVerdict:
        return self.checker.check_by_key(vin)

    def check_by_id(self, vehicle_id: str) -> IntegrityVerdict:
        return self.checker.check_by_id(vehicle_id)

    def check_batch(self, vins: Sequence[str]) -> BatchCheckResult:
        return self.checker.check_batch(vins)

    def check_batch_by_ids(self, vehicle_ids: Sequence[str]) -> BatchCheckResult:
        return self.checker.check_batch_by_ids(vehicle_ids)

    # ------------------------------------------------------------------
    # Audits and sync
    # ------------------------------------------------------------------

    def run_forensic_audit(self, auto_heal: Optional[bool] = None) -> WatchdogRunResult:
        """Operator-triggered audit. Shares the watchdog guard; does not alert."""
        return self.scheduler.run_once(auto_heal=auto_heal, alert=False)

    def run_full_sync(self) -> SyncRunResult:
        return self.sync_reporter.run_full_sync()

    def get_sync_status(self) -> SyncStatus:
        return self.sync_reporter.get_sync_status()

    # ------------------------------------------------------------------
    # Watchdog
    # ------------------------------------------------------------------

    def start_watchdog(self) -> bool:
        return self.scheduler.start()

    def stop_watchdog(self) -> None:
        self.scheduler.stop()

    def run_watchdog_once(self) -> WatchdogRunResult:
        """Manual trigger of a scheduled-style run (alerts on findings)."""
        return self.scheduler.run_once()

    def get_watchdog_status(self) -> WatchdogStatus:
        return self.scheduler.get_status()

    # ------------------------------------------------------------------
    # Health & Statistics
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        """Return service health status.

        Returns:
            Dictionary with service status, watchdog state and ledger
            access mode.
        """
        return {
            "status": "healthy" if self._started else "starting",
            "service": "ledger_watchdog",
            "watchdog": {
                "enabled": self.config.enabled,
                "scheduled": self.scheduler.is_scheduled,
                "run_in_progress": self.scheduler.is_running,
            },
            "sync_in_progress": self.sync_reporter.is_running,
            "ledger": type(self.ledger).__name__,
            "multi_peer": self.checker.multi_peer_active,
            "timestamp": _utcnow().isoformat(),
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            "checks": self.checker.get_statistics(),
            "restorations": self.restorer.get_statistics(),
            "audits": self.auditor.get_statistics(),
            "alerts": self.dispatcher.get_statistics(),
            "provenance_entries": self.provenance.entry_count if self.provenance else 0,
            "timestamp": _utcnow().isoformat(),
        }


# ---------------------------------------------------------------------------
# Thread-safe singleton
# ---------------------------------------------------------------------------

_service_instance: Optional[LedgerWatchdogService] = None
_service_lock = threading.Lock()


def get_service(schedule: bool = True) -> LedgerWatchdogService:
    """Return the singleton LedgerWatchdogService, creating it if needed.

    ``schedule`` only applies when the singleton is created here.
    """
    global _service_instance
    if _service_instance is None:
        with _service_lock:
            if _service_instance is None:
                _service_instance = LedgerWatchdogService()
                _service_instance.startup(schedule=schedule)
    return _service_instance


def set_service(service: LedgerWatchdogService) -> None:
    """Replace the singleton (useful for testing)."""
    global _service_instance
    with _service_lock:
        _service_instance = service
    logger.info("LedgerWatchdogService replaced programmatically")


def reset_service() -> None:
    """Shut down and drop the singleton."""
    global _service_instance
    with _service_lock:
        if _service_instance is not None:
            _service_instance.shutdown()
        _service_instance = None


# ---------------------------------------------------------------------------
# FastAPI integration
# ---------------------------------------------------------------------------


def configure_ledger_watchdog(
    app: Any,
    service: Optional[LedgerWatchdogService] = None,
) -> LedgerWatchdogService:
    """Attach the service to ``app.state.ledger_watchdog_service`` and mount the router.

    Args:
        app: FastAPI application instance.
        service: Service to attach; defaults to the singleton.

    Returns:
        The configured LedgerWatchdogService.
    """
    from trustchain.ledger_watchdog.api.router import router

    service = service or get_service()
    app.state.ledger_watchdog_service = service
    app.include_router(router)
    logger.info("Ledger watchdog service configured on app")
    return service


def get_ledger_watchdog(app: Any) -> Optional[LedgerWatchdogService]:
    return getattr(app.state, "ledger_watchdog_service", None)


def get_router() -> Any:
    from trustchain.ledger_watchdog.api.router import router
    return router


__all__ = [
    "LedgerWatchdogService",
    "build_ledger_client",
    "build_store",
    "configure_ledger_watchdog",
    "get_ledger_watchdog",
    "get_router",
    "get_service",
    "set_service",
    "reset_service",
]
