# -*- coding: utf-8 -*-
"""
TC-LW-001: TrustChain Ledger Consistency Watchdog
=================================================

This package keeps the relational vehicle-registration store honest
against the append-only ledger that is its source of truth. It supports:

- Field-by-field comparison of a relational record against its ledger
  counterpart with a declarative field map (critical fields compared
  case-insensitively, non-critical fields exactly)
- On-demand integrity checks by VIN or internal id, and bounded batches
- Optional multi-peer ledger reads with per-field plurality consensus
- Forensic audits over every ledger-eligible record with optional
  auto-heal (transactional restoration of mutable fields from the ledger,
  with an append-only history entry)
- A periodic watchdog with a strict single-run guard and alerting
- An operator-triggered full sync report with capped discrepancy detail
- SHA-256 provenance chain tracking for checks, audits and restorations
- Prometheus metrics, a FastAPI router and a Typer CLI

Key Components:
    - config: LedgerWatchdogConfig with TC_WATCHDOG_ env prefix
    - field_mapping / comparator: Field map and RecordComparator
    - integrity_checker: IntegrityCheckerEngine
    - restoration_engine: RestorationEngine
    - forensic_auditor: ForensicAuditorEngine
    - watchdog: WatchdogScheduler
    - batch_sync: BatchSyncReporter
    - alerting: AlertDispatcher and the default LoggingAlertSender
    - relational_store / ledger_client / consensus: Port adapters
    - provenance: SHA-256 chain-hashed operation log
    - metrics: Prometheus metrics
    - setup: Service facade and FastAPI integration

Example:
    >>> from trustchain.ledger_watchdog import LedgerWatchdogService
    >>> service = LedgerWatchdogService()
    >>> service.startup()
    >>> verdict = service.check_by_key("NCR1234567")
    >>> print(verdict.status.value, verdict.message)

Agent ID: TC-LW-001
Agent Name: Ledger Consistency Watchdog

Author: TrustChain Platform Team
Status: Production Ready
"""

# ---------------------------------------------------------------------------
# Agent metadata constants
# ---------------------------------------------------------------------------

AGENT_ID = "TC-LW-001"
AGENT_NAME = "Ledger Consistency Watchdog"
AGENT_VERSION = "1.0.0"

__version__ = AGENT_VERSION
__agent_id__ = AGENT_ID
__agent_name__ = AGENT_NAME

VERSION = AGENT_VERSION

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.config import (
    LedgerWatchdogConfig,
    get_config,
    reset_config,
    set_config,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.models import (
    AuditReport,
    BatchCheckResult,
    ComparisonResult,
    FieldStatus,
    IntegrityStatus,
    IntegrityVerdict,
    LedgerRecord,
    PeerConsensus,
    RelationalRecord,
    RestorationEvent,
    RunOutcome,
    SyncReport,
    SyncRunResult,
    SyncStatus,
    WatchdogRunResult,
    WatchdogStatus,
)

# ---------------------------------------------------------------------------
# Field mapping and comparison
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.field_mapping import VEHICLE_FIELD_MAP, FieldMapping
from trustchain.ledger_watchdog.comparator import RecordComparator

# ---------------------------------------------------------------------------
# Provenance
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.provenance import ProvenanceTracker

# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.ledger_client import HttpLedgerClient, InMemoryLedgerClient
from trustchain.ledger_watchdog.consensus import MultiPeerLedgerClient
from trustchain.ledger_watchdog.relational_store import SQLVehicleStore
from trustchain.ledger_watchdog.alerting import AlertDispatcher, LoggingAlertSender

# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.restoration_engine import RestorationEngine
from trustchain.ledger_watchdog.forensic_auditor import ForensicAuditorEngine
from trustchain.ledger_watchdog.watchdog import WatchdogScheduler
from trustchain.ledger_watchdog.batch_sync import BatchSyncReporter

# ---------------------------------------------------------------------------
# Service setup facade
# ---------------------------------------------------------------------------
from trustchain.ledger_watchdog.setup import (
    LedgerWatchdogService,
    configure_ledger_watchdog,
    get_router,
    get_service,
    reset_service,
    set_service,
)

__all__ = [
    # Metadata
    "AGENT_ID",
    "AGENT_NAME",
    "AGENT_VERSION",
    "VERSION",
    # Configuration
    "LedgerWatchdogConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Models
    "AuditReport",
    "BatchCheckResult",
    "ComparisonResult",
    "FieldStatus",
    "IntegrityStatus",
    "IntegrityVerdict",
    "LedgerRecord",
    "PeerConsensus",
    "RelationalRecord",
    "RestorationEvent",
    "RunOutcome",
    "SyncReport",
    "SyncRunResult",
    "SyncStatus",
    "WatchdogRunResult",
    "WatchdogStatus",
    # Mapping and comparison
    "FieldMapping",
    "VEHICLE_FIELD_MAP",
    "RecordComparator",
    # Provenance
    "ProvenanceTracker",
    # Adapters
    "HttpLedgerClient",
    "InMemoryLedgerClient",
    "MultiPeerLedgerClient",
    "SQLVehicleStore",
    "AlertDispatcher",
    "LoggingAlertSender",
    # Engines
    "IntegrityCheckerEngine",
    "RestorationEngine",
    "ForensicAuditorEngine",
    "WatchdogScheduler",
    "BatchSyncReporter",
    # Service
    "LedgerWatchdogService",
    "configure_ledger_watchdog",
    "get_router",
    "get_service",
    "set_service",
    "reset_service",
]
