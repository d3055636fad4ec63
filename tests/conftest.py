# -*- coding: utf-8 -*-
"""
Shared fixtures for the TrustChain test suite.

Provides a temp-file sqlite relational store, an in-memory ledger, a
recording alert sender and the reference vehicle data set:

- NCR1234567: registered, engine "EN001" vs ledger "en001"    -> VERIFIED
- NCR7654321: registered, plate "ABC-111" vs ledger "ABC-999" -> TAMPERED
- NCR0000001: submitted, no owner assigned                    -> NOT_REGISTERED
"""

import threading
from typing import Any, Dict, List

import pytest

from trustchain.database import ConnectionConfig, DatabaseConnection
from trustchain.ledger_watchdog.alerting import AlertDispatcher
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, reset_config, set_config
from trustchain.ledger_watchdog.forensic_auditor import ForensicAuditorEngine
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.ledger_client import InMemoryLedgerClient
from trustchain.ledger_watchdog.provenance import ProvenanceTracker
from trustchain.ledger_watchdog.relational_store import SQLVehicleStore
from trustchain.ledger_watchdog.restoration_engine import RestorationEngine
from trustchain.ledger_watchdog.setup import LedgerWatchdogService, reset_service

VERIFIED_VIN = "NCR1234567"
TAMPERED_VIN = "NCR7654321"
UNREGISTERED_VIN = "NCR0000001"


class RecordingAlertSender:
    """AlertSender fake that keeps every alert it was given."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.alerts: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send_alert(self, subject: str, summary: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("smtp unavailable")
        with self._lock:
            self.alerts.append({"subject": subject, "summary": summary})


def ledger_payload(vin: str, **overrides: Any) -> Dict[str, Any]:
    """Ledger-side (camelCase) vehicle payload."""
    payload = {
        "vin": vin,
        "plateNumber": "NCR-123",
        "engineNumber": "EN001",
        "chassisNumber": "CH001",
        "make": "Toyota",
        "model": "Vios",
        "year": "2020",
        "owner": {"email": "juan@example.com", "firstName": "Juan", "lastName": "Dela Cruz"},
        "status": "REGISTERED",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep the config and service singletons out of test interactions."""
    reset_config()
    reset_service()
    yield
    reset_service()
    reset_config()


@pytest.fixture
def config(tmp_path):
    cfg = LedgerWatchdogConfig(
        database_url=str(tmp_path / "trustchain.db"),
        max_concurrent_checks=2,
        ledger_timeout_seconds=5.0,
        database_timeout_seconds=5.0,
        alert_email="ops@example.com",
    )
    set_config(cfg)
    return cfg


@pytest.fixture
def database(config):
    db = DatabaseConnection(ConnectionConfig(database=config.database_url, timeout=5.0))
    yield db
    db.close()


@pytest.fixture
def store(database, config):
    return SQLVehicleStore(
        database,
        eligible_statuses=config.eligible_status_set,
        inactive_statuses=config.inactive_status_set,
    )


@pytest.fixture
def ledger():
    return InMemoryLedgerClient()


@pytest.fixture
def seeded(store, ledger):
    """Insert the reference data set; returns VIN -> vehicle id."""
    juan = store.create_user("juan@example.com", "Juan", "Dela Cruz")
    maria = store.create_user("maria@example.com", "Maria", "Santos")

    ids = {
        VERIFIED_VIN: store.create_vehicle(
            VERIFIED_VIN, plate_number="NCR-123", engine_number="EN001",
            chassis_number="CH001", make="Toyota", model="Vios", year=2020,
            owner_id=juan, status="REGISTERED",
        ),
        TAMPERED_VIN: store.create_vehicle(
            TAMPERED_VIN, plate_number="ABC-111", engine_number="EN777",
            chassis_number="CH777", make="Honda", model="City", year=2019,
            owner_id=maria, status="REGISTERED",
        ),
        UNREGISTERED_VIN: store.create_vehicle(
            UNREGISTERED_VIN, plate_number="TMP-001", engine_number="EN900",
            chassis_number="CH900", make="Ford", model="Ranger", year=2023,
            status="SUBMITTED",
        ),
    }

    ledger.put_record(ledger_payload(VERIFIED_VIN, engineNumber="en001"), transaction_id="tx-verified")
    ledger.put_record(
        ledger_payload(
            TAMPERED_VIN, plateNumber="ABC-999", engineNumber="EN777",
            chassisNumber="CH777", make="Honda", model="City", year="2019",
            owner={"email": "maria@example.com", "firstName": "Maria", "lastName": "Santos"},
        ),
        transaction_id="tx-tampered",
    )
    return ids


@pytest.fixture
def provenance(config):
    return ProvenanceTracker(genesis=config.genesis_hash)


@pytest.fixture
def checker(store, ledger, config, provenance):
    engine = IntegrityCheckerEngine(store, ledger, config, provenance=provenance)
    yield engine
    engine.shutdown()


@pytest.fixture
def restorer(store, provenance):
    return RestorationEngine(store, provenance=provenance)


@pytest.fixture
def auditor(store, checker, restorer, config, provenance):
    return ForensicAuditorEngine(store, checker, restorer, config, provenance=provenance)


@pytest.fixture
def sender():
    return RecordingAlertSender()


@pytest.fixture
def dispatcher(sender, config):
    return AlertDispatcher(
        sender,
        alert_email=config.alert_email,
        sync_alert_email=config.effective_sync_alert_email,
    )


@pytest.fixture
def service(config, store, ledger, sender):
    """Facade wired to the test store, ledger and sender."""
    svc = LedgerWatchdogService(config=config, store=store, ledger=ledger, sender=sender)
    svc.startup()
    yield svc
    svc.shutdown()
