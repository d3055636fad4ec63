# -*- coding: utf-8 -*-
"""Tests for the integrity REST router."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.conftest import TAMPERED_VIN, VERIFIED_VIN
from trustchain.ledger_watchdog.setup import configure_ledger_watchdog

PREFIX = "/api/v1/integrity"


@pytest.fixture
def client(service):
    app = FastAPI()
    configure_ledger_watchdog(app, service)
    with TestClient(app) as test_client:
        yield test_client


class TestCheckEndpoints:
    """Single-record checks."""

    def test_check_verified(self, client, seeded):
        """A matching record is VERIFIED."""
        response = client.get(f"{PREFIX}/check/{VERIFIED_VIN}")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "VERIFIED"
        assert data["transaction_id"] == "tx-verified"

    def test_check_normalizes_vin(self, client, seeded):
        """The VIN is trimmed and upper-cased."""
        data = client.get(f"{PREFIX}/check/ncr7654321").json()
        assert data["vin"] == TAMPERED_VIN
        assert data["status"] == "TAMPERED"
        assert data["transaction_id"] == "tx-tampered"

    def test_blank_vin(self, client):
        """A whitespace-only VIN is rejected."""
        response = client.get(f"{PREFIX}/check/%20")
        assert response.status_code == 400
        assert response.json()["detail"] == "VIN is required"

    def test_unknown_vin(self, client, seeded):
        """An unknown VIN yields an ERROR verdict."""
        data = client.get(f"{PREFIX}/check/NCR9999999").json()
        assert data["status"] == "ERROR"
        assert data["message"] == "Vehicle not found in database"

    def test_check_by_vehicle_id(self, client, seeded):
        """Records can be checked by internal id."""
        data = client.get(f"{PREFIX}/vehicle/{seeded[TAMPERED_VIN]}").json()
        assert data["status"] == "TAMPERED"
        assert data["vehicle_id"] == seeded[TAMPERED_VIN]


class TestBatchEndpoint:
    """Bounded batch checks by internal id."""

    def test_batch(self, client, seeded):
        """Every id is checked and summarized."""
        response = client.post(
            f"{PREFIX}/batch",
            json={"vehicle_ids": [seeded[VERIFIED_VIN], seeded[TAMPERED_VIN]]},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["checked"] == 2
        assert data["summary"] == {"VERIFIED": 1, "TAMPERED": 1}

    @pytest.mark.parametrize("ids", [[], ["  ", ""]])
    def test_empty_batch(self, client, ids):
        """An empty id list is rejected."""
        response = client.post(f"{PREFIX}/batch", json={"vehicle_ids": ids})
        assert response.status_code == 400

    def test_unknown_field_rejected(self, client):
        """Unexpected body fields fail validation."""
        response = client.post(f"{PREFIX}/batch", json={"vins": ["NCR1234567"]})
        assert response.status_code == 422


class TestOperatorEndpoints:
    """Sync, audit and watchdog endpoints."""

    def test_sync_run_and_status(self, client, seeded):
        """A sync run is reflected in the sync status."""
        data = client.post(f"{PREFIX}/sync-run").json()
        assert data["success"] is True
        assert data["report"]["mismatched"] == 1

        status = client.get(f"{PREFIX}/sync-status").json()
        assert status["is_running"] is False
        assert status["last_sync"]["run_id"] == data["report"]["run_id"]

    def test_audit_with_auto_heal(self, client, service, sender, seeded):
        """An audit body can enable auto-heal; operator audits do not alert."""
        data = client.post(f"{PREFIX}/audit", json={"auto_heal": True}).json()
        assert data["success"] is True
        assert data["report"]["restored"] == 1
        assert service.store.get_record(TAMPERED_VIN).plate_number == "ABC-999"
        assert sender.alerts == []

    def test_audit_without_body(self, client, seeded):
        """Without a body the configured auto-heal flag applies."""
        data = client.post(f"{PREFIX}/audit").json()
        assert data["report"]["auto_heal"] is False
        assert data["report"]["restored"] == 0

    def test_watchdog_run_and_status(self, client, sender, seeded):
        """A manual watchdog cycle alerts and updates the status."""
        data = client.post(f"{PREFIX}/watchdog/run").json()
        assert data["alert_sent"] is True
        assert len(sender.alerts) == 1

        status = client.get(f"{PREFIX}/watchdog/status").json()
        assert status["enabled"] is False
        assert status["scheduled"] is False
        assert status["runs_completed"] == 1

    def test_health(self, client):
        """Health reports the service state."""
        data = client.get(f"{PREFIX}/health").json()
        assert data["status"] == "healthy"
        assert data["service"] == "ledger_watchdog"
