# -*- coding: utf-8 -*-
"""Tests for IntegrityCheckerEngine."""

import threading
import time
from dataclasses import replace

from tests.conftest import TAMPERED_VIN, UNREGISTERED_VIN, VERIFIED_VIN, ledger_payload
from trustchain.exceptions import DatabaseError
from trustchain.ledger_watchdog.consensus import MultiPeerLedgerClient
from trustchain.ledger_watchdog.integrity_checker import IntegrityCheckerEngine
from trustchain.ledger_watchdog.ledger_client import InMemoryLedgerClient
from trustchain.ledger_watchdog.models import FieldStatus, IntegrityStatus


class SlowLedger(InMemoryLedgerClient):
    """Ledger fake whose record queries take ``delay`` seconds."""

    def __init__(self, delay: float):
        super().__init__("slow")
        self.delay = delay

    def get_record(self, vin):
        time.sleep(self.delay)
        return super().get_record(vin)


class BrokenStore:
    """Relational store fake whose reads always fail."""

    def get_record(self, vin):
        raise DatabaseError("connection refused")

    def get_record_by_id(self, vehicle_id):
        raise DatabaseError("connection refused")


class TestReferenceScenarios:
    """The reference data set classifies as documented."""

    def test_case_only_difference_verified(self, checker, seeded):
        """engine EN001 vs ledger en001 is VERIFIED."""
        verdict = checker.check_by_key(VERIFIED_VIN)
        assert verdict.status == IntegrityStatus.VERIFIED
        assert verdict.vehicle_id == seeded[VERIFIED_VIN]
        assert verdict.transaction_id == "tx-verified"
        assert verdict.error is None

    def test_numeric_ledger_value_compared_as_text(self, store, ledger, checker, seeded):
        """A ledger number matches the same digits stored as text."""
        store.create_vehicle(
            "NCR5550002", plate_number="NCR-555", engine_number="1001",
            chassis_number="CH555", make="Toyota", model="Vios", year=2020,
            status="REGISTERED",
        )
        ledger.put_record(ledger_payload(
            "NCR5550002", plateNumber="NCR-555", engineNumber=1001,
            chassisNumber="CH555", owner=None,
        ))
        verdict = checker.check_by_key("NCR5550002")
        assert verdict.status == IntegrityStatus.VERIFIED
        assert verdict.error is None
        engine = next(c for c in verdict.comparisons if c.field == "engine_number")
        assert engine.matches is True

    def test_plate_difference_tampered(self, checker, seeded):
        """plate ABC-111 vs ledger ABC-999 is TAMPERED."""
        verdict = checker.check_by_key(TAMPERED_VIN)
        assert verdict.status == IntegrityStatus.TAMPERED
        plate = next(c for c in verdict.comparisons if c.field == "plate_number")
        assert plate.matches is False
        assert plate.status == FieldStatus.TAMPERED
        assert plate.relational_value == "ABC-111"
        assert plate.ledger_value == "ABC-999"
        assert verdict.mismatched_labels == ["Plate Number"]
        assert verdict.ledger_record is not None

    def test_pre_ledger_without_owner_not_registered(self, checker, ledger, seeded):
        """A SUBMITTED record without owner is NOT_REGISTERED with no ledger call."""
        verdict = checker.check_by_key(UNREGISTERED_VIN)
        assert verdict.status == IntegrityStatus.NOT_REGISTERED
        assert UNREGISTERED_VIN not in ledger.queried_keys
        assert verdict.comparisons == []


class TestEligibilityGating:
    """Pre-ledger records never reach the ledger."""

    def test_pre_ledger_with_owner_pending(self, checker, store, ledger, seeded):
        """A pre-ledger record with an owner is PENDING_BLOCKCHAIN."""
        owner = store.resolve_owner_by_email("juan@example.com")
        store.create_vehicle("NCR5550001", owner_id=owner.id, status="APPROVED")

        verdict = checker.check_by_key("NCR5550001")
        assert verdict.status == IntegrityStatus.PENDING_BLOCKCHAIN
        assert "NCR5550001" not in ledger.queried_keys

    def test_registered_but_absent_from_ledger(self, checker, store, ledger, seeded):
        """An eligible record the ledger does not know is PENDING_BLOCKCHAIN."""
        store.create_vehicle("NCR5550002", status="REGISTERED")
        verdict = checker.check_by_key("NCR5550002")
        assert verdict.status == IntegrityStatus.PENDING_BLOCKCHAIN
        assert "NCR5550002" in ledger.queried_keys
        assert verdict.error is None


class TestErrorHandling:
    """Checks never raise; failures are reported on the verdict."""

    def test_blank_key(self, checker):
        """A blank key is an ERROR verdict."""
        verdict = checker.check_by_key("   ")
        assert verdict.status == IntegrityStatus.ERROR
        assert verdict.has_error

    def test_unknown_key(self, checker, seeded):
        """An unknown key is an ERROR verdict."""
        verdict = checker.check_by_key("NOPE0000000")
        assert verdict.status == IntegrityStatus.ERROR
        assert verdict.message == "Vehicle not found in database"

    def test_key_is_trimmed(self, checker, seeded):
        """Surrounding whitespace in the key is ignored."""
        assert checker.check_by_key(f"  {VERIFIED_VIN} ").status == IntegrityStatus.VERIFIED

    def test_ledger_failure_is_soft(self, checker, ledger, seeded):
        """A ledger failure falls back by owner presence and sets error."""
        ledger.failing_keys.add(VERIFIED_VIN)
        verdict = checker.check_by_key(VERIFIED_VIN)
        assert verdict.status == IntegrityStatus.PENDING_BLOCKCHAIN
        assert verdict.error is not None
        assert verdict.has_error

    def test_ledger_timeout_is_soft(self, store, config, seeded):
        """A ledger query exceeding its timeout becomes a soft failure."""
        slow = SlowLedger(delay=1.0)
        slow.put_record(ledger_payload(VERIFIED_VIN))
        engine = IntegrityCheckerEngine(store, slow, replace(config, ledger_timeout_seconds=0.1))
        try:
            verdict = engine.check_by_key(VERIFIED_VIN)
        finally:
            engine.shutdown()
        assert verdict.status == IntegrityStatus.PENDING_BLOCKCHAIN
        assert "timed out" in verdict.error

    def test_store_failure_is_error(self, ledger, config):
        """A relational read failure is an ERROR verdict."""
        engine = IntegrityCheckerEngine(BrokenStore(), ledger, config)
        try:
            by_key = engine.check_by_key(VERIFIED_VIN)
            by_id = engine.check_by_id("veh-1")
        finally:
            engine.shutdown()
        assert by_key.status == IntegrityStatus.ERROR
        assert "connection refused" in by_key.error
        assert by_id.status == IntegrityStatus.ERROR
        assert by_id.vehicle_id == "veh-1"

    def test_transient_failures_counted(self, ledger, config, checker, seeded):
        """Retriable ledger and store failures are counted as transient."""
        ledger.failing_keys.add(VERIFIED_VIN)
        checker.check_by_key(VERIFIED_VIN)
        assert checker.get_statistics()["transient_errors"] == 1

        engine = IntegrityCheckerEngine(BrokenStore(), ledger, config)
        try:
            engine.check_by_key(VERIFIED_VIN)
            assert engine.get_statistics()["transient_errors"] == 1
        finally:
            engine.shutdown()

    def test_queued_time_not_counted_as_timeout(self, store, config, seeded):
        """Waiting for a free I/O worker does not eat into the query timeout."""
        slow = SlowLedger(delay=0.3)
        slow.put_record(ledger_payload(VERIFIED_VIN))
        engine = IntegrityCheckerEngine(store, slow, replace(
            config, max_concurrent_checks=1, ledger_timeout_seconds=0.5,
            resolve_transaction_ids=False,
        ))
        results = []
        threads = [
            threading.Thread(target=lambda: results.append(engine.check_by_key(VERIFIED_VIN)))
            for _ in range(4)
        ]
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10)
        finally:
            engine.shutdown()
        assert len(results) == 4
        assert [v.status for v in results] == [IntegrityStatus.VERIFIED] * 4
        assert all(v.error is None for v in results)

    def test_transaction_id_lookup_is_optional(self, store, ledger, config, seeded):
        """Transaction ids are not looked up when disabled."""
        engine = IntegrityCheckerEngine(store, ledger, replace(config, resolve_transaction_ids=False))
        try:
            verdict = engine.check_by_key(VERIFIED_VIN)
        finally:
            engine.shutdown()
        assert verdict.status == IntegrityStatus.VERIFIED
        assert verdict.transaction_id is None


class TestCheckById:
    """Tests for check_by_id."""

    def test_resolves_to_key(self, checker, seeded):
        """The internal id resolves to the business key before checking."""
        verdict = checker.check_by_id(seeded[TAMPERED_VIN])
        assert verdict.status == IntegrityStatus.TAMPERED
        assert verdict.vin == TAMPERED_VIN

    def test_unknown_id(self, checker, seeded):
        """An unknown id is an ERROR verdict carrying the id."""
        verdict = checker.check_by_id("missing-id")
        assert verdict.status == IntegrityStatus.ERROR
        assert verdict.vehicle_id == "missing-id"


class TestIdempotence:
    """Repeated checks without writes agree."""

    def test_repeated_checks_identical(self, checker, seeded):
        """Two checks in succession produce the same verdict content."""
        first = checker.check_by_key(TAMPERED_VIN)
        second = checker.check_by_key(TAMPERED_VIN)
        assert first.status == second.status
        assert first.message == second.message
        assert first.comparisons == second.comparisons
        assert first.transaction_id == second.transaction_id

    def test_provenance_recorded(self, checker, provenance, seeded):
        """Every check records a provenance hash."""
        verdict = checker.check_by_key(VERIFIED_VIN)
        assert len(verdict.provenance_hash) == 64
        assert provenance.entry_count == 1


class TestBatch:
    """Tests for bounded batches."""

    def test_batch_by_key(self, checker, seeded):
        """Each key is checked and summarized by status."""
        result = checker.check_batch([VERIFIED_VIN, TAMPERED_VIN, UNREGISTERED_VIN])
        assert result.requested == 3
        assert result.checked == 3
        assert result.truncated is False
        assert [v.vin for v in result.results] == [VERIFIED_VIN, TAMPERED_VIN, UNREGISTERED_VIN]
        assert result.summary == {"VERIFIED": 1, "TAMPERED": 1, "NOT_REGISTERED": 1}

    def test_batch_truncated_to_max(self, store, ledger, config, seeded):
        """Input beyond max_batch_size is dropped."""
        engine = IntegrityCheckerEngine(store, ledger, replace(config, max_batch_size=2))
        try:
            result = engine.check_batch([VERIFIED_VIN, TAMPERED_VIN, UNREGISTERED_VIN])
        finally:
            engine.shutdown()
        assert result.requested == 3
        assert result.checked == 2
        assert result.truncated is True

    def test_batch_by_ids(self, checker, seeded):
        """Batches of internal ids resolve each id."""
        result = checker.check_batch_by_ids([seeded[VERIFIED_VIN], "missing-id"])
        assert [v.status for v in result.results] == [
            IntegrityStatus.VERIFIED, IntegrityStatus.ERROR,
        ]

    def test_statistics(self, checker, seeded):
        """Statistics count checks per status."""
        checker.check_batch([VERIFIED_VIN, TAMPERED_VIN])
        stats = checker.get_statistics()
        assert stats["total_checks"] == 2
        assert stats["VERIFIED"] == 1
        assert stats["TAMPERED"] == 1


class TestMultiPeer:
    """Checks through the multi-peer consensus client."""

    def test_consensus_reported_without_changing_status(self, store, config, seeded):
        """A dissenting peer is reported but the majority value is compared."""
        peers = [InMemoryLedgerClient(f"peer{i}") for i in range(3)]
        for peer in peers[:2]:
            peer.put_record(ledger_payload(VERIFIED_VIN))
        peers[2].put_record(ledger_payload(VERIFIED_VIN, plateNumber="FORGED-1"))
        client = MultiPeerLedgerClient(peers, peer_names=["a", "b", "c"], timeout=2.0)
        cfg = replace(config, multi_peer_enabled=True, ledger_peers="http://a,http://b,http://c")
        engine = IntegrityCheckerEngine(store, client, cfg)
        try:
            assert engine.multi_peer_active is True
            verdict = engine.check_by_key(VERIFIED_VIN)
        finally:
            engine.shutdown()
        assert verdict.status == IntegrityStatus.VERIFIED
        assert verdict.consensus is not None
        assert verdict.consensus.discrepancies == ["Plate Number"]
        assert verdict.consensus.peers_responded == 3

    def test_single_client_when_disabled(self, checker):
        """Multi-peer mode is off by default."""
        assert checker.multi_peer_active is False
