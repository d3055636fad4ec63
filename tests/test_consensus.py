# -*- coding: utf-8 -*-
"""Tests for multi-peer ledger consensus."""

import time

import pytest

from tests.conftest import ledger_payload
from trustchain.exceptions import LedgerQueryError, LedgerTimeoutError
from trustchain.ledger_watchdog.consensus import MultiPeerLedgerClient, build_consensus
from trustchain.ledger_watchdog.ledger_client import InMemoryLedgerClient
from trustchain.ledger_watchdog.models import LedgerRecord
from trustchain.ledger_watchdog.ports import MultiPeerLedger

VIN = "NCR1234567"


def _record(**overrides):
    return LedgerRecord.model_validate(ledger_payload(VIN, **overrides))


class HangingPeer(InMemoryLedgerClient):
    """Peer that never answers within a short timeout."""

    def get_record(self, vin):
        time.sleep(1.0)
        return None


class TestBuildConsensus:
    """Tests for presence and per-field voting."""

    def test_unanimous_peers(self):
        """Identical answers produce a unanimous consensus."""
        responses = {"a": _record(), "b": _record(), "c": _record()}
        consensus = build_consensus(VIN, ["a", "b", "c"], responses, [])
        assert consensus.discrepancies == []
        assert consensus.agreement_ratio == 1.0
        assert consensus.has_discrepancies is False
        assert consensus.consensus_record.plate_number == "NCR-123"

    def test_majority_value_wins(self):
        """The plurality value becomes the consensus value."""
        responses = {
            "a": _record(plateNumber="ABC-999"),
            "b": _record(),
            "c": _record(),
        }
        consensus = build_consensus(VIN, ["a", "b", "c"], responses, [])
        plate = next(f for f in consensus.fields if f.field == "plate_number")
        assert plate.consensus_value == "NCR-123"
        assert plate.agreeing_peers == 2
        assert plate.has_majority is True
        assert plate.unanimous is False
        assert consensus.discrepancies == ["Plate Number"]
        assert consensus.consensus_record.plate_number == "NCR-123"
        assert consensus.agreement_ratio < 1.0

    def test_tie_goes_to_first_peer(self):
        """A tie is broken by configured peer order without majority."""
        responses = {"a": _record(make="Honda"), "b": _record(make="Toyota")}
        consensus = build_consensus(VIN, ["a", "b"], responses, [])
        make = next(f for f in consensus.fields if f.field == "make")
        assert make.consensus_value == "Honda"
        assert make.has_majority is False
        assert consensus.consensus_record.make == "Honda"

    def test_critical_votes_are_case_insensitive(self):
        """Case-only differences on critical fields are not disagreement."""
        responses = {"a": _record(engineNumber="en001"), "b": _record(engineNumber="EN001")}
        consensus = build_consensus(VIN, ["a", "b"], responses, [])
        assert "Engine Number" not in consensus.discrepancies

    def test_presence_majority_absent(self):
        """Most peers not having the record means no consensus record."""
        responses = {"a": _record(), "b": None, "c": None}
        consensus = build_consensus(VIN, ["a", "b", "c"], responses, [])
        assert consensus.presence_disagreement is True
        assert consensus.consensus_record is None
        assert consensus.has_discrepancies is True

    def test_presence_majority_present(self):
        """Most peers having the record yields a consensus record."""
        responses = {"a": None, "b": _record(), "c": _record()}
        consensus = build_consensus(VIN, ["a", "b", "c"], responses, [])
        assert consensus.presence_disagreement is True
        assert consensus.consensus_record is not None

    def test_owner_follows_vote(self):
        """The embedded owner comes from a peer holding the consensus e-mail."""
        other = {"email": "thief@example.com"}
        responses = {"a": _record(owner=other), "b": _record(), "c": _record()}
        consensus = build_consensus(VIN, ["a", "b", "c"], responses, [])
        assert consensus.consensus_record.owner_email == "juan@example.com"
        assert "Owner Email" in consensus.discrepancies

    def test_unreachable_peers_listed(self):
        """Peers that did not answer are listed separately."""
        consensus = build_consensus(VIN, ["a", "b"], {"a": _record()}, ["b"])
        assert consensus.peers_queried == 2
        assert consensus.peers_responded == 1
        assert consensus.unreachable_peers == ["b"]


class TestMultiPeerLedgerClient:
    """Tests for the fan-out client."""

    def test_satisfies_multi_peer_port(self):
        """The client implements the multi-peer ledger port."""
        client = MultiPeerLedgerClient([InMemoryLedgerClient()])
        assert isinstance(client, MultiPeerLedger)

    def test_requires_peers(self):
        """At least one peer is required."""
        with pytest.raises(ValueError):
            MultiPeerLedgerClient([])

    def test_failed_peer_is_unreachable(self):
        """A failing peer does not prevent consensus among the others."""
        peers = [InMemoryLedgerClient(n) for n in ("a", "b", "c")]
        for p in peers:
            p.put_record(ledger_payload(VIN))
        peers[1].failing_keys.add(VIN)
        client = MultiPeerLedgerClient(peers, peer_names=["a", "b", "c"], timeout=2.0)

        consensus = client.get_record_from_all_peers(VIN)
        assert consensus.unreachable_peers == ["b"]
        assert consensus.peers_responded == 2
        assert client.get_record(VIN).vin == VIN

    def test_all_peers_failing_raises(self):
        """Every peer failing is a ledger query error."""
        peers = [InMemoryLedgerClient(n) for n in ("a", "b")]
        for p in peers:
            p.failing_keys.add(VIN)
        client = MultiPeerLedgerClient(peers, timeout=2.0)
        with pytest.raises(LedgerQueryError):
            client.get_record_from_all_peers(VIN)

    def test_all_peers_hanging_times_out(self):
        """No peer answering in time is a ledger timeout."""
        client = MultiPeerLedgerClient([HangingPeer("a"), HangingPeer("b")], timeout=0.1)
        with pytest.raises(LedgerTimeoutError):
            client.get_record_from_all_peers(VIN)

    def test_transaction_id_from_first_peer_that_has_one(self):
        """Transaction ids are taken from peers in configured order."""
        a, b = InMemoryLedgerClient("a"), InMemoryLedgerClient("b")
        b.put_record(ledger_payload(VIN), transaction_id="tx-b")
        client = MultiPeerLedgerClient([a, b])
        assert client.get_transaction_id(VIN) == "tx-b"
