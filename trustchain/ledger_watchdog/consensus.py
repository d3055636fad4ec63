# -*- coding: utf-8 -*-
"""
Multi-Peer Ledger Consensus

Queries every configured ledger peer for the same business key
concurrently and reconstructs a per-field consensus record. Peer
disagreement is reported as data (``PeerConsensus.discrepancies``); it
never changes the relational-vs-ledger classification.

Consensus rules:
    - Presence: the key exists if more responding peers return a record
      than return "not found"; a tie goes to the first responding peer
      in configured order.
    - Per field: plurality of normalized values among peers that
      returned a record; ties go to the value of the earliest peer in
      configured order. ``has_majority`` requires a strict majority.
    - Unreachable peers are excluded from every vote and listed in
      ``unreachable_peers``. If no peer responds the query fails.

Example:
    >>> client = MultiPeerLedgerClient.from_urls(
    ...     ["https://peer0.internal", "https://peer1.internal", "https://peer2.internal"],
    ...     timeout=10.0,
    ... )
    >>> consensus = client.get_record_from_all_peers("NCR1234567")
    >>> consensus.discrepancies
    []

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence, Tuple

from trustchain.exceptions import LedgerQueryError, LedgerTimeoutError
from trustchain.ledger_watchdog.comparator import normalize_value
from trustchain.ledger_watchdog.field_mapping import VEHICLE_FIELD_MAP, FieldMapping
from trustchain.ledger_watchdog.ledger_client import HttpLedgerClient
from trustchain.ledger_watchdog.models import FieldConsensus, LedgerRecord, PeerConsensus
from trustchain.ledger_watchdog.ports import LedgerClient

logger = logging.getLogger(__name__)


def _plurality(votes: Sequence[Tuple[str, str]]) -> Tuple[str, int]:
    """Winning value and its count; ``votes`` is (peer, value) in peer order."""
    counts = Counter(value for _, value in votes)
    top = max(counts.values())
    for _, value in votes:
        if counts[value] == top:
            return value, top
    raise ValueError("no votes")


def build_consensus(
    vin: str,
    peer_order: Sequence[str],
    responses: Dict[str, Optional[LedgerRecord]],
    unreachable: Sequence[str],
    mapping: Sequence[FieldMapping] = VEHICLE_FIELD_MAP,
) -> PeerConsensus:
    """Compute presence and per-field consensus from per-peer records.

    Args:
        vin: Business key.
        peer_order: All peer names in configured order.
        responses: Record (or None for not found) per responding peer.
        unreachable: Peers that failed or timed out.
        mapping: Fields to vote on.

    Returns:
        PeerConsensus with the reconstructed record (None if absent).
    """
    ordered = [p for p in peer_order if p in responses]
    result = PeerConsensus(
        vin=vin,
        peers_queried=len(peer_order),
        peers_responded=len(ordered),
        unreachable_peers=list(unreachable),
        peer_records={p: responses[p] for p in ordered},
    )
    if not ordered:
        return result

    present = [p for p in ordered if responses[p] is not None]
    absent = [p for p in ordered if responses[p] is None]
    result.presence_disagreement = bool(present) and bool(absent)

    if len(present) < len(absent) or (
        len(present) == len(absent) and responses[ordered[0]] is None
    ):
        return result

    fields: List[FieldConsensus] = []
    updates: Dict[str, object] = {}
    for m in mapping:
        votes = [
            (p, normalize_value(m.ledger_accessor(responses[p]), m.critical))
            for p in present
        ]
        value, count = _plurality(votes)
        winner = next(p for p, v in votes if v == value)
        fields.append(FieldConsensus(
            field=m.relational_key,
            label=m.label,
            consensus_value=value,
            peer_values=dict(votes),
            agreeing_peers=count,
            responding_peers=len(present),
            has_majority=count * 2 > len(present),
            unanimous=count == len(present),
        ))
        source = responses[winner]
        if m.restorable:
            updates[m.relational_key] = getattr(source, m.relational_key)
        else:
            updates["owner"] = source.owner

    base = responses[present[0]]
    result.consensus_record = base.model_copy(update=updates, deep=True)
    result.fields = fields
    result.discrepancies = [f.label for f in fields if not f.unanimous]
    result.agreement_ratio = (
        sum(1 for f in fields if f.unanimous) / len(fields) if fields else 1.0
    )
    return result


class MultiPeerLedgerClient:
    """Fans a query out to every ledger peer and votes on the answers.

    Satisfies the plain ``LedgerClient`` port by returning the consensus
    record from ``get_record``.
    """

    def __init__(
        self,
        peers: Sequence[LedgerClient],
        peer_names: Optional[Sequence[str]] = None,
        timeout: float = 10.0,
    ) -> None:
        if not peers:
            raise ValueError("at least one ledger peer is required")
        if peer_names is not None and len(peer_names) != len(peers):
            raise ValueError("peer_names must match peers")
        self.peers = list(peers)
        self.peer_names = list(peer_names) if peer_names else [
            getattr(p, "base_url", None) or f"peer{i}" for i, p in enumerate(peers)
        ]
        self.timeout = timeout

    @classmethod
    def from_urls(cls, urls: Sequence[str], timeout: float = 10.0) -> MultiPeerLedgerClient:
        clients = [HttpLedgerClient(url, timeout=timeout) for url in urls]
        return cls(clients, peer_names=list(urls), timeout=timeout)

    def get_record_from_all_peers(self, vin: str) -> PeerConsensus:
        """Query all peers concurrently and compute the consensus.

        Raises:
            LedgerTimeoutError: If no peer answered within the timeout.
            LedgerQueryError: If every peer failed.
        """
        executor = ThreadPoolExecutor(
            max_workers=len(self.peers), thread_name_prefix="ledger-peer",
        )
        try:
            futures = {
                executor.submit(peer.get_record, vin): name
                for peer, name in zip(self.peers, self.peer_names)
            }
            done, not_done = wait(futures, timeout=self.timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        responses: Dict[str, Optional[LedgerRecord]] = {}
        unreachable: List[str] = []
        for future, name in futures.items():
            if future in not_done:
                logger.warning("Ledger peer %s timed out for %s", name, vin)
                unreachable.append(name)
                continue
            try:
                responses[name] = future.result()
            except Exception as e:
                logger.warning("Ledger peer %s failed for %s: %s", name, vin, e)
                unreachable.append(name)

        if not responses:
            if len(not_done) == len(futures):
                raise LedgerTimeoutError(
                    "No ledger peer answered in time",
                    timeout_seconds=self.timeout,
                    context={"vin": vin, "peers": len(self.peers)},
                )
            raise LedgerQueryError(
                "All ledger peers failed",
                context={"vin": vin, "unreachable": unreachable},
            )

        consensus = build_consensus(vin, self.peer_names, responses, unreachable)
        if consensus.has_discrepancies:
            logger.warning(
                "Ledger peers disagree for %s: fields=%s presence_disagreement=%s",
                vin, consensus.discrepancies, consensus.presence_disagreement,
            )
        return consensus

    def get_record(self, vin: str) -> Optional[LedgerRecord]:
        return self.get_record_from_all_peers(vin).consensus_record

    def get_transaction_id(self, vin: str) -> Optional[str]:
        """First transaction id reported by a peer, in configured order."""
        for peer, name in zip(self.peers, self.peer_names):
            try:
                tx_id = peer.get_transaction_id(vin)
            except Exception as e:
                logger.warning("Ledger peer %s transaction lookup failed: %s", name, e)
                continue
            if tx_id:
                return tx_id
        return None


__all__ = ["MultiPeerLedgerClient", "build_consensus"]
