# -*- coding: utf-8 -*-
"""
Provenance Tracking for the Ledger Consistency Watchdog

SHA-256 chain-hashed, in-memory log of watchdog operations
(integrity_check, forensic_audit, restoration, full_sync). Each entry
hashes its payload and links to the previous entry's chain hash, so any
edit to a retained entry breaks ``verify_chain``.

This log is operational telemetry for the watchdog process. The durable
audit trail of restorations is the relational ``vehicle_history`` table.

Example:
    >>> from trustchain.ledger_watchdog.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> chain_hash = tracker.record_operation(
    ...     "integrity_check", "NCR1234567", "check", {"status": "VERIFIED"}
    ... )
    >>> tracker.verify_chain()
    True

Author: TrustChain Platform Team
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_GENESIS = "trustchain-ledger-watchdog-genesis"


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def compute_hash(data: Any) -> str:
    """Deterministic SHA-256 of any JSON-serializable value (sorted keys)."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    serialized = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def _chain_hash(previous: str, data_hash: str, action: str, timestamp: str) -> str:
    combined = json.dumps(
        {
            "previous": previous,
            "data": data_hash,
            "action": action,
            "timestamp": timestamp,
        },
        sort_keys=True,
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


class ProvenanceTracker:
    """Chain-hashed operation log.

    Retains at most ``max_entries`` entries; older entries are dropped
    and the parent hash of the oldest retained entry becomes the
    verification anchor.
    """

    def __init__(self, genesis: str = DEFAULT_GENESIS, max_entries: int = 10000) -> None:
        self.genesis_hash = hashlib.sha256(genesis.encode("utf-8")).hexdigest()
        self.max_entries = max_entries
        self._chain: List[Dict[str, Any]] = []
        self._anchor_hash = self.genesis_hash
        self._last_chain_hash = self.genesis_hash
        self._lock = threading.Lock()

    def record_operation(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        data: Any,
        actor: str = "system",
    ) -> str:
        """Append an entry and return its chain hash.

        Args:
            entity_type: integrity_check, forensic_audit, restoration or
                full_sync.
            entity_id: Business key, run id or similar.
            action: Action performed (check, audit, restore, sync).
            data: Payload hashed into the entry (model, dict, str ...).
            actor: Who performed the operation.

        Returns:
            Chain hash of the new entry.
        """
        data_hash = compute_hash(data)
        timestamp = _utcnow().isoformat()

        with self._lock:
            chain_hash = _chain_hash(self._last_chain_hash, data_hash, action, timestamp)
            self._chain.append({
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "actor": actor,
                "data_hash": data_hash,
                "timestamp": timestamp,
                "parent_hash": self._last_chain_hash,
                "chain_hash": chain_hash,
            })
            self._last_chain_hash = chain_hash
            if len(self._chain) > self.max_entries:
                dropped = self._chain.pop(0)
                self._anchor_hash = dropped["chain_hash"]

        logger.debug(
            "Recorded provenance: %s/%s action=%s hash=%s",
            entity_type, entity_id, action, chain_hash[:16],
        )
        return chain_hash

    def verify_chain(self) -> bool:
        """Recompute every link of the retained chain."""
        with self._lock:
            chain = list(self._chain)
            previous = self._anchor_hash

        for index, entry in enumerate(chain):
            if entry["parent_hash"] != previous:
                logger.warning("Provenance chain broken at entry %d: parent mismatch", index)
                return False
            expected = _chain_hash(
                previous, entry["data_hash"], entry["action"], entry["timestamp"],
            )
            if expected != entry["chain_hash"]:
                logger.warning("Provenance chain broken at entry %d: hash mismatch", index)
                return False
            previous = entry["chain_hash"]
        return True

    def get_chain(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Entries oldest first, optionally filtered by entity."""
        with self._lock:
            chain = [dict(e) for e in self._chain]
        if entity_type:
            chain = [e for e in chain if e["entity_type"] == entity_type]
        if entity_id:
            chain = [e for e in chain if e["entity_id"] == entity_id]
        return chain

    def get_latest_hash(self) -> str:
        with self._lock:
            return self._last_chain_hash

    def export_json(self) -> str:
        """Export the retained chain as a JSON string."""
        with self._lock:
            data = list(self._chain)
        return json.dumps(data, indent=2, default=str)

    def reset(self) -> None:
        with self._lock:
            self._chain.clear()
            self._anchor_hash = self.genesis_hash
            self._last_chain_hash = self.genesis_hash
        logger.info("ProvenanceTracker reset to genesis")

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._chain)


__all__ = ["ProvenanceTracker", "compute_hash", "DEFAULT_GENESIS"]
