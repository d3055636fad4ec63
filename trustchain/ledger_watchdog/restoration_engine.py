# -*- coding: utf-8 -*-
"""
Restoration Engine - self-healing from ledger truth

Given a ledger snapshot known to be authoritative, overwrites the
mutable descriptive fields of the relational record and appends one
``LEDGER_RESTORATION`` history entry attributed to ``SYSTEM``, all in a
single relational transaction. Any failure rolls the transaction back
and ``restore`` returns False; the relational record is then exactly as
it was before the call.

Rules:
    - Only mutable descriptive columns are written; the internal id and
      creation timestamp never are.
    - Fields the ledger snapshot does not carry (None) are left as-is.
    - The ledger owner e-mail is resolved to an internal user id. If it
      does not resolve, ``owner_id`` is left untouched and a warning is
      logged.

Example:
    >>> engine = RestorationEngine(store)
    >>> engine.restore("NCR7654321", ledger_record)
    True

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional

from trustchain.exceptions import RecordNotFoundError, RestorationError
from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.field_mapping import restorable_values
from trustchain.ledger_watchdog.models import LedgerRecord, RestorationEvent
from trustchain.ledger_watchdog.ports import RelationalStore
from trustchain.ledger_watchdog.provenance import ProvenanceTracker

logger = logging.getLogger(__name__)


class RestorationEngine:
    """Transactional overwrite of relational fields from a ledger snapshot."""

    def __init__(
        self,
        store: RelationalStore,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self._store = store
        self._provenance = provenance
        self._lock = threading.Lock()
        self._statistics = {"attempted": 0, "succeeded": 0, "failed": 0, "owner_unresolved": 0}
        self.last_error: Optional[RestorationError] = None

    def restore(
        self,
        vin: str,
        ledger_snapshot: LedgerRecord,
        transaction_id: Optional[str] = None,
    ) -> bool:
        """Restore one record from ledger truth.

        Args:
            vin: Business key of the relational record.
            ledger_snapshot: Authoritative ledger record.
            transaction_id: Ledger registration transaction id, recorded
                on the history entry when known.

        Returns:
            True if the transaction committed, False otherwise.
        """
        start = time.monotonic()
        with self._lock:
            self._statistics["attempted"] += 1
        try:
            event = self._apply(vin, ledger_snapshot, transaction_id)
        except Exception as e:
            error = RestorationError(
                f"Restoration of {vin} rolled back: {e}",
                context={"vin": vin, "cause": type(e).__name__},
            )
            with self._lock:
                self._statistics["failed"] += 1
                self.last_error = error
            metrics.record_restoration("failure")
            logger.error("%s", error, exc_info=True)
            return False

        with self._lock:
            self._statistics["succeeded"] += 1
            if event.owner_resolved is False:
                self._statistics["owner_unresolved"] += 1
        metrics.record_restoration("success")
        metrics.observe_duration("restoration", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record_operation(
                "restoration", vin, "restore", event, actor=event.actor,
            )
        logger.info(
            "Restored %s from ledger: changed=%s",
            vin, sorted(event.changed_fields) or "none",
        )
        return True

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._statistics)

    def _apply(
        self,
        vin: str,
        snapshot: LedgerRecord,
        transaction_id: Optional[str],
    ) -> RestorationEvent:
        record = self._store.get_record(vin)
        if record is None:
            raise RecordNotFoundError(
                "Vehicle not found in relational store", context={"vin": vin},
            )

        values: Dict[str, Any] = {
            k: v for k, v in restorable_values(snapshot).items() if v is not None
        }

        owner_resolved: Optional[bool] = None
        email = snapshot.owner_email
        if email:
            owner = self._store.resolve_owner_by_email(email)
            if owner is None:
                owner_resolved = False
                logger.warning(
                    "Ledger owner %s for %s does not resolve to a user; owner left unchanged",
                    email, vin,
                )
            else:
                owner_resolved = True
                values["owner_id"] = owner.id

        changed = {
            column: {"before": getattr(record, column), "after": value}
            for column, value in values.items()
            if getattr(record, column) != value
        }
        event = RestorationEvent(
            vin=vin,
            vehicle_id=record.id,
            changed_fields=changed,
            owner_resolved=owner_resolved,
            transaction_id=transaction_id,
        )

        with self._store.transaction() as uow:
            uow.update_mutable_fields(vin, values)
            uow.append_provenance_entry(vin, event)
        return event


__all__ = ["RestorationEngine"]
