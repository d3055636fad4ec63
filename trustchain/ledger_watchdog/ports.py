# -*- coding: utf-8 -*-
"""
Collaborator ports for the ledger-consistency watchdog.

The engines depend only on these protocols; concrete adapters live in
``relational_store``, ``ledger_client``, ``consensus`` and ``alerting``,
and tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, ContextManager, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from trustchain.ledger_watchdog.models import (
    LedgerRecord,
    OwnerRef,
    PeerConsensus,
    RelationalRecord,
    RestorationEvent,
)


@runtime_checkable
class UnitOfWork(Protocol):
    """Writes issued inside one relational transaction."""

    def update_mutable_fields(self, vin: str, fields: Mapping[str, Any]) -> None:
        ...

    def append_provenance_entry(self, vin: str, entry: RestorationEvent) -> None:
        ...


@runtime_checkable
class RelationalStore(Protocol):
    """Read access to the system of record plus transactional restoration writes."""

    def get_record(self, vin: str) -> Optional[RelationalRecord]:
        ...

    def get_record_by_id(self, vehicle_id: str) -> Optional[RelationalRecord]:
        ...

    def list_eligible_records(self) -> List[RelationalRecord]:
        ...

    def list_active_records(self) -> List[RelationalRecord]:
        ...

    def resolve_owner_by_email(self, email: str) -> Optional[OwnerRef]:
        ...

    def transaction(self) -> ContextManager[UnitOfWork]:
        ...


@runtime_checkable
class LedgerClient(Protocol):
    """Read-only ledger access."""

    def get_record(self, vin: str) -> Optional[LedgerRecord]:
        ...

    def get_transaction_id(self, vin: str) -> Optional[str]:
        ...


@runtime_checkable
class MultiPeerLedger(LedgerClient, Protocol):
    """Ledger client able to query every peer independently."""

    def get_record_from_all_peers(self, vin: str) -> PeerConsensus:
        ...


@runtime_checkable
class AlertSender(Protocol):
    """Notification transport. Failures are non-fatal to callers."""

    def send_alert(self, subject: str, summary: Dict[str, Any]) -> None:
        ...


__all__ = [
    "AlertSender",
    "LedgerClient",
    "MultiPeerLedger",
    "RelationalStore",
    "UnitOfWork",
]
