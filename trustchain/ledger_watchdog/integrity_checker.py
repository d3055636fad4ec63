# -*- coding: utf-8 -*-
"""
Integrity Checker Engine - single-entity relational vs ledger check

Orchestrates one integrity check: fetch the relational record, decide
ledger eligibility from its lifecycle status, fetch the ledger record
(directly or through multi-peer consensus), compare, classify and
optionally resolve the ledger registration transaction id.

State machine (recomputed on every call, nothing persisted):
    - relational record missing or unreadable      -> ERROR
    - status not ledger-eligible, no owner          -> NOT_REGISTERED
    - status not ledger-eligible, owner assigned    -> PENDING_BLOCKCHAIN
    - ledger query failed                           -> NOT_REGISTERED /
      PENDING_BLOCKCHAIN by owner, with ``error`` set
    - eligible, ledger has no record                -> PENDING_BLOCKCHAIN
    - compared                                      -> VERIFIED /
      MISMATCH / TAMPERED

Checks never raise: every failure is folded into the verdict. Every
relational and ledger query carries a timeout.

Example:
    >>> engine = IntegrityCheckerEngine(store, ledger, config)
    >>> verdict = engine.check_by_key("NCR1234567")
    >>> verdict.status
    <IntegrityStatus.VERIFIED: 'VERIFIED'>

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional, Sequence

from trustchain.exceptions import (
    LedgerException,
    LedgerTimeoutError,
    RelationalStoreException,
    StoreTimeoutError,
    is_retriable,
)
from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.comparator import RecordComparator
from trustchain.ledger_watchdog.config import LedgerWatchdogConfig, get_config
from trustchain.ledger_watchdog.models import (
    BatchCheckResult,
    IntegrityStatus,
    IntegrityVerdict,
    PeerConsensus,
    RelationalRecord,
)
from trustchain.ledger_watchdog.ports import LedgerClient, MultiPeerLedger, RelationalStore
from trustchain.ledger_watchdog.provenance import ProvenanceTracker

logger = logging.getLogger(__name__)

STATUS_MESSAGES: Dict[IntegrityStatus, str] = {
    IntegrityStatus.VERIFIED: "All fields match between database and ledger",
    IntegrityStatus.TAMPERED: "Critical fields mismatch detected - potential data tampering",
    IntegrityStatus.MISMATCH: "Non-critical fields differ, but critical fields match",
    IntegrityStatus.NOT_REGISTERED: "Vehicle not registered on ledger",
    IntegrityStatus.PENDING_BLOCKCHAIN: "Vehicle has an owner but is not yet recorded on the ledger",
    IntegrityStatus.ERROR: "Error during integrity check",
}


def _error_type(exc: BaseException) -> str:
    if isinstance(exc, LedgerTimeoutError):
        return "ledger_timeout"
    if isinstance(exc, LedgerException):
        return "ledger_query"
    if isinstance(exc, StoreTimeoutError):
        return "store_timeout"
    if isinstance(exc, RelationalStoreException):
        return "store"
    return "unexpected"


class IntegrityCheckerEngine:
    """Runs single-entity and bounded-batch integrity checks.

    Args:
        store: Relational store port.
        ledger: Ledger client port. When multi-peer mode is enabled and
            the client implements ``get_record_from_all_peers``, the
            consensus path is used.
        config: Watchdog configuration (defaults to the singleton).
        comparator: Record comparator (defaults to the vehicle mapping).
        provenance: Provenance tracker, or None to skip hashing.
    """

    def __init__(
        self,
        store: RelationalStore,
        ledger: LedgerClient,
        config: Optional[LedgerWatchdogConfig] = None,
        comparator: Optional[RecordComparator] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._config = config or get_config()
        self._comparator = comparator or RecordComparator()
        self._provenance = provenance
        self._eligible = set(self._config.eligible_status_set)
        # One in-flight query per concurrent check, plus room for abandoned timeouts.
        self._io_pool = ThreadPoolExecutor(
            max_workers=self._config.max_concurrent_checks * 2,
            thread_name_prefix="integrity-io",
        )
        self._lock = threading.Lock()
        self._statistics: Dict[str, int] = {s.value: 0 for s in IntegrityStatus}
        self._statistics["total_checks"] = 0
        self._statistics["soft_errors"] = 0
        self._statistics["transient_errors"] = 0
        logger.info(
            "IntegrityCheckerEngine initialized: eligible=%s multi_peer=%s",
            sorted(self._eligible), self.multi_peer_active,
        )

    @property
    def multi_peer_active(self) -> bool:
        return self._config.multi_peer_enabled and isinstance(self._ledger, MultiPeerLedger)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_by_key(self, vin: str) -> IntegrityVerdict:
        """Check one vehicle by business key."""
        start = time.monotonic()
        vin = (vin or "").strip()
        if not vin:
            return self._finish(self._error_verdict(None, "Business key is required"), start)

        try:
            record = self._with_timeout(self._store.get_record, vin, source="store")
        except Exception as e:
            return self._finish(self._failed_read(vin, None, e), start)

        if record is None:
            return self._finish(
                self._error_verdict(vin, "Vehicle not found in database"), start,
            )
        return self._check(record, start)

    def check_by_id(self, vehicle_id: str) -> IntegrityVerdict:
        """Resolve the internal id to a business key, then check."""
        start = time.monotonic()
        try:
            record = self._with_timeout(self._store.get_record_by_id, vehicle_id, source="store")
        except Exception as e:
            return self._finish(self._failed_read(None, vehicle_id, e), start)

        if record is None:
            verdict = self._error_verdict(None, "Vehicle not found in database")
            verdict.vehicle_id = vehicle_id
            return self._finish(verdict, start)
        return self._check(record, start)

    def check_record(self, record: RelationalRecord) -> IntegrityVerdict:
        """Check an already-fetched relational record."""
        return self._check(record, time.monotonic())

    def check_batch(self, vins: Sequence[str]) -> BatchCheckResult:
        """Check a caller-supplied list of keys, truncated to ``max_batch_size``."""
        return self._batch(vins, self.check_by_key)

    def check_batch_by_ids(self, vehicle_ids: Sequence[str]) -> BatchCheckResult:
        return self._batch(vehicle_ids, self.check_by_id)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._statistics)
        stats["multi_peer_active"] = self.multi_peer_active
        return stats

    def shutdown(self) -> None:
        self._io_pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check(self, record: RelationalRecord, start: float) -> IntegrityVerdict:
        if record.status.upper() not in self._eligible:
            status = (
                IntegrityStatus.PENDING_BLOCKCHAIN if record.has_owner
                else IntegrityStatus.NOT_REGISTERED
            )
            message = (
                f"Vehicle status is {record.status}; "
                + ("awaiting ledger registration" if record.has_owner else "not yet registered")
            )
            return self._finish(self._verdict(status, record, message=message), start)

        consensus: Optional[PeerConsensus] = None
        try:
            if self.multi_peer_active:
                consensus = self._with_timeout(
                    self._ledger.get_record_from_all_peers, record.vin, source="ledger",
                )
                ledger_record = consensus.consensus_record
            else:
                ledger_record = self._with_timeout(
                    self._ledger.get_record, record.vin, source="ledger",
                )
        except Exception as e:
            error_type = _error_type(e)
            metrics.record_ledger_error(error_type)
            if error_type == "unexpected":
                logger.error("Ledger query raised for %s", record.vin, exc_info=True)
            else:
                logger.warning(
                    "Ledger query failed for %s (%s): %s",
                    record.vin, self._failure_kind(e), e,
                )
            status = (
                IntegrityStatus.PENDING_BLOCKCHAIN if record.has_owner
                else IntegrityStatus.NOT_REGISTERED
            )
            verdict = self._verdict(
                status, record, message=f"Ledger query failed: {e}", error=str(e),
            )
            return self._finish(verdict, start)

        if consensus is not None and consensus.has_discrepancies:
            metrics.record_peer_discrepancy()

        if ledger_record is None:
            verdict = self._verdict(
                IntegrityStatus.PENDING_BLOCKCHAIN,
                record,
                message="Vehicle is registered but was not found on the ledger",
                consensus=consensus,
            )
            return self._finish(verdict, start)

        comparisons = self._comparator.compare(record, ledger_record)
        status = self._comparator.classify(comparisons)
        verdict = self._verdict(
            status,
            record,
            comparisons=comparisons,
            ledger_record=ledger_record,
            consensus=consensus,
            transaction_id=self._transaction_id(record.vin),
        )
        if status == IntegrityStatus.TAMPERED:
            logger.warning(
                "Tampering detected for %s: %s", record.vin, verdict.mismatched_labels,
            )
        return self._finish(verdict, start)

    def _transaction_id(self, vin: str) -> Optional[str]:
        if not self._config.resolve_transaction_ids:
            return None
        try:
            return self._with_timeout(self._ledger.get_transaction_id, vin, source="ledger")
        except Exception as e:
            logger.warning("Could not resolve ledger transaction id for %s: %s", vin, e)
            return None

    def _with_timeout(self, fn: Callable[..., Any], *args: Any, source: str) -> Any:
        """Run a store or ledger call with its configured timeout.

        Raises:
            LedgerTimeoutError / StoreTimeoutError: On timeout.
        """
        if source == "ledger":
            timeout = self._config.ledger_timeout_seconds
        else:
            timeout = self._config.database_timeout_seconds
        started = threading.Event()

        def _call() -> Any:
            started.set()
            return fn(*args)

        # The timeout covers the call itself, not time spent queued behind
        # other callers. Queueing longer than one timeout is itself a timeout.
        future = self._io_pool.submit(_call)
        try:
            if not started.wait(timeout=timeout):
                raise FutureTimeoutError()
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            context = {
                "call": getattr(fn, "__name__", str(fn)),
                "args": [str(a) for a in args],
                "queued": not started.is_set(),
            }
            if source == "ledger":
                raise LedgerTimeoutError(
                    f"Ledger query timed out after {timeout}s",
                    timeout_seconds=timeout, context=context,
                ) from None
            raise StoreTimeoutError(
                f"Relational query timed out after {timeout}s",
                timeout_seconds=timeout, context=context,
            ) from None

    def _failure_kind(self, exc: Exception) -> str:
        """Count transient failures; they clear on a later run."""
        if not is_retriable(exc):
            return "permanent"
        with self._lock:
            self._statistics["transient_errors"] += 1
        return "transient"

    def _failed_read(
        self, vin: Optional[str], vehicle_id: Optional[str], exc: Exception,
    ) -> IntegrityVerdict:
        error_type = _error_type(exc)
        metrics.record_error(error_type)
        if error_type == "unexpected":
            logger.error("Relational read raised for %s", vin or vehicle_id, exc_info=True)
        else:
            logger.warning(
                "Relational read failed for %s (%s): %s",
                vin or vehicle_id, self._failure_kind(exc), exc,
            )
        verdict = self._error_verdict(vin, f"Integrity check failed: {exc}", error=str(exc))
        verdict.vehicle_id = vehicle_id
        return verdict

    def _error_verdict(
        self, vin: Optional[str], message: str, error: Optional[str] = None,
    ) -> IntegrityVerdict:
        return IntegrityVerdict(
            status=IntegrityStatus.ERROR,
            message=message,
            vin=vin,
            error=error or message,
        )

    def _verdict(
        self,
        status: IntegrityStatus,
        record: RelationalRecord,
        message: Optional[str] = None,
        **kwargs: Any,
    ) -> IntegrityVerdict:
        return IntegrityVerdict(
            status=status,
            message=message or STATUS_MESSAGES[status],
            vin=record.vin,
            vehicle_id=record.id,
            relational_record=record,
            **kwargs,
        )

    def _finish(self, verdict: IntegrityVerdict, start: float) -> IntegrityVerdict:
        if self._provenance is not None:
            verdict.provenance_hash = self._provenance.record_operation(
                "integrity_check",
                verdict.vin or verdict.vehicle_id or "unknown",
                "check",
                {
                    "status": verdict.status.value,
                    "mismatched": verdict.mismatched_fields,
                    "error": verdict.error,
                    "transaction_id": verdict.transaction_id,
                },
            )
        with self._lock:
            self._statistics["total_checks"] += 1
            self._statistics[verdict.status.value] += 1
            if verdict.error and verdict.status != IntegrityStatus.ERROR:
                self._statistics["soft_errors"] += 1
        metrics.record_check(verdict.status.value)
        metrics.observe_duration("integrity_check", time.monotonic() - start)
        logger.debug("Integrity check %s -> %s", verdict.vin, verdict.status.value)
        return verdict

    def _batch(
        self, keys: Sequence[str], check: Callable[[str], IntegrityVerdict],
    ) -> BatchCheckResult:
        limit = self._config.max_batch_size
        selected = list(keys)[:limit]
        truncated = len(keys) > limit
        if truncated:
            logger.warning("Batch of %d keys truncated to %d", len(keys), limit)

        workers = max(1, min(self._config.max_concurrent_checks, len(selected)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="integrity-batch") as pool:
            results: List[IntegrityVerdict] = list(pool.map(check, selected))

        summary: Dict[str, int] = {}
        for verdict in results:
            summary[verdict.status.value] = summary.get(verdict.status.value, 0) + 1
        return BatchCheckResult(
            requested=len(keys),
            checked=len(results),
            truncated=truncated,
            results=results,
            summary=summary,
        )


__all__ = ["IntegrityCheckerEngine", "STATUS_MESSAGES"]
