# -*- coding: utf-8 -*-
"""
Ledger Client Adapters

Read-only adapters implementing the ``LedgerClient`` port:

- ``InMemoryLedgerClient``: dict-backed world state with per-key
  registration transaction ids. Used by tests and local demos.
- ``HttpLedgerClient``: queries a ledger REST gateway with ``requests``.
  ``GET {base}/vehicles/{vin}`` returns the current world state of the
  vehicle (either the bare record or ``{"vehicle": {...}}``);
  ``GET {base}/vehicles/{vin}/transactions/registration`` returns
  ``{"transactionId": "..."}``. A 404 means the key is not on the ledger.

Example:
    >>> from trustchain.ledger_watchdog.ledger_client import HttpLedgerClient
    >>> client = HttpLedgerClient("https://ledger-gw.internal", timeout=10.0)
    >>> record = client.get_record("NCR1234567")

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import requests
from pydantic import ValidationError

from trustchain.exceptions import LedgerQueryError, LedgerTimeoutError
from trustchain.ledger_watchdog.models import LedgerRecord

logger = logging.getLogger(__name__)


def parse_ledger_payload(vin: str, payload: Any) -> Optional[LedgerRecord]:
    """Build a LedgerRecord from a gateway or chaincode payload.

    Raises:
        LedgerQueryError: If the payload is not a vehicle record.
    """
    if payload is None:
        return None
    if isinstance(payload, LedgerRecord):
        return payload
    if isinstance(payload, Mapping) and "vehicle" in payload:
        payload = payload["vehicle"]
        if payload is None:
            return None
    if not isinstance(payload, Mapping):
        raise LedgerQueryError(
            "Malformed ledger payload",
            context={"vin": vin, "payload_type": type(payload).__name__},
        )
    data = dict(payload)
    data.setdefault("vin", vin)
    try:
        return LedgerRecord.model_validate(data)
    except ValidationError as e:
        raise LedgerQueryError(
            f"Malformed ledger record: {e.error_count()} validation error(s)",
            context={"vin": vin},
        ) from e


# ---------------------------------------------------------------------------
# In-memory ledger
# ---------------------------------------------------------------------------


class InMemoryLedgerClient:
    """Dict-backed ledger world state.

    ``failing_keys`` makes queries for those keys raise
    ``LedgerQueryError``; ``queried_keys`` records every record query.
    """

    def __init__(self, name: str = "in-memory") -> None:
        self.name = name
        self._records: Dict[str, LedgerRecord] = {}
        self._transactions: Dict[str, str] = {}
        self.failing_keys: Set[str] = set()
        self.queried_keys: List[str] = []
        self._lock = threading.Lock()

    def put_record(
        self,
        record: Union[LedgerRecord, Mapping[str, Any]],
        transaction_id: Optional[str] = None,
    ) -> LedgerRecord:
        """Store (or replace) a record, optionally with its registration tx id."""
        if not isinstance(record, LedgerRecord):
            record = LedgerRecord.model_validate(dict(record))
        with self._lock:
            self._records[record.vin] = record
            if transaction_id:
                self._transactions[record.vin] = transaction_id
        return record

    def remove_record(self, vin: str) -> None:
        with self._lock:
            self._records.pop(vin, None)
            self._transactions.pop(vin, None)

    def get_record(self, vin: str) -> Optional[LedgerRecord]:
        with self._lock:
            self.queried_keys.append(vin)
            if vin in self.failing_keys:
                raise LedgerQueryError(
                    f"Ledger peer {self.name} unreachable",
                    context={"vin": vin},
                )
            record = self._records.get(vin)
        return record.model_copy(deep=True) if record else None

    def get_transaction_id(self, vin: str) -> Optional[str]:
        with self._lock:
            return self._transactions.get(vin)

    @property
    def query_count(self) -> int:
        with self._lock:
            return len(self.queried_keys)


# ---------------------------------------------------------------------------
# HTTP gateway ledger
# ---------------------------------------------------------------------------


class HttpLedgerClient:
    """Ledger client for a REST gateway in front of the ledger peers."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)

    def __repr__(self) -> str:
        return f"HttpLedgerClient(base_url='{self.base_url}')"

    def _get(self, path: str, vin: str) -> Optional[Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            logger.warning("Ledger query timed out: %s (%.1fs)", url, self.timeout)
            raise LedgerTimeoutError(
                f"Ledger query timed out after {self.timeout}s",
                timeout_seconds=self.timeout,
                context={"vin": vin, "url": url},
            ) from e
        except requests.RequestException as e:
            logger.warning("Ledger query failed: %s: %s", url, e)
            raise LedgerQueryError(
                f"Ledger query failed: {e}",
                context={"vin": vin, "url": url},
            ) from e
        except ValueError as e:
            raise LedgerQueryError(
                "Ledger gateway returned invalid JSON",
                context={"vin": vin, "url": url},
            ) from e

    def get_record(self, vin: str) -> Optional[LedgerRecord]:
        payload = self._get(f"/vehicles/{vin}", vin)
        return parse_ledger_payload(vin, payload)

    def get_transaction_id(self, vin: str) -> Optional[str]:
        payload = self._get(f"/vehicles/{vin}/transactions/registration", vin)
        if not isinstance(payload, Mapping):
            return None
        tx_id = payload.get("transactionId") or payload.get("transaction_id")
        return str(tx_id) if tx_id else None

    def close(self) -> None:
        self.session.close()


__all__ = ["HttpLedgerClient", "InMemoryLedgerClient", "parse_ledger_payload"]
