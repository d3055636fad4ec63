"""Tests for TrustChain Exception Hierarchy.

Test suite covering:
- Base exception functionality
- Ledger and relational store exceptions
- Watchdog exceptions
- Exception serialization
- Retry classification

Author: TrustChain Platform Team
"""

import json
from datetime import datetime

import pytest

from trustchain.exceptions import (
    AlertDeliveryError,
    ConfigurationError,
    DatabaseError,
    LedgerException,
    LedgerQueryError,
    LedgerTimeoutError,
    RecordNotFoundError,
    RelationalStoreException,
    RestorationError,
    StoreTimeoutError,
    TrustChainException,
    WatchdogException,
    is_retriable,
)


# ==============================================================================
# Base Exception Tests
# ==============================================================================

class TestTrustChainException:
    """Tests for base TrustChainException."""

    def test_create_basic_exception(self):
        """Can create basic exception with message."""
        exc = TrustChainException("Something went wrong")

        assert exc.message == "Something went wrong"
        assert exc.error_code.startswith("TC_")
        assert exc.context == {}
        assert isinstance(exc.timestamp, datetime)

    def test_explicit_error_code(self):
        """An explicit error code overrides the generated one."""
        exc = TrustChainException("boom", error_code="TC_TEST_001", context={"count": 42})
        assert exc.error_code == "TC_TEST_001"
        assert exc.context == {"count": 42}

    def test_str_and_repr(self):
        """String forms carry the code and message."""
        exc = LedgerQueryError("peer unreachable")
        assert str(exc) == "[TC_LEDGER_QUERY_ERROR] - peer unreachable"
        assert repr(exc) == (
            "LedgerQueryError(message='peer unreachable', error_code='TC_LEDGER_QUERY_ERROR')"
        )

    def test_to_dict_and_json(self):
        """Exceptions serialize to dict and JSON."""
        exc = RecordNotFoundError("missing", context={"vin": "NCR1234567"})
        data = exc.to_dict()
        assert data["error_type"] == "RecordNotFoundError"
        assert data["error_code"] == "TC_RECORD_NOT_FOUND_ERROR"
        assert data["context"] == {"vin": "NCR1234567"}

        parsed = json.loads(exc.to_json())
        assert parsed["message"] == "missing"
        assert parsed["timestamp"] == exc.timestamp.isoformat()


# ==============================================================================
# Hierarchy Tests
# ==============================================================================

class TestHierarchy:
    """Subclass relationships."""

    @pytest.mark.parametrize("exc_class, parent", [
        (LedgerQueryError, LedgerException),
        (LedgerTimeoutError, LedgerException),
        (RecordNotFoundError, RelationalStoreException),
        (StoreTimeoutError, RelationalStoreException),
        (DatabaseError, RelationalStoreException),
        (RestorationError, WatchdogException),
        (AlertDeliveryError, WatchdogException),
        (ConfigurationError, WatchdogException),
        (ConfigurationError, ValueError),
    ])
    def test_parent(self, exc_class, parent):
        """Every exception descends from its family and the base."""
        exc = exc_class("x")
        assert isinstance(exc, parent)
        assert isinstance(exc, TrustChainException)


class TestTimeoutContext:
    """Timeout exceptions record the limit in the context."""

    def test_ledger_timeout(self):
        """The ledger timeout is merged into the context."""
        exc = LedgerTimeoutError("timed out", timeout_seconds=10.0, context={"vin": "NCR1234567"})
        assert exc.context == {"vin": "NCR1234567", "timeout_seconds": 10.0}

    def test_store_timeout_without_limit(self):
        """No timeout key is added when the limit is unknown."""
        assert StoreTimeoutError("timed out").context == {}


# ==============================================================================
# Utilities Tests
# ==============================================================================

class TestIsRetriable:
    """Retry classification."""

    @pytest.mark.parametrize("exc", [
        LedgerTimeoutError("t"),
        LedgerQueryError("q"),
        StoreTimeoutError("s"),
        DatabaseError("d"),
    ])
    def test_transient(self, exc):
        """Infrastructure failures are retriable."""
        assert is_retriable(exc) is True

    @pytest.mark.parametrize("exc", [
        RecordNotFoundError("r"),
        RestorationError("r"),
        ConfigurationError("c"),
        ValueError("v"),
    ])
    def test_permanent(self, exc):
        """Logical failures are not retriable."""
        assert is_retriable(exc) is False
