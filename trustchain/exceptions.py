"""TrustChain Custom Exception Hierarchy.

This module provides the exception hierarchy used by the TrustChain
ledger-consistency subsystem, with rich error context for debugging,
monitoring, and operator feedback.

Exception Hierarchy:
    TrustChainException (base)
    ├── LedgerException
    │   ├── LedgerQueryError
    │   └── LedgerTimeoutError
    ├── RelationalStoreException
    │   ├── RecordNotFoundError
    │   ├── StoreTimeoutError
    │   └── DatabaseError
    └── WatchdogException
        ├── RestorationError
        ├── AlertDeliveryError
        └── ConfigurationError

All exceptions include rich context:
- error_code: Unique error identifier
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Example:
    >>> from trustchain.exceptions import LedgerTimeoutError
    >>> raise LedgerTimeoutError(
    ...     message="Ledger query timed out",
    ...     context={"vin": "NCR1234567", "timeout_seconds": 10.0}
    ... )
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class TrustChainException(Exception):
    """Base exception for all TrustChain errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "TC_LEDGER_QUERY_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred (UTC)
    """

    ERROR_PREFIX = "TC"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate an error code based on the exception class name.

        Returns:
            Error code like "TC_LEDGER_QUERY_ERROR"
        """
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Ledger Exceptions
# ==============================================================================

class LedgerException(TrustChainException):
    """Base exception for distributed-ledger access errors."""


class LedgerQueryError(LedgerException):
    """A ledger query failed (peer unreachable, malformed response, ...)."""


class LedgerTimeoutError(LedgerException):
    """A ledger query exceeded its timeout.

    Example:
        >>> raise LedgerTimeoutError(
        ...     message="Ledger query timed out after 10.0s",
        ...     timeout_seconds=10.0,
        ...     context={"vin": "NCR1234567"}
        ... )
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if timeout_seconds is not None:
            context = context or {}
            context["timeout_seconds"] = timeout_seconds
        super().__init__(message, context=context)


# ==============================================================================
# Relational Store Exceptions
# ==============================================================================

class RelationalStoreException(TrustChainException):
    """Base exception for relational store errors."""


class RecordNotFoundError(RelationalStoreException):
    """A record expected to exist in the relational store was not found."""


class StoreTimeoutError(RelationalStoreException):
    """A relational query exceeded its timeout."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if timeout_seconds is not None:
            context = context or {}
            context["timeout_seconds"] = timeout_seconds
        super().__init__(message, context=context)


class DatabaseError(RelationalStoreException):
    """Low-level database error (connection, pool, SQL)."""


# ==============================================================================
# Watchdog Exceptions
# ==============================================================================

class WatchdogException(TrustChainException):
    """Base exception for watchdog, audit and restoration errors."""


class RestorationError(WatchdogException):
    """Restoring relational fields from ledger truth failed.

    The surrounding transaction has been rolled back; no field change
    from the failed restoration is visible.
    """


class AlertDeliveryError(WatchdogException):
    """The alert collaborator failed to deliver a notification."""


class ConfigurationError(WatchdogException, ValueError):
    """Invalid watchdog configuration.

    Also a ValueError, so callers validating plain settings can catch either.
    """


# ==============================================================================
# Utilities
# ==============================================================================

def is_retriable(exc: Exception) -> bool:
    """Return True when the failure is transient infrastructure trouble.

    Transient failures are retried on the next scheduled run, never
    immediately.

    Args:
        exc: Exception to classify

    Returns:
        True if retriable
    """
    return isinstance(
        exc, (LedgerTimeoutError, LedgerQueryError, StoreTimeoutError, DatabaseError)
    )


__all__ = [
    "TrustChainException",
    "LedgerException",
    "LedgerQueryError",
    "LedgerTimeoutError",
    "RelationalStoreException",
    "RecordNotFoundError",
    "StoreTimeoutError",
    "DatabaseError",
    "WatchdogException",
    "RestorationError",
    "AlertDeliveryError",
    "ConfigurationError",
    "is_retriable",
]
