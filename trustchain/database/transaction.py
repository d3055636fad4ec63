"""
Transaction management for TrustChain database operations.

Provides ACID transaction context managers with automatic rollback and
logging for write paths that must be all-or-nothing (consistency
restoration: field overwrite plus provenance append).
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from trustchain.database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    """Transaction states for tracking."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class LockMode(Enum):
    """SQLite BEGIN modes.

    IMMEDIATE takes the write lock up front, so a concurrent application
    write to the same row cannot interleave with the transaction body.
    """
    DEFERRED = "DEFERRED"
    IMMEDIATE = "IMMEDIATE"
    EXCLUSIVE = "EXCLUSIVE"


@dataclass
class TransactionLog:
    """Transaction log entry for audit trail."""
    transaction_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    state: TransactionState = TransactionState.PENDING
    error: Optional[str] = None
    rollback_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class TransactionManager:
    """
    Manages database transactions with automatic rollback and logging.

    Features:
    - All-or-nothing commit of every statement issued on the yielded
      connection
    - Automatic rollback on any exception (the exception is re-raised)
    - Transaction logging for monitoring
    """

    def __init__(
        self,
        database: DatabaseConnection,
        lock_mode: LockMode = LockMode.IMMEDIATE,
        clock: Optional[Callable[[], datetime]] = None,
        max_logs: int = 1000,
    ):
        """
        Initialize transaction manager.

        Args:
            database: Database connection (pool owner)
            lock_mode: BEGIN mode used for write transactions
            clock: Callable returning the current UTC time
            max_logs: Number of transaction logs retained in memory
        """
        self.database = database
        self.lock_mode = lock_mode
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_logs = max_logs
        self.transaction_logs: Dict[str, TransactionLog] = {}
        self._active = 0
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self, name: Optional[str] = None):
        """
        Transaction context manager with automatic rollback.

        Args:
            name: Optional transaction name for logging

        Yields:
            sqlite3 connection bound to the open transaction

        Example:
            with manager.transaction("restore_vehicle") as conn:
                conn.execute("UPDATE vehicles SET plate_number = ? WHERE vin = ?", (...))
                conn.execute("INSERT INTO vehicle_history ...", (...))
        """
        transaction_id = str(uuid.uuid4())
        transaction_name = name or f"transaction_{transaction_id[:8]}"
        log_entry = TransactionLog(
            transaction_id=transaction_id,
            start_time=self._clock(),
            metadata={"name": transaction_name},
        )
        self._store_log(log_entry)

        with self.database.get_connection() as conn:
            conn.execute(f"BEGIN {self.lock_mode.value}")
            log_entry.state = TransactionState.IN_PROGRESS
            with self._lock:
                self._active += 1
            logger.debug("Started transaction: %s (ID: %s)", transaction_name, transaction_id)
            try:
                yield conn
                conn.execute("COMMIT")
                log_entry.state = TransactionState.COMMITTED
                log_entry.end_time = self._clock()
                duration = (log_entry.end_time - log_entry.start_time).total_seconds()
                logger.info("Committed transaction: %s (Duration: %.3fs)", transaction_name, duration)
            except BaseException as e:
                try:
                    conn.execute("ROLLBACK")
                    log_entry.state = TransactionState.ROLLED_BACK
                    log_entry.rollback_reason = str(e)
                    logger.error("Rolled back transaction: %s - %s", transaction_name, e)
                except Exception as rollback_error:
                    log_entry.state = TransactionState.FAILED
                    logger.error("Error during rollback: %s", rollback_error)
                log_entry.error = f"{type(e).__name__}: {e}"
                raise
            finally:
                with self._lock:
                    self._active -= 1
                log_entry.end_time = log_entry.end_time or self._clock()

    def _store_log(self, entry: TransactionLog) -> None:
        with self._lock:
            self.transaction_logs[entry.transaction_id] = entry
            while len(self.transaction_logs) > self.max_logs:
                oldest = next(iter(self.transaction_logs))
                del self.transaction_logs[oldest]

    def get_transaction_history(
        self, state: Optional[TransactionState] = None
    ) -> List[TransactionLog]:
        """
        Get transaction history, newest first.

        Args:
            state: Filter by transaction state
        """
        with self._lock:
            logs = list(self.transaction_logs.values())
        if state:
            logs = [l for l in logs if l.state == state]
        return sorted(logs, key=lambda x: x.start_time, reverse=True)

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get transaction metrics for monitoring.

        Returns:
            Dictionary with transaction metrics
        """
        with self._lock:
            logs = list(self.transaction_logs.values())
            active = self._active

        committed = [l for l in logs if l.state == TransactionState.COMMITTED]
        durations = [
            (l.end_time - l.start_time).total_seconds()
            for l in committed
            if l.end_time
        ]
        return {
            "total_transactions": len(logs),
            "committed": len(committed),
            "rolled_back": len([l for l in logs if l.state == TransactionState.ROLLED_BACK]),
            "failed": len([l for l in logs if l.state == TransactionState.FAILED]),
            "average_duration": sum(durations) / len(durations) if durations else 0,
            "active_transactions": active,
        }
