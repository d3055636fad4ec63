"""
Database Connection
===================

Database connection management for the TrustChain relational store.

Author: TrustChain Platform Team
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime

from trustchain.exceptions import DatabaseError

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = (
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        first_name TEXT,
        last_name TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vehicles (
        id TEXT PRIMARY KEY,
        vin TEXT NOT NULL UNIQUE,
        plate_number TEXT,
        engine_number TEXT,
        chassis_number TEXT,
        make TEXT,
        model TEXT,
        year INTEGER,
        owner_id TEXT REFERENCES users(id),
        status TEXT NOT NULL DEFAULT 'SUBMITTED',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vehicle_history (
        id TEXT PRIMARY KEY,
        vehicle_id TEXT NOT NULL REFERENCES vehicles(id),
        action TEXT NOT NULL,
        description TEXT,
        performed_by TEXT,
        transaction_id TEXT,
        metadata TEXT,
        performed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_vehicles_status ON vehicles(status)',
    'CREATE INDEX IF NOT EXISTS idx_history_vehicle ON vehicle_history(vehicle_id)',
)


@dataclass
class ConnectionConfig:
    """Database connection configuration."""
    db_type: str = "sqlite"
    database: str = "trustchain.db"
    pool_size: int = 5
    timeout: float = 30.0
    echo: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConnectionPool:
    """Thread-safe connection pool; callers wait up to ``timeout`` for a free slot."""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self.connections: List[Any] = []
        self.available: List[Any] = []
        self.in_use: Dict[Any, datetime] = {}
        self._cond = threading.Condition()

    def get_connection(self):
        """Get a connection from the pool."""
        deadline = time.monotonic() + self.config.timeout
        with self._cond:
            while True:
                if self.available:
                    conn = self.available.pop()
                    break
                if len(self.connections) < self.config.pool_size:
                    conn = self._create_connection()
                    self.connections.append(conn)
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise DatabaseError(
                        "Connection pool exhausted",
                        context={"pool_size": self.config.pool_size},
                    )
                self._cond.wait(timeout=remaining)

            self.in_use[conn] = datetime.now()
            return conn

    def return_connection(self, conn):
        """Return a connection to the pool."""
        with self._cond:
            if conn in self.in_use:
                del self.in_use[conn]
                self.available.append(conn)
                self._cond.notify()

    def _create_connection(self):
        """Create a new database connection."""
        if self.config.db_type != "sqlite":
            raise NotImplementedError(f"Database type {self.config.db_type} not implemented")
        # isolation_level=None: transactions are opened explicitly by TransactionManager
        conn = sqlite3.connect(
            self.config.database,
            timeout=self.config.timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def close_all(self):
        """Close all connections in the pool."""
        with self._cond:
            for conn in self.connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning("Error closing connection: %s", e)
            self.connections.clear()
            self.available.clear()
            self.in_use.clear()


class DatabaseConnection:
    """
    Main database connection class for TrustChain.

    Provides connection management, query execution, and schema setup.
    Multi-statement atomic work goes through
    :class:`trustchain.database.transaction.TransactionManager`.
    """

    def __init__(self, config: Optional[ConnectionConfig] = None):
        self.config = config or ConnectionConfig()
        self.pool = ConnectionPool(self.config)
        self.query_count = 0
        self._count_lock = threading.Lock()

        self._initialize_database()

    def _initialize_database(self):
        """Initialize database with required tables."""
        with self.get_connection() as conn:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(statement)
        logger.info("Database initialized: %s", self.config.database)

    @contextmanager
    def get_connection(self):
        """Get a database connection context manager."""
        conn = self.pool.get_connection()
        try:
            yield conn
        finally:
            self.pool.return_connection(conn)

    def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """
        Execute a single statement in autocommit mode.

        Args:
            query: SQL query
            params: Query parameters

        Returns:
            List of rows for SELECT, otherwise the cursor rowcount
        """
        with self._count_lock:
            self.query_count += 1

        with self.get_connection() as conn:
            if self.config.echo:
                logger.debug("Executing query: %s with params: %s", query, params)
            try:
                cursor = conn.execute(query, params or ())
                if query.lstrip().upper().startswith('SELECT'):
                    return cursor.fetchall()
                return cursor.rowcount
            except sqlite3.Error as e:
                logger.error("Query failed: %s", e)
                raise DatabaseError(f"Query execution failed: {e}") from e

    def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[sqlite3.Row]:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def insert(self, model_instance) -> str:
        """
        Insert a model instance into database.

        Args:
            model_instance: Model instance to insert

        Returns:
            Inserted row ID
        """
        model_instance.validate()
        table_name = model_instance.__tablename__
        data = model_instance.to_row()

        columns = list(data.keys())
        placeholders = ['?' for _ in columns]
        query = f"INSERT INTO {table_name} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"

        self.execute(query, tuple(data.values()))
        model_instance.id = data["id"]
        return data["id"]

    def get_metrics(self) -> Dict[str, Any]:
        """Get database metrics."""
        return {
            "query_count": self.query_count,
            "pool_size": self.config.pool_size,
            "connections_in_use": len(self.pool.in_use),
            "connections_available": len(self.pool.available)
        }

    def close(self):
        """Close database connection."""
        self.pool.close_all()
