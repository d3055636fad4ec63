"""
TrustChain Database Module
==========================

Relational store connectivity, row models and transaction management for
the vehicle-registration system of record.

Example:
    >>> from trustchain.database import DatabaseConnection, ConnectionConfig, TransactionManager
    >>> db = DatabaseConnection(ConnectionConfig(database="trustchain.db"))
    >>> with TransactionManager(db).transaction("restore_vehicle") as conn:
    ...     conn.execute("UPDATE vehicles SET plate_number = ? WHERE vin = ?", ("ABC-999", "NCR7654321"))
"""

from trustchain.database.connection import (
    DatabaseConnection,
    ConnectionConfig,
    ConnectionPool,
)
from trustchain.database.models import (
    BaseModel,
    UserModel,
    VehicleModel,
    VehicleHistoryModel,
)
from trustchain.database.transaction import (
    LockMode,
    TransactionLog,
    TransactionManager,
    TransactionState,
)

__all__ = [
    # Connection classes
    'DatabaseConnection',
    'ConnectionConfig',
    'ConnectionPool',
    # Model classes
    'BaseModel',
    'UserModel',
    'VehicleModel',
    'VehicleHistoryModel',
    # Transactions
    'LockMode',
    'TransactionLog',
    'TransactionManager',
    'TransactionState',
]
