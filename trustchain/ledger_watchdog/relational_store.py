# -*- coding: utf-8 -*-
"""
SQL Relational Store Adapter

Implements the ``RelationalStore`` port over
``trustchain.database.DatabaseConnection``. Reads join the owner's
e-mail from ``users``. Restoration writes go through ``transaction()``,
which opens a ``BEGIN IMMEDIATE`` transaction and yields a unit of work;
any exception inside the block rolls back every write issued in it.

Example:
    >>> store = SQLVehicleStore(DatabaseConnection(ConnectionConfig(database="tc.db")))
    >>> with store.transaction() as uow:
    ...     uow.update_mutable_fields("NCR7654321", {"plate_number": "ABC-999"})
    ...     uow.append_provenance_entry("NCR7654321", event)

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence

from trustchain.database import (
    DatabaseConnection,
    TransactionManager,
    UserModel,
    VehicleHistoryModel,
    VehicleModel,
)
from trustchain.exceptions import DatabaseError, RecordNotFoundError
from trustchain.ledger_watchdog.models import OwnerRef, RelationalRecord, RestorationEvent

logger = logging.getLogger(__name__)

_VEHICLE_SELECT = (
    "SELECT v.*, u.email AS owner_email "
    "FROM vehicles v LEFT JOIN users u ON u.id = v.owner_id"
)


def _to_record(row: Mapping[str, Any]) -> RelationalRecord:
    vehicle = VehicleModel.from_row(row)
    return RelationalRecord(
        id=vehicle.id,
        vin=vehicle.vin,
        plate_number=vehicle.plate_number,
        engine_number=vehicle.engine_number,
        chassis_number=vehicle.chassis_number,
        make=vehicle.make,
        model=vehicle.model,
        year=vehicle.year,
        owner_id=vehicle.owner_id,
        owner_email=row["owner_email"],
        status=vehicle.status,
        created_at=vehicle.created_at,
        last_updated=vehicle.last_updated,
    )


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLUnitOfWork:
    """Writes bound to one open sqlite transaction."""

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], datetime]) -> None:
        self._conn = conn
        self._clock = clock

    def _vehicle_id(self, vin: str) -> str:
        row = self._conn.execute("SELECT id FROM vehicles WHERE vin = ?", (vin,)).fetchone()
        if row is None:
            raise RecordNotFoundError(
                "Vehicle not found in relational store", context={"vin": vin},
            )
        return row["id"]

    def update_mutable_fields(self, vin: str, fields: Mapping[str, Any]) -> None:
        """Overwrite mutable columns and bump ``last_updated``.

        Raises:
            ValueError: If a column outside ``VehicleModel.MUTABLE_COLUMNS``
                is named.
            RecordNotFoundError: If no vehicle has this VIN.
        """
        illegal = set(fields) - set(VehicleModel.MUTABLE_COLUMNS)
        if illegal:
            raise ValueError(f"columns are not mutable: {sorted(illegal)}")
        if not fields:
            return

        columns = list(fields)
        assignments = ", ".join(f"{c} = ?" for c in columns)
        params = [fields[c] for c in columns]
        params.extend([self._clock().isoformat(), vin])
        try:
            cursor = self._conn.execute(
                f"UPDATE vehicles SET {assignments}, last_updated = ? WHERE vin = ?",
                tuple(params),
            )
        except sqlite3.Error as e:
            raise DatabaseError(f"Vehicle update failed: {e}", context={"vin": vin}) from e
        if cursor.rowcount == 0:
            raise RecordNotFoundError(
                "Vehicle not found in relational store", context={"vin": vin},
            )

    def append_provenance_entry(self, vin: str, entry: RestorationEvent) -> None:
        """Append one row to ``vehicle_history``."""
        history = VehicleHistoryModel(
            vehicle_id=self._vehicle_id(vin),
            action=entry.action,
            description=entry.describe(),
            performed_by=entry.actor,
            transaction_id=entry.transaction_id,
            metadata={
                "vin": entry.vin,
                "reason": entry.reason,
                "changed_fields": entry.changed_fields,
                "owner_resolved": entry.owner_resolved,
            },
            performed_at=entry.restored_at,
        )
        history.validate()
        data = history.to_row()
        columns = list(data)
        try:
            self._conn.execute(
                f"INSERT INTO vehicle_history ({', '.join(columns)}) "
                f"VALUES ({_placeholders(columns)})",
                tuple(data.values()),
            )
        except sqlite3.Error as e:
            raise DatabaseError(f"History append failed: {e}", context={"vin": vin}) from e


class SQLVehicleStore:
    """RelationalStore over the TrustChain sqlite schema.

    Args:
        database: Database connection (pool owner).
        eligible_statuses: Statuses that imply ledger presence.
        inactive_statuses: Statuses excluded from the active scope.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        database: DatabaseConnection,
        eligible_statuses: Sequence[str] = ("REGISTERED",),
        inactive_statuses: Sequence[str] = ("REJECTED", "SUSPENDED"),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.database = database
        self.eligible_statuses = tuple(eligible_statuses)
        self.inactive_statuses = tuple(inactive_statuses)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.transactions = TransactionManager(database, clock=self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_record(self, vin: str) -> Optional[RelationalRecord]:
        row = self.database.fetch_one(f"{_VEHICLE_SELECT} WHERE v.vin = ?", (vin,))
        return _to_record(row) if row else None

    def get_record_by_id(self, vehicle_id: str) -> Optional[RelationalRecord]:
        row = self.database.fetch_one(f"{_VEHICLE_SELECT} WHERE v.id = ?", (vehicle_id,))
        return _to_record(row) if row else None

    def list_eligible_records(self) -> List[RelationalRecord]:
        statuses = self.eligible_statuses
        rows = self.database.execute(
            f"{_VEHICLE_SELECT} WHERE v.status IN ({_placeholders(statuses)}) ORDER BY v.vin",
            tuple(statuses),
        )
        return [_to_record(r) for r in rows]

    def list_active_records(self) -> List[RelationalRecord]:
        statuses = self.inactive_statuses
        if statuses:
            query = (
                f"{_VEHICLE_SELECT} WHERE v.status NOT IN ({_placeholders(statuses)}) "
                "ORDER BY v.vin"
            )
        else:
            query = f"{_VEHICLE_SELECT} ORDER BY v.vin"
        rows = self.database.execute(query, tuple(statuses))
        return [_to_record(r) for r in rows]

    def resolve_owner_by_email(self, email: str) -> Optional[OwnerRef]:
        if not email or not email.strip():
            return None
        row = self.database.fetch_one(
            "SELECT * FROM users WHERE lower(email) = lower(?) AND is_active = 1",
            (email.strip(),),
        )
        if row is None:
            return None
        user = UserModel.from_row(row)
        return OwnerRef(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )

    def get_history(self, vin: str) -> List[VehicleHistoryModel]:
        """History rows for a vehicle, oldest first."""
        rows = self.database.execute(
            "SELECT h.* FROM vehicle_history h JOIN vehicles v ON v.id = h.vehicle_id "
            "WHERE v.vin = ? ORDER BY h.performed_at, h.rowid",
            (vin,),
        )
        return [VehicleHistoryModel.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[SQLUnitOfWork]:
        with self.transactions.transaction("ledger_restoration") as conn:
            yield SQLUnitOfWork(conn, self._clock)

    def create_user(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> str:
        """Insert a user and return its id."""
        return self.database.insert(
            UserModel(email=email, first_name=first_name, last_name=last_name)
        )

    def create_vehicle(self, vin: str, **fields: Any) -> str:
        """Insert a vehicle and return its id."""
        return self.database.insert(VehicleModel(vin=vin, **fields))


__all__ = ["SQLUnitOfWork", "SQLVehicleStore"]
