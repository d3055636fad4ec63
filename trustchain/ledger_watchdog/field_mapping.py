# -*- coding: utf-8 -*-
"""
Field Mapping - relational column to ledger attribute correspondence

Declarative table of the fields tracked for vehicle registrations. Each
entry names the relational column, the ledger attribute path (dot
notation, informational), a display label, whether the field is
critical (identity/ownership bearing) and a typed accessor for each
side. Accessors replace string-path reflection: ``owner.email`` is read
by a small function rather than by walking a path at runtime.

Example:
    >>> from trustchain.ledger_watchdog.field_mapping import VEHICLE_FIELD_MAP
    >>> [m.label for m in VEHICLE_FIELD_MAP if m.critical]
    ['Plate Number', 'Engine Number', 'Chassis Number', 'Owner Email']

Author: TrustChain Platform Team
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from trustchain.ledger_watchdog.models import LedgerRecord, RelationalRecord


@dataclass(frozen=True)
class FieldMapping:
    """One tracked field.

    Attributes:
        relational_key: Relational column name.
        ledger_key_path: Ledger attribute path in dot notation.
        label: Human-readable label used in reports and alerts.
        critical: Mismatch implies possible tampering.
        relational_accessor: Reads the value from a RelationalRecord.
        ledger_accessor: Reads the value from a LedgerRecord.
        restorable: Restoration copies the ledger value into the column.
    """

    relational_key: str
    ledger_key_path: str
    label: str
    critical: bool
    relational_accessor: Callable[[RelationalRecord], Any]
    ledger_accessor: Callable[[LedgerRecord], Any]
    restorable: bool = True


def _owner_email(record: LedgerRecord) -> Optional[str]:
    return record.owner.email if record.owner else None


VEHICLE_FIELD_MAP: Tuple[FieldMapping, ...] = (
    FieldMapping(
        relational_key="plate_number",
        ledger_key_path="plateNumber",
        label="Plate Number",
        critical=True,
        relational_accessor=lambda r: r.plate_number,
        ledger_accessor=lambda l: l.plate_number,
    ),
    FieldMapping(
        relational_key="engine_number",
        ledger_key_path="engineNumber",
        label="Engine Number",
        critical=True,
        relational_accessor=lambda r: r.engine_number,
        ledger_accessor=lambda l: l.engine_number,
    ),
    FieldMapping(
        relational_key="chassis_number",
        ledger_key_path="chassisNumber",
        label="Chassis Number",
        critical=True,
        relational_accessor=lambda r: r.chassis_number,
        ledger_accessor=lambda l: l.chassis_number,
    ),
    FieldMapping(
        relational_key="make",
        ledger_key_path="make",
        label="Make",
        critical=False,
        relational_accessor=lambda r: r.make,
        ledger_accessor=lambda l: l.make,
    ),
    FieldMapping(
        relational_key="model",
        ledger_key_path="model",
        label="Model",
        critical=False,
        relational_accessor=lambda r: r.model,
        ledger_accessor=lambda l: l.model,
    ),
    FieldMapping(
        relational_key="year",
        ledger_key_path="year",
        label="Year",
        critical=False,
        relational_accessor=lambda r: r.year,
        ledger_accessor=lambda l: l.year,
    ),
    # Owner is restored through e-mail resolution, never copied directly.
    FieldMapping(
        relational_key="owner_email",
        ledger_key_path="owner.email",
        label="Owner Email",
        critical=True,
        relational_accessor=lambda r: r.owner_email,
        ledger_accessor=_owner_email,
        restorable=False,
    ),
)


def get_mapping(relational_key: str) -> Optional[FieldMapping]:
    """Return the mapping entry for a relational column, if tracked."""
    for mapping in VEHICLE_FIELD_MAP:
        if mapping.relational_key == relational_key:
            return mapping
    return None


def restorable_values(record: LedgerRecord) -> Dict[str, Any]:
    """Relational column -> ledger value for every restorable field."""
    return {
        m.relational_key: m.ledger_accessor(record)
        for m in VEHICLE_FIELD_MAP
        if m.restorable
    }


__all__ = [
    "FieldMapping",
    "VEHICLE_FIELD_MAP",
    "get_mapping",
    "restorable_values",
]
