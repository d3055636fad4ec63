"""
Database Models
===============

Row models for the TrustChain relational store: registered users,
vehicles, and the append-only vehicle history (audit trail) table.

Author: TrustChain Platform Team
"""

from typing import Dict, Any, Optional, Mapping
from dataclasses import dataclass, field, asdict
from datetime import datetime
import json
import uuid


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class BaseModel:
    """Base class for all database models."""
    __tablename__ = "base"

    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data

    def to_row(self) -> Dict[str, Any]:
        """Column -> value mapping used for INSERT statements."""
        data = self.to_dict()
        if not data.get("id"):
            data["id"] = str(uuid.uuid4())
        if data.get("created_at") is None:
            data.pop("created_at", None)
        return data

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'BaseModel':
        """Create model instance from database row."""
        # This should be overridden by subclasses
        raise NotImplementedError

    def validate(self) -> bool:
        """Validate model data."""
        return True


@dataclass
class UserModel(BaseModel):
    """Model for registered users (vehicle owners, officers)."""
    __tablename__ = "users"

    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'UserModel':
        """Create from database row."""
        return cls(
            id=row["id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            is_active=bool(row["is_active"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def validate(self) -> bool:
        """Validate user data."""
        if not self.email or "@" not in self.email:
            raise ValueError("a valid email is required")
        return True


@dataclass
class VehicleModel(BaseModel):
    """Model for vehicle registrations."""
    __tablename__ = "vehicles"

    vin: str = ""
    plate_number: Optional[str] = None
    engine_number: Optional[str] = None
    chassis_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    owner_id: Optional[str] = None
    status: str = "SUBMITTED"
    last_updated: Optional[datetime] = None

    #: Columns the consistency subsystem is allowed to overwrite.
    MUTABLE_COLUMNS = (
        "plate_number",
        "engine_number",
        "chassis_number",
        "make",
        "model",
        "year",
        "owner_id",
    )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'VehicleModel':
        """Create from database row."""
        return cls(
            id=row["id"],
            vin=row["vin"],
            plate_number=row["plate_number"],
            engine_number=row["engine_number"],
            chassis_number=row["chassis_number"],
            make=row["make"],
            model=row["model"],
            year=row["year"],
            owner_id=row["owner_id"],
            status=row["status"],
            created_at=_parse_ts(row["created_at"]),
            last_updated=_parse_ts(row["last_updated"]),
        )

    def to_row(self) -> Dict[str, Any]:
        data = super().to_row()
        if data.get("last_updated") is None:
            data.pop("last_updated", None)
        return data

    def validate(self) -> bool:
        """Validate vehicle data."""
        if not self.vin:
            raise ValueError("vin is required")
        if self.year is not None and self.year < 1886:
            raise ValueError("year must be a plausible model year")
        return True


@dataclass
class VehicleHistoryModel(BaseModel):
    """Model for vehicle history (immutable audit trail) entries."""
    __tablename__ = "vehicle_history"

    vehicle_id: str = ""
    action: str = ""
    description: Optional[str] = None
    performed_by: Optional[str] = None
    transaction_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    performed_at: Optional[datetime] = None

    MAX_DESCRIPTION_LENGTH = 1000
    MAX_TRANSACTION_ID_LENGTH = 100

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'VehicleHistoryModel':
        """Create from database row."""
        return cls(
            id=row["id"],
            vehicle_id=row["vehicle_id"],
            action=row["action"],
            description=row["description"],
            performed_by=row["performed_by"],
            transaction_id=row["transaction_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            performed_at=_parse_ts(row["performed_at"]),
        )

    def to_row(self) -> Dict[str, Any]:
        data = super().to_row()
        data.pop("created_at", None)
        description = data.get("description")
        if description and len(description) > self.MAX_DESCRIPTION_LENGTH:
            data["description"] = description[: self.MAX_DESCRIPTION_LENGTH] + "..."
        tx_id = data.get("transaction_id")
        if tx_id and len(tx_id) > self.MAX_TRANSACTION_ID_LENGTH:
            # Keep the tail; it carries the unique part of ledger tx ids
            data["transaction_id"] = tx_id[-self.MAX_TRANSACTION_ID_LENGTH:]
        data["metadata"] = json.dumps(self.metadata, default=str) if self.metadata else None
        if data.get("performed_at") is None:
            data.pop("performed_at", None)
        return data

    def validate(self) -> bool:
        """Validate history entry."""
        if not self.vehicle_id:
            raise ValueError("vehicle_id is required")
        if not self.action:
            raise ValueError("action is required")
        return True
