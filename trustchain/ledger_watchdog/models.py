# -*- coding: utf-8 -*-
"""
Ledger Consistency Watchdog Data Models

Pydantic v2 data models for the ledger-consistency watchdog. Defines
enumerations, record snapshots (relational and ledger side), check and
audit results, sync reports, restoration events, alert summaries and
request models for the REST layer.

Enumerations (5):
    - IntegrityStatus, FieldStatus, SyncDiscrepancyStatus, RunOutcome,
      AlertKind

Snapshot models (4):
    - RelationalRecord, OwnerRef, LedgerOwner, LedgerRecord

Result models (14):
    - ComparisonResult, FieldConsensus, PeerConsensus, IntegrityVerdict,
      BatchCheckResult, TamperedSummary, AuditReport, WatchdogRunResult,
      WatchdogStatus, SyncDiscrepancy, SyncReport, SyncRunResult,
      SyncStatus, RestorationEvent, AlertSummary

Request models (2):
    - BatchCheckRequest, RunAuditRequest

Author: TrustChain Platform Team
Status: Production Ready
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: History action tag written by the restoration engine.
RESTORATION_ACTION: str = "LEDGER_RESTORATION"

#: Actor recorded on automated restoration history entries.
SYSTEM_ACTOR: str = "SYSTEM"

#: Reason recorded on automated restoration history entries.
RESTORATION_REASON: str = "consistency restoration"

#: Error string returned when a guarded run is requested concurrently.
ALREADY_RUNNING: str = "already running"

#: Module version string.
VERSION: str = "1.0.0"


# =============================================================================
# Enumerations
# =============================================================================


class IntegrityStatus(str, Enum):
    """Outcome of a single entity check.

    NOT_REGISTERED: Record has not reached the ledger stage and has no owner.
    PENDING_BLOCKCHAIN: Owner assigned or ledger-eligible, but no ledger
        record observed (yet).
    VERIFIED: Every mapped field matches the ledger.
    MISMATCH: Only informational fields differ.
    TAMPERED: At least one critical field differs.
    ERROR: The check could not be completed.
    """

    NOT_REGISTERED = "NOT_REGISTERED"
    PENDING_BLOCKCHAIN = "PENDING_BLOCKCHAIN"
    VERIFIED = "VERIFIED"
    MISMATCH = "MISMATCH"
    TAMPERED = "TAMPERED"
    ERROR = "ERROR"


class FieldStatus(str, Enum):
    """Per-field comparison status."""

    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    TAMPERED = "TAMPERED"


class SyncDiscrepancyStatus(str, Enum):
    """Discrepancy classes reported by the batch sync."""

    TAMPERED = "TAMPERED"
    MISMATCH = "MISMATCH"
    NOT_ON_LEDGER = "NOT_ON_LEDGER"


class RunOutcome(str, Enum):
    """Outcome of a guarded watchdog or sync invocation."""

    COMPLETED = "completed"
    ALREADY_RUNNING = "already_running"
    FAILED = "failed"


class AlertKind(str, Enum):
    """Source of an alert summary."""

    WATCHDOG = "watchdog"
    SYNC = "sync"


# =============================================================================
# Snapshot models
# =============================================================================


class OwnerRef(BaseModel):
    """Internal owner reference resolved from the relational users table.

    Attributes:
        id: Internal user identifier.
        email: Owner e-mail address.
        first_name: Owner first name.
        last_name: Owner last name.
    """

    id: str = Field(..., description="Internal user identifier")
    email: str = Field(..., description="Owner e-mail address")
    first_name: Optional[str] = Field(None, description="Owner first name")
    last_name: Optional[str] = Field(None, description="Owner last name")

    model_config = {"extra": "forbid"}


class RelationalRecord(BaseModel):
    """Off-chain (relational) snapshot of a vehicle registration.

    Attributes:
        id: Stable internal identifier.
        vin: Business key (vehicle identification number).
        plate_number: Licence plate number.
        engine_number: Engine number.
        chassis_number: Chassis number.
        make: Manufacturer.
        model: Model name.
        year: Model year.
        owner_id: Internal owner reference (None when unassigned).
        owner_email: E-mail of the referenced owner, joined on read.
        status: Lifecycle status.
        created_at: Creation timestamp.
        last_updated: Last modification timestamp.
    """

    id: str = Field(..., description="Stable internal identifier")
    vin: str = Field(..., description="Business key (vehicle identification number)")
    plate_number: Optional[str] = Field(None, description="Licence plate number")
    engine_number: Optional[str] = Field(None, description="Engine number")
    chassis_number: Optional[str] = Field(None, description="Chassis number")
    make: Optional[str] = Field(None, description="Manufacturer")
    model: Optional[str] = Field(None, description="Model name")
    year: Optional[int] = Field(None, description="Model year")
    owner_id: Optional[str] = Field(None, description="Internal owner reference")
    owner_email: Optional[str] = Field(None, description="E-mail of the referenced owner")
    status: str = Field(default="SUBMITTED", description="Lifecycle status")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    last_updated: Optional[datetime] = Field(None, description="Last modification timestamp")

    model_config = {"extra": "forbid", "protected_namespaces": ()}

    @property
    def has_owner(self) -> bool:
        return bool(self.owner_id)


class LedgerOwner(BaseModel):
    """Owner identity embedded in a ledger record (by e-mail, not by id)."""

    email: Optional[str] = Field(None, description="Owner e-mail address")
    first_name: Optional[str] = Field(None, alias="firstName", description="Owner first name")
    last_name: Optional[str] = Field(None, alias="lastName", description="Owner last name")

    model_config = {"extra": "ignore", "populate_by_name": True}


class LedgerRecord(BaseModel):
    """On-chain snapshot of a vehicle registration.

    Accepts the ledger's camelCase attribute names (``plateNumber``,
    ``engineNumber`` ...) as well as snake_case. Attributes the ledger
    carries beyond the mirrored subset are ignored.
    """

    vin: str = Field(..., description="Business key")
    plate_number: Optional[str] = Field(None, alias="plateNumber")
    engine_number: Optional[str] = Field(None, alias="engineNumber")
    chassis_number: Optional[str] = Field(None, alias="chassisNumber")
    make: Optional[str] = Field(None)
    model: Optional[str] = Field(None)
    year: Optional[int] = Field(None)
    owner: Optional[LedgerOwner] = Field(None, description="Embedded owner identity")
    status: Optional[str] = Field(None, description="Ledger-side lifecycle status")

    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
        "protected_namespaces": (),
    }

    @field_validator(
        "vin", "plate_number", "engine_number", "chassis_number", "make", "model", "status",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        """Numeric attribute values compare by their string form."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("year", mode="before")
    @classmethod
    def coerce_year(cls, v: Any) -> Any:
        """Ledger payloads may carry the year as a string."""
        if isinstance(v, str):
            v = v.strip()
            return int(v) if v else None
        return v

    @property
    def owner_email(self) -> Optional[str]:
        return self.owner.email if self.owner else None


# =============================================================================
# Check results
# =============================================================================


class ComparisonResult(BaseModel):
    """Comparison of one mapped field.

    Attributes:
        field: Relational column name.
        label: Human-readable field label.
        relational_value: Normalized relational value.
        ledger_value: Normalized ledger value.
        matches: Whether the normalized values are equal.
        is_critical: Whether the field is identity/ownership bearing.
        status: Per-field status.
    """

    field: str = Field(..., description="Relational column name")
    label: str = Field(..., description="Human-readable field label")
    relational_value: str = Field(default="", description="Normalized relational value")
    ledger_value: str = Field(default="", description="Normalized ledger value")
    matches: bool = Field(..., description="Whether the normalized values are equal")
    is_critical: bool = Field(..., description="Whether the field is critical")
    status: FieldStatus = Field(..., description="Per-field status")

    model_config = {"extra": "forbid"}


class FieldConsensus(BaseModel):
    """Consensus of one mapped field across ledger peers."""

    field: str = Field(..., description="Relational column name")
    label: str = Field(..., description="Human-readable field label")
    consensus_value: str = Field(default="", description="Plurality value (normalized)")
    peer_values: Dict[str, str] = Field(
        default_factory=dict, description="Normalized value reported by each peer",
    )
    agreeing_peers: int = Field(default=0, ge=0, description="Peers reporting the consensus value")
    responding_peers: int = Field(default=0, ge=0, description="Peers that returned a record")
    has_majority: bool = Field(default=True, description="Strict majority behind the consensus value")
    unanimous: bool = Field(default=True, description="Every responding peer agrees")

    model_config = {"extra": "forbid"}


class PeerConsensus(BaseModel):
    """Result of querying every ledger peer for one business key.

    Attributes:
        vin: Business key.
        peers_queried: Number of peers queried.
        peers_responded: Number of peers that answered (record or not found).
        unreachable_peers: Peers that failed or timed out.
        peer_records: Record returned by each responding peer (None = not found).
        consensus_record: Record reconstructed from per-field consensus.
        fields: Per-field consensus detail.
        discrepancies: Labels of fields the peers disagree on.
        presence_disagreement: Some peers have the record and some do not.
        agreement_ratio: Share of fields on which all responding peers agree.
    """

    vin: str = Field(..., description="Business key")
    peers_queried: int = Field(default=0, ge=0)
    peers_responded: int = Field(default=0, ge=0)
    unreachable_peers: List[str] = Field(default_factory=list)
    peer_records: Dict[str, Optional[LedgerRecord]] = Field(default_factory=dict)
    consensus_record: Optional[LedgerRecord] = Field(None)
    fields: List[FieldConsensus] = Field(default_factory=list)
    discrepancies: List[str] = Field(default_factory=list)
    presence_disagreement: bool = Field(default=False)
    agreement_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = {"extra": "forbid"}

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.discrepancies) or self.presence_disagreement


class IntegrityVerdict(BaseModel):
    """Outcome of one entity check.

    Ephemeral: recomputed on every call, never persisted by the
    subsystem. ``error`` is set for soft failures (ledger query failed)
    even when the status is not ERROR.
    """

    status: IntegrityStatus = Field(..., description="Overall classification")
    message: str = Field(default="", description="Human-readable explanation")
    vin: Optional[str] = Field(None, description="Business key")
    vehicle_id: Optional[str] = Field(None, description="Internal record id")
    transaction_id: Optional[str] = Field(None, description="Ledger registration transaction id")
    comparisons: List[ComparisonResult] = Field(default_factory=list)
    relational_record: Optional[RelationalRecord] = Field(None)
    ledger_record: Optional[LedgerRecord] = Field(None)
    error: Optional[str] = Field(None, description="Soft or hard failure detail")
    consensus: Optional[PeerConsensus] = Field(None, description="Multi-peer consensus detail")
    checked_at: datetime = Field(default_factory=_utcnow)
    provenance_hash: str = Field(default="", description="SHA-256 provenance chain hash")

    model_config = {"extra": "forbid"}

    @property
    def mismatched_labels(self) -> List[str]:
        return [c.label for c in self.comparisons if not c.matches]

    @property
    def mismatched_fields(self) -> List[str]:
        return [c.field for c in self.comparisons if not c.matches]

    @property
    def is_divergent(self) -> bool:
        return self.status in (IntegrityStatus.TAMPERED, IntegrityStatus.MISMATCH)

    @property
    def has_error(self) -> bool:
        return self.status == IntegrityStatus.ERROR or self.error is not None


class BatchCheckResult(BaseModel):
    """Result of a bounded batch of caller-supplied keys."""

    requested: int = Field(default=0, ge=0, description="Keys supplied by the caller")
    checked: int = Field(default=0, ge=0, description="Keys actually checked")
    truncated: bool = Field(default=False, description="Input exceeded the batch maximum")
    results: List[IntegrityVerdict] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict, description="Count per status")

    model_config = {"extra": "forbid"}


# =============================================================================
# Audit results
# =============================================================================


class TamperedSummary(BaseModel):
    """One tampered entity in an audit report."""

    vin: str = Field(..., description="Business key")
    vehicle_id: Optional[str] = Field(None)
    owner_email: Optional[str] = Field(None, description="Relational owner e-mail")
    owner_name: Optional[str] = Field(None, description="Ledger owner display name")
    mismatched_fields: List[str] = Field(default_factory=list, description="Mismatched field labels")
    transaction_id: Optional[str] = Field(None)
    restoration_attempted: bool = Field(default=False)
    restored: bool = Field(default=False)

    model_config = {"extra": "forbid"}


class AuditReport(BaseModel):
    """Aggregate of one forensic audit run.

    Counts are always populated, even when every entity errored.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = Field(None)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    auto_heal: bool = Field(default=False)
    total_checked: int = Field(default=0, ge=0)
    verified: int = Field(default=0, ge=0)
    mismatched: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    tampered: List[TamperedSummary] = Field(default_factory=list)
    restored: int = Field(default=0, ge=0)
    restoration_failures: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    error_details: List[str] = Field(default_factory=list, description="'<vin>: <error>' lines")
    provenance_hash: str = Field(default="")

    model_config = {"extra": "forbid"}

    @property
    def tampered_count(self) -> int:
        return len(self.tampered)

    @property
    def needs_attention(self) -> bool:
        return bool(self.tampered) or self.errors > 0


class WatchdogRunResult(BaseModel):
    """Result of a guarded watchdog invocation.

    ``success`` is False with ``error="already running"`` when a run was
    already executing.
    """

    success: bool = Field(...)
    outcome: RunOutcome = Field(...)
    error: Optional[str] = Field(None)
    report: Optional[AuditReport] = Field(None)
    alert_sent: bool = Field(default=False)

    model_config = {"extra": "forbid"}


class WatchdogStatus(BaseModel):
    """Current scheduler state."""

    enabled: bool = Field(default=False)
    scheduled: bool = Field(default=False, description="Background schedule active")
    run_in_progress: bool = Field(default=False)
    auto_heal: bool = Field(default=False)
    interval_minutes: int = Field(default=60)
    runs_completed: int = Field(default=0, ge=0)
    last_run_at: Optional[datetime] = Field(None)
    next_run_at: Optional[datetime] = Field(None)
    last_report: Optional[AuditReport] = Field(None)

    model_config = {"extra": "forbid"}


# =============================================================================
# Sync results
# =============================================================================


class SyncDiscrepancy(BaseModel):
    """One detailed discrepancy in a sync report."""

    vin: str = Field(...)
    vehicle_id: Optional[str] = Field(None)
    status: SyncDiscrepancyStatus = Field(...)
    record_status: Optional[str] = Field(None, description="Relational lifecycle status")
    owner_email: Optional[str] = Field(None)
    mismatched_fields: List[str] = Field(default_factory=list)
    message: str = Field(default="")

    model_config = {"extra": "forbid"}


class SyncReport(BaseModel):
    """Result of one on-demand full sync.

    Aggregate counts always cover every record; ``discrepancies`` is
    capped and ``discrepancies_truncated`` tells whether entries were
    dropped.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = Field(None)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    total_records: int = Field(default=0, ge=0)
    matched: int = Field(default=0, ge=0)
    mismatched: int = Field(default=0, ge=0)
    not_on_ledger: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    discrepancies: List[SyncDiscrepancy] = Field(default_factory=list)
    discrepancies_truncated: bool = Field(default=False)
    provenance_hash: str = Field(default="")

    model_config = {"extra": "forbid"}

    @property
    def total_discrepancies(self) -> int:
        return self.mismatched + self.not_on_ledger

    @property
    def has_discrepancies(self) -> bool:
        return self.total_discrepancies > 0


class SyncRunResult(BaseModel):
    """Result of a guarded sync invocation."""

    success: bool = Field(...)
    outcome: RunOutcome = Field(...)
    error: Optional[str] = Field(None)
    report: Optional[SyncReport] = Field(None)
    alert_sent: bool = Field(default=False)

    model_config = {"extra": "forbid"}


class SyncStatus(BaseModel):
    """Sync guard state plus the last completed report."""

    is_running: bool = Field(default=False)
    last_sync_at: Optional[datetime] = Field(None)
    last_sync: Optional[SyncReport] = Field(None)

    model_config = {"extra": "forbid"}


# =============================================================================
# Restoration and alerting
# =============================================================================


class RestorationEvent(BaseModel):
    """Provenance entry appended when relational fields are restored.

    Attributes:
        vin: Business key.
        vehicle_id: Internal record id.
        action: History action tag.
        actor: Actor the change is attributed to.
        reason: Free-text reason.
        changed_fields: ``{column: {"before": ..., "after": ...}}``.
        owner_resolved: Whether the ledger owner e-mail resolved to a user
            (None when the ledger carries no owner).
        transaction_id: Ledger registration transaction id, if known.
        restored_at: When the restoration ran.
    """

    vin: str = Field(...)
    vehicle_id: str = Field(...)
    action: str = Field(default=RESTORATION_ACTION)
    actor: str = Field(default=SYSTEM_ACTOR)
    reason: str = Field(default=RESTORATION_REASON)
    changed_fields: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    owner_resolved: Optional[bool] = Field(None)
    transaction_id: Optional[str] = Field(None)
    restored_at: datetime = Field(default_factory=_utcnow)

    model_config = {"extra": "forbid"}

    def describe(self) -> str:
        """One-line description for the history table."""
        if not self.changed_fields:
            return f"Automated {self.reason}: no field changes required"
        names = ", ".join(sorted(self.changed_fields))
        return f"Automated {self.reason} from ledger: {names}"


class AlertSummary(BaseModel):
    """Plain-data alert handed to the alert sender port."""

    kind: AlertKind = Field(...)
    subject: str = Field(...)
    body: str = Field(default="")
    destination: str = Field(default="")
    counts: Dict[str, int] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"extra": "forbid"}


# =============================================================================
# Request models
# =============================================================================


class BatchCheckRequest(BaseModel):
    """Body of ``POST /batch``."""

    vehicle_ids: List[str] = Field(default_factory=list, description="Internal vehicle ids to check")

    model_config = {"extra": "forbid"}

    @field_validator("vehicle_ids")
    @classmethod
    def normalize_ids(cls, v: List[str]) -> List[str]:
        """Trim and drop blank ids."""
        return [k.strip() for k in v if k and k.strip()]


class RunAuditRequest(BaseModel):
    """Body of ``POST /audit``; ``auto_heal`` None uses the configured flag."""

    auto_heal: Optional[bool] = Field(None)

    model_config = {"extra": "forbid"}


__all__ = [
    "ALREADY_RUNNING",
    "RESTORATION_ACTION",
    "RESTORATION_REASON",
    "SYSTEM_ACTOR",
    "VERSION",
    "IntegrityStatus",
    "FieldStatus",
    "SyncDiscrepancyStatus",
    "RunOutcome",
    "AlertKind",
    "OwnerRef",
    "RelationalRecord",
    "LedgerOwner",
    "LedgerRecord",
    "ComparisonResult",
    "FieldConsensus",
    "PeerConsensus",
    "IntegrityVerdict",
    "BatchCheckResult",
    "TamperedSummary",
    "AuditReport",
    "WatchdogRunResult",
    "WatchdogStatus",
    "SyncDiscrepancy",
    "SyncReport",
    "SyncRunResult",
    "SyncStatus",
    "RestorationEvent",
    "AlertSummary",
    "BatchCheckRequest",
    "RunAuditRequest",
]
