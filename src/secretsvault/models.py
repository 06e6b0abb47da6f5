"""
Pydantic models for vault records, the requirement ledger, and sync state.

Summaries and ledgers are safe to print: nothing in this module ever
carries plaintext except RevealResult and SyncExportEntry, which only
the visibility-gated reveal path and the sync engine produce.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Visibility(str, Enum):
    """Whether plaintext may be returned through reveal."""

    HIDDEN = "hidden"
    VISIBLE = "visible"


class SecretSource(str, Enum):
    """Provenance of a vault record."""

    APP = "app"
    ACCOUNT = "account"
    SCANNED = "scanned"


class RequirementStatus(str, Enum):
    """Whether the vault holds a non-empty value for a required key."""

    PRESENT = "present"
    MISSING = "missing"


class SyncAction(str, Enum):
    """The action recorded in the persisted sync state."""

    SYNC = "sync"
    ROLLBACK = "rollback"


class OverallStatus(str, Enum):
    """Overall outcome of the last sync or rollback."""

    OK = "ok"
    DEGRADED = "degraded"
    ROLLBACK = "rollback"


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


class SecretRecord(BaseModel):
    """One persisted vault entry. ``encrypted_value`` is nonce.ciphertext.tag."""

    key: str
    encrypted_value: Optional[str] = None
    visibility: Visibility = Visibility.HIDDEN
    source: SecretSource = SecretSource.APP
    required: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str = "unknown"
    updated_at: datetime = Field(default_factory=utcnow)
    updated_by: Optional[str] = None

    @property
    def has_value(self) -> bool:
        return bool(self.encrypted_value)


class SecretSummary(BaseModel):
    """Redacted view of a record. Never holds the value."""

    key: str
    visibility: Visibility
    source: SecretSource
    created_at: datetime
    created_by: str
    updated_at: datetime
    updated_by: str
    has_value: bool
    required: bool

    @classmethod
    def from_record(cls, record: SecretRecord) -> "SecretSummary":
        return cls(
            key=record.key,
            visibility=record.visibility,
            source=record.source,
            created_at=record.created_at,
            created_by=record.created_by,
            updated_at=record.updated_at,
            updated_by=record.updated_by or record.created_by,
            has_value=record.has_value,
            required=record.required,
        )


class RevealResult(BaseModel):
    """Plaintext of a visible secret."""

    key: str
    value: Optional[str] = None
    visibility: Visibility
    has_value: bool


class SecretPage(BaseModel):
    """One page of secret summaries."""

    items: list[SecretSummary] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 25


class SyncExportEntry(BaseModel):
    """A fully decrypted record, produced only for the sync engine."""

    key: str
    value: str = ""
    visibility: Visibility
    has_value: bool
    required: bool


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class UsageIndexEntry(BaseModel):
    """Where a key is referenced in the repository."""

    key: str
    found_in: list[str] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)


class KeyUsage(BaseModel):
    """A single line referencing a key."""

    file: str
    line: int
    context: str


class MissingSecret(BaseModel):
    """A key referenced in code but absent from the vault."""

    key: str
    found_in: list[str] = Field(default_factory=list)
    suggestion: dict[str, str] = Field(
        default_factory=lambda: {"scope": "app", "visibility": "hidden"}
    )


# ---------------------------------------------------------------------------
# Requirement ledger
# ---------------------------------------------------------------------------


class IntegrationReason(BaseModel):
    """Required because a declared integration needs it."""

    type: Literal["integration"] = "integration"
    integration_id: str
    integration_label: str
    description: str = ""


class ScanReason(BaseModel):
    """Required because the scanner found it in this module."""

    type: Literal["scan"] = "scan"
    module: str
    count: int = 0


class FlagReason(BaseModel):
    """Required because an admin flagged the record as required."""

    type: Literal["flag"] = "flag"


RequirementReason = Annotated[
    Union[IntegrationReason, ScanReason, FlagReason],
    Field(discriminator="type"),
]


class RequiredSecretItem(BaseModel):
    """One (app, key) requirement with its explanations."""

    key: str
    app: str
    status: RequirementStatus
    reasons: list[RequirementReason] = Field(default_factory=list)
    found_in: list[str] = Field(default_factory=list)
    has_secret: bool = False
    has_value: bool = False
    required: bool = False
    pending_sync: bool = False


class RequiredSecrets(BaseModel):
    """The requirement ledger plus the pending-sync queue."""

    items: list[RequiredSecretItem] = Field(default_factory=list)
    pending_sync_keys: list[str] = Field(default_factory=list)

    @property
    def missing(self) -> list[RequiredSecretItem]:
        return [i for i in self.items if i.status == RequirementStatus.MISSING]


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class ServiceSyncResult(BaseModel):
    """Outcome of writing one service's env file."""

    status: str
    missing_keys: list[str] = Field(default_factory=list)
    updated_keys: list[str] = Field(default_factory=list)
    env_path: str
    changed: bool = False
    backup_path: Optional[str] = None
    error: Optional[str] = None


class ServiceRollbackResult(BaseModel):
    """Outcome of restoring one service's env file."""

    restored: bool
    backup_path: Optional[str] = None
    reason: Optional[str] = None


class ServiceSummary(BaseModel):
    """Per-service entry of the persisted sync state."""

    status: str
    missing_count: Optional[int] = None
    updated_count: Optional[int] = None
    changed: Optional[bool] = None
    restored: Optional[bool] = None


class SyncState(BaseModel):
    """Snapshot of the last sync or rollback, overwritten on every run."""

    action: SyncAction
    timestamp: datetime = Field(default_factory=utcnow)
    services: dict[str, ServiceSummary] = Field(default_factory=dict)
    queue_length: int = 0
    pending_sync_count: int = 0
    required_missing: int = 0
    last_status: OverallStatus = OverallStatus.OK


class SyncResult(BaseModel):
    """Return value of a sync run."""

    services: dict[str, ServiceSyncResult] = Field(default_factory=dict)
    pending_sync_keys: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


class RollbackResult(BaseModel):
    """Return value of a rollback run."""

    services: dict[str, ServiceRollbackResult] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class TelemetryTotals(BaseModel):
    secrets: int = 0
    required_missing: int = 0


class TelemetrySync(BaseModel):
    last_status: OverallStatus
    last_action: Optional[SyncAction] = None
    last_completed_at: Optional[datetime] = None
    queue_length: int = 0
    pending_keys: int = 0


class SecretsTelemetry(BaseModel):
    """Read-only health report of the vault and the last sync."""

    totals: TelemetryTotals
    sync: TelemetrySync
    services: dict[str, ServiceSummary] = Field(default_factory=dict)
    observed_at: datetime = Field(default_factory=utcnow)
