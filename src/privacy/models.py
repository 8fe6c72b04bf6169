"""
Data model for the privacy governance engine.

Persisted documents (consent records, histories, retention policies, purge
reports) are pydantic models so they round-trip through the key/value
store as JSON. All timestamps are timezone-aware UTC; naive datetimes are
interpreted as UTC on the way in.

Records and reports are frozen: once created they are never mutated, only
appended to their logs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.privacy.catalog import ConsentType, LegalBasis

MAX_WITHDRAWAL_REASON_LENGTH = 200


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class _Document(BaseModel):
    """Base for persisted documents: strict fields, UTC timestamps."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


# =============================================================================
# Consent
# =============================================================================


class ConsentRecord(_Document):
    """Immutable, timestamped grant or withdrawal of one consent type."""

    id: str = Field(min_length=1, max_length=64)
    consent_type: ConsentType
    granted: bool
    version: str = Field(min_length=1, max_length=20)
    timestamp: datetime
    expiry_date: datetime | None = None
    withdrawn_at: datetime | None = None
    withdrawal_reason: str | None = Field(default=None, max_length=MAX_WITHDRAWAL_REASON_LENGTH)
    legal_basis: LegalBasis
    metadata: dict[str, Any] | None = None

    def is_effective_at(self, now: datetime) -> bool:
        """A grant is effective until (but not including) its expiry date."""
        if not self.granted:
            return False
        return self.expiry_date is None or self.expiry_date > ensure_utc(now)


class ConsentHistory(_Document):
    """
    Bounded, most-recent-first view of one consent type.

    ``current_status`` is the status derived from the newest record. The
    stored value reflects the time of the last write; the ledger re-derives
    it (see ``as_of``) whenever a history is read, because grants expire
    without any write.
    """

    consent_type: ConsentType
    records: list[ConsentRecord]
    current_status: bool
    last_updated: datetime
    effective_date: datetime

    @property
    def latest(self) -> ConsentRecord | None:
        return self.records[0] if self.records else None

    def status_at(self, now: datetime) -> bool:
        latest = self.latest
        return latest is not None and latest.is_effective_at(now)

    def as_of(self, now: datetime) -> ConsentHistory:
        """Copy of this history with ``current_status`` evaluated at ``now``."""
        return self.model_copy(update={"current_status": self.status_at(now)})


class ConsentExport(_Document):
    """Read-only compliance snapshot of the ledger."""

    history: dict[ConsentType, ConsentHistory]
    all_records: list[ConsentRecord]
    configurations: list[dict[str, Any]]
    export_date: datetime


# =============================================================================
# Retention
# =============================================================================


class DataCategory(StrEnum):
    """Categories of locally stored data subject to retention."""

    # Legal minimums (Canadian financial record keeping)
    FINANCIAL_RECORDS = "financial_records"
    TRANSACTION_HISTORY = "transaction_history"
    TAX_RELATED_DATA = "tax_related_data"

    # User-configurable
    PERSONAL_PREFERENCES = "personal_preferences"
    ANALYTICS_DATA = "analytics_data"
    COMMUNICATION_LOGS = "communication_logs"
    APP_USAGE_DATA = "app_usage_data"

    # System data
    SESSION_DATA = "session_data"
    TEMP_FILES = "temp_files"
    CACHE_DATA = "cache_data"


class RetentionPeriod(StrEnum):
    """Symbolic retention period chosen by the user."""

    LEGAL_MINIMUM = "legal_minimum"
    ONE_YEAR = "1year"
    TWO_YEARS = "2years"
    FIVE_YEARS = "5years"


class RetentionPolicy(_Document):
    """Retention setting for one data category."""

    category: DataCategory
    retention_period: RetentionPeriod = RetentionPeriod.LEGAL_MINIMUM
    auto_delete: bool = True


# =============================================================================
# Privacy audit
# =============================================================================


class PrivacyAction(StrEnum):
    """Actions recorded in the privacy audit log."""

    CONSENT_GRANTED = "consent_granted"
    CONSENT_WITHDRAWN = "consent_withdrawn"
    CONSENT_EXPIRED = "consent_expired"
    RETENTION_POLICY_UPDATED = "retention_policy_updated"
    DATA_PURGED = "data_purged"
    PURGE_FAILED = "purge_failed"


class PrivacyAuditEvent(_Document):
    """One entry of the privacy audit log."""

    id: str = Field(min_length=1, max_length=64)
    action: PrivacyAction
    resource: str = Field(max_length=128)
    timestamp: datetime
    success: bool = True
    metadata: dict[str, Any] | None = None
    error: str | None = None


class PrivacyAuditSummary(_Document):
    """Aggregate view of the audit log for the privacy dashboard."""

    total_events: int
    events_by_action: dict[PrivacyAction, int]
    last_activity: datetime | None = None
    compliance_score: float = Field(ge=0, le=100)
    risk_events: list[PrivacyAuditEvent]


class PrivacyAuditExport(_Document):
    """Audit log export handed to the user or a regulator."""

    export_date: datetime
    compliance_framework: str = "PIPEDA"
    total_events: int
    events: list[PrivacyAuditEvent]


# =============================================================================
# Purge
# =============================================================================


class PurgeTrigger(StrEnum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class InventoryItem(_Document):
    """Reference to one deletable item supplied by the data inventory."""

    item_id: str = Field(min_length=1, max_length=256)
    category: DataCategory
    timestamp: datetime
    size_bytes: int | None = Field(default=None, ge=0)


class PurgeItemError(_Document):
    """An item that could not be deleted during a purge run."""

    item_id: str
    category: DataCategory
    error: str


class PurgeReport(_Document):
    """Result of one purge run; appended to the purge history, never mutated."""

    timestamp: datetime
    trigger: PurgeTrigger = PurgeTrigger.SCHEDULED
    categories_processed: list[DataCategory] = Field(default_factory=list)
    total_items_deleted: int = 0
    items_deleted_by_category: dict[DataCategory, int] = Field(default_factory=dict)
    space_freed: int = 0
    next_scheduled_purge: datetime
    duration_ms: int = 0
    errors: list[PurgeItemError] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


__all__ = [
    "utc_now",
    "ensure_utc",
    "ConsentRecord",
    "ConsentHistory",
    "ConsentExport",
    "DataCategory",
    "RetentionPeriod",
    "RetentionPolicy",
    "PrivacyAction",
    "PrivacyAuditEvent",
    "PrivacyAuditSummary",
    "PrivacyAuditExport",
    "MAX_WITHDRAWAL_REASON_LENGTH",
    "PurgeTrigger",
    "InventoryItem",
    "PurgeItemError",
    "PurgeReport",
]
