"""
Consent Ledger for the Clarifi privacy governance engine.

Append-only store of consent decisions. Every grant or withdrawal becomes an
immutable ConsentRecord; the user's current status per consent type is
derived from the newest record, never stored as a flag of its own.

Two documents are persisted together in one atomic batch:
- consent_records: audit record store, newest first, bounded per type
  (default 100) for compliance export
- consent_history: recent view per type (default 50 records) with the
  derived status, last update and effective date

A record is effective while it is a grant and its expiry date (if any) is
still in the future. Expiry is evaluated lazily on every read, and
process_expired() additionally writes an explicit "expired" withdrawal so
the audit trail shows when the consent lapsed.

All writes go through one ledger-wide lock: records for every type share
the same two documents, so two concurrent writers would otherwise overwrite
each other's appends.

Usage:
    ledger = ConsentLedger(store)
    await ledger.grant([ConsentType.ANALYTICS_TRACKING])
    await ledger.has_consent(ConsentType.ANALYTICS_TRACKING)  # True
    await ledger.withdraw([ConsentType.ANALYTICS_TRACKING], "user_preference")

References:
    - PIPEDA Principle 4.3 (Consent)
"""

import asyncio
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError

from src.lib.exceptions import (
    InvalidWithdrawalReasonError,
    NonWithdrawableConsentError,
    PersistenceError,
)
from src.privacy.audit import PrivacyAuditLog
from src.privacy.catalog import (
    ConsentType,
    expiring_consent_types,
    get_bundle,
    get_configuration,
    get_consent_configurations,
    resolve_consent_type,
)
from src.privacy.models import (
    MAX_WITHDRAWAL_REASON_LENGTH,
    ConsentExport,
    ConsentHistory,
    ConsentRecord,
    PrivacyAction,
    utc_now,
)
from src.services.kv_store import KeyValueStore, StorageKeys

logger = structlog.get_logger(__name__)

DEFAULT_CONSENT_VERSION = "2.0.0"
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_RECORDS_PER_TYPE = 100

# A consent month is 30 days.
DAYS_PER_MONTH = 30

EXPIRED_REASON = "expired"


def compute_expiry_date(granted_at: datetime, expiry_months: int | None) -> datetime | None:
    """Expiry date of a grant made at ``granted_at``."""
    if expiry_months is None:
        return None
    return granted_at + timedelta(days=expiry_months * DAYS_PER_MONTH)


def _newest_first(records: list[ConsentRecord]) -> list[ConsentRecord]:
    # Stable sort: records written at the same instant keep insertion order.
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


class ConsentLedger:
    """
    Append-only consent record store with derived per-type status.

    Args:
        store: Durable key/value store
        audit: Optional privacy audit log receiving one event per record
        clock: Returns the current aware UTC time
        consent_version: Consent text version stamped on new records
        history_limit: Records kept per type in the recent history view
        records_per_type: Records kept per type in the audit record store
    """

    def __init__(
        self,
        store: KeyValueStore,
        audit: PrivacyAuditLog | None = None,
        clock: Callable[[], datetime] = utc_now,
        consent_version: str = DEFAULT_CONSENT_VERSION,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        records_per_type: int = DEFAULT_RECORDS_PER_TYPE,
    ) -> None:
        self._store = store
        self._audit = audit
        self._clock = clock
        self._consent_version = consent_version
        self._history_limit = history_limit
        self._records_per_type = records_per_type
        self._lock = asyncio.Lock()

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _load_records(self) -> list[ConsentRecord]:
        raw = await self._store.read_all(StorageKeys.CONSENT_RECORDS) or []
        try:
            return [ConsentRecord.model_validate(item) for item in raw]
        except ValidationError as e:
            raise PersistenceError(f"Consent records are corrupted: {e}") from e

    async def _load_histories(self) -> dict[ConsentType, ConsentHistory]:
        raw = await self._store.read_all(StorageKeys.CONSENT_HISTORY) or {}
        try:
            return {
                ConsentType(key): ConsentHistory.model_validate(value)
                for key, value in raw.items()
            }
        except (ValidationError, ValueError) as e:
            raise PersistenceError(f"Consent history is corrupted: {e}") from e

    async def _save(
        self,
        records: list[ConsentRecord],
        histories: dict[ConsentType, ConsentHistory],
    ) -> None:
        await self._store.write_batch({
            StorageKeys.CONSENT_RECORDS: [r.model_dump(mode="json") for r in records],
            StorageKeys.CONSENT_HISTORY: {
                t.value: h.model_dump(mode="json") for t, h in histories.items()
            },
        })

    # =========================================================================
    # Record construction
    # =========================================================================

    def _new_record(
        self,
        consent_type: ConsentType,
        granted: bool,
        now: datetime,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ConsentRecord:
        config = get_configuration(consent_type)
        return ConsentRecord(
            id=f"consent_{uuid.uuid4().hex}",
            consent_type=consent_type,
            granted=granted,
            version=self._consent_version,
            timestamp=now,
            expiry_date=compute_expiry_date(now, config.expiry_months) if granted else None,
            withdrawn_at=None if granted else now,
            withdrawal_reason=None if granted else reason,
            legal_basis=config.legal_basis,
            metadata=dict(metadata) if metadata else None,
        )

    def _append(
        self,
        record: ConsentRecord,
        records: list[ConsentRecord],
        histories: dict[ConsentType, ConsentHistory],
        now: datetime,
    ) -> list[ConsentRecord]:
        """Apply one new record to the in-memory copies of both documents."""
        ordered = _newest_first([record, *records])
        kept: list[ConsentRecord] = []
        per_type: dict[ConsentType, int] = {}
        for r in ordered:
            count = per_type.get(r.consent_type, 0)
            if count < self._records_per_type:
                kept.append(r)
                per_type[r.consent_type] = count + 1

        previous = histories.get(record.consent_type)
        recent = _newest_first([record, *(previous.records if previous else [])])
        recent = recent[: self._history_limit]

        latest_grant = next((r for r in recent if r.granted), None)
        if latest_grant is not None:
            effective_date = latest_grant.timestamp
        elif previous is not None:
            effective_date = previous.effective_date
        else:
            effective_date = recent[0].timestamp

        histories[record.consent_type] = ConsentHistory(
            consent_type=record.consent_type,
            records=recent,
            current_status=recent[0].is_effective_at(now),
            last_updated=now,
            effective_date=effective_date,
        )
        return kept

    async def _commit(self, new_records: list[ConsentRecord], now: datetime) -> None:
        """Persist new records; the caller holds the ledger lock."""
        records = await self._load_records()
        histories = await self._load_histories()
        for record in new_records:
            records = self._append(record, records, histories, now)
        await self._save(records, histories)

    async def _audit_records(self, action: PrivacyAction, records: list[ConsentRecord]) -> None:
        if self._audit is None:
            return
        for record in records:
            await self._audit.record(
                action,
                record.consent_type.value,
                metadata={
                    "record_id": record.id,
                    "version": record.version,
                    "legal_basis": record.legal_basis.value,
                },
            )

    # =========================================================================
    # Write operations
    # =========================================================================

    async def grant(
        self,
        types: Iterable[ConsentType | str],
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        """
        Grant consent for each type.

        Raises:
            UnknownConsentTypeError: If any type is not in the catalog (nothing is written)
            PersistenceError: If the store write fails (nothing is written)
        """
        resolved = [resolve_consent_type(t) for t in types]
        if not resolved:
            return []

        async with self._lock:
            now = self._clock()
            new_records = [self._new_record(t, True, now, metadata=metadata) for t in resolved]
            await self._commit(new_records, now)

        logger.info("consent_granted", consent_types=[t.value for t in resolved])
        await self._audit_records(PrivacyAction.CONSENT_GRANTED, new_records)
        return new_records

    async def withdraw(
        self,
        types: Iterable[ConsentType | str],
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        """
        Withdraw consent for each type, all or nothing.

        Every type is validated before anything is written: if one of them
        is required the whole call is rejected.

        Raises:
            UnknownConsentTypeError: If any type is not in the catalog
            NonWithdrawableConsentError: If any type cannot be withdrawn
            InvalidWithdrawalReasonError: If the reason is too long to store
            PersistenceError: If the store write fails (nothing is written)
        """
        resolved = [resolve_consent_type(t) for t in types]
        for consent_type in resolved:
            if not get_configuration(consent_type).can_withdraw:
                logger.warning("consent_withdrawal_rejected", consent_type=consent_type.value)
                raise NonWithdrawableConsentError(consent_type)
        if reason is not None and len(reason) > MAX_WITHDRAWAL_REASON_LENGTH:
            raise InvalidWithdrawalReasonError(len(reason), MAX_WITHDRAWAL_REASON_LENGTH)
        if not resolved:
            return []

        async with self._lock:
            now = self._clock()
            new_records = [
                self._new_record(t, False, now, reason=reason, metadata=metadata)
                for t in resolved
            ]
            await self._commit(new_records, now)

        logger.info(
            "consent_withdrawn",
            consent_types=[t.value for t in resolved],
            reason=reason,
        )
        await self._audit_records(PrivacyAction.CONSENT_WITHDRAWN, new_records)
        return new_records

    async def grant_bundle(
        self,
        bundle_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        """Grant every consent type of a catalog bundle."""
        bundle = get_bundle(bundle_id)
        return await self.grant(bundle.consent_types, {**(metadata or {}), "bundle_id": bundle.id})

    async def withdraw_bundle(
        self,
        bundle_id: str,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        """Withdraw every consent type of a catalog bundle (all or nothing)."""
        bundle = get_bundle(bundle_id)
        return await self.withdraw(
            bundle.consent_types, reason, {**(metadata or {}), "bundle_id": bundle.id}
        )

    async def process_expired(self) -> list[ConsentRecord]:
        """
        Write an "expired" withdrawal for every grant past its expiry date.

        Idempotent: a type whose newest record is already a withdrawal is
        skipped, so a second call writes nothing.

        Returns:
            The withdrawal records written by this call
        """
        async with self._lock:
            now = self._clock()
            histories = await self._load_histories()
            expired: list[ConsentRecord] = []
            for consent_type in expiring_consent_types():
                history = histories.get(consent_type)
                latest = history.latest if history else None
                if latest is None or not latest.granted or latest.is_effective_at(now):
                    continue
                expired.append(
                    self._new_record(
                        consent_type,
                        False,
                        now,
                        reason=EXPIRED_REASON,
                        metadata={"expired_record_id": latest.id},
                    )
                )
            if expired:
                await self._commit(expired, now)

        if expired:
            logger.info("consent_expired", consent_types=[r.consent_type.value for r in expired])
            await self._audit_records(PrivacyAction.CONSENT_EXPIRED, expired)
        return expired

    async def initialize(self) -> list[ConsentRecord]:
        """Startup step: settle consents that expired while the app was closed."""
        expired = await self.process_expired()
        logger.info("consent_ledger_initialized", expired_count=len(expired))
        return expired

    # =========================================================================
    # Read operations
    # =========================================================================

    async def has_consent(self, consent_type: ConsentType | str, at: datetime | None = None) -> bool:
        """Whether consent is currently effective (expiry is evaluated at ``at``)."""
        resolved = resolve_consent_type(consent_type)
        history = (await self._load_histories()).get(resolved)
        return history is not None and history.status_at(at or self._clock())

    async def get_status(
        self,
        types: Iterable[ConsentType | str],
        at: datetime | None = None,
    ) -> dict[ConsentType, bool]:
        """Batched has_consent."""
        resolved = [resolve_consent_type(t) for t in types]
        histories = await self._load_histories()
        now = at or self._clock()
        return {
            t: (t in histories and histories[t].status_at(now))
            for t in resolved
        }

    async def get_history(self, consent_type: ConsentType | str) -> ConsentHistory | None:
        """History of one type with ``current_status`` as of now."""
        resolved = resolve_consent_type(consent_type)
        history = (await self._load_histories()).get(resolved)
        return history.as_of(self._clock()) if history else None

    async def all_records(self, consent_type: ConsentType | str | None = None) -> list[ConsentRecord]:
        """Audit record store, newest first, optionally for one type."""
        records = await self._load_records()
        if consent_type is None:
            return records
        resolved = resolve_consent_type(consent_type)
        return [r for r in records if r.consent_type == resolved]

    async def export_all(self) -> ConsentExport:
        """Read-only compliance snapshot of the ledger."""
        now = self._clock()
        histories = await self._load_histories()
        return ConsentExport(
            history={t: histories[t].as_of(now) for t in ConsentType if t in histories},
            all_records=await self._load_records(),
            configurations=[c.to_dict() for c in get_consent_configurations()],
            export_date=now,
        )


__all__ = [
    "ConsentLedger",
    "compute_expiry_date",
    "DAYS_PER_MONTH",
    "EXPIRED_REASON",
    "DEFAULT_CONSENT_VERSION",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_RECORDS_PER_TYPE",
]
