"""
Privacy audit log.

A bounded, chronological list of privacy-relevant events (consent changes,
retention policy updates, purge runs) kept for compliance review. The
ledger, the retention policy store and the scheduler record events here.

Recording is best effort: the audit log is secondary evidence next to the
consent records themselves, so a failed audit write is logged and never
fails the operation that produced the event.

Usage:
    audit = PrivacyAuditLog(store)
    await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
    events = await audit.events(action=PrivacyAction.CONSENT_GRANTED)
    summary = await audit.summary()
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError

from src.lib.exceptions import PersistenceError
from src.privacy.models import (
    PrivacyAction,
    PrivacyAuditEvent,
    PrivacyAuditExport,
    PrivacyAuditSummary,
    utc_now,
)
from src.services.kv_store import KeyValueStore, StorageKeys

logger = structlog.get_logger(__name__)

DEFAULT_AUDIT_LOG_LIMIT = 1000
DEFAULT_AUDIT_RETENTION_DAYS = 2555

# Actions surfaced on the dashboard even when they succeeded.
RISK_ACTIONS = frozenset({PrivacyAction.CONSENT_WITHDRAWN, PrivacyAction.PURGE_FAILED})
RISK_EVENT_LIMIT = 10

# Privacy-positive actions add to the compliance score, up to the cap.
_POSITIVE_ACTIONS = frozenset({PrivacyAction.CONSENT_GRANTED, PrivacyAction.RETENTION_POLICY_UPDATED})
_POSITIVE_BONUS = 2
_POSITIVE_BONUS_CAP = 20


def compliance_score(events: list[PrivacyAuditEvent]) -> float:
    """
    Score the log from 0 to 100.

    The base is the share of successful events; every privacy-positive
    event adds two points, at most twenty. An empty log scores 100.
    """
    if not events:
        return 100.0
    successful = sum(1 for e in events if e.success)
    base = successful / len(events) * 100
    positive = sum(1 for e in events if e.action in _POSITIVE_ACTIONS)
    return min(base + min(positive * _POSITIVE_BONUS, _POSITIVE_BONUS_CAP), 100.0)


class PrivacyAuditLog:
    """Bounded privacy audit log persisted under ``privacy_audit_log``."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = DEFAULT_AUDIT_LOG_LIMIT,
        clock: Callable[[], datetime] = utc_now,
        retention_days: int = DEFAULT_AUDIT_RETENTION_DAYS,
    ) -> None:
        self._store = store
        self._limit = limit
        self._retention_days = retention_days
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def retention_days(self) -> int:
        return self._retention_days

    async def _load(self) -> list[PrivacyAuditEvent]:
        raw = await self._store.read_all(StorageKeys.PRIVACY_AUDIT_LOG) or []
        try:
            return [PrivacyAuditEvent.model_validate(item) for item in raw]
        except ValidationError as e:
            raise PersistenceError(f"Privacy audit log is corrupted: {e}") from e

    async def record(
        self,
        action: PrivacyAction,
        resource: str,
        success: bool = True,
        metadata: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> PrivacyAuditEvent | None:
        """
        Append one event.

        Returns:
            The stored event, or None if it could not be persisted
        """
        event = PrivacyAuditEvent(
            id=f"audit_{uuid.uuid4().hex}",
            action=action,
            resource=resource,
            timestamp=self._clock(),
            success=success,
            metadata=metadata,
            error=error,
        )
        async with self._lock:
            try:
                events = await self._load()
                events.append(event)
                events = events[-self._limit:]
                await self._store.write_all(
                    StorageKeys.PRIVACY_AUDIT_LOG,
                    [e.model_dump(mode="json") for e in events],
                )
            except PersistenceError as e:
                logger.warning(
                    "privacy_audit_write_failed",
                    action=action.value,
                    resource=resource,
                    error=str(e),
                )
                return None
        return event

    async def events(
        self,
        action: PrivacyAction | None = None,
        limit: int | None = None,
    ) -> list[PrivacyAuditEvent]:
        """
        Return stored events, oldest first.

        Args:
            action: Only return events with this action
            limit: Only return the most recent ``limit`` events
        """
        events = await self._load()
        if action is not None:
            events = [e for e in events if e.action == action]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    async def summary(self) -> PrivacyAuditSummary:
        """Counts per action, compliance score and the latest risk events."""
        events = await self._load()
        counts = {action: 0 for action in PrivacyAction}
        for event in events:
            counts[event.action] += 1
        risky = [e for e in events if e.action in RISK_ACTIONS or not e.success]
        return PrivacyAuditSummary(
            total_events=len(events),
            events_by_action=counts,
            last_activity=max((e.timestamp for e in events), default=None),
            compliance_score=compliance_score(events),
            risk_events=risky[::-1][:RISK_EVENT_LIMIT],
        )

    async def export(self) -> PrivacyAuditExport:
        """Every stored event, oldest first, for a compliance request."""
        events = await self._load()
        return PrivacyAuditExport(
            export_date=self._clock(),
            total_events=len(events),
            events=events,
        )

    async def cleanup_older_than(self, days: int | None = None) -> int:
        """
        Drop events recorded more than ``days`` ago.

        Args:
            days: Age limit; defaults to the configured retention period

        Returns:
            The number of events deleted

        Raises:
            PersistenceError: If the store cannot be read or written
        """
        days = self._retention_days if days is None else days
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        async with self._lock:
            cutoff = self._clock() - timedelta(days=days)
            events = await self._load()
            kept = [e for e in events if e.timestamp > cutoff]
            deleted = len(events) - len(kept)
            if deleted:
                await self._store.write_all(
                    StorageKeys.PRIVACY_AUDIT_LOG,
                    [e.model_dump(mode="json") for e in kept],
                )

        if deleted:
            logger.info("privacy_audit_cleaned", deleted=deleted, retention_days=days)
        return deleted


__all__ = [
    "PrivacyAuditLog",
    "compliance_score",
    "DEFAULT_AUDIT_LOG_LIMIT",
    "DEFAULT_AUDIT_RETENTION_DAYS",
    "RISK_ACTIONS",
]
