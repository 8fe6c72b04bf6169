"""
Privacy Governance Service.

Composition root of the governance engine: one instance owns the consent
ledger, the retention policy store, the purge engine, the retention
scheduler and the consent expiry watcher, all sharing one key/value store
and one privacy audit log. Construct it once at application start and pass
it down; every component stays independently testable.

Usage:
    service = build_governance_service(GovernanceSettings.from_env(), inventory, lifecycle)
    await service.start()

    await service.grant([ConsentType.ANALYTICS_TRACKING])
    await service.get_status([ConsentType.ANALYTICS_TRACKING])
    report = await service.perform_manual_purge()

    await service.stop()
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

import structlog

from src.config.settings import GovernanceSettings
from src.privacy.audit import PrivacyAuditLog
from src.privacy.catalog import ConsentType
from src.privacy.expiry import ConsentExpiryWatcher
from src.privacy.history import PurgeHistoryLog
from src.privacy.ledger import ConsentLedger
from src.privacy.lifecycle import AppLifecycle
from src.privacy.models import (
    ConsentExport,
    ConsentHistory,
    ConsentRecord,
    DataCategory,
    InventoryItem,
    PrivacyAction,
    PrivacyAuditEvent,
    PrivacyAuditExport,
    PrivacyAuditSummary,
    PurgeReport,
    RetentionPolicy,
    utc_now,
)
from src.privacy.purge import DataInventory, PurgeEngine
from src.privacy.retention import RetentionPolicyStore
from src.privacy.scheduler import RetentionScheduler, SchedulerConfig
from src.services.kv_store import InMemoryKeyValueStore, KeyValueStore

logger = structlog.get_logger(__name__)


class PrivacyGovernanceService:
    """Facade over the consent ledger, retention policies and purge scheduling."""

    def __init__(
        self,
        ledger: ConsentLedger,
        policies: RetentionPolicyStore,
        engine: PurgeEngine,
        scheduler: RetentionScheduler,
        expiry_watcher: ConsentExpiryWatcher,
        audit: PrivacyAuditLog,
    ) -> None:
        self.ledger = ledger
        self.policies = policies
        self.engine = engine
        self.scheduler = scheduler
        self.expiry_watcher = expiry_watcher
        self.audit = audit
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Settle expired consents and drop aged audit events, then start the
        expiry watcher and the scheduler.
        """
        if self._started:
            return
        await self.ledger.initialize()
        await self.audit.cleanup_older_than()
        await self.expiry_watcher.start()
        await self.scheduler.start()
        self._started = True
        logger.info("privacy_governance_started")

    async def stop(self) -> None:
        if not self._started:
            return
        await self.scheduler.stop()
        await self.expiry_watcher.stop()
        self._started = False
        logger.info("privacy_governance_stopped")

    async def wait_idle(self) -> None:
        """Wait for background checks started by timers or lifecycle events."""
        await self.scheduler.wait_idle()
        await self.expiry_watcher.wait_idle()

    # =========================================================================
    # Consent
    # =========================================================================

    async def grant(
        self,
        types: Iterable[ConsentType | str],
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        return await self.ledger.grant(types, metadata)

    async def withdraw(
        self,
        types: Iterable[ConsentType | str],
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[ConsentRecord]:
        return await self.ledger.withdraw(types, reason, metadata)

    async def grant_bundle(self, bundle_id: str, metadata: dict[str, Any] | None = None) -> list[ConsentRecord]:
        return await self.ledger.grant_bundle(bundle_id, metadata)

    async def withdraw_bundle(self, bundle_id: str, reason: str | None = None) -> list[ConsentRecord]:
        return await self.ledger.withdraw_bundle(bundle_id, reason)

    async def get_status(self, types: Iterable[ConsentType | str]) -> dict[ConsentType, bool]:
        return await self.ledger.get_status(types)

    async def get_history(self, consent_type: ConsentType | str) -> ConsentHistory | None:
        return await self.ledger.get_history(consent_type)

    async def export_all(self) -> ConsentExport:
        return await self.ledger.export_all()

    # =========================================================================
    # Retention
    # =========================================================================

    async def get_retention_policies(self) -> dict[DataCategory, RetentionPolicy]:
        return await self.policies.all()

    async def update_retention_policy(
        self,
        category: DataCategory | str,
        policy: RetentionPolicy,
    ) -> RetentionPolicy:
        return await self.policies.update(category, policy)

    async def preview_purge(self) -> list[InventoryItem]:
        return await self.engine.preview()

    async def perform_manual_purge(self) -> PurgeReport:
        return await self.scheduler.perform_manual_purge()

    async def get_purge_history(self) -> list[PurgeReport]:
        return await self.scheduler.get_purge_history()

    def get_scheduler_status(self) -> dict[str, Any]:
        return self.scheduler.get_status()

    async def get_audit_events(
        self,
        action: PrivacyAction | None = None,
        limit: int | None = None,
    ) -> list[PrivacyAuditEvent]:
        return await self.audit.events(action=action, limit=limit)

    async def get_audit_summary(self) -> PrivacyAuditSummary:
        return await self.audit.summary()

    async def export_audit_log(self) -> PrivacyAuditExport:
        return await self.audit.export()

    async def cleanup_audit_log(self, days: int | None = None) -> int:
        return await self.audit.cleanup_older_than(days)


def create_store(settings: GovernanceSettings) -> KeyValueStore:
    """Key/value store for the configured backend."""
    if settings.storage_backend == "redis":
        from src.services.redis_service import RedisKeyValueStore

        return RedisKeyValueStore(redis_url=settings.redis_url)
    if settings.storage_backend == "sql":
        from src.services.sql_store import SqlKeyValueStore

        return SqlKeyValueStore.from_url(settings.database_url)
    return InMemoryKeyValueStore()


def build_governance_service(
    settings: GovernanceSettings,
    inventory: DataInventory,
    lifecycle: AppLifecycle | None = None,
    store: KeyValueStore | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> PrivacyGovernanceService:
    """
    Wire every component of the governance engine.

    Args:
        settings: Validated governance settings
        inventory: Data inventory collaborator for purges
        lifecycle: App lifecycle publisher (foreground-triggered checks)
        store: Key/value store (defaults to the configured backend)
        clock: Returns the current aware UTC time
    """
    store = store if store is not None else create_store(settings)
    audit = PrivacyAuditLog(
        store,
        limit=settings.audit_log_limit,
        clock=clock,
        retention_days=settings.audit_retention_days,
    )
    ledger = ConsentLedger(
        store,
        audit=audit,
        clock=clock,
        consent_version=settings.consent_version,
        history_limit=settings.history_limit,
        records_per_type=settings.audit_records_per_type,
    )
    policies = RetentionPolicyStore(store, audit=audit)
    history = PurgeHistoryLog(store, limit=settings.purge_history_limit)
    engine = PurgeEngine(
        policies,
        inventory,
        history,
        audit=audit,
        clock=clock,
        purge_interval_days=settings.purge_interval_days,
    )
    scheduler = RetentionScheduler(
        engine,
        history,
        lifecycle=lifecycle,
        config=SchedulerConfig(
            check_interval=settings.check_interval_seconds,
            max_missed_checks=settings.max_missed_checks,
            background_purge=settings.background_purge,
        ),
        clock=clock,
    )
    # start() already settles expired consents through ledger.initialize().
    expiry_watcher = ConsentExpiryWatcher(
        ledger,
        lifecycle=lifecycle,
        interval=settings.expiry_check_interval_seconds,
        check_on_start=False,
    )
    return PrivacyGovernanceService(ledger, policies, engine, scheduler, expiry_watcher, audit)


__all__ = ["PrivacyGovernanceService", "build_governance_service", "create_store"]
