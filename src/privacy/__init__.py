"""
Consent & data-retention governance engine.

Components (leaf first):
- catalog: consent types, configurations and bundles
- ledger: append-only consent records with derived status
- retention: per-category retention policies and windows
- purge: eligibility and purge execution
- scheduler: timer/foreground-driven, due-gated purges
- expiry: consent expiry watcher
- service: composition root
"""

from src.privacy.audit import PrivacyAuditLog
from src.privacy.catalog import (
    ConsentBundle,
    ConsentCategory,
    ConsentConfiguration,
    ConsentType,
    LegalBasis,
    get_bundle,
    get_configuration,
    get_consent_bundles,
    get_consent_configurations,
)
from src.privacy.expiry import ConsentExpiryWatcher
from src.privacy.history import PurgeHistoryLog
from src.privacy.ledger import ConsentLedger
from src.privacy.lifecycle import AppLifecycle, AppState, Subscription
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
    PurgeItemError,
    PurgeReport,
    PurgeTrigger,
    RetentionPeriod,
    RetentionPolicy,
)
from src.privacy.purge import DataInventory, PurgeEngine
from src.privacy.retention import RetentionPolicyStore
from src.privacy.scheduler import RetentionScheduler, SchedulerConfig, SchedulerState
from src.privacy.service import PrivacyGovernanceService, build_governance_service

__all__ = [
    # Catalog
    "ConsentType",
    "LegalBasis",
    "ConsentCategory",
    "ConsentConfiguration",
    "ConsentBundle",
    "get_configuration",
    "get_bundle",
    "get_consent_configurations",
    "get_consent_bundles",
    # Models
    "ConsentRecord",
    "ConsentHistory",
    "ConsentExport",
    "DataCategory",
    "RetentionPeriod",
    "RetentionPolicy",
    "InventoryItem",
    "PurgeItemError",
    "PurgeReport",
    "PurgeTrigger",
    "PrivacyAction",
    "PrivacyAuditEvent",
    "PrivacyAuditSummary",
    "PrivacyAuditExport",
    # Components
    "PrivacyAuditLog",
    "ConsentLedger",
    "RetentionPolicyStore",
    "DataInventory",
    "PurgeEngine",
    "PurgeHistoryLog",
    "AppLifecycle",
    "AppState",
    "Subscription",
    "RetentionScheduler",
    "SchedulerConfig",
    "SchedulerState",
    "ConsentExpiryWatcher",
    "PrivacyGovernanceService",
    "build_governance_service",
]
