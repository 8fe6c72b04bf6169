"""
Retention Policy Store for the Clarifi privacy governance engine.

Maps every data category to a retention policy (symbolic period plus an
auto-delete flag) and resolves policies to concrete retention windows.

Categories fall into three kinds:
- LEGAL: financial, transaction and tax records. Kept for the statutory
  7 years, never auto-deleted; any update is rejected.
- USER: preferences, analytics, communication logs, app usage. The user
  chooses the period, bounded below by the legal minimum (365 days) and
  above by a per-category cap.
- SYSTEM: sessions, temp files, caches. Always resolve to their fixed
  operational window; only the auto-delete flag is meaningful.

The rule table is checked for exhaustiveness at import time.

Usage:
    policies = RetentionPolicyStore(store)
    window = await policies.resolve_retention_window(DataCategory.ANALYTICS_DATA)
    await policies.update(
        DataCategory.ANALYTICS_DATA,
        RetentionPolicy(category=DataCategory.ANALYTICS_DATA, retention_period=RetentionPeriod.TWO_YEARS),
    )
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from types import MappingProxyType

import structlog
from pydantic import ValidationError

from src.lib.exceptions import PersistenceError, PolicyNotAdjustableError
from src.privacy.audit import PrivacyAuditLog
from src.privacy.models import (
    DataCategory,
    PrivacyAction,
    RetentionPeriod,
    RetentionPolicy,
)
from src.services.kv_store import KeyValueStore, StorageKeys

logger = structlog.get_logger(__name__)

# Canadian financial record keeping: seven years.
STATUTORY_FINANCIAL_DAYS = 7 * 365
LEGAL_MINIMUM_DAYS = 365

PERIOD_DAYS: MappingProxyType[RetentionPeriod, int] = MappingProxyType({
    RetentionPeriod.ONE_YEAR: 365,
    RetentionPeriod.TWO_YEARS: 2 * 365,
    RetentionPeriod.FIVE_YEARS: 5 * 365,
})


class CategoryKind(StrEnum):
    LEGAL = "legal"
    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class CategoryRule:
    """
    Bounds for one data category.

    Attributes:
        category: The data category.
        kind: LEGAL, USER or SYSTEM.
        minimum_days: Window for ``legal_minimum`` and lower bound for any period.
        maximum_days: Upper bound for any period (None = uncapped).
        default_auto_delete: auto_delete of the default policy.
    """

    category: DataCategory
    kind: CategoryKind
    minimum_days: int
    maximum_days: int | None = None
    default_auto_delete: bool = True

    def __post_init__(self) -> None:
        if self.maximum_days is not None and self.maximum_days < self.minimum_days:
            raise ValueError(f"{self.category.value}: maximum below minimum")

    @property
    def adjustable(self) -> bool:
        return self.kind is not CategoryKind.LEGAL

    def default_policy(self) -> RetentionPolicy:
        return RetentionPolicy(category=self.category, auto_delete=self.default_auto_delete)

    def window(self, period: RetentionPeriod) -> timedelta:
        """Concrete window for a symbolic period, clamped to this rule's bounds."""
        days = PERIOD_DAYS.get(period, self.minimum_days)
        days = max(days, self.minimum_days)
        if self.maximum_days is not None:
            days = min(days, self.maximum_days)
        return timedelta(days=days)


_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        DataCategory.FINANCIAL_RECORDS, CategoryKind.LEGAL,
        STATUTORY_FINANCIAL_DAYS, STATUTORY_FINANCIAL_DAYS, default_auto_delete=False,
    ),
    CategoryRule(
        DataCategory.TRANSACTION_HISTORY, CategoryKind.LEGAL,
        STATUTORY_FINANCIAL_DAYS, STATUTORY_FINANCIAL_DAYS, default_auto_delete=False,
    ),
    CategoryRule(
        DataCategory.TAX_RELATED_DATA, CategoryKind.LEGAL,
        STATUTORY_FINANCIAL_DAYS, STATUTORY_FINANCIAL_DAYS, default_auto_delete=False,
    ),
    CategoryRule(DataCategory.PERSONAL_PREFERENCES, CategoryKind.USER, LEGAL_MINIMUM_DAYS),
    CategoryRule(DataCategory.ANALYTICS_DATA, CategoryKind.USER, LEGAL_MINIMUM_DAYS, 2 * 365),
    CategoryRule(DataCategory.COMMUNICATION_LOGS, CategoryKind.USER, LEGAL_MINIMUM_DAYS, 365),
    CategoryRule(DataCategory.APP_USAGE_DATA, CategoryKind.USER, LEGAL_MINIMUM_DAYS, 365),
    CategoryRule(DataCategory.SESSION_DATA, CategoryKind.SYSTEM, 30, 30),
    CategoryRule(DataCategory.TEMP_FILES, CategoryKind.SYSTEM, 7, 7),
    CategoryRule(DataCategory.CACHE_DATA, CategoryKind.SYSTEM, 30, 30),
)


def _build_rules(rules: tuple[CategoryRule, ...]) -> MappingProxyType[DataCategory, CategoryRule]:
    index: dict[DataCategory, CategoryRule] = {}
    for rule in rules:
        if rule.category in index:
            raise ValueError(f"Duplicate retention rule for {rule.category.value}")
        index[rule.category] = rule
    missing = [c.value for c in DataCategory if c not in index]
    if missing:
        raise ValueError(f"Data categories without retention rule: {missing}")
    return MappingProxyType(index)


CATEGORY_RULES = _build_rules(_RULES)


def get_rule(category: DataCategory | str) -> CategoryRule:
    """
    Raises:
        ValueError: If the category is unknown
    """
    return CATEGORY_RULES[DataCategory(category)]


@dataclass(frozen=True)
class RetentionWindow:
    """Effective retention for one category at a point in time."""

    category: DataCategory
    window: timedelta
    auto_delete: bool


class RetentionPolicyStore:
    """User-adjustable retention policies persisted under ``retention_policy``."""

    def __init__(
        self,
        store: KeyValueStore,
        audit: PrivacyAuditLog | None = None,
    ) -> None:
        self._store = store
        self._audit = audit
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[DataCategory, RetentionPolicy]:
        raw = await self._store.read_all(StorageKeys.RETENTION_POLICY) or {}
        try:
            stored = {
                DataCategory(key): RetentionPolicy.model_validate(value)
                for key, value in raw.items()
            }
        except (ValidationError, ValueError) as e:
            raise PersistenceError(f"Retention policies are corrupted: {e}") from e
        policies = {}
        for category, rule in CATEGORY_RULES.items():
            # Legally fixed categories ignore anything stored for them.
            if rule.adjustable and category in stored:
                policies[category] = stored[category]
            else:
                policies[category] = rule.default_policy()
        return policies

    async def _save(self, policies: dict[DataCategory, RetentionPolicy]) -> None:
        await self._store.write_all(
            StorageKeys.RETENTION_POLICY,
            {c.value: p.model_dump(mode="json") for c, p in policies.items()},
        )

    async def get(self, category: DataCategory | str) -> RetentionPolicy:
        return (await self._load())[DataCategory(category)]

    async def all(self) -> dict[DataCategory, RetentionPolicy]:
        """Effective policy for every category, in category order."""
        return await self._load()

    async def update(self, category: DataCategory | str, policy: RetentionPolicy) -> RetentionPolicy:
        """
        Replace the policy of one category.

        Raises:
            PolicyNotAdjustableError: If the category is legally fixed
            ValueError: If policy.category does not match category
            PersistenceError: If the store write fails
        """
        rule = get_rule(category)
        if policy.category != rule.category:
            raise ValueError(
                f"Policy for {policy.category.value} cannot be stored under {rule.category.value}"
            )
        if not rule.adjustable:
            logger.warning("retention_policy_update_rejected", category=rule.category.value)
            raise PolicyNotAdjustableError(rule.category)

        async with self._lock:
            policies = await self._load()
            policies[rule.category] = policy
            await self._save(policies)

        logger.info(
            "retention_policy_updated",
            category=rule.category.value,
            retention_period=policy.retention_period.value,
            auto_delete=policy.auto_delete,
        )
        if self._audit is not None:
            await self._audit.record(
                PrivacyAction.RETENTION_POLICY_UPDATED,
                rule.category.value,
                metadata={
                    "retention_period": policy.retention_period.value,
                    "auto_delete": policy.auto_delete,
                },
            )
        return policy

    async def update_all(
        self,
        retention_period: RetentionPeriod | None = None,
        auto_delete: bool | None = None,
    ) -> dict[DataCategory, RetentionPolicy]:
        """
        Apply one user-wide preference to every user-adjustable category.

        Legally fixed and system categories are left untouched.
        """
        async with self._lock:
            policies = await self._load()
            changed: list[str] = []
            for category, rule in CATEGORY_RULES.items():
                if rule.kind is not CategoryKind.USER:
                    continue
                current = policies[category]
                policies[category] = RetentionPolicy(
                    category=category,
                    retention_period=retention_period or current.retention_period,
                    auto_delete=current.auto_delete if auto_delete is None else auto_delete,
                )
                changed.append(category.value)
            await self._save(policies)

        logger.info("retention_policies_updated", categories=changed)
        if self._audit is not None:
            await self._audit.record(
                PrivacyAction.RETENTION_POLICY_UPDATED,
                "all",
                metadata={
                    "categories": changed,
                    "retention_period": retention_period.value if retention_period else None,
                    "auto_delete": auto_delete,
                },
            )
        return policies

    async def resolve_retention_window(self, category: DataCategory | str) -> timedelta:
        """Concrete retention duration for a category under its current policy."""
        rule = get_rule(category)
        policy = await self.get(rule.category)
        return rule.window(policy.retention_period)

    async def windows(self) -> dict[DataCategory, RetentionWindow]:
        """Resolved window and auto-delete flag for every category (one store read)."""
        policies = await self._load()
        return {
            category: RetentionWindow(
                category=category,
                window=CATEGORY_RULES[category].window(policy.retention_period),
                auto_delete=policy.auto_delete,
            )
            for category, policy in policies.items()
        }


__all__ = [
    "CategoryKind",
    "CategoryRule",
    "CATEGORY_RULES",
    "get_rule",
    "RetentionWindow",
    "RetentionPolicyStore",
    "PERIOD_DAYS",
    "LEGAL_MINIMUM_DAYS",
    "STATUTORY_FINANCIAL_DAYS",
]
