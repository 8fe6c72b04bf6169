"""
Purge Engine for the Clarifi privacy governance engine.

Decides which inventory items have outlived their retention window and
deletes them, producing a PurgeReport.

Eligibility (strict): an item is eligible when its category has
auto_delete enabled and ``now - item.timestamp`` is strictly greater than
the category's retention window. An item exactly one window old is kept.

A purge run tolerates item-level failures: a failed deletion is recorded
in the report's ``errors`` and the run continues. Only a failure to read
the inventory aborts the run (InventoryUnavailableError, nothing deleted).

The data inventory itself (enumerating and deleting local data) is an
external collaborator implementing DataInventory.

Usage:
    engine = PurgeEngine(policies, inventory, history)
    eligible = await engine.preview()
    report = await engine.execute_purge()
"""

import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

import structlog

from src.lib.exceptions import InventoryUnavailableError
from src.privacy.audit import PrivacyAuditLog
from src.privacy.history import PurgeHistoryLog
from src.privacy.models import (
    DataCategory,
    InventoryItem,
    PrivacyAction,
    PurgeItemError,
    PurgeReport,
    PurgeTrigger,
    utc_now,
)
from src.privacy.retention import RetentionPolicyStore, RetentionWindow

logger = structlog.get_logger(__name__)

DEFAULT_PURGE_INTERVAL_DAYS = 7


@runtime_checkable
class DataInventory(Protocol):
    """Enumerates and deletes locally stored data items."""

    async def list_items(self) -> Iterable[InventoryItem]:
        """Every deletable item with its category and timestamp."""
        ...

    async def delete_item(self, item: InventoryItem) -> None:
        """Delete one item; raise on failure."""
        ...


def is_eligible(item: InventoryItem, now: datetime, window: RetentionWindow) -> bool:
    return window.auto_delete and (now - item.timestamp) > window.window


def compute_eligible_items(
    now: datetime,
    items: Iterable[InventoryItem],
    windows: Mapping[DataCategory, RetentionWindow],
) -> list[InventoryItem]:
    """Items past their retention window, in inventory order. Pure."""
    return [item for item in items if is_eligible(item, now, windows[item.category])]


def next_scheduled_purge(
    now: datetime,
    windows: Mapping[DataCategory, RetentionWindow],
    purge_interval_days: int = DEFAULT_PURGE_INTERVAL_DAYS,
) -> datetime:
    """
    Next due time: the purge interval, or the shortest auto-delete window
    if that is shorter. Pure.
    """
    step = timedelta(days=purge_interval_days)
    auto_windows = [w.window for w in windows.values() if w.auto_delete]
    if auto_windows:
        step = min(step, min(auto_windows))
    return now + step


class PurgeEngine:
    """
    Executes retention purges against a data inventory.

    Args:
        policies: Retention policy store resolving category windows
        inventory: Data inventory collaborator
        history: Purge history log receiving every report
        audit: Optional privacy audit log
        clock: Returns the current aware UTC time
        purge_interval_days: Upper bound between two scheduled purges
    """

    def __init__(
        self,
        policies: RetentionPolicyStore,
        inventory: DataInventory,
        history: PurgeHistoryLog,
        audit: PrivacyAuditLog | None = None,
        clock: Callable[[], datetime] = utc_now,
        purge_interval_days: int = DEFAULT_PURGE_INTERVAL_DAYS,
    ) -> None:
        self._policies = policies
        self._inventory = inventory
        self._history = history
        self._audit = audit
        self._clock = clock
        self._purge_interval_days = purge_interval_days

    async def _list_inventory(self) -> list[InventoryItem]:
        try:
            return list(await self._inventory.list_items())
        except InventoryUnavailableError:
            raise
        except Exception as e:
            raise InventoryUnavailableError(f"Data inventory could not be read: {e}") from e

    def compute_eligible_items(
        self,
        now: datetime,
        items: Iterable[InventoryItem],
        windows: Mapping[DataCategory, RetentionWindow],
    ) -> list[InventoryItem]:
        return compute_eligible_items(now, items, windows)

    async def preview(self, now: datetime | None = None) -> list[InventoryItem]:
        """Dry run: the items a purge at ``now`` would delete."""
        now = now or self._clock()
        items = await self._list_inventory()
        return compute_eligible_items(now, items, await self._policies.windows())

    async def compute_next_scheduled_purge(self, now: datetime | None = None) -> datetime:
        return next_scheduled_purge(
            now or self._clock(),
            await self._policies.windows(),
            self._purge_interval_days,
        )

    async def execute_purge(
        self,
        now: datetime | None = None,
        trigger: PurgeTrigger = PurgeTrigger.SCHEDULED,
    ) -> PurgeReport:
        """
        Delete every eligible item and append the report to the purge history.

        Callers that must not purge twice in one due window hold the
        history lock around this call.

        Raises:
            InventoryUnavailableError: If the inventory cannot be read (nothing deleted)
            PersistenceError: If policies cannot be read or the report cannot be stored
        """
        now = now or self._clock()
        started = time.monotonic()

        try:
            items = await self._list_inventory()
        except InventoryUnavailableError as e:
            logger.error("purge_inventory_unavailable", trigger=trigger.value, error=str(e))
            if self._audit is not None:
                await self._audit.record(
                    PrivacyAction.PURGE_FAILED, "inventory", success=False, error=str(e)
                )
            raise

        windows = await self._policies.windows()
        eligible = compute_eligible_items(now, items, windows)

        deleted_by_category: dict[DataCategory, int] = {}
        space_freed = 0
        errors: list[PurgeItemError] = []
        for item in eligible:
            try:
                await self._inventory.delete_item(item)
            except Exception as e:
                logger.warning(
                    "purge_item_failed",
                    item_id=item.item_id,
                    category=item.category.value,
                    error=str(e),
                )
                errors.append(PurgeItemError(item_id=item.item_id, category=item.category, error=str(e)))
                continue
            deleted_by_category[item.category] = deleted_by_category.get(item.category, 0) + 1
            space_freed += item.size_bytes or 0

        report = PurgeReport(
            timestamp=now,
            trigger=trigger,
            categories_processed=[c for c, w in windows.items() if w.auto_delete],
            total_items_deleted=sum(deleted_by_category.values()),
            items_deleted_by_category=deleted_by_category,
            space_freed=space_freed,
            next_scheduled_purge=next_scheduled_purge(now, windows, self._purge_interval_days),
            duration_ms=int((time.monotonic() - started) * 1000),
            errors=errors,
        )
        await self._history.append(report)

        logger.info(
            "purge_completed",
            trigger=trigger.value,
            total_items_deleted=report.total_items_deleted,
            error_count=len(errors),
            next_scheduled_purge=report.next_scheduled_purge.isoformat(),
        )
        if self._audit is not None:
            await self._audit.record(
                PrivacyAction.DATA_PURGED,
                trigger.value,
                success=not errors,
                metadata={
                    "total_items_deleted": report.total_items_deleted,
                    "items_deleted_by_category": {c.value: n for c, n in deleted_by_category.items()},
                    "error_count": len(errors),
                },
            )
        return report


__all__ = [
    "DataInventory",
    "PurgeEngine",
    "is_eligible",
    "compute_eligible_items",
    "next_scheduled_purge",
    "DEFAULT_PURGE_INTERVAL_DAYS",
]
