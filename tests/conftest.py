"""
Shared test fixtures for the Clarifi privacy governance engine.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode logging)
- A settable clock
- In-memory key/value store with failure injection
- Fake data inventory with per-item failure injection
- App lifecycle publisher
- Pre-wired ledger, policy store, purge engine and scheduler

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import pytest

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("CLARIFI_DEV_MODE", "1")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

from src.privacy.audit import PrivacyAuditLog  # noqa: E402
from src.privacy.history import PurgeHistoryLog  # noqa: E402
from src.privacy.ledger import ConsentLedger  # noqa: E402
from src.privacy.lifecycle import AppLifecycle  # noqa: E402
from src.privacy.models import DataCategory, InventoryItem  # noqa: E402
from src.privacy.purge import PurgeEngine  # noqa: E402
from src.privacy.retention import RetentionPolicyStore  # noqa: E402
from src.privacy.scheduler import RetentionScheduler, SchedulerConfig  # noqa: E402
from src.services.kv_store import InMemoryKeyValueStore  # noqa: E402

START = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# 2. Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self.now = self.now + (delta or timedelta(**kwargs))
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# 3. Storage and collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


class FakeInventory:
    """
    DataInventory test double.

    ``fail_ids`` makes delete_item raise for those items; ``fail_list``
    makes list_items raise.
    """

    def __init__(self, items: Iterable[InventoryItem] = ()) -> None:
        self.items: list[InventoryItem] = list(items)
        self.deleted: list[str] = []
        self.fail_ids: set[str] = set()
        self.fail_list = False
        self.list_calls = 0

    def add(
        self,
        item_id: str,
        category: DataCategory,
        timestamp: datetime,
        size_bytes: int | None = None,
    ) -> InventoryItem:
        item = InventoryItem(item_id=item_id, category=category, timestamp=timestamp, size_bytes=size_bytes)
        self.items.append(item)
        return item

    async def list_items(self) -> list[InventoryItem]:
        self.list_calls += 1
        if self.fail_list:
            raise OSError("inventory offline")
        return list(self.items)

    async def delete_item(self, item: InventoryItem) -> None:
        if item.item_id in self.fail_ids:
            raise OSError(f"cannot delete {item.item_id}")
        self.items = [i for i in self.items if i.item_id != item.item_id]
        self.deleted.append(item.item_id)


@pytest.fixture()
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture()
def lifecycle() -> AppLifecycle:
    return AppLifecycle()


# ---------------------------------------------------------------------------
# 4. Wired components
# ---------------------------------------------------------------------------


@pytest.fixture()
def audit(store, clock) -> PrivacyAuditLog:
    return PrivacyAuditLog(store, clock=clock)


@pytest.fixture()
def ledger(store, audit, clock) -> ConsentLedger:
    return ConsentLedger(store, audit=audit, clock=clock)


@pytest.fixture()
def policies(store, audit) -> RetentionPolicyStore:
    return RetentionPolicyStore(store, audit=audit)


@pytest.fixture()
def history(store) -> PurgeHistoryLog:
    return PurgeHistoryLog(store)


@pytest.fixture()
def engine(policies, inventory, history, audit, clock) -> PurgeEngine:
    return PurgeEngine(policies, inventory, history, audit=audit, clock=clock)


@pytest.fixture()
async def scheduler(engine, history, lifecycle, clock):
    scheduler = RetentionScheduler(
        engine,
        history,
        lifecycle=lifecycle,
        config=SchedulerConfig(check_interval=3600, check_on_start=False),
        clock=clock,
    )
    yield scheduler
    await scheduler.stop()
    await scheduler.wait_idle()
