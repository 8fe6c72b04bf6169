"""
Tests for the retention scheduler (src/privacy/scheduler.py).

Covers:
- start/stop idempotence and status
- due-gating from durable purge history (no double purge across restart)
- concurrent triggers in one due window purge exactly once
- scheduled runs swallow and log errors; direct calls propagate them
- foreground and timer triggers, background skipping and forced checks
- stop() lets an in-flight purge finish
"""

import asyncio
from datetime import timedelta

import pytest

from src.lib.exceptions import InventoryUnavailableError
from src.privacy.history import PurgeHistoryLog
from src.privacy.lifecycle import AppState
from src.privacy.models import DataCategory, PurgeTrigger
from src.privacy.purge import PurgeEngine
from src.privacy.retention import RetentionPolicyStore
from src.privacy.scheduler import RetentionScheduler, SchedulerConfig


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(0.005)


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    async def test_start_and_stop(self, scheduler, lifecycle):
        """Test starting and stopping the scheduler."""
        assert scheduler.is_running is False

        await scheduler.start()
        assert scheduler.is_running is True
        assert lifecycle.listener_count == 1

        await scheduler.stop()
        assert scheduler.is_running is False
        assert lifecycle.listener_count == 0

    async def test_start_is_idempotent(self, scheduler, lifecycle):
        """Test that starting twice subscribes once."""
        await scheduler.start()
        await scheduler.start()
        assert lifecycle.listener_count == 1

    async def test_stop_when_stopped_is_noop(self, scheduler):
        """Test stopping a scheduler that is not running."""
        await scheduler.stop()
        assert scheduler.is_running is False

    async def test_start_with_config(self, scheduler):
        """Test starting with a new configuration."""
        config = SchedulerConfig(check_interval=120, check_on_start=False)
        await scheduler.start(config)
        assert scheduler.config == config

    async def test_status(self, scheduler, clock):
        """Test the status of a running scheduler."""
        await scheduler.start()
        status = scheduler.get_status()

        assert status["is_running"] is True
        assert status["config"]["check_interval"] == 3600
        assert status["next_check"] == clock.now + timedelta(hours=1)
        assert status["last_check_timestamp"] is None
        assert status["missed_check_count"] == 0

    async def test_start_restores_last_check_from_history(self, scheduler, engine, history, lifecycle, clock):
        """Test that a new instance reports the last check persisted by an earlier one."""
        report = await scheduler.check_and_execute_purge()
        clock.advance(hours=2)
        restarted = RetentionScheduler(
            engine,
            history,
            lifecycle=lifecycle,
            config=SchedulerConfig(check_on_start=False),
            clock=clock,
        )
        assert restarted.get_status()["last_check_timestamp"] is None

        await restarted.start()
        try:
            assert restarted.get_status()["last_check_timestamp"] == report.timestamp
        finally:
            await restarted.stop()

    async def test_update_config_restarts_running_scheduler(self, scheduler, lifecycle):
        """Test that a config update restarts a running scheduler."""
        await scheduler.start()
        new_config = SchedulerConfig(check_interval=60, background_purge=True, check_on_start=False)

        await scheduler.update_config(new_config)

        assert scheduler.is_running is True
        assert scheduler.config == new_config
        assert scheduler.get_status()["config"]["background_purge"] is True
        assert lifecycle.listener_count == 1

    async def test_update_config_when_stopped_does_not_start(self, scheduler):
        """Test that a config update leaves a stopped scheduler stopped."""
        await scheduler.update_config(SchedulerConfig(check_interval=60))
        assert scheduler.is_running is False

    def test_config_validation(self):
        """Test that invalid scheduler settings are rejected."""
        with pytest.raises(ValueError):
            SchedulerConfig(check_interval=0)
        with pytest.raises(ValueError):
            SchedulerConfig(max_missed_checks=0)


# =============================================================================
# Due-gating
# =============================================================================


class TestDueCheck:
    async def test_first_check_purges(self, scheduler, inventory, clock):
        """Test that the first due-check runs a purge."""
        inventory.add("old", DataCategory.TEMP_FILES, clock.now - timedelta(days=8))

        report = await scheduler.check_and_execute_purge()

        assert report is not None
        assert report.trigger == PurgeTrigger.SCHEDULED
        assert inventory.deleted == ["old"]
        assert scheduler.state.last_check_timestamp == clock.now

    async def test_not_due_returns_none(self, scheduler, clock):
        """Test that a check before the next scheduled purge does nothing."""
        first = await scheduler.check_and_execute_purge()
        clock.set(first.next_scheduled_purge - timedelta(seconds=1))

        assert await scheduler.check_and_execute_purge() is None
        assert len(await scheduler.get_purge_history()) == 1

    async def test_due_again_at_next_scheduled_purge(self, scheduler, clock):
        """Test that a purge is due again at the scheduled time."""
        first = await scheduler.check_and_execute_purge()
        clock.set(first.next_scheduled_purge)

        second = await scheduler.check_and_execute_purge()

        assert second is not None
        assert len(await scheduler.get_purge_history()) == 2

    async def test_no_double_purge_across_restart(self, store, inventory, lifecycle, clock):
        """Test that a restarted process does not purge again early."""
        def build() -> RetentionScheduler:
            history = PurgeHistoryLog(store)
            engine = PurgeEngine(RetentionPolicyStore(store), inventory, history, clock=clock)
            return RetentionScheduler(
                engine,
                history,
                lifecycle=lifecycle,
                config=SchedulerConfig(check_on_start=True),
                clock=clock,
            )

        first = build()
        await first.start()
        await first.wait_idle()
        assert len(await first.get_purge_history()) == 1

        # Process restart: the old instance is gone, the store survives.
        await first.stop()
        clock.advance(hours=2)
        restarted = build()

        assert await restarted.check_and_execute_purge() is None
        assert len(await restarted.get_purge_history()) == 1

    async def test_concurrent_triggers_purge_once(self, scheduler, inventory, clock):
        """Test that concurrent checks run a single purge."""
        inventory.add("old", DataCategory.CACHE_DATA, clock.now - timedelta(days=31))

        results = await asyncio.gather(
            scheduler.check_and_execute_purge(),
            scheduler.check_and_execute_purge(),
            scheduler.check_and_execute_purge(),
        )

        assert sum(r is not None for r in results) == 1
        assert len(await scheduler.get_purge_history()) == 1
        assert inventory.list_calls == 1

    async def test_direct_check_propagates_errors(self, scheduler, inventory):
        """Test that a direct check raises purge errors."""
        inventory.fail_list = True
        with pytest.raises(InventoryUnavailableError):
            await scheduler.check_and_execute_purge()


# =============================================================================
# Manual purge
# =============================================================================


class TestManualPurge:
    async def test_bypasses_due_check(self, scheduler, inventory, clock):
        """Test that a manual purge runs even when none is due."""
        await scheduler.check_and_execute_purge()
        inventory.add("fresh-cache", DataCategory.CACHE_DATA, clock.now - timedelta(days=40))

        report = await scheduler.perform_manual_purge()

        assert report.trigger == PurgeTrigger.MANUAL
        assert inventory.deleted == ["fresh-cache"]
        assert len(await scheduler.get_purge_history()) == 2

    async def test_errors_propagate(self, scheduler, inventory):
        """Test that a manual purge raises purge errors."""
        inventory.fail_list = True
        with pytest.raises(InventoryUnavailableError):
            await scheduler.perform_manual_purge()

    async def test_item_failures_are_reported(self, scheduler, inventory, clock):
        """Test that failed deletions appear in the manual purge report."""
        inventory.add("a", DataCategory.TEMP_FILES, clock.now - timedelta(days=10))
        inventory.add("b", DataCategory.TEMP_FILES, clock.now - timedelta(days=10))
        inventory.fail_ids = {"b"}

        report = await scheduler.perform_manual_purge()

        assert report.total_items_deleted == 1
        assert [e.item_id for e in report.errors] == ["b"]


# =============================================================================
# Triggers
# =============================================================================


class TestTriggers:
    async def test_check_on_start(self, engine, history, lifecycle, clock):
        """Test that starting runs a due-check when configured."""
        scheduler = RetentionScheduler(
            engine, history, lifecycle=lifecycle, config=SchedulerConfig(check_on_start=True), clock=clock
        )
        await scheduler.start()
        await scheduler.wait_idle()
        await scheduler.stop()

        assert len(await history.reports()) == 1

    async def test_scheduled_errors_do_not_stop_scheduler(self, engine, history, inventory, lifecycle, clock):
        """Test that a failing background check keeps the scheduler running."""
        inventory.fail_list = True
        scheduler = RetentionScheduler(
            engine, history, lifecycle=lifecycle, config=SchedulerConfig(check_on_start=True), clock=clock
        )
        await scheduler.start()
        await scheduler.wait_idle()

        assert scheduler.is_running is True
        assert lifecycle.listener_count == 1
        assert await history.reports() == []

        # The next trigger succeeds once the inventory is back.
        inventory.fail_list = False
        lifecycle.set_state(AppState.BACKGROUND)
        lifecycle.set_state(AppState.ACTIVE)
        await scheduler.wait_idle()
        await scheduler.stop()

        assert len(await history.reports()) == 1

    async def test_foreground_triggers_check(self, scheduler, lifecycle, history):
        """Test that returning to the foreground runs a due-check."""
        await scheduler.start()

        lifecycle.set_state(AppState.BACKGROUND)
        lifecycle.set_state(AppState.ACTIVE)
        await scheduler.wait_idle()

        assert len(await history.reports()) == 1

    async def test_background_transition_does_not_trigger(self, scheduler, lifecycle, history):
        """Test that going to the background runs no check."""
        await scheduler.start()
        lifecycle.set_state(AppState.BACKGROUND)
        await scheduler.wait_idle()
        assert await history.reports() == []

    async def test_no_trigger_after_stop(self, scheduler, lifecycle, history):
        """Test that lifecycle events are ignored after stop."""
        await scheduler.start()
        await scheduler.stop()

        lifecycle.set_state(AppState.BACKGROUND)
        lifecycle.set_state(AppState.ACTIVE)
        await scheduler.wait_idle()

        assert await history.reports() == []

    async def test_timer_triggers_check(self, engine, history, lifecycle, clock):
        """Test that the timer runs due-checks."""
        scheduler = RetentionScheduler(
            engine,
            history,
            lifecycle=lifecycle,
            config=SchedulerConfig(check_interval=0.01, check_on_start=False),
            clock=clock,
        )
        await scheduler.start()
        try:
            await wait_until(lambda: scheduler.state.last_check_timestamp is not None)
        finally:
            await scheduler.stop()
            await scheduler.wait_idle()

        assert len(await history.reports()) == 1

    async def test_background_ticks_are_skipped_then_forced(self, engine, history, lifecycle, clock):
        """Test that background ticks are skipped until a check is forced."""
        scheduler = RetentionScheduler(
            engine,
            history,
            lifecycle=lifecycle,
            config=SchedulerConfig(max_missed_checks=3, check_on_start=False),
            clock=clock,
        )
        await scheduler.start()
        lifecycle.set_state(AppState.BACKGROUND)

        scheduler._on_tick()
        scheduler._on_tick()
        await scheduler.wait_idle()
        assert scheduler.state.missed_check_count == 2
        assert await history.reports() == []

        scheduler._on_tick()
        await scheduler.wait_idle()
        await scheduler.stop()

        assert scheduler.state.missed_check_count == 0
        assert len(await history.reports()) == 1

    async def test_background_purge_enabled_runs_in_background(self, engine, history, lifecycle, clock):
        """Test that background ticks purge when background purging is on."""
        scheduler = RetentionScheduler(
            engine,
            history,
            lifecycle=lifecycle,
            config=SchedulerConfig(background_purge=True, check_on_start=False),
            clock=clock,
        )
        await scheduler.start()
        lifecycle.set_state(AppState.BACKGROUND)

        scheduler._on_tick()
        await scheduler.wait_idle()
        await scheduler.stop()

        assert scheduler.state.missed_check_count == 0
        assert len(await history.reports()) == 1


# =============================================================================
# Cancellation
# =============================================================================


class BlockingInventory:
    """Inventory whose deletions wait until released."""

    def __init__(self, items):
        self.items = list(items)
        self.deleting = asyncio.Event()
        self.release = asyncio.Event()
        self.deleted = []

    async def list_items(self):
        return list(self.items)

    async def delete_item(self, item):
        self.deleting.set()
        await self.release.wait()
        self.deleted.append(item.item_id)


class TestStopDuringPurge:
    async def test_in_flight_purge_completes_after_stop(self, store, lifecycle, clock, inventory):
        """Test that stopping lets a running purge finish."""
        inventory.add("old", DataCategory.TEMP_FILES, clock.now - timedelta(days=30))
        blocking = BlockingInventory(inventory.items)
        history = PurgeHistoryLog(store)
        engine = PurgeEngine(RetentionPolicyStore(store), blocking, history, clock=clock)
        scheduler = RetentionScheduler(engine, history, lifecycle=lifecycle, clock=clock)

        await scheduler.start(SchedulerConfig(check_on_start=True))
        await asyncio.wait_for(blocking.deleting.wait(), timeout=2)

        await scheduler.stop()
        assert scheduler.is_running is False

        blocking.release.set()
        await scheduler.wait_idle()

        assert blocking.deleted == ["old"]
        reports = await history.reports()
        assert len(reports) == 1
        assert reports[0].total_items_deleted == 1
