"""
Retention Scheduler for the Clarifi privacy governance engine.

Drives the PurgeEngine on a repeating timer and whenever the app returns
to the foreground. States: stopped -> running -> stopped.

Exactly one purge per due window:
- "Is a purge due?" is answered from the durable purge history (the latest
  report's next_scheduled_purge), never from in-memory state, so a new
  process does not purge again in a window an earlier process closed.
- The due-check, the purge and the history append all happen under the
  purge history lock. A timer tick and a foreground event racing each other
  are serialized there; the second one finds the window already closed.

Failure handling:
- Scheduled runs (timer, foreground, start) catch and log errors; the timer
  keeps running and the lifecycle subscription stays in place.
- check_and_execute_purge() and perform_manual_purge() called directly
  propagate errors to the caller.

Background behaviour: with background_purge disabled, timer ticks while
the app is not active are skipped and counted. Once max_missed_checks
ticks have been skipped in a row, the next tick runs the due-check anyway.

stop() cancels the timer and removes the lifecycle subscription. A purge
already in flight is allowed to finish; no new trigger fires afterwards.

Usage:
    scheduler = RetentionScheduler(engine, history, lifecycle)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from src.privacy.history import PurgeHistoryLog
from src.privacy.lifecycle import AppLifecycle, AppState, Subscription
from src.privacy.models import PurgeReport, PurgeTrigger, utc_now
from src.privacy.purge import PurgeEngine
from src.privacy.timers import BackgroundTasks, RepeatingTimer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Attributes:
        check_interval: Seconds between timer ticks.
        max_missed_checks: Skipped background ticks before a check is forced.
        background_purge: Whether ticks may purge while the app is not active.
        check_on_start: Run one due-check as soon as the scheduler starts.
    """

    check_interval: float = 3600.0
    max_missed_checks: int = 24
    background_purge: bool = False
    check_on_start: bool = True

    def __post_init__(self) -> None:
        if self.check_interval <= 0:
            raise ValueError("check_interval must be greater than zero")
        if self.max_missed_checks < 1:
            raise ValueError("max_missed_checks must be at least 1")


@dataclass
class SchedulerState:
    is_running: bool = False
    last_check_timestamp: datetime | None = None
    missed_check_count: int = 0


class RetentionScheduler:
    """
    Runs due-gated retention purges on a timer and on foreground events.

    Args:
        engine: Purge engine executing the runs
        history: Durable purge history (source of the due time and the lock)
        lifecycle: Optional app lifecycle publisher
        config: Scheduler configuration
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        engine: PurgeEngine,
        history: PurgeHistoryLog,
        lifecycle: AppLifecycle | None = None,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._history = history
        self._lifecycle = lifecycle
        self._config = config or SchedulerConfig()
        self._clock = clock
        self._state = SchedulerState()
        self._timer: RepeatingTimer | None = None
        self._subscription: Subscription | None = None
        self._tasks = BackgroundTasks()
        self._next_check: datetime | None = None

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def state(self) -> SchedulerState:
        return dataclasses.replace(self._state)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, config: SchedulerConfig | None = None) -> None:
        """Start the scheduler (no-op if already running)."""
        if self._state.is_running:
            return
        latest = await self._history.latest()
        if self._state.is_running:
            return
        if latest is not None and self._state.last_check_timestamp is None:
            # The last due-check of a previous process is the newest report.
            self._state.last_check_timestamp = latest.timestamp
        if config is not None:
            self._config = config

        self._state.is_running = True
        self._state.missed_check_count = 0
        self._timer = RepeatingTimer(self._config.check_interval, self._on_tick, name="retention-scheduler")
        self._timer.start()
        self._next_check = self._clock() + timedelta(seconds=self._config.check_interval)
        if self._lifecycle is not None:
            self._subscription = self._lifecycle.subscribe(self._on_app_state)

        logger.info(
            "retention_scheduler_started",
            check_interval=self._config.check_interval,
            background_purge=self._config.background_purge,
        )
        if self._config.check_on_start:
            self._tasks.spawn(self._scheduled_check("start"), name="retention-check-start")

    async def stop(self) -> None:
        """Stop the scheduler (no-op if already stopped)."""
        if not self._state.is_running:
            return
        self._state.is_running = False
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None
        timer, self._timer = self._timer, None
        self._next_check = None
        if timer is not None:
            await timer.stop()
        logger.info("retention_scheduler_stopped")

    async def update_config(self, config: SchedulerConfig) -> None:
        """Replace the configuration, restarting the scheduler if it is running."""
        was_running = self._state.is_running
        if was_running:
            await self.stop()
        self._config = config
        logger.info("retention_scheduler_config_updated", config=dataclasses.asdict(config))
        if was_running:
            await self.start()

    async def wait_idle(self) -> None:
        """Wait for checks spawned by the timer, foreground events or start()."""
        await self._tasks.wait()

    # =========================================================================
    # Triggers
    # =========================================================================

    def _on_tick(self) -> None:
        if not self._state.is_running:
            return
        self._next_check = self._clock() + timedelta(seconds=self._config.check_interval)

        in_background = self._lifecycle is not None and not self._lifecycle.is_active
        if in_background and not self._config.background_purge:
            self._state.missed_check_count += 1
            if self._state.missed_check_count < self._config.max_missed_checks:
                logger.debug("retention_check_skipped", missed_check_count=self._state.missed_check_count)
                return
            logger.info("retention_check_forced", missed_check_count=self._state.missed_check_count)

        self._tasks.spawn(self._scheduled_check("timer"), name="retention-check-timer")

    def _on_app_state(self, state: AppState) -> None:
        if state is AppState.ACTIVE and self._state.is_running:
            self._tasks.spawn(self._scheduled_check("foreground"), name="retention-check-foreground")

    async def _scheduled_check(self, source: str) -> PurgeReport | None:
        try:
            return await self.check_and_execute_purge()
        except Exception as e:
            logger.exception("scheduled_purge_failed", source=source, error=str(e))
            return None

    # =========================================================================
    # Operations
    # =========================================================================

    async def check_and_execute_purge(self, now: datetime | None = None) -> PurgeReport | None:
        """
        Purge if the current window is due.

        Returns:
            The report of the purge, or None if no purge was due
        """
        async with self._history.lock:
            now = now or self._clock()
            self._state.last_check_timestamp = now
            self._state.missed_check_count = 0

            latest = await self._history.latest()
            if latest is not None and now < latest.next_scheduled_purge:
                logger.debug(
                    "purge_not_due",
                    next_scheduled_purge=latest.next_scheduled_purge.isoformat(),
                )
                return None
            return await self._engine.execute_purge(now, PurgeTrigger.SCHEDULED)

    async def perform_manual_purge(self, now: datetime | None = None) -> PurgeReport:
        """Purge immediately regardless of schedule; errors propagate."""
        async with self._history.lock:
            logger.info("manual_purge_requested")
            return await self._engine.execute_purge(now or self._clock(), PurgeTrigger.MANUAL)

    async def get_purge_history(self) -> list[PurgeReport]:
        return await self._history.reports()

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self._state.is_running,
            "config": dataclasses.asdict(self._config),
            "next_check": self._next_check,
            "last_check_timestamp": self._state.last_check_timestamp,
            "missed_check_count": self._state.missed_check_count,
        }


__all__ = ["RetentionScheduler", "SchedulerConfig", "SchedulerState"]
