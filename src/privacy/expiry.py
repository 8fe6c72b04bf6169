"""
Consent expiry watcher.

Runs ConsentLedger.process_expired() on its own timer and whenever the app
becomes active, independently of the retention scheduler. Expiry is also
evaluated lazily on every ledger read, so this watcher only makes the
"expired" withdrawals visible in the audit trail promptly.
"""

from __future__ import annotations

import structlog

from src.privacy.ledger import ConsentLedger
from src.privacy.lifecycle import AppLifecycle, AppState, Subscription
from src.privacy.models import ConsentRecord
from src.privacy.timers import BackgroundTasks, RepeatingTimer

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRY_CHECK_INTERVAL = 3600.0


class ConsentExpiryWatcher:
    """Periodically settles expired consents."""

    def __init__(
        self,
        ledger: ConsentLedger,
        lifecycle: AppLifecycle | None = None,
        interval: float = DEFAULT_EXPIRY_CHECK_INTERVAL,
        check_on_start: bool = True,
    ) -> None:
        self._ledger = ledger
        self._lifecycle = lifecycle
        self._interval = interval
        self._check_on_start = check_on_start
        self._timer: RepeatingTimer | None = None
        self._subscription: Subscription | None = None
        self._tasks = BackgroundTasks()

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    async def start(self) -> None:
        if self._timer is not None:
            return
        self._timer = RepeatingTimer(self._interval, self._trigger, name="consent-expiry")
        self._timer.start()
        if self._lifecycle is not None:
            self._subscription = self._lifecycle.subscribe(self._on_app_state)
        logger.info("consent_expiry_watcher_started", interval=self._interval)
        if self._check_on_start:
            self._trigger()

    async def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None
        await timer.stop()
        logger.info("consent_expiry_watcher_stopped")

    async def wait_idle(self) -> None:
        await self._tasks.wait()

    def _trigger(self) -> None:
        if self._timer is not None:
            self._tasks.spawn(self._check(), name="consent-expiry-check")

    def _on_app_state(self, state: AppState) -> None:
        if state is AppState.ACTIVE:
            self._trigger()

    async def _check(self) -> list[ConsentRecord]:
        try:
            return await self._ledger.process_expired()
        except Exception as e:
            logger.exception("consent_expiry_check_failed", error=str(e))
            return []


__all__ = ["ConsentExpiryWatcher", "DEFAULT_EXPIRY_CHECK_INTERVAL"]
