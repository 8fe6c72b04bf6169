"""
Application lifecycle collaborator.

The host application reports foreground/background transitions through
AppLifecycle.set_state(). The retention scheduler and the consent expiry
watcher subscribe to run their checks when the app becomes active, which
covers timers that could not fire while the process was suspended.

Usage:
    lifecycle = AppLifecycle()
    subscription = lifecycle.subscribe(on_change)
    lifecycle.set_state(AppState.BACKGROUND)
    subscription.remove()
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[["AppState"], None]


class AppState(StrEnum):
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"


class Subscription:
    """Handle returned by AppLifecycle.subscribe(); remove() is idempotent."""

    def __init__(self, lifecycle: AppLifecycle, listener: Listener) -> None:
        self._lifecycle = lifecycle
        self._listener: Listener | None = listener

    @property
    def active(self) -> bool:
        return self._listener is not None

    def remove(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            self._lifecycle._remove(listener)


class AppLifecycle:
    """Publishes application state changes to subscribers."""

    def __init__(self, initial_state: AppState = AppState.ACTIVE) -> None:
        self._state = initial_state
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is AppState.ACTIVE

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_state(self, state: AppState) -> None:
        """Record a transition and notify subscribers (no-op if unchanged)."""
        state = AppState(state)
        if state == self._state:
            return
        previous, self._state = self._state, state
        logger.debug("app_state_changed", previous=previous.value, state=state.value)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("app_state_listener_failed", state=state.value)


__all__ = ["AppState", "AppLifecycle", "Subscription", "Listener"]
