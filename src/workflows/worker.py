"""
Governance worker process.

Runs the privacy governance engine as a long-lived process: builds the
service from environment settings, starts the retention scheduler and the
consent expiry watcher, and waits for SIGTERM/SIGINT. On a signal the
scheduler is stopped, in-flight checks are allowed to finish, and the
process exits.

Usage:
    python main.py
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from src.config.settings import GovernanceSettings
from src.privacy.lifecycle import AppLifecycle
from src.privacy.purge import DataInventory
from src.privacy.service import PrivacyGovernanceService, build_governance_service
from src.services.file_inventory import FileSystemInventory

logger = logging.getLogger(__name__)


_SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class GracefulShutdownHandler:
    """Turns SIGTERM/SIGINT into an awaitable shutdown request.

    Inside a running loop the handlers go through loop.add_signal_handler;
    elsewhere (or on platforms without it) through signal.signal, with the
    previous handlers restored on uninstall().

    Usage:
        handler = GracefulShutdownHandler()
        handler.install()
        await handler.wait_for_shutdown()
        handler.uninstall()
    """

    def __init__(self) -> None:
        self._should_shutdown = False
        self._shutdown_event = asyncio.Event()
        self._previous_handlers: dict[signal.Signals, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed = False

    @property
    def should_shutdown(self) -> bool:
        return self._should_shutdown

    def install(self) -> None:
        """Route SIGTERM and SIGINT to request_shutdown()."""
        if self._installed:
            return

        try:
            loop = asyncio.get_running_loop()
            for sig in _SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
            self._loop = loop
        except (RuntimeError, NotImplementedError):
            # No running loop, or Windows.
            for sig in _SHUTDOWN_SIGNALS:
                self._previous_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal_sync)
        self._installed = True

    def uninstall(self) -> None:
        """Restore the signal handlers that were active before install()."""
        if not self._installed:
            return

        if self._loop is not None:
            for sig in _SHUTDOWN_SIGNALS:
                self._loop.remove_signal_handler(sig)
            self._loop = None
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._previous_handlers.clear()
        self._installed = False

    def request_shutdown(self, signum: int | None = None) -> None:
        if signum is not None:
            logger.info("Received %s, stopping governance worker", signal.Signals(signum).name)
        self._should_shutdown = True
        self._shutdown_event.set()

    def _handle_signal_sync(self, signum: int, _frame: Any) -> None:
        self.request_shutdown(signum)

    async def wait_for_shutdown(self, timeout: float | None = None) -> bool:
        """Wait for a shutdown request.

        Returns:
            True if shutdown was requested, False if timeout elapsed
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False


async def run_worker(
    settings: GovernanceSettings | None = None,
    inventory: DataInventory | None = None,
    lifecycle: AppLifecycle | None = None,
    shutdown: GracefulShutdownHandler | None = None,
    service: PrivacyGovernanceService | None = None,
) -> PrivacyGovernanceService:
    """
    Run the governance engine until a shutdown is requested.

    Returns:
        The (stopped) service, for inspection by callers and tests
    """
    settings = settings or GovernanceSettings.from_env()
    shutdown = shutdown or GracefulShutdownHandler()
    if service is None:
        service = build_governance_service(
            settings,
            inventory or FileSystemInventory(settings.data_dir),
            lifecycle=lifecycle,
        )

    shutdown.install()
    try:
        await service.start()
        logger.info("Governance worker running (backend=%s)", settings.storage_backend)
        await shutdown.wait_for_shutdown()
    finally:
        await service.stop()
        await service.wait_idle()
        shutdown.uninstall()
        logger.info("Governance worker stopped")
    return service


__all__ = ["GracefulShutdownHandler", "run_worker"]
