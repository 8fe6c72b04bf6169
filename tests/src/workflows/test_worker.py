"""
Tests for the governance worker process (src/workflows/worker.py).

Tests:
- GracefulShutdownHandler initial state and shutdown requests
- install()/uninstall() idempotency inside a running loop
- wait_for_shutdown() with and without a timeout
- run_worker() starts the service, runs the first purge and stops cleanly
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta

import pytest

from src.config.settings import GovernanceSettings
from src.privacy.models import DataCategory, utc_now
from src.privacy.service import build_governance_service
from src.services.kv_store import InMemoryKeyValueStore
from src.workflows.worker import GracefulShutdownHandler, run_worker


class TestGracefulShutdownHandler:
    def test_initial_state(self) -> None:
        handler = GracefulShutdownHandler()
        assert handler.should_shutdown is False
        assert handler._installed is False

    async def test_request_shutdown(self) -> None:
        handler = GracefulShutdownHandler()
        handler.request_shutdown(signal.SIGTERM)

        assert handler.should_shutdown is True
        assert await handler.wait_for_shutdown(timeout=0.1) is True

    async def test_wait_times_out(self) -> None:
        handler = GracefulShutdownHandler()
        assert await handler.wait_for_shutdown(timeout=0.01) is False

    async def test_install_and_uninstall_are_idempotent(self) -> None:
        handler = GracefulShutdownHandler()
        handler.install()
        handler.install()
        assert handler._installed is True

        handler.uninstall()
        handler.uninstall()
        assert handler._installed is False

    def test_sync_signal_handler(self) -> None:
        handler = GracefulShutdownHandler()
        handler._handle_signal_sync(signal.SIGINT, None)
        assert handler.should_shutdown is True


class TestRunWorker:
    async def test_runs_until_shutdown(self, inventory) -> None:
        inventory.add("stale", DataCategory.TEMP_FILES, utc_now() - timedelta(days=30))
        shutdown = GracefulShutdownHandler()
        asyncio.get_running_loop().call_later(0.05, shutdown.request_shutdown)

        service = await asyncio.wait_for(
            run_worker(GovernanceSettings(), inventory=inventory, shutdown=shutdown),
            timeout=5,
        )

        assert service.is_started is False
        assert inventory.deleted == ["stale"]
        assert len(await service.get_purge_history()) == 1
        assert shutdown._installed is False

    async def test_stops_service_on_error(self, inventory) -> None:
        service = build_governance_service(GovernanceSettings(), inventory, store=InMemoryKeyValueStore())
        inventory.fail_list = True

        class BrokenShutdown(GracefulShutdownHandler):
            async def wait_for_shutdown(self, timeout: float | None = None) -> bool:
                raise RuntimeError("event loop closing")

        with pytest.raises(RuntimeError):
            await run_worker(GovernanceSettings(), service=service, shutdown=BrokenShutdown())

        assert service.is_started is False
