"""
Clarifi Privacy Governance -- Worker Entry Point.

Starts the consent expiry watcher and the retention scheduler and runs
until SIGTERM/SIGINT.

Usage:
    python main.py
    CLARIFI_STORAGE_BACKEND=redis REDIS_URL=redis://localhost:6379/0 python main.py
"""

from __future__ import annotations

import asyncio

from src.lib.logging import setup_logging
from src.workflows.worker import run_worker


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_worker())
