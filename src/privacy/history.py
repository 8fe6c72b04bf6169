"""
Purge history log.

Bounded, chronological list of PurgeReports persisted under
``purge_history``. It is the durable source of truth for "when is the
next purge due": the scheduler reads the latest report from here, never
from its own memory, so a restarted process does not purge twice in the
same window.

The log's lock is the serialization point for due windows. The scheduler
holds it across due-check, purge and append.
"""

import asyncio

import structlog
from pydantic import ValidationError

from src.lib.exceptions import PersistenceError
from src.privacy.models import PurgeReport
from src.services.kv_store import KeyValueStore, StorageKeys

logger = structlog.get_logger(__name__)

DEFAULT_PURGE_HISTORY_LIMIT = 10


class PurgeHistoryLog:
    """Last ``limit`` purge reports, oldest first."""

    def __init__(self, store: KeyValueStore, limit: int = DEFAULT_PURGE_HISTORY_LIMIT) -> None:
        self._store = store
        self._limit = limit
        self.lock = asyncio.Lock()

    async def reports(self) -> list[PurgeReport]:
        raw = await self._store.read_all(StorageKeys.PURGE_HISTORY) or []
        try:
            return [PurgeReport.model_validate(item) for item in raw]
        except ValidationError as e:
            raise PersistenceError(f"Purge history is corrupted: {e}") from e

    async def latest(self) -> PurgeReport | None:
        reports = await self.reports()
        return reports[-1] if reports else None

    async def append(self, report: PurgeReport) -> None:
        """
        Append a report, dropping the oldest beyond the limit.

        Callers serializing a due window must already hold ``lock``.
        """
        reports = await self.reports()
        reports.append(report)
        reports = reports[-self._limit:]
        await self._store.write_all(
            StorageKeys.PURGE_HISTORY,
            [r.model_dump(mode="json") for r in reports],
        )
        logger.debug("purge_report_appended", history_size=len(reports))


__all__ = ["PurgeHistoryLog", "DEFAULT_PURGE_HISTORY_LIMIT"]
