"""
File-system data inventory.

Exposes locally stored data files to the purge engine. Files live under a
data directory with one sub-directory per data category:

    <data_dir>/analytics_data/events-2025-01.json
    <data_dir>/cache_data/avatar.png

An item's timestamp is the file's modification time; its id is the path
relative to the data directory. Unknown sub-directories and dotfiles are
ignored. Blocking file-system calls run in a worker thread.
"""

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path

from src.privacy.models import DataCategory, InventoryItem

logger = logging.getLogger(__name__)


def _resolve_item_path(item_id: str, data_dir: Path) -> Path:
    """
    Resolve an item id to a path inside data_dir.

    Raises:
        ValueError: If the id escapes the data directory
    """
    if "\x00" in item_id:
        raise ValueError("Invalid item id (contains null byte)")
    root = data_dir.resolve()
    resolved = (root / item_id).resolve()
    if not resolved.is_relative_to(root) or resolved == root:
        raise ValueError(
            f"Path traversal detected: resolved path '{resolved}' "
            f"is outside data directory '{data_dir}'"
        )
    return resolved


class FileSystemInventory:
    """DataInventory over a category-partitioned data directory."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def _scan(self) -> list[InventoryItem]:
        items: list[InventoryItem] = []
        if not self.data_dir.exists():
            return items
        for category in DataCategory:
            category_dir = self.data_dir / category.value
            if not category_dir.is_dir():
                continue
            for path in sorted(category_dir.rglob("*")):
                if not path.is_file() or path.name.startswith("."):
                    continue
                stat = path.stat()
                items.append(
                    InventoryItem(
                        item_id=path.relative_to(self.data_dir).as_posix(),
                        category=category,
                        timestamp=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                        size_bytes=stat.st_size,
                    )
                )
        return items

    def _delete(self, item: InventoryItem) -> None:
        path = _resolve_item_path(item.item_id, self.data_dir)
        logger.info("Deleting expired data file: %s", item.item_id)
        path.unlink()

    async def list_items(self) -> list[InventoryItem]:
        return await asyncio.to_thread(self._scan)

    async def delete_item(self, item: InventoryItem) -> None:
        await asyncio.to_thread(self._delete, item)


__all__ = ["FileSystemInventory"]
