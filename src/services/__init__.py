"""
Storage collaborators for the Clarifi privacy governance engine.

Services:
    - InMemoryKeyValueStore: process-local document store (tests, development)
    - RedisKeyValueStore: Redis-backed document store (src.services.redis_service)
    - SqlKeyValueStore: SQLAlchemy-backed document store (src.services.sql_store)
    - FileSystemInventory: category-partitioned local data files for purges

The Redis and SQL backends are imported from their own modules so that
their client libraries load only when that backend is configured.
"""

from .file_inventory import FileSystemInventory
from .kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    StorageKeys,
    decode_document,
    encode_document,
)

__all__ = [
    "KeyValueStore",
    "StorageKeys",
    "encode_document",
    "decode_document",
    "InMemoryKeyValueStore",
    "FileSystemInventory",
]
