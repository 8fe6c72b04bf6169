"""
Key/value document storage for the privacy governance engine.

The engine persists four logical tables (consent records, consent
history, retention policy, purge history) plus the privacy audit log, each
as one JSON document under a fixed key. Backends implement KeyValueStore:

- read_all(key): the stored document, or None if the key was never written
- write_all(key, value): replace one document
- write_batch({key: value}): replace several documents atomically

Any backend failure surfaces as PersistenceError. Nothing is silently
dropped: a failed write leaves every document exactly as it was.

Backends:
    - InMemoryKeyValueStore (this module): tests and development
    - RedisKeyValueStore (src.services.redis_service)
    - SqlKeyValueStore (src.services.sql_store)
"""

import asyncio
import copy
import dataclasses
import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from src.lib.exceptions import PersistenceError


class StorageKeys:
    """Fixed document keys."""

    CONSENT_RECORDS = "consent_records"
    CONSENT_HISTORY = "consent_history"
    RETENTION_POLICY = "retention_policy"
    PURGE_HISTORY = "purge_history"
    PRIVACY_AUDIT_LOG = "privacy_audit_log"

    ALL = (CONSENT_RECORDS, CONSENT_HISTORY, RETENTION_POLICY, PURGE_HISTORY, PRIVACY_AUDIT_LOG)


class GovernanceJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for governance documents that handles:
    - pydantic models -> model_dump(mode="json")
    - dataclasses -> dict via dataclasses.asdict()
    - datetime/date -> .isoformat()
    - Enum -> .value
    - set -> sorted list

    Unlike a cache encoder this one raises on unknown types: a document
    that cannot be encoded must not be half-written.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def encode_document(value: Any) -> str:
    """Serialize a document to JSON, raising PersistenceError if impossible."""
    try:
        return json.dumps(value, cls=GovernanceJSONEncoder, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Document is not serializable: {e}") from e


def decode_document(raw: str | bytes | None, key: str) -> Any | None:
    """Deserialize a stored document; corrupted JSON is a PersistenceError."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PersistenceError(f"Stored document '{key}' is corrupted: {e}", key=key) from e


@runtime_checkable
class KeyValueStore(Protocol):
    """Durable storage collaborator used by the ledger, policy store and purge history."""

    async def read_all(self, key: str) -> Any | None:
        """Return the document stored under key, or None."""
        ...

    async def write_all(self, key: str, value: Any) -> None:
        """Replace the document stored under key."""
        ...

    async def write_batch(self, documents: Mapping[str, Any]) -> None:
        """Replace several documents atomically (all or none)."""
        ...


class InMemoryKeyValueStore:
    """
    Process-local KeyValueStore.

    Documents are stored in their JSON-encoded form so that reads return
    fresh copies and encoding problems surface exactly as with a real
    backend. ``fail_writes`` / ``fail_reads`` inject PersistenceError for
    tests.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self.fail_writes = False
        self.fail_reads = False
        self.write_count = 0
        for key, value in (initial or {}).items():
            self._data[key] = encode_document(value)

    async def read_all(self, key: str) -> Any | None:
        if self.fail_reads:
            raise PersistenceError(f"Simulated read failure for '{key}'", key=key)
        return decode_document(self._data.get(key), key)

    async def write_all(self, key: str, value: Any) -> None:
        await self.write_batch({key: value})

    async def write_batch(self, documents: Mapping[str, Any]) -> None:
        if self.fail_writes:
            raise PersistenceError(f"Simulated write failure for {sorted(documents)}")
        encoded = {key: encode_document(value) for key, value in documents.items()}
        async with self._lock:
            self._data.update(encoded)
            self.write_count += 1

    def snapshot(self) -> dict[str, Any]:
        """Decoded copy of every stored document (test helper)."""
        return {key: copy.deepcopy(json.loads(raw)) for key, raw in self._data.items()}


__all__ = [
    "StorageKeys",
    "GovernanceJSONEncoder",
    "encode_document",
    "decode_document",
    "KeyValueStore",
    "InMemoryKeyValueStore",
]
