"""
SQLAlchemy-backed key/value store for governance documents.

Documents live in the ``privacy_documents`` table (src.models.document),
one row per key. A batch is written in a single transaction, so either
every document of the batch is replaced or none is. SQLAlchemy's blocking
I/O runs in a worker thread via asyncio.to_thread.

Usage:
    from sqlalchemy import create_engine
    from src.services.sql_store import SqlKeyValueStore

    store = SqlKeyValueStore(create_engine("sqlite:///clarifi_privacy.db"))
    store.create_schema()
"""

import asyncio
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from src.lib.exceptions import PersistenceError
from src.models.base import Base
from src.models.document import StoredDocument
from src.services.kv_store import decode_document, encode_document

logger = logging.getLogger(__name__)


class SqlKeyValueStore:
    """KeyValueStore on a relational database."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlKeyValueStore":
        """Create a store (and its table) from a SQLAlchemy URL."""
        try:
            store = cls(create_engine(database_url))
            store.create_schema()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database unavailable: {e}") from e
        return store

    def create_schema(self) -> None:
        """Create the documents table if it does not exist."""
        Base.metadata.create_all(self._engine, tables=[StoredDocument.__table__])

    def _read(self, key: str) -> str | None:
        with self._session_factory() as session:
            row = session.get(StoredDocument, key)
            return None if row is None else row.payload

    def _write(self, encoded: dict[str, str]) -> None:
        now = datetime.now(UTC)
        with self._session_factory() as session, session.begin():
            for key, payload in encoded.items():
                row = session.get(StoredDocument, key)
                if row is None:
                    session.add(StoredDocument(key=key, payload=payload, updated_at=now))
                else:
                    row.payload = payload
                    row.updated_at = now

    async def read_all(self, key: str) -> Any | None:
        try:
            raw = await asyncio.to_thread(self._read, key)
        except SQLAlchemyError as e:
            logger.error("Failed to read document %s: %s", key, e)
            raise PersistenceError(f"Database read failed for '{key}': {e}", key=key) from e
        return decode_document(raw, key)

    async def write_all(self, key: str, value: Any) -> None:
        await self.write_batch({key: value})

    async def write_batch(self, documents: Mapping[str, Any]) -> None:
        if not documents:
            return
        encoded = {key: encode_document(value) for key, value in documents.items()}
        try:
            await asyncio.to_thread(self._write, encoded)
        except SQLAlchemyError as e:
            logger.error("Failed to write documents %s: %s", sorted(documents), e)
            raise PersistenceError(f"Database write failed for {sorted(documents)}: {e}") from e

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()


__all__ = ["SqlKeyValueStore"]
