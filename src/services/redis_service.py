"""Redis-backed key/value store for governance documents."""

import os
import ssl
from collections.abc import Mapping
from typing import Any

import redis.asyncio as redis
import structlog

from src.lib.exceptions import PersistenceError
from src.services.kv_store import decode_document, encode_document

logger = structlog.get_logger(__name__)

DEFAULT_KEY_PREFIX = "clarifi:privacy:"


class RedisKeyValueStore:
    """
    KeyValueStore on Redis.

    Every document is one string key under ``key_prefix``. Batches use
    MSET, which Redis applies atomically. Connection and command failures
    are raised as PersistenceError; there is no in-memory fallback because
    a consent write that silently stays in memory would be lost on restart.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        client: redis.Redis | None = None,
    ) -> None:
        """
        Args:
            redis_url: Connection URL (defaults to REDIS_URL env var)
            key_prefix: Namespace prefix for every document key
            client: Pre-built async client (tests inject a fake here)
        """
        self._redis_url = redis_url or os.environ.get("REDIS_URL", "redis://localhost:6379/0")
        self._key_prefix = key_prefix
        self._client = client

    @staticmethod
    def _tls_kwargs(redis_url: str) -> dict[str, Any]:
        """Build TLS keyword arguments when using rediss:// URLs."""
        if not redis_url.startswith("rediss://"):
            return {}

        cert_path = os.environ.get("REDIS_TLS_CERT_PATH")
        if cert_path:
            ssl_ctx = ssl.create_default_context(cafile=cert_path)
        else:
            ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = True
        ssl_ctx.verify_mode = ssl.CERT_REQUIRED
        return {"ssl": ssl_ctx}

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _ensure_client(self) -> redis.Redis:
        """Get or create the async Redis client."""
        if self._client is None:
            try:
                client = redis.from_url(  # type: ignore[no-untyped-call]
                    self._redis_url,
                    decode_responses=True,
                    **self._tls_kwargs(self._redis_url),
                )
                await client.ping()
            except redis.RedisError as e:
                logger.error("redis_connect_failed", error=str(e))
                raise PersistenceError(f"Redis unavailable: {e}") from e
            self._client = client
        return self._client

    async def read_all(self, key: str) -> Any | None:
        client = await self._ensure_client()
        try:
            raw = await client.get(self._key(key))
        except redis.RedisError as e:
            logger.error("redis_read_failed", key=key, error=str(e))
            raise PersistenceError(f"Redis read failed for '{key}': {e}", key=key) from e
        return decode_document(raw, key)

    async def write_all(self, key: str, value: Any) -> None:
        await self.write_batch({key: value})

    async def write_batch(self, documents: Mapping[str, Any]) -> None:
        if not documents:
            return
        encoded = {self._key(key): encode_document(value) for key, value in documents.items()}
        client = await self._ensure_client()
        try:
            await client.mset(encoded)
        except redis.RedisError as e:
            logger.error("redis_write_failed", keys=sorted(documents), error=str(e))
            raise PersistenceError(f"Redis write failed for {sorted(documents)}: {e}") from e

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["RedisKeyValueStore", "DEFAULT_KEY_PREFIX"]
