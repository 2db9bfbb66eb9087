"""Key-value storage for credentials, accounts, templates and counters.

Two backends share one async interface: Redis (``redis.asyncio``) for
deployed environments and an in-process dictionary for development and
tests. Counters use ``INCRBY`` on Redis so concurrent increments do not lose
updates; the in-memory store is single-threaded under the event loop.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..core.config import settings
from ..core.structured_logging import LoggerFactory
from ..models.exceptions import StorageError

logger = LoggerFactory.get_logger(__name__)


class KeyValueStore:
    """Async key-value interface used by every store in the service."""

    backend = "abstract"

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def put_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        raise NotImplementedError

    async def get_int(self, key: str) -> int:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def scan_prefix(self, prefix: str) -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store with lazy TTL expiry."""

    backend = "memory"

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _read(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.time():
            del self._data[key]
            return None
        return value

    def _write(self, key: str, value: str, ttl: Optional[int]) -> None:
        expires_at = time.time() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._read(key)
        return json.loads(raw) if raw is not None else None

    async def put_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        self._write(key, json.dumps(value, default=str), ttl)

    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        current = int(self._read(key) or 0) + amount
        existing = self._data.get(key)
        # Keep the original expiry, as Redis does for INCRBY
        if existing is not None and existing[1] is not None:
            self._data[key] = (str(current), existing[1])
        else:
            self._write(key, str(current), ttl)
        return current

    async def get_int(self, key: str) -> int:
        return int(self._read(key) or 0)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def scan_prefix(self, prefix: str) -> List[str]:
        return sorted(k for k in list(self._data) if k.startswith(prefix) and self._read(k) is not None)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store sharing one lazily created async client."""

    backend = "redis"

    def __init__(self, url: Optional[str] = None):
        self.redis_url = url or settings.redis_url
        self.redis_client: Optional[redis.Redis] = None
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> redis.Redis:
        """Connect to Redis once; later calls reuse the client."""
        if self.redis_client is not None:
            return self.redis_client
        async with self._connection_lock:
            if self.redis_client is None:
                try:
                    self.redis_client = redis.from_url(
                        self.redis_url,
                        decode_responses=True,
                        retry_on_timeout=True,
                        health_check_interval=30,
                        socket_connect_timeout=5,
                        socket_timeout=5,
                    )
                    logger.info("Redis async client connected", backend=self.backend)
                except RedisError as e:
                    logger.error("Failed to connect to Redis", error=str(e))
                    raise StorageError("connect", details={"backend": self.backend}) from e
        return self.redis_client

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        client = await self.connect()
        try:
            raw = await client.get(key)
        except RedisError as e:
            raise StorageError("get", key=key) from e
        return json.loads(raw) if raw is not None else None

    async def put_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        client = await self.connect()
        try:
            await client.set(key, json.dumps(value, default=str), ex=ttl)
        except RedisError as e:
            raise StorageError("put", key=key) from e

    async def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        client = await self.connect()
        try:
            pipe = client.pipeline()
            pipe.incrby(key, amount)
            if ttl:
                # nx keeps the first expiry of the period
                pipe.expire(key, ttl, nx=True)
            results = await pipe.execute()
        except RedisError as e:
            raise StorageError("increment", key=key) from e
        return int(results[0])

    async def get_int(self, key: str) -> int:
        client = await self.connect()
        try:
            raw = await client.get(key)
        except RedisError as e:
            raise StorageError("get", key=key) from e
        return int(raw or 0)

    async def delete(self, key: str) -> None:
        client = await self.connect()
        try:
            await client.delete(key)
        except RedisError as e:
            raise StorageError("delete", key=key) from e

    async def scan_prefix(self, prefix: str) -> List[str]:
        client = await self.connect()
        pattern = f"{prefix}*"
        keys: List[str] = []
        try:
            async for key in client.scan_iter(match=pattern, count=500):
                keys.append(key)
        except RedisError as e:
            raise StorageError("scan", key=pattern) from e
        return sorted(keys)

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None


_store: Optional[KeyValueStore] = None


def create_store() -> KeyValueStore:
    backend = settings.kv_backend.lower()
    if backend == "auto":
        backend = "redis" if settings.is_production else "memory"
    if backend == "redis":
        return RedisKeyValueStore()
    return MemoryKeyValueStore()


def get_store() -> KeyValueStore:
    """Process-wide store, created on first use."""
    global _store
    if _store is None:
        _store = create_store()
        logger.info("Key-value store initialized", backend=_store.backend)
    return _store


def set_store(store: Optional[KeyValueStore]) -> None:
    global _store
    _store = store
