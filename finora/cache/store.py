"""Document store: JSON records grouped in collections.

Two backends share one interface:

- ValkeyStore keeps each record under ``finora:v1:<collection>:<key>`` with a
  per-collection index set so collections can be scanned.
- MemoryStore keeps records in process with the same TTL semantics. It backs
  the test suite and ``store_backend=memory``.

TTLs are relative (``timedelta``); callers never store absolute expiries.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Optional, Union

from redis.asyncio import Redis

from finora.core.logging import get_logger

logger = get_logger("cache.store")

# Key prefixes for namespacing
STORE_PREFIX = "finora"
STORE_VERSION = "v1"

Record = dict[str, Any]


def store_key(collection: str, *parts: Union[str, int]) -> str:
    """
    Generate a consistent store key from parts.

    Usage:
        store_key("companies", "AAPL") -> "finora:v1:companies:AAPL"
    """
    sanitized = [str(part).replace(":", "_") for part in parts]
    return f"{STORE_PREFIX}:{STORE_VERSION}:{collection}:{':'.join(sanitized)}"


def index_key(collection: str) -> str:
    return f"{STORE_PREFIX}:{STORE_VERSION}:{collection}:__index__"


def _serialize(value: Record) -> str:
    return json.dumps(value, default=str)


def _deserialize(value: str) -> Record:
    return json.loads(value)


def _ttl_seconds(ttl: Optional[timedelta]) -> Optional[int]:
    if ttl is None:
        return None
    return max(1, int(ttl.total_seconds()))


class DocumentStore(ABC):
    """Keyed JSON record storage with optional per-record expiry."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[Record]:
        """Return the record or None when absent or expired."""

    @abstractmethod
    async def put(
        self,
        collection: str,
        key: str,
        value: Record,
        ttl: Optional[timedelta] = None,
    ) -> None:
        """Insert or fully replace a record. A ttl (re)starts its expiry."""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Delete a record. Returns True if it existed."""

    @abstractmethod
    async def scan(self, collection: str) -> list[Record]:
        """Return every live record in a collection, in no particular order."""

    async def healthcheck(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class ValkeyStore(DocumentStore):
    """Document store backed by Valkey (Redis protocol)."""

    def __init__(self, client: Redis):
        self.client = client

    async def get(self, collection: str, key: str) -> Optional[Record]:
        full_key = store_key(collection, key)
        value = await self.client.get(full_key)
        if value is None:
            logger.debug(f"Store miss: {full_key}")
            return None
        logger.debug(f"Store hit: {full_key}")
        return _deserialize(value)

    async def put(
        self,
        collection: str,
        key: str,
        value: Record,
        ttl: Optional[timedelta] = None,
    ) -> None:
        full_key = store_key(collection, key)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(full_key, _serialize(value), ex=_ttl_seconds(ttl))
            pipe.sadd(index_key(collection), key)
            await pipe.execute()
        logger.debug(f"Store set: {full_key}, TTL: {_ttl_seconds(ttl)}")

    async def delete(self, collection: str, key: str) -> bool:
        full_key = store_key(collection, key)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(full_key)
            pipe.srem(index_key(collection), key)
            deleted, _ = await pipe.execute()
        logger.debug(f"Store delete: {full_key}")
        return bool(deleted)

    async def scan(self, collection: str) -> list[Record]:
        keys = sorted(await self.client.smembers(index_key(collection)))
        if not keys:
            return []
        values = await self.client.mget([store_key(collection, k) for k in keys])

        records: list[Record] = []
        expired: list[str] = []
        for key, value in zip(keys, values):
            if value is None:
                expired.append(key)
            else:
                records.append(_deserialize(value))

        # Expired keys leave stale index entries behind
        if expired:
            await self.client.srem(index_key(collection), *expired)
        return records

    async def healthcheck(self) -> bool:
        from .client import valkey_healthcheck

        return await valkey_healthcheck(self.client)

    async def close(self) -> None:
        from .client import close_valkey_client

        await close_valkey_client(self.client)


class MemoryStore(DocumentStore):
    """In-process document store with TTL expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, dict[str, tuple[str, Optional[float]]]] = {}

    def _live(self, collection: str, key: str) -> Optional[str]:
        bucket = self._data.get(collection, {})
        entry = bucket.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del bucket[key]
            return None
        return payload

    async def get(self, collection: str, key: str) -> Optional[Record]:
        payload = self._live(collection, key)
        return _deserialize(payload) if payload is not None else None

    async def put(
        self,
        collection: str,
        key: str,
        value: Record,
        ttl: Optional[timedelta] = None,
    ) -> None:
        expires_at = self._clock() + ttl.total_seconds() if ttl is not None else None
        # Serialize so callers never share mutable state with the store
        self._data.setdefault(collection, {})[key] = (_serialize(value), expires_at)

    async def delete(self, collection: str, key: str) -> bool:
        existed = self._live(collection, key) is not None
        self._data.get(collection, {}).pop(key, None)
        return existed

    async def scan(self, collection: str) -> list[Record]:
        records = []
        for key in list(self._data.get(collection, {})):
            payload = self._live(collection, key)
            if payload is not None:
                records.append(_deserialize(payload))
        return records
