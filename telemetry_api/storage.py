"""Storage gateway for telemetry records.

The only component that talks to the backing store. Records live in Redis:

- ``<prefix>:record:<id>``            JSON document of one record
- ``<prefix>:index:all``              sorted set, member=id, score=time
- ``<prefix>:index:device:<device>``  same, per device
- ``<prefix>:trend:all``              hash, field=time, value=record count
- ``<prefix>:trend:device:<device>``  same, per device

Every failure surfaces as ``StorageError``.
"""
from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from .errors import StorageError
from .models.telemetry import TelemetryRecord, TrendBucket

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTED = "connected"
ERROR = "error"

DEFAULT_RANGE_LIMIT = 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StorageGateway:
    """Async Redis gateway with an explicit ``open``/``close`` lifecycle."""

    def __init__(
        self,
        redis_url: str,
        *,
        key_prefix: str = "telemetry",
        max_connections: int = 200,
        client: redis.Redis | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._redis_url = redis_url
        self._prefix = key_prefix
        self._max_connections = max_connections
        self._pool: redis.ConnectionPool | None = None
        self._client: redis.Redis | None = client
        self._owns_client = client is None
        self._clock = clock
        self._state = DISCONNECTED
        self._listeners: list[Callable[[str], None]] = []

    # ─────────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> str:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == CONNECTED

    def add_state_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with the new state on every transition."""
        self._listeners.append(listener)

    def _set_state(self, state: str) -> None:
        if state == self._state:
            return
        self._state = state
        if state == CONNECTED:
            logger.info(f"Storage connected ({self._prefix})")
        elif state == ERROR:
            logger.error(f"Storage connection error ({self._prefix})")
        else:
            logger.info(f"Storage disconnected ({self._prefix})")
        for listener in self._listeners:
            listener(state)

    async def open(self) -> None:
        """Initialize the connection pool and verify the store answers."""
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(
                self._redis_url,
                decode_responses=True,
                max_connections=self._max_connections,
            )
            self._client = redis.Redis(connection_pool=self._pool)
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            self._set_state(ERROR)
            raise StorageError(f"cannot reach storage: {exc}") from exc
        self._set_state(CONNECTED)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        self._set_state(DISCONNECTED)

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            alive = bool(await self._client.ping())
        except (RedisError, OSError):
            self._set_state(ERROR)
            return False
        if alive and self._state == ERROR:
            self._set_state(CONNECTED)
        return alive

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncIterator[redis.Redis]:
        """Yield the client, translating store failures into ``StorageError``."""
        if self._client is not None and self._state == ERROR:
            await self.ping()
        if self._client is None or self._state != CONNECTED:
            raise StorageError("storage is not connected")
        try:
            yield self._client
        except RedisConnectionError as exc:
            self._set_state(ERROR)
            raise StorageError(f"{action} failed: {exc}") from exc
        except (RedisError, OSError) as exc:
            raise StorageError(f"{action} failed: {exc}") from exc

    # ─────────────────────────────────────────────────────────────────
    # Keys
    # ─────────────────────────────────────────────────────────────────

    def _record_key(self, record_id: str) -> str:
        return f"{self._prefix}:record:{record_id}"

    def _index_key(self, device_id: str | None = None) -> str:
        if device_id is None:
            return f"{self._prefix}:index:all"
        return f"{self._prefix}:index:device:{device_id}"

    def _trend_key(self, device_id: str | None = None) -> str:
        if device_id is None:
            return f"{self._prefix}:trend:all"
        return f"{self._prefix}:trend:device:{device_id}"

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    async def insert_one(self, record: TelemetryRecord) -> TelemetryRecord:
        """Stamp ``time``/``createdAt`` and write the record atomically.

        Returns a new record carrying its assigned identity; the input is
        left untouched.
        """
        now = self._clock()
        stored = record.model_copy(
            update={
                "id": uuid.uuid4().hex,
                "time": int(now.timestamp()),
                "created_at": now,
            }
        )
        document = json.dumps(stored.to_document())
        async with self._guard("insert") as client:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._record_key(stored.id), document)
                pipe.zadd(self._index_key(), {stored.id: stored.time})
                pipe.zadd(self._index_key(stored.device_id), {stored.id: stored.time})
                pipe.hincrby(self._trend_key(), str(stored.time), 1)
                pipe.hincrby(self._trend_key(stored.device_id), str(stored.time), 1)
                await pipe.execute()
        return stored

    async def drop_all(self) -> int:
        """Delete every key under the prefix. Returns the number of keys removed."""
        removed = 0
        async with self._guard("drop") as client:
            batch: list[str] = []
            async for key in client.scan_iter(match=f"{self._prefix}:*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await client.delete(*batch)
                    batch = []
            if batch:
                removed += await client.delete(*batch)
        logger.warning(f"Dropped telemetry collection ({removed} keys)")
        return removed

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def count(
        self,
        device_id: str | None = None,
        from_ts: int | None = None,
        to_ts: int | None = None,
    ) -> int:
        """Count records, optionally per device and within inclusive [from_ts, to_ts]."""
        key = self._index_key(device_id)
        async with self._guard("count") as client:
            if from_ts is None and to_ts is None:
                return await client.zcard(key)
            low = "-inf" if from_ts is None else from_ts
            high = "+inf" if to_ts is None else to_ts
            return await client.zcount(key, low, high)

    async def _load(self, client: redis.Redis, ids: list[str]) -> list[TelemetryRecord]:
        if not ids:
            return []
        documents = await client.mget([self._record_key(i) for i in ids])
        return [TelemetryRecord.model_validate_json(doc) for doc in documents if doc is not None]

    async def find_all(self, limit: int) -> list[TelemetryRecord]:
        """Oldest ``limit`` records, ascending by time."""
        async with self._guard("find") as client:
            ids = await client.zrangebyscore(self._index_key(), "-inf", "+inf", start=0, num=limit)
            return await self._load(client, ids)

    async def query_range(
        self,
        device_id: str | None = None,
        from_ts: int | None = None,
        to_ts: int | None = None,
        limit: int | None = None,
    ) -> list[TelemetryRecord]:
        """Most recent ``limit`` matches (default 10), returned oldest-to-newest."""
        if limit is None:
            limit = DEFAULT_RANGE_LIMIT
        low = "-inf" if from_ts is None else from_ts
        high = "+inf" if to_ts is None else to_ts
        async with self._guard("query") as client:
            ids = await client.zrevrangebyscore(
                self._index_key(device_id), high, low, start=0, num=limit
            )
            records = await self._load(client, ids)
        records.reverse()
        return records

    async def aggregate_trend(
        self,
        device_id: str | None = None,
        limit: int | None = None,
    ) -> list[TrendBucket]:
        """Per-second record counts grouped and sorted on ``time``.

        Without a limit every bucket is returned ascending. With a limit the
        most recent ``limit`` buckets are kept, still presented ascending.
        """
        async with self._guard("aggregate") as client:
            raw = await client.hgetall(self._trend_key(device_id))
        buckets = [
            TrendBucket(time=int(ts), subtotal=int(n)) for ts, n in raw.items() if int(n) > 0
        ]
        if limit is None:
            buckets.sort(key=lambda b: b.time)
            return buckets
        buckets.sort(key=lambda b: b.time, reverse=True)
        buckets = buckets[:limit]
        buckets.reverse()
        return buckets
