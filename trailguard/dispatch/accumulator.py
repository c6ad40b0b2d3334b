"""Batch accumulator: keyed buckets with atomic append-and-maybe-drain.

A bucket never holds more than the threshold: the append that reaches it
drains the bucket in the same atomic step, so concurrent producers can
neither lose an item nor flush one twice.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import redis.asyncio as redis

BUCKET_KEY_FORMAT = "%Y-%m-%d-%H-%M"

# KEYS[1] bucket list, KEYS[2] bucket index set
# ARGV[1] item, ARGV[2] ttl seconds, ARGV[3] threshold
APPEND_SCRIPT = """
local size = redis.call('RPUSH', KEYS[1], ARGV[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
redis.call('SADD', KEYS[2], KEYS[1])
if size >= tonumber(ARGV[3]) then
    local items = redis.call('LRANGE', KEYS[1], 0, -1)
    redis.call('DEL', KEYS[1])
    redis.call('SREM', KEYS[2], KEYS[1])
    return items
end
return false
"""

# KEYS[1] bucket list, KEYS[2] bucket index set
DRAIN_SCRIPT = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
redis.call('DEL', KEYS[1])
redis.call('SREM', KEYS[2], KEYS[1])
return items
"""

# KEYS[1] bucket list, KEYS[2] bucket index set
# ARGV[1] ttl seconds, ARGV[2..] items in bucket order
RESTORE_SCRIPT = """
for i = #ARGV, 2, -1 do
    redis.call('LPUSH', KEYS[1], ARGV[i])
end
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
redis.call('SADD', KEYS[2], KEYS[1])
return redis.call('LLEN', KEYS[1])
"""


def bucket_key(moment: datetime) -> str:
    """Per-minute bucket name for a moment in time."""
    return moment.strftime(BUCKET_KEY_FORMAT)


class BatchAccumulator(ABC):
    """Abstract interface for batch buckets."""

    @abstractmethod
    async def append(
        self,
        key: str,
        item: dict[str, Any],
        threshold: int,
        ttl_seconds: int,
    ) -> list[dict[str, Any]] | None:
        """Append an item; when the bucket reaches threshold, drain it.

        Returns:
            The drained items if this append filled the bucket, else None
        """
        pass

    @abstractmethod
    async def drain(self, key: str) -> list[dict[str, Any]]:
        """Remove and return everything in a bucket."""
        pass

    @abstractmethod
    async def restore(self, key: str, items: list[dict[str, Any]], ttl_seconds: int) -> None:
        """Put drained items back at the front of a bucket.

        Used when a drained batch could not be handed to the broker.
        """
        pass

    @abstractmethod
    async def bucket_keys(self) -> list[str]:
        """List buckets that may hold items, oldest first."""
        pass

    @abstractmethod
    async def size(self, key: str) -> int:
        """Number of items waiting in a bucket."""
        pass


class InMemoryBatchAccumulator(BatchAccumulator):
    """In-memory buckets guarded by one asyncio.Lock per key.

    ttl_seconds is ignored; buckets live until drained. A key's lock is
    dropped together with its bucket.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, list[dict[str, Any]]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def _forget(self, key: str) -> None:
        lock = self._locks.get(key)
        if key not in self._buckets and lock is not None and not lock.locked():
            del self._locks[key]

    async def append(
        self,
        key: str,
        item: dict[str, Any],
        threshold: int,
        ttl_seconds: int,  # noqa: ARG002
    ) -> list[dict[str, Any]] | None:
        async with self._lock(key):
            bucket = self._buckets.setdefault(key, [])
            bucket.append(item)
            if len(bucket) < threshold:
                return None
            del self._buckets[key]
        self._forget(key)
        return bucket

    async def drain(self, key: str) -> list[dict[str, Any]]:
        async with self._lock(key):
            items = self._buckets.pop(key, [])
        self._forget(key)
        return items

    async def restore(
        self,
        key: str,
        items: list[dict[str, Any]],
        ttl_seconds: int,  # noqa: ARG002
    ) -> None:
        if not items:
            return
        async with self._lock(key):
            self._buckets[key] = list(items) + self._buckets.get(key, [])

    async def bucket_keys(self) -> list[str]:
        return sorted(self._buckets)

    async def size(self, key: str) -> int:
        return len(self._buckets.get(key, ()))

    @property
    def lock_count(self) -> int:
        """Number of per-key locks currently held in memory."""
        return len(self._locks)


class RedisBatchAccumulator(BatchAccumulator):
    """Redis-backed buckets; append, drain and restore run as Lua scripts.

    Key structure:
    - {prefix}:batch:{bucket} - List of serialized items
    - {prefix}:batch:index - Set of bucket keys awaiting a flush
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "trailguard") -> None:
        self._client = client
        self._prefix = key_prefix
        self._append = client.register_script(APPEND_SCRIPT)
        self._drain = client.register_script(DRAIN_SCRIPT)
        self._restore = client.register_script(RESTORE_SCRIPT)

    def _bucket_key(self, key: str) -> str:
        return f"{self._prefix}:batch:{key}"

    def _index_key(self) -> str:
        return f"{self._prefix}:batch:index"

    def _strip_prefix(self, redis_key: str | bytes) -> str:
        if isinstance(redis_key, bytes):
            redis_key = redis_key.decode()
        return redis_key.removeprefix(f"{self._prefix}:batch:")

    @staticmethod
    def _decode(items: list[Any]) -> list[dict[str, Any]]:
        return [json.loads(item) for item in items]

    async def append(
        self,
        key: str,
        item: dict[str, Any],
        threshold: int,
        ttl_seconds: int,
    ) -> list[dict[str, Any]] | None:
        drained = await self._append(
            keys=[self._bucket_key(key), self._index_key()],
            args=[json.dumps(item), ttl_seconds, threshold],
        )
        if not drained:
            return None
        return self._decode(drained)

    async def drain(self, key: str) -> list[dict[str, Any]]:
        items = await self._drain(keys=[self._bucket_key(key), self._index_key()])
        return self._decode(items or [])

    async def restore(self, key: str, items: list[dict[str, Any]], ttl_seconds: int) -> None:
        if not items:
            return
        await self._restore(
            keys=[self._bucket_key(key), self._index_key()],
            args=[ttl_seconds, *(json.dumps(item) for item in items)],
        )

    async def bucket_keys(self) -> list[str]:
        members = await self._client.smembers(self._index_key())
        return sorted(self._strip_prefix(member) for member in members)

    async def size(self, key: str) -> int:
        return await self._client.llen(self._bucket_key(key))
