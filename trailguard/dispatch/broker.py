"""Queue broker interface and implementations.

The broker is the durable hand-off between the dispatcher and workers.
Delivery is at-least-once: a message taken by dequeue() stays in flight
until ack() or fail(), and reclaim() puts it back on its queue when the
worker holding it never answers.
"""

import json
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import redis.asyncio as redis

from trailguard.audit.models import utc_now
from trailguard.observability.logging import get_logger

logger = get_logger(__name__)

# KEYS[1] ready list, KEYS[2] processing hash, KEYS[3] lease set
# ARGV[1] dequeue time
DEQUEUE_SCRIPT = """
local raw = redis.call('LPOP', KEYS[1])
if not raw then
    return false
end
local id = cjson.decode(raw)['id']
redis.call('HSET', KEYS[2], id, raw)
redis.call('ZADD', KEYS[3], ARGV[1], id)
return raw
"""

# KEYS[1] ready list, KEYS[2] processing hash, KEYS[3] lease set
# ARGV[1] cutoff: leases taken at or before it are expired
RECLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', ARGV[1])
local reclaimed = 0
for _, id in ipairs(ids) do
    local raw = redis.call('HGET', KEYS[2], id)
    if raw then
        redis.call('LPUSH', KEYS[1], raw)
        redis.call('HDEL', KEYS[2], id)
        reclaimed = reclaimed + 1
    end
    redis.call('ZREM', KEYS[3], id)
end
return reclaimed
"""


@dataclass
class BrokerMessage:
    """A message handed to a worker."""

    message_id: str
    queue: str
    payload: dict[str, Any]
    enqueued_at: float = field(default_factory=time.time)


class QueueBroker(ABC):
    """Abstract interface for the queue broker."""

    @abstractmethod
    async def enqueue(
        self,
        queue: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
    ) -> str:
        """Add a payload to a queue, optionally delayed.

        Returns:
            Broker-assigned message id
        """
        pass

    @abstractmethod
    async def dequeue(self, queue: str) -> BrokerMessage | None:
        """Take the next ready message, or None when the queue is empty."""
        pass

    @abstractmethod
    async def ack(self, message: BrokerMessage) -> None:
        """Mark a message as processed."""
        pass

    @abstractmethod
    async def fail(self, message: BrokerMessage, error: str) -> None:
        """Move a message to the failed-jobs store."""
        pass

    @abstractmethod
    async def reclaim(self, queue: str, visibility_timeout_seconds: float) -> int:
        """Return expired in-flight messages to the front of their queue.

        A message is expired when it was dequeued more than
        visibility_timeout_seconds ago and has been neither acked nor failed.

        Returns:
            Number of messages put back
        """
        pass

    @abstractmethod
    async def size(self, queue: str) -> int:
        """Count pending (ready and delayed) messages."""
        pass

    @abstractmethod
    async def failed_count(self) -> int:
        """Count messages in the failed-jobs store."""
        pass


class InMemoryQueueBroker(QueueBroker):
    """In-memory broker for testing and single-process development."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._ready: dict[str, deque[BrokerMessage]] = {}
        self._delayed: dict[str, list[tuple[float, BrokerMessage]]] = {}
        self._in_flight: dict[str, tuple[float, BrokerMessage]] = {}
        self._failed: list[dict[str, Any]] = []

    @property
    def failed_jobs(self) -> list[dict[str, Any]]:
        return list(self._failed)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def enqueue(
        self,
        queue: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
    ) -> str:
        message = BrokerMessage(
            message_id=uuid4().hex,
            queue=queue,
            payload=payload,
            enqueued_at=self._clock(),
        )
        if delay_seconds > 0:
            self._delayed.setdefault(queue, []).append((self._clock() + delay_seconds, message))
        else:
            self._ready.setdefault(queue, deque()).append(message)
        return message.message_id

    def _promote_due(self, queue: str) -> None:
        now = self._clock()
        delayed = self._delayed.get(queue, [])
        due = sorted((entry for entry in delayed if entry[0] <= now), key=lambda entry: entry[0])
        if not due:
            return
        self._delayed[queue] = [entry for entry in delayed if entry[0] > now]
        self._ready.setdefault(queue, deque()).extend(message for _, message in due)

    async def dequeue(self, queue: str) -> BrokerMessage | None:
        self._promote_due(queue)
        ready = self._ready.get(queue)
        if not ready:
            return None
        message = ready.popleft()
        self._in_flight[message.message_id] = (self._clock(), message)
        return message

    async def ack(self, message: BrokerMessage) -> None:
        self._in_flight.pop(message.message_id, None)

    async def fail(self, message: BrokerMessage, error: str) -> None:
        self._in_flight.pop(message.message_id, None)
        self._failed.append(
            {
                "message_id": message.message_id,
                "queue": message.queue,
                "payload": message.payload,
                "error": error,
                "failed_at": utc_now().isoformat(),
            }
        )

    async def reclaim(self, queue: str, visibility_timeout_seconds: float) -> int:
        cutoff = self._clock() - visibility_timeout_seconds
        expired = [
            message
            for taken_at, message in self._in_flight.values()
            if message.queue == queue and taken_at <= cutoff
        ]
        ready = self._ready.setdefault(queue, deque())
        for message in reversed(expired):
            del self._in_flight[message.message_id]
            ready.appendleft(message)
        return len(expired)

    async def size(self, queue: str) -> int:
        return len(self._ready.get(queue, ())) + len(self._delayed.get(queue, ()))

    async def failed_count(self) -> int:
        return len(self._failed)


class RedisQueueBroker(QueueBroker):
    """Redis-backed broker.

    Key structure:
    - {prefix}:queues:{queue} - List of ready messages
    - {prefix}:queues:{queue}:delayed - Sorted set scored by ready time
    - {prefix}:queues:{queue}:processing - Hash of in-flight messages
    - {prefix}:queues:{queue}:leases - Sorted set of in-flight ids scored by dequeue time
    - {prefix}:failed - List of failed messages

    dequeue and reclaim run as Lua scripts, so a message is always either
    ready or in flight.
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "trailguard",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._clock = clock
        self._dequeue = client.register_script(DEQUEUE_SCRIPT)
        self._reclaim = client.register_script(RECLAIM_SCRIPT)

    def _queue_key(self, queue: str) -> str:
        return f"{self._prefix}:queues:{queue}"

    def _delayed_key(self, queue: str) -> str:
        return f"{self._prefix}:queues:{queue}:delayed"

    def _processing_key(self, queue: str) -> str:
        return f"{self._prefix}:queues:{queue}:processing"

    def _leases_key(self, queue: str) -> str:
        return f"{self._prefix}:queues:{queue}:leases"

    def _failed_key(self) -> str:
        return f"{self._prefix}:failed"

    def _in_flight_keys(self, queue: str) -> list[str]:
        return [self._queue_key(queue), self._processing_key(queue), self._leases_key(queue)]

    async def enqueue(
        self,
        queue: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
    ) -> str:
        message_id = uuid4().hex
        raw = json.dumps({"id": message_id, "payload": payload, "enqueued_at": self._clock()})
        if delay_seconds > 0:
            await self._client.zadd(self._delayed_key(queue), {raw: self._clock() + delay_seconds})
        else:
            await self._client.rpush(self._queue_key(queue), raw)
        return message_id

    async def _promote_due(self, queue: str) -> None:
        delayed_key = self._delayed_key(queue)
        due = await self._client.zrangebyscore(delayed_key, 0, self._clock())
        for raw in due:
            # zrem succeeds for exactly one caller
            if await self._client.zrem(delayed_key, raw):
                await self._client.rpush(self._queue_key(queue), raw)

    async def dequeue(self, queue: str) -> BrokerMessage | None:
        await self._promote_due(queue)
        raw = await self._dequeue(keys=self._in_flight_keys(queue), args=[self._clock()])
        if not raw:
            return None

        data = json.loads(raw)
        return BrokerMessage(
            message_id=data["id"],
            queue=queue,
            payload=data["payload"],
            enqueued_at=data.get("enqueued_at", self._clock()),
        )

    async def _release(self, message: BrokerMessage) -> None:
        await self._client.hdel(self._processing_key(message.queue), message.message_id)
        await self._client.zrem(self._leases_key(message.queue), message.message_id)

    async def ack(self, message: BrokerMessage) -> None:
        await self._release(message)

    async def fail(self, message: BrokerMessage, error: str) -> None:
        record = json.dumps(
            {
                "message_id": message.message_id,
                "queue": message.queue,
                "payload": message.payload,
                "error": error,
                "failed_at": utc_now().isoformat(),
            }
        )
        await self._client.rpush(self._failed_key(), record)
        await self._release(message)
        logger.debug("message_failed", queue=message.queue, message_id=message.message_id)

    async def reclaim(self, queue: str, visibility_timeout_seconds: float) -> int:
        reclaimed = await self._reclaim(
            keys=self._in_flight_keys(queue),
            args=[self._clock() - visibility_timeout_seconds],
        )
        return int(reclaimed or 0)

    async def size(self, queue: str) -> int:
        ready = await self._client.llen(self._queue_key(queue))
        delayed = await self._client.zcard(self._delayed_key(queue))
        return int(ready) + int(delayed)

    async def failed_count(self) -> int:
        return int(await self._client.llen(self._failed_key()))
