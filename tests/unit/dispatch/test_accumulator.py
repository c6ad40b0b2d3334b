"""Unit tests for batch accumulators."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from trailguard.dispatch import InMemoryBatchAccumulator, RedisBatchAccumulator, bucket_key


class TestBucketKey:
    def test_per_minute_key(self) -> None:
        assert bucket_key(datetime(2024, 5, 1, 9, 7, 59, tzinfo=UTC)) == "2024-05-01-09-07"


class TestInMemoryBatchAccumulator:
    """Tests for InMemoryBatchAccumulator."""

    async def test_buffers_until_threshold(self) -> None:
        accumulator = InMemoryBatchAccumulator()

        assert await accumulator.append("k", {"n": 1}, threshold=3, ttl_seconds=90) is None
        assert await accumulator.append("k", {"n": 2}, threshold=3, ttl_seconds=90) is None
        drained = await accumulator.append("k", {"n": 3}, threshold=3, ttl_seconds=90)

        assert drained == [{"n": 1}, {"n": 2}, {"n": 3}]
        assert await accumulator.size("k") == 0
        assert await accumulator.bucket_keys() == []

    async def test_drain_returns_everything(self) -> None:
        accumulator = InMemoryBatchAccumulator()
        await accumulator.append("k", {"n": 1}, threshold=10, ttl_seconds=90)

        assert await accumulator.drain("k") == [{"n": 1}]
        assert await accumulator.drain("k") == []

    async def test_bucket_keys_sorted(self) -> None:
        accumulator = InMemoryBatchAccumulator()
        await accumulator.append("2024-05-01-09-08", {}, threshold=10, ttl_seconds=90)
        await accumulator.append("2024-05-01-09-07", {}, threshold=10, ttl_seconds=90)

        assert await accumulator.bucket_keys() == ["2024-05-01-09-07", "2024-05-01-09-08"]

    async def test_concurrent_producers_lose_nothing(self) -> None:
        """N concurrent appends with threshold B flush floor(N/B) full batches."""
        accumulator = InMemoryBatchAccumulator()
        total, threshold = 257, 10

        results = await asyncio.gather(
            *(
                accumulator.append("k", {"n": n}, threshold=threshold, ttl_seconds=90)
                for n in range(total)
            )
        )

        flushed = [batch for batch in results if batch is not None]
        assert len(flushed) == total // threshold
        assert all(len(batch) == threshold for batch in flushed)
        remaining = await accumulator.drain("k")
        assert len(remaining) == total % threshold

        seen = [item["n"] for batch in flushed for item in batch] + [item["n"] for item in remaining]
        assert sorted(seen) == list(range(total))

    async def test_restore_goes_ahead_of_newer_items(self) -> None:
        accumulator = InMemoryBatchAccumulator()
        await accumulator.append("k", {"n": 3}, threshold=10, ttl_seconds=90)

        await accumulator.restore("k", [{"n": 1}, {"n": 2}], ttl_seconds=90)

        assert await accumulator.size("k") == 3
        assert await accumulator.drain("k") == [{"n": 1}, {"n": 2}, {"n": 3}]

    async def test_locks_released_with_their_buckets(self) -> None:
        accumulator = InMemoryBatchAccumulator()
        for minute in range(50):
            key = f"2024-05-01-09-{minute:02d}"
            await accumulator.append(key, {"n": 1}, threshold=2, ttl_seconds=90)
            await accumulator.append(key, {"n": 2}, threshold=2, ttl_seconds=90)
        await accumulator.append("2024-05-01-10-00", {"n": 1}, threshold=2, ttl_seconds=90)

        assert accumulator.lock_count == 1

        await accumulator.drain("2024-05-01-10-00")
        await accumulator.drain("never-used")

        assert accumulator.lock_count == 0


@pytest.fixture
def mock_redis():
    """Create mock Redis client with registered Lua scripts."""
    client = AsyncMock()
    append_script = AsyncMock(return_value=None)
    drain_script = AsyncMock(return_value=[])
    restore_script = AsyncMock(return_value=0)
    client.register_script = MagicMock(side_effect=[append_script, drain_script, restore_script])
    client.smembers = AsyncMock(return_value=set())
    client.append_script = append_script
    client.drain_script = drain_script
    client.restore_script = restore_script
    return client


class TestRedisBatchAccumulator:
    """Tests for RedisBatchAccumulator."""

    async def test_append_runs_script_with_keys_and_args(self, mock_redis) -> None:
        accumulator = RedisBatchAccumulator(mock_redis, key_prefix="tg")

        result = await accumulator.append("2024-05-01-09-07", {"n": 1}, threshold=100, ttl_seconds=90)

        assert result is None
        mock_redis.append_script.assert_awaited_once_with(
            keys=["tg:batch:2024-05-01-09-07", "tg:batch:index"],
            args=[json.dumps({"n": 1}), 90, 100],
        )

    async def test_append_returns_drained_items(self, mock_redis) -> None:
        mock_redis.append_script.return_value = [json.dumps({"n": 1}), json.dumps({"n": 2})]
        accumulator = RedisBatchAccumulator(mock_redis)

        result = await accumulator.append("k", {"n": 2}, threshold=2, ttl_seconds=90)

        assert result == [{"n": 1}, {"n": 2}]

    async def test_drain_decodes_items(self, mock_redis) -> None:
        mock_redis.drain_script.return_value = [b'{"n": 5}']
        accumulator = RedisBatchAccumulator(mock_redis, key_prefix="tg")

        assert await accumulator.drain("k") == [{"n": 5}]
        mock_redis.drain_script.assert_awaited_once_with(keys=["tg:batch:k", "tg:batch:index"])

    async def test_bucket_keys_strip_prefix(self, mock_redis) -> None:
        mock_redis.smembers.return_value = {b"tg:batch:2024-05-01-09-08", "tg:batch:2024-05-01-09-07"}
        accumulator = RedisBatchAccumulator(mock_redis, key_prefix="tg")

        assert await accumulator.bucket_keys() == ["2024-05-01-09-07", "2024-05-01-09-08"]

    async def test_restore_pushes_items_back(self, mock_redis) -> None:
        accumulator = RedisBatchAccumulator(mock_redis, key_prefix="tg")

        await accumulator.restore("k", [{"n": 1}, {"n": 2}], ttl_seconds=120)

        mock_redis.restore_script.assert_awaited_once_with(
            keys=["tg:batch:k", "tg:batch:index"],
            args=[120, json.dumps({"n": 1}), json.dumps({"n": 2})],
        )

    async def test_restore_nothing_skips_script(self, mock_redis) -> None:
        accumulator = RedisBatchAccumulator(mock_redis)

        await accumulator.restore("k", [], ttl_seconds=120)

        mock_redis.restore_script.assert_not_awaited()

    async def test_size_reads_list_length(self, mock_redis) -> None:
        mock_redis.llen = AsyncMock(return_value=4)
        accumulator = RedisBatchAccumulator(mock_redis, key_prefix="tg")

        assert await accumulator.size("k") == 4
        mock_redis.llen.assert_awaited_once_with("tg:batch:k")
