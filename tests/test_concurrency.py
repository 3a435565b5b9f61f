"""
Redis-side coordination tests (mocked Redis).

1. Distributed lock: ``SET NX EX`` acquire, owner-checked release.
2. Dispatch queue: ``ZADD NX`` at intake, ``ZREM`` decides who owns a
   due task.
3. Event publication happens after commit and never raises.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from ambulance_dispatch.domain.enums import BookingStatus
from ambulance_dispatch.domain.events import BookingStatusChanged, UnassignedEscalation
from ambulance_dispatch.infrastructure.locks import DistributedLock, LockNotAcquired
from ambulance_dispatch.infrastructure.publisher import RedisEventPublisher
from ambulance_dispatch.infrastructure.task_queue import DispatchQueue
from ambulance_dispatch.services.events import EventBus


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "maintenance", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:maintenance", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "maintenance", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_checks_owner_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "maintenance", ttl_seconds=10)
        await lock.acquire()
        # Lock expired and was taken by someone else: nothing deleted.
        assert await lock.release() is False
        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:maintenance", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "maintenance", ttl_seconds=10)
        with pytest.raises(LockNotAcquired):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_two_holders_get_distinct_tokens(self):
        a = DistributedLock(AsyncMock(), "maintenance")
        b = DistributedLock(AsyncMock(), "maintenance")
        assert a.token != b.token


class TestDispatchQueue:
    @pytest.mark.asyncio
    async def test_intake_schedule_is_nx(self):
        mock_redis = AsyncMock()
        mock_redis.zadd = AsyncMock(return_value=0)
        queue = DispatchQueue(mock_redis, "dispatch:emergency")

        added = await queue.schedule(42, only_if_absent=True, now=1000.0)

        assert added is False
        mock_redis.zadd.assert_called_once_with(
            "dispatch:emergency", {"42": 1000.0}, nx=True
        )

    @pytest.mark.asyncio
    async def test_retry_schedule_overwrites_due_time(self):
        mock_redis = AsyncMock()
        mock_redis.zadd = AsyncMock(return_value=0)
        queue = DispatchQueue(mock_redis, "dispatch:emergency")

        assert await queue.schedule(42, 5.0, now=1000.0) is True
        mock_redis.zadd.assert_called_once_with(
            "dispatch:emergency", {"42": 1005.0}, nx=False
        )

    @pytest.mark.asyncio
    async def test_claim_due_only_returns_members_it_removed(self):
        mock_redis = AsyncMock()
        mock_redis.zrangebyscore = AsyncMock(return_value=["1", "2", "3"])
        # Another worker already removed "2".
        mock_redis.zrem = AsyncMock(side_effect=[1, 0, 1])
        queue = DispatchQueue(mock_redis, "dispatch:emergency")

        claimed = await queue.claim_due(limit=10, now=2000.0)

        assert claimed == [1, 3]
        mock_redis.zrangebyscore.assert_called_once_with(
            "dispatch:emergency", "-inf", 2000.0, start=0, num=10
        )


class TestEventPublication:
    @pytest.mark.asyncio
    async def test_publisher_sends_json_payload(self):
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(return_value=1)
        publisher = RedisEventPublisher(mock_redis, "dispatch:events")

        await publisher.publish(
            BookingStatusChanged(
                booking_id=7,
                old_status=BookingStatus.PENDING,
                new_status=BookingStatus.DISPATCHED,
                driver_id=3,
                vehicle_id=4,
            )
        )

        channel, raw = mock_redis.publish.call_args.args
        payload = json.loads(raw)
        assert channel == "dispatch:events"
        assert payload["event"] == "booking_status_changed"
        assert payload["new_status"] == "dispatched"
        assert payload["driver_id"] == 3

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_raise(self):
        broken = AsyncMock()
        broken.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        healthy = AsyncMock()
        bus = EventBus(subscribers=[broken, healthy])

        event = UnassignedEscalation(booking_id=1, attempts=12)
        await bus.publish([event])

        healthy.publish.assert_awaited_once_with(event)
