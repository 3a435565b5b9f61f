"""
Delayed task queue for the emergency dispatch scheduler.

A Redis sorted set keyed by booking id, scored by the due time (epoch
seconds).  Only the booking id is queued; the task's attempt count and
start time live on the booking row, so whichever worker claims the id
can resume it.

* ``schedule(..., only_if_absent=True)`` uses ``ZADD NX``: booking intake
  can never queue two tasks for the same booking.
* ``claim_due`` removes each due member with ``ZREM``; the worker whose
  ``ZREM`` returns 1 owns that attempt.
"""

from __future__ import annotations

import time

import redis.asyncio as aioredis


class DispatchQueue:
    def __init__(self, client: aioredis.Redis, key: str):
        self.redis = client
        self.key = key

    async def schedule(
        self,
        booking_id: int,
        delay_seconds: float = 0.0,
        *,
        only_if_absent: bool = False,
        now: float | None = None,
    ) -> bool:
        """Queue *booking_id* to run after *delay_seconds*. True if added."""
        due = (time.time() if now is None else now) + delay_seconds
        added = await self.redis.zadd(
            self.key, {str(booking_id): due}, nx=only_if_absent
        )
        return bool(added) or not only_if_absent

    async def claim_due(self, limit: int = 50, now: float | None = None) -> list[int]:
        """Pop up to *limit* booking ids whose due time has passed."""
        due_at = time.time() if now is None else now
        members = await self.redis.zrangebyscore(
            self.key, "-inf", due_at, start=0, num=limit
        )
        claimed: list[int] = []
        for member in members:
            if await self.redis.zrem(self.key, member):
                claimed.append(int(member))
        return claimed

    async def pending_count(self) -> int:
        return int(await self.redis.zcard(self.key))
