"""
Notification trigger publisher.

Events are published as JSON on a Redis pub/sub channel; the
notification collaborator subscribes and owns formatting and delivery.
"""

from __future__ import annotations

import json
import logging

import redis.asyncio as aioredis

from ambulance_dispatch.domain.events import DispatchEvent

logger = logging.getLogger(__name__)


class RedisEventPublisher:
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def publish(self, event: DispatchEvent) -> None:
        payload = event.to_payload()
        receivers = await self.redis.publish(self.channel, json.dumps(payload))
        logger.debug(
            "Published %s for booking %s to %d subscriber(s)",
            event.name, payload.get("booking_id"), receivers,
        )
