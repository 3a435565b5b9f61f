"""Default wiring of the services against Redis and the shared settings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from ambulance_dispatch.config import settings
from ambulance_dispatch.domain.entities import utcnow
from ambulance_dispatch.infrastructure.publisher import RedisEventPublisher
from ambulance_dispatch.infrastructure.redis_client import get_redis
from ambulance_dispatch.infrastructure.task_queue import DispatchQueue
from ambulance_dispatch.services.assignment import AssignmentGuard
from ambulance_dispatch.services.events import EventBus, Subscriber
from ambulance_dispatch.services.lifecycle import BookingLifecycle
from ambulance_dispatch.services.synchronizer import StatusSynchronizer
from ambulance_dispatch.services.tracking import LocationTracker


@dataclass
class Services:
    bus: EventBus
    guard: AssignmentGuard
    lifecycle: BookingLifecycle
    synchronizer: StatusSynchronizer
    tracker: LocationTracker
    queue: DispatchQueue


def build_services(
    queue: DispatchQueue,
    subscribers: Iterable[Subscriber] = (),
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    synchronizer = StatusSynchronizer(clock)
    bus = EventBus(consumers=[synchronizer], subscribers=subscribers)
    guard = AssignmentGuard(bus, clock)
    return Services(
        bus=bus,
        guard=guard,
        lifecycle=BookingLifecycle(bus, guard, clock),
        synchronizer=synchronizer,
        tracker=LocationTracker(settings.eta_default_speed_kmh, clock),
        queue=queue,
    )


async def default_services() -> Services:
    redis = await get_redis()
    return build_services(
        DispatchQueue(redis, settings.dispatch_queue_key),
        subscribers=[RedisEventPublisher(redis, settings.events_channel)],
    )
