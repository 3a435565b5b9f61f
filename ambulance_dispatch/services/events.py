"""
Event bus between the state machine and its consumers.

* ``apply`` runs in-transaction consumers (the status synchronizer) on
  the caller's session, before commit, so derived driver/vehicle status
  lands atomically with the booking transition.
* ``publish`` fans events out to subscribers (notification publisher)
  after commit.  A failing subscriber is logged and skipped; it never
  undoes a committed transition.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.events import DispatchEvent

logger = logging.getLogger(__name__)


class TransactionalConsumer(Protocol):
    async def on_event(self, session: AsyncSession, event: DispatchEvent) -> None: ...


class Subscriber(Protocol):
    async def publish(self, event: DispatchEvent) -> None: ...


class EventBus:
    def __init__(
        self,
        consumers: Iterable[TransactionalConsumer] = (),
        subscribers: Iterable[Subscriber] = (),
    ):
        self.consumers = list(consumers)
        self.subscribers = list(subscribers)

    async def apply(self, session: AsyncSession, event: DispatchEvent) -> None:
        for consumer in self.consumers:
            await consumer.on_event(session, event)

    async def publish(self, events: Iterable[DispatchEvent]) -> None:
        for event in events:
            for subscriber in self.subscribers:
                try:
                    await subscriber.publish(event)
                except Exception:
                    logger.exception(
                        "Failed to publish %s for booking %s",
                        event.name, getattr(event, "booking_id", None),
                    )
