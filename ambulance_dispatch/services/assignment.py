"""
Assignment Guard
================

The atomic claim of a booking by a driver, and the single point where
the dispatch scheduler and a driver's own "accept" are serialized.

Unit of work
------------
1. ``SELECT ... FOR UPDATE`` the booking, then the driver (fixed lock
   order: booking -> driver -> vehicle).
2. Check preconditions: booking pending and unbound; driver available,
   active, with a vehicle and no live booking.
3. Compare-and-set both rows.  If either CAS touches zero rows the whole
   unit is rolled back, which keeps the claim exclusive even on stores
   that ignore row locks.
4. The synchronizer runs on the same session (vehicle -> on_duty), then
   commit; events are published after commit.

Whichever actor commits first wins; the other sees ``already_taken`` and
nothing of its own is changed.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.entities import driver_is_eligible, utcnow
from ambulance_dispatch.domain.enums import AssignOutcome, BookingStatus
from ambulance_dispatch.domain.events import BookingStatusChanged, DriverAssigned
from ambulance_dispatch.domain.results import AssignResult
from ambulance_dispatch.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
)
from ambulance_dispatch.services.events import EventBus

logger = logging.getLogger(__name__)

CLAIM_TARGETS = frozenset({BookingStatus.CONFIRMED, BookingStatus.DISPATCHED})


class AssignmentGuard:
    def __init__(self, bus: EventBus, clock: Callable = utcnow):
        self.bus = bus
        self.clock = clock

    async def try_assign(
        self,
        session: AsyncSession,
        booking_id: int,
        driver_id: int,
        *,
        target: BookingStatus = BookingStatus.CONFIRMED,
        source: str = "driver",
    ) -> AssignResult:
        if target not in CLAIM_TARGETS:
            raise ValueError(f"Cannot claim a booking into {target.value}")

        def outcome(kind: AssignOutcome) -> AssignResult:
            return AssignResult(kind, booking_id, driver_id)

        bookings = BookingRepository(session)
        drivers = DriverRepository(session)

        try:
            booking = await bookings.get_for_update(booking_id)
            if booking is not None and booking.driver_id is not None:
                await session.rollback()
                return self._lost(outcome(AssignOutcome.ALREADY_TAKEN), source)
            if booking is None or booking.status != BookingStatus.PENDING:
                await session.rollback()
                return self._lost(outcome(AssignOutcome.BOOKING_NOT_PENDING), source)

            driver = await drivers.get_for_update(driver_id)
            if driver is None or not driver_is_eligible(driver):
                await session.rollback()
                return self._lost(outcome(AssignOutcome.DRIVER_UNAVAILABLE), source)

            vehicle_id = driver.vehicle_id
            now = self.clock()

            if not await bookings.claim(
                booking_id,
                driver_id=driver_id,
                vehicle_id=vehicle_id,
                status=target,
                confirmed_at=now,
            ):
                await session.rollback()
                return self._lost(outcome(AssignOutcome.ALREADY_TAKEN), source)

            if not await drivers.mark_busy(driver_id, booking_id, now):
                await session.rollback()
                return self._lost(outcome(AssignOutcome.DRIVER_UNAVAILABLE), source)

            events = [
                BookingStatusChanged(
                    booking_id=booking_id,
                    old_status=BookingStatus.PENDING,
                    new_status=target,
                    driver_id=driver_id,
                    vehicle_id=vehicle_id,
                    occurred_at=now,
                ),
                DriverAssigned(
                    booking_id=booking_id,
                    driver_id=driver_id,
                    vehicle_id=vehicle_id,
                    source=source,
                    occurred_at=now,
                ),
            ]
            await self.bus.apply(session, events[0])
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            "Booking %s assigned to driver %s (vehicle %s) by %s -> %s",
            booking_id, driver_id, vehicle_id, source, target.value,
        )
        await self.bus.publish(events)
        return AssignResult(
            AssignOutcome.ASSIGNED, booking_id, driver_id, vehicle_id, target
        )

    @staticmethod
    def _lost(result: AssignResult, source: str) -> AssignResult:
        # Conflicts are expected under concurrency; not an error.
        logger.info(
            "Claim of booking %s by driver %s (%s) not applied: %s",
            result.booking_id, result.driver_id, source, result.outcome.value,
        )
        return result
