"""
Status Synchronizer
===================

Derives driver and vehicle status from booking transitions.

* booking -> confirmed / dispatched / arrived / enroute:
  driver ``busy`` holding the booking, vehicle ``on_duty``.
* booking -> completed / cancelled:
  if the driver still holds *this* booking, driver ``available`` and
  vehicle ``available`` (a vehicle sent to maintenance keeps that status).

It is the only writer of these fields apart from the manual status
toggle, which is refused while the driver holds a live booking.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.entities import utcnow
from ambulance_dispatch.domain.enums import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    DriverStatus,
    ErrorKind,
    VehicleStatus,
)
from ambulance_dispatch.domain.events import BookingStatusChanged, DispatchEvent
from ambulance_dispatch.domain.results import ActionResult
from ambulance_dispatch.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)


class StatusSynchronizer:
    def __init__(self, clock: Callable = utcnow):
        self.clock = clock

    async def on_event(self, session: AsyncSession, event: DispatchEvent) -> None:
        if isinstance(event, BookingStatusChanged) and event.driver_id is not None:
            await self.sync(session, event)

    async def sync(self, session: AsyncSession, event: BookingStatusChanged) -> None:
        drivers = DriverRepository(session)
        vehicles = VehicleRepository(session)

        driver = await drivers.get_for_update(event.driver_id)
        if driver is None:
            return
        vehicle = (
            await vehicles.get_for_update(event.vehicle_id)
            if event.vehicle_id is not None
            else None
        )

        if event.new_status in LIVE_STATUSES:
            driver.status = DriverStatus.BUSY
            driver.current_booking_id = event.booking_id
            if vehicle is not None:
                vehicle.status = VehicleStatus.ON_DUTY
        elif event.new_status in TERMINAL_STATUSES:
            if driver.current_booking_id != event.booking_id:
                logger.info(
                    "Driver %s no longer holds booking %s; leaving status as is",
                    driver.id, event.booking_id,
                )
                return
            driver.status = DriverStatus.AVAILABLE
            driver.current_booking_id = None
            if vehicle is not None and vehicle.status != VehicleStatus.MAINTENANCE:
                vehicle.status = VehicleStatus.AVAILABLE
        else:
            return

        driver.last_active_at = self.clock()
        await session.flush()
        logger.info(
            "Synced driver %s -> %s for booking %s (%s)",
            driver.id, driver.status.value, event.booking_id, event.new_status.value,
        )

    async def change_driver_status(
        self, session: AsyncSession, driver_id: int, status: DriverStatus
    ) -> ActionResult:
        """Voluntary shift change; refused mid-trip."""
        try:
            driver = await DriverRepository(session).get_for_update(driver_id)
            if driver is None:
                await session.rollback()
                return ActionResult.reject(ErrorKind.NOT_FOUND, "Driver not found.")

            live = await BookingRepository(session).get_live_for_driver(driver_id)
            if live or driver.current_booking_id is not None:
                await session.rollback()
                return ActionResult.reject(
                    ErrorKind.LIVE_BOOKING,
                    "Finish or cancel the active booking before changing status.",
                )

            driver.status = status
            driver.last_active_at = self.clock()
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info("Driver %s set status to %s", driver_id, status.value)
        return ActionResult.ok(f"Status changed to {status.value}.")
