"""
Driver location updates and ETA recomputation.

Lower priority than assignment: reads booking state without locking it
and only ever writes the driver's location and the booking's
``estimated_arrival_at``.  Each ETA write is conditional on the booking
still being in the status it was read in, so a booking that completed
mid-computation is left untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.distance import estimate_arrival, haversine_km
from ambulance_dispatch.domain.entities import utcnow
from ambulance_dispatch.domain.enums import BookingStatus, ErrorKind
from ambulance_dispatch.domain.results import ActionResult
from ambulance_dispatch.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
)

logger = logging.getLogger(__name__)


def eta_target(booking) -> tuple[float, float] | None:
    """Where the driver is heading for *booking*, if anywhere."""
    if booking.status == BookingStatus.DISPATCHED:
        lat, lng = booking.pickup_lat, booking.pickup_lng
    elif booking.status == BookingStatus.ENROUTE:
        lat, lng = booking.destination_lat, booking.destination_lng
    else:
        return None
    if lat is None or lng is None:
        return None
    return lat, lng


class LocationTracker:
    def __init__(
        self,
        default_speed_kmh: float = 40.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.default_speed_kmh = default_speed_kmh
        self.clock = clock

    async def update_location(
        self,
        session: AsyncSession,
        driver_id: int,
        lat: float,
        lng: float,
        speed_kmh: float | None = None,
    ) -> ActionResult:
        now = self.clock()
        try:
            driver = await DriverRepository(session).get_by_id(driver_id)
            if driver is None:
                await session.rollback()
                return ActionResult.reject(ErrorKind.NOT_FOUND, "Driver not found.")
            driver.last_lat = lat
            driver.last_lng = lng
            driver.last_location_at = now
            driver.last_active_at = now
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        updated = await self.refresh_etas(session, driver_id, lat, lng, speed_kmh, now)
        logger.debug(
            "Driver %s at (%.6f, %.6f); %d ETA(s) refreshed",
            driver_id, lat, lng, updated,
        )
        return ActionResult.ok("Location updated.")

    async def refresh_etas(
        self,
        session: AsyncSession,
        driver_id: int,
        lat: float,
        lng: float,
        speed_kmh: float | None,
        now: datetime,
    ) -> int:
        speed = speed_kmh if speed_kmh and speed_kmh > 0 else self.default_speed_kmh
        bookings = BookingRepository(session)
        updated = 0
        try:
            for booking in await bookings.get_live_for_driver(driver_id):
                target = eta_target(booking)
                if target is None:
                    continue
                distance = haversine_km(lat, lng, target[0], target[1])
                eta = estimate_arrival(now, distance, speed)
                if await bookings.set_eta_if_status(booking.id, booking.status, eta):
                    updated += 1
                    logger.info(
                        "Booking %s ETA %s (%.2f km at %.0f km/h)",
                        booking.id, eta.isoformat(), distance, speed,
                    )
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return updated
