"""
Booking intake hook.

Creates the ``pending`` booking on behalf of the intake collaborator and,
for emergencies, hands it to the dispatch scheduler.  ``ZADD NX`` on the
queue guarantees at most one scheduler task per booking.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.enums import BookingKind, BookingStatus
from ambulance_dispatch.infrastructure.models import BookingModel
from ambulance_dispatch.infrastructure.repositories import BookingRepository
from ambulance_dispatch.infrastructure.task_queue import DispatchQueue

logger = logging.getLogger(__name__)


async def create_booking(
    session: AsyncSession,
    queue: DispatchQueue,
    *,
    kind: BookingKind,
    pickup_lat: float | None = None,
    pickup_lng: float | None = None,
    destination_lat: float | None = None,
    destination_lng: float | None = None,
    pickup_address: str | None = None,
    destination_address: str | None = None,
    patient_name: str | None = None,
    contact_phone: str | None = None,
    dp_payment_deadline: datetime | None = None,
) -> BookingModel:
    booking = BookingModel(
        kind=kind,
        status=BookingStatus.PENDING,
        pickup_lat=pickup_lat,
        pickup_lng=pickup_lng,
        destination_lat=destination_lat,
        destination_lng=destination_lng,
        pickup_address=pickup_address,
        destination_address=destination_address,
        patient_name=patient_name,
        contact_phone=contact_phone,
        dp_payment_deadline=dp_payment_deadline,
        dispatch_attempts=0,
        is_downpayment_paid=False,
        is_fully_paid=False,
    )
    try:
        await BookingRepository(session).create(booking)
        await session.commit()
        await session.refresh(booking)
    except Exception:
        await session.rollback()
        raise

    logger.info("Created %s booking %s", kind.value, booking.id)
    if kind == BookingKind.EMERGENCY:
        await queue.schedule(booking.id, only_if_absent=True)
        logger.info("Queued emergency dispatch for booking %s", booking.id)
    return booking
