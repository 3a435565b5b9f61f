"""
Booking endpoints
=================

POST /api/v1/bookings                        -- intake: create a pending booking
GET  /api/v1/bookings/{booking_id}           -- booking status, driver and ETA
POST /api/v1/bookings/{booking_id}/payments  -- payment collaborator callback
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.api.dependencies import get_db, get_services
from ambulance_dispatch.api.errors import action_response, run_action
from ambulance_dispatch.api.middleware import limiter
from ambulance_dispatch.api.schemas import (
    ActionResponse,
    BookingCreateRequest,
    BookingResponse,
    PaymentEventRequest,
)
from ambulance_dispatch.infrastructure.repositories import BookingRepository
from ambulance_dispatch.services.factory import Services
from ambulance_dispatch.services.intake import create_booking as intake_booking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Create a booking",
    responses={
        201: {"description": "Booking created; emergencies are queued for dispatch."}
    },
)
@limiter.limit("100/minute")
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        booking = await intake_booking(db, services.queue, **body.model_dump())
    except (SQLAlchemyError, RedisError):
        logger.exception("Booking intake failed")
        raise HTTPException(status_code=503, detail="Temporary failure, please retry.")
    return booking


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking status",
)
@limiter.limit("100/minute")
async def get_booking(
    request: Request,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingRepository(db).get_by_id(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


@router.post(
    "/{booking_id}/payments",
    response_model=ActionResponse,
    summary="Report a payment event",
)
@limiter.limit("100/minute")
async def record_payment(
    request: Request,
    response: Response,
    booking_id: int,
    body: PaymentEventRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await run_action(
        lambda: services.lifecycle.record_payment(
            db,
            booking_id,
            payment_type=body.payment_type,
            status=body.status,
            amount=body.amount,
            reference=body.reference,
        )
    )
    return await action_response(db, response, result)
