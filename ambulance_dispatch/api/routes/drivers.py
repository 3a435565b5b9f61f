"""
Driver endpoints
================

The acting driver is the ``driver_id`` path parameter; authentication is
handled in front of this service.

POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/accept
POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/start
POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/arrive
POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/depart
POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/complete
POST  /api/v1/drivers/{driver_id}/bookings/{booking_id}/cancel
POST  /api/v1/drivers/{driver_id}/emergency/accept
PATCH /api/v1/drivers/{driver_id}/status
POST  /api/v1/drivers/{driver_id}/location
GET   /api/v1/drivers/{driver_id}

Every action answers with ``ActionResponse``: 200 on success, 409 for a
rejected action, 404 for unknown ids, 422 for a missing cancel reason and
503 for a transient fault.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.api.dependencies import get_db, get_services
from ambulance_dispatch.api.errors import action_response, run_action
from ambulance_dispatch.api.middleware import limiter
from ambulance_dispatch.api.schemas import (
    ActionResponse,
    CancelRequest,
    DriverResponse,
    EmergencyAcceptRequest,
    LocationUpdateRequest,
    StatusChangeRequest,
)
from ambulance_dispatch.domain.enums import DriverAction
from ambulance_dispatch.infrastructure.repositories import DriverRepository
from ambulance_dispatch.services.factory import Services

router = APIRouter(prefix="/drivers", tags=["drivers"])


# ── Booking actions ───────────────────────────────────────────────────


@router.post(
    "/{driver_id}/bookings/{booking_id}/accept",
    response_model=ActionResponse,
    summary="Accept a pending booking",
)
@limiter.limit("100/minute")
async def accept_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await run_action(
        lambda: services.lifecycle.accept(db, booking_id, driver_id)
    )
    return await action_response(db, response, result, booking_id)


async def _perform(
    db: AsyncSession,
    response: Response,
    services: Services,
    action: DriverAction,
    booking_id: int,
    driver_id: int,
    reason: str | None = None,
) -> ActionResponse:
    result = await run_action(
        lambda: services.lifecycle.perform(
            db, action, booking_id, driver_id, reason=reason
        )
    )
    return await action_response(db, response, result, booking_id)


@router.post(
    "/{driver_id}/bookings/{booking_id}/start",
    response_model=ActionResponse,
    summary="Start the trip to the pickup",
)
@limiter.limit("100/minute")
async def start_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _perform(
        db, response, services, DriverAction.START, booking_id, driver_id
    )


@router.post(
    "/{driver_id}/bookings/{booking_id}/arrive",
    response_model=ActionResponse,
    summary="Mark arrival at the pickup",
)
@limiter.limit("100/minute")
async def arrive_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _perform(
        db, response, services, DriverAction.ARRIVE, booking_id, driver_id
    )


@router.post(
    "/{driver_id}/bookings/{booking_id}/depart",
    response_model=ActionResponse,
    summary="Depart towards the destination",
)
@limiter.limit("100/minute")
async def depart_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _perform(
        db, response, services, DriverAction.DEPART, booking_id, driver_id
    )


@router.post(
    "/{driver_id}/bookings/{booking_id}/complete",
    response_model=ActionResponse,
    summary="Complete the booking",
)
@limiter.limit("100/minute")
async def complete_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _perform(
        db, response, services, DriverAction.COMPLETE, booking_id, driver_id
    )


@router.post(
    "/{driver_id}/bookings/{booking_id}/cancel",
    response_model=ActionResponse,
    summary="Cancel the booking with a reason",
)
@limiter.limit("100/minute")
async def cancel_booking(
    request: Request,
    response: Response,
    driver_id: int,
    booking_id: int,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    return await _perform(
        db, response, services, DriverAction.CANCEL, booking_id, driver_id,
        reason=body.reason,
    )


@router.post(
    "/{driver_id}/emergency/accept",
    response_model=ActionResponse,
    summary="Manually pick up an emergency booking",
    description=(
        "Races the dispatch scheduler; exactly one of them wins. "
        "The loser receives error_kind=already_taken."
    ),
)
@limiter.limit("100/minute")
async def accept_emergency(
    request: Request,
    response: Response,
    driver_id: int,
    body: EmergencyAcceptRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await run_action(
        lambda: services.lifecycle.accept_emergency(db, body.booking_id, driver_id)
    )
    return await action_response(db, response, result, body.booking_id)


# ── Driver state ──────────────────────────────────────────────────────


@router.patch(
    "/{driver_id}/status",
    response_model=ActionResponse,
    summary="Toggle availability",
    description="Refused while the driver holds a live booking.",
)
@limiter.limit("100/minute")
async def change_status(
    request: Request,
    response: Response,
    driver_id: int,
    body: StatusChangeRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await run_action(
        lambda: services.synchronizer.change_driver_status(db, driver_id, body.status)
    )
    return await action_response(db, response, result)


@router.post(
    "/{driver_id}/location",
    response_model=ActionResponse,
    summary="Report the driver's location",
)
@limiter.limit("600/minute")
async def update_location(
    request: Request,
    response: Response,
    driver_id: int,
    body: LocationUpdateRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await run_action(
        lambda: services.tracker.update_location(
            db, driver_id, body.lat, body.lng, body.speed_kmh
        )
    )
    return await action_response(db, response, result)


@router.get(
    "/{driver_id}",
    response_model=DriverResponse,
    summary="Get driver status",
)
@limiter.limit("100/minute")
async def get_driver(
    request: Request,
    driver_id: int,
    db: AsyncSession = Depends(get_db),
):
    driver = await DriverRepository(db).reload(driver_id)
    if not driver:
        raise HTTPException(status_code=404, detail="Driver not found")
    return driver
